########################################################################
# File name: room.py
# This file is part of: aiomuc
#
# LICENSE
#
# This program is free software: you can redistribute it and/or modify
# it under the terms of the GNU Lesser General Public License as
# published by the Free Software Foundation, either version 3 of the
# License, or (at your option) any later version.
#
# This program is distributed in the hope that it will be useful, but
# WITHOUT ANY WARRANTY; without even the implied warranty of
# MERCHANTABILITY or FITNESS FOR A PARTICULAR PURPOSE.  See the GNU
# Lesser General Public License for more details.
#
# You should have received a copy of the GNU Lesser General Public
# License along with this program.  If not, see
# <http://www.gnu.org/licenses/>.
#
########################################################################
"""
:mod:`~aiomuc.room` --- Multi-user chat rooms
#############################################

.. autoclass:: RoomState

.. autoclass:: Room
"""

import types

from enum import Enum

from . import codec
from . import callbacks
from . import stanza as stanza_
from .structs import PresenceType, StanzaKind


class RoomState(Enum):
    """
    Enumeration which describes the membership state of a :class:`Room`.

    .. attribute:: NOT_JOINED

        The room has not been joined, or it has been left.

    .. attribute:: JOINING

        The join presence has been sent, but the room has not answered yet.

    .. attribute:: JOINED

        The room answered the join with presence.
    """

    NOT_JOINED = 0
    JOINING = 1
    JOINED = 2


class Room:
    """
    A multi-user chat room, tracked from the presence it sends.

    Rooms are created by :meth:`.SessionManager.get_room`; do not
    instantiate them directly.

    .. autoattribute:: jid

    .. autoattribute:: nickname

    .. autoattribute:: occupant_jid

    .. autoattribute:: state

    .. automethod:: join

    .. automethod:: leave

    .. automethod:: send_message

    .. automethod:: add_message_listener

    .. automethod:: get_participants

    Signals:

    .. signal:: on_message(stanza)

        Emits for every stanza the room sends us, before it is processed
        further. These are the message listeners.

    .. signal:: on_join(occupant_jid, participant)

        A participant was seen for the first time.

    .. signal:: on_leave(occupant_jid)

        A known participant sent unavailable presence.

    .. signal:: on_state_changed(state)

        The :attr:`state` changed.
    """

    on_message = callbacks.Signal()
    on_join = callbacks.Signal()
    on_leave = callbacks.Signal()
    on_state_changed = callbacks.Signal()

    def __init__(self, manager, mucjid, nickname):
        super().__init__()
        if not mucjid.is_bare:
            raise ValueError("MUC JID must be bare")
        self._manager = manager
        self._mucjid = mucjid
        self._nickname = nickname
        self._participants = {}
        self._state = RoomState.NOT_JOINED
        self._logger = manager.logger.getChild("Room")

    @property
    def jid(self):
        """
        The bare :class:`~.JID` of the room.
        """
        return self._mucjid

    @property
    def nickname(self):
        return self._nickname

    @property
    def occupant_jid(self):
        """
        The address of the local user in the room (``room/nickname``).
        """
        return self._mucjid.replace(resource=self._nickname)

    @property
    def state(self):
        """
        The :class:`RoomState` of the room.
        """
        return self._state

    def _set_state(self, new_state):
        if new_state == self._state:
            return
        self._logger.debug("%s: %s -> %s",
                           self._mucjid, self._state, new_state)
        self._state = new_state
        self.on_state_changed(new_state)

    def _clear_participants(self):
        self._participants.clear()

    def handle_stanza(self, stanza):
        """
        Process a stanza sent by the room.

        The message listeners are notified first, unconditionally. Presence
        then updates the participant table: an occupant is added when it is
        seen for the first time (later presence does not overwrite the entry)
        and removed on ``unavailable`` presence. Status codes are not
        interpreted.

        The table is maintained in every :attr:`state`. Presence which
        arrives after :meth:`leave` (for example, broadcasts the room sent
        before it processed the leave) therefore re-adds occupants; they are
        dropped again on the next :meth:`leave` or own ``unavailable``
        presence.
        """
        self.on_message(stanza)

        if stanza_.kind_of(stanza) != StanzaKind.PRESENCE:
            return

        sender = stanza_.get_from(stanza)
        if sender is None:
            return

        try:
            type_ = PresenceType(stanza_.get_type(stanza))
        except ValueError:
            self._logger.debug("%s: ignoring presence of unknown type %r",
                               self._mucjid, stanza_.get_type(stanza))
            return

        if type_ == PresenceType.ERROR:
            if (sender == self.occupant_jid and
                    self._state == RoomState.JOINING):
                self._logger.debug("%s: join rejected", self._mucjid)
                self._set_state(RoomState.NOT_JOINED)
            return

        if type_ == PresenceType.UNAVAILABLE:
            if self._participants.pop(sender, None) is not None:
                self.on_leave(sender)
            if sender == self.occupant_jid:
                self._logger.debug("%s: we left the room", self._mucjid)
                self._clear_participants()
                self._set_state(RoomState.NOT_JOINED)
                return
        elif (type_ == PresenceType.AVAILABLE and
                not sender.is_bare and
                sender not in self._participants):
            participant = codec.parse_participant(stanza)
            self._participants[sender] = participant
            self.on_join(sender, participant)

        # the room only sends us presence once we are in
        if self._state == RoomState.JOINING:
            self._set_state(RoomState.JOINED)

    def add_message_listener(self, callback):
        """
        Register `callback` to be called with every stanza from the room.

        Listeners stay registered for the lifetime of the room.
        """
        self.on_message.connect(callback)

    def get_participants(self):
        """
        Return a read-only view of the participant table.

        :rtype: mapping of occupant :class:`~.JID` to
            :class:`~.codec.Participant`
        """
        return types.MappingProxyType(self._participants)

    async def join(self):
        """
        Send the join presence.

        The join is not awaited; it completes when the room sends presence
        (see :attr:`state`). Joining a room which is being joined or joined
        already does nothing.
        """
        if self._state != RoomState.NOT_JOINED:
            self._logger.debug("%s: join requested while %s, ignoring",
                               self._mucjid, self._state)
            return

        _, presence = codec.build_join_room(
            self._mucjid,
            self._manager.local_jid,
            self._nickname,
        )
        self._set_state(RoomState.JOINING)
        try:
            await self._manager.send(presence)
        except Exception:
            self._set_state(RoomState.NOT_JOINED)
            raise

    async def leave(self):
        """
        Send unavailable presence to the room and forget all participants.

        The :class:`Room` object itself stays valid and may be joined again.
        """
        presence = codec.build_leave_room(
            self.occupant_jid,
            self._manager.local_jid,
        )
        self._clear_participants()
        self._set_state(RoomState.NOT_JOINED)
        await self._manager.send(presence)

    async def send_message(self, body):
        """
        Send a groupchat message with the text `body` to the room.
        """
        message = codec.build_group_message(
            self._manager.local_jid,
            self._mucjid,
            body,
        )
        await self._manager.send(message)

    def __repr__(self):
        return "<{}.{} jid={!r} nickname={!r} state={}>".format(
            type(self).__module__,
            type(self).__qualname__,
            str(self._mucjid),
            self._nickname,
            self._state,
        )
