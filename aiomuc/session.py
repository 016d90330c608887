########################################################################
# File name: session.py
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
:mod:`~aiomuc.session` --- Stanza stream ownership and request correlation
##########################################################################

The :class:`Session` owns the single stanza stream of a connection. Every
inbound stanza is handed to exactly one of

1. the room handler registered for the bare sender address,
2. the pending request whose id matches (IQ responses only), or
3. the :class:`~.EventDispatcher`, as :attr:`~.EventType.STANZA` event,

checked in that order.

Transport contract
==================

.. autoclass:: AbstractTransport

Request correlation
===================

.. autoclass:: PendingRequest

.. autoclass:: PendingRequestTable

Session
=======

.. autoclass:: Session
"""

import abc
import asyncio
import logging
import time

from datetime import timedelta

from . import errors
from . import stanza as stanza_
from .callbacks import EventDispatcher
from .structs import EventType, IQType, StanzaKind


logger = logging.getLogger(__name__)

#: Timeout applied to :meth:`Session.request` if none is given.
DEFAULT_REQUEST_TIMEOUT = timedelta(seconds=5)


class AbstractTransport(metaclass=abc.ABCMeta):
    """
    The interface a connection must provide to be used with a
    :class:`Session`.

    Any object which provides the three methods below is considered an
    instance of this class, whether it inherits from it or not.

    .. automethod:: send

    .. automethod:: on_stanza

    .. automethod:: own_address
    """

    __slots__ = ()

    @abc.abstractmethod
    async def send(self, stanza):
        """
        Write `stanza` to the stream.

        Failures must be raised, not dropped silently.
        """

    @abc.abstractmethod
    def on_stanza(self, handler):
        """
        Register `handler` as the single entry point for inbound stanzas.

        `handler` must be called once per inbound stanza, in arrival order.
        """

    @abc.abstractmethod
    def own_address(self):
        """
        Return the full :class:`~.JID` the connection is bound to.

        Only available once the connection is established.
        """

    @classmethod
    def __subclasshook__(cls, C):
        if cls is not AbstractTransport:
            return NotImplemented
        for method in ("send", "on_stanza", "own_address"):
            if not any(callable(B.__dict__.get(method)) for B in C.__mro__):
                return NotImplemented
        return True


class PendingRequest:
    """
    A request which awaits its response.

    .. attribute:: id_

       The id of the request stanza.

    .. attribute:: created_at

       :func:`time.monotonic` timestamp of the registration.

    .. attribute:: future

       The :class:`asyncio.Future` which receives the response stanza.

    .. automethod:: resolve
    """

    __slots__ = ("id_", "created_at", "future")

    def __init__(self, id_, future):
        self.id_ = id_
        self.created_at = time.monotonic()
        self.future = future

    def resolve(self, response):
        """
        Complete the request with `response`.

        :return: :data:`True` if this call completed the request,
            :data:`False` if it was already completed or cancelled.

        This is the only place where the future receives a result, so a
        request completes at most once, no matter whether the response or
        the timeout comes first.
        """
        if self.future.done():
            return False
        self.future.set_result(response)
        return True

    def __repr__(self):
        return "<{}.{} id_={!r} done={}>".format(
            type(self).__module__,
            type(self).__qualname__,
            self.id_,
            self.future.done(),
        )


class PendingRequestTable:
    """
    The table of :class:`PendingRequest` objects, keyed by id.

    Entries are only ever added by :meth:`register` and removed by
    :meth:`resolve` or :meth:`discard`; all three run to completion without
    yielding to the event loop, so the inbound dispatch never observes a
    half-registered entry.

    .. automethod:: register

    .. automethod:: resolve

    .. automethod:: discard

    .. automethod:: cancel_all
    """

    def __init__(self):
        super().__init__()
        self._entries = {}

    def __contains__(self, id_):
        return id_ in self._entries

    def __len__(self):
        return len(self._entries)

    def __iter__(self):
        return iter(list(self._entries.values()))

    def register(self, id_):
        """
        Create and register a :class:`PendingRequest` for `id_`.

        :raises ValueError: if a request with the same id is still pending.

        Must be called with a running event loop.
        """
        if id_ in self._entries:
            raise ValueError("only one listener is allowed per tag")
        entry = PendingRequest(
            id_,
            asyncio.get_running_loop().create_future(),
        )
        self._entries[id_] = entry
        return entry

    def resolve(self, id_, response):
        """
        Remove the entry for `id_` and complete it with `response`.

        :return: :data:`True` if a request was completed.
        """
        try:
            entry = self._entries.pop(id_)
        except KeyError:
            return False
        return entry.resolve(response)

    def discard(self, entry):
        """
        Remove `entry` from the table, if it is still registered.

        An entry registered under the same id later is left alone.
        """
        if self._entries.get(entry.id_) is entry:
            del self._entries[entry.id_]

    def cancel_all(self):
        """
        Cancel all pending futures and clear the table.
        """
        for entry in self._entries.values():
            entry.future.cancel()
        self._entries.clear()


class Session:
    """
    Owner of the stanza stream of one connection.

    :param transport: The connection.
    :type transport: :class:`AbstractTransport`
    :param dispatcher: Dispatcher for stanzas nobody else claims; a new one
        is created if omitted.
    :type dispatcher: :class:`~.EventDispatcher`
    :param request_timeout: Default timeout for :meth:`request`.
    :type request_timeout: :class:`datetime.timedelta`
    :param logger_base: Logger to derive the session logger from.
    :type logger_base: :class:`logging.Logger`
    :raises TypeError: if `transport` does not implement
        :class:`AbstractTransport`.

    The session registers itself with the transport on construction.

    .. autoattribute:: dispatcher

    .. autoattribute:: pending

    .. autoattribute:: request_timeout

    .. autoattribute:: local_jid

    .. automethod:: send

    .. automethod:: request

    .. automethod:: register_room_handler

    .. automethod:: unregister_room_handler

    .. automethod:: close
    """

    def __init__(self, transport, *,
                 dispatcher=None,
                 request_timeout=None,
                 logger_base=None):
        super().__init__()
        if not isinstance(transport, AbstractTransport):
            raise TypeError(
                "transport must provide send, on_stanza and own_address, "
                "got {!r}".format(transport)
            )

        if logger_base is None:
            self._logger = logger
        else:
            self._logger = logger_base.getChild("Session")

        self._transport = transport
        self._dispatcher = dispatcher or EventDispatcher(
            logger=self._logger
        )
        self._pending = PendingRequestTable()
        self._room_handlers = {}
        self._request_timeout = DEFAULT_REQUEST_TIMEOUT
        if request_timeout is not None:
            self.request_timeout = request_timeout

        transport.on_stanza(self._handle_stanza)

    @property
    def transport(self):
        return self._transport

    @property
    def dispatcher(self):
        """
        The :class:`~.EventDispatcher` which receives unclaimed stanzas.
        """
        return self._dispatcher

    @property
    def pending(self):
        """
        The :class:`PendingRequestTable` of this session.
        """
        return self._pending

    @property
    def request_timeout(self):
        """
        Default timeout for :meth:`request`, as :class:`datetime.timedelta`.
        """
        return self._request_timeout

    @request_timeout.setter
    def request_timeout(self, value):
        if not isinstance(value, timedelta):
            raise TypeError("request_timeout must be a timedelta")
        if value <= timedelta(0):
            raise ValueError("request_timeout must be positive")
        self._request_timeout = value

    @property
    def local_jid(self):
        """
        The full :class:`~.JID` of the connection.
        """
        return self._transport.own_address()

    def register_room_handler(self, jid, cb):
        """
        Route all stanzas from the bare address `jid` to `cb`.

        :raises ValueError: if a handler is already registered for `jid`.
        """
        jid = jid.bare()
        if jid in self._room_handlers:
            raise ValueError(
                "a room handler is already registered for {}".format(jid)
            )
        self._room_handlers[jid] = cb
        self._logger.debug("room handler registered for %s", jid)

    def unregister_room_handler(self, jid):
        """
        Remove the room handler of `jid`. This never raises.
        """
        self._room_handlers.pop(jid.bare(), None)

    async def send(self, stanza):
        """
        Send `stanza` over the transport.

        :raises aiomuc.errors.StanzaSendError: if the transport fails.
        """
        self._logger.debug("sending %s id=%r to %r",
                           _kind_name(stanza),
                           stanza_.get_id(stanza),
                           stanza.get("to"))
        try:
            await self._transport.send(stanza)
        except Exception as exc:
            self._logger.warning("failed to send stanza", exc_info=True)
            raise errors.StanzaSendError(stanza) from exc

    async def request(self, stanza, id_, timeout=None):
        """
        Send `stanza` and wait for the IQ response with the id `id_`.

        :param stanza: The request stanza; its ``id`` must be `id_`.
        :param id_: The id to correlate the response with.
        :type id_: :class:`str`
        :param timeout: Time to wait for the response; defaults to
            :attr:`request_timeout`.
        :type timeout: :class:`datetime.timedelta`
        :raises ValueError: if another request with `id_` is pending.
        :raises aiomuc.errors.StanzaSendError: if sending fails.
        :return: The response stanza (of type ``result`` or ``error``), or
            :data:`None` if none arrived within the timeout.

        The pending entry is registered before the stanza is written and is
        removed when this coroutine returns, raises or is cancelled, so a
        response arriving afterwards is not correlated with anything.
        """
        if timeout is None:
            timeout = self._request_timeout

        entry = self._pending.register(id_)
        self._logger.debug("request registered: id=%r", id_)
        try:
            await self.send(stanza)
            try:
                return await asyncio.wait_for(
                    entry.future,
                    timeout=timeout.total_seconds(),
                )
            except asyncio.TimeoutError:
                self._logger.debug("request timed out: id=%r", id_)
                return None
        finally:
            self._pending.discard(entry)

    def _handle_stanza(self, stanza):
        sender = stanza_.get_from(stanza)
        if sender is not None:
            try:
                handler = self._room_handlers[sender.bare()]
            except KeyError:
                pass
            else:
                self._logger.debug("routing stanza from %s to room", sender)
                try:
                    handler(stanza)
                except Exception:
                    self._logger.exception(
                        "room handler for %s raised", sender.bare()
                    )
                return

        if stanza_.kind_of(stanza) == StanzaKind.IQ:
            try:
                type_ = IQType(stanza_.get_type(stanza))
            except ValueError:
                type_ = None
            if type_ is not None and type_.is_response:
                id_ = stanza_.get_id(stanza)
                if self._pending.resolve(id_, stanza):
                    self._logger.debug("response for id=%r", id_)
                    return

        self._dispatcher.publish(EventType.STANZA, stanza)

    def close(self):
        """
        Cancel all pending requests and drop all room handlers.
        """
        self._logger.debug("closing session with %d pending requests",
                           len(self._pending))
        self._pending.cancel_all()
        self._room_handlers.clear()


def _kind_name(stanza):
    kind = stanza_.kind_of(stanza)
    if kind is None:
        return "element"
    return kind.value
