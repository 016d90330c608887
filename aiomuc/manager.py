########################################################################
# File name: manager.py
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
:mod:`~aiomuc.manager` --- Per-connection entry point
#####################################################

The :class:`SessionManager` ties a :class:`~.Session` to its rooms and
offers the service discovery operations used to find rooms.

.. autoclass:: SessionManager
"""

import asyncio
import logging
import types
import weakref

from . import codec
from . import utils
from .room import Room
from .session import AbstractTransport, Session
from .structs import JID


class SessionManager:
    """
    Client-side multi-user chat support for one connection.

    :param connection: The connection to use.
    :type connection: :class:`~.AbstractTransport`
    :param request_timeout: Timeout for discovery requests; see
        :attr:`.Session.request_timeout`.
    :type request_timeout: :class:`datetime.timedelta`
    :param logger_base: Logger to derive the loggers of the manager, its
        session and its rooms from.
    :type logger_base: :class:`logging.Logger`
    :raises TypeError: if `connection` does not implement
        :class:`~.AbstractTransport`.

    Constructing a manager installs its :class:`~.Session` as the inbound
    stanza handler of `connection`. Only one manager should exist per
    connection; :meth:`get_instance` makes sure of that.

    .. automethod:: get_instance

    .. autoattribute:: session

    .. autoattribute:: local_jid

    .. autoattribute:: rooms

    .. automethod:: get_room

    .. automethod:: send

    Service discovery:

    .. automethod:: discover_domain_services

    .. automethod:: discover_rooms_hosted_by

    .. automethod:: discover_all_hosted_items

    .. automethod:: discover_muc_services

    .. automethod:: close
    """

    _instances = weakref.WeakKeyDictionary()

    def __init__(self, connection, *,
                 request_timeout=None,
                 logger_base=None):
        super().__init__()
        if not isinstance(connection, AbstractTransport):
            raise TypeError(
                "connection must provide send, on_stanza and own_address, "
                "got {!r}".format(connection)
            )

        if logger_base is None:
            self.logger = logging.getLogger(".".join([
                type(self).__module__, type(self).__qualname__
            ]))
        else:
            self.logger = logger_base

        self._connection = connection
        self._session = Session(
            connection,
            request_timeout=request_timeout,
            logger_base=self.logger,
        )
        self._rooms = {}

    @classmethod
    def get_instance(cls, connection, **kwargs):
        """
        Return the manager for `connection`, creating it on first use.

        Keyword arguments are passed to the constructor and are ignored if
        the manager exists already. A manager stays registered until it is
        closed (see :meth:`close`).
        """
        try:
            return cls._instances[connection]
        except KeyError:
            pass
        instance = cls(connection, **kwargs)
        cls._instances[connection] = instance
        return instance

    @property
    def session(self):
        """
        The :class:`~.Session` of this manager.
        """
        return self._session

    @property
    def local_jid(self):
        """
        The full :class:`~.JID` of the connection.
        """
        return self._session.local_jid

    @property
    def rooms(self):
        """
        Read-only mapping of bare room :class:`~.JID` to :class:`~.Room`.
        """
        return types.MappingProxyType(self._rooms)

    def get_room(self, address, nickname):
        """
        Return the :class:`~.Room` for `address`, creating it if needed.

        :param address: The bare address of the room.
        :type address: :class:`~.JID` or :class:`str`
        :param nickname: The nickname to join with.
        :type nickname: :class:`str`
        :raises ValueError: if `address` is not a bare JID.

        The room is not joined; use :meth:`.Room.join` for that. If the room
        exists already, it is returned unchanged and `nickname` is ignored.
        """
        if isinstance(address, str):
            address = JID.fromstr(address)
        if not address.is_bare:
            raise ValueError("room address must be bare: {}".format(address))

        try:
            return self._rooms[address]
        except KeyError:
            pass

        room = Room(self, address, nickname)
        self._session.register_room_handler(address, room.handle_stanza)
        self._rooms[address] = room
        self.logger.debug("created room %s as %r", address, nickname)
        return room

    async def send(self, stanza):
        """
        Send `stanza` through the session.

        :raises aiomuc.errors.StanzaSendError: if the transport fails.
        """
        await self._session.send(stanza)

    def _require_local_jid(self):
        local_jid = self.local_jid
        if local_jid is None:
            raise ConnectionError("connection has no local address yet")
        return local_jid

    async def _disco_items(self, jid):
        id_, iq = codec.build_disco_items(jid, self._require_local_jid())
        return await self._session.request(iq, id_)

    async def _disco_info(self, jid):
        id_, iq = codec.build_disco_info(jid, self._require_local_jid())
        return await self._session.request(iq, id_)

    async def discover_domain_services(self):
        """
        List the services of the domain of the local JID.

        :return: The items of the domain, in document order. If the domain
            does not answer in time, the list is empty.
        :raises ConnectionError: if the connection has no local address
            yet.
        :rtype: :class:`list` of :class:`~.DiscoItem`
        """
        domain = JID(None, self._require_local_jid().domain, None)
        self.logger.debug("discovering services of %s", domain)
        return codec.parse_items(await self._disco_items(domain))

    async def discover_rooms_hosted_by(self, service):
        """
        List the items (usually rooms) hosted by `service`.

        :param service: The service to query.
        :type service: :class:`~.JID`
        :return: The items of the service, in document order. If the service
            does not answer in time, the list is empty.
        :rtype: :class:`list` of :class:`~.DiscoItem`
        """
        return codec.parse_items(await self._disco_items(service))

    async def discover_all_hosted_items(self, strict=False):
        """
        List the items hosted by every service of the local domain.

        :param strict: If true, a failing query fails the whole operation.
        :type strict: :class:`bool`
        :raises aiomuc.errors.GatherError: if `strict` is true and any query
            raised.
        :return: The items of all services, concatenated in the order the
            domain listed the services.
        :rtype: :class:`list` of :class:`~.DiscoItem`

        The per-service queries run concurrently. Unless `strict` is true, a
        query which raises is logged and counts as a service without items,
        just like a query which timed out.
        """
        services = await self.discover_domain_services()
        queries = [
            self.discover_rooms_hosted_by(service.jid)
            for service in services
        ]

        if strict:
            results = await utils.gather_reraise_multi(
                *queries,
                message="discover_all_hosted_items",
            )
        else:
            results = await asyncio.gather(
                *queries,
                return_exceptions=True,
            )

        items = []
        for service, result in zip(services, results):
            if isinstance(result, asyncio.CancelledError):
                raise result
            if isinstance(result, Exception):
                self.logger.warning("failed to query items of %s: %s",
                                    service.jid, result)
                continue
            items.extend(result)
        return items

    async def discover_muc_services(self):
        """
        Find the services of the local domain which support multi-user chat.

        :return: The addresses of those services, in the order the domain
            listed them.
        :rtype: :class:`list` of :class:`~.JID`

        A service counts as multi-user chat service if its disco#info result
        lists a feature ending in ``muc``. Services which do not answer in
        time, or whose query fails, are left out.
        """
        services = await self.discover_domain_services()
        infos = await asyncio.gather(
            *(self._disco_info(service.jid) for service in services),
            return_exceptions=True
        )

        result = []
        for service, info in zip(services, infos):
            if isinstance(info, asyncio.CancelledError):
                raise info
            if isinstance(info, Exception):
                self.logger.warning("failed to query info of %s: %s",
                                    service.jid, info)
                continue
            if codec.parse_has_feature(info, codec.MUC_FEATURE_SUFFIX):
                result.append(service.jid)
        return result

    def close(self):
        """
        Detach all rooms, cancel pending requests and forget this manager in
        the :meth:`get_instance` registry.

        The rooms are not left; send :meth:`.Room.leave` before closing if
        that is desired.
        """
        for address in self._rooms:
            self._session.unregister_room_handler(address)
        self._rooms.clear()
        self._session.close()
        if self._instances.get(self._connection) is self:
            del self._instances[self._connection]
