########################################################################
# File name: test_manager.py
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
import asyncio
import logging
import unittest
import unittest.mock

from datetime import timedelta

import aiomuc.errors as errors
import aiomuc.manager as manager

from aiomuc.codec import DiscoItem, Participant
from aiomuc.room import Room, RoomState
from aiomuc.stanza import make_stanza
from aiomuc.structs import EventType, JID, StanzaKind
from aiomuc.testutils import (
    TransportMock,
    get_timeout,
    make_disco_info_result,
    make_disco_items_result,
    make_occupant_presence,
    run_coroutine,
)
from aiomuc.utils import namespaces


TEST_LOCAL = JID.fromstr("alice@example/laptop")
TEST_ROOM = JID.fromstr("room@conference.example")
SHORT_TIMEOUT = timedelta(seconds=get_timeout(0.05))

ITEMS_QUERY = "{{{}}}query".format(namespaces.xep0030_items)
INFO_QUERY = "{{{}}}query".format(namespaces.xep0030_info)

SERVER_ITEMS = {
    "example": ["conf.example", "pubsub.example"],
    "conf.example": ["lobby@conf.example", "dev@conf.example"],
    "pubsub.example": ["news@pubsub.example"],
}

SERVER_FEATURES = {
    "conf.example": [
        "http://jabber.org/protocol/disco#info",
        "http://jabber.org/protocol/muc",
    ],
    "pubsub.example": [
        "http://jabber.org/protocol/disco#info",
        "http://jabber.org/protocol/pubsub",
    ],
}


class FakeServer:
    """
    Answers disco queries from :data:`SERVER_ITEMS` and
    :data:`SERVER_FEATURES`.
    """

    def __init__(self):
        self.silent = set()
        self.failing = set()
        self.delays = {}
        self.transport = None

    def __call__(self, request):
        to = request.get("to")
        if to in self.failing:
            raise OSError("connection reset")
        if to in self.silent or not len(request):
            return []

        if request[0].tag == ITEMS_QUERY:
            response = make_disco_items_result(
                request,
                SERVER_ITEMS.get(to, []),
            )
        elif request[0].tag == INFO_QUERY:
            response = make_disco_info_result(
                request,
                SERVER_FEATURES.get(to, []),
            )
        else:
            return []

        if to in self.delays:
            asyncio.get_running_loop().call_later(
                self.delays[to],
                self.transport.feed,
                response,
            )
            return []
        return [response]


class TestSessionManager(unittest.TestCase):
    def setUp(self):
        self.server = FakeServer()
        self.transport = TransportMock(TEST_LOCAL, responder=self.server)
        self.server.transport = self.transport
        self.m = manager.SessionManager(
            self.transport,
            request_timeout=SHORT_TIMEOUT,
        )

    def tearDown(self):
        self.m.close()
        del self.m
        del self.transport

    def _sent_to(self):
        return [stanza.get("to") for stanza in self.transport.sent]

    def test_rejects_non_conforming_connection(self):
        class Connection:
            def send(self, stanza):
                pass

        with self.assertRaises(TypeError):
            manager.SessionManager(Connection())
        with self.assertRaises(TypeError):
            manager.SessionManager(object())
        with self.assertRaises(TypeError):
            manager.SessionManager.get_instance(object())

    def test_default_logger(self):
        self.assertEqual(
            "aiomuc.manager.SessionManager",
            self.m.logger.name,
        )

    def test_logger_base(self):
        base = unittest.mock.Mock(spec=logging.Logger)
        m = manager.SessionManager(TransportMock(TEST_LOCAL),
                                   logger_base=base)
        self.assertIs(base, m.logger)
        base.getChild.assert_called_once_with("Session")

    def test_request_timeout_is_passed_to_session(self):
        self.assertEqual(SHORT_TIMEOUT, self.m.session.request_timeout)

    def test_local_jid(self):
        self.assertEqual(TEST_LOCAL, self.m.local_jid)

    def test_get_instance_is_memoized(self):
        transport = TransportMock(TEST_LOCAL)
        m1 = manager.SessionManager.get_instance(transport)
        m2 = manager.SessionManager.get_instance(transport)
        self.assertIs(m1, m2)
        m1.close()

    def test_get_instance_per_connection(self):
        t1 = TransportMock(TEST_LOCAL)
        t2 = TransportMock(TEST_LOCAL)
        m1 = manager.SessionManager.get_instance(t1)
        m2 = manager.SessionManager.get_instance(t2)
        self.assertIsNot(m1, m2)
        m1.close()
        m2.close()

    def test_get_instance_passes_kwargs_on_creation(self):
        transport = TransportMock(TEST_LOCAL)
        m = manager.SessionManager.get_instance(
            transport,
            request_timeout=timedelta(seconds=1),
        )
        self.assertEqual(timedelta(seconds=1), m.session.request_timeout)
        m.close()

    def test_get_instance_after_close_creates_new_manager(self):
        transport = TransportMock(TEST_LOCAL)
        m1 = manager.SessionManager.get_instance(transport)
        m1.close()
        m2 = manager.SessionManager.get_instance(transport)
        self.assertIsNot(m1, m2)
        m2.close()

    def test_get_room(self):
        r = self.m.get_room(TEST_ROOM, "alice")
        self.assertIsInstance(r, Room)
        self.assertEqual(TEST_ROOM, r.jid)
        self.assertEqual("alice", r.nickname)
        self.assertEqual(RoomState.NOT_JOINED, r.state)
        self.assertEqual({TEST_ROOM: r}, dict(self.m.rooms))

    def test_get_room_from_str(self):
        r = self.m.get_room("room@conference.example", "alice")
        self.assertEqual(TEST_ROOM, r.jid)
        self.assertIs(r, self.m.get_room(TEST_ROOM, "alice"))

    def test_get_room_is_idempotent_and_ignores_nickname(self):
        r1 = self.m.get_room(TEST_ROOM, "alice")
        r2 = self.m.get_room(TEST_ROOM, "mallory")
        self.assertIs(r1, r2)
        self.assertEqual("alice", r2.nickname)
        self.assertEqual(1, len(self.m.rooms))

    def test_get_room_rejects_full_jid(self):
        with self.assertRaises(ValueError):
            self.m.get_room(TEST_ROOM.replace(resource="x"), "alice")
        with self.assertRaises(ValueError):
            self.m.get_room("room@conference.example/x", "alice")
        self.assertEqual(0, len(self.m.rooms))

    def test_get_room_rejects_invalid_address(self):
        with self.assertRaises(ValueError):
            self.m.get_room("@conference.example", "alice")

    def test_rooms_is_read_only(self):
        with self.assertRaises(TypeError):
            self.m.rooms[TEST_ROOM] = None

    def test_send(self):
        stanza = make_stanza(StanzaKind.MESSAGE)
        run_coroutine(self.m.send(stanza))
        self.assertSequenceEqual([stanza], self.transport.sent)

    def test_send_failure(self):
        self.transport.fail_with = OSError()
        with self.assertRaises(errors.StanzaSendError):
            run_coroutine(self.m.send(make_stanza(StanzaKind.MESSAGE)))

    def test_join_observe_leave_through_connection(self):
        r = self.m.get_room("room@conference.example", "alice")
        listener = unittest.mock.Mock()
        r.add_message_listener(listener)
        bob = TEST_ROOM.replace(resource="bob")

        run_coroutine(r.join())
        self.assertEqual(
            ["room@conference.example/alice"],
            self._sent_to(),
        )
        self.assertEqual(RoomState.JOINING, r.state)

        bob_presence = make_occupant_presence(
            bob, TEST_LOCAL,
            affiliation="member",
            role="participant",
        )
        self.transport.feed(bob_presence)
        self.assertEqual(
            {bob: Participant("member", "participant")},
            dict(r.get_participants()),
        )
        self.assertEqual(RoomState.JOINED, r.state)

        self.transport.feed(make_occupant_presence(
            bob, TEST_LOCAL,
            type_="unavailable",
        ))
        self.assertEqual({}, dict(r.get_participants()))

        run_coroutine(r.leave())
        self.assertEqual("unavailable", self.transport.sent[-1].get("type"))
        self.assertEqual(
            "room@conference.example/alice",
            self.transport.sent[-1].get("to"),
        )
        self.assertEqual(RoomState.NOT_JOINED, r.state)
        self.assertEqual(2, len(listener.mock_calls))

    def test_room_traffic_is_not_published(self):
        self.m.get_room(TEST_ROOM, "alice")
        cb = unittest.mock.Mock()
        self.m.session.dispatcher.subscribe(EventType.STANZA, cb)

        self.transport.feed(make_stanza(
            StanzaKind.MESSAGE,
            from_=TEST_ROOM.replace(resource="bob"),
        ))
        other = make_stanza(
            StanzaKind.MESSAGE,
            from_=JID.fromstr("bob@example/phone"),
        )
        self.transport.feed(other)

        cb.assert_called_once_with(other)

    def test_send_message_from_local_jid(self):
        r = self.m.get_room(TEST_ROOM, "alice")
        run_coroutine(r.send_message("hi"))

        message, = self.transport.sent
        self.assertEqual(str(TEST_LOCAL), message.get("from"))
        self.assertEqual(str(TEST_ROOM), message.get("to"))
        self.assertEqual("groupchat", message.get("type"))

    def test_discover_domain_services(self):
        items = run_coroutine(self.m.discover_domain_services())

        self.assertSequenceEqual(
            [
                DiscoItem(JID.fromstr("conf.example"), None),
                DiscoItem(JID.fromstr("pubsub.example"), None),
            ],
            items,
        )
        request, = self.transport.sent
        self.assertEqual("example", request.get("to"))
        self.assertEqual(str(TEST_LOCAL), request.get("from"))
        self.assertEqual("get", request.get("type"))
        self.assertEqual(ITEMS_QUERY, request[0].tag)
        self.assertEqual(0, len(self.m.session.pending))

    def test_discover_domain_services_timeout(self):
        self.server.silent.add("example")

        self.assertSequenceEqual(
            [],
            run_coroutine(self.m.discover_domain_services()),
        )
        self.assertEqual(0, len(self.m.session.pending))

    def test_discover_rooms_hosted_by(self):
        items = run_coroutine(self.m.discover_rooms_hosted_by(
            JID.fromstr("conf.example"),
        ))

        self.assertSequenceEqual(
            [
                JID.fromstr("lobby@conf.example"),
                JID.fromstr("dev@conf.example"),
            ],
            [item.jid for item in items],
        )
        self.assertEqual(["conf.example"], self._sent_to())

    def test_discover_all_hosted_items(self):
        items = run_coroutine(self.m.discover_all_hosted_items())

        self.assertSequenceEqual(
            [
                JID.fromstr("lobby@conf.example"),
                JID.fromstr("dev@conf.example"),
                JID.fromstr("news@pubsub.example"),
            ],
            [item.jid for item in items],
        )
        self.assertEqual(
            ["example", "conf.example", "pubsub.example"],
            self._sent_to(),
        )

    def test_discover_all_hosted_items_keeps_service_order(self):
        self.server.delays["conf.example"] = get_timeout(0.02)

        items = run_coroutine(self.m.discover_all_hosted_items())

        self.assertSequenceEqual(
            [
                JID.fromstr("lobby@conf.example"),
                JID.fromstr("dev@conf.example"),
                JID.fromstr("news@pubsub.example"),
            ],
            [item.jid for item in items],
        )

    def test_discover_all_hosted_items_unanswered_service_is_empty(self):
        self.server.silent.add("conf.example")

        items = run_coroutine(self.m.discover_all_hosted_items())

        self.assertSequenceEqual(
            [JID.fromstr("news@pubsub.example")],
            [item.jid for item in items],
        )

    def test_discover_all_hosted_items_failing_branch_is_isolated(self):
        self.server.failing.add("conf.example")

        with self.assertLogs("aiomuc.manager.SessionManager",
                             level="WARNING"):
            items = run_coroutine(self.m.discover_all_hosted_items())

        self.assertSequenceEqual(
            [JID.fromstr("news@pubsub.example")],
            [item.jid for item in items],
        )

    def test_discover_all_hosted_items_strict(self):
        self.server.failing.add("conf.example")

        with self.assertRaises(errors.GatherError) as ctx:
            run_coroutine(self.m.discover_all_hosted_items(strict=True))

        exc, = ctx.exception.exceptions
        self.assertIsInstance(exc, errors.StanzaSendError)
        self.assertIn("pubsub.example", self._sent_to())

    def test_discover_all_hosted_items_strict_success(self):
        items = run_coroutine(self.m.discover_all_hosted_items(strict=True))
        self.assertEqual(3, len(items))

    def test_discover_muc_services(self):
        services = run_coroutine(self.m.discover_muc_services())

        self.assertSequenceEqual([JID.fromstr("conf.example")], services)
        self.assertEqual(
            [ITEMS_QUERY, INFO_QUERY, INFO_QUERY],
            [stanza[0].tag for stanza in self.transport.sent],
        )

    def test_discover_muc_services_keeps_service_order(self):
        SERVER_FEATURES_BACKUP = dict(SERVER_FEATURES)
        SERVER_FEATURES["pubsub.example"] = [
            "http://jabber.org/protocol/muc",
        ]
        try:
            self.server.delays["conf.example"] = get_timeout(0.02)
            services = run_coroutine(self.m.discover_muc_services())
        finally:
            SERVER_FEATURES.clear()
            SERVER_FEATURES.update(SERVER_FEATURES_BACKUP)

        self.assertSequenceEqual(
            [JID.fromstr("conf.example"), JID.fromstr("pubsub.example")],
            services,
        )

    def test_discover_muc_services_skips_unanswered_and_failing(self):
        self.server.silent.add("conf.example")
        self.server.failing.add("pubsub.example")

        services = run_coroutine(self.m.discover_muc_services())

        self.assertSequenceEqual([], services)

    def test_discover_without_services(self):
        self.server.silent.add("example")

        self.assertSequenceEqual(
            [],
            run_coroutine(self.m.discover_all_hosted_items()),
        )
        self.assertSequenceEqual(
            [],
            run_coroutine(self.m.discover_muc_services()),
        )

    def test_close(self):
        r = self.m.get_room(TEST_ROOM, "alice")
        listener = unittest.mock.Mock()
        r.add_message_listener(listener)
        self.server.silent.add("example")

        async def test():
            task = asyncio.ensure_future(self.m.discover_domain_services())
            await asyncio.sleep(0)
            self.m.close()
            with self.assertRaises(asyncio.CancelledError):
                await task

        run_coroutine(test())

        self.assertEqual(0, len(self.m.rooms))
        self.assertEqual(0, len(self.m.session.pending))
        self.transport.feed(make_stanza(StanzaKind.MESSAGE, from_=TEST_ROOM))
        listener.assert_not_called()

    def _close_during_fan_out(self, coro):
        self.server.silent.update({"conf.example", "pubsub.example"})

        async def test():
            task = asyncio.ensure_future(coro)
            # wait until both per-service queries are pending
            while len(self.m.session.pending) < 2:
                await asyncio.sleep(0)
            self.m.close()
            with self.assertRaises(asyncio.CancelledError):
                await task

        run_coroutine(test())
        self.assertEqual(0, len(self.m.session.pending))

    def test_close_during_discover_all_hosted_items(self):
        self._close_during_fan_out(self.m.discover_all_hosted_items())

    def test_close_during_strict_discover_all_hosted_items(self):
        self._close_during_fan_out(
            self.m.discover_all_hosted_items(strict=True)
        )

    def test_close_during_discover_muc_services(self):
        self._close_during_fan_out(self.m.discover_muc_services())

    def test_discovery_requires_local_address(self):
        m = manager.SessionManager(TransportMock(None))

        with self.assertRaises(ConnectionError):
            run_coroutine(m.discover_domain_services())
        with self.assertRaises(ConnectionError):
            run_coroutine(m.discover_muc_services())
        with self.assertRaises(ConnectionError):
            run_coroutine(m.discover_rooms_hosted_by(
                JID.fromstr("conf.example"),
            ))

        self.assertEqual(0, len(m.session.pending))
        m.close()
