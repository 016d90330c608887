########################################################################
# File name: testutils.py
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
This module contains utilities used for testing aiomuc code: an in-memory
transport and helpers to build the stanzas a server would send.
"""
import asyncio
import logging
import os
import time
import unittest
import unittest.mock

import aiomuc.callbacks as callbacks
import aiomuc.stanza as stanza_

from aiomuc.session import AbstractTransport
from aiomuc.structs import IQType, StanzaKind
from aiomuc.utils import etree, namespaces


logger = logging.getLogger(__name__)


GLOBAL_TIMEOUT_FACTOR = 1.0

_monotonic_info = time.get_clock_info("monotonic")
# coarse monotonic clocks need more slack
GLOBAL_TIMEOUT_FACTOR *= max(_monotonic_info.resolution, 0.0015) / 0.0015

if os.environ.get("CI") == "true":
    GLOBAL_TIMEOUT_FACTOR *= 4
    logger.debug("increasing GLOBAL_TIMEOUT_FACTOR for CI")


logger.debug("using GLOBAL_TIMEOUT_FACTOR = %.3f", GLOBAL_TIMEOUT_FACTOR)


def get_timeout(base):
    return base * GLOBAL_TIMEOUT_FACTOR


DEFAULT_TIMEOUT = get_timeout(1.0)

_loop = None


def get_loop():
    """
    Return the event loop shared by all tests, creating it on first use.
    """
    global _loop
    if _loop is None or _loop.is_closed():
        _loop = asyncio.new_event_loop()
    return _loop


def run_coroutine(coroutine, timeout=DEFAULT_TIMEOUT, loop=None):
    if not loop:
        loop = get_loop()
    return loop.run_until_complete(
        asyncio.wait_for(
            coroutine,
            timeout=timeout))


def make_listener(instance):
    """
    Return a :class:`unittest.mock.Mock` which has children connected to each
    :class:`aiomuc.callbacks.Signal` of `instance`.

    The children are named exactly like the signals.
    """
    result = unittest.mock.Mock([])
    names = {
        name
        for type_ in type(instance).__mro__
        for name in type_.__dict__
    }
    for name in names:
        signal = getattr(instance, name)
        if not isinstance(signal, callbacks.AdHocSignal):
            continue
        cb = unittest.mock.Mock()
        setattr(result, name, cb)
        cb.return_value = None
        signal.connect(cb)
    return result


class CoroutineMock(unittest.mock.Mock):
    delay = 0

    async def __call__(self, *args, **kwargs):
        result = super().__call__(*args, **kwargs)
        await asyncio.sleep(self.delay)
        return result


class TransportMock(AbstractTransport):
    """
    In-memory :class:`~.AbstractTransport`.

    :param local_jid: The address returned by :meth:`own_address`.
    :param responder: Optional callable which is invoked with each sent
        stanza and returns an iterable of stanzas to deliver in reply.

    .. attribute:: sent

       List of all stanzas passed to :meth:`send`, in order.

    .. attribute:: fail_with

       If not :data:`None`, :meth:`send` raises this exception instead of
       recording the stanza.

    Replies from the responder are delivered through the event loop, after
    :meth:`send` has returned, like a real server's replies would be.
    """

    def __init__(self, local_jid, *, responder=None):
        super().__init__()
        self.local_jid = local_jid
        self.responder = responder
        self.fail_with = None
        self.sent = []
        self._handler = None

    async def send(self, stanza):
        if self.fail_with is not None:
            raise self.fail_with
        self.sent.append(stanza)
        if self.responder is None:
            return
        loop = asyncio.get_running_loop()
        for response in self.responder(stanza) or ():
            loop.call_soon(self.feed, response)

    def on_stanza(self, handler):
        self._handler = handler

    def own_address(self):
        return self.local_jid

    def feed(self, stanza):
        """
        Deliver `stanza` to the registered inbound handler.
        """
        if self._handler is None:
            raise RuntimeError("no inbound handler registered")
        self._handler(stanza)


def make_iq_response(request, type_=IQType.RESULT):
    """
    Build an (empty) response to the IQ `request`, addressed back to its
    sender.
    """
    return stanza_.make_stanza(
        StanzaKind.IQ,
        from_=request.get("to"),
        to=request.get("from"),
        id_=request.get("id"),
        type_=type_,
    )


def make_disco_items_result(request, jids):
    """
    Build a disco#items result for `request` listing `jids`.
    """
    iq = make_iq_response(request)
    query = etree.SubElement(
        iq,
        etree.QName(namespaces.xep0030_items, "query"),
        nsmap={None: namespaces.xep0030_items},
    )
    for jid in jids:
        item = etree.SubElement(
            query,
            etree.QName(namespaces.xep0030_items, "item"),
        )
        item.set("jid", str(jid))
    return iq


def make_disco_info_result(request, features):
    """
    Build a disco#info result for `request` listing `features`.
    """
    iq = make_iq_response(request)
    query = etree.SubElement(
        iq,
        etree.QName(namespaces.xep0030_info, "query"),
        nsmap={None: namespaces.xep0030_info},
    )
    for var in features:
        feature = etree.SubElement(
            query,
            etree.QName(namespaces.xep0030_info, "feature"),
        )
        feature.set("var", var)
    return iq


def make_occupant_presence(from_, to, *,
                           affiliation=None,
                           role=None,
                           type_=None):
    """
    Build presence from the occupant `from_` as a room would send it.

    The MUC user extension is only added if `affiliation` or `role` is
    given.
    """
    presence = stanza_.make_stanza(
        StanzaKind.PRESENCE,
        from_=from_,
        to=to,
        type_=type_,
    )
    if affiliation is not None or role is not None:
        x = etree.SubElement(
            presence,
            etree.QName(namespaces.xep0045_muc_user, "x"),
            nsmap={None: namespaces.xep0045_muc_user},
        )
        item = etree.SubElement(
            x,
            etree.QName(namespaces.xep0045_muc_user, "item"),
        )
        if affiliation is not None:
            item.set("affiliation", affiliation)
        if role is not None:
            item.set("role", role)
    return presence
