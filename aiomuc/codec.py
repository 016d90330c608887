########################################################################
# File name: codec.py
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
:mod:`~aiomuc.codec` --- Building and parsing stanzas
#####################################################

Stateless builders for the stanzas aiomuc sends and parsers for the
responses it receives.

Every builder for a stanza which expects a correlated answer returns a tuple
of the freshly minted id and the stanza. Parsers degrade to empty results
when the structure they look for is absent (this includes being passed
:data:`None`, which is what an unanswered request resolves to).

Builders
========

.. autofunction:: make_id

.. autofunction:: build_disco_items

.. autofunction:: build_disco_info

.. autofunction:: build_join_room

.. autofunction:: build_leave_room

.. autofunction:: build_group_message

Parsers
=======

.. autoclass:: DiscoItem

.. autoclass:: Participant

.. autofunction:: parse_items

.. autofunction:: parse_has_feature

.. autofunction:: parse_participant
"""

import collections
import logging
import random

from . import stanza as stanza_
from .structs import (
    JID,
    IQType,
    MessageType,
    PresenceType,
    StanzaKind,
)
from .utils import etree, namespaces, to_nmtoken


logger = logging.getLogger(__name__)

#: Number of random bytes which go into each generated stanza id.
RANDOM_ID_BYTES = 120 // 8

#: Feature suffix identifying a multi-user chat service in disco#info.
MUC_FEATURE_SUFFIX = "muc"


class DiscoItem(collections.namedtuple("DiscoItem", ["jid", "name"])):
    """
    An item of a disco#items result.

    .. attribute:: jid

       The :class:`~.JID` of the item.

    .. attribute:: name

       The human readable name of the item, or :data:`None`.
    """

    __slots__ = ()


class Participant(collections.namedtuple("Participant",
                                         ["affiliation", "role"])):
    """
    Affiliation and role of a room occupant, as announced by the room.

    Both are :class:`str`; they are empty if the room did not say.
    """

    __slots__ = ()


def make_id():
    """
    Return a fresh random stanza id.
    """
    return to_nmtoken(random.getrandbits(8*RANDOM_ID_BYTES))


def _build_disco_query(target, from_, namespace):
    id_ = make_id()
    iq = stanza_.make_stanza(
        StanzaKind.IQ,
        from_=from_,
        to=target,
        id_=id_,
        type_=IQType.GET,
    )
    etree.SubElement(
        iq,
        etree.QName(namespace, "query"),
        nsmap={None: namespace},
    )
    return id_, iq


def build_disco_items(target, from_):
    """
    Build a disco#items query for `target`.

    :param target: The entity to query.
    :type target: :class:`~.JID`
    :param from_: The address of the local entity, or :data:`None`.
    :type from_: :class:`~.JID`
    :return: The id of the request and the request stanza.
    """
    return _build_disco_query(target, from_, namespaces.xep0030_items)


def build_disco_info(target, from_):
    """
    Build a disco#info query for `target`. See :func:`build_disco_items`.
    """
    return _build_disco_query(target, from_, namespaces.xep0030_info)


def build_join_room(room, from_, nickname):
    """
    Build the presence which requests to join the room at `room` under
    `nickname`.

    :param room: Bare address of the room.
    :type room: :class:`~.JID`
    :param from_: The address of the local entity, or :data:`None`.
    :param nickname: The nickname to join with.
    :type nickname: :class:`str`
    :return: The id and the presence stanza.

    The presence is addressed to ``room/nickname`` and carries the
    ``<x xmlns="http://jabber.org/protocol/muc"/>`` marker. It is an
    available presence, so it has no ``type`` attribute.
    """
    id_ = make_id()
    presence = stanza_.make_stanza(
        StanzaKind.PRESENCE,
        from_=from_,
        to=room.replace(resource=nickname),
        id_=id_,
        type_=PresenceType.AVAILABLE,
    )
    etree.SubElement(
        presence,
        etree.QName(namespaces.xep0045_muc, "x"),
        nsmap={None: namespaces.xep0045_muc},
    )
    return id_, presence


def build_leave_room(room, from_):
    """
    Build an unavailable presence addressed to `room`.

    No id is set; no answer is correlated with this stanza.
    """
    return stanza_.make_stanza(
        StanzaKind.PRESENCE,
        from_=from_,
        to=room,
        type_=PresenceType.UNAVAILABLE,
    )


def build_group_message(from_, to, body):
    """
    Build a ``groupchat`` message with the text `body` for the room `to`.
    """
    message = stanza_.make_stanza(
        StanzaKind.MESSAGE,
        from_=from_,
        to=to,
        id_=make_id(),
        type_=MessageType.GROUPCHAT,
    )
    body_el = etree.SubElement(
        message,
        etree.QName(namespaces.client, "body"),
    )
    body_el.text = body
    return message


def _find_query(stanza, namespace):
    if stanza is None:
        return None
    return stanza.find(etree.QName(namespace, "query").text)


def parse_items(stanza):
    """
    Extract the items from a disco#items result.

    :param stanza: The result stanza, or :data:`None`.
    :return: The items in document order.
    :rtype: :class:`list` of :class:`DiscoItem`

    Items without a (valid) ``jid`` attribute are skipped.
    """
    query = _find_query(stanza, namespaces.xep0030_items)
    if query is None:
        return []

    result = []
    for item in query.iterfind(
            etree.QName(namespaces.xep0030_items, "item").text):
        raw_jid = item.get("jid")
        if raw_jid is None:
            logger.debug("skipping disco item without jid")
            continue
        try:
            jid = JID.fromstr(raw_jid, strict=False)
        except ValueError:
            logger.debug("skipping disco item with malformed jid %r",
                         raw_jid)
            continue
        result.append(DiscoItem(jid, item.get("name")))
    return result


def parse_has_feature(stanza, feature_suffix):
    """
    Return whether the disco#info result `stanza` announces a feature whose
    ``var`` ends with `feature_suffix`.

    :data:`False` is returned if there is no feature list at all.
    """
    query = _find_query(stanza, namespaces.xep0030_info)
    if query is None:
        return False

    return any(
        feature.get("var", "").endswith(feature_suffix)
        for feature in query.iterfind(
            etree.QName(namespaces.xep0030_info, "feature").text
        )
    )


def parse_participant(stanza):
    """
    Extract affiliation and role from the MUC user extension of a presence.

    :rtype: :class:`Participant`

    Missing extension, item or attributes yield empty strings.
    """
    item = None
    if stanza is not None:
        item = stanza.find("{0}x/{0}item".format(
            "{" + namespaces.xep0045_muc_user + "}"
        ))
    if item is None:
        return Participant("", "")
    return Participant(
        item.get("affiliation") or "",
        item.get("role") or "",
    )
