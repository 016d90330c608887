########################################################################
# File name: stanza.py
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
:mod:`~aiomuc.stanza` --- Stanza element accessors
##################################################

Stanzas are plain :mod:`lxml.etree` elements. They are treated as read-only
values: only :mod:`aiomuc.codec` creates new ones (through
:func:`make_stanza`), everything else reads them through the accessors in
this module.

.. autofunction:: make_stanza

.. autofunction:: kind_of

.. autofunction:: get_from

.. autofunction:: get_to

.. autofunction:: get_id

.. autofunction:: get_type
"""

import logging

from .structs import JID, StanzaKind
from .utils import etree, namespaces


logger = logging.getLogger(__name__)


def make_stanza(kind, *, from_=None, to=None, id_=None, type_=None):
    """
    Create a new, childless stanza element in the ``jabber:client``
    namespace.

    :param kind: The kind of the stanza.
    :type kind: :class:`~.StanzaKind`
    :param from_: Value for the ``from`` attribute, omitted if :data:`None`.
    :param to: Value for the ``to`` attribute, omitted if :data:`None`.
    :param id_: Value for the ``id`` attribute, omitted if :data:`None`.
    :param type_: Value for the ``type`` attribute, omitted if :data:`None`.
        Enumeration members are converted to their value.
    :rtype: :class:`lxml.etree._Element`
    """
    el = etree.Element(
        etree.QName(namespaces.client, kind.value),
        nsmap={None: namespaces.client},
    )
    if type_ is not None and hasattr(type_, "value"):
        type_ = type_.value
    for name, value in (("from", from_),
                        ("to", to),
                        ("id", id_),
                        ("type", type_)):
        if value is not None:
            el.set(name, str(value))
    return el


def kind_of(stanza):
    """
    Return the :class:`~.StanzaKind` of `stanza`, or :data:`None` if the
    element is not a stanza.

    The namespace of the element is not checked, so that elements from
    streams in other default namespaces are classified, too.
    """
    try:
        return StanzaKind(etree.QName(stanza).localname)
    except ValueError:
        return None


def _get_jid(stanza, attr):
    value = stanza.get(attr)
    if value is None:
        return None
    try:
        return JID.fromstr(value, strict=False)
    except ValueError:
        logger.debug("ignoring malformed %s address %r", attr, value)
        return None


def get_from(stanza):
    """
    Return the sender of `stanza` as :class:`~.JID`.

    :data:`None` is returned if the attribute is absent or malformed.
    """
    return _get_jid(stanza, "from")


def get_to(stanza):
    """
    Return the recipient of `stanza` as :class:`~.JID`, or :data:`None`.
    """
    return _get_jid(stanza, "to")


def get_id(stanza):
    return stanza.get("id")


def get_type(stanza):
    """
    Return the raw ``type`` attribute of `stanza` (:data:`None` if absent).
    """
    return stanza.get("type")
