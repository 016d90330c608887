########################################################################
# File name: structs.py
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
:mod:`~aiomuc.structs` --- Simple data holders for common data types
####################################################################

These classes provide a way to hold structured data which is commonly
encountered when dealing with stanzas and rooms.

Jabber IDs
==========

.. autoclass:: JID(localpart, domain, resource, *, strict=True)

Enumerations
============

.. autoclass:: StanzaKind

.. autoclass:: IQType

.. autoclass:: MessageType

.. autoclass:: PresenceType

.. autoclass:: EventType
"""

import collections
import enum
import unicodedata


_LOCALPART_PROHIBITED = frozenset(" \"&'/:<>@")


def _check_localpart(localpart):
    for c in localpart:
        if c in _LOCALPART_PROHIBITED:
            raise ValueError(
                "prohibited character in localpart: {!r}".format(c)
            )
        if unicodedata.category(c) in ("Cc", "Zs", "Zl", "Zp"):
            raise ValueError(
                "prohibited character in localpart: {!r}".format(c)
            )


class StanzaKind(enum.Enum):
    """
    The three kinds of stanzas defined by :rfc:`6120`. The value of each
    member is the local name of the stanza element.

    .. attribute:: IQ

    .. attribute:: MESSAGE

    .. attribute:: PRESENCE
    """

    IQ = "iq"
    MESSAGE = "message"
    PRESENCE = "presence"


class IQType(enum.Enum):
    """
    Enumeration for the :rfc:`6120` specified IQ stanza types.

    .. autoattribute:: is_response
    """

    GET = "get"
    SET = "set"
    ERROR = "error"
    RESULT = "result"

    @property
    def is_response(self):
        """
        True for the response types (:attr:`RESULT` and :attr:`ERROR`), false
        otherwise.
        """
        return self == IQType.RESULT or self == IQType.ERROR


class MessageType(enum.Enum):
    """
    Enumeration for the :rfc:`6121` specified Message stanza types.

    Only :attr:`GROUPCHAT` is ever sent by aiomuc; the others are listed so
    that inbound messages can be classified.
    """

    NORMAL = "normal"
    CHAT = "chat"
    GROUPCHAT = "groupchat"
    HEADLINE = "headline"
    ERROR = "error"


class PresenceType(enum.Enum):
    """
    Enumeration for the :rfc:`6121` specified Presence stanza types.

    .. attribute:: AVAILABLE

       The ``type`` attribute is absent. This is the presence an occupant
       sends while it is in a room.

    .. attribute:: UNAVAILABLE

       The entity is no longer available; in a room, the occupant left.
    """

    AVAILABLE = None
    UNAVAILABLE = "unavailable"
    ERROR = "error"
    PROBE = "probe"
    SUBSCRIBE = "subscribe"
    SUBSCRIBED = "subscribed"
    UNSUBSCRIBE = "unsubscribe"
    UNSUBSCRIBED = "unsubscribed"


class EventType(enum.Enum):
    """
    The closed set of events a :class:`~aiomuc.callbacks.EventDispatcher`
    knows about.

    :attr:`STANZA` carries every inbound stanza which was neither routed to
    a room nor consumed by a pending request. The remaining members mirror
    the lifecycle of the underlying connection and are published by the
    transport, if it chooses to.
    """

    ERROR = "error"
    OFFLINE = "offline"
    ONLINE = "online"
    STANZA = "stanza"
    CONNECTING = "connecting"
    CONNECT = "connect"
    OPENING = "opening"
    OPEN = "open"
    CLOSING = "closing"
    CLOSE = "close"
    DISCONNECTING = "disconnecting"
    DISCONNECT = "disconnect"


class JID(collections.namedtuple("JID", ["localpart", "domain", "resource"])):
    """
    Represent a :term:`Jabber ID (JID) <Jabber ID>`.

    To construct a :class:`JID`, either use the actual constructor, or use the
    :meth:`fromstr` class method.

    :param localpart: The part in front of the ``@`` of the JID, or
        :data:`None` if the localpart shall be omitted (which is different from
        it being empty, which would be invalid).
    :type localpart: :class:`str` or :data:`None`
    :param domain: The domain of the JID. This is the only mandatory part of
        a JID.
    :type domain: :class:`str`
    :param resource: The resource part of the JID or :data:`None` to omit the
        resource part.
    :type resource: :class:`str` or :data:`None`
    :param strict: Enable strict validation of the localpart
    :type strict: :class:`bool`
    :raises ValueError: if the JID composed of the given parts is invalid

    The localpart and the domain are folded to lower case, so that two JIDs
    which only differ in the case of those parts compare equal. The resource
    is kept as-is.

    If `strict` is true, characters which are not allowed in a localpart
    (whitespace, control characters and ``"&'/:<>@``) are rejected. Addresses
    received from the network should be parsed with `strict` set to false.

    :class:`JID` objects are immutable. To obtain a JID object with a changed
    property, use one of the following methods:

    .. automethod:: bare

    .. automethod:: replace(*, [localpart], [domain], [resource])
    """

    __slots__ = []

    def __new__(cls, localpart, domain, resource, *, strict=True):
        if localpart:
            localpart = localpart.lower()
            if strict:
                _check_localpart(localpart)
        if domain is not None:
            domain = domain.lower().rstrip(".")

        if not domain:
            raise ValueError("domain must not be empty or None")
        if len(domain.encode("utf-8")) > 1023:
            raise ValueError("domain too long")
        if localpart is not None:
            if not localpart:
                raise ValueError("localpart must not be empty")
            if len(localpart.encode("utf-8")) > 1023:
                raise ValueError("localpart too long")
        if resource is not None:
            if not resource:
                raise ValueError("resource must not be empty")
            if len(resource.encode("utf-8")) > 1023:
                raise ValueError("resource too long")

        return super().__new__(cls, localpart, domain, resource)

    def replace(self, **kwargs):
        """
        Construct a new :class:`JID` object, using the values of the current
        JID. Use the arguments to override specific attributes on the new
        object.

        :raises: See :class:`JID`
        :return: A new :class:`JID` object with the corresponding
            substitutions performed.
        """

        strict = kwargs.pop("strict", True)

        parts = dict(self._asdict())
        for key in ("localpart", "domain", "resource"):
            try:
                parts[key] = kwargs.pop(key)
            except KeyError:
                pass

        if kwargs:
            raise TypeError("replace() got an unexpected keyword argument"
                            " {!r}".format(
                                next(iter(kwargs))))

        return type(self)(parts["localpart"],
                          parts["domain"],
                          parts["resource"],
                          strict=strict)

    def __str__(self):
        result = self.domain
        if self.localpart:
            result = self.localpart + "@" + result
        if self.resource:
            result += "/" + self.resource
        return result

    def bare(self):
        """
        Create a copy of the :class:`JID` which is bare.

        :return: This JID with the :attr:`resource` set to :data:`None`.
        :rtype: :class:`JID`
        """
        if self.resource is None:
            return self
        return self.replace(resource=None, strict=False)

    @property
    def is_bare(self):
        """
        :data:`True` if the JID is bare, i.e. has an empty :attr:`resource`
        part.
        """
        return not self.resource

    @classmethod
    def fromstr(cls, s, *, strict=True):
        """
        Construct a JID out of a string containing it.

        :param s: The string to parse.
        :type s: :class:`str`
        :param strict: Whether to enable strict parsing.
        :type strict: :class:`bool`
        :raises: See :class:`JID`
        :return: The parsed JID
        :rtype: :class:`JID`
        """
        nodedomain, sep, resource = s.partition("/")
        if not sep:
            resource = None

        localpart, sep, domain = nodedomain.partition("@")
        if not sep:
            domain = localpart
            localpart = None
        return cls(localpart, domain, resource, strict=strict)
