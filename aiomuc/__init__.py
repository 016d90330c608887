########################################################################
# File name: __init__.py
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
Version information
###################

There are two ways to obtain the imported version of the :mod:`aiomuc`
package:

.. autodata:: __version__

.. data:: version

   Alias of :data:`__version__`.

.. autodata:: version_info

Overview
########

.. autosummary::
    :nosignatures:

    aiomuc.SessionManager
    aiomuc.Room
    aiomuc.Session
    aiomuc.EventDispatcher
    aiomuc.JID

A :class:`SessionManager` is created for a connection which implements
:class:`AbstractTransport`. It hands out :class:`Room` objects and runs the
service discovery queries used to find rooms:

.. code-block:: python

   manager = aiomuc.SessionManager.get_instance(connection)
   room = manager.get_room("room@conference.example", "alice")
   room.add_message_listener(print)
   await room.join()

"""
from ._version import version_info, __version__, version  # NOQA: F401

#: The imported :mod:`aiomuc` version as a tuple.
#:
#: The components of the tuple are, in order: `major version`, `minor version`,
#: `patch level`, and `pre-release identifier`.
version_info = version_info

#: The imported :mod:`aiomuc` version as a string.
#:
#: The version number is dot-separated; in pre-release or development versions,
#: the version number is followed by a hypen-separated pre-release identifier.
__version__ = __version__

from .errors import StanzaSendError, GatherError  # NOQA: F401
from .structs import (  # NOQA: F401
    JID,
    EventType,
    IQType,
    MessageType,
    PresenceType,
    StanzaKind,
)
from .callbacks import EventDispatcher  # NOQA: F401
from .codec import DiscoItem, Participant  # NOQA: F401
from .session import (  # NOQA: F401
    AbstractTransport,
    PendingRequest,
    Session,
)
from .room import Room, RoomState  # NOQA: F401
from .manager import SessionManager  # NOQA: F401
