########################################################################
# File name: errors.py
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
:mod:`~aiomuc.errors` --- Exception classes
###########################################

Unanswered requests are not errors: they resolve to :data:`None` (see
:meth:`aiomuc.session.Session.request`). Invalid arguments are reported with
the builtin :class:`TypeError` and :class:`ValueError`.

.. autoclass:: StanzaSendError

.. autoclass:: GatherError
"""


class StanzaSendError(ConnectionError):
    """
    The transport failed to write a stanza.

    The exception raised by the transport is available as
    :attr:`__cause__`.

    .. attribute:: stanza

       The stanza which could not be sent.
    """

    def __init__(self, stanza, message=None):
        super().__init__(message or "failed to send stanza")
        self.stanza = stanza


class GatherError(RuntimeError):
    """
    Describe an error situation which has been caused by the occurrence
    of multiple other `exceptions`.

    The `message` shall be descriptive and will be prepended to a concatenation
    of the error messages of the given `exceptions`.
    """

    def __init__(self, message, exceptions):
        flattened_exceptions = []
        for exc in exceptions:
            if hasattr(exc, "exceptions"):
                flattened_exceptions.extend(exc.exceptions)
            else:
                flattened_exceptions.append(exc)

        super().__init__(
            "{}: multiple errors: {}".format(
                message,
                ", ".join(map(str, flattened_exceptions))
            )
        )
        self.exceptions = flattened_exceptions
