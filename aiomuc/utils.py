########################################################################
# File name: utils.py
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
:mod:`~aiomuc.utils` --- Internal utils
=======================================

Miscellaneous utilities used throughout the aiomuc codebase.

.. data:: namespaces

   Collects the XML namespaces of the protocol extensions aiomuc speaks.
   Each namespace is given a shortname and its value is the namespace
   string.

.. autoclass:: Namespaces

.. autofunction:: to_nmtoken

.. autofunction:: gather_reraise_multi
"""

import asyncio
import base64

import lxml.etree as etree

import aiomuc.errors

__all__ = [
    "etree",
    "namespaces",
]


class Namespaces:
    """
    Manage short-hands for XML namespaces.

    Instances of this class may be used to assign mnemonic short-hands
    to XML namespaces, for example:

    .. code-block:: python

        namespaces = Namespaces()
        namespaces.foo = "urn:example:foo"

    The class ensures that only one short-hand is bound to each namespace,
    that no short-hand is redefined to point to a different namespace and
    that short-hands cannot be deleted. Violations raise :class:`ValueError`
    and :class:`AttributeError` respectively.

    The defined short-hands MUST NOT start with an underscore.
    """

    def __init__(self):
        self._all_namespaces = {}

    def __setattr__(self, attr, value):
        if not attr.startswith("_"):
            try:
                existing_attr = self._all_namespaces[value]
                if attr != existing_attr:
                    raise ValueError(
                        "namespace {} already defined as {}".format(
                            value,
                            existing_attr,
                        )
                    )
            except KeyError:
                try:
                    if getattr(self, attr) != value:
                        raise ValueError("inconsistent namespace redefinition")
                except AttributeError:
                    pass
            self._all_namespaces[value] = attr
        super().__setattr__(attr, value)

    def __delattr__(self, attr):
        if not attr.startswith("_"):
            raise AttributeError("deleting short-hands is prohibited")
        super().__delattr__(attr)


namespaces = Namespaces()
namespaces.client = "jabber:client"
namespaces.xep0030_items = "http://jabber.org/protocol/disco#items"
namespaces.xep0030_info = "http://jabber.org/protocol/disco#info"
namespaces.xep0045_muc = "http://jabber.org/protocol/muc"
namespaces.xep0045_muc_user = "http://jabber.org/protocol/muc#user"


def to_nmtoken(rand_token):
    """
    Convert a (random) token given as raw :class:`bytes` or
    :class:`int` to a valid NMTOKEN
    <https://www.w3.org/TR/xml/#NT-Nmtoken>.

    The encoding as a valid nmtoken is injective, ensuring that two
    different inputs cannot yield the same token.
    """

    if isinstance(rand_token, int):
        rand_token = rand_token.to_bytes(
            (rand_token.bit_length() + 7) // 8,
            "little"
        )
        e = base64.urlsafe_b64encode(rand_token).rstrip(b"=").decode("ascii")
        return ":" + e

    if isinstance(rand_token, bytes):
        e = base64.urlsafe_b64encode(rand_token).rstrip(b"=").decode("ascii")
        if not e:
            e = "."
        return e

    raise TypeError("rand_token must be a bytes or int instance")


async def gather_reraise_multi(*fut_or_coros, message="gather_reraise_multi"):
    """
    Wrap all the arguments `fut_or_coros` in futures with
    :func:`asyncio.ensure_future` and wait until all of them are finished or
    failed.

    :param fut_or_coros: the futures or coroutines to wait for
    :param message: the message included with the raised
        :class:`aiomuc.errors.GatherError` in the case of failure.
    :type message: :class:`str`
    :returns: the list of the results of the arguments, in argument order.
    :raises aiomuc.errors.GatherError: if any of the futures or
        coroutines fail.

    Siblings of a failing branch are never cancelled; all of them run to
    completion before the exceptions are bundled and raised.
    """
    todo = [asyncio.ensure_future(fut_or_coro) for fut_or_coro in fut_or_coros]
    if not todo:
        return []

    await asyncio.wait(todo)
    results = []
    exceptions = []
    for fut in todo:
        if fut.exception() is not None:
            exceptions.append(fut.exception())
        else:
            results.append(fut.result())
    if exceptions:
        raise aiomuc.errors.GatherError(message, exceptions)
    return results
