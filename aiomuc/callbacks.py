########################################################################
# File name: callbacks.py
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
:mod:`~aiomuc.callbacks` -- Signals and the event dispatcher
############################################################

This module provides facilities for objects to provide signals to which other
objects can connect, and the :class:`EventDispatcher` which multiplexes a
closed set of named events onto such signals.

Descriptor vs. ad-hoc
=====================

Descriptors can be used as class attributes and will create ad-hoc signals
dynamically for each instance:

.. code-block:: python

   class Emitter:
       on_event = callbacks.Signal()

   def handler():
       pass

   emitter1 = Emitter()
   emitter2 = Emitter()
   emitter1.on_event.connect(handler)

   emitter1.on_event()  # calls `handler`
   emitter2.on_event()  # does not call `handler`

Connections are permanent: a listener stays connected until it is
explicitly disconnected, even if it raises.

.. autoclass:: Signal

.. autoclass:: AdHocSignal

.. autoclass:: EventDispatcher
"""

import abc
import collections
import functools
import logging
import warnings
import weakref

from .structs import EventType


logger = logging.getLogger(__name__)


class AbstractAdHocSignal:
    def __init__(self):
        super().__init__()
        self._connections = collections.OrderedDict()
        self.logger = logger

    def _connect(self, wrapper):
        token = object()
        self._connections[token] = wrapper
        return token

    def disconnect(self, token):
        """
        Disconnect the connection identified by `token`. This never raises,
        even if an invalid `token` is passed.
        """
        try:
            del self._connections[token]
        except KeyError:
            pass

    def __len__(self):
        return len(self._connections)


class AdHocSignal(AbstractAdHocSignal):
    """
    An ad-hoc signal is a single emitter. This is where callables are connected
    to, using the :meth:`connect` method of the :class:`AdHocSignal`.

    .. automethod:: fire

    .. automethod:: connect

    .. automethod:: disconnect

    .. attribute:: logger

       This may be a :class:`logging.Logger` instance to allow the signal to
       log errors to a specific logger instead of the default logger
       (``aiomuc.callbacks``).

    The only way callables can be connected to an ad-hoc signal:

    .. attribute:: STRONG

       Keep a strong reference to the callable and call it directly, thus
       blocking the emission of the signal. The return value of the
       callable is ignored.
    """

    @classmethod
    def STRONG(cls, f):
        if not callable(f):
            raise TypeError("must be callable, got {!r}".format(f))
        return functools.partial(cls._strong_wrapper, f)

    @staticmethod
    def _strong_wrapper(f, args, kwargs):
        f(*args, **kwargs)
        return True

    def connect(self, f, mode=None):
        """
        Connect an object `f` to the signal. The type the object needs to have
        depends on `mode`, but usually it needs to be a callable.

        :meth:`connect` returns an opaque token which can be used with
        :meth:`disconnect` to disconnect the object from the signal.

        The default value for `mode` is :attr:`STRONG`.
        """

        mode = mode or self.STRONG
        self.logger.debug("connecting %r with mode %r", f, mode)
        return self._connect(mode(f))

    def fire(self, *args, **kwargs):
        """
        Emit the signal, calling all connected objects in-line with the given
        arguments and in the order they were registered.

        :class:`AdHocSignal` provides full isolation with respect to
        exceptions. If a connected listener raises an exception, the other
        listeners are executed as normal and the raising listener stays
        connected. The exception is logged to :attr:`logger` and *not*
        re-raised, so that the caller of the signal is also not affected.

        Instead of calling :meth:`fire` explicitly, the ad-hoc signal object
        itself can be called, too.
        """
        for token, wrapper in list(self._connections.items()):
            try:
                keep = wrapper(args, kwargs)
            except Exception:
                self.logger.exception("listener attached to signal raised")
                keep = True
            if not keep:
                del self._connections[token]

    __call__ = fire


class AbstractSignal(metaclass=abc.ABCMeta):
    def __init__(self, *, doc=None):
        super().__init__()
        self.__doc__ = doc
        self._instances = weakref.WeakKeyDictionary()

    @classmethod
    @abc.abstractmethod
    def make_adhoc_signal(cls):
        pass

    def __get__(self, instance, owner):
        if instance is None:
            return self
        try:
            return self._instances[instance]
        except KeyError:
            new = self.make_adhoc_signal()
            self._instances[instance] = new
            return new

    def __set__(self, instance, value):
        raise AttributeError("cannot override Signal attribute")

    def __delete__(self, instance):
        raise AttributeError("cannot override Signal attribute")


class Signal(AbstractSignal):
    """
    A descriptor which returns per-instance :class:`AdHocSignal` objects on
    attribute access.

    Example use:

    .. code-block:: python

       class Foo:
           on_event = Signal()

       f = Foo()
       assert isinstance(f.on_event, AdHocSignal)
       assert f.on_event is f.on_event
       assert Foo().on_event is not f.on_event
    """

    @classmethod
    def make_adhoc_signal(cls):
        return AdHocSignal()


class EventDispatcher:
    """
    Publish/subscribe hub for the closed set of :class:`~.EventType` events.

    :param allowed_events: The events which may be subscribed to. Defaults to
        all members of :class:`~.EventType`.
    :type allowed_events: iterable of :class:`~.EventType`
    :param logger: Logger to report rejected subscriptions and failing
        subscribers to.
    :type logger: :class:`logging.Logger`

    Each event is backed by an :class:`AdHocSignal`, so subscribers are
    called in subscription order, and a subscriber which raises neither
    stops the remaining subscribers nor reaches the publisher, and it stays
    subscribed.

    .. automethod:: subscribe

    .. automethod:: unsubscribe

    .. automethod:: publish
    """

    def __init__(self, allowed_events=None, *, logger=None):
        super().__init__()
        if allowed_events is None:
            allowed_events = EventType
        self._allowed_events = frozenset(allowed_events)
        for event in self._allowed_events:
            if not isinstance(event, EventType):
                raise TypeError(
                    "allowed events must be EventType members, "
                    "got {!r}".format(event)
                )
        self._logger = logger or logging.getLogger(__name__)
        self._signals = {}

    @property
    def allowed_events(self):
        """
        The :class:`frozenset` of events which may be subscribed to.
        """
        return self._allowed_events

    def _coerce_event(self, event, warn=True):
        if isinstance(event, EventType):
            return event
        if not isinstance(event, str):
            return None
        try:
            coerced = EventType(event)
        except ValueError:
            return None
        if warn:
            warnings.warn(
                "event names should be EventType members, got {!r}".format(
                    event
                ),
                DeprecationWarning,
                stacklevel=3,
            )
        return coerced

    def subscribe(self, event, callback):
        """
        Subscribe `callback` to `event`.

        :param event: The event to subscribe to.
        :type event: :class:`~.EventType`
        :param callback: Callable invoked with the arguments of each
            :meth:`publish` of `event`.
        :return: A token for :meth:`unsubscribe`, or :data:`None` if the
            subscription was rejected.

        A subscription is rejected if `event` is not in
        :attr:`allowed_events` or `callback` is not callable. Rejections are
        logged and never raise.

        A :class:`str` naming an allowed event is accepted for compatibility,
        but emits a :class:`DeprecationWarning`.
        """
        coerced = self._coerce_event(event)
        if coerced is None or coerced not in self._allowed_events:
            self._logger.warning("%r is not a valid event", event)
            return None
        if not callable(callback):
            self._logger.warning("invalid callback for %s: %r",
                                 coerced, callback)
            return None

        try:
            signal = self._signals[coerced]
        except KeyError:
            signal = AdHocSignal()
            signal.logger = self._logger
            self._signals[coerced] = signal

        return signal.connect(callback)

    def unsubscribe(self, event, token):
        """
        Remove the subscription identified by `token` from `event`. This
        never raises.
        """
        try:
            signal = self._signals[self._coerce_event(event, warn=False)]
        except KeyError:
            return
        signal.disconnect(token)

    def publish(self, event, *args):
        """
        Invoke every subscriber of `event` with `args`.

        Publishing an event nobody subscribed to (including events outside
        the allow-list) is a no-op.
        """
        try:
            signal = self._signals[self._coerce_event(event, warn=False)]
        except KeyError:
            return
        signal.fire(*args)
