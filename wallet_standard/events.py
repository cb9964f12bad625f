"""
Publish/subscribe registry for wallet lifecycle events.
"""
import itertools
import logging
import threading
from typing import Callable, Dict, Union

from .interfaces import WalletEvent

logger = logging.getLogger(__name__)

Listener = Callable[[], None]
Unsubscribe = Callable[[], None]


class EventHub:
    """
    Maps each event kind to its listeners, in registration order.

    emit() dispatches over a snapshot of the listeners taken when it starts,
    so subscribing or unsubscribing from inside a listener only affects later
    emits.

    Usage:
        hub = EventHub()
        off = hub.subscribe(WalletEvent.ACCOUNTS_CHANGED, refresh)
        hub.emit(WalletEvent.ACCOUNTS_CHANGED)
        off()
    """

    def __init__(self):
        self._lock = threading.Lock()
        self._tokens = itertools.count()
        self._listeners: Dict[WalletEvent, Dict[int, Listener]] = {event: {} for event in WalletEvent}

    @staticmethod
    def _event(event: Union[WalletEvent, str]) -> WalletEvent:
        try:
            return WalletEvent(event)
        except ValueError:
            raise ValueError(f"Unknown wallet event: {event!r}") from None

    def subscribe(self, event: Union[WalletEvent, str], listener: Listener) -> Unsubscribe:
        """
        Register a listener.

        Returns:
            A function that removes this registration. Calling it again is a no-op.
        """
        event = self._event(event)
        if not callable(listener):
            raise TypeError("listener must be callable")

        with self._lock:
            token = next(self._tokens)
            self._listeners[event][token] = listener

        registry = self._listeners[event]
        lock = self._lock

        def unsubscribe() -> None:
            with lock:
                registry.pop(token, None)

        return unsubscribe

    def emit(self, event: Union[WalletEvent, str]) -> int:
        """
        Call every listener registered for the event.

        A listener that raises is logged and the rest still run.

        Returns:
            Number of listeners called
        """
        event = self._event(event)
        with self._lock:
            snapshot = list(self._listeners[event].values())

        for listener in snapshot:
            try:
                listener()
            except Exception:
                logger.exception("Listener %r for %s raised", listener, event.value)
        return len(snapshot)

    def listener_count(self, event: Union[WalletEvent, str]) -> int:
        event = self._event(event)
        with self._lock:
            return len(self._listeners[event])

    def clear(self):
        with self._lock:
            for listeners in self._listeners.values():
                listeners.clear()

    def __repr__(self):
        counts = {event.value: len(listeners) for event, listeners in self._listeners.items()}
        return f"<EventHub listeners={counts}>"
