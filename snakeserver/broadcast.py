"""Fan-out of text messages to every listener of a game group."""

from __future__ import annotations

import queue
import threading
from collections.abc import Iterator

MAIN_QUEUE_SIZE = 128
SUBSCRIBER_QUEUE_SIZE = 128
SEND_TIMEOUT = 0.001

_POLL_INTERVAL = 0.01
_CLOSED = object()


class _Subscription:
    __slots__ = ("inbox", "closed")

    def __init__(self) -> None:
        self.inbox: queue.Queue = queue.Queue(maxsize=SUBSCRIBER_QUEUE_SIZE)
        self.closed = threading.Event()


def _close_queue(target: queue.Queue) -> None:
    """Put the end marker into ``target``, evicting items if it is full."""
    while True:
        try:
            target.put_nowait(_CLOSED)
            return
        except queue.Full:
            try:
                target.get_nowait()
            except queue.Empty:
                pass


class GroupBroadcast:
    """Delivers every broadcast message to all current listeners.

    Messages are queued on a main queue and dispatched by a background
    thread once :meth:`start` has been called. Setting the stop event given
    to :meth:`start` shuts the broadcast down and ends every listener.
    """

    def __init__(self) -> None:
        self._main: queue.Queue = queue.Queue(maxsize=MAIN_QUEUE_SIZE)
        self._stopped = threading.Event()
        self._subscriptions: list[_Subscription] = []
        self._subscriptions_lock = threading.Lock()
        self._started = False
        self._start_lock = threading.Lock()
        self._stop_lock = threading.Lock()

    @property
    def started(self) -> bool:
        with self._start_lock:
            return self._started

    @property
    def stopped(self) -> bool:
        return self._stopped.is_set()

    @property
    def subscriber_count(self) -> int:
        with self._subscriptions_lock:
            return len(self._subscriptions)

    def broadcast_message_timeout(self, message: str, timeout: float) -> bool:
        """Queue ``message``; return False if stopped or ``timeout`` seconds pass."""
        if self._stopped.is_set():
            return False
        remaining = max(timeout, 0.0)
        while True:
            step = min(remaining, _POLL_INTERVAL)
            try:
                self._main.put(message, timeout=step) if step > 0 else self._main.put_nowait(message)
                return True
            except queue.Full:
                pass
            if self._stopped.is_set():
                return False
            remaining -= step
            if remaining <= 0:
                return False

    def broadcast_message(self, message: str) -> None:
        """Queue ``message``, waiting for room until the broadcast stops."""
        while not self._stopped.is_set():
            try:
                self._main.put(message, timeout=_POLL_INTERVAL)
                return
            except queue.Full:
                continue

    def start(self, stop: threading.Event) -> None:
        """Start dispatching; a second call does nothing."""
        with self._start_lock:
            if self._started:
                return
            self._started = True

        threading.Thread(target=self._watch_stop, args=(stop,), daemon=True).start()
        threading.Thread(target=self._dispatch_loop, daemon=True).start()

    def _watch_stop(self, stop: threading.Event) -> None:
        stop.wait()
        self._stop()

    def _dispatch_loop(self) -> None:
        while not self._stopped.is_set():
            try:
                message = self._main.get(timeout=_POLL_INTERVAL)
            except queue.Empty:
                continue
            if message is _CLOSED:
                return
            self._dispatch(message)

    def _dispatch(self, message: str) -> None:
        with self._subscriptions_lock:
            subscriptions = list(self._subscriptions)
        for subscription in subscriptions:
            while not (self._stopped.is_set() or subscription.closed.is_set()):
                try:
                    subscription.inbox.put(message, timeout=_POLL_INTERVAL)
                    break
                except queue.Full:
                    continue
            if self._stopped.is_set():
                return

    def _stop(self) -> None:
        with self._stop_lock:
            if self._stopped.is_set():
                return
            self._stopped.set()
        _close_queue(self._main)
        with self._subscriptions_lock:
            for subscription in self._subscriptions:
                subscription.closed.set()
                _close_queue(subscription.inbox)
            self._subscriptions.clear()

    def _remove(self, subscription: _Subscription) -> None:
        subscription.closed.set()
        with self._subscriptions_lock:
            if subscription in self._subscriptions:
                self._subscriptions.remove(subscription)

    def listen_messages(self, stop: threading.Event, buffer: int) -> Iterator[str]:
        """Register a listener and return an iterator over its messages.

        The iterator ends when ``stop`` is set or the broadcast stops. A
        message that cannot be handed to a full output buffer within a
        short timeout is dropped.
        """
        subscription = _Subscription()
        with self._subscriptions_lock:
            self._subscriptions.append(subscription)
        output: queue.Queue = queue.Queue(maxsize=max(1, buffer))

        threading.Thread(
            target=self._forward, args=(subscription, output, stop), daemon=True
        ).start()
        return self._drain(output)

    def _forward(self, subscription: _Subscription, output: queue.Queue, stop: threading.Event) -> None:
        try:
            while not (stop.is_set() or self._stopped.is_set()):
                try:
                    message = subscription.inbox.get(timeout=_POLL_INTERVAL)
                except queue.Empty:
                    continue
                if message is _CLOSED:
                    return
                self._send(output, message, stop)
        finally:
            self._remove(subscription)
            _close_queue(output)

    def _send(self, output: queue.Queue, message: str, stop: threading.Event) -> None:
        if stop.is_set() or self._stopped.is_set():
            return
        try:
            output.put(message, timeout=SEND_TIMEOUT)
        except queue.Full:
            pass

    @staticmethod
    def _drain(output: queue.Queue) -> Iterator[str]:
        while True:
            message = output.get()
            if message is _CLOSED:
                return
            yield message