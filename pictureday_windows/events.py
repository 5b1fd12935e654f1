from __future__ import annotations

import logging
import threading
from typing import Callable

logger = logging.getLogger(__name__)

Listener = Callable[[], None]


class Signal:
    """Payload-free notification channel.

    Listeners run on the emitting thread and are expected to hand real work
    off (for example to a UI event queue). A failing listener is logged and
    does not stop delivery to the others.
    """

    def __init__(self, name: str):
        self.name = name
        self._listeners: list[Listener] = []
        self._lock = threading.Lock()

    def connect(self, listener: Listener) -> None:
        with self._lock:
            if listener not in self._listeners:
                self._listeners.append(listener)

    def disconnect(self, listener: Listener) -> None:
        with self._lock:
            try:
                self._listeners.remove(listener)
            except ValueError:
                pass

    @property
    def listener_count(self) -> int:
        with self._lock:
            return len(self._listeners)

    def emit(self) -> None:
        with self._lock:
            listeners = list(self._listeners)

        for listener in listeners:
            try:
                listener()
            except Exception:  # noqa: BLE001
                logger.exception("Listener for %s failed", self.name)
