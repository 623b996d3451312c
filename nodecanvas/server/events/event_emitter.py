"""
CanvasEventEmitter: fan-out of canvas change events to registered listeners
(sockets, loggers, tests).

It also serves as the editor's notification surface: `show_message` turns a
toast into a NOTIFICATION event so the browser can display it.
"""
from __future__ import annotations

import logging
import time
from typing import Callable, List

from ...core.Interface import INotifier
from .event_types import CanvasEvent

logger = logging.getLogger(__name__)

EventListener = Callable[[CanvasEvent], None]


class CanvasEventEmitter(INotifier):
    def __init__(self) -> None:
        self._listeners: List[EventListener] = []

    # ------------------------------------------------------------------
    # Listener registration
    # ------------------------------------------------------------------

    def on_event(self, callback: EventListener) -> None:
        """Register a callback that receives every emitted canvas event."""
        self._listeners.append(callback)

    def remove_listener(self, callback: EventListener) -> None:
        if callback in self._listeners:
            self._listeners.remove(callback)

    # ------------------------------------------------------------------
    # Emit
    # ------------------------------------------------------------------

    def fire(self, payload: CanvasEvent) -> None:
        """Stamp the payload with a millisecond timestamp and broadcast it."""
        if "ts" not in payload:
            payload["ts"] = _now_ms()
        for cb in list(self._listeners):
            try:
                cb(payload)
            except Exception:
                # a broken listener must not stop the others
                logger.exception("canvas event listener failed for %s", payload.get("type"))

    def show_message(self, type: str, title: str, message: str = "") -> None:
        logger.info("notification [%s] %s: %s", type, title, message)
        self.fire({"type": "NOTIFICATION", "level": type, "title": title, "message": message})


# ---------------------------------------------------------------------------
# Module-level singleton
# ---------------------------------------------------------------------------

global_events = CanvasEventEmitter()


# ---------------------------------------------------------------------------
# Helper
# ---------------------------------------------------------------------------

def _now_ms() -> int:
    return int(time.time() * 1000)
