"""
Socket.IO server.

Uses python-socketio in ASGI mode so it can wrap FastAPI.
`create_socket_app(fastapi_app)` returns the composite ASGI application to
pass to uvicorn.
"""
from __future__ import annotations

import asyncio
import logging
from typing import Any, Dict

import socketio

from .event_emitter import global_events

logger = logging.getLogger(__name__)

# ---------------------------------------------------------------------------
# Socket.IO instance (async, ASGI mode)
# ---------------------------------------------------------------------------

sio = socketio.AsyncServer(
    async_mode="asgi",
    cors_allowed_origins="*",
    logger=False,
    engineio_logger=False,
)


# ---------------------------------------------------------------------------
# Event fan-out: wire global_events → Socket.IO emit
# ---------------------------------------------------------------------------

def _on_canvas_event(event: Dict[str, Any]) -> None:
    """
    Called synchronously by CanvasEventEmitter.fire().
    We schedule an async emit on the running event loop; outside a loop
    (scripts, tests) there is nobody to push to.
    """
    try:
        loop = asyncio.get_running_loop()
    except RuntimeError:
        return
    loop.create_task(sio.emit("canvas", event))


global_events.on_event(_on_canvas_event)


# ---------------------------------------------------------------------------
# Socket.IO lifecycle events
# ---------------------------------------------------------------------------

@sio.event
async def connect(sid: str, environ: dict) -> None:  # noqa: D401
    logger.debug("editor connected: %s", sid)


@sio.event
async def disconnect(sid: str) -> None:
    logger.debug("editor disconnected: %s", sid)


# ---------------------------------------------------------------------------
# Factory
# ---------------------------------------------------------------------------

def create_socket_app(fastapi_app: Any) -> socketio.ASGIApp:
    """Wrap *fastapi_app* inside a Socket.IO ASGI application."""
    return socketio.ASGIApp(sio, other_asgi_app=fastapi_app)
