"""
FastAPI + Socket.IO server for the canvas editor.

Start with:
    python -m nodecanvas.server.main

Or via uvicorn directly:
    uvicorn nodecanvas.server.main:socket_app --port 3001 --reload

Settings are read from the environment (a `.env` file at the project root is
loaded first): NODECANVAS_HOST, NODECANVAS_PORT, NODECANVAS_LOG_LEVEL,
NODECANVAS_CORS_ORIGINS (comma separated).
"""
from __future__ import annotations

import logging
import os

from dotenv import load_dotenv

load_dotenv(os.path.abspath(os.path.join(os.path.dirname(__file__), "../..", ".env")))

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from .events.socket_server import create_socket_app
from .routes.graph_routes import router

logging.basicConfig(
    level=os.environ.get("NODECANVAS_LOG_LEVEL", "INFO").upper(),
    format="%(asctime)s %(levelname)s %(name)s: %(message)s",
)

# ---------------------------------------------------------------------------
# FastAPI application
# ---------------------------------------------------------------------------

app = FastAPI(title="NodeCanvas API", version="1.0.0")

app.add_middleware(
    CORSMiddleware,
    allow_origins=os.environ.get("NODECANVAS_CORS_ORIGINS", "*").split(","),
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

app.include_router(router, prefix="/api")


@app.get("/health")
async def health() -> dict:
    return {"status": "ok"}


# ---------------------------------------------------------------------------
# Wrap with Socket.IO ASGI layer
# ---------------------------------------------------------------------------

# socket_app is the top-level ASGI app passed to uvicorn.
# Socket.IO connections are handled at the root; all other requests are
# forwarded to the inner FastAPI app.
socket_app = create_socket_app(app)

# ---------------------------------------------------------------------------
# Entry point
# ---------------------------------------------------------------------------

if __name__ == "__main__":
    import uvicorn

    uvicorn.run(
        "nodecanvas.server.main:socket_app",
        host=os.environ.get("NODECANVAS_HOST", "0.0.0.0"),
        port=int(os.environ.get("NODECANVAS_PORT", "3001")),
        reload=True,
    )
