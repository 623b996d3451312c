"""FastAPI + Socket.IO surface for the canvas operations."""
