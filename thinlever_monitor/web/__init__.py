"""HTTP + WebSocket surface."""
from .server import WebSocketSubscriber, create_app

__all__ = ["WebSocketSubscriber", "create_app"]
