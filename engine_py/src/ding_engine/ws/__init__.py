"""
WebSocket relay exposing the shared document store to remote clients.
"""

from .server import create_app

__all__ = ["create_app"]
