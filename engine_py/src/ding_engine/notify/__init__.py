"""
Turn notifications pushed to players' devices.
"""

from .dispatcher import NotificationDispatcher, record_turn_key
from .push import MulticastResult, PushSender, SendResponse, classify_error

__all__ = [
    "NotificationDispatcher", "record_turn_key", "MulticastResult", "PushSender",
    "SendResponse", "classify_error",
]
