"""
Client-side room synchronization.
"""

from .coordinator import SyncCoordinator
from .events import Notice

__all__ = ["SyncCoordinator", "Notice"]
