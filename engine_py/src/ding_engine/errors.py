# engine_py/src/ding_engine/errors.py

from .constants import ERROR_CONNECTIVITY, ERROR_STALE_STATE


class GameError(Exception):
    """Base exception for game-related errors."""
    def __init__(self, code: str, message: str):
        self.code = code
        self.message = message
        super().__init__(f"[{code}] {message}")


class StaleStateError(GameError):
    """Raised when an action is attempted against a cached snapshot."""
    def __init__(self, message: str):
        super().__init__(ERROR_STALE_STATE, message)


class ConnectivityError(GameError):
    """Raised when the document store cannot be reached."""
    def __init__(self, message: str):
        super().__init__(ERROR_CONNECTIVITY, message)
