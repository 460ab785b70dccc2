"""
Push delivery boundary and error classification.
"""

from dataclasses import dataclass, field
from typing import Dict, List, Optional, Protocol

# Token is gone for good; remove it from the profile.
PRUNE_CODES = frozenset({
    "messaging/registration-token-not-registered",
    "messaging/invalid-registration-token",
    "messaging/invalid-argument",
    "UNREGISTERED",
    "INVALID_ARGUMENT",
})

# Worth one more attempt right away.
RETRY_CODES = frozenset({
    "messaging/internal-error",
    "messaging/server-unavailable",
    "UNAVAILABLE",
    "INTERNAL",
})

ACTION_PRUNE = "prune"
ACTION_RETRY = "retry"
ACTION_DROP = "drop"


def classify_error(code: Optional[str]) -> str:
    if code in PRUNE_CODES:
        return ACTION_PRUNE
    if code in RETRY_CODES:
        return ACTION_RETRY
    return ACTION_DROP


@dataclass
class SendResponse:
    success: bool
    error_code: Optional[str] = None
    message_id: Optional[str] = None


@dataclass
class MulticastResult:
    responses: List[SendResponse] = field(default_factory=list)

    @property
    def success_count(self) -> int:
        return sum(1 for r in self.responses if r.success)

    @property
    def failure_count(self) -> int:
        return len(self.responses) - self.success_count


class PushSender(Protocol):
    """Sends one data-only message to many device tokens."""

    async def send_multicast(self, tokens: List[str], data: Dict[str, str]) -> MulticastResult:
        ...
