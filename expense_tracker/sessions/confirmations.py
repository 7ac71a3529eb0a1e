"""
Pending Confirmations

Destructive commands (clearing expenses) are not executed straight away.
The dispatcher records what the user asked for and waits for a yes/no.

Per user the state is either idle or awaiting one confirmation:

    Idle -> AwaitingConfirmation(action, payload, expires_at) -> Idle

A confirmation left unanswered past its TTL is dropped and the user is
idle again. Only "yes" or "y" confirms; any other reply cancels.
"""

import time
from enum import Enum
from typing import Any, Callable, Optional

from pydantic import BaseModel, Field

AFFIRMATIVE_REPLIES = frozenset({"yes", "y"})


class PendingAction(str, Enum):
    CLEAR_ALL = "clear_all"
    CLEAR_DATE = "clear_date"
    CLEAR_RANGE = "clear_range"


class PendingConfirmation(BaseModel):
    """An action waiting for the user's yes/no."""

    user_id: int
    action: PendingAction
    payload: dict[str, Any] = Field(default_factory=dict)
    expires_at: float


class ConfirmationTracker:
    """
    In-process confirmation state, keyed by user id.

    The clock is injectable (seconds, monotonic) so expiry can be tested.
    State is lost on restart, which simply cancels whatever was pending.
    """

    def __init__(
        self,
        ttl_seconds: float = 120,
        clock: Optional[Callable[[], float]] = None,
    ):
        if ttl_seconds <= 0:
            raise ValueError("ttl_seconds must be positive")
        self._ttl = ttl_seconds
        self._clock = clock or time.monotonic
        self._pending: dict[int, PendingConfirmation] = {}

    def request(
        self,
        user_id: int,
        action: PendingAction,
        payload: Optional[dict[str, Any]] = None,
    ) -> PendingConfirmation:
        """Start waiting for a confirmation, replacing any earlier one."""
        pending = PendingConfirmation(
            user_id=user_id,
            action=action,
            payload=payload or {},
            expires_at=self._clock() + self._ttl,
        )
        self._pending[user_id] = pending
        return pending

    def pending(self, user_id: int) -> Optional[PendingConfirmation]:
        """The live confirmation for user_id, if any. Expired ones are dropped."""
        pending = self._pending.get(user_id)
        if pending is None:
            return None
        if self._clock() >= pending.expires_at:
            del self._pending[user_id]
            return None
        return pending

    def take(self, user_id: int) -> Optional[PendingConfirmation]:
        """Remove and return the live confirmation; the user is idle afterwards."""
        pending = self.pending(user_id)
        if pending is not None:
            del self._pending[user_id]
        return pending

    def cancel(self, user_id: int) -> bool:
        return self._pending.pop(user_id, None) is not None

    @staticmethod
    def is_affirmative(reply: str) -> bool:
        return reply.strip().lower() in AFFIRMATIVE_REPLIES

    def __len__(self) -> int:
        return len(self._pending)
