"""SchedulingPolicy — retry and precondition-wait limits for scheduled commands."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import timedelta
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from datetime import datetime

    from ..ports.scheduling import ScheduledCommand


@dataclass(frozen=True, slots=True)
class SchedulingPolicy:
    """Configuration for how the trigger engine treats failing commands.

    Attributes:
        max_attempts: Application attempts before a command is permanently
            failed (including the first).
        base_delay: Seconds to push a retried command's due time out after
            the first failure; doubles per attempt. ``0`` retries on the
            next trigger pass.
        max_delay: Cap on the retry delay in seconds.
        max_precondition_wait: Seconds a command may wait for its delivery
            precondition, counted from its due time (or creation time when it
            has none). ``None`` waits forever.
    """

    max_attempts: int = 5
    base_delay: float = 0.0
    max_delay: float = 300.0
    max_precondition_wait: float | None = None

    def __post_init__(self) -> None:
        if self.max_attempts < 1:
            raise ValueError("max_attempts must be >= 1")
        if self.base_delay < 0 or self.max_delay < 0:
            raise ValueError("base_delay and max_delay must be >= 0")
        if self.base_delay > self.max_delay:
            raise ValueError("base_delay must be <= max_delay")
        if self.max_precondition_wait is not None and self.max_precondition_wait < 0:
            raise ValueError("max_precondition_wait must be >= 0")

    def should_retry(self, attempts: int) -> bool:
        """Return True if another attempt is allowed after *attempts* failures."""
        return attempts < self.max_attempts

    def delay_for_attempt(self, attempt: int) -> float:
        """Delay in seconds after the given 1-based failed attempt.

        Exponential backoff: base_delay * 2^(attempt-1), capped by max_delay.
        """
        if attempt < 1:
            return 0.0
        return float(min(self.base_delay * (2 ** (attempt - 1)), self.max_delay))

    def next_due_time(self, now: datetime, attempt: int) -> datetime | None:
        """New due time for a retried command, or ``None`` to keep the current one."""
        delay = self.delay_for_attempt(attempt)
        if delay <= 0:
            return None
        return now + timedelta(seconds=delay)

    def precondition_expired(self, record: ScheduledCommand, now: datetime) -> bool:
        if self.max_precondition_wait is None:
            return False
        since = record.due_time or record.created_time
        return now - since > timedelta(seconds=self.max_precondition_wait)
