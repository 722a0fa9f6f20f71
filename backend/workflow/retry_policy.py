"""Retry scheduling policy for failed workflow executions.

A failed run is retried on the same execution row by the retry sweeper.
Delays come from a fixed schedule; the last entry repeats if the schedule
is shorter than the number of retries.

Usage:
    policy = BackoffSchedule.from_settings()
    decision = policy.decide(execution.retry_count, now=utc_now_naive())
    if decision.retry:
        ...  # status=retrying, retry_count=decision.retry_count, next_retry_at=decision.next_retry_at
"""

from dataclasses import dataclass, field
from datetime import datetime, timedelta
from typing import Optional

from app.config import Settings, get_settings


@dataclass(frozen=True)
class RetryDecision:
    """Outcome of scheduling after a failure."""
    retry: bool
    retry_count: int
    next_retry_at: Optional[datetime] = None
    delay_seconds: float = 0.0


@dataclass
class BackoffSchedule:
    """Fixed backoff schedule with a cap on total attempts.

    ``max_retries`` counts attempts in total (the first run included), so
    with the default of 3 a workflow runs at most three times: once at
    trigger time and twice more from the sweeper.
    """
    delays_seconds: list[float] = field(default_factory=lambda: [60.0, 300.0, 900.0])
    max_retries: int = 3

    def __post_init__(self):
        if not self.delays_seconds:
            raise ValueError("delays_seconds must not be empty")
        if self.max_retries < 1:
            raise ValueError("max_retries must be >= 1")

    @classmethod
    def from_settings(cls, settings: Optional[Settings] = None) -> "BackoffSchedule":
        s = settings or get_settings()
        return cls(
            delays_seconds=[float(d) for d in s.WORKFLOW_RETRY_DELAYS_SECONDS],
            max_retries=s.WORKFLOW_MAX_RETRIES,
        )

    def compute_delay(self, retry_count: int) -> float:
        """Delay before the retry that follows a failure at ``retry_count``."""
        index = min(max(retry_count, 0), len(self.delays_seconds) - 1)
        return self.delays_seconds[index]

    def should_retry(self, retry_count: int) -> bool:
        return retry_count < self.max_retries - 1

    def decide(self, retry_count: int, now: datetime) -> RetryDecision:
        """Decide what happens to a run that just failed at ``retry_count``."""
        if not self.should_retry(retry_count):
            return RetryDecision(retry=False, retry_count=retry_count)

        delay = self.compute_delay(retry_count)
        return RetryDecision(
            retry=True,
            retry_count=retry_count + 1,
            next_retry_at=now + timedelta(seconds=delay),
            delay_seconds=delay,
        )
