"""Bounded retries with linear backoff for rate-limited probes."""

from __future__ import annotations

import dataclasses
import logging
from dataclasses import dataclass
from typing import Awaitable, Callable, Optional

from .cancellation import CancellationToken
from .evaluator import OutcomeKind, ProbeOutcome
from .probe_config import BACKOFF_BASE, MAX_RETRIES

logger = logging.getLogger(__name__)

AttemptFunc = Callable[[int], Awaitable[ProbeOutcome]]
SleepFunc = Callable[[float], Awaitable[bool]]


@dataclass(frozen=True)
class BackoffPolicy:
    """``max_retries`` retries after the first attempt; retry *n* waits ``base_delay * n``."""

    max_retries: int = MAX_RETRIES
    base_delay: float = BACKOFF_BASE

    @property
    def max_attempts(self) -> int:
        return self.max_retries + 1

    def delay_for(self, retry: int) -> float:
        return self.base_delay * retry


class RetryController:
    """Runs one candidate's attempts, retrying only on RATE_LIMITED.

    ``sleep`` must return True when cancellation was observed on wake-up; it
    defaults to the token's cancellable sleep.
    """

    def __init__(
        self,
        token: CancellationToken,
        policy: Optional[BackoffPolicy] = None,
        sleep: Optional[SleepFunc] = None,
    ) -> None:
        self.token = token
        self.policy = policy or BackoffPolicy()
        self._sleep = sleep or token.sleep

    async def run(self, url: str, attempt_fn: AttemptFunc) -> ProbeOutcome:
        retries = 0
        while True:
            if self.token.cancelled:
                return ProbeOutcome.cancelled(url, attempts=retries)
            outcome = await attempt_fn(retries + 1)
            outcome = dataclasses.replace(outcome, attempts=retries + 1)
            if outcome.kind is not OutcomeKind.RATE_LIMITED:
                return outcome
            if retries >= self.policy.max_retries:
                logger.warning("[RATE LIMITED] Giving up after %d retries on %s", retries, url)
                return outcome
            retries += 1
            delay = self.policy.delay_for(retries)
            if self.token.cancelled:
                return ProbeOutcome.cancelled(url, attempts=retries)
            logger.warning("[RATE LIMITED] Sleeping for %g seconds before retrying %s...", delay, url)
            if await self._sleep(delay) or self.token.cancelled:
                return ProbeOutcome.cancelled(url, attempts=retries)
