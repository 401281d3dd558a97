"""Concurrency-bounded scheduler for one outer key.

Inner ids are admitted in increasing order into a window of at most
``concurrency`` in-flight probes. The first FOUND outcome observed settles the
round: admission stops, the round's child token is cancelled so stragglers skip
their backoff sleeps, and the remaining tasks are drained with their outcomes
discarded. A scan-wide cancellation also stops admission; in-flight requests
are never aborted, they complete or time out on their own.
"""

from __future__ import annotations

import asyncio
import enum
import logging
from collections import Counter
from dataclasses import dataclass, field
from typing import Any, Awaitable, Callable, Dict, Iterable, List, Optional

from ..core.keys import K_ADMITTED, K_ATTEMPTS, K_CANCELLED, K_FOUND, K_MAX_IN_FLIGHT, K_OUTER, K_URL
from .backoff import BackoffPolicy, RetryController, SleepFunc
from .cancellation import CancellationToken
from .courtesy import Courtesy, FixedCourtesy
from .evaluator import OutcomeKind, ProbeEvaluator, ProbeOutcome
from .probe_config import REQUEST_TIMEOUT
from .template import CandidateKey, URLTemplate, candidates
from .transport import Transport, TransportError

logger = logging.getLogger(__name__)

ProbeFunc = Callable[[CandidateKey, CancellationToken], Awaitable[ProbeOutcome]]


class RoundState(str, enum.Enum):
    FILLING = "filling"
    DRAINING = "draining"
    DONE = "done"


@dataclass
class RoundResult:
    """What one outer key's round produced."""

    outer: int
    found: Optional[ProbeOutcome] = None
    admitted: int = 0
    max_in_flight: int = 0
    attempts: int = 0
    cancelled: bool = False
    discarded: int = 0
    outcomes: Counter = field(default_factory=Counter)
    states: List[RoundState] = field(default_factory=list)

    @property
    def url(self) -> Optional[str]:
        return self.found.url if self.found else None

    def to_dict(self) -> Dict[str, Any]:
        return {
            K_OUTER: self.outer,
            K_URL: self.url,
            K_FOUND: self.found.to_dict() if self.found else None,
            K_ADMITTED: self.admitted,
            K_MAX_IN_FLIGHT: self.max_in_flight,
            K_ATTEMPTS: self.attempts,
            K_CANCELLED: self.cancelled,
            "discarded": self.discarded,
            "outcomes": {kind.value: count for kind, count in self.outcomes.items()},
        }


class CandidateProber:
    """Probe one candidate: jitter, pick identity, request, classify, retry on 429."""

    def __init__(
        self,
        template: URLTemplate,
        transport: Transport,
        evaluator: ProbeEvaluator,
        *,
        courtesy: Optional[Courtesy] = None,
        policy: Optional[BackoffPolicy] = None,
        timeout: float = REQUEST_TIMEOUT,
        sleep: Optional[SleepFunc] = None,
    ) -> None:
        self.template = template
        self.transport = transport
        self.evaluator = evaluator
        self.courtesy = courtesy or FixedCourtesy()
        self.policy = policy or BackoffPolicy()
        self.timeout = timeout
        self._sleep = sleep

    async def __call__(self, key: CandidateKey, token: CancellationToken) -> ProbeOutcome:
        url = self.template.substitute(key)
        sleep = self._sleep or token.sleep

        async def attempt(_number: int) -> ProbeOutcome:
            delay = self.courtesy.jitter()
            if delay > 0 and await sleep(delay):
                return ProbeOutcome.cancelled(url)
            if token.cancelled:
                return ProbeOutcome.cancelled(url)
            user_agent = self.courtesy.user_agent()
            logger.info("Trying: %s", url)
            try:
                result = await self.transport.probe(url, user_agent, self.timeout)
            except TransportError as exc:
                return await self.evaluator.evaluate(key, url, exc, token)
            return await self.evaluator.evaluate(key, url, result, token)

        return await RetryController(token, self.policy, sleep=sleep).run(url, attempt)


class ProbeScheduler:
    """Drives the sliding window of probes for one outer key at a time."""

    def __init__(
        self,
        probe: ProbeFunc,
        token: CancellationToken,
        *,
        concurrency: int,
        inner_start: int,
        inner_end: int,
    ) -> None:
        if concurrency < 1:
            raise ValueError("concurrency must be a positive integer")
        self.probe = probe
        self.token = token
        self.concurrency = concurrency
        self.inner_start = inner_start
        self.inner_end = inner_end

    async def run(self, outer: int) -> RoundResult:
        result = RoundResult(outer=outer)
        round_token = self.token.child()
        in_flight: Dict[asyncio.Task, CandidateKey] = {}
        result.states.append(RoundState.FILLING)

        for key in candidates(outer, self.inner_start, self.inner_end):
            # Harvest whatever already finished so a match stops admission early.
            finished = [task for task in in_flight if task.done()]
            if finished:
                self._collect(finished, in_flight, result, round_token)
            while len(in_flight) >= self.concurrency and result.found is None:
                done, _ = await asyncio.wait(set(in_flight), return_when=asyncio.FIRST_COMPLETED)
                self._collect(done, in_flight, result, round_token)
            if result.found is not None:
                break
            if self.token.cancelled:
                result.cancelled = True
                break
            task = asyncio.create_task(self.probe(key, round_token))
            in_flight[task] = key
            result.admitted += 1
            result.max_in_flight = max(result.max_in_flight, len(in_flight))

        if in_flight:
            result.states.append(RoundState.DRAINING)
            while in_flight:
                done, _ = await asyncio.wait(set(in_flight), return_when=asyncio.FIRST_COMPLETED)
                self._collect(done, in_flight, result, round_token)

        if self.token.cancelled:
            result.cancelled = True
        round_token.cancel()
        result.states.append(RoundState.DONE)
        if result.found is None and not result.cancelled:
            logger.info("No match for outer key %d after %d candidates", outer, result.admitted)
        return result

    def _collect(
        self,
        done: Iterable[asyncio.Task],
        in_flight: Dict[asyncio.Task, CandidateKey],
        result: RoundResult,
        round_token: CancellationToken,
    ) -> None:
        # Lowest inner id wins when several tasks finish in the same tick.
        for task in sorted(done, key=lambda t: in_flight[t].inner):
            key = in_flight.pop(task)
            outcome = self._outcome_of(task, key)
            result.attempts += outcome.attempts
            if result.found is not None:
                # Settled round: stale results are dropped.
                result.discarded += 1
                continue
            result.outcomes[outcome.kind] += 1
            if outcome.kind is OutcomeKind.FOUND:
                result.found = outcome
                round_token.cancel()

    def _outcome_of(self, task: asyncio.Task, key: CandidateKey) -> ProbeOutcome:
        label = f"outer={key.outer} inner={key.inner}"
        try:
            return task.result()
        except asyncio.CancelledError:
            return ProbeOutcome.cancelled(label)
        except Exception as exc:  # a probe must never take the round down
            logger.error("probe task %s failed: %s", label, exc, exc_info=True)
            return ProbeOutcome(OutcomeKind.TRANSIENT_ERROR, label, cause=repr(exc))
