"""Outer iteration driver and whole-scan wiring.

``run_scan`` builds the collaborators from a ``ScanConfig`` (aiohttp
transport, file sink, random courtesy, signal-driven cancellation) and then
walks the outer keys one round at a time. Tests drive ``OuterIterationDriver``
directly with fakes.
"""

from __future__ import annotations

import asyncio
import json
import logging
import time
from collections import Counter
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Callable, Dict, List, Optional

from ..core.keys import (
    K_ATTEMPTS,
    K_CANCELLED,
    K_DISCOVERIES,
    K_EFFECTIVE_RPS,
    K_FINISHED_AT,
    K_OUTCOMES,
    K_OUTER_SCANNED,
    K_ROUNDS,
    K_RUNTIME_SECONDS,
    K_STARTED_AT,
)
from .backoff import BackoffPolicy, SleepFunc
from .cancellation import CancellationToken, install_signal_handlers
from .courtesy import Courtesy, courtesy_from_config
from .evaluator import OutcomeKind, ProbeEvaluator
from .probe_config import OUTER_START, ScanConfig
from .scheduler import CandidateProber, ProbeScheduler, RoundResult
from .sink import DiscoverySink, FileDiscoverySink
from .template import URLTemplate
from .transport import AiohttpTransport, Transport

logger = logging.getLogger(__name__)

RoundHook = Callable[[RoundResult], None]


def _utc_now() -> str:
    return datetime.now(timezone.utc).replace(microsecond=0).isoformat().replace("+00:00", "Z")


@dataclass
class ScanReport:
    """Summary of one scan run."""

    started_at: str
    finished_at: str = ""
    runtime_seconds: float = 0.0
    start_outer: int = OUTER_START
    rounds: List[RoundResult] = field(default_factory=list)
    cancelled: bool = False

    @property
    def discoveries(self) -> Dict[int, str]:
        return {r.outer: r.url for r in self.rounds if r.url}

    @property
    def attempts(self) -> int:
        return sum(r.attempts for r in self.rounds)

    @property
    def outcome_counts(self) -> Dict[str, int]:
        total: Counter = Counter()
        for r in self.rounds:
            total.update(r.outcomes)
        return {kind.value: int(total.get(kind, 0)) for kind in OutcomeKind}

    def to_dict(self) -> Dict[str, Any]:
        runtime = max(self.runtime_seconds, 1e-6)
        return {
            K_STARTED_AT: self.started_at,
            K_FINISHED_AT: self.finished_at,
            K_RUNTIME_SECONDS: round(self.runtime_seconds, 3),
            "start_outer": self.start_outer,
            K_OUTER_SCANNED: len(self.rounds),
            K_DISCOVERIES: {str(outer): url for outer, url in self.discoveries.items()},
            K_OUTCOMES: self.outcome_counts,
            K_ATTEMPTS: self.attempts,
            K_CANCELLED: self.cancelled,
            K_EFFECTIVE_RPS: round(self.attempts / runtime, 3) if self.attempts else 0.0,
            K_ROUNDS: [r.to_dict() for r in self.rounds],
        }

    def to_json(self) -> str:
        return json.dumps(self.to_dict(), ensure_ascii=False)


class OuterIterationDriver:
    """Runs one scheduler round per outer key, ``start_outer..outer_end`` inclusive."""

    def __init__(
        self,
        scheduler: ProbeScheduler,
        token: CancellationToken,
        *,
        outer_end: int,
        round_hook: Optional[RoundHook] = None,
    ) -> None:
        self.scheduler = scheduler
        self.token = token
        self.outer_end = outer_end
        self.round_hook = round_hook

    async def run(self, start_outer: int = OUTER_START) -> ScanReport:
        if start_outer < 1:
            raise ValueError("start_outer must be a positive integer")
        report = ScanReport(started_at=_utc_now(), start_outer=start_outer)
        started = time.perf_counter()
        for outer in range(start_outer, self.outer_end + 1):
            if self.token.cancelled:
                break
            logger.info("Searching outer key %d...", outer)
            result = await self.scheduler.run(outer)
            report.rounds.append(result)
            if self.round_hook is not None:
                try:
                    self.round_hook(result)
                except Exception:
                    logger.debug("round hook failed for outer key %d", outer, exc_info=True)
        report.cancelled = self.token.cancelled
        report.finished_at = _utc_now()
        report.runtime_seconds = time.perf_counter() - started
        return report


def build_driver(
    template: URLTemplate,
    config: ScanConfig,
    transport: Transport,
    sink: DiscoverySink,
    token: CancellationToken,
    *,
    courtesy: Optional[Courtesy] = None,
    sleep: Optional[SleepFunc] = None,
    round_hook: Optional[RoundHook] = None,
) -> OuterIterationDriver:
    prober = CandidateProber(
        template,
        transport,
        ProbeEvaluator(sink),
        courtesy=courtesy or courtesy_from_config(config),
        policy=BackoffPolicy(max_retries=config.max_retries, base_delay=config.backoff_base),
        timeout=config.timeout,
        sleep=sleep,
    )
    scheduler = ProbeScheduler(
        prober,
        token,
        concurrency=config.concurrency,
        inner_start=config.inner_start,
        inner_end=config.inner_end,
    )
    return OuterIterationDriver(scheduler, token, outer_end=config.outer_end, round_hook=round_hook)


async def run_scan(
    template: URLTemplate,
    config: ScanConfig,
    *,
    start_outer: int = OUTER_START,
    sink: Optional[DiscoverySink] = None,
    transport: Optional[Transport] = None,
    token: Optional[CancellationToken] = None,
    courtesy: Optional[Courtesy] = None,
    install_signals: bool = True,
    round_hook: Optional[RoundHook] = None,
) -> ScanReport:
    """Scan the configured id space, writing confirmed URLs to the sink."""

    token = token or CancellationToken()
    if install_signals:
        install_signal_handlers(token, asyncio.get_running_loop())

    owned_sink = sink is None
    active_sink: DiscoverySink = sink if sink is not None else FileDiscoverySink(config.discovery_log).open()
    try:
        if transport is not None:
            driver = build_driver(template, config, transport, active_sink, token, courtesy=courtesy, round_hook=round_hook)
            report = await driver.run(start_outer)
        else:
            async with AiohttpTransport(pool_size=config.concurrency) as http:
                driver = build_driver(template, config, http, active_sink, token, courtesy=courtesy, round_hook=round_hook)
                report = await driver.run(start_outer)
    finally:
        if owned_sink:
            active_sink.close()

    if report.cancelled:
        logger.info("Scan cancelled after %d outer key(s)", len(report.rounds))
    logger.info("Exiting.")
    return report


def run_scan_sync(template: URLTemplate, config: ScanConfig, **kwargs: Any) -> ScanReport:
    return asyncio.run(run_scan(template, config, **kwargs))
