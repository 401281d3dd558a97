"""Classify one transport outcome into a probe outcome."""

from __future__ import annotations

import enum
import logging
from dataclasses import dataclass
from typing import Any, Dict, Optional, Union

from .cancellation import CancellationToken
from .sink import DiscoverySink
from .template import CandidateKey
from .transport import TransportError, TransportResult

logger = logging.getLogger(__name__)

STATUS_OK = 200
STATUS_TOO_MANY_REQUESTS = 429


class OutcomeKind(str, enum.Enum):
    FOUND = "found"
    REJECTED = "rejected"
    RATE_LIMITED = "rate_limited"
    TRANSIENT_ERROR = "transient_error"
    CANCELLED = "cancelled"


@dataclass(frozen=True)
class ProbeOutcome:
    """Terminal (or per-attempt) result for one candidate URL."""

    kind: OutcomeKind
    url: str
    status: Optional[int] = None
    cause: Optional[str] = None
    attempts: int = 1

    @property
    def found(self) -> bool:
        return self.kind is OutcomeKind.FOUND

    @classmethod
    def cancelled(cls, url: str, attempts: int = 0) -> "ProbeOutcome":
        return cls(OutcomeKind.CANCELLED, url, attempts=attempts)

    def to_dict(self) -> Dict[str, Any]:
        payload: Dict[str, Any] = {"kind": self.kind.value, "url": self.url, "attempts": self.attempts}
        if self.status is not None:
            payload["status"] = self.status
        if self.cause:
            payload["cause"] = self.cause
        return payload


def classify(
    requested_url: str,
    result: Union[TransportResult, TransportError],
    *,
    cancelled: bool = False,
) -> ProbeOutcome:
    """Apply the classification rules in order.

    A confirmed match survives a cancellation observed after the response; any
    other outcome observed under cancellation is suppressed as CANCELLED.
    """
    if isinstance(result, TransportError):
        if cancelled:
            return ProbeOutcome.cancelled(requested_url)
        return ProbeOutcome(OutcomeKind.TRANSIENT_ERROR, requested_url, cause=result.cause)

    status = result.status
    if status == STATUS_OK and result.final_url == requested_url:
        return ProbeOutcome(OutcomeKind.FOUND, requested_url, status=status)
    if cancelled:
        return ProbeOutcome.cancelled(requested_url)
    if status == STATUS_TOO_MANY_REQUESTS:
        return ProbeOutcome(OutcomeKind.RATE_LIMITED, requested_url, status=status)
    # >= 400, stray redirects and 200-at-another-URL all count as not found
    return ProbeOutcome(OutcomeKind.REJECTED, requested_url, status=status)


class ProbeEvaluator:
    """Classifies responses and records confirmed matches in the sink."""

    def __init__(self, sink: DiscoverySink) -> None:
        self.sink = sink

    async def evaluate(
        self,
        key: CandidateKey,
        requested_url: str,
        result: Union[TransportResult, TransportError],
        token: CancellationToken,
    ) -> ProbeOutcome:
        outcome = classify(requested_url, result, cancelled=token.cancelled)
        if outcome.kind is OutcomeKind.FOUND:
            logger.info("Found: %s", requested_url)
            await self.sink.record(requested_url, key.outer)
        elif outcome.kind is OutcomeKind.REJECTED:
            if outcome.status is not None and outcome.status >= 400:
                logger.info("[BAD] %s - %s", outcome.status, requested_url)
            elif isinstance(result, TransportResult) and result.redirected:
                logger.debug("[REDIRECT] %s - %s -> %s", outcome.status, requested_url, result.final_url)
            else:
                logger.debug("[MISS] %s - %s", outcome.status, requested_url)
        elif outcome.kind is OutcomeKind.TRANSIENT_ERROR:
            logger.info("[ERROR] %s - %s", requested_url, outcome.cause)
        return outcome
