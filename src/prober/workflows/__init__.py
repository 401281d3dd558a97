"""High-level exports for the prober workflows."""

from .backoff import BackoffPolicy, RetryController
from .cancellation import CancellationToken, install_signal_handlers
from .courtesy import FixedCourtesy, RandomCourtesy, courtesy_from_config
from .evaluator import OutcomeKind, ProbeEvaluator, ProbeOutcome, classify
from .probe_config import ScanConfig, parse_start_outer
from .scanner import OuterIterationDriver, ScanReport, build_driver, run_scan, run_scan_sync
from .scheduler import CandidateProber, ProbeScheduler, RoundResult, RoundState
from .sink import DiscoverySink, FileDiscoverySink, MemoryDiscoverySink
from .template import CandidateKey, TemplateError, URLTemplate, candidates, substitute
from .transport import AiohttpTransport, TransportError, TransportResult

__all__ = [
    "AiohttpTransport",
    "BackoffPolicy",
    "CancellationToken",
    "CandidateKey",
    "CandidateProber",
    "DiscoverySink",
    "FileDiscoverySink",
    "FixedCourtesy",
    "MemoryDiscoverySink",
    "OuterIterationDriver",
    "OutcomeKind",
    "ProbeEvaluator",
    "ProbeOutcome",
    "ProbeScheduler",
    "RandomCourtesy",
    "RetryController",
    "RoundResult",
    "RoundState",
    "ScanConfig",
    "ScanReport",
    "TemplateError",
    "TransportError",
    "TransportResult",
    "URLTemplate",
    "build_driver",
    "candidates",
    "classify",
    "courtesy_from_config",
    "install_signal_handlers",
    "parse_start_outer",
    "run_scan",
    "run_scan_sync",
    "substitute",
]
