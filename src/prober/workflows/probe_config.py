"""Prober defaults (placeholders, id ranges, headers, pacing).

Centralizes static defaults so the scheduler and scanner have no embedded
magic numbers. ``ScanConfig.from_env`` overlays ``PROBER_*`` environment
variables; callers can still construct their own ``ScanConfig``.
"""

from __future__ import annotations

import os
from dataclasses import dataclass, field, replace
from pathlib import Path
from typing import Any, Optional, Tuple

# Placeholders
INNER_TOKEN = "{uid}"
OUTER_TOKEN = "{qnum}"

# Id space
INNER_START = 10_000
INNER_END = 80_000
OUTER_START = 1
OUTER_END = 300

# Pacing
MAX_CONCURRENCY = 5
REQUEST_TIMEOUT = 5.0
BACKOFF_BASE = 15.0
MAX_RETRIES = 3
JITTER_MIN_MS = 100
JITTER_MAX_MS = 500

# Identity
HDR_USER_AGENT = "User-Agent"
USER_AGENTS: Tuple[str, ...] = (
    "Mozilla/5.0 (Windows NT 10.0; Win64; x64)",
    "Mozilla/5.0 (Macintosh; Intel Mac OS X 10_15_7)",
    "Mozilla/5.0 (X11; Ubuntu; Linux x86_64)",
    "Mozilla/5.0 (iPhone; CPU iPhone OS 14_0 like Mac OS X)",
)

# Output
DISCOVERY_LOG = Path("valid_urls.log")


def _env_int(name: str, default: int = 0) -> int:
    try:
        raw = os.getenv(name, "")
        return int(raw) if raw.strip() else default
    except (TypeError, ValueError):
        return default


def _env_float(name: str, default: float = 0.0) -> float:
    try:
        raw = os.getenv(name, "")
        return float(raw) if raw.strip() else default
    except (TypeError, ValueError):
        return default


def _env_bool(name: str, default: str = "0") -> bool:
    raw = os.getenv(name, default)
    return str(raw).strip().lower() not in {"0", "false", "no", "off", ""}


@dataclass
class ScanConfig:
    """Configuration parameters for one scan run."""

    inner_start: int = INNER_START
    inner_end: int = INNER_END
    outer_end: int = OUTER_END
    concurrency: int = MAX_CONCURRENCY
    timeout: float = REQUEST_TIMEOUT
    backoff_base: float = BACKOFF_BASE
    max_retries: int = MAX_RETRIES
    jitter_min_ms: int = JITTER_MIN_MS
    jitter_max_ms: int = JITTER_MAX_MS
    random_user_agent: bool = True
    user_agent: str = USER_AGENTS[0]
    user_agents: Tuple[str, ...] = USER_AGENTS
    inner_token: str = INNER_TOKEN
    outer_token: str = OUTER_TOKEN
    discovery_log: Path = field(default_factory=lambda: DISCOVERY_LOG)

    def __post_init__(self) -> None:
        self.concurrency = max(1, int(self.concurrency))
        self.max_retries = max(0, int(self.max_retries))
        self.backoff_base = max(0.0, float(self.backoff_base))
        self.jitter_min_ms = max(0, int(self.jitter_min_ms))
        self.jitter_max_ms = max(self.jitter_min_ms, int(self.jitter_max_ms))

    @property
    def jitter_enabled(self) -> bool:
        return self.jitter_max_ms > 0

    @classmethod
    def from_env(cls, base: Optional["ScanConfig"] = None) -> "ScanConfig":
        cfg = base or cls()
        return replace(
            cfg,
            inner_start=_env_int("PROBER_INNER_START", cfg.inner_start),
            inner_end=_env_int("PROBER_INNER_END", cfg.inner_end),
            outer_end=_env_int("PROBER_OUTER_END", cfg.outer_end),
            concurrency=_env_int("PROBER_CONCURRENCY", cfg.concurrency),
            timeout=_env_float("PROBER_TIMEOUT", cfg.timeout),
            backoff_base=_env_float("PROBER_BACKOFF_BASE", cfg.backoff_base),
            max_retries=_env_int("PROBER_MAX_RETRIES", cfg.max_retries),
            jitter_min_ms=_env_int("PROBER_JITTER_MIN_MS", cfg.jitter_min_ms),
            jitter_max_ms=_env_int("PROBER_JITTER_MAX_MS", cfg.jitter_max_ms),
            random_user_agent=_env_bool("PROBER_RANDOM_USER_AGENT", "1" if cfg.random_user_agent else "0"),
            user_agent=os.getenv("PROBER_USER_AGENT", "").strip() or cfg.user_agent,
            discovery_log=Path(os.getenv("PROBER_DISCOVERY_LOG", "").strip() or cfg.discovery_log),
            inner_token=os.getenv("PROBER_INNER_TOKEN", "").strip() or cfg.inner_token,
            outer_token=os.getenv("PROBER_OUTER_TOKEN", "").strip() or cfg.outer_token,
        )

    def with_overrides(self, **overrides: Any) -> "ScanConfig":
        """Return a copy with every non-None override applied."""

        applied = {key: value for key, value in overrides.items() if value is not None}
        return replace(self, **applied) if applied else self


def parse_start_outer(raw: Optional[str], default: int = OUTER_START) -> int:
    """Parse the optional starting outer key; anything invalid falls back to ``default``."""

    if raw is None:
        return default
    try:
        value = int(str(raw).strip())
    except (TypeError, ValueError):
        return default
    return value if value > 0 else default
