from __future__ import annotations

import os
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Dict, List, Optional

from .probe_config import ScanConfig

_ENV_NAMES = (
    "PROBER_CONCURRENCY",
    "PROBER_INNER_START",
    "PROBER_INNER_END",
    "PROBER_OUTER_END",
    "PROBER_TIMEOUT",
    "PROBER_BACKOFF_BASE",
    "PROBER_MAX_RETRIES",
    "PROBER_JITTER_MIN_MS",
    "PROBER_JITTER_MAX_MS",
    "PROBER_RANDOM_USER_AGENT",
    "PROBER_USER_AGENT",
    "PROBER_DISCOVERY_LOG",
    "PROBER_INNER_TOKEN",
    "PROBER_OUTER_TOKEN",
)

# Above this the remote side is likely to start answering 429.
CONCURRENCY_WARN_THRESHOLD = 10
BACKOFF_WARN_FLOOR = 1.0


def _check_aiohttp() -> Optional[str]:
    try:
        import aiohttp
    except Exception:
        return None
    return getattr(aiohttp, "__version__", "unknown")


def _check_writable(path: Path) -> bool:
    try:
        if path.exists():
            return os.access(path, os.W_OK)
        parent = path.parent if str(path.parent) else Path(".")
        if not parent.exists():
            return False
        return os.access(parent, os.W_OK)
    except Exception:
        return False


def build_doctor_report(*, config: Optional[ScanConfig] = None) -> Dict[str, Any]:
    cfg = config or ScanConfig.from_env()
    report: Dict[str, Any] = {
        "generated_at": datetime.now(timezone.utc).replace(microsecond=0).isoformat().replace("+00:00", "Z"),
        "ok": True,
        "checks": [],
        "environment": {name: os.getenv(name) for name in _ENV_NAMES if os.getenv(name) is not None},
        "config": {
            "inner_range": [cfg.inner_start, cfg.inner_end],
            "outer_end": cfg.outer_end,
            "concurrency": cfg.concurrency,
            "timeout": cfg.timeout,
            "backoff_base": cfg.backoff_base,
            "max_retries": cfg.max_retries,
            "jitter_ms": [cfg.jitter_min_ms, cfg.jitter_max_ms],
            "random_user_agent": cfg.random_user_agent,
            "discovery_log": str(cfg.discovery_log),
        },
    }

    def add_check(
        name: str,
        status: bool,
        *,
        detail: Optional[str] = None,
        remedy: Optional[str] = None,
        level: str = "warn",
    ) -> None:
        entry = {
            "name": name,
            "status": "ok" if status else ("missing" if level == "warn" else "attention"),
            "level": level,
            "detail": detail,
        }
        if remedy:
            entry["remedy"] = remedy
        report["checks"].append(entry)
        if not status and level == "warn":
            report["ok"] = False

    aiohttp_version = _check_aiohttp()
    add_check(
        "aiohttp",
        aiohttp_version is not None,
        detail=f"aiohttp {aiohttp_version}" if aiohttp_version else "aiohttp not importable",
        remedy="Install aiohttp (pip install aiohttp).",
    )

    log_path = Path(cfg.discovery_log)
    add_check(
        "discovery_log",
        _check_writable(log_path),
        detail=f"{log_path} (truncated at scan start)",
        remedy="Point PROBER_DISCOVERY_LOG or --log at a writable location.",
    )

    add_check(
        "inner_range",
        cfg.inner_end > cfg.inner_start,
        detail=f"[{cfg.inner_start}, {cfg.inner_end})",
        remedy="Set PROBER_INNER_END above PROBER_INNER_START.",
    )

    add_check(
        "concurrency",
        cfg.concurrency <= CONCURRENCY_WARN_THRESHOLD,
        detail=f"{cfg.concurrency} in flight",
        remedy=f"Keep PROBER_CONCURRENCY at or below {CONCURRENCY_WARN_THRESHOLD} to avoid rate limiting.",
        level="info",
    )

    add_check(
        "backoff_base",
        cfg.backoff_base >= BACKOFF_WARN_FLOOR,
        detail=f"{cfg.backoff_base:g}s linear backoff",
        remedy="Short backoffs tend to escalate remote rate limiting.",
        level="info",
    )

    return report


def format_doctor_report(report: Dict[str, Any]) -> str:
    lines: List[str] = []
    lines.append("Prober doctor")
    lines.append(f"Generated: {report.get('generated_at')}")
    lines.append(f"Overall: {'ok' if report.get('ok') else 'attention needed'}")
    lines.append("")
    lines.append("Checks:")
    for check in report.get("checks", []):
        name = check.get("name")
        status = check.get("status")
        detail = check.get("detail") or ""
        lines.append(f"- {name}: {status} {detail}".rstrip())
        remedy = check.get("remedy")
        if remedy and status != "ok":
            lines.append(f"  remedy: {remedy}")
    env = report.get("environment") or {}
    if env:
        lines.append("")
        lines.append("Environment overrides:")
        for name in sorted(env):
            lines.append(f"- {name}={env[name]}")
    return "\n".join(lines)
