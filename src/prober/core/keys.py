"""Shared report keys to avoid magic strings across prober modules."""

from __future__ import annotations

# Scan report keys
K_STARTED_AT = "started_at"
K_FINISHED_AT = "finished_at"
K_RUNTIME_SECONDS = "runtime_seconds"
K_OUTER_SCANNED = "outer_keys_scanned"
K_DISCOVERIES = "discoveries"
K_OUTCOMES = "outcome_counts"
K_ATTEMPTS = "attempts"
K_CANCELLED = "cancelled"
K_EFFECTIVE_RPS = "effective_rps"
K_ROUNDS = "rounds"

# Per-round keys
K_OUTER = "outer"
K_URL = "url"
K_ADMITTED = "admitted"
K_MAX_IN_FLIGHT = "max_in_flight"
K_FOUND = "found"
