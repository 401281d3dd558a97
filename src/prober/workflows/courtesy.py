"""Per-attempt courtesy: pre-request jitter and User-Agent selection."""

from __future__ import annotations

import random
from typing import Optional, Protocol, Sequence

from .probe_config import USER_AGENTS, ScanConfig


class Courtesy(Protocol):
    def jitter(self) -> float:
        """Seconds to wait before the next request."""

    def user_agent(self) -> str:
        ...


class RandomCourtesy:
    """Random jitter in ``[min_ms, max_ms)`` and a random User-Agent from ``agents``."""

    def __init__(
        self,
        agents: Sequence[str] = USER_AGENTS,
        *,
        min_ms: int = 100,
        max_ms: int = 500,
        rng: Optional[random.Random] = None,
    ) -> None:
        if not agents:
            raise ValueError("user agent pool is empty")
        self.agents = tuple(agents)
        self.min_ms = max(0, min_ms)
        self.max_ms = max(self.min_ms, max_ms)
        self._rng = rng or random.Random()

    def jitter(self) -> float:
        if self.max_ms <= self.min_ms:
            return self.min_ms / 1000.0
        return self._rng.randrange(self.min_ms, self.max_ms) / 1000.0

    def user_agent(self) -> str:
        return self.agents[self._rng.randrange(len(self.agents))]


class FixedCourtesy:
    """Deterministic courtesy: constant jitter (default none) and one User-Agent."""

    def __init__(self, user_agent: str = USER_AGENTS[0], jitter: float = 0.0) -> None:
        self._user_agent = user_agent
        self._jitter = max(0.0, jitter)

    def jitter(self) -> float:
        return self._jitter

    def user_agent(self) -> str:
        return self._user_agent


def courtesy_from_config(config: ScanConfig, rng: Optional[random.Random] = None) -> Courtesy:
    if not config.random_user_agent and not config.jitter_enabled:
        return FixedCourtesy(config.user_agent)
    agents = config.user_agents if config.random_user_agent else (config.user_agent,)
    return RandomCourtesy(agents, min_ms=config.jitter_min_ms, max_ms=config.jitter_max_ms, rng=rng)
