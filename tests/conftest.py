import asyncio
from typing import Callable, Dict, List, Optional, Union

import pytest

from prober.workflows.transport import TransportError, TransportResult

Response = Union[int, TransportResult, TransportError]


class FakeTransport:
    """Scripted transport: url -> status (default 404), result, or error."""

    def __init__(
        self,
        responses: Optional[Dict[str, Response]] = None,
        *,
        default: Response = 404,
        delay: float = 0.0,
        on_request: Optional[Callable[[str], None]] = None,
    ) -> None:
        self.responses = responses or {}
        self.default = default
        self.delay = delay
        self.on_request = on_request
        self.calls: List[str] = []
        self.user_agents: List[str] = []
        self.in_flight = 0
        self.max_in_flight = 0

    async def probe(self, url: str, user_agent: str, timeout: float) -> TransportResult:
        self.calls.append(url)
        self.user_agents.append(user_agent)
        self.in_flight += 1
        self.max_in_flight = max(self.max_in_flight, self.in_flight)
        try:
            if self.on_request is not None:
                self.on_request(url)
            await asyncio.sleep(self.delay)
            response = self.responses.get(url, self.default)
            if isinstance(response, TransportError):
                raise response
            if isinstance(response, TransportResult):
                return response
            return TransportResult(url=url, status=response, final_url=url)
        finally:
            self.in_flight -= 1


@pytest.fixture
def fake_transport():
    return FakeTransport
