import asyncio

from prober.workflows.backoff import BackoffPolicy, RetryController
from prober.workflows.cancellation import CancellationToken
from prober.workflows.evaluator import OutcomeKind, ProbeOutcome

URL = "https://x.test/1-item-1"


class RecordingSleep:
    def __init__(self, token=None, cancel_on_call=None):
        self.delays = []
        self.token = token
        self.cancel_on_call = cancel_on_call

    async def __call__(self, delay: float) -> bool:
        self.delays.append(delay)
        if self.cancel_on_call is not None and len(self.delays) == self.cancel_on_call:
            self.token.cancel()
            return True
        return False


def _scripted(kinds):
    calls = []

    async def attempt(number: int) -> ProbeOutcome:
        calls.append(number)
        kind = kinds[min(len(calls), len(kinds)) - 1]
        return ProbeOutcome(kind, URL, status=429 if kind is OutcomeKind.RATE_LIMITED else 200)

    return attempt, calls


def test_policy_delays_are_linear():
    policy = BackoffPolicy(max_retries=3, base_delay=15.0)
    assert policy.max_attempts == 4
    assert [policy.delay_for(n) for n in (1, 2, 3)] == [15.0, 30.0, 45.0]


def test_exhausted_rate_limit_makes_four_attempts():
    token = CancellationToken()
    sleep = RecordingSleep()
    attempt, calls = _scripted([OutcomeKind.RATE_LIMITED])

    outcome = asyncio.run(RetryController(token, BackoffPolicy(3, 15.0), sleep=sleep).run(URL, attempt))

    assert outcome.kind is OutcomeKind.RATE_LIMITED
    assert outcome.attempts == 4
    assert calls == [1, 2, 3, 4]
    assert sleep.delays == [15.0, 30.0, 45.0]


def test_success_after_rate_limit_stops_retrying():
    token = CancellationToken()
    sleep = RecordingSleep()
    attempt, calls = _scripted([OutcomeKind.RATE_LIMITED, OutcomeKind.FOUND])

    outcome = asyncio.run(RetryController(token, BackoffPolicy(3, 2.0), sleep=sleep).run(URL, attempt))

    assert outcome.kind is OutcomeKind.FOUND
    assert outcome.attempts == 2
    assert calls == [1, 2]
    assert sleep.delays == [2.0]


def test_non_rate_limited_outcomes_are_not_retried():
    token = CancellationToken()
    sleep = RecordingSleep()
    for kind in (OutcomeKind.REJECTED, OutcomeKind.TRANSIENT_ERROR, OutcomeKind.FOUND):
        attempt, calls = _scripted([kind])
        outcome = asyncio.run(RetryController(token, sleep=sleep).run(URL, attempt))
        assert outcome.kind is kind
        assert calls == [1]
    assert sleep.delays == []


def test_cancelled_before_first_attempt():
    token = CancellationToken()
    token.cancel()
    attempt, calls = _scripted([OutcomeKind.FOUND])

    outcome = asyncio.run(RetryController(token, sleep=RecordingSleep()).run(URL, attempt))

    assert outcome.kind is OutcomeKind.CANCELLED
    assert outcome.attempts == 0
    assert calls == []


def test_cancelled_during_backoff_sleep():
    token = CancellationToken()
    sleep = RecordingSleep(token=token, cancel_on_call=2)
    attempt, calls = _scripted([OutcomeKind.RATE_LIMITED])

    outcome = asyncio.run(RetryController(token, BackoffPolicy(3, 1.0), sleep=sleep).run(URL, attempt))

    assert outcome.kind is OutcomeKind.CANCELLED
    assert calls == [1, 2]
    assert outcome.attempts == 2
    assert sleep.delays == [1.0, 2.0]


def test_default_sleep_wakes_on_cancellation():
    async def run():
        token = CancellationToken()
        attempt, calls = _scripted([OutcomeKind.RATE_LIMITED])
        controller = RetryController(token, BackoffPolicy(3, 30.0))
        loop = asyncio.get_running_loop()
        loop.call_later(0.05, token.cancel)
        started = loop.time()
        outcome = await controller.run(URL, attempt)
        return outcome, calls, loop.time() - started

    outcome, calls, elapsed = asyncio.run(run())

    assert outcome.kind is OutcomeKind.CANCELLED
    assert calls == [1]
    assert elapsed < 5
