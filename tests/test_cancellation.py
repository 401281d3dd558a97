import asyncio
import logging
import signal
import sys
import time

import pytest

from prober.workflows.cancellation import CancellationToken, install_signal_handlers


def test_cancel_is_monotonic():
    token = CancellationToken()
    assert not token.cancelled
    token.cancel()
    token.cancel()
    assert token.cancelled


def test_parent_cancels_children_but_not_the_reverse():
    parent = CancellationToken()
    child = parent.child()
    sibling = parent.child()

    child.cancel()
    assert child.cancelled
    assert not parent.cancelled
    assert not sibling.cancelled

    parent.cancel()
    assert sibling.cancelled


def test_child_of_cancelled_parent_starts_cancelled():
    parent = CancellationToken()
    parent.cancel()
    assert parent.child().cancelled


def test_sleep_runs_full_delay_when_not_cancelled():
    async def run():
        token = CancellationToken()
        return await token.sleep(0.01)

    assert asyncio.run(run()) is False


def test_sleep_wakes_early_on_cancellation():
    async def run():
        token = CancellationToken()
        loop = asyncio.get_running_loop()
        loop.call_later(0.02, token.cancel)
        started = loop.time()
        woke = await token.sleep(30)
        return woke, loop.time() - started

    woke, elapsed = asyncio.run(run())

    assert woke is True
    assert elapsed < 5


def test_child_sleep_wakes_when_parent_cancelled():
    async def run():
        parent = CancellationToken()
        child = parent.child()
        asyncio.get_running_loop().call_later(0.02, parent.cancel)
        return await child.sleep(30)

    assert asyncio.run(run()) is True


def test_sleep_on_cancelled_token_returns_immediately():
    token = CancellationToken()
    token.cancel()
    assert asyncio.run(token.sleep(30)) is True


@pytest.fixture
def restore_signal_handlers():
    previous = {sig: signal.getsignal(sig) for sig in (signal.SIGINT, signal.SIGTERM)}
    yield
    for sig, handler in previous.items():
        signal.signal(sig, handler)


class _LoopWithoutSignalSupport:
    """Stands in for event loops that cannot own signal handlers."""

    def add_signal_handler(self, sig, callback):
        raise NotImplementedError

    def remove_signal_handler(self, sig):
        raise NotImplementedError

    def call_soon_threadsafe(self, callback, *args):
        callback(*args)


@pytest.mark.skipif(sys.platform == "win32", reason="needs loop.add_signal_handler")
def test_first_sigint_stops_gracefully_and_restores_default(caplog, restore_signal_handlers):
    token = CancellationToken()

    async def run():
        install_signal_handlers(token)
        signal.raise_signal(signal.SIGINT)
        for _ in range(200):
            if token.cancelled:
                break
            await asyncio.sleep(0.01)
        return signal.getsignal(signal.SIGINT)

    with caplog.at_level(logging.WARNING, logger="prober.workflows.cancellation"):
        handler_after = asyncio.run(run())

    assert token.cancelled
    assert "Gracefully stopping" in caplog.text
    # a second Ctrl+C now raises KeyboardInterrupt
    assert handler_after is signal.default_int_handler


def test_fallback_handlers_restore_default_after_first_signal(caplog, restore_signal_handlers):
    token = CancellationToken()

    with caplog.at_level(logging.WARNING, logger="prober.workflows.cancellation"):
        install_signal_handlers(token, loop=_LoopWithoutSignalSupport())
        assert signal.getsignal(signal.SIGINT) is not signal.default_int_handler
        signal.raise_signal(signal.SIGINT)
        deadline = time.monotonic() + 2
        while not token.cancelled and time.monotonic() < deadline:
            time.sleep(0.01)

    assert token.cancelled
    assert "Gracefully stopping" in caplog.text
    assert signal.getsignal(signal.SIGINT) is signal.default_int_handler
    assert signal.getsignal(signal.SIGTERM) is signal.SIG_DFL
