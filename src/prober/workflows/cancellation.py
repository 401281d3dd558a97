"""Cooperative cancellation shared by every round and probe of a scan."""

from __future__ import annotations

import asyncio
import logging
import signal
import weakref
from typing import List, Optional

logger = logging.getLogger(__name__)


class CancellationToken:
    """Monotonic stop flag: set at most once, never cleared.

    A child token is cancelled whenever its parent is, but cancelling a child
    leaves the parent untouched. Schedulers hand a child to the probes of one
    round so a short-circuit can silence stragglers without stopping the scan.
    """

    def __init__(self, parent: Optional["CancellationToken"] = None) -> None:
        self._cancelled = False
        self._event: Optional[asyncio.Event] = None
        self._children: "weakref.WeakSet[CancellationToken]" = weakref.WeakSet()
        if parent is not None:
            parent._children.add(self)
            if parent.cancelled:
                self._cancelled = True

    @property
    def cancelled(self) -> bool:
        return self._cancelled

    def cancel(self) -> None:
        if self._cancelled:
            return
        self._cancelled = True
        if self._event is not None:
            self._event.set()
        for child in list(self._children):
            child.cancel()

    def child(self) -> "CancellationToken":
        return CancellationToken(parent=self)

    def _get_event(self) -> asyncio.Event:
        if self._event is None:
            self._event = asyncio.Event()
            if self._cancelled:
                self._event.set()
        return self._event

    async def sleep(self, delay: float) -> bool:
        """Sleep up to ``delay`` seconds; wake early on cancellation.

        Returns True when the token is cancelled on resumption.
        """
        if self._cancelled:
            return True
        if delay <= 0:
            await asyncio.sleep(0)
            return self._cancelled
        try:
            await asyncio.wait_for(self._get_event().wait(), timeout=delay)
        except asyncio.TimeoutError:
            pass
        return self._cancelled


def install_signal_handlers(token: CancellationToken, loop: Optional[asyncio.AbstractEventLoop] = None) -> None:
    """Route the first SIGINT/SIGTERM to a graceful stop.

    After the first signal the handlers are removed, so a second Ctrl+C gets
    Python's default KeyboardInterrupt and ends the process.
    """

    loop = loop or asyncio.get_running_loop()
    signals = (signal.SIGINT, signal.SIGTERM)
    # Signals routed through signal.signal because the loop cannot own them.
    fallback: List[signal.Signals] = []

    def _restore_defaults() -> None:
        for sig in signals:
            try:
                loop.remove_signal_handler(sig)
            except (NotImplementedError, RuntimeError, ValueError):
                pass
        for sig in fallback:
            try:
                signal.signal(sig, signal.default_int_handler if sig == signal.SIGINT else signal.SIG_DFL)
            except ValueError:
                logger.debug("cannot restore handler for %s outside the main thread", sig)

    def _stop(*_: object) -> None:
        if not token.cancelled:
            logger.warning("Gracefully stopping... (Ctrl+C again to force quit)")
        token.cancel()
        _restore_defaults()

    for sig in signals:
        try:
            loop.add_signal_handler(sig, _stop)
        except (NotImplementedError, RuntimeError):
            # add_signal_handler is unavailable on some platforms (e.g. Windows).
            try:
                signal.signal(sig, lambda *_: loop.call_soon_threadsafe(_stop))
            except ValueError:
                logger.debug("cannot install handler for %s outside the main thread", sig)
            else:
                fallback.append(sig)
