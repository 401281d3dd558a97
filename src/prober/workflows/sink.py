"""Discovery sinks: append-only records of confirmed URLs."""

from __future__ import annotations

import asyncio
import logging
from pathlib import Path
from typing import Dict, List, Optional, TextIO

logger = logging.getLogger(__name__)


class DiscoverySink:
    """Base sink: serialises appends and keeps at most one record per outer key.

    Subclasses implement ``_write``. A failed write is logged and reported as
    not recorded; it never aborts the scan.
    """

    def __init__(self) -> None:
        self._lock = asyncio.Lock()
        self._by_outer: Dict[int, str] = {}

    @property
    def discoveries(self) -> Dict[int, str]:
        return dict(self._by_outer)

    async def record(self, url: str, outer: int) -> bool:
        """Append ``url`` unless ``outer`` already has a discovery. Returns True when written."""

        async with self._lock:
            existing = self._by_outer.get(outer)
            if existing is not None:
                logger.info("Duplicate discovery for outer key %d suppressed: %s (kept %s)", outer, url, existing)
                return False
            try:
                self._write(url)
            except OSError as exc:
                logger.error("Failed to record discovery %s: %s", url, exc)
                return False
            self._by_outer[outer] = url
            return True

    def _write(self, url: str) -> None:
        raise NotImplementedError

    def close(self) -> None:
        pass


class MemoryDiscoverySink(DiscoverySink):
    """In-memory sink, handy for tests and dry runs."""

    def __init__(self) -> None:
        super().__init__()
        self.lines: List[str] = []

    def _write(self, url: str) -> None:
        self.lines.append(url)


class FileDiscoverySink(DiscoverySink):
    """Plain-text sink: one URL per line, truncated when opened, flushed per record."""

    def __init__(self, path: Path) -> None:
        super().__init__()
        self.path = Path(path)
        self._fh: Optional[TextIO] = None

    def open(self) -> "FileDiscoverySink":
        if self._fh is None:
            if self.path.parent and not self.path.parent.exists():
                self.path.parent.mkdir(parents=True, exist_ok=True)
            # Fresh file per run, prior contents are discarded.
            self._fh = self.path.open("w", encoding="utf-8")
        return self

    def _write(self, url: str) -> None:
        if self._fh is None:
            self.open()
        assert self._fh is not None
        self._fh.write(url + "\n")
        self._fh.flush()

    def close(self) -> None:
        if self._fh is not None:
            try:
                self._fh.close()
            finally:
                self._fh = None

    def __enter__(self) -> "FileDiscoverySink":
        return self.open()

    def __exit__(self, *exc_info: object) -> None:
        self.close()
