"""URL templates and the candidate keys substituted into them."""

from __future__ import annotations

import re
from dataclasses import dataclass
from typing import Iterator
from urllib.parse import urlparse

from .probe_config import INNER_TOKEN, OUTER_TOKEN


class TemplateError(ValueError):
    """Raised when a URL template cannot produce well-formed candidate URLs."""


@dataclass(frozen=True)
class CandidateKey:
    """One point of the (inner, outer) id space."""

    inner: int
    outer: int


@dataclass(frozen=True)
class URLTemplate:
    """A URL containing an inner and an outer placeholder token.

    Substitution replaces every occurrence of both tokens in a single pass, so
    the digits written for one token can never be re-read as the other.
    """

    raw: str
    inner_token: str = INNER_TOKEN
    outer_token: str = OUTER_TOKEN

    def __post_init__(self) -> None:
        raw = (self.raw or "").strip()
        object.__setattr__(self, "raw", raw)
        if not self.inner_token or not self.outer_token:
            raise TemplateError("placeholder tokens must be non-empty")
        if self.inner_token == self.outer_token:
            raise TemplateError(f"placeholder tokens must be distinct (both are {self.inner_token!r})")
        missing = [tok for tok in (self.inner_token, self.outer_token) if tok not in raw]
        if missing:
            raise TemplateError(f"template is missing placeholder(s): {', '.join(missing)}")
        # Longest token first so a token that contains the other still wins.
        tokens = sorted((self.inner_token, self.outer_token), key=len, reverse=True)
        object.__setattr__(self, "_pattern", re.compile("|".join(re.escape(tok) for tok in tokens)))
        probe = self.substitute(CandidateKey(inner=0, outer=1))
        parsed = urlparse(probe)
        if parsed.scheme not in {"http", "https"} or not parsed.netloc:
            raise TemplateError(f"template does not produce an absolute http(s) URL: {self.raw}")

    def substitute(self, key: CandidateKey) -> str:
        values = {self.inner_token: str(key.inner), self.outer_token: str(key.outer)}
        return self._pattern.sub(lambda m: values[m.group(0)], self.raw)  # type: ignore[attr-defined]


def substitute(template: URLTemplate, key: CandidateKey) -> str:
    return template.substitute(key)


def candidates(outer: int, inner_start: int, inner_end: int) -> Iterator[CandidateKey]:
    """Yield keys for one outer key in increasing inner order (end exclusive)."""

    for inner in range(inner_start, inner_end):
        yield CandidateKey(inner=inner, outer=outer)
