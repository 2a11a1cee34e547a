"""Centralized retry / backoff helpers.

Provides a single small function ``run_with_retries`` that encapsulates
exponential backoff with jitter and simple classification of transient
remote failure modes (rate limits, gateway errors, dropped connections).

Environment overrides:
  FORGESYNC_RETRY_ATTEMPTS (default 3)
  FORGESYNC_RETRY_BASE (seconds base, default 0.5)
  FORGESYNC_RETRY_MAX_SLEEP (cap for a single sleep, unset = no cap)

The caller supplies a thunk returning the desired result or raising
``RemoteAPIError``. Only transient errors trigger a retry; other failures
(404, 409, validation errors, ...) propagate immediately.
"""

from __future__ import annotations

import os
import random
import re
import time
from collections.abc import Callable
from dataclasses import dataclass, field
from typing import TypeVar

from .errors import RemoteAPIError
from .logging import get_logger

T = TypeVar("T")

TRANSIENT_STATUS = frozenset({429, 502, 503, 504})

TRANSIENT_TOKENS = (
    "rate limit",
    "too many requests",
    "temporarily unavailable",
)

_RE_RETRY_AFTER = re.compile(r"retry[-\s]after:?\s*(\d+)", re.IGNORECASE)
_JITTER = random.SystemRandom()


def _extract_explicit_backoff(exc: RemoteAPIError) -> float | None:
    """Return an explicit backoff (seconds) from the error, if one was sent.

    The ``Retry-After`` header value wins; otherwise the response body is
    scanned for ``Retry-After: 12`` / ``retry after 12``.
    """
    if exc.retry_after is not None and exc.retry_after > 0:
        return exc.retry_after
    text = exc.response_text or ""
    if not text:
        return None
    m = _RE_RETRY_AFTER.search(text)
    if m:
        val = float(m.group(1))
        return val if val > 0 else None
    return None


def _env_int(name: str, default: int) -> int:
    try:
        return int(os.environ.get(name, str(default)))
    except ValueError:
        return default


def _env_float(name: str, default: float) -> float:
    try:
        return float(os.environ.get(name, str(default)))
    except ValueError:
        return default


@dataclass
class RetryConfig:
    attempts: int = field(default_factory=lambda: _env_int("FORGESYNC_RETRY_ATTEMPTS", 3))
    base_sleep: float = field(default_factory=lambda: _env_float("FORGESYNC_RETRY_BASE", 0.5))
    max_sleep: float | None = None


def is_transient(exc: RemoteAPIError) -> bool:
    if exc.status is None:
        return True
    if exc.status in TRANSIENT_STATUS:
        return True
    text = f"{exc} {exc.response_text or ''}".lower()
    return any(tok in text for tok in TRANSIENT_TOKENS)


def _compute_sleep(attempt: int, cfg: RetryConfig, exc: RemoteAPIError) -> float:
    explicit = _extract_explicit_backoff(exc)
    backoff = cfg.base_sleep * (2 ** (attempt - 1)) + _JITTER.uniform(0, 0.25)
    sleep_for: float = explicit if explicit is not None else backoff
    cap = cfg.max_sleep
    if cap is None:
        max_cap_env = os.environ.get("FORGESYNC_RETRY_MAX_SLEEP")
        if max_cap_env:
            try:
                cap = float(max_cap_env)
            except ValueError:  # pragma: no cover
                cap = None
    if cap is not None and cap >= 0:
        sleep_for = min(sleep_for, cap)
    return sleep_for


def _handle_remote_error(
    exc: RemoteAPIError, attempt: int, attempts: int, cfg: RetryConfig
) -> bool:
    if attempt >= attempts or not is_transient(exc):
        return False
    sleep_for = _compute_sleep(attempt, cfg, exc)
    get_logger().debug(
        f"[retry] transient error, attempt {attempt}/{attempts}, sleeping {sleep_for:.2f}s",
        status=exc.status,
    )
    time.sleep(sleep_for)
    return True


def run_with_retries(fn: Callable[[], T], *, cfg: RetryConfig | None = None) -> T:
    cfg = cfg or RetryConfig()
    attempts = max(1, cfg.attempts)
    for attempt in range(1, attempts + 1):
        try:
            return fn()
        except RemoteAPIError as exc:
            if not _handle_remote_error(exc, attempt, attempts, cfg):
                raise
    raise RuntimeError("retry logic exited unexpectedly")  # pragma: no cover


__all__ = ["RetryConfig", "run_with_retries", "is_transient", "TRANSIENT_STATUS"]
