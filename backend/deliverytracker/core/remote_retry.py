"""Helpers for retrying transient remote-store failures (dropped connections)."""

from __future__ import annotations

import asyncio
import random
from typing import Awaitable, Callable, TypeVar

import anyio
from loguru import logger
from sqlalchemy.exc import DBAPIError, IntegrityError, InterfaceError, OperationalError

from deliverytracker.core.config import settings
from deliverytracker.core.errors import RemoteUnavailable, UniquenessConflict

T = TypeVar("T")
PG_UNIQUE_VIOLATION = "23505"
# Postgres connection exceptions (class 08) and admin shutdown / cannot connect now.
PG_TRANSIENT_SQLSTATE_PREFIXES = ("08", "57P")


def _extract_sqlstate(exc: DBAPIError) -> str | None:
    orig = getattr(exc, "orig", None)
    if orig is None:
        return None
    return getattr(orig, "sqlstate", None) or getattr(orig, "pgcode", None)


def is_unique_violation(exc: BaseException) -> bool:
    if not isinstance(exc, IntegrityError):
        return False
    sqlstate = _extract_sqlstate(exc)
    if sqlstate == PG_UNIQUE_VIOLATION:
        return True
    message = str(getattr(exc, "orig", exc)).lower()
    return "unique" in message or "duplicate key" in message


def is_transient(exc: BaseException) -> bool:
    """True for failures that mean the remote store could not be reached."""

    if isinstance(exc, (TimeoutError, OSError, ConnectionError)):
        return True
    if isinstance(exc, DBAPIError) and exc.connection_invalidated:
        return True
    if isinstance(exc, (OperationalError, InterfaceError)):
        sqlstate = _extract_sqlstate(exc)
        if sqlstate is None:
            return True
        return sqlstate.startswith(PG_TRANSIENT_SQLSTATE_PREFIXES)
    return False


def translate_remote_error(exc: BaseException) -> BaseException:
    """Map a driver exception onto the sync error taxonomy (or return it unchanged)."""

    if is_unique_violation(exc):
        return UniquenessConflict(str(getattr(exc, "orig", exc)))
    if is_transient(exc):
        return RemoteUnavailable(f"Remote store unreachable: {exc}")
    return exc


async def with_remote_retry(
    operation: Callable[[], Awaitable[T]],
    *,
    attempts: int | None = None,
    base_delay: float | None = None,
    jitter: float | None = None,
    timeout: float | None = None,
) -> T:
    """Run the async operation under a timeout, retrying transient failures with jitter.

    The final failure is re-raised as ``RemoteUnavailable`` or
    ``UniquenessConflict``; other errors propagate untouched.
    """

    attempts = attempts or settings.REMOTE_RETRY_ATTEMPTS
    base_delay = base_delay if base_delay is not None else settings.REMOTE_RETRY_BASE_DELAY
    jitter = jitter if jitter is not None else settings.REMOTE_RETRY_JITTER
    timeout = timeout or settings.REMOTE_TIMEOUT_SEC
    last_error: BaseException | None = None
    for attempt in range(1, attempts + 1):
        try:
            with anyio.fail_after(timeout):
                return await operation()
        except Exception as exc:
            translated = translate_remote_error(exc)
            if not isinstance(translated, RemoteUnavailable):
                if translated is exc:
                    raise
                raise translated from exc
            last_error = exc
            if attempt == attempts:
                raise translated from exc
            sleep_for = base_delay * (2 ** (attempt - 1)) + random.uniform(0, jitter)
            logger.bind(
                attempt=attempt,
                max_attempts=attempts,
                sleep=sleep_for,
                error=str(exc),
            ).warning("remote_retry_transient")
            await asyncio.sleep(sleep_for)
    raise RemoteUnavailable(str(last_error) if last_error else None)
