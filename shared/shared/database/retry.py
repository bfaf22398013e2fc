"""Retry wrapper for units of work that hit stale prepared statements.

Transaction-mode poolers (PgBouncer, Supabase pooler) may hand a session a
server connection that never saw the statement asyncpg prepared on another
one. Postgres then answers with SQLSTATE 26000 (invalid statement name) or
42P05 (duplicate prepared statement). Those failures go away on a fresh
connection, so the whole unit of work is replayed with exponential backoff.
"""

import asyncio
import logging
from collections.abc import Awaitable, Callable
from typing import TypeVar

from sqlalchemy.exc import DBAPIError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

logger = logging.getLogger(__name__)

T = TypeVar("T")

_TRANSIENT_SQLSTATES = frozenset({"26000", "42P05"})


class StoreUnavailableError(Exception):
    """Raised when a unit of work still fails after every retry attempt."""

    def __init__(self, attempts: int) -> None:
        self.attempts = attempts
        super().__init__(f"Database unavailable after {attempts} attempts")


def _sqlstate(exc: DBAPIError) -> str | None:
    orig = exc.orig
    for candidate in (orig, getattr(orig, "__cause__", None)):
        if candidate is None:
            continue
        code = getattr(candidate, "sqlstate", None) or getattr(candidate, "pgcode", None)
        if code:
            return str(code)
    return None


def is_transient_store_error(exc: BaseException) -> bool:
    if not isinstance(exc, DBAPIError):
        return False
    if _sqlstate(exc) in _TRANSIENT_SQLSTATES:
        return True
    return "prepared statement" in str(exc.orig or exc).lower()


async def run_in_session(
    session_factory: async_sessionmaker[AsyncSession],
    work: Callable[[AsyncSession], Awaitable[T]],
    *,
    attempts: int = 3,
    base_delay: float = 1.0,
) -> T:
    """Run ``work`` in a fresh session and commit, retrying transient failures.

    Each attempt gets its own session; the connection of a failed attempt is
    invalidated so the pool does not hand it out again. Non-transient errors
    propagate untouched on the first occurrence.
    """
    attempts = max(1, attempts)
    attempt = 1
    while True:
        async with session_factory() as session:
            try:
                result = await work(session)
                await session.commit()
                return result
            except DBAPIError as exc:
                if not is_transient_store_error(exc):
                    raise
                await session.invalidate()
                if attempt >= attempts:
                    logger.error("Prepared statement error persisted after %d attempts", attempts)
                    raise StoreUnavailableError(attempts) from exc
        delay = base_delay * 2 ** (attempt - 1)
        logger.warning(
            "Prepared statement error on attempt %d/%d, retrying in %.1fs",
            attempt,
            attempts,
            delay,
        )
        await asyncio.sleep(delay)
        attempt += 1
