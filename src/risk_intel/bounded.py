"""Bounded external calls with a fallback value."""

from __future__ import annotations

import asyncio
import logging
from typing import Awaitable, Callable, TypeVar

from .errors import ParseError, ProviderTimeout, ProviderUnavailable

logger = logging.getLogger(__name__)

T = TypeVar("T")

Fallback = Callable[[Exception], T]


def constant(value: T) -> Fallback:
    """Fallback producer that ignores the error and returns ``value``."""

    def _fallback(_: Exception) -> T:
        return value

    return _fallback


async def bounded_call(
    factory: Callable[[], Awaitable[T]],
    *,
    timeout: float,
    fallback: Fallback,
    label: str,
) -> T:
    """
    Await ``factory()`` for at most ``timeout`` seconds.

    Expiry, provider errors, parse errors and unexpected exceptions all resolve
    to ``fallback(error)``; the caller never sees them. Cancellation still
    propagates so shutdown is not masked.
    """
    try:
        return await asyncio.wait_for(factory(), timeout=timeout)
    except asyncio.TimeoutError:
        error: Exception = ProviderTimeout(f"{label} exceeded {timeout:.1f}s")
        logger.warning("%s timed out after %.1fs; using fallback", label, timeout)
    except (ProviderUnavailable, ParseError) as exc:
        error = exc
        logger.warning("%s degraded: %s", label, exc)
    except Exception as exc:  # noqa: BLE001 - every failure maps to the fallback
        error = exc
        logger.exception("%s failed unexpectedly; using fallback", label)
    return fallback(error)
