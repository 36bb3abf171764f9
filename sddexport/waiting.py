"""Await helpers used while the rendering surface settles.

Image loads are awaited individually with a cap; an error or a timeout
settles the wait instead of failing it, so one slow or broken image can
only delay the capture, never abort it.
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from enum import Enum
from typing import Any, Awaitable, Iterable, Optional

logger = logging.getLogger(__name__)


class Outcome(Enum):
    OK = "ok"
    ERROR = "error"
    TIMEOUT = "timeout"


@dataclass(frozen=True)
class Settled:
    outcome: Outcome
    value: Any = None
    error: Optional[BaseException] = None

    @property
    def ok(self) -> bool:
        return self.outcome is Outcome.OK


async def with_timeout(awaitable: Awaitable[Any], timeout: float) -> Settled:
    """Await *awaitable* for at most *timeout* seconds and report how it settled."""
    try:
        value = await asyncio.wait_for(awaitable, timeout)
    except asyncio.TimeoutError:
        return Settled(Outcome.TIMEOUT)
    except Exception as exc:
        return Settled(Outcome.ERROR, error=exc)
    return Settled(Outcome.OK, value=value)


async def wait_all_settled(
    awaitables: Iterable[Awaitable[Any]],
    timeout: float,
) -> list[Settled]:
    """Await every awaitable concurrently, each capped at *timeout* seconds.

    Results keep the input order.  Never raises for a failed or slow
    awaitable.
    """
    results = await asyncio.gather(*(with_timeout(a, timeout) for a in awaitables))
    failed = sum(1 for r in results if not r.ok)
    if failed:
        logger.warning("%d of %d wait(s) did not complete normally", failed, len(results))
    return list(results)


async def settle(delay: float) -> None:
    """Give the surface *delay* seconds of layout time."""
    if delay > 0:
        await asyncio.sleep(delay)
