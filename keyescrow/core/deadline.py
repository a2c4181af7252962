"""Time-bounded execution scope for protocol operations."""

import asyncio
from collections.abc import Awaitable
from typing import TypeVar

from keyescrow.core.errors import InternalError

T = TypeVar("T")


class OperationDeadline:
    """A single time budget shared by every awaited step of one operation.

    Each step runs under ``asyncio.wait_for`` with whatever is left of the
    budget, so a slow first step shortens the time available to the next.
    Expiry cancels the in-flight step and raises ``InternalError``.
    """

    def __init__(self, timeout: float) -> None:
        self.timeout = timeout
        self._expires_at = asyncio.get_running_loop().time() + timeout

    def remaining(self) -> float:
        """Seconds left in the budget, never negative."""
        return max(0.0, self._expires_at - asyncio.get_running_loop().time())

    @property
    def expired(self) -> bool:
        return self.remaining() <= 0.0

    async def run(self, awaitable: Awaitable[T], step: str) -> T:
        """Await ``awaitable`` within the remaining budget."""
        if self.expired:
            if asyncio.iscoroutine(awaitable):
                awaitable.close()
            raise InternalError(f"{step}: operation deadline already expired")
        try:
            return await asyncio.wait_for(awaitable, timeout=self.remaining())
        except asyncio.TimeoutError as e:
            raise InternalError(
                f"{step}: timed out after {self.timeout:.1f}s budget"
            ) from e
