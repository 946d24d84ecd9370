"""Last-input-wins execution of async derivations, plus fixed-interval polling."""

from __future__ import annotations

import asyncio
import logging
from typing import Awaitable, Callable, Generic, Optional, TypeVar

logger = logging.getLogger(__name__)

T = TypeVar("T")


class LatestDerivation(Generic[T]):
    """
    Runs one derivation at a time for a changing set of inputs.

    Each ``run`` starts a new generation and cancels the in-flight task of
    the previous one. A result that completes for an older generation is
    discarded (``run`` returns None) and never becomes ``latest``.
    """

    def __init__(self, name: str = "derivation"):
        self._name = name
        self._generation = 0
        self._task: Optional[asyncio.Future] = None
        self.latest: Optional[T] = None

    @property
    def generation(self) -> int:
        return self._generation

    def is_current(self, generation: int) -> bool:
        return generation == self._generation

    async def run(self, factory: Callable[[], Awaitable[T]]) -> Optional[T]:
        self._generation += 1
        generation = self._generation
        if self._task is not None and not self._task.done():
            self._task.cancel()

        task = asyncio.ensure_future(factory())
        self._task = task
        try:
            value = await task
        except asyncio.CancelledError:
            if not self.is_current(generation):
                logger.debug("%s generation %d superseded", self._name, generation)
                return None
            raise

        if not self.is_current(generation):
            logger.debug(
                "%s generation %d finished after %d started, discarding",
                self._name,
                generation,
                self._generation,
            )
            return None
        # a derivation may itself decide its result is stale by returning None
        if value is not None:
            self.latest = value
        return value

    def cancel(self) -> None:
        """Invalidate everything in flight without starting a new derivation."""
        self._generation += 1
        if self._task is not None and not self._task.done():
            self._task.cancel()
        self._task = None


class QuotePoller(Generic[T]):
    """
    Re-runs a derivation every ``interval`` seconds until stopped.

    ``update`` swaps in new inputs and re-derives immediately; any run for
    the old inputs is cancelled by the underlying ``LatestDerivation``.
    """

    def __init__(
        self,
        derive: Callable[[], Awaitable[T]],
        interval: float = 15.0,
        on_result: Optional[Callable[[T], None]] = None,
    ):
        if interval <= 0:
            raise ValueError("interval must be positive")
        self._derive = derive
        self._interval = interval
        self._on_result = on_result
        self._derivation: LatestDerivation[T] = LatestDerivation("quote poll")
        self._stopped = asyncio.Event()

    @property
    def latest(self) -> Optional[T]:
        return self._derivation.latest

    async def refresh(self) -> Optional[T]:
        result = await self._derivation.run(self._derive)
        if result is not None and self._on_result is not None:
            self._on_result(result)
        return result

    async def update(self, derive: Callable[[], Awaitable[T]]) -> Optional[T]:
        self._derive = derive
        return await self.refresh()

    async def run(self) -> None:
        """Poll until ``stop``; a failed refresh is logged and retried next interval."""
        while not self._stopped.is_set():
            try:
                await self.refresh()
            except Exception as exc:
                logger.warning("quote refresh failed, retrying in %ss: %s", self._interval, exc)
            try:
                await asyncio.wait_for(self._stopped.wait(), timeout=self._interval)
            except asyncio.TimeoutError:
                continue

    def stop(self) -> None:
        self._stopped.set()
        self._derivation.cancel()
