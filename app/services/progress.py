"""Cosmetic progress simulation shown while a generator call is pending.

The simulator never observes the request it accompanies. It climbs towards
a ceiling below 100 on a fixed tick, and only ``complete()`` takes it to 100.
"""
import asyncio
import math
import random
from enum import Enum
from typing import Callable

from app.schemas.session import ProgressSnapshotSchema

BURST_RATE = 0.15
STEADY_RATE = 0.05
BURST_WINDOW = 50.0  # bigger steps allowed below this percentage

REVEAL_PHRASES = (
    "Reading Micro-Expressions",
    "Mapping Power Dynamics",
    "Processing Neural Patterns",
    "Extracting Tactical Insight",
    "Compiling Masterclass Analysis",
)


class ProgressMode(str, Enum):
    SETUP = "setup"
    REVEAL = "reveal"


def next_value(
    current: float,
    ceiling: float,
    burst_allowed: bool = True,
    rand: Callable[[], float] = random.random,
) -> float:
    """Advance current by a random step proportional to the distance to 100.

    The result always stays strictly below ceiling.
    """
    if current >= ceiling:
        return current
    rate = BURST_RATE if burst_allowed else STEADY_RATE
    step = rand() * rate * (100.0 - current)
    candidate = current + min(step, (ceiling - current) / 2)
    return candidate if candidate < ceiling else current


def phrase_for(percentage: float, phrases: tuple[str, ...]) -> str | None:
    if not phrases:
        return None
    idx = math.floor(percentage / 100 * len(phrases))
    return phrases[max(0, min(idx, len(phrases) - 1))]


class ProgressSimulator:
    def __init__(
        self,
        tick_seconds: float = 0.4,
        ceiling: float = 95.0,
        settle_seconds: float = 0.3,
        rand: Callable[[], float] = random.random,
        phrases: tuple[str, ...] = REVEAL_PHRASES,
    ):
        if not 0 < ceiling < 100:
            raise ValueError("ceiling must be between 0 and 100 (exclusive)")
        self.tick_seconds = tick_seconds
        self.ceiling = ceiling
        self.settle_seconds = settle_seconds
        self.rand = rand
        self.phrases = phrases

        self.value = 0.0
        self.phrase: str | None = None
        self._mode = ProgressMode.SETUP
        self._task: asyncio.Task | None = None
        self._settle_handle: asyncio.TimerHandle | None = None

    @property
    def active(self) -> bool:
        return self._task is not None and not self._task.done()

    def start(self, mode: ProgressMode = ProgressMode.SETUP) -> None:
        """Reset to 0 and begin ticking; needs a running event loop."""
        self._clear_handles()
        self._mode = mode
        self.value = 0.0
        self.phrase = self._current_phrase()
        self._task = asyncio.get_running_loop().create_task(self._run())

    def tick(self) -> float:
        self.value = next_value(
            self.value, self.ceiling, burst_allowed=self.value < BURST_WINDOW, rand=self.rand
        )
        self.phrase = self._current_phrase()
        return self.value

    def complete(self) -> None:
        """Jump to 100, then return to idle after the settle delay."""
        self._clear_handles()
        self.value = 100.0
        self.phrase = self._current_phrase()
        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            self._settle()
            return
        self._settle_handle = loop.call_later(self.settle_seconds, self._settle)

    def cancel(self) -> None:
        """Stop ticking where we are; no jump, no reset."""
        self._clear_handles()

    def close(self) -> None:
        self._clear_handles()
        self.value = 0.0
        self.phrase = None

    def snapshot(self) -> ProgressSnapshotSchema:
        return ProgressSnapshotSchema(value=self.value, phrase=self.phrase, active=self.active)

    def _current_phrase(self) -> str | None:
        if self._mode is not ProgressMode.REVEAL:
            return None
        return phrase_for(self.value, self.phrases)

    def _settle(self) -> None:
        self._settle_handle = None
        self.value = 0.0
        self.phrase = None

    def _clear_handles(self) -> None:
        if self._task is not None:
            self._task.cancel()
            self._task = None
        if self._settle_handle is not None:
            self._settle_handle.cancel()
            self._settle_handle = None

    async def _run(self) -> None:
        while True:
            await asyncio.sleep(self.tick_seconds)
            self.tick()
