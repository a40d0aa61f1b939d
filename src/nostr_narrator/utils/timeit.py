"""
Timing Utilities.

Used to attach durations to log lines and to the synthesis latency
histogram.

Example:
    with timeit("say") as t:
        await synthesizer.say(speaker, text)
    print(f"Took {t.timing.seconds:.3f}s")
"""
from __future__ import annotations

from dataclasses import dataclass
from time import perf_counter
from typing import Any, Dict, Optional


@dataclass
class Timing:
    """
    Timing measurement result.

    Attributes:
        name: What was timed (e.g., "say", "metadata_fetch").
        seconds: Duration in seconds.
        meta: Optional extra context.
    """
    name: str
    seconds: float
    meta: Optional[Dict[str, Any]] = None


class timeit:
    """
    Context manager for timing code blocks.

    Works around awaits too, since it only reads perf_counter() on entry
    and exit. The result is available as .timing after the block, or as
    .elapsed() while still inside it.
    """

    def __init__(self, name: str, meta: Optional[Dict[str, Any]] = None):
        self.name = name
        self.meta = meta
        self._t0: float | None = None
        self.timing: Timing | None = None

    def __enter__(self) -> "timeit":
        self._t0 = perf_counter()
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        t1 = perf_counter()
        assert self._t0 is not None
        self.timing = Timing(name=self.name, seconds=(t1 - self._t0), meta=self.meta)

    def elapsed(self) -> float:
        """Seconds since entering the block."""
        assert self._t0 is not None
        return perf_counter() - self._t0
