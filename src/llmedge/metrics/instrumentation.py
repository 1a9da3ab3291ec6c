"""Throughput instrumentation for token streams."""
from __future__ import annotations

import time
from dataclasses import dataclass
from typing import Callable


@dataclass
class GenerationMetrics:
    tokens_generated: int = 0
    elapsed_seconds: float = 0.0
    prompt_tokens: int = 0

    @property
    def tokens_per_second(self) -> float:
        if self.elapsed_seconds <= 0:
            return 0.0
        return self.tokens_generated / self.elapsed_seconds


class ThroughputMeter:
    """Wall-clock meter started on the first token pull after priming."""

    def __init__(self, prompt_tokens: int = 0, clock: Callable[[], float] = time.perf_counter) -> None:
        self._clock = clock
        self._start: float | None = None
        self._end: float | None = None
        self._tokens = 0
        self._prompt_tokens = prompt_tokens

    @property
    def started(self) -> bool:
        return self._start is not None

    def start(self) -> None:
        if self._start is None:
            self._start = self._clock()

    def record_token(self) -> None:
        self._tokens += 1

    def stop(self) -> GenerationMetrics:
        if self._end is None:
            self._end = self._clock()
        return self.snapshot()

    def snapshot(self) -> GenerationMetrics:
        elapsed = 0.0
        if self._start is not None:
            end = self._end if self._end is not None else self._clock()
            elapsed = max(0.0, end - self._start)
        return GenerationMetrics(
            tokens_generated=self._tokens,
            elapsed_seconds=elapsed,
            prompt_tokens=self._prompt_tokens,
        )
