"""Shared test doubles: a scripted in-memory inference engine."""

from __future__ import annotations

import threading
import time

from llmedge.engines.base import InferenceParams


class FakeEngine:
    """Replays a fixed token script after every prime."""

    def __init__(
        self,
        tokens: list[str] | None = None,
        load_error: Exception | None = None,
        prime_error: Exception | None = None,
        fail_at: int | None = None,
        context: int = 2048,
        template: str | None = None,
        delay: float = 0.0,
        gate: threading.Event | None = None,
        entered: threading.Event | None = None,
    ) -> None:
        self.script = list(tokens) if tokens is not None else ["Hello", ",", " world"]
        self.load_error = load_error
        self.prime_error = prime_error
        self.fail_at = fail_at
        self.context = context
        self.template = template
        self.delay = delay
        self.gate = gate
        self.entered = entered
        self.loaded_path: str | None = None
        self.load_calls = 0
        self.unload_calls = 0
        self.prompts: list[str] = []
        self.primed: list[list[int]] = []
        self.next_calls = 0
        self._queue: list[str] = []
        self._emitted = 0

    def load(self, model_path: str, params: InferenceParams) -> None:
        self.load_calls += 1
        if self.load_error is not None:
            raise self.load_error
        self.loaded_path = model_path

    def unload(self) -> None:
        self.unload_calls += 1
        self.loaded_path = None

    def tokenize(self, text: str) -> list[int]:
        self.prompts.append(text)
        return list(range(len(text.split())))

    def prime(self, tokens: list[int]) -> None:
        if self.prime_error is not None:
            raise self.prime_error
        self.primed.append(tokens)
        self._queue = list(self.script)
        self._emitted = 0

    def next_token(self, params: InferenceParams) -> str | None:
        self.next_calls += 1
        if self.entered is not None:
            self.entered.set()
        if self.gate is not None:
            self.gate.wait(timeout=5)
        if self.delay:
            time.sleep(self.delay)
        if self.fail_at is not None and self._emitted == self.fail_at:
            raise RuntimeError("native decode failed")
        if not self._queue:
            return None
        self._emitted += 1
        return self._queue.pop(0)

    def context_size(self) -> int:
        return self.context

    def special_tokens(self) -> tuple[str, str]:
        return "<s>", "</s>"

    def chat_template(self) -> str | None:
        return self.template


__all__ = ["FakeEngine"]
