"""Inference session: one loaded model, one conversation, one stream at a time."""
from __future__ import annotations

import asyncio
import itertools
import logging
import os
import threading
import time
import weakref
from enum import Enum
from typing import Callable

from .engines.base import ChatMessage, InferenceEngine, InferenceParams, Role
from .exceptions import (
    GenerationAbortedError,
    GenerationError,
    InvalidConfigError,
    LoadError,
    LoadFailure,
    SessionBusyError,
    SessionClosedError,
    SessionStateError,
)
from .metrics.instrumentation import GenerationMetrics, ThroughputMeter
from .prompts import render_prompt

logger = logging.getLogger(__name__)

_END = object()


class SessionState(str, Enum):
    UNLOADED = "unloaded"
    LOADING = "loading"
    READY = "ready"
    GENERATING = "generating"
    CLOSED = "closed"


class TokenStream:
    """Lazy, single-pass stream of generated tokens.

    Every pull asks the engine for one more token. Closing the stream before
    it is exhausted returns the session to ``READY`` without recording the
    assistant reply; the user turn stays in history. The session only holds a
    weak reference to its stream, so dropping an unfinished stream closes it.
    """

    def __init__(self, session: "InferenceSession", meter: ThroughputMeter, max_tokens: int | None) -> None:
        self._session = session
        self._key = next(session._stream_keys)
        self._meter = meter
        self._max_tokens = max_tokens
        self._pieces: list[str] = []
        self._pull_lock = threading.Lock()
        self._finished = False
        self._aborted = False

    @property
    def text(self) -> str:
        return "".join(self._pieces)

    @property
    def finished(self) -> bool:
        return self._finished

    @property
    def aborted(self) -> bool:
        return self._aborted

    @property
    def metrics(self) -> GenerationMetrics:
        return self._meter.snapshot()

    def __iter__(self) -> "TokenStream":
        return self

    def __next__(self) -> str:
        token = self._pull()
        if token is _END:
            raise StopIteration
        return token

    def __aiter__(self) -> "TokenStream":
        return self

    async def __anext__(self) -> str:
        token = await asyncio.to_thread(self._pull)
        if token is _END:
            raise StopAsyncIteration
        return token

    def _pull(self):
        if not self._pull_lock.acquire(blocking=False):
            raise SessionBusyError("Token stream is already being consumed")
        try:
            if self._aborted:
                raise GenerationAbortedError("Token stream was closed before completion")
            if self._finished:
                return _END
            return self._session._advance(self)
        finally:
            self._pull_lock.release()

    def close(self) -> None:
        if self._finished:
            return
        if not self._pull_lock.acquire(blocking=False):
            raise SessionBusyError("Cannot close a token stream while a token is being produced")
        try:
            self._session._abandon(self)
        finally:
            self._pull_lock.release()

    def __enter__(self) -> "TokenStream":
        return self

    def __exit__(self, *exc_info) -> None:
        self.close()

    def __del__(self) -> None:
        if not getattr(self, "_finished", True):
            self.close()


class InferenceSession:
    """State machine around an exclusively owned inference engine."""

    def __init__(self, engine: InferenceEngine | None = None, clock: Callable[[], float] = time.perf_counter) -> None:
        if engine is None:
            from .engines.llama_cpp_engine import LlamaCppEngine

            engine = LlamaCppEngine()
        self._engine = engine
        self._clock = clock
        self._lock = threading.RLock()
        self._state = SessionState.UNLOADED
        self._model_path: str | None = None
        self._params: InferenceParams | None = None
        self._history: list[ChatMessage] = []
        self._last_metrics: GenerationMetrics | None = None
        self._stream_keys = itertools.count(1)
        self._stream_key: int | None = None
        self._stream_ref: weakref.ref[TokenStream] | None = None

    @property
    def state(self) -> SessionState:
        return self._state

    @property
    def history(self) -> tuple[ChatMessage, ...]:
        return tuple(self._history)

    @property
    def params(self) -> InferenceParams | None:
        return self._params

    @property
    def model_path(self) -> str | None:
        return self._model_path

    @property
    def last_metrics(self) -> GenerationMetrics | None:
        return self._last_metrics

    @property
    def context_size(self) -> int:
        with self._lock:
            self._check(SessionState.READY, SessionState.GENERATING)
        return self._engine.context_size()

    def _reap_dropped_stream(self) -> None:
        # Caller holds self._lock. A cyclic gc pass clears the weakref before running __del__.
        if self._state is SessionState.GENERATING and self._stream_ref is not None and self._stream_ref() is None:
            logger.info("Token stream was dropped before completion")
            self._stream_key = None
            self._stream_ref = None
            self._state = SessionState.READY

    def _check(self, *allowed: SessionState) -> None:
        self._reap_dropped_stream()
        state = self._state
        if state in allowed:
            return
        if state is SessionState.CLOSED:
            raise SessionClosedError("Session is closed")
        if state in (SessionState.LOADING, SessionState.GENERATING):
            raise SessionBusyError(f"Session is busy ({state.value})")
        raise SessionStateError(f"Operation not valid while {state.value}")

    def load(self, model_path: str, params: InferenceParams) -> None:
        with self._lock:
            self._check(SessionState.UNLOADED)
            try:
                params.validate()
            except InvalidConfigError as exc:
                raise LoadError(LoadFailure.INVALID_PARAMS, model_path, str(exc)) from exc
            if not os.path.isfile(model_path):
                raise LoadError(LoadFailure.FILE_NOT_FOUND, model_path, "no such file")
            self._state = SessionState.LOADING

        logger.info("Loading model %s", model_path)
        try:
            self._engine.load(model_path, params)
        except BaseException:
            self._engine.unload()
            with self._lock:
                self._state = SessionState.UNLOADED
            logger.exception("Failed to load model %s", model_path)
            raise

        with self._lock:
            self._model_path = model_path
            self._params = params
            self._history = []
            self._last_metrics = None
            self._state = SessionState.READY

    def unload(self) -> None:
        with self._lock:
            self._check(SessionState.READY)
            self._engine.unload()
            logger.info("Unloaded model %s", self._model_path)
            self._model_path = None
            self._params = None
            self._history = []
            self._state = SessionState.UNLOADED

    def add_message(self, role: Role | str, content: str) -> None:
        message = ChatMessage(Role(role), content)
        with self._lock:
            self._check(SessionState.READY)
            self._history.append(message)

    def add_system_prompt(self, content: str) -> None:
        """Set the system prompt, replacing an earlier one at the head."""
        message = ChatMessage(Role.SYSTEM, content)
        with self._lock:
            self._check(SessionState.READY)
            if self._history and self._history[0].role is Role.SYSTEM:
                self._history[0] = message
            else:
                self._history.insert(0, message)

    def _resolve_template(self) -> str:
        if self._params.chat_template:
            return self._params.chat_template
        return self._engine.chat_template() or ""

    def generate_response(self, query: str, max_tokens: int | None = None) -> TokenStream:
        if max_tokens is not None and max_tokens < 1:
            raise InvalidConfigError(f"max_tokens must be >= 1, got {max_tokens}")
        with self._lock:
            self._check(SessionState.READY)
            user = ChatMessage(Role.USER, query)
            if self._params.store_chats:
                self._history.append(user)
                messages = list(self._history)
            else:
                messages = [m for m in self._history if m.role is Role.SYSTEM] + [user]
            self._state = SessionState.GENERATING

        try:
            bos, eos = self._engine.special_tokens()
            prompt = render_prompt(messages, self._resolve_template(), bos_token=bos, eos_token=eos)
            tokens = self._engine.tokenize(prompt)
            self._engine.prime(tokens)
        except Exception as exc:
            with self._lock:
                if self._params.store_chats:
                    self._history.pop()
                self._state = SessionState.READY
            if isinstance(exc, GenerationError):
                raise
            raise GenerationError(f"Failed to prime the engine: {exc}") from exc

        meter = ThroughputMeter(prompt_tokens=len(tokens), clock=self._clock)
        stream = TokenStream(self, meter, max_tokens)
        with self._lock:
            self._stream_key = stream._key
            self._stream_ref = weakref.ref(stream)
        logger.debug("Primed %d prompt tokens", len(tokens))
        return stream

    def _advance(self, stream: TokenStream):
        meter = stream._meter
        meter.start()
        limit = stream._max_tokens
        if limit is not None and meter.snapshot().tokens_generated >= limit:
            self._complete(stream)
            return _END
        try:
            token = self._engine.next_token(self._params)
        except Exception as exc:
            self._release(stream)
            stream._finished = True
            if isinstance(exc, GenerationError):
                raise
            raise GenerationError(f"Engine failed during generation: {exc}") from exc
        if token is None:
            self._complete(stream)
            return _END
        meter.record_token()
        stream._pieces.append(token)
        return token

    def _complete(self, stream: TokenStream) -> None:
        metrics = stream._meter.stop()
        with self._lock:
            if self._params.store_chats:
                self._history.append(ChatMessage(Role.ASSISTANT, stream.text))
            self._last_metrics = metrics
            self._stream_key = None
            self._stream_ref = None
            self._state = SessionState.READY
        stream._finished = True
        logger.info(
            "Generated %d tokens in %.2fs (%.2f tokens/s)",
            metrics.tokens_generated,
            metrics.elapsed_seconds,
            metrics.tokens_per_second,
        )

    def _release(self, stream: TokenStream) -> None:
        with self._lock:
            if self._stream_key == stream._key:
                self._stream_key = None
                self._stream_ref = None
                self._state = SessionState.READY

    def _abandon(self, stream: TokenStream) -> None:
        self._release(stream)
        stream._aborted = True
        stream._finished = True
        logger.info("Token stream closed after %d tokens", stream._meter.snapshot().tokens_generated)

    def get_response_generation_speed(self) -> float:
        with self._lock:
            self._check(SessionState.UNLOADED, SessionState.LOADING, SessionState.READY, SessionState.GENERATING)
            metrics = self._last_metrics
        if metrics is None:
            return 0.0
        return metrics.tokens_per_second

    def close(self) -> None:
        with self._lock:
            self._reap_dropped_stream()
            if self._state is SessionState.CLOSED:
                return
            if self._state in (SessionState.LOADING, SessionState.GENERATING):
                raise SessionBusyError(f"Cannot close while {self._state.value}")
            if self._state is SessionState.READY:
                self._engine.unload()
                logger.info("Closed session for %s", self._model_path)
            self._history = []
            self._state = SessionState.CLOSED

    def __enter__(self) -> "InferenceSession":
        return self

    def __exit__(self, *exc_info) -> None:
        stream = self._stream_ref() if self._stream_ref is not None else None
        if stream is not None:
            stream.close()
        self.close()
