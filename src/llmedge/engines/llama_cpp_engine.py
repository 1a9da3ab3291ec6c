"""llama.cpp engine implementation."""
from __future__ import annotations

import codecs
import logging
from typing import Any

from llama_cpp import Llama

from .base import InferenceParams
from ..exceptions import GenerationError, LoadError, LoadFailure, MetadataReadError
from ..metadata import read_context_size

logger = logging.getLogger(__name__)


def _resolve_context_size(model_path: str, params: InferenceParams) -> int:
    if params.context_size > 0:
        return params.context_size
    try:
        trained = read_context_size(model_path)
    except MetadataReadError as exc:
        logger.warning("Could not read trained context size: %s", exc)
        return 0
    # 0 lets llama.cpp fall back to the trained size itself
    return trained or 0


def _end_of_generation_ids(llm: Any) -> set[int]:
    ids = {llm.token_eos()}
    eot = llm.metadata.get("tokenizer.ggml.eot_token_id")
    if eot is not None:
        ids.add(int(eot))
    return ids


class LlamaCppEngine:
    def __init__(self) -> None:
        self._llm: Llama | None = None
        self._stop_ids: set[int] = set()
        self._decoder: Any | None = None

    def load(self, model_path: str, params: InferenceParams) -> None:
        n_ctx = _resolve_context_size(model_path, params)
        try:
            self._llm = Llama(
                model_path=model_path,
                n_ctx=n_ctx,
                n_threads=params.num_threads,
                use_mmap=params.use_mmap,
                use_mlock=params.use_mlock,
                verbose=False,
            )
        except MemoryError as exc:
            raise LoadError(LoadFailure.OUT_OF_MEMORY, model_path, str(exc)) from exc
        except (ValueError, RuntimeError) as exc:
            reason = LoadFailure.UNSUPPORTED_FORMAT
            if "context" in str(exc).lower():
                reason = LoadFailure.OUT_OF_MEMORY
            raise LoadError(reason, model_path, str(exc)) from exc
        self._stop_ids = _end_of_generation_ids(self._llm)
        logger.info("Loaded %s with n_ctx=%d", model_path, self._llm.n_ctx())

    def unload(self) -> None:
        if self._llm is not None:
            self._llm.close()
        self._llm = None
        self._stop_ids = set()
        self._decoder = None

    def _require(self) -> Llama:
        if self._llm is None:
            raise GenerationError("Engine not loaded")
        return self._llm

    def tokenize(self, text: str) -> list[int]:
        # The chat template already places the BOS marker
        return self._require().tokenize(text.encode("utf-8"), add_bos=False, special=True)

    def prime(self, tokens: list[int]) -> None:
        llm = self._require()
        if len(tokens) >= llm.n_ctx():
            raise GenerationError(
                f"Prompt of {len(tokens)} tokens does not fit a context of {llm.n_ctx()}"
            )
        llm.reset()
        try:
            llm.eval(tokens)
        except RuntimeError as exc:
            raise GenerationError(f"Failed to evaluate prompt: {exc}") from exc
        self._decoder = codecs.getincrementaldecoder("utf-8")(errors="replace")

    def next_token(self, params: InferenceParams) -> str | None:
        llm = self._require()
        if self._decoder is None:
            raise GenerationError("Engine not primed")
        while True:
            if llm.n_tokens >= llm.n_ctx():
                return None
            token = llm.sample(
                top_k=0,
                top_p=1.0,
                min_p=params.min_p,
                temp=params.temperature,
            )
            if token in self._stop_ids:
                return None
            try:
                llm.eval([token])
            except RuntimeError as exc:
                raise GenerationError(f"Failed to evaluate token {token}: {exc}") from exc
            piece = self._decoder.decode(llm.detokenize([token]))
            # a multi-byte character split across tokens decodes to ""
            if piece:
                return piece

    def context_size(self) -> int:
        return self._require().n_ctx()

    def special_tokens(self) -> tuple[str, str]:
        llm = self._require()
        bos = llm.detokenize([llm.token_bos()], special=True).decode("utf-8", errors="replace")
        eos = llm.detokenize([llm.token_eos()], special=True).decode("utf-8", errors="replace")
        return bos, eos

    def chat_template(self) -> str | None:
        return self._require().metadata.get("tokenizer.chat_template")
