"""Configuration loading and dataclasses."""
from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any

import yaml

from .engines.base import InferenceParams
from .prompts import DEFAULT_SYSTEM, resolve_chat_template


@dataclass
class AppConfig:
    log_level: str = "WARNING"
    default_model: str | None = None


@dataclass
class InferenceDefaults:
    min_p: float = 0.1
    temperature: float = 0.8
    store_chats: bool = True
    context_size: int = 0
    chat_template: str = ""
    num_threads: int = 4
    use_mmap: bool = True
    use_mlock: bool = False
    system_prompt: str = DEFAULT_SYSTEM

    def to_params(self, chat_template: str | None = None) -> InferenceParams:
        return InferenceParams(
            min_p=self.min_p,
            temperature=self.temperature,
            store_chats=self.store_chats,
            context_size=self.context_size,
            chat_template=resolve_chat_template(chat_template or self.chat_template),
            num_threads=self.num_threads,
            use_mmap=self.use_mmap,
            use_mlock=self.use_mlock,
        )


@dataclass
class ModelSpec:
    key: str
    display_name: str
    local_path: str
    chat_template: str | None


@dataclass
class ChunkerConfig:
    chunk_size: int = 400
    chunk_overlap: int = 80


@dataclass
class BenchConfig:
    prompt: str = "Explain what a language model is in three sentences."
    repeats: int = 3
    warmup: bool = True
    max_tokens: int = 128
    output_dir: str = "runs"


@dataclass
class RootConfig:
    app: AppConfig = field(default_factory=AppConfig)
    inference: InferenceDefaults = field(default_factory=InferenceDefaults)
    models: list[ModelSpec] = field(default_factory=list)
    chunker: ChunkerConfig = field(default_factory=ChunkerConfig)
    bench: BenchConfig = field(default_factory=BenchConfig)


def _get(data: dict[str, Any], key: str, default: Any) -> Any:
    return data.get(key, default) if isinstance(data, dict) else default


def load_config(path: str) -> RootConfig:
    with open(path, "r", encoding="utf-8") as handle:
        raw = yaml.safe_load(handle) or {}

    app_raw = _get(raw, "app", {})
    inf_raw = _get(raw, "inference", {})
    models_raw = _get(raw, "models", [])
    chunker_raw = _get(raw, "chunker", {})
    bench_raw = _get(raw, "bench", {})

    app = AppConfig(
        log_level=str(_get(app_raw, "log_level", AppConfig.log_level)),
        default_model=_get(app_raw, "default_model", AppConfig.default_model),
    )

    inference = InferenceDefaults(
        min_p=float(_get(inf_raw, "min_p", InferenceDefaults.min_p)),
        temperature=float(_get(inf_raw, "temperature", InferenceDefaults.temperature)),
        store_chats=bool(_get(inf_raw, "store_chats", InferenceDefaults.store_chats)),
        context_size=int(_get(inf_raw, "context_size", InferenceDefaults.context_size)),
        chat_template=str(_get(inf_raw, "chat_template", InferenceDefaults.chat_template) or ""),
        num_threads=int(_get(inf_raw, "num_threads", InferenceDefaults.num_threads)),
        use_mmap=bool(_get(inf_raw, "use_mmap", InferenceDefaults.use_mmap)),
        use_mlock=bool(_get(inf_raw, "use_mlock", InferenceDefaults.use_mlock)),
        system_prompt=str(_get(inf_raw, "system_prompt", InferenceDefaults.system_prompt)),
    )

    models: list[ModelSpec] = []
    if isinstance(models_raw, list):
        for item in models_raw:
            models.append(
                ModelSpec(
                    key=_get(item, "key", ""),
                    display_name=_get(item, "display_name", "") or _get(item, "key", ""),
                    local_path=_get(item, "local_path", ""),
                    chat_template=_get(item, "chat_template", None),
                )
            )

    chunker = ChunkerConfig(
        chunk_size=int(_get(chunker_raw, "chunk_size", ChunkerConfig.chunk_size)),
        chunk_overlap=int(_get(chunker_raw, "chunk_overlap", ChunkerConfig.chunk_overlap)),
    )

    bench = BenchConfig(
        prompt=str(_get(bench_raw, "prompt", BenchConfig.prompt)),
        repeats=int(_get(bench_raw, "repeats", BenchConfig.repeats)),
        warmup=bool(_get(bench_raw, "warmup", BenchConfig.warmup)),
        max_tokens=int(_get(bench_raw, "max_tokens", BenchConfig.max_tokens)),
        output_dir=str(_get(bench_raw, "output_dir", BenchConfig.output_dir)),
    )

    return RootConfig(
        app=app,
        inference=inference,
        models=models,
        chunker=chunker,
        bench=bench,
    )
