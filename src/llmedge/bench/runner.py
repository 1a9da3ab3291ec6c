"""Throughput benchmark runner."""
from __future__ import annotations

import csv
import json
import logging
import os
from dataclasses import dataclass, replace
from datetime import datetime
from typing import Any, Callable, Iterable

from ..config import BenchConfig, InferenceDefaults
from ..engines.base import InferenceEngine
from ..exceptions import LlmEdgeError
from ..registry import ModelRegistry
from ..session import InferenceSession
from .report import summarize_results

logger = logging.getLogger(__name__)


RESULT_FIELDS = [
    "model_key",
    "repeat_idx",
    "prompt_tokens",
    "generated_tokens",
    "elapsed_s",
    "tokens_per_s",
    "error",
]


@dataclass
class BenchResult:
    model_key: str
    repeat_idx: int
    prompt_tokens: int | None = None
    generated_tokens: int | None = None
    elapsed_s: float | None = None
    tokens_per_s: float | None = None
    error: str | None = None

    def to_dict(self) -> dict[str, Any]:
        return {name: getattr(self, name) for name in RESULT_FIELDS}


def _timestamp_dir(root: str) -> str:
    ts = datetime.now().strftime("%Y%m%d_%H%M%S")
    out_dir = os.path.join(root, ts)
    os.makedirs(out_dir, exist_ok=True)
    return out_dir


def _write_csv(path: str, rows: Iterable[dict[str, Any]]) -> None:
    with open(path, "w", newline="", encoding="utf-8") as handle:
        writer = csv.DictWriter(handle, fieldnames=RESULT_FIELDS)
        writer.writeheader()
        for row in rows:
            writer.writerow(row)


def _measure(session: InferenceSession, model_key: str, repeat_idx: int, bench_cfg: BenchConfig) -> BenchResult:
    try:
        with session.generate_response(bench_cfg.prompt, max_tokens=bench_cfg.max_tokens) as stream:
            for _ in stream:
                pass
    except LlmEdgeError as exc:
        return BenchResult(model_key=model_key, repeat_idx=repeat_idx, error=str(exc))
    metrics = stream.metrics
    return BenchResult(
        model_key=model_key,
        repeat_idx=repeat_idx,
        prompt_tokens=metrics.prompt_tokens,
        generated_tokens=metrics.tokens_generated,
        elapsed_s=metrics.elapsed_seconds,
        tokens_per_s=metrics.tokens_per_second,
    )


def run_benchmark(
    registry: ModelRegistry,
    inference: InferenceDefaults,
    bench_cfg: BenchConfig,
    model_keys: list[str],
    engine_factory: Callable[[], InferenceEngine] | None = None,
) -> tuple[list[dict[str, Any]], str, dict[str, Any]]:
    results: list[BenchResult] = []
    output_dir = _timestamp_dir(bench_cfg.output_dir)

    for model_key in model_keys:
        try:
            model = registry.get(model_key)
        except KeyError as exc:
            results.append(BenchResult(model_key=model_key, repeat_idx=0, error=str(exc)))
            continue

        # every run sees the same prompt, so no history is kept between runs
        params = replace(inference.to_params(model.chat_template), store_chats=False)
        engine = engine_factory() if engine_factory is not None else None
        with InferenceSession(engine) as session:
            try:
                session.load(model.local_path, params)
            except LlmEdgeError as exc:
                results.append(BenchResult(model_key=model_key, repeat_idx=0, error=str(exc)))
                continue
            session.add_system_prompt(inference.system_prompt)

            if bench_cfg.warmup:
                warm = _measure(session, model_key, -1, bench_cfg)
                if warm.error:
                    logger.warning("Warmup for %s failed: %s", model_key, warm.error)

            for repeat_idx in range(int(bench_cfg.repeats)):
                result = _measure(session, model_key, repeat_idx, bench_cfg)
                logger.info("%s run %d: %s tokens/s", model_key, repeat_idx, result.tokens_per_s)
                results.append(result)

    rows = [r.to_dict() for r in results]
    _write_csv(os.path.join(output_dir, "results.csv"), rows)
    summary = summarize_results(rows)
    with open(os.path.join(output_dir, "summary.json"), "w", encoding="utf-8") as handle:
        json.dump(summary, handle, indent=2)

    return rows, output_dir, summary
