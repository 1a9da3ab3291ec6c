"""Benchmark reporting utilities."""
from __future__ import annotations

from datetime import datetime
from typing import Any


def summarize_results(rows: list[dict[str, Any]]) -> dict[str, Any]:
    groups: dict[str, dict[str, Any]] = {}
    error_count = 0

    for row in rows:
        if row.get("error"):
            error_count += 1
            continue
        group = groups.setdefault(
            row["model_key"],
            {
                "model_key": row["model_key"],
                "count": 0,
                "tokens_per_s": 0.0,
                "elapsed_s": 0.0,
                "prompt_tokens": 0.0,
                "generated_tokens": 0.0,
            },
        )
        group["count"] += 1
        group["tokens_per_s"] += float(row.get("tokens_per_s") or 0)
        group["elapsed_s"] += float(row.get("elapsed_s") or 0)
        group["prompt_tokens"] += float(row.get("prompt_tokens") or 0)
        group["generated_tokens"] += float(row.get("generated_tokens") or 0)

    group_list: list[dict[str, Any]] = []
    for group in groups.values():
        count = max(1, int(group["count"]))
        group_list.append(
            {
                "model_key": group["model_key"],
                "count": group["count"],
                "tokens_per_s": group["tokens_per_s"] / count,
                "elapsed_s": group["elapsed_s"] / count,
                "prompt_tokens": group["prompt_tokens"] / count,
                "generated_tokens": group["generated_tokens"] / count,
            }
        )

    return {
        "generated_at": datetime.now().isoformat(),
        "num_runs": len(rows),
        "num_errors": error_count,
        "groups": group_list,
    }
