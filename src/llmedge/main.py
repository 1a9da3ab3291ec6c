"""llmedge command line entrypoint."""
from __future__ import annotations

import argparse
import json
import logging
import os
import sys

from .bench.runner import run_benchmark
from .config import RootConfig, load_config
from .exceptions import LlmEdgeError
from .logs import setup_logging
from .metadata import ModelMetadata
from .rag.text_splitter import TextChunker
from .registry import ModelRegistry
from .session import InferenceSession

logger = logging.getLogger(__name__)


def parse_args(argv: list[str] | None = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(prog="llmedge", description="On-device LLM chat and RAG chunking")
    parser.add_argument("--config", default="configs/llmedge.yaml")
    parser.add_argument("--log-level")
    sub = parser.add_subparsers(dest="command", required=True)

    chat = sub.add_parser("chat", help="Interactive streaming chat")
    chat.add_argument("--model", help="Model key from the config")
    chat.add_argument("--model-path", help="Path to a GGUF file, bypassing the registry")
    chat.add_argument("--chat-template", help="Preset name or template source")
    chat.add_argument("--system-prompt")
    chat.add_argument("--context-size", type=int)
    chat.add_argument("--threads", type=int)
    chat.add_argument("--temperature", type=float)
    chat.add_argument("--min-p", type=float)
    chat.add_argument("--max-tokens", type=int)

    info = sub.add_parser("info", help="Show GGUF metadata")
    info.add_argument("model_path")

    chunk = sub.add_parser("chunk", help="Split text files into overlapping chunks")
    chunk.add_argument("files", nargs="+")
    chunk.add_argument("--chunk-size", type=int)
    chunk.add_argument("--chunk-overlap", type=int)
    chunk.add_argument("--jsonl", action="store_true")

    bench = sub.add_parser("bench", help="Measure generation throughput")
    bench.add_argument("--models", nargs="+")
    bench.add_argument("--repeats", type=int)
    bench.add_argument("--max-tokens", type=int)
    bench.add_argument("--no-warmup", action="store_true")

    return parser.parse_args(argv)


def load_root_config(path: str) -> RootConfig:
    if not os.path.exists(path):
        return RootConfig()
    return load_config(path)


def apply_overrides(cfg: RootConfig, args: argparse.Namespace) -> RootConfig:
    if args.log_level:
        cfg.app.log_level = args.log_level
    inference = cfg.inference
    if getattr(args, "context_size", None) is not None:
        inference.context_size = args.context_size
    if getattr(args, "threads", None) is not None:
        inference.num_threads = args.threads
    if getattr(args, "temperature", None) is not None:
        inference.temperature = args.temperature
    if getattr(args, "min_p", None) is not None:
        inference.min_p = args.min_p
    if getattr(args, "system_prompt", None):
        inference.system_prompt = args.system_prompt
    if getattr(args, "chunk_size", None) is not None:
        cfg.chunker.chunk_size = args.chunk_size
    if getattr(args, "chunk_overlap", None) is not None:
        cfg.chunker.chunk_overlap = args.chunk_overlap
    if getattr(args, "repeats", None) is not None:
        cfg.bench.repeats = args.repeats
    if args.command == "bench" and args.max_tokens is not None:
        cfg.bench.max_tokens = args.max_tokens
    if getattr(args, "no_warmup", False):
        cfg.bench.warmup = False
    return cfg


def _resolve_model(cfg: RootConfig, args: argparse.Namespace) -> tuple[str, str | None]:
    if args.model_path:
        return args.model_path, args.chat_template
    registry = ModelRegistry(cfg.models)
    key = args.model or cfg.app.default_model
    if key is None:
        if not cfg.models:
            raise LlmEdgeError("No model configured; pass --model-path")
        key = cfg.models[0].key
    model = registry.get(key)
    return model.local_path, args.chat_template or model.chat_template


def run_chat(cfg: RootConfig, args: argparse.Namespace) -> int:
    model_path, template = _resolve_model(cfg, args)
    params = cfg.inference.to_params(template)
    with InferenceSession() as session:
        session.load(model_path, params)
        session.add_system_prompt(cfg.inference.system_prompt)
        print(f"Loaded {model_path} (context {session.context_size}). Empty line or Ctrl-D exits.")
        while True:
            try:
                query = input("> ").strip()
            except EOFError:
                break
            if not query:
                break
            with session.generate_response(query, max_tokens=args.max_tokens) as stream:
                for token in stream:
                    print(token, end="", flush=True)
            print(f"\n[{session.get_response_generation_speed():.2f} tokens/s]")
    return 0


def run_info(args: argparse.Namespace) -> int:
    meta = ModelMetadata.open(args.model_path)
    print(f"architecture: {meta.architecture or 'unknown'}")
    print(f"context_size: {meta.context_size if meta.context_size is not None else 'n/a'}")
    print(f"chat_template: {'embedded' if meta.chat_template else 'none'}")
    return 0


def run_chunk(cfg: RootConfig, args: argparse.Namespace) -> int:
    chunker = TextChunker(cfg.chunker.chunk_size, cfg.chunker.chunk_overlap)
    for path in args.files:
        with open(path, "r", encoding="utf-8") as handle:
            chunks = chunker.split(handle.read())
        for idx, chunk in enumerate(chunks):
            if args.jsonl:
                print(json.dumps({"source": path, "index": idx, "text": chunk}, ensure_ascii=False))
            else:
                print(f"--- {path} [{idx}]\n{chunk}")
    return 0


def run_bench(cfg: RootConfig, args: argparse.Namespace) -> int:
    registry = ModelRegistry(cfg.models)
    keys = args.models or registry.keys()
    if not keys:
        raise LlmEdgeError("No models to benchmark")
    _, out_dir, summary = run_benchmark(registry, cfg.inference, cfg.bench, keys)
    for group in summary["groups"]:
        print(f"{group['model_key']}: {group['tokens_per_s']:.2f} tokens/s over {group['count']} runs")
    print(f"Saved to {out_dir}. Errors: {summary['num_errors']}")
    return 0


def main(argv: list[str] | None = None) -> int:
    args = parse_args(argv)
    cfg = apply_overrides(load_root_config(args.config), args)
    setup_logging(cfg.app.log_level)

    try:
        if args.command == "chat":
            return run_chat(cfg, args)
        if args.command == "info":
            return run_info(args)
        if args.command == "chunk":
            return run_chunk(cfg, args)
        return run_bench(cfg, args)
    except (LlmEdgeError, KeyError) as exc:
        logger.debug("Command %s failed", args.command, exc_info=True)
        print(f"error: {exc}", file=sys.stderr)
        return 1


if __name__ == "__main__":
    sys.exit(main())
