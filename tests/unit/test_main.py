"""Tests for the command line entrypoint."""

from __future__ import annotations

import json

from llmedge.main import apply_overrides, load_root_config, main, parse_args


def test_chunk_command_prints_jsonl(tmp_path, capsys):
    doc = tmp_path / "doc.txt"
    doc.write_text("a b c d e", encoding="utf-8")
    code = main(
        [
            "--config",
            str(tmp_path / "missing.yaml"),
            "chunk",
            str(doc),
            "--chunk-size",
            "3",
            "--chunk-overlap",
            "0",
            "--jsonl",
        ]
    )
    assert code == 0
    lines = [json.loads(line) for line in capsys.readouterr().out.splitlines()]
    assert [line["text"] for line in lines] == ["a b c", "d e"]
    assert [line["index"] for line in lines] == [0, 1]


def test_chunk_command_numbers_chunks_per_file(tmp_path, capsys):
    first = tmp_path / "first.txt"
    first.write_text("a b c", encoding="utf-8")
    second = tmp_path / "second.txt"
    second.write_text("d e", encoding="utf-8")
    code = main(
        [
            "--config",
            str(tmp_path / "missing.yaml"),
            "chunk",
            str(first),
            str(second),
            "--chunk-size",
            "2",
            "--chunk-overlap",
            "0",
            "--jsonl",
        ]
    )
    assert code == 0
    lines = [json.loads(line) for line in capsys.readouterr().out.splitlines()]
    assert [(line["source"], line["index"], line["text"]) for line in lines] == [
        (str(first), 0, "a b"),
        (str(first), 1, "c"),
        (str(second), 0, "d e"),
    ]


def test_invalid_chunk_config_is_reported(tmp_path, capsys):
    doc = tmp_path / "doc.txt"
    doc.write_text("a b", encoding="utf-8")
    code = main(["--config", str(tmp_path / "missing.yaml"), "chunk", str(doc), "--chunk-overlap", "500"])
    assert code == 1
    assert "chunk_overlap" in capsys.readouterr().err


def test_info_reports_missing_model(tmp_path, capsys):
    code = main(["--config", str(tmp_path / "missing.yaml"), "info", str(tmp_path / "none.gguf")])
    assert code == 1
    assert "not found" in capsys.readouterr().err


def test_overrides_apply_to_inference_defaults(tmp_path):
    args = parse_args(
        ["--config", str(tmp_path / "missing.yaml"), "chat", "--model-path", "m.gguf", "--threads", "8", "--temperature", "0.3"]
    )
    cfg = apply_overrides(load_root_config(args.config), args)
    assert cfg.inference.num_threads == 8
    assert cfg.inference.temperature == 0.3
    assert cfg.chunker.chunk_size == 400
