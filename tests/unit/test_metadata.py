"""Tests for GGUF header metadata reads."""

from __future__ import annotations

import struct

import pytest

from llmedge.exceptions import MetadataReadError
from llmedge.metadata import ModelMetadata, read_context_size

_UINT32 = 4
_STRING = 8


def _gguf_header(fields: dict[str, object]) -> bytes:
    out = bytearray(b"GGUF")
    out += struct.pack("<I", 3)
    out += struct.pack("<Q", 0)
    out += struct.pack("<Q", len(fields))
    for key, value in fields.items():
        raw_key = key.encode("utf-8")
        out += struct.pack("<Q", len(raw_key)) + raw_key
        if isinstance(value, str):
            raw = value.encode("utf-8")
            out += struct.pack("<I", _STRING) + struct.pack("<Q", len(raw)) + raw
        else:
            out += struct.pack("<I", _UINT32) + struct.pack("<I", value)
    return bytes(out)


@pytest.fixture
def gguf_file(tmp_path):
    path = tmp_path / "tiny.gguf"
    path.write_bytes(
        _gguf_header(
            {
                "general.architecture": "llama",
                "llama.context_length": 8192,
                "tokenizer.chat_template": "{{ messages }}",
            }
        )
    )
    return str(path)


def test_reads_context_size(gguf_file):
    assert read_context_size(gguf_file) == 8192


def test_exposes_architecture_and_template(gguf_file):
    meta = ModelMetadata.open(gguf_file)
    assert meta.architecture == "llama"
    assert meta.chat_template == "{{ messages }}"
    assert meta.get("missing.key", 7) == 7


def test_context_size_absent(tmp_path):
    path = tmp_path / "noctx.gguf"
    path.write_bytes(_gguf_header({"general.architecture": "gemma"}))
    meta = ModelMetadata.open(str(path))
    assert meta.context_size is None
    assert meta.chat_template is None


def test_missing_file(tmp_path):
    with pytest.raises(MetadataReadError):
        ModelMetadata.open(str(tmp_path / "nope.gguf"))


def test_not_a_gguf_file(tmp_path):
    path = tmp_path / "model.bin"
    path.write_bytes(b"this is definitely not a gguf header")
    with pytest.raises(MetadataReadError):
        read_context_size(str(path))
