"""Shared fixtures."""

from __future__ import annotations

import pytest

from llmedge.engines.base import InferenceParams
from llmedge.prompts import LLAMA3_TEMPLATE


@pytest.fixture
def model_file(tmp_path):
    path = tmp_path / "smollm2-360m-instruct-q8_0.gguf"
    path.write_bytes(b"weights")
    return str(path)


@pytest.fixture
def params():
    return InferenceParams(
        min_p=0.05,
        temperature=1.0,
        store_chats=True,
        context_size=0,
        chat_template=LLAMA3_TEMPLATE,
        num_threads=1,
        use_mmap=True,
        use_mlock=False,
    )
