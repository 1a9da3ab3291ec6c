"""Engine protocol and dataclasses."""
from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Protocol

from ..exceptions import InvalidConfigError


class Role(str, Enum):
    SYSTEM = "system"
    USER = "user"
    ASSISTANT = "assistant"


@dataclass(frozen=True)
class ChatMessage:
    role: Role
    content: str

    def as_dict(self) -> dict[str, str]:
        return {"role": self.role.value, "content": self.content}


@dataclass(frozen=True)
class InferenceParams:
    """Sampling and runtime settings fixed for the lifetime of a loaded model.

    ``context_size`` of 0 asks the engine for the model's trained context
    length. An empty ``chat_template`` defers to the template embedded in the
    model file, then to a plain transcript.
    """

    min_p: float = 0.1
    temperature: float = 0.8
    store_chats: bool = True
    context_size: int = 0
    chat_template: str = ""
    num_threads: int = 4
    use_mmap: bool = True
    use_mlock: bool = False

    def __post_init__(self) -> None:
        self.validate()

    def validate(self) -> None:
        if not 0.0 <= self.min_p <= 1.0:
            raise InvalidConfigError(f"min_p must be in [0, 1], got {self.min_p}")
        if self.temperature <= 0:
            raise InvalidConfigError(f"temperature must be > 0, got {self.temperature}")
        if self.context_size < 0:
            raise InvalidConfigError(f"context_size must be >= 0, got {self.context_size}")
        if self.num_threads < 1:
            raise InvalidConfigError(f"num_threads must be >= 1, got {self.num_threads}")


class InferenceEngine(Protocol):
    def load(self, model_path: str, params: InferenceParams) -> None:
        ...

    def unload(self) -> None:
        ...

    def tokenize(self, text: str) -> list[int]:
        ...

    def prime(self, tokens: list[int]) -> None:
        ...

    def next_token(self, params: InferenceParams) -> str | None:
        """Sample, evaluate and decode one token; ``None`` ends the sequence."""
        ...

    def context_size(self) -> int:
        ...

    def special_tokens(self) -> tuple[str, str]:
        """Return the ``(bos, eos)`` strings templates splice into prompts."""
        ...

    def chat_template(self) -> str | None:
        ...
