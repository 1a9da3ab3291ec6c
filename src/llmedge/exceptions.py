"""llmedge exception hierarchy."""
from __future__ import annotations

from enum import Enum


class LlmEdgeError(Exception):
    """Base exception for all llmedge errors."""


class InvalidConfigError(LlmEdgeError, ValueError):
    """A configuration invariant was violated at construction time."""


class LoadFailure(str, Enum):
    FILE_NOT_FOUND = "file_not_found"
    UNSUPPORTED_FORMAT = "unsupported_format"
    OUT_OF_MEMORY = "out_of_memory"
    INVALID_PARAMS = "invalid_params"


class LoadError(LlmEdgeError):
    """A model could not be loaded."""

    def __init__(self, reason: LoadFailure, model_path: str, message: str) -> None:
        self.reason = reason
        self.model_path = model_path
        super().__init__(f"Failed to load {model_path} ({reason.value}): {message}")


class SessionStateError(LlmEdgeError):
    """Operation is not valid in the session's current state."""


class SessionBusyError(SessionStateError):
    """Operation attempted while the session is loading or generating."""


class SessionClosedError(SessionStateError):
    """Operation attempted after the session was closed."""


class GenerationError(LlmEdgeError):
    """The engine failed while priming or producing tokens."""


class GenerationAbortedError(GenerationError):
    """The consumer closed the token stream before it was exhausted."""


class ChatTemplateError(LlmEdgeError):
    """A chat template failed to compile or render."""


class MetadataReadError(LlmEdgeError):
    """A model file's metadata could not be read."""
