from __future__ import annotations


class AgentLoopError(Exception):
    """Base class for errors raised by the orchestration layer."""


class TopologyError(AgentLoopError, ValueError):
    """Agent set handed to the orchestrator cannot form a valid graph."""


class StorageError(AgentLoopError):
    """A storage driver failed to read, write, or serialize a record."""

    def __init__(self, key: str, reason: str) -> None:
        super().__init__(f"storage failure for {key!r}: {reason}")
        self.key = key
        self.reason = reason


class SerializationError(StorageError):
    """The value handed to a driver cannot be encoded as a record."""


class PromptNotFoundError(AgentLoopError, KeyError):
    """Raised when a named prompt is neither registered nor on disk."""

    def __str__(self) -> str:
        return f"prompt not found: {self.args[0]!r}"
