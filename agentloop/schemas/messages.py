from __future__ import annotations

import copy
from dataclasses import dataclass, field, replace
from enum import Enum
from typing import TYPE_CHECKING, Any, Dict, Mapping, Optional, Tuple

if TYPE_CHECKING:
    from agentloop.memory.scoped import ScopedMemory

# Sender of the seed message of every thread.
CALLER = "__caller__"
# Routing target that ends the run.
END = "__end__"

SENTINELS = frozenset({CALLER, END})


class MessageKind(str, Enum):
    TASK = "task"
    RESULT = "result"
    FEEDBACK = "feedback"


class RunStatus(str, Enum):
    RUNNING = "running"
    COMPLETED = "completed"
    ERROR = "error"


@dataclass(frozen=True)
class Message:
    """Single step exchanged between agents, carrying its own routing decision."""

    kind: MessageKind
    content: Any
    next: str
    sender: str = ""
    metadata: Dict[str, Any] = field(default_factory=dict)

    def __post_init__(self) -> None:
        # Frozen: normalize through object.__setattr__.
        object.__setattr__(self, "kind", MessageKind(self.kind))
        if not isinstance(self.next, str) or not self.next:
            raise TypeError(f"message next must be a non-empty str, got {self.next!r}")
        if not isinstance(self.sender, str):
            raise TypeError(f"message sender must be a str, got {self.sender!r}")
        if not isinstance(self.metadata, Mapping):
            raise TypeError(f"message metadata must be a mapping, got {type(self.metadata).__name__}")
        object.__setattr__(self, "metadata", dict(self.metadata))

    @property
    def is_terminal(self) -> bool:
        return self.next == END

    def with_sender(self, sender: str) -> "Message":
        """Detached copy stamped with ``sender``; later edits to the original do not leak in."""
        return replace(
            self,
            sender=sender,
            content=copy.deepcopy(self.content),
            metadata=copy.deepcopy(dict(self.metadata)),
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "sender": self.sender,
            "kind": self.kind.value,
            "content": self.content,
            "metadata": dict(self.metadata),
            "next": self.next,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Message":
        return cls(
            kind=MessageKind(data["kind"]),
            content=data.get("content"),
            next=data["next"],
            sender=data.get("sender", ""),
            metadata=dict(data.get("metadata") or {}),
        )


@dataclass(frozen=True)
class ExecutionContext:
    """Everything one agent invocation gets to see. Built fresh per step."""

    thread_id: str
    message: Message
    history: Tuple[Message, ...]
    memory: "ScopedMemory"
    initial_message: Message
    current_agent_iterations: int
    total_iterations: int


@dataclass(frozen=True)
class GraphResult:
    """Outcome of a single ``GraphOrchestrator.run`` call."""

    status: RunStatus
    thread_id: str
    content: Any = None
    error: Optional[str] = None
    iterations: int = 0

    @property
    def ok(self) -> bool:
        return self.status is RunStatus.COMPLETED
