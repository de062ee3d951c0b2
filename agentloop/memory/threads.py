from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Tuple

from agentloop.memory.drivers import StorageDriver
from agentloop.memory.scoped import thread_key
from agentloop.schemas.messages import Message, RunStatus


@dataclass
class Thread:
    """Append-only execution trace of one workflow run plus its counters."""

    thread_id: str
    history: List[Message] = field(default_factory=list)
    agent_iterations: Dict[str, int] = field(default_factory=dict)
    total_iterations: int = 0
    status: RunStatus = RunStatus.RUNNING
    error: Optional[str] = None

    @classmethod
    def start(cls, thread_id: str, seed: Message) -> "Thread":
        return cls(thread_id=thread_id, history=[seed])

    @property
    def initial_message(self) -> Message:
        return self.history[0]

    @property
    def last_message(self) -> Message:
        return self.history[-1]

    def append(self, message: Message) -> None:
        self.history.append(message)

    def all(self) -> Tuple[Message, ...]:
        return tuple(self.history)

    def record_invocation(self, agent_id: str) -> int:
        """Bump both counters for ``agent_id`` and return its new count."""
        self.total_iterations += 1
        self.agent_iterations[agent_id] = self.agent_iterations.get(agent_id, 0) + 1
        return self.agent_iterations[agent_id]

    def to_dict(self) -> Dict[str, Any]:
        return {
            "thread_id": self.thread_id,
            "history": [message.to_dict() for message in self.history],
            "agent_iterations": dict(self.agent_iterations),
            "total_iterations": self.total_iterations,
            "status": self.status.value,
            "error": self.error,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Thread":
        return cls(
            thread_id=data["thread_id"],
            history=[Message.from_dict(item) for item in data.get("history", [])],
            agent_iterations={k: int(v) for k, v in (data.get("agent_iterations") or {}).items()},
            total_iterations=int(data.get("total_iterations", 0)),
            status=RunStatus(data.get("status", RunStatus.RUNNING.value)),
            error=data.get("error"),
        )


class ThreadStore:
    """Loads and saves thread state through the same driver as agent memory."""

    def __init__(self, driver: StorageDriver) -> None:
        self._driver = driver

    async def load(self, thread_id: str) -> Thread | None:
        data = await self._driver.get(thread_key(thread_id))
        if data is None:
            return None
        return Thread.from_dict(data)

    async def save(self, thread: Thread) -> None:
        await self._driver.set(thread_key(thread.thread_id), thread.to_dict())
