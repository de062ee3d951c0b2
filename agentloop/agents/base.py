from __future__ import annotations

from typing import Awaitable, Callable, Protocol, Union, runtime_checkable

from agentloop.schemas.messages import ExecutionContext, Message

AgentResponse = Union[Message, Awaitable[Message]]


@runtime_checkable
class Agent(Protocol):
    """Capability every node of the graph exposes.

    ``id`` is the routing key and must be unique within a topology; ``name``
    is only used in diagnostics. ``process`` may be a coroutine function.
    """

    id: str
    name: str

    def process(self, context: ExecutionContext) -> AgentResponse:
        ...


class FunctionAgent:
    """Wrap a plain or async callable taking an ``ExecutionContext``."""

    def __init__(
        self,
        id: str,
        handler: Callable[[ExecutionContext], AgentResponse],
        name: str | None = None,
    ) -> None:
        self.id = id
        self.name = name or id
        self._handler = handler

    def process(self, context: ExecutionContext) -> AgentResponse:
        return self._handler(context)

    def __repr__(self) -> str:
        return f"FunctionAgent(id={self.id!r})"
