from __future__ import annotations

import inspect
import uuid
from typing import Any, Iterable, Optional

import structlog

from agentloop.agents.base import Agent
from agentloop.agents.registry import AgentRegistry
from agentloop.errors import SerializationError, TopologyError
from agentloop.memory.drivers import InMemoryDriver, StorageDriver
from agentloop.memory.scoped import ScopedMemory
from agentloop.memory.threads import Thread, ThreadStore
from agentloop.schemas.messages import (
    CALLER,
    ExecutionContext,
    GraphResult,
    Message,
    MessageKind,
    RunStatus,
)

logger = structlog.get_logger(__name__)

DEFAULT_MAX_TOTAL_ITERATIONS = 50


class GraphOrchestrator:
    """Routes a thread through agents by following each message's ``next``.

    The loop for one thread is strictly sequential: the orchestrator is the
    only writer of history and counters, and only between two agent calls.
    Agent failures and routing errors end the run with an error result; they
    never escape ``run``. Storage failures during bookkeeping do.
    """

    def __init__(
        self,
        agents: Iterable[Agent],
        start: str,
        storage: StorageDriver | None = None,
        max_total_iterations: Optional[int] = DEFAULT_MAX_TOTAL_ITERATIONS,
    ) -> None:
        self.registry = AgentRegistry(agents)
        if start not in self.registry:
            raise TopologyError(f"start agent {start!r} is not registered")
        if max_total_iterations is not None and max_total_iterations < 1:
            raise TopologyError("max_total_iterations must be positive or None")
        self.start = start
        self.storage = storage if storage is not None else InMemoryDriver()
        self.threads = ThreadStore(self.storage)
        self.max_total_iterations = max_total_iterations

    async def run(self, initial_input: Any, thread_id: str | None = None) -> GraphResult:
        thread_id = thread_id or str(uuid.uuid4())
        log = logger.bind(thread_id=thread_id)

        thread = await self.threads.load(thread_id)
        if thread is None:
            thread = Thread.start(thread_id, self._task(initial_input))
            log.info("thread_started", start=self.start)
        elif thread.status is RunStatus.ERROR:
            log.warning("thread_halted", error=thread.error)
            return self._result(thread, error=f"thread halted after error: {thread.error}")
        elif thread.last_message.is_terminal:
            thread.append(self._task(initial_input))
            log.info("thread_continued", turn_start=len(thread.history) - 1)
        else:
            log.info("thread_resumed", next=thread.last_message.next)

        thread.status = RunStatus.RUNNING
        await self.threads.save(thread)
        return await self._loop(thread, log)

    async def get_thread(self, thread_id: str) -> Thread | None:
        return await self.threads.load(thread_id)

    async def _loop(self, thread: Thread, log) -> GraphResult:
        while True:
            current = thread.last_message
            if current.is_terminal:
                thread.status = RunStatus.COMPLETED
                await self.threads.save(thread)
                log.info("thread_completed", iterations=thread.total_iterations)
                return self._result(thread, content=current.content)

            agent = self.registry.get(current.next)
            if agent is None:
                log.error("unknown_agent", agent_id=current.next, sender=current.sender)
                return await self._fail(thread, f"unknown agent id: {current.next!r}")

            if (
                self.max_total_iterations is not None
                and thread.total_iterations >= self.max_total_iterations
            ):
                log.error("iteration_limit_reached", limit=self.max_total_iterations)
                return await self._fail(
                    thread,
                    f"iteration limit exceeded ({self.max_total_iterations} steps)",
                )

            agent_iterations = thread.record_invocation(agent.id)
            context = ExecutionContext(
                thread_id=thread.thread_id,
                message=current,
                history=thread.all(),
                memory=ScopedMemory(self.storage, thread.thread_id, agent.id),
                initial_message=thread.initial_message,
                current_agent_iterations=agent_iterations,
                total_iterations=thread.total_iterations,
            )
            log.debug(
                "agent_invoked",
                agent_id=agent.id,
                kind=current.kind.value,
                agent_iterations=agent_iterations,
                total_iterations=thread.total_iterations,
            )

            try:
                response = agent.process(context)
                if inspect.isawaitable(response):
                    response = await response
                if not isinstance(response, Message):
                    raise TypeError(
                        f"agent {agent.id!r} returned {type(response).__name__}, expected Message"
                    )
                stamped = response.with_sender(agent.id)
            except Exception as exc:
                log.error("agent_failed", agent_id=agent.id, exc_info=True)
                return await self._fail(thread, f"{type(exc).__name__}: {exc}")

            thread.append(stamped)
            try:
                await self.threads.save(thread)
            except SerializationError as exc:
                # The unpersisted message is dropped so the saved trace stays loadable.
                thread.history.pop()
                log.error("agent_failed", agent_id=agent.id, reason=exc.reason)
                return await self._fail(
                    thread,
                    f"agent {agent.id!r} returned unstorable message: {exc.reason}",
                )

    def _task(self, content: Any) -> Message:
        return Message(kind=MessageKind.TASK, content=content, next=self.start, sender=CALLER)

    async def _fail(self, thread: Thread, error: str) -> GraphResult:
        thread.status = RunStatus.ERROR
        thread.error = error
        await self.threads.save(thread)
        return self._result(thread, error=error)

    @staticmethod
    def _result(thread: Thread, content: Any = None, error: str | None = None) -> GraphResult:
        return GraphResult(
            status=RunStatus.ERROR if error is not None else RunStatus.COMPLETED,
            thread_id=thread.thread_id,
            content=content,
            error=error,
            iterations=thread.total_iterations,
        )
