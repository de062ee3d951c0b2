from __future__ import annotations

import json
from typing import Any, List

import structlog

from agentloop.schemas.messages import END, ExecutionContext, Message, MessageKind
from agentloop.utils.llm_clients import CompletionProvider, chat
from agentloop.utils.prompts import PromptStore

logger = structlog.get_logger(__name__)

DEFAULT_PROMPT = (
    "You are a careful worker. Solve the task you are given and reply with the "
    "answer only. When a reviewer sends feedback, revise your previous draft."
)


def render(value: Any) -> str:
    if isinstance(value, str):
        return value
    return json.dumps(value, ensure_ascii=False, default=str, sort_keys=True)


class WorkerAgent:
    """Drafts an answer to the thread's task and revises it on feedback.

    The task text and latest draft live in the worker's private memory, so a
    FEEDBACK message only needs to carry the reviewer's remarks. Once the
    worker has been invoked more than ``max_iterations`` times it stops the
    run with its last draft instead of asking for another review.
    """

    def __init__(
        self,
        provider: CompletionProvider,
        prompts: PromptStore | None = None,
        id: str = "worker",
        name: str = "Worker",
        reviewer: str = "validator",
        model: str = "gpt-4o-mini",
        temperature: float = 0.2,
        max_iterations: int = 3,
        prompt_name: str = "worker",
    ) -> None:
        self.id = id
        self.name = name
        self.provider = provider
        self.prompts = prompts
        self.reviewer = reviewer
        self.model = model
        self.temperature = temperature
        self.max_iterations = max_iterations
        self.prompt_name = prompt_name

    async def process(self, context: ExecutionContext) -> Message:
        attempt = context.current_agent_iterations
        incoming = context.message

        if incoming.kind is MessageKind.TASK:
            task = incoming.content
            await context.memory.set("task", task)
        else:
            task = await context.memory.get("task", context.initial_message.content)

        if attempt > self.max_iterations:
            draft = await context.memory.get("draft")
            logger.warning(
                "worker_capped",
                thread_id=context.thread_id,
                agent_id=self.id,
                attempt=attempt,
            )
            return Message(
                kind=MessageKind.RESULT,
                content=draft,
                next=END,
                metadata={"attempt": attempt, "capped": True},
            )

        turns: List[str] = [f"Task:\n{render(task)}"]
        if incoming.kind is MessageKind.FEEDBACK:
            previous = await context.memory.get("draft", "")
            turns.append(
                f"Previous draft:\n{render(previous)}\n\n"
                f"Reviewer feedback:\n{render(incoming.content)}\n\n"
                "Revise the draft."
            )

        completion = await self.provider.get_completion(
            chat(self._system_prompt(), *turns),
            model=self.model,
            temperature=self.temperature,
        )
        draft = completion.response_text.strip()
        await context.memory.set("draft", draft)

        return Message(
            kind=MessageKind.RESULT,
            content=draft,
            next=self.reviewer,
            metadata={"attempt": attempt, "usage": completion.usage},
        )

    def _system_prompt(self) -> str:
        if self.prompts is None:
            return DEFAULT_PROMPT
        return self.prompts.get_prompt(self.prompt_name)
