from __future__ import annotations

import inspect
from typing import Any, Awaitable, Callable, Dict, Sequence, Tuple, Union

import structlog

from agentloop.agents.worker import render
from agentloop.schemas.messages import (
    CALLER,
    END,
    ExecutionContext,
    Message,
    MessageKind,
)
from agentloop.utils.llm_clients import CompletionProvider, chat
from agentloop.utils.prompts import PromptStore

logger = structlog.get_logger(__name__)

Criterion = Callable[[Any], Union[bool, Awaitable[bool]]]

DEFAULT_PROMPT = (
    "You review drafts written for a task. If the draft fully answers the task, "
    "reply with APPROVED on the first line. Otherwise explain what must change."
)
APPROVAL_TOKEN = "APPROVED"


class ValidatorAgent:
    """Approves a draft or sends it back to whoever wrote it.

    Judging uses either ``criterion`` (a plain or async predicate over the
    draft) or a completion provider whose reply starts with ``APPROVED`` on
    approval. A rejection on the ``max_iterations``-th review ends the run
    with the unapproved draft instead of another round of feedback.
    """

    def __init__(
        self,
        criterion: Criterion | None = None,
        provider: CompletionProvider | None = None,
        prompts: PromptStore | None = None,
        id: str = "validator",
        name: str = "Validator",
        model: str = "gpt-4o-mini",
        temperature: float = 0.0,
        max_iterations: int = 3,
        feedback: str = "The draft was rejected; revise it.",
        prompt_name: str = "validator",
    ) -> None:
        if (criterion is None) == (provider is None):
            raise ValueError("ValidatorAgent needs exactly one of criterion or provider")
        self.id = id
        self.name = name
        self.criterion = criterion
        self.provider = provider
        self.prompts = prompts
        self.model = model
        self.temperature = temperature
        self.max_iterations = max_iterations
        self.feedback = feedback
        self.prompt_name = prompt_name

    async def process(self, context: ExecutionContext) -> Message:
        draft = context.message.content
        attempt = context.current_agent_iterations
        approved, feedback = await self._judge(draft, context.history)

        await context.memory.set_shared(
            "review",
            {"approved": approved, "attempt": attempt, "feedback": feedback},
        )

        if approved:
            return Message(
                kind=MessageKind.RESULT,
                content=draft,
                next=END,
                metadata={"approved": True, "attempt": attempt},
            )

        if attempt >= self.max_iterations:
            logger.warning(
                "validator_capped",
                thread_id=context.thread_id,
                agent_id=self.id,
                attempt=attempt,
            )
            metadata: Dict[str, Any] = {
                "approved": False,
                "capped": True,
                "attempt": attempt,
                "feedback": feedback,
            }
            return Message(kind=MessageKind.RESULT, content=draft, next=END, metadata=metadata)

        return Message(
            kind=MessageKind.FEEDBACK,
            content=feedback,
            next=context.message.sender,
            metadata={"attempt": attempt},
        )

    async def _judge(self, draft: Any, history: Sequence[Message]) -> Tuple[bool, str]:
        if self.criterion is not None:
            verdict = self.criterion(draft)
            if inspect.isawaitable(verdict):
                verdict = await verdict
            return bool(verdict), self.feedback

        system = self.prompts.get_prompt(self.prompt_name) if self.prompts else DEFAULT_PROMPT
        task = self._latest_task(history)
        completion = await self.provider.get_completion(
            chat(system, f"Task:\n{render(task)}\n\nDraft:\n{render(draft)}"),
            model=self.model,
            temperature=self.temperature,
        )
        text = completion.response_text.strip()
        return text.upper().startswith(APPROVAL_TOKEN), text

    @staticmethod
    def _latest_task(history: Sequence[Message]) -> Any:
        for message in reversed(history):
            if message.kind is MessageKind.TASK and message.sender == CALLER:
                return message.content
        return None
