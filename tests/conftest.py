from typing import List

import pytest

from agentloop.utils.llm_clients import Completion, CompletionProvider


class ScriptedProvider(CompletionProvider):
    """Replays canned replies in order and records every prompt it was sent."""

    def __init__(self, replies: List[str]) -> None:
        self.replies = list(replies)
        self.calls: List[list] = []

    async def get_completion(self, messages, model, temperature=0.0):
        self.calls.append(list(messages))
        if not self.replies:
            raise RuntimeError("scripted provider ran out of replies")
        return Completion(response_text=self.replies.pop(0), usage={"calls": len(self.calls)})


@pytest.fixture
def scripted_provider():
    return ScriptedProvider
