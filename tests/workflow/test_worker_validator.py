import pytest

from agentloop.agents.validator import ValidatorAgent
from agentloop.agents.worker import WorkerAgent
from agentloop.schemas.messages import END, MessageKind, RunStatus
from agentloop.workflows.orchestrator import GraphOrchestrator


def build(provider, worker_max=3, validator_max=3, criterion=lambda content: content == "42"):
    return GraphOrchestrator(
        [
            WorkerAgent(provider=provider, max_iterations=worker_max),
            ValidatorAgent(criterion=criterion, max_iterations=validator_max, feedback="expected 42"),
        ],
        start="worker",
    )


@pytest.mark.asyncio
async def test_approved_on_first_attempt(scripted_provider):
    orchestrator = build(scripted_provider(["42"]))

    outcome = await orchestrator.run("What is 6*7?")

    assert outcome.status is RunStatus.COMPLETED
    assert outcome.content == "42"
    assert outcome.iterations == 2
    thread = await orchestrator.get_thread(outcome.thread_id)
    assert len(thread.history) == 3


@pytest.mark.asyncio
async def test_one_feedback_cycle(scripted_provider):
    provider = scripted_provider(["41", "42"])
    orchestrator = build(provider)

    outcome = await orchestrator.run("What is 6*7?")

    assert outcome.status is RunStatus.COMPLETED
    assert outcome.content == "42"
    assert outcome.iterations == 4

    thread = await orchestrator.get_thread(outcome.thread_id)
    assert [m.kind for m in thread.history] == [
        MessageKind.TASK,
        MessageKind.RESULT,
        MessageKind.FEEDBACK,
        MessageKind.RESULT,
        MessageKind.RESULT,
    ]
    assert [m.sender for m in thread.history[1:]] == ["worker", "validator", "worker", "validator"]
    feedback = thread.history[2]
    assert feedback.next == "worker"
    assert feedback.content == "expected 42"
    assert thread.history[3].metadata["attempt"] == 2
    assert thread.agent_iterations == {"worker": 2, "validator": 2}
    assert "41" in provider.calls[1][-1]["content"]


@pytest.mark.asyncio
async def test_validator_cap_ends_feedback_loop(scripted_provider):
    orchestrator = build(scripted_provider(["1", "2", "3"]), worker_max=5, validator_max=2)

    outcome = await orchestrator.run("What is 6*7?")

    assert outcome.status is RunStatus.COMPLETED
    assert outcome.content == "2"
    assert outcome.iterations == 4
    thread = await orchestrator.get_thread(outcome.thread_id)
    assert thread.last_message.metadata["approved"] is False
    assert thread.last_message.sender == "validator"


@pytest.mark.asyncio
async def test_worker_cap_ends_feedback_loop(scripted_provider):
    orchestrator = build(scripted_provider(["1", "2"]), worker_max=1, validator_max=5)

    outcome = await orchestrator.run("What is 6*7?")

    assert outcome.status is RunStatus.COMPLETED
    assert outcome.content == "1"
    assert outcome.iterations == 3
    thread = await orchestrator.get_thread(outcome.thread_id)
    assert thread.last_message.sender == "worker"
    assert thread.last_message.next == END
    assert thread.last_message.metadata["capped"] is True


@pytest.mark.asyncio
async def test_model_backed_validator(scripted_provider):
    worker_provider = scripted_provider(["forty-two", "42"])
    judge_provider = scripted_provider(["Use digits.", "APPROVED"])
    orchestrator = GraphOrchestrator(
        [
            WorkerAgent(provider=worker_provider),
            ValidatorAgent(provider=judge_provider),
        ],
        start="worker",
    )

    outcome = await orchestrator.run("What is 6*7?")

    assert outcome.content == "42"
    assert outcome.iterations == 4
    assert "Use digits." in worker_provider.calls[1][-1]["content"]


@pytest.mark.asyncio
async def test_provider_failure_surfaces_as_error(scripted_provider):
    orchestrator = build(scripted_provider(["41"]))

    outcome = await orchestrator.run("What is 6*7?")

    assert outcome.status is RunStatus.ERROR
    assert "ran out of replies" in outcome.error
    assert outcome.iterations == 3
