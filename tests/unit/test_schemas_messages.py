import dataclasses

import pytest

from agentloop.schemas.messages import (
    CALLER,
    END,
    GraphResult,
    Message,
    MessageKind,
    RunStatus,
)


def test_message_is_frozen():
    message = Message(kind=MessageKind.RESULT, content="42", next=END)
    with pytest.raises(dataclasses.FrozenInstanceError):
        message.content = "41"


def test_with_sender_detaches_payload():
    payload = {"answer": [4, 2]}
    metadata = {"attempt": 1}
    original = Message(
        kind=MessageKind.RESULT,
        content=payload,
        next="validator",
        sender="impostor",
        metadata=metadata,
    )

    stamped = original.with_sender("worker")
    payload["answer"].append(0)
    metadata["attempt"] = 99

    assert stamped.sender == "worker"
    assert stamped.content == {"answer": [4, 2]}
    assert stamped.metadata == {"attempt": 1}
    assert original.sender == "impostor"


def test_message_dict_form_preserves_routing():
    message = Message(
        kind=MessageKind.FEEDBACK,
        content="try again",
        next="worker",
        sender="validator",
        metadata={"attempt": 2},
    )
    data = message.to_dict()

    assert data["kind"] == "feedback"
    assert Message.from_dict(data) == message


def test_terminal_flag_follows_end_sentinel():
    assert Message(kind=MessageKind.RESULT, content=None, next=END).is_terminal
    assert not Message(kind=MessageKind.TASK, content=None, next="worker", sender=CALLER).is_terminal


def test_graph_result_ok():
    assert GraphResult(status=RunStatus.COMPLETED, thread_id="t").ok
    assert not GraphResult(status=RunStatus.ERROR, thread_id="t", error="boom").ok


def test_message_kind_is_normalized():
    message = Message(kind="result", content="x", next=END)

    assert message.kind is MessageKind.RESULT
    assert message.to_dict()["kind"] == "result"


@pytest.mark.parametrize(
    "fields, error",
    [
        ({"kind": "verdict", "next": END}, ValueError),
        ({"kind": MessageKind.RESULT, "next": None}, TypeError),
        ({"kind": MessageKind.RESULT, "next": ""}, TypeError),
        ({"kind": MessageKind.RESULT, "next": END, "sender": 7}, TypeError),
        ({"kind": MessageKind.RESULT, "next": END, "metadata": None}, TypeError),
    ],
)
def test_malformed_message_rejected(fields, error):
    with pytest.raises(error):
        Message(content="x", **fields)
