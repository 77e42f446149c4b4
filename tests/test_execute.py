"""Operation registry and batch execution tests."""

import pytest

from difylink import OPERATIONS, execute
from difylink.errors import ClientError, OperationError, ValidationError


@pytest.mark.asyncio
async def test_executes_every_item_in_order(transport, make_context):
    transport.add_response(
        "POST", "/chat-messages", {"answer": "one"}, {"answer": "two"}
    )
    context = make_context({"query": "first"}, {"query": "second"})

    records = await execute(context, "chat", "send")

    assert [r.data["answer"] for r in records] == ["one", "two"]
    assert [r.item_index for r in records] == [0, 1]
    assert [d.body["query"] for d in transport.sent] == ["first", "second"]


@pytest.mark.asyncio
async def test_unknown_operation_fails_before_io(transport, make_context):
    with pytest.raises(OperationError, match="Unsupported operation"):
        await execute(make_context({"query": "hi"}), "chat", "teleport")
    assert transport.sent == []


@pytest.mark.asyncio
async def test_failure_is_raised_with_item_index(transport, make_context):
    transport.add_response(
        "POST", "/chat-messages", {"answer": "ok"}, ClientError("bad request", status_code=400)
    )
    context = make_context({"query": "a"}, {"query": "b"})

    with pytest.raises(OperationError) as info:
        await execute(context, "chat", "send")

    assert info.value.item_index == 1
    assert info.value.resource == "chat"
    assert info.value.operation == "send"
    assert isinstance(info.value.__cause__, ClientError)


@pytest.mark.asyncio
async def test_continue_on_fail_emits_error_records(transport, make_context):
    transport.add_response("POST", "/chat-messages", {"answer": "ok"})
    context = make_context({}, {"query": "b"}, continue_on_fail=True)

    records = await execute(context, "chat", "send")

    assert records[0].data == {
        "error": "Parameter 'query' is required",
        "resource": "chat",
        "operation": "send",
        "item_index": 0,
    }
    assert records[1].data == {"answer": "ok"}


@pytest.mark.asyncio
async def test_multi_record_operations_are_flattened(transport, make_context):
    transport.add_response(
        "GET", "/workflows/run/run-1/logs", {"workflow_run_logs": [{"n": 1}, {"n": 2}]}
    )
    context = make_context({"workflowRunId": "run-1"}, {"workflowRunId": "run-1"})

    records = await execute(context, "workflow", "getLogs")

    assert [(r.item_index, r.data["n"]) for r in records] == [(0, 1), (0, 2), (1, 1), (1, 2)]


def test_registry_covers_every_resource():
    resources = {resource for resource, _ in OPERATIONS}
    assert resources == {
        "chat",
        "completion",
        "feedback",
        "workflow",
        "file",
        "dataset",
        "document",
        "segment",
        "metadata",
    }


def test_validation_error_is_a_dify_error():
    assert issubclass(ValidationError, Exception)
    assert not ValidationError("x").retryable
