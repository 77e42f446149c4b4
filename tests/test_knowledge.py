"""Knowledge base operation tests."""

import json

import pytest

from difylink.contracts import BinaryAttachment
from difylink.errors import ValidationError
from difylink.operations.knowledge import ENDPOINTS, KNOWLEDGE_OPERATIONS


def op(resource, operation):
    return KNOWLEDGE_OPERATIONS[(resource, operation)]


def test_every_endpoint_has_an_operation():
    assert set(ENDPOINTS) == set(KNOWLEDGE_OPERATIONS)
    assert {resource for resource, _ in ENDPOINTS} == {"dataset", "document", "segment", "metadata"}


@pytest.mark.asyncio
async def test_list_datasets_with_default_paging(transport, make_context):
    transport.add_response("GET", "/datasets", {"data": [{"id": "ds-1"}], "has_more": False})

    result = await op("dataset", "list")(make_context({}), 0)

    assert result.data == {"data": [{"id": "ds-1"}], "has_more": False}
    assert transport.sent[0].query == {"page": 1, "limit": 20}


@pytest.mark.asyncio
async def test_list_datasets_return_all_follows_pages(transport, make_context):
    transport.add_response(
        "GET",
        "/datasets",
        {"data": [{"id": "ds-1"}, {"id": "ds-2"}], "has_more": True},
        {"data": [{"id": "ds-3"}], "has_more": False},
    )

    result = await op("dataset", "list")(
        make_context({"additionalFields": {"returnAll": True}}), 0
    )

    assert result.data == {"data": [{"id": "ds-1"}, {"id": "ds-2"}, {"id": "ds-3"}], "total": 3}
    assert [d.query["page"] for d in transport.sent] == [1, 2]
    assert transport.sent[0].query["limit"] == 100


@pytest.mark.asyncio
async def test_create_dataset_body(transport, make_context):
    transport.add_response("POST", "/datasets", {"id": "ds-1", "name": "Docs"})
    context = make_context(
        {
            "name": "Docs",
            "additionalFields": {
                "description": "Product docs",
                "indexing_technique": "high_quality",
                "retrieval_model": {
                    "retrievalModelValue": {"search_method": "hybrid_search", "top_k": 3}
                },
            },
        }
    )

    result = await op("dataset", "create")(context, 0)

    assert result.data["id"] == "ds-1"
    assert transport.sent[0].body == {
        "name": "Docs",
        "description": "Product docs",
        "indexing_technique": "high_quality",
        "retrieval_model": {"search_method": "hybrid_search", "top_k": 3},
    }


@pytest.mark.asyncio
async def test_delete_returns_success_message(transport, make_context):
    transport.add_response("DELETE", "/datasets/ds-1", {})

    result = await op("dataset", "delete")(make_context({"datasetId": "ds-1"}), 0)

    assert result.data == {"success": True, "message": "Dataset deleted successfully"}


@pytest.mark.asyncio
async def test_path_parameters_are_required(transport, make_context):
    with pytest.raises(ValidationError, match="datasetId"):
        await op("dataset", "get")(make_context({}), 0)
    assert transport.sent == []


@pytest.mark.asyncio
async def test_hit_testing_retrieval_model(transport, make_context):
    transport.add_response("POST", "/datasets/ds-1/hit-testing", {"records": []})
    context = make_context(
        {"datasetId": "ds-1", "query": "refunds", "additionalFields": {"top_k": 2}}
    )

    await op("dataset", "getChunks")(context, 0)

    assert transport.sent[0].body == {
        "query": "refunds",
        "retrieval_model": {
            "search_method": "semantic_search",
            "top_k": 2,
            "score_threshold_enabled": False,
        },
    }


@pytest.mark.asyncio
async def test_create_document_from_text_with_custom_rules(transport, make_context):
    transport.add_response(
        "POST", "/datasets/ds-1/document/create_by_text", {"document": {"id": "doc-1"}}
    )
    context = make_context(
        {
            "datasetId": "ds-1",
            "name": "faq",
            "text": "Q: A?",
            "additionalFields": {
                "indexing_technique": "economy",
                "process_rule": {
                    "processRuleValue": {
                        "mode": "custom",
                        "pre_processing_rules": [{"id": "remove_extra_spaces", "enabled": True}],
                        "segmentation": {
                            "segmentationValue": {"separator": "\n", "max_tokens": 500}
                        },
                    }
                },
            },
        }
    )

    await op("document", "createFromText")(context, 0)

    assert transport.sent[0].body == {
        "name": "faq",
        "text": "Q: A?",
        "indexing_technique": "economy",
        "process_rule": {
            "mode": "custom",
            "rules": {
                "pre_processing_rules": [{"id": "remove_extra_spaces", "enabled": True}],
                "segmentation": {"separator": "\n", "max_tokens": 500},
            },
        },
    }


@pytest.mark.asyncio
async def test_create_document_from_file(transport, make_context):
    transport.add_response(
        "POST", "/datasets/ds-1/document/create_by_file", {"document": {"id": "doc-1"}}
    )
    context = make_context(
        {
            "datasetId": "ds-1",
            "file": "upload",
            "additionalFields": {
                "indexing_technique": "high_quality",
                "process_rule": {"processRuleValue": {"mode": "automatic"}},
            },
        },
        binaries=[{"upload": BinaryAttachment(name="a.txt", data=b"hello", mime_type="text/plain")}],
    )

    await op("document", "createFromFile")(context, 0)

    sent = transport.sent[0]
    assert sent.encoding == "multipart"
    assert sent.files[0].filename == "a.txt"
    assert json.loads(sent.body["data"]) == {
        "indexing_technique": "high_quality",
        "process_rule": {"mode": "automatic"},
    }


@pytest.mark.asyncio
async def test_document_file_type_is_checked(transport, make_context):
    context = make_context(
        {"datasetId": "ds-1", "file": "upload"},
        binaries=[{"upload": BinaryAttachment(name="a.png", data=b"x", mime_type="image/png")}],
    )
    with pytest.raises(ValidationError, match="not allowed"):
        await op("document", "createFromFile")(context, 0)
    assert transport.sent == []


@pytest.mark.asyncio
async def test_document_indexing_status(transport, make_context):
    transport.add_response("GET", "/datasets/ds-1/documents/indexing-status", {"data": []})
    transport.add_response("POST", "/datasets/ds-1/documents/indexing-status", {"result": "success"})
    context = make_context({"datasetId": "ds-1", "batch": "batch-7"})

    await op("document", "getStatus")(context, 0)
    await op("document", "updateStatus")(context, 0)

    get, post = transport.sent
    assert get.query == {"batch": "batch-7"}
    assert post.body == {"batch": "batch-7"}


@pytest.mark.asyncio
async def test_add_segments_splits_keywords(transport, make_context):
    transport.add_response("POST", "/datasets/ds-1/documents/doc-1/segments", {"data": []})
    context = make_context(
        {
            "datasetId": "ds-1",
            "documentId": "doc-1",
            "segments": {
                "segmentValue": [
                    {"content": "Refunds take 5 days", "keywords": "refund, days"},
                    {"content": "Shipping is free", "answer": "Yes"},
                ]
            },
        }
    )

    await op("segment", "add")(context, 0)

    assert transport.sent[0].body == {
        "segments": [
            {"content": "Refunds take 5 days", "keywords": ["refund", "days"]},
            {"content": "Shipping is free", "answer": "Yes"},
        ]
    }


@pytest.mark.asyncio
async def test_child_chunk_paths(transport, make_context):
    path = "/datasets/ds-1/segments/seg-1/child-chunks/child-1"
    transport.add_response("POST", path, {"data": {"id": "child-1"}})
    transport.add_response("DELETE", path, {})
    context = make_context(
        {
            "datasetId": "ds-1",
            "segmentId": "seg-1",
            "childId": "child-1",
            "additionalFields": {"content": "updated"},
        }
    )

    updated = await op("segment", "updateChild")(context, 0)
    deleted = await op("segment", "deleteChild")(context, 0)

    assert updated.data == {"data": {"id": "child-1"}}
    assert transport.sent[0].body == {"content": "updated"}
    assert deleted.data["message"] == "Child segment deleted successfully"


@pytest.mark.asyncio
async def test_bind_tags_merges_response(transport, make_context):
    transport.add_response(
        "POST", "/datasets/ds-1/documents/doc-1/tags/bind", {"result": "success"}
    )
    context = make_context({"datasetId": "ds-1", "documentId": "doc-1", "tagIds": "t1, t2"})

    result = await op("metadata", "bindTag")(context, 0)

    assert result.data == {
        "success": True,
        "message": "Tags bound successfully",
        "result": "success",
    }
    assert transport.sent[0].body == {"tag_ids": ["t1", "t2"]}


@pytest.mark.asyncio
async def test_path_values_are_escaped(transport, make_context):
    transport.add_response("GET", "/datasets/a%2Fb", {"id": "a/b"})
    await op("dataset", "get")(make_context({"datasetId": "a/b"}), 0)
    assert transport.sent[0].path == "/datasets/a%2Fb"
