"""Knowledge base operations: datasets, documents, segments and tags.

Each operation is a row in :data:`ENDPOINTS`: the HTTP method, a path
template whose placeholders are host parameter names, query defaults read
from ``additionalFields``, and an optional body builder.
"""

from __future__ import annotations

import json
import string
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, List, Mapping, Optional, Tuple

from ..constants import KNOWLEDGE_DOCUMENT_MAX_SIZE, KNOWLEDGE_DOCUMENT_MIME_TYPES
from ..context import OperationContext
from ..contracts import FilePart, HttpMethod
from ..files import extract_file_info, validate_file_upload
from ..request import build_request, path_segment
from .base import Operation, OperationResult, client_for, options, param, record

BodyBuilder = Callable[[OperationContext, int, Dict[str, Any]], Dict[str, Any]]

_PAGING = {"page": 1, "limit": 20}
_LISTING = {"page": 1, "limit": 20, "sort": "-created_at", "keyword": None}


@dataclass(frozen=True)
class Endpoint:
    method: HttpMethod
    path: str
    query_defaults: Mapping[str, Any] = field(default_factory=dict)
    query_params: Tuple[str, ...] = ()
    body: Optional[BodyBuilder] = None
    upload: bool = False
    success_message: Optional[str] = None
    merge_response: bool = False
    items_property: Optional[str] = None

    def path_params(self) -> List[str]:
        return [name for _, name, _, _ in string.Formatter().parse(self.path) if name]


def _keywords(value: Any) -> Optional[List[str]]:
    if not value:
        return None
    if isinstance(value, list):
        return value
    return [k.strip() for k in str(value).split(",") if k.strip()]


def _retrieval_model(extra: Dict[str, Any]) -> Optional[Dict[str, Any]]:
    value = (extra.get("retrieval_model") or {}).get("retrievalModelValue")
    if not isinstance(value, dict):
        return None
    keys = ("search_method", "reranking_enable", "top_k", "score_threshold_enabled", "score_threshold")
    return {key: value.get(key) for key in keys}


def _process_rule(extra: Dict[str, Any]) -> Optional[Dict[str, Any]]:
    value = (extra.get("process_rule") or {}).get("processRuleValue")
    if not isinstance(value, dict):
        return None
    rule: Dict[str, Any] = {"mode": value.get("mode")}
    if value.get("mode") != "custom":
        return rule

    rules: Dict[str, Any] = {}
    pre = value.get("pre_processing_rules")
    if pre:
        pre = pre if isinstance(pre, list) else [pre]
        rules["pre_processing_rules"] = [{"id": r.get("id"), "enabled": r.get("enabled")} for r in pre]
    segmentation = (value.get("segmentation") or {}).get("segmentationValue")
    if isinstance(segmentation, dict):
        rules["segmentation"] = {
            "separator": segmentation.get("separator"),
            "max_tokens": segmentation.get("max_tokens"),
        }
    rule["rules"] = rules
    return rule


def _pick(extra: Dict[str, Any], *keys: str) -> Dict[str, Any]:
    return {key: extra.get(key) or None for key in keys}


_DATASET_FIELDS = (
    "description",
    "permission",
    "indexing_technique",
    "embedding_model",
    "embedding_model_provider",
)


def _dataset_create(context: OperationContext, i: int, extra: Dict[str, Any]) -> Dict[str, Any]:
    return {
        "name": context.get_parameter("name", i),
        **_pick(extra, *_DATASET_FIELDS),
        "retrieval_model": _retrieval_model(extra),
    }


def _dataset_update(context: OperationContext, i: int, extra: Dict[str, Any]) -> Dict[str, Any]:
    return {**_pick(extra, "name", *_DATASET_FIELDS), "retrieval_model": _retrieval_model(extra)}


def _hit_testing(context: OperationContext, i: int, extra: Dict[str, Any]) -> Dict[str, Any]:
    body: Dict[str, Any] = {"query": context.get_parameter("query", i)}
    if extra.get("search_method") or extra.get("top_k") or extra.get("score_threshold_enabled"):
        body["retrieval_model"] = {
            "search_method": extra.get("search_method") or "semantic_search",
            "top_k": extra.get("top_k") or 4,
            "score_threshold_enabled": bool(extra.get("score_threshold_enabled")),
            "score_threshold": (
                extra.get("score_threshold") if extra.get("score_threshold_enabled") else None
            ),
        }
    return body


def _document_text(context: OperationContext, i: int, extra: Dict[str, Any]) -> Dict[str, Any]:
    return {
        "name": param(context, "name", i, "") or extra.get("name") or None,
        "text": context.get_parameter("text", i),
        "indexing_technique": extra.get("indexing_technique") or None,
        "process_rule": _process_rule(extra),
    }


def _document_file(context: OperationContext, i: int, extra: Dict[str, Any]) -> Dict[str, Any]:
    settings = {
        "name": extra.get("name") or None,
        "indexing_technique": extra.get("indexing_technique") or None,
        "process_rule": _process_rule(extra),
    }
    settings = {k: v for k, v in settings.items() if v is not None}
    return {"data": json.dumps(settings)} if settings else {}


def _batch(context: OperationContext, i: int, extra: Dict[str, Any]) -> Dict[str, Any]:
    return {"batch": context.get_parameter("batch", i)}


def _segments(context: OperationContext, i: int, extra: Dict[str, Any]) -> Dict[str, Any]:
    raw = (context.get_parameter("segments", i, {}) or {}).get("segmentValue") or []
    raw = raw if isinstance(raw, list) else [raw]
    return {
        "segments": [
            {
                "content": s.get("content"),
                "answer": s.get("answer") or None,
                "keywords": _keywords(s.get("keywords")),
            }
            for s in raw
        ]
    }


def _segment_update(context: OperationContext, i: int, extra: Dict[str, Any]) -> Dict[str, Any]:
    enabled = extra.get("enabled")
    return {
        "content": context.get_parameter("content", i),
        "answer": extra.get("answer") or None,
        "keywords": _keywords(extra.get("keywords")),
        "enabled": enabled if isinstance(enabled, bool) else None,
    }


def _child_create(context: OperationContext, i: int, extra: Dict[str, Any]) -> Dict[str, Any]:
    return {
        "content": context.get_parameter("content", i),
        "answer": extra.get("answer") or None,
        "keywords": _keywords(extra.get("keywords")),
    }


def _child_update(context: OperationContext, i: int, extra: Dict[str, Any]) -> Dict[str, Any]:
    return {**_pick(extra, "content", "answer"), "keywords": _keywords(extra.get("keywords"))}


def _tag_create(context: OperationContext, i: int, extra: Dict[str, Any]) -> Dict[str, Any]:
    return {"name": context.get_parameter("name", i), "color": extra.get("color") or None}


def _tag_update(context: OperationContext, i: int, extra: Dict[str, Any]) -> Dict[str, Any]:
    return _pick(extra, "name", "color")


def _tag_bind(context: OperationContext, i: int, extra: Dict[str, Any]) -> Dict[str, Any]:
    return {"tag_ids": _keywords(context.get_parameter("tagIds", i)) or []}


_DATASET = "/datasets/{datasetId}"
_DOCUMENT = _DATASET + "/documents/{documentId}"
_SEGMENT = _DATASET + "/segments/{segmentId}"

ENDPOINTS: Dict[Tuple[str, str], Endpoint] = {
    ("dataset", "list"): Endpoint("GET", "/datasets", _PAGING, items_property="data"),
    ("dataset", "create"): Endpoint("POST", "/datasets", body=_dataset_create),
    ("dataset", "get"): Endpoint("GET", _DATASET),
    ("dataset", "update"): Endpoint("PATCH", _DATASET, body=_dataset_update),
    ("dataset", "delete"): Endpoint("DELETE", _DATASET, success_message="Dataset deleted successfully"),
    ("dataset", "getChunks"): Endpoint("POST", _DATASET + "/hit-testing", body=_hit_testing),
    ("document", "createFromText"): Endpoint(
        "POST", _DATASET + "/document/create_by_text", body=_document_text
    ),
    ("document", "createFromFile"): Endpoint(
        "POST", _DATASET + "/document/create_by_file", body=_document_file, upload=True
    ),
    ("document", "updateText"): Endpoint("POST", _DOCUMENT + "/update_by_text", body=_document_text),
    ("document", "updateFile"): Endpoint(
        "POST", _DOCUMENT + "/update_by_file", body=_document_file, upload=True
    ),
    ("document", "get"): Endpoint("GET", _DOCUMENT),
    ("document", "list"): Endpoint("GET", _DATASET + "/documents", _LISTING, items_property="data"),
    ("document", "delete"): Endpoint("DELETE", _DOCUMENT, success_message="Document deleted successfully"),
    ("document", "getStatus"): Endpoint(
        "GET", _DATASET + "/documents/indexing-status", query_params=("batch",)
    ),
    ("document", "updateStatus"): Endpoint("POST", _DATASET + "/documents/indexing-status", body=_batch),
    ("segment", "list"): Endpoint("GET", _DOCUMENT + "/segments", _LISTING),
    ("segment", "add"): Endpoint("POST", _DOCUMENT + "/segments", body=_segments),
    ("segment", "get"): Endpoint("GET", _SEGMENT),
    ("segment", "update"): Endpoint("POST", _SEGMENT, body=_segment_update),
    ("segment", "delete"): Endpoint("DELETE", _SEGMENT, success_message="Segment deleted successfully"),
    ("segment", "getChildren"): Endpoint("GET", _SEGMENT + "/child-chunks"),
    ("segment", "createChild"): Endpoint("POST", _SEGMENT + "/child-chunks", body=_child_create),
    ("segment", "updateChild"): Endpoint(
        "POST", _SEGMENT + "/child-chunks/{childId}", body=_child_update
    ),
    ("segment", "deleteChild"): Endpoint(
        "DELETE", _SEGMENT + "/child-chunks/{childId}", success_message="Child segment deleted successfully"
    ),
    ("metadata", "getTags"): Endpoint("GET", _DATASET + "/tags", _PAGING),
    ("metadata", "createTag"): Endpoint("POST", _DATASET + "/tags", body=_tag_create),
    ("metadata", "updateTag"): Endpoint("POST", _DATASET + "/tags/{tagId}", body=_tag_update),
    ("metadata", "deleteTag"): Endpoint(
        "DELETE", _DATASET + "/tags/{tagId}", success_message="Tag deleted successfully"
    ),
    ("metadata", "bindTag"): Endpoint(
        "POST",
        _DOCUMENT + "/tags/bind",
        body=_tag_bind,
        success_message="Tags bound successfully",
        merge_response=True,
    ),
    ("metadata", "unbindTag"): Endpoint(
        "POST",
        _DOCUMENT + "/tags/{tagId}/unbind",
        success_message="Tag unbound successfully",
        merge_response=True,
    ),
}


def _resolve_path(endpoint: Endpoint, context: OperationContext, item_index: int) -> str:
    values = {
        name: path_segment(context.get_parameter(name, item_index))
        for name in endpoint.path_params()
    }
    return endpoint.path.format(**values)


async def run_endpoint(
    endpoint: Endpoint, context: OperationContext, item_index: int
) -> OperationResult:
    """Execute one knowledge base operation for one input item."""
    extra = options(context, "additionalFields", item_index)
    path = _resolve_path(endpoint, context, item_index)

    query: Dict[str, Any] = {
        key: extra.get(key) or default for key, default in endpoint.query_defaults.items()
    }
    for name in endpoint.query_params:
        query[name] = context.get_parameter(name, item_index)

    files: List[FilePart] = []
    if endpoint.upload:
        file = extract_file_info(context.get_binary(item_index, context.get_parameter("file", item_index)))
        validate_file_upload(file, KNOWLEDGE_DOCUMENT_MIME_TYPES, KNOWLEDGE_DOCUMENT_MAX_SIZE)
        files.append(FilePart(filename=file.name, content=file.data, mime_type=file.mime_type))

    body = endpoint.body(context, item_index, extra) if endpoint.body else None
    client = client_for(context)

    def build(page_query: Optional[Dict[str, Any]] = None):
        return build_request(
            endpoint.method,
            path,
            query=page_query or query,
            body=body,
            files=files,
            timeout=context.config.timeouts.file if files else context.config.timeouts.chat,
        )

    if endpoint.items_property and extra.get("returnAll"):
        items = await client.request_all_items(
            endpoint.items_property,
            lambda page, limit: build({**query, "page": page, "limit": limit}),
        )
        return record({endpoint.items_property: items, "total": len(items)}, item_index)

    response = await client.request(build())

    if endpoint.success_message:
        data = {"success": True, "message": endpoint.success_message}
        if endpoint.merge_response and isinstance(response, dict):
            data.update(response)
        return record(data, item_index)
    return record(response if isinstance(response, dict) else {"data": response}, item_index)


def _operation(resource: str, operation: str, endpoint: Endpoint) -> Operation:
    async def run(context: OperationContext, item_index: int) -> OperationResult:
        return await run_endpoint(endpoint, context, item_index)

    run.__name__ = f"{resource}_{operation}"
    return run


KNOWLEDGE_OPERATIONS: Dict[Tuple[str, str], Operation] = {
    key: _operation(key[0], key[1], endpoint) for key, endpoint in ENDPOINTS.items()
}
