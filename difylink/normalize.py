"""Response normalizer for blocking API responses."""

from __future__ import annotations

from typing import Any, Mapping


def normalize_response(
    payload: Any,
    include_usage: bool = False,
    include_retriever_resources: bool = False,
) -> Any:
    """Strip optional ``metadata`` sections the caller did not ask for.

    Drops ``metadata.usage`` unless ``include_usage`` and
    ``metadata.retriever_resources`` unless ``include_retriever_resources``,
    then removes ``metadata`` if nothing is left in it. The input is not
    modified; anything that is not a mapping with a mapping ``metadata`` is
    returned as is.
    """
    if not isinstance(payload, Mapping):
        return payload

    result = dict(payload)
    metadata = result.get("metadata")
    if not isinstance(metadata, Mapping):
        return result

    metadata = dict(metadata)
    if not include_usage:
        metadata.pop("usage", None)
    if not include_retriever_resources:
        metadata.pop("retriever_resources", None)

    if metadata:
        result["metadata"] = metadata
    else:
        del result["metadata"]
    return result
