"""Host-facing execution context."""

from __future__ import annotations

from typing import Any, Dict, List, Mapping, Optional, Protocol, Sequence

from .config import DifyConfig
from .constants import CREDENTIALS_NAME
from .contracts import BinaryAttachment, Credentials
from .errors import ValidationError
from .transports import BaseTransport

_MISSING = object()


class OperationContext(Protocol):
    """What an operation may ask of the host for one invocation."""

    config: DifyConfig
    continue_on_fail: bool
    transport: Optional[BaseTransport]

    def get_parameter(self, name: str, item_index: int, default: Any = ...) -> Any:
        """Return a parameter value for ``item_index``."""

    def get_binary(self, item_index: int, field_name: str) -> BinaryAttachment:
        """Return the binary attachment stored under ``field_name``."""

    def get_credentials(self, name: str) -> Credentials:
        """Return the named credentials."""

    def item_count(self) -> int:
        """Number of input items in this invocation."""


class ExecutionContext:
    """In-process context backed by plain mappings.

    Args:
        items: One parameter mapping per input item. Dotted names such as
            ``inputs.inputsValues`` resolve through nested mappings.
        binaries: Per-item mapping of field name to attachment.
        credentials: Credentials returned for ``difyApi``; defaults to the
            configured ones.
        config: Loaded configuration; defaults to ``DifyConfig()``.
        continue_on_fail: Turn item failures into error records.
        transport: Transport override, used instead of HTTP when given.
    """

    def __init__(
        self,
        items: Sequence[Mapping[str, Any]],
        binaries: Optional[Sequence[Mapping[str, BinaryAttachment]]] = None,
        credentials: Optional[Credentials] = None,
        config: Optional[DifyConfig] = None,
        continue_on_fail: bool = False,
        transport: Optional[BaseTransport] = None,
    ) -> None:
        self._items: List[Mapping[str, Any]] = list(items) or [{}]
        self._binaries: List[Mapping[str, BinaryAttachment]] = list(binaries or [])
        self.config = config or DifyConfig()
        self._credentials = credentials or Credentials(
            base_url=self.config.credentials.base_url,
            api_key=self.config.credentials.api_key,
        )
        self.continue_on_fail = continue_on_fail
        self.transport = transport

    def item_count(self) -> int:
        return len(self._items)

    def get_parameter(self, name: str, item_index: int, default: Any = _MISSING) -> Any:
        value: Any = self._items[item_index]
        for part in name.split("."):
            if isinstance(value, Mapping) and part in value:
                value = value[part]
            elif default is _MISSING:
                raise ValidationError(
                    f"Parameter '{name}' is required", item_index=item_index
                )
            else:
                return default
        return value

    def get_binary(self, item_index: int, field_name: str) -> BinaryAttachment:
        binaries: Mapping[str, BinaryAttachment] = (
            self._binaries[item_index] if item_index < len(self._binaries) else {}
        )
        if field_name not in binaries:
            raise ValidationError(
                f"No binary data found in field '{field_name}'", item_index=item_index
            )
        return binaries[field_name]

    def get_credentials(self, name: str = CREDENTIALS_NAME) -> Credentials:
        if name != CREDENTIALS_NAME:
            raise ValidationError(f"Unknown credentials '{name}'")
        return self._credentials


def collection_to_dict(entries: Any, key: str = "key", value: str = "value") -> Dict[str, Any]:
    """Flatten ``[{key, value}, ...]`` pairs, dropping empty keys or values."""
    if isinstance(entries, Mapping):
        return {k: v for k, v in entries.items() if k and v not in (None, "")}
    result: Dict[str, Any] = {}
    for entry in entries or []:
        k, v = entry.get(key), entry.get(value)
        if k and v not in (None, ""):
            result[k] = v
    return result
