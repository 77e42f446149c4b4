"""difylink: Dify generative-AI platform operations for workflow hosts."""

from .client import DifyClient
from .config import DifyConfig, load_config
from .context import ExecutionContext, OperationContext
from .contracts import BinaryAttachment, Credentials, OutputRecord, RequestDescriptor, SSEEvent
from .errors import (
    ClientError,
    DifyError,
    NetworkError,
    OperationError,
    PollTimeoutError,
    RateLimited,
    ServerError,
    ValidationError,
    WorkflowExecutionError,
)
from .operations import OPERATIONS, execute
from .request import build_request
from .transports import get_transport

__version__ = "0.1.0"
__all__ = [
    "BinaryAttachment",
    "ClientError",
    "Credentials",
    "DifyClient",
    "DifyConfig",
    "DifyError",
    "ExecutionContext",
    "NetworkError",
    "OPERATIONS",
    "OperationContext",
    "OperationError",
    "OutputRecord",
    "PollTimeoutError",
    "RateLimited",
    "RequestDescriptor",
    "SSEEvent",
    "ServerError",
    "ValidationError",
    "WorkflowExecutionError",
    "build_request",
    "execute",
    "get_transport",
    "load_config",
]
