import pytest

from difylink.config import DifyConfig, RetryConfig
from difylink.context import ExecutionContext
from difylink.contracts import Credentials
from difylink.transports.inmemory import InMemoryTransport


@pytest.fixture
def transport():
    return InMemoryTransport()


@pytest.fixture
def fast_config():
    """Config with no backoff so retried calls do not sleep."""
    return DifyConfig(retry=RetryConfig(max_retries=3, base_delay=0.0, jitter=0.0))


@pytest.fixture
def make_context(transport, fast_config):
    def factory(*items, binaries=None, continue_on_fail=False):
        return ExecutionContext(
            list(items),
            binaries=binaries,
            credentials=Credentials(base_url="https://api.example.com", api_key="app-key"),
            config=fast_config,
            continue_on_fail=continue_on_fail,
            transport=transport,
        )

    return factory
