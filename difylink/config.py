from __future__ import annotations

import os
from typing import Optional

import yaml
from pydantic import BaseModel, Field

from .constants import (
    DEFAULT_BASE_DELAY,
    DEFAULT_BASE_URL,
    DEFAULT_CHAT_TIMEOUT,
    DEFAULT_FILE_TIMEOUT,
    DEFAULT_JITTER,
    DEFAULT_MAX_RETRIES,
    DEFAULT_POLL_INTERVAL,
    DEFAULT_WORKFLOW_TIMEOUT,
)


class CredentialsConfig(BaseModel):
    """Connection settings for the Dify API."""

    base_url: str = DEFAULT_BASE_URL
    api_key: str = ""


class RetryConfig(BaseModel):
    """Backoff settings for retried calls."""

    max_retries: int = DEFAULT_MAX_RETRIES
    base_delay: float = DEFAULT_BASE_DELAY
    jitter: float = DEFAULT_JITTER


class PollingConfig(BaseModel):
    """Workflow run polling settings."""

    interval: float = DEFAULT_POLL_INTERVAL


class TimeoutConfig(BaseModel):
    """Default request timeouts in seconds."""

    chat: float = DEFAULT_CHAT_TIMEOUT
    workflow: float = DEFAULT_WORKFLOW_TIMEOUT
    file: float = DEFAULT_FILE_TIMEOUT


class DifyConfig(BaseModel):
    """Top-level configuration model."""

    credentials: CredentialsConfig = Field(default_factory=CredentialsConfig)
    retry: RetryConfig = Field(default_factory=RetryConfig)
    polling: PollingConfig = Field(default_factory=PollingConfig)
    timeouts: TimeoutConfig = Field(default_factory=TimeoutConfig)
    log_level: str = "INFO"


def load_config(path: Optional[str] = None) -> DifyConfig:
    """Load configuration from YAML file.

    Args:
        path: Optional path to config file. Falls back to DIFYLINK_CONFIG env
            variable or 'config.yaml' in the current directory.
    """

    config_path = path or os.getenv("DIFYLINK_CONFIG", "config.yaml")
    if os.path.exists(config_path):
        with open(config_path) as f:
            data = yaml.safe_load(f) or {}
        config = DifyConfig(**data)
    else:
        config = DifyConfig()

    env_base_url = os.getenv("DIFY_BASE_URL")
    if env_base_url:
        config.credentials.base_url = env_base_url
    env_api_key = os.getenv("DIFY_API_KEY")
    if env_api_key:
        config.credentials.api_key = env_api_key
    return config
