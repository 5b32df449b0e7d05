"""
reqbridge Common Module

Shared infrastructure for the multi-source and notification workflows.
"""

from .config import ReqBridgeConfig, BacklogSpace, load_config
from .errors import ReqBridgeError, ConfigurationError, SourceError, PublishError
from .events import StageEvent
from .llm_client import LLMClient, create_llm_client

__all__ = [
    "ReqBridgeConfig",
    "BacklogSpace",
    "load_config",
    "ReqBridgeError",
    "ConfigurationError",
    "SourceError",
    "PublishError",
    "StageEvent",
    "LLMClient",
    "create_llm_client",
]
