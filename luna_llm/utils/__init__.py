"""Utility functions for luna-llm."""

from .json_utils import ParseResult, chunk_array, safe_parse_json
from .limiter import ConcurrencyLimiter, create_limiter
from .messages import transform_message_remove_system
from .retry import RetryAttempt, RetryInfo, with_retry

__all__ = [
    "ParseResult",
    "chunk_array",
    "safe_parse_json",
    "ConcurrencyLimiter",
    "create_limiter",
    "transform_message_remove_system",
    "RetryAttempt",
    "RetryInfo",
    "with_retry",
]
