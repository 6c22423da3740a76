"""Exception taxonomy for luna-llm."""

from enum import Enum
from typing import Any, List, Optional


class ErrorType(Enum):
    """Categories of errors raised by the library."""
    VALIDATION = "validation"
    PROVIDER_UNAVAILABLE = "provider_unavailable"
    TIMEOUT = "timeout"
    TOOL_EXECUTION = "tool_execution"
    STREAM_PROTOCOL = "stream_protocol"
    UNKNOWN_PROVIDER = "unknown_provider"
    UNKNOWN_MODEL = "unknown_model"
    MERGE = "merge"
    MODEL = "model"


class LunaLLMError(Exception):
    """Base exception for all luna-llm errors."""

    def __init__(
        self,
        message: str,
        error_type: ErrorType = ErrorType.MODEL,
        original_error: Optional[BaseException] = None,
    ):
        super().__init__(message)
        self.message = message
        self.error_type = error_type
        self.original_error = original_error


class ValidationError(LunaLLMError):
    """Arguments or structured output did not match the declared schema."""

    def __init__(self, message: str, original_error: Optional[BaseException] = None):
        super().__init__(message, ErrorType.VALIDATION, original_error)


class ProviderUnavailableError(LunaLLMError):
    """The provider pool has no enabled config with a free concurrency slot."""

    def __init__(self, message: str = "No available providers"):
        super().__init__(message, ErrorType.PROVIDER_UNAVAILABLE)


NoAvailableProvider = ProviderUnavailableError


class TimeoutError(LunaLLMError):
    """A single attempt exceeded its time bound."""

    def __init__(self, timeout: float, message: Optional[str] = None):
        if message is None:
            message = f"Operation timed out after {timeout * 1000:g}ms"
        super().__init__(message, ErrorType.TIMEOUT)
        self.timeout = timeout


class ToolExecutionError(LunaLLMError):
    """A tool raised while executing. Captured into a tool result, never propagated."""

    def __init__(self, tool_name: str, original_error: BaseException):
        super().__init__(
            f"The tool {tool_name} failed to execute: {original_error}",
            ErrorType.TOOL_EXECUTION,
            original_error,
        )
        self.tool_name = tool_name


class StreamProtocolError(LunaLLMError):
    """A model stream produced a chunk that violates the chunk contract."""

    def __init__(self, message: str, chunk: Any = None):
        super().__init__(message, ErrorType.STREAM_PROTOCOL)
        self.chunk = chunk


class UnknownProviderError(LunaLLMError):
    def __init__(self, provider_id: str, available: List[str]):
        super().__init__(
            f"No such provider: {provider_id}. Available providers: {', '.join(available) or 'none'}",
            ErrorType.UNKNOWN_PROVIDER,
        )
        self.provider_id = provider_id
        self.available = available


class UnknownModelError(LunaLLMError):
    def __init__(self, model_id: str, available: List[str], kind: str = "language model"):
        super().__init__(
            f"No such {kind}: {model_id}. Available models: {', '.join(available) or 'none'}",
            ErrorType.UNKNOWN_MODEL,
        )
        self.model_id = model_id
        self.available = available


class MergeError(LunaLLMError, ValueError):
    """Two message chunks (or values inside them) cannot be combined."""

    def __init__(self, message: str):
        super().__init__(message, ErrorType.MERGE)


class ModelError(LunaLLMError):
    """The model reported an error or returned an unusable response."""

    def __init__(self, message: str, original_error: Optional[BaseException] = None):
        super().__init__(message, ErrorType.MODEL, original_error)


class DeferredAlreadySettledError(RuntimeError):
    """A single-assignment result was resolved or rejected twice."""
