"""
Luna LLM - multi-step text generation over pooled model providers.

This package provides provider-agnostic text generation with tool calling,
streaming with fan-out views, structured output and embeddings, on top of
a load-balanced pool of provider configs.
"""

from .core.callback import Callback, CallbackManager
from .core.config import LunaConfig, configure_logging
from .core.exceptions import (
    ErrorType,
    LunaLLMError,
    MergeError,
    ModelError,
    NoAvailableProvider,
    ProviderUnavailableError,
    StreamProtocolError,
    TimeoutError,
    ToolExecutionError,
    UnknownModelError,
    UnknownProviderError,
    ValidationError,
)
from .core.generate import (
    EmbedResult,
    GenerateObjectResult,
    GenerateTextResult,
    StepResult,
    StreamTextResult,
    embed,
    execute_tools,
    generate_object,
    generate_text,
    parse_tool_call,
    stream_text,
)
from .core.language_model import (
    FinishReason,
    GenerateResponse,
    LanguageModel,
    LanguageModelCallOptions,
    LanguageModelStreamChunk,
    LanguageModelToolCall,
)
from .core.embedding import EmbeddingModel, EmbeddingResult
from .core.memory import BufferWindowMemory, InMemoryChatMessageHistory
from .core.message import Message, MessageRole, concat_chunks
from .core.metrics import EmbeddingModelUsage, LanguageModelUsage, add_language_model_usage
from .core.prompts import ChatPromptTemplate, MessagesPlaceholder, PromptTemplate
from .core.tools import FunctionTool, HTTPTool, ParameterSchema, ToolSchema, tool
from .providers import (
    MockProvider,
    PooledCaller,
    Provider,
    ProviderConfig,
    ProviderPool,
    ProviderRegistry,
)
from .utils import create_limiter, with_retry

__version__ = "0.1.0"

__all__ = [
    # Generation
    "generate_text",
    "stream_text",
    "generate_object",
    "embed",
    "parse_tool_call",
    "execute_tools",
    "GenerateTextResult",
    "StreamTextResult",
    "StepResult",
    "GenerateObjectResult",
    "EmbedResult",
    # Models
    "LanguageModel",
    "LanguageModelCallOptions",
    "LanguageModelStreamChunk",
    "LanguageModelToolCall",
    "GenerateResponse",
    "FinishReason",
    "EmbeddingModel",
    "EmbeddingResult",
    # Messages, usage and tools
    "Message",
    "MessageRole",
    "concat_chunks",
    "LanguageModelUsage",
    "EmbeddingModelUsage",
    "add_language_model_usage",
    "FunctionTool",
    "HTTPTool",
    "ParameterSchema",
    "ToolSchema",
    "tool",
    "Callback",
    "CallbackManager",
    "BufferWindowMemory",
    "InMemoryChatMessageHistory",
    # Prompts
    "PromptTemplate",
    "ChatPromptTemplate",
    "MessagesPlaceholder",
    # Providers
    "Provider",
    "ProviderConfig",
    "ProviderPool",
    "ProviderRegistry",
    "PooledCaller",
    "MockProvider",
    "create_limiter",
    "with_retry",
    # Configuration
    "LunaConfig",
    "configure_logging",
    # Exceptions
    "ErrorType",
    "LunaLLMError",
    "ValidationError",
    "ProviderUnavailableError",
    "NoAvailableProvider",
    "TimeoutError",
    "ToolExecutionError",
    "StreamProtocolError",
    "UnknownProviderError",
    "UnknownModelError",
    "MergeError",
    "ModelError",
]
