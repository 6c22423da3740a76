"""Language model interface and the stream chunk contract consumed by the generation engines."""

import asyncio
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, AsyncIterator, Dict, List, Optional

from .message import Message
from .metrics import LanguageModelUsage


class FinishReason(str, Enum):
    """Why a model stopped generating."""
    STOP = "stop"
    LENGTH = "length"
    CONTENT_FILTER = "content-filter"
    TOOL_CALLS = "tool-calls"
    ERROR = "error"
    OTHER = "other"
    UNKNOWN = "unknown"
    CANCELLED = "cancelled"


class ChunkType(str, Enum):
    """Kinds of chunk a model stream may produce."""
    TEXT_DELTA = "text-delta"
    REASONING = "reasoning"
    SOURCE = "source"
    TOOL_CALL = "tool-call"
    TOOL_CALL_DELTA = "tool-call-delta"
    RESPONSE_METADATA = "response-metadata"
    FINISH = "finish"
    ERROR = "error"


@dataclass
class LanguageModelSource:
    """A source used as input to the response, e.g. a web search hit."""
    url: str
    id: Optional[str] = None
    title: Optional[str] = None
    source_type: str = "url"


@dataclass
class LanguageModelToolCall:
    """A raw tool call as issued by the model; ``arguments`` is unparsed JSON text."""
    tool_id: Optional[str] = None
    tool_name: Optional[str] = None
    arguments: str = ""


@dataclass
class ResponseMetadata:
    timestamp: float
    model: Optional[str] = None
    response_type: Optional[str] = None
    id: Optional[str] = None


@dataclass
class ResponseFormat:
    type: str = "text"  # "text" or "json"
    schema: Optional[Dict[str, Any]] = None
    name: Optional[str] = None
    description: Optional[str] = None


@dataclass
class LanguageModelStreamChunk:
    """One event of a model stream.

    Only the fields relevant to ``type`` are populated; use the
    constructors below rather than filling fields by hand.
    """
    type: str
    text_delta: Optional[str] = None
    source: Optional[LanguageModelSource] = None
    tool_call: Optional[LanguageModelToolCall] = None
    args_text_delta: Optional[str] = None
    finish_reason: Optional[str] = None
    usage: Optional[LanguageModelUsage] = None
    error: Any = None
    metadata: Optional[ResponseMetadata] = None

    @classmethod
    def text(cls, delta: str) -> "LanguageModelStreamChunk":
        return cls(type=ChunkType.TEXT_DELTA, text_delta=delta)

    @classmethod
    def reasoning(cls, delta: str) -> "LanguageModelStreamChunk":
        return cls(type=ChunkType.REASONING, text_delta=delta)

    @classmethod
    def source_chunk(cls, source: LanguageModelSource) -> "LanguageModelStreamChunk":
        return cls(type=ChunkType.SOURCE, source=source)

    @classmethod
    def tool_call_chunk(
        cls, tool_id: Optional[str], tool_name: str, arguments: str = ""
    ) -> "LanguageModelStreamChunk":
        return cls(
            type=ChunkType.TOOL_CALL,
            tool_call=LanguageModelToolCall(tool_id=tool_id, tool_name=tool_name, arguments=arguments),
        )

    @classmethod
    def tool_call_delta(
        cls, tool_id: Optional[str], tool_name: str, args_text_delta: str
    ) -> "LanguageModelStreamChunk":
        return cls(
            type=ChunkType.TOOL_CALL_DELTA,
            tool_call=LanguageModelToolCall(tool_id=tool_id, tool_name=tool_name),
            args_text_delta=args_text_delta,
        )

    @classmethod
    def response_metadata(cls, metadata: ResponseMetadata) -> "LanguageModelStreamChunk":
        return cls(type=ChunkType.RESPONSE_METADATA, metadata=metadata)

    @classmethod
    def finish(
        cls, finish_reason: str, usage: Optional[LanguageModelUsage] = None
    ) -> "LanguageModelStreamChunk":
        return cls(type=ChunkType.FINISH, finish_reason=finish_reason, usage=usage)

    @classmethod
    def error_chunk(cls, error: Any) -> "LanguageModelStreamChunk":
        return cls(type=ChunkType.ERROR, error=error)


@dataclass
class GenerateResponse:
    """Result of a single non-streaming model call."""
    response: Message
    finish_reason: str = FinishReason.STOP
    text: Optional[str] = None
    reasoning: Optional[str] = None
    usage: Optional[LanguageModelUsage] = None
    tool_calls: List[LanguageModelToolCall] = field(default_factory=list)
    response_metadata: List[ResponseMetadata] = field(default_factory=list)


@dataclass
class LanguageModelCallOptions:
    """Everything a model needs for one call."""
    prompt: List[Message]
    tools: Optional[List[Dict[str, Any]]] = None
    max_tokens: Optional[int] = None
    temperature: Optional[float] = None
    top_p: Optional[float] = None
    top_k: Optional[int] = None
    presence_penalty: Optional[float] = None
    frequency_penalty: Optional[float] = None
    stop: Optional[List[str]] = None
    seed: Optional[int] = None
    response_format: Optional[ResponseFormat] = None
    headers: Optional[Dict[str, str]] = None
    model_id: Optional[str] = None
    signal: Optional[asyncio.Event] = None


CALL_SETTING_FIELDS = (
    "max_tokens",
    "temperature",
    "top_p",
    "top_k",
    "presence_penalty",
    "frequency_penalty",
    "stop",
    "seed",
    "headers",
    "model_id",
)


def split_call_settings(settings: Dict[str, Any]) -> Dict[str, Any]:
    """Validate generation keyword arguments against the known call settings."""
    unknown = set(settings) - set(CALL_SETTING_FIELDS)
    if unknown:
        raise TypeError(f"Unknown call settings: {', '.join(sorted(unknown))}")
    return {k: v for k, v in settings.items() if v is not None}


class LanguageModel(ABC):
    """Contract every concrete model adapter implements."""

    provider: str = ""
    model: str = ""

    @abstractmethod
    async def do_generate(self, options: LanguageModelCallOptions) -> GenerateResponse:
        """Run one non-streaming call."""

    @abstractmethod
    async def do_stream(
        self, options: LanguageModelCallOptions
    ) -> AsyncIterator[LanguageModelStreamChunk]:
        """Open a stream and return an async iterator of chunks."""
