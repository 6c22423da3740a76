"""Translation of model stream chunks into the parts ``stream_text`` emits."""

import json
import logging
import time
from dataclasses import dataclass, replace
from typing import Any, Callable, Dict, Optional

from .exceptions import StreamProtocolError
from .language_model import (
    ChunkType,
    LanguageModelSource,
    LanguageModelStreamChunk,
    LanguageModelToolCall,
    ResponseMetadata,
)
from .message import ToolCallPart, ToolResultPart
from .metrics import LanguageModelUsage

logger = logging.getLogger(__name__)


class PartType:
    TEXT_DELTA = "text-delta"
    REASONING = "reasoning"
    SOURCE = "source"
    TOOL_CALL = "tool-call"
    TOOL_RESULT = "tool-result"
    STEP_START = "step-start"
    STEP_FINISH = "step-finish"
    FINISH = "finish"
    ERROR = "error"
    RESPONSE_METADATA = "response-metadata"


# Part types whose change of kind is announced with a response-metadata part.
CONTENT_KINDS = {
    PartType.TEXT_DELTA: "text",
    PartType.REASONING: "reasoning",
    PartType.SOURCE: "source",
    PartType.TOOL_CALL: "tool-call",
    PartType.TOOL_RESULT: "tool-call",
}


@dataclass
class TextStreamPart:
    """One event of ``StreamTextResult.full_stream``."""
    type: str
    text_delta: Optional[str] = None
    source: Optional[LanguageModelSource] = None
    tool_call: Optional[ToolCallPart] = None
    tool_result: Optional[ToolResultPart] = None
    finish_reason: Optional[str] = None
    usage: Optional[LanguageModelUsage] = None
    error: Any = None
    metadata: Optional[ResponseMetadata] = None
    step: Optional[int] = None
    is_continued: bool = False


ToolCallParser = Callable[[LanguageModelToolCall], ToolCallPart]


def raw_tool_call_part(tool_call: LanguageModelToolCall) -> ToolCallPart:
    """Record a tool call as the model sent it, without resolving it against any tool."""
    args = {}
    if tool_call.arguments:
        try:
            args = json.loads(tool_call.arguments)
        except json.JSONDecodeError:
            args = tool_call.arguments
    return ToolCallPart(tool_call_id=tool_call.tool_id, tool_name=tool_call.tool_name, args=args)


def _call_key(tool_call: LanguageModelToolCall) -> str:
    return tool_call.tool_id or tool_call.tool_name or ""


class StreamNormalizer:
    """Validates model chunks and converts them to :class:`TextStreamPart`.

    Stateful: remembers the kind of the last content part so a
    ``response-metadata`` part can be emitted before the first part of a
    new kind, and collects ``tool-call-delta`` argument text until the
    matching ``tool-call`` chunk arrives. Create one per ``stream_text``
    call.
    """

    def __init__(
        self,
        model_id: Optional[str] = None,
        tool_call_parser: Optional[ToolCallParser] = None,
        clock: Callable[[], float] = time.time,
    ):
        self.model_id = model_id
        self.tool_call_parser = tool_call_parser or raw_tool_call_part
        self.clock = clock
        self.last_kind: Optional[str] = None
        self.pending_args: Dict[str, str] = {}

    def reset(self):
        """Drop partial tool-call arguments left by the previous step."""
        if self.pending_args:
            logger.debug(f"Discarding arguments of unfinished tool calls: {list(self.pending_args)}")
        self.pending_args = {}

    def boundary(self, part: TextStreamPart) -> Optional[TextStreamPart]:
        """Return a response-metadata part if ``part`` starts a new content kind."""
        kind = CONTENT_KINDS.get(part.type)
        if kind is None or kind == self.last_kind:
            return None
        self.last_kind = kind
        return TextStreamPart(
            type=PartType.RESPONSE_METADATA,
            metadata=ResponseMetadata(
                timestamp=self.clock(), model=self.model_id, response_type=kind
            ),
        )

    def normalize(self, chunk: Any) -> Optional[TextStreamPart]:
        """Convert one model chunk. Returns ``None`` for chunks that carry nothing to emit.

        Raises StreamProtocolError for chunks outside the chunk contract.
        """
        if not isinstance(chunk, LanguageModelStreamChunk):
            raise StreamProtocolError(f"Unexpected stream chunk: {chunk!r}", chunk)

        chunk_type = chunk.type.value if isinstance(chunk.type, ChunkType) else chunk.type

        if chunk_type in (ChunkType.TEXT_DELTA.value, ChunkType.REASONING.value):
            if not isinstance(chunk.text_delta, str):
                raise StreamProtocolError(f"{chunk_type} chunk without text", chunk)
            return TextStreamPart(type=chunk_type, text_delta=chunk.text_delta)

        if chunk_type == ChunkType.SOURCE.value:
            if chunk.source is None:
                raise StreamProtocolError("source chunk without a source", chunk)
            return TextStreamPart(type=PartType.SOURCE, source=chunk.source)

        if chunk_type == ChunkType.TOOL_CALL.value:
            if chunk.tool_call is None or not chunk.tool_call.tool_name:
                raise StreamProtocolError("tool-call chunk without a tool name", chunk)
            tool_call = chunk.tool_call
            streamed = self.pending_args.pop(_call_key(tool_call), "")
            if not tool_call.arguments and streamed:
                tool_call = replace(tool_call, arguments=streamed)
            return TextStreamPart(type=PartType.TOOL_CALL, tool_call=self.tool_call_parser(tool_call))

        if chunk_type == ChunkType.TOOL_CALL_DELTA.value:
            if chunk.tool_call is None or not isinstance(chunk.args_text_delta, str):
                raise StreamProtocolError("tool-call-delta chunk without argument text", chunk)
            key = _call_key(chunk.tool_call)
            self.pending_args[key] = self.pending_args.get(key, "") + chunk.args_text_delta
            return None

        if chunk_type == ChunkType.RESPONSE_METADATA.value:
            if chunk.metadata is None:
                raise StreamProtocolError("response-metadata chunk without metadata", chunk)
            return TextStreamPart(type=PartType.RESPONSE_METADATA, metadata=chunk.metadata)

        if chunk_type == ChunkType.FINISH.value:
            usage = chunk.usage
            if isinstance(usage, dict):
                usage = LanguageModelUsage.from_dict(usage)
            return TextStreamPart(
                type=PartType.FINISH,
                finish_reason=chunk.finish_reason or "unknown",
                usage=usage,
            )

        if chunk_type == ChunkType.ERROR.value:
            return TextStreamPart(type=PartType.ERROR, error=chunk.error)

        raise StreamProtocolError(f"Unknown stream chunk type: {chunk_type!r}", chunk)
