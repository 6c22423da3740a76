"""Generation engines: text, streaming text, structured objects and embeddings."""

from .embed import EmbedResult, embed
from .generate_object import GenerateObjectResult, generate_object
from .generate_text import GenerateTextResult, StepResult, StepType, generate_text, to_response_messages
from .stream_text import StreamTextResult, stream_message_chunks, stream_text
from .tool_call import EXCEPTION_TOOL_NAME, execute_tools, parse_tool_call

__all__ = [
    "EmbedResult",
    "embed",
    "GenerateObjectResult",
    "generate_object",
    "GenerateTextResult",
    "StepResult",
    "StepType",
    "generate_text",
    "to_response_messages",
    "StreamTextResult",
    "stream_message_chunks",
    "stream_text",
    "EXCEPTION_TOOL_NAME",
    "execute_tools",
    "parse_tool_call",
]
