"""Core data model, interfaces and stream plumbing."""

from .callback import Callback, CallbackManager
from .config import LunaConfig, configure_logging
from .embedding import EmbeddingModel, EmbeddingResult
from .exceptions import (
    DeferredAlreadySettledError,
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
from .language_model import (
    ChunkType,
    FinishReason,
    GenerateResponse,
    LanguageModel,
    LanguageModelCallOptions,
    LanguageModelSource,
    LanguageModelStreamChunk,
    LanguageModelToolCall,
    ResponseFormat,
    ResponseMetadata,
)
from .memory import BaseChatMessageHistory, BufferWindowMemory, InMemoryChatMessageHistory
from .message import (
    AudioPart,
    FilePart,
    ImagePart,
    Message,
    MessageRole,
    TextPart,
    ThinkPart,
    ToolCallPart,
    ToolResultPart,
    concat_chunks,
    create_message_chunk,
    get_text_in_message_content,
    merge_dicts,
    merge_lists,
    merge_obj,
)
from .metrics import (
    EmbeddingModelUsage,
    LanguageModelUsage,
    add_embedding_model_usage,
    add_language_model_usage,
)
from .prompts import (
    ChatPromptTemplate,
    MessagePromptTemplate,
    MessagesPlaceholder,
    PromptTemplate,
    assistant_message_prompt_template,
    render_template,
    system_message_prompt_template,
    user_message_prompt_template,
)
from .stream_normalizer import PartType, StreamNormalizer, TextStreamPart
from .streaming import Deferred, StreamBroadcaster
from .tools import (
    BaseTool,
    FunctionTool,
    HTTPTool,
    ParameterSchema,
    ToolSchema,
    ToolType,
    format_tools_to_language_model_tools,
    tool,
)
