"""Multi-step, non-streaming text generation with tool calling."""

import asyncio
import logging
from dataclasses import asdict, dataclass, field
from typing import Any, List, Optional, Sequence, Union

from ..callback import Callback, as_callback
from ..config import LunaConfig
from ..language_model import (
    FinishReason,
    GenerateResponse,
    LanguageModel,
    LanguageModelCallOptions,
    LanguageModelSource,
    ResponseFormat,
    ResponseMetadata,
    split_call_settings,
)
from ..message import Message, MessageRole, TextPart, ToolCallPart, ToolResultPart
from ..metrics import EMPTY_USAGE, LanguageModelUsage, add_language_model_usage
from ..stream_normalizer import raw_tool_call_part
from ..tools import BaseTool, format_tools_to_language_model_tools
from .tool_call import execute_tools, parse_tool_call

logger = logging.getLogger(__name__)

DEFAULT_MAX_STEPS = 5


class StepType:
    INITIAL = "initial"
    TOOL_RESULT = "tool-result"
    CONTINUE = "continue"
    DONE = "done"


@dataclass
class StepResult:
    """Outcome of one model round. ``usage`` covers this step only."""
    text: str
    finish_reason: str
    usage: LanguageModelUsage
    step_type: str = StepType.INITIAL
    reasoning: Optional[str] = None
    sources: List[LanguageModelSource] = field(default_factory=list)
    tool_calls: List[ToolCallPart] = field(default_factory=list)
    tool_results: List[ToolResultPart] = field(default_factory=list)
    metadata: List[ResponseMetadata] = field(default_factory=list)


@dataclass
class GenerateTextResult:
    text: str
    finish_reason: str
    usage: LanguageModelUsage
    steps: List[StepResult]
    reasoning: Optional[str] = None
    sources: List[LanguageModelSource] = field(default_factory=list)
    tool_calls: List[ToolCallPart] = field(default_factory=list)
    tool_results: List[ToolResultPart] = field(default_factory=list)
    metadata: List[ResponseMetadata] = field(default_factory=list)
    response_messages: List[Message] = field(default_factory=list)


def format_prompt(prompt: Union[str, Sequence[Message]]) -> List[Message]:
    if isinstance(prompt, str):
        return [Message.user(prompt)]
    return list(prompt)


def check_max_steps(max_steps: Optional[int], config: Optional[LunaConfig] = None) -> int:
    if max_steps is None:
        return config.max_steps if config is not None else DEFAULT_MAX_STEPS
    if max_steps < 1:
        raise ValueError("max_steps must be greater than 0")
    return max_steps


def to_response_messages(
    text: str,
    tool_calls: Sequence[ToolCallPart],
    tool_results: Sequence[ToolResultPart],
) -> List[Message]:
    """Messages that record one step in the running history."""
    if tool_calls:
        content = ([TextPart(text=text)] if text else []) + list(tool_calls)
        messages = [Message.assistant(content)]
    else:
        messages = [Message.assistant(text)]

    if tool_results:
        messages.append(Message.tool(list(tool_results)))
    return messages


def append_to_last_assistant(messages: List[Message], text: str) -> None:
    """Extend the trailing assistant message with a continuation fragment."""
    for message in reversed(messages):
        if message.role != MessageRole.ASSISTANT:
            continue
        if isinstance(message.content, str):
            message.content += text
        else:
            message.content.append(TextPart(text=text))
        return
    messages.append(Message.assistant(text))


def next_step_type(
    step_count: int,
    max_steps: int,
    finish_reason: str,
    tool_calls: Sequence[ToolCallPart],
    tool_results: Sequence[ToolResultPart],
    return_directly: bool,
) -> str:
    if return_directly or step_count >= max_steps:
        return StepType.DONE
    if finish_reason == FinishReason.LENGTH and not tool_calls:
        return StepType.CONTINUE
    if tool_calls and len(tool_results) == len(tool_calls):
        return StepType.TOOL_RESULT
    return StepType.DONE


async def generate_text(
    model: LanguageModel,
    prompt: Union[str, Sequence[Message]],
    tools: Optional[Sequence[BaseTool]] = None,
    callback: Optional[Callback] = None,
    max_steps: Optional[int] = None,
    signal: Optional[asyncio.Event] = None,
    response_format: Optional[ResponseFormat] = None,
    config: Optional[LunaConfig] = None,
    **settings: Any,
) -> GenerateTextResult:
    """Generate text, executing tool calls and continuing truncated output.

    Each step sends the prompt plus every response message so far. The
    loop ends when the model stops without tool calls, a tool asks to
    return directly, or ``max_steps`` is reached. Model errors propagate.
    Without ``max_steps`` the limit comes from ``config`` when given.
    """
    formatted_prompt = format_prompt(prompt)

    if response_format is not None and response_format.type == "json":
        raise ValueError(
            "JSON response format is not supported by generate_text, use generate_object instead"
        )

    max_steps = check_max_steps(max_steps, config)
    call_settings = split_call_settings(settings)
    callback = as_callback(callback)
    language_model_tools = format_tools_to_language_model_tools(tools)

    response_messages: List[Message] = []
    steps: List[StepResult] = []
    metadata: List[ResponseMetadata] = []
    usage = EMPTY_USAGE
    text = ""
    step_type = StepType.INITIAL
    current_response: Optional[GenerateResponse] = None
    current_tool_calls: List[ToolCallPart] = []
    current_tool_results: List[ToolResultPart] = []
    all_tool_calls: List[ToolCallPart] = []
    all_tool_results: List[ToolResultPart] = []
    step_count = 0
    finish_reason = FinishReason.UNKNOWN.value

    while step_type != StepType.DONE:
        if signal is not None and signal.is_set():
            if not steps:
                raise asyncio.CancelledError("generate_text was aborted before the first step")
            finish_reason = FinishReason.CANCELLED.value
            break

        step_input = formatted_prompt + response_messages
        meta = {"messages": step_input, "tools": language_model_tools, "model_id": model.model}
        meta.update(call_settings)
        callback.on_llm_start(meta)

        try:
            current_response = await model.do_generate(LanguageModelCallOptions(
                prompt=step_input,
                tools=language_model_tools,
                signal=signal,
                **call_settings,
            ))
        except Exception as e:
            logger.error(f"Model call failed at step {step_count + 1}: {e}")
            callback.on_error(e, {"model_id": model.model, **call_settings})
            raise

        metadata.extend(current_response.response_metadata)
        for item in current_response.response_metadata:
            callback.on_meta(asdict(item))
        callback.on_llm_end({"response": current_response, "model_id": model.model, **call_settings})

        parse = (lambda tc: parse_tool_call(tc, tools)) if tools else raw_tool_call_part
        current_tool_calls = [parse(tc) for tc in current_response.tool_calls]

        if tools and current_tool_calls:
            current_tool_results, return_directly = await execute_tools(
                current_tool_calls, tools, callback, step_input
            )
        else:
            current_tool_results, return_directly = [], False

        all_tool_calls.extend(current_tool_calls)
        all_tool_results.extend(current_tool_results)

        step_usage = add_language_model_usage(EMPTY_USAGE, current_response.usage)
        usage = add_language_model_usage(usage, step_usage)
        step_count += 1

        finish_reason = _reason(current_response.finish_reason)
        upcoming = next_step_type(
            step_count, max_steps, finish_reason,
            current_tool_calls, current_tool_results, return_directly,
        )

        step_text = current_response.text or ""
        if upcoming == StepType.CONTINUE or step_type == StepType.CONTINUE:
            text += step_text
        else:
            text = step_text

        if step_type == StepType.CONTINUE:
            append_to_last_assistant(response_messages, step_text)
        else:
            response_messages.extend(
                to_response_messages(text, current_tool_calls, current_tool_results)
            )

        steps.append(StepResult(
            text=text,
            finish_reason=finish_reason,
            usage=step_usage,
            step_type=step_type,
            reasoning=current_response.reasoning,
            tool_calls=current_tool_calls,
            tool_results=current_tool_results,
            metadata=list(current_response.response_metadata),
        ))
        callback.on_text_generated(text, {"step": steps[-1], **call_settings})

        step_type = upcoming

    result = GenerateTextResult(
        text=text,
        finish_reason=finish_reason,
        usage=usage,
        steps=steps,
        reasoning=current_response.reasoning if current_response else None,
        tool_calls=all_tool_calls,
        tool_results=all_tool_results,
        metadata=metadata,
        response_messages=response_messages,
    )
    callback.on_text_generated(text, {"result": result, **call_settings})
    return result


def _reason(finish_reason: Any) -> str:
    if isinstance(finish_reason, FinishReason):
        return finish_reason.value
    return finish_reason or FinishReason.UNKNOWN.value
