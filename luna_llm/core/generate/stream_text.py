"""Multi-step streaming text generation.

``stream_text`` returns immediately with a :class:`StreamTextResult`. The
model is called once something reads from it: iterating one of the stream
views or awaiting one of the deferred results. A single producer task then
runs every step, publishing :class:`TextStreamPart` events to a shared
channel that each view reads independently.
"""

import asyncio
import logging
from dataclasses import asdict, dataclass, field
from typing import Any, AsyncIterator, List, Optional, Sequence, Union

from ..callback import Callback, as_callback
from ..config import LunaConfig
from ..exceptions import ModelError
from ..language_model import (
    FinishReason,
    LanguageModel,
    LanguageModelCallOptions,
    LanguageModelSource,
    ResponseMetadata,
    split_call_settings,
)
from ..message import (
    Message,
    MessageRole,
    TextPart,
    ThinkPart,
    ToolCallPart,
    ToolResultPart,
    create_message_chunk,
)
from ..metrics import EMPTY_USAGE, LanguageModelUsage, add_language_model_usage
from ..stream_normalizer import PartType, StreamNormalizer, TextStreamPart
from ..streaming import Deferred, StreamBroadcaster
from ..tools import BaseTool, format_tools_to_language_model_tools
from .generate_text import (
    StepResult,
    StepType,
    append_to_last_assistant,
    check_max_steps,
    format_prompt,
    next_step_type,
    to_response_messages,
)
from .tool_call import execute_tools, parse_tool_call

logger = logging.getLogger(__name__)

DEFAULT_STREAM_BUFFER_SIZE = 256


@dataclass
class StreamState:
    """Mutable state of one ``stream_text`` call, owned by its producer task."""
    full_text: str = ""
    reasoning_text: Optional[str] = None
    sources: List[LanguageModelSource] = field(default_factory=list)
    tool_calls: List[ToolCallPart] = field(default_factory=list)
    tool_results: List[ToolResultPart] = field(default_factory=list)
    usage: LanguageModelUsage = EMPTY_USAGE
    finish_reason: Optional[str] = None
    steps: List[StepResult] = field(default_factory=list)
    metadata: List[ResponseMetadata] = field(default_factory=list)
    current_step: int = -1
    step_type: str = StepType.INITIAL

    # per step
    step_state: str = StepType.INITIAL
    step_text: str = ""
    step_reasoning: Optional[str] = None
    step_sources: List[LanguageModelSource] = field(default_factory=list)
    step_tool_calls: List[ToolCallPart] = field(default_factory=list)
    step_tool_results: List[ToolResultPart] = field(default_factory=list)
    step_finish_reason: Optional[str] = None
    step_usage: LanguageModelUsage = EMPTY_USAGE
    step_metadata: List[ResponseMetadata] = field(default_factory=list)

    def start_step(self) -> None:
        self.current_step += 1
        self.step_state = StepType.INITIAL
        self.step_text = ""
        self.step_reasoning = None
        self.step_sources = []
        self.step_tool_calls = []
        self.step_tool_results = []
        self.step_finish_reason = None
        self.step_usage = EMPTY_USAGE
        self.step_metadata = []


class StreamTextResult:
    """Handle on a running (or not yet started) ``stream_text`` call.

    Views (``text_stream``, ``message_stream``, ``full_stream``) can be
    taken any number of times; each one replays the stream from its
    start. A view that has been started must be read to the end or closed
    with ``aclose()``, otherwise the producer pauses once the view falls
    ``buffer_size`` parts behind.

    The awaitable results all settle together when the producer finishes:
    resolved on success, rejected with the same error on failure.
    """

    def __init__(
        self,
        model: LanguageModel,
        prompt: List[Message],
        tools: Optional[Sequence[BaseTool]],
        callback: Callback,
        max_steps: int,
        signal: Optional[asyncio.Event],
        settings: dict,
        buffer_size: int = DEFAULT_STREAM_BUFFER_SIZE,
    ):
        self._model = model
        self._prompt = prompt
        self._tools = tools
        self._callback = callback
        self._max_steps = max_steps
        self._signal = signal
        self._settings = settings
        self._language_model_tools = format_tools_to_language_model_tools(tools)

        self._state = StreamState()
        self._response_messages: List[Message] = []
        self._normalizer = StreamNormalizer(
            model_id=settings.get("model_id") or model.model,
            tool_call_parser=(lambda tc: parse_tool_call(tc, tools)) if tools else None,
        )
        self._parts: StreamBroadcaster[TextStreamPart] = StreamBroadcaster(
            buffer_size, on_demand=self._start
        )
        self._task: Optional[asyncio.Task] = None
        self._running = False
        self._cancel_requested = False
        self._cancelled = False
        self._settled = False

        self._text: Deferred[str] = Deferred("text", self._start)
        self._reasoning: Deferred[Optional[str]] = Deferred("reasoning", self._start)
        self._sources: Deferred[List[LanguageModelSource]] = Deferred("sources", self._start)
        self._finish_reason: Deferred[str] = Deferred("finish_reason", self._start)
        self._usage: Deferred[LanguageModelUsage] = Deferred("usage", self._start)
        self._tool_calls: Deferred[List[ToolCallPart]] = Deferred("tool_calls", self._start)
        self._tool_results: Deferred[List[ToolResultPart]] = Deferred("tool_results", self._start)
        self._steps: Deferred[List[StepResult]] = Deferred("steps", self._start)
        self._metadata: Deferred[List[ResponseMetadata]] = Deferred("metadata", self._start)

    # -- results ---------------------------------------------------------

    @property
    def text(self) -> Deferred[str]:
        """Text of every step, concatenated."""
        return self._text

    @property
    def reasoning(self) -> Deferred[Optional[str]]:
        return self._reasoning

    @property
    def sources(self) -> Deferred[List[LanguageModelSource]]:
        return self._sources

    @property
    def finish_reason(self) -> Deferred[str]:
        return self._finish_reason

    @property
    def usage(self) -> Deferred[LanguageModelUsage]:
        """Usage summed over all steps."""
        return self._usage

    @property
    def tool_calls(self) -> Deferred[List[ToolCallPart]]:
        return self._tool_calls

    @property
    def tool_results(self) -> Deferred[List[ToolResultPart]]:
        return self._tool_results

    @property
    def steps(self) -> Deferred[List[StepResult]]:
        return self._steps

    @property
    def metadata(self) -> Deferred[List[ResponseMetadata]]:
        return self._metadata

    @property
    def response_messages(self) -> List[Message]:
        """Messages appended to the history so far."""
        return list(self._response_messages)

    # -- views -----------------------------------------------------------

    @property
    def full_stream(self) -> AsyncIterator[TextStreamPart]:
        """Every part, unfiltered. Raises the producer's error after yielding its error part."""
        return _close_on_exit(self._parts.subscribe())

    @property
    def text_stream(self) -> AsyncIterator[str]:
        return _text_deltas(self._parts.subscribe())

    @property
    def message_stream(self) -> AsyncIterator[Message]:
        return stream_message_chunks(self._parts.subscribe())

    async def consume(self) -> None:
        """Run the whole stream without reading any view. Raises the producer's error."""
        await self._finish_reason

    async def aclose(self) -> None:
        """Stop the producer. Results settle with finish reason ``cancelled``."""
        self._cancel_requested = True
        self._start()
        if self._running and not self._task.done():
            self._task.cancel()
        try:
            await self._task
        except asyncio.CancelledError:
            pass

    # -- producer --------------------------------------------------------

    def _start(self) -> None:
        if self._task is None:
            self._task = asyncio.ensure_future(self._run())

    def _aborted(self) -> bool:
        if self._cancel_requested:
            return True
        return self._signal is not None and self._signal.is_set()

    async def _run(self) -> None:
        self._running = True
        try:
            await self._loop()
        except asyncio.CancelledError:
            self._cancelled = True
            await self._complete()
            raise
        except Exception as e:
            await self._fail(e)
        else:
            await self._complete()

    async def _loop(self) -> None:
        state = self._state

        while state.step_type != StepType.DONE:
            if self._aborted():
                self._cancelled = True
                return

            step_input = self._prompt + self._response_messages
            meta = {
                "messages": step_input,
                "tools": self._language_model_tools,
                "model_id": self._model.model,
            }
            meta.update(self._settings)
            self._callback.on_llm_start(meta)

            stream = await self._model.do_stream(LanguageModelCallOptions(
                prompt=step_input,
                tools=self._language_model_tools,
                signal=self._signal,
                **self._settings,
            ))

            state.start_step()
            self._normalizer.reset()
            await self._parts.publish(TextStreamPart(type=PartType.STEP_START, step=state.current_step))

            try:
                async for chunk in stream:
                    if self._aborted():
                        self._cancelled = True
                        break
                    await self._handle_chunk(chunk)
            finally:
                aclose = getattr(stream, "aclose", None)
                if aclose is not None:
                    await aclose()

            if self._cancelled:
                return

            state.step_type = await self._finish_step(step_input)

    async def _emit(self, part: TextStreamPart) -> None:
        boundary = self._normalizer.boundary(part)
        if boundary is not None:
            self._state.metadata.append(boundary.metadata)
            self._state.step_metadata.append(boundary.metadata)
            self._callback.on_meta(asdict(boundary.metadata))
            await self._parts.publish(boundary)
        await self._parts.publish(part)

    async def _handle_chunk(self, chunk: Any) -> None:
        state = self._state
        part = self._normalizer.normalize(chunk)
        if part is None:
            return

        if part.type == PartType.FINISH:
            state.step_finish_reason = part.finish_reason
            state.step_usage = add_language_model_usage(state.step_usage, part.usage)
            return

        if part.type == PartType.RESPONSE_METADATA:
            state.metadata.append(part.metadata)
            state.step_metadata.append(part.metadata)
            self._callback.on_meta(asdict(part.metadata))
            return

        if part.type == PartType.ERROR:
            error = part.error
            if isinstance(error, Exception):
                raise ModelError(f"Model stream reported an error: {error}", error)
            raise ModelError(f"Model stream reported an error: {error}")

        if part.type == PartType.TEXT_DELTA:
            state.full_text += part.text_delta
            state.step_text += part.text_delta
            if state.step_state == StepType.INITIAL:
                state.step_state = StepType.CONTINUE
        elif part.type == PartType.REASONING:
            state.reasoning_text = (state.reasoning_text or "") + part.text_delta
            state.step_reasoning = (state.step_reasoning or "") + part.text_delta
            if state.step_state == StepType.INITIAL:
                state.step_state = StepType.CONTINUE
        elif part.type == PartType.SOURCE:
            state.sources.append(part.source)
            state.step_sources.append(part.source)
        elif part.type == PartType.TOOL_CALL:
            state.step_tool_calls.append(part.tool_call)
            state.step_state = StepType.TOOL_RESULT

        await self._emit(part)

    async def _finish_step(self, step_input: List[Message]) -> str:
        state = self._state
        return_directly = False

        if state.step_tool_calls and self._tools:
            state.step_tool_results, return_directly = await execute_tools(
                state.step_tool_calls, self._tools, self._callback, step_input
            )
            for result in state.step_tool_results:
                await self._emit(TextStreamPart(type=PartType.TOOL_RESULT, tool_result=result))

        finish_reason = state.step_finish_reason or FinishReason.UNKNOWN.value
        upcoming = next_step_type(
            state.current_step + 1,
            self._max_steps,
            finish_reason,
            state.step_tool_calls,
            state.step_tool_results,
            return_directly,
        )
        state.step_state = StepType.DONE if upcoming == StepType.DONE else StepType.CONTINUE

        if state.step_type == StepType.CONTINUE:
            append_to_last_assistant(self._response_messages, state.step_text)
        else:
            self._response_messages.extend(to_response_messages(
                state.step_text, state.step_tool_calls, state.step_tool_results
            ))

        state.usage = add_language_model_usage(state.usage, state.step_usage)
        state.finish_reason = finish_reason
        state.tool_calls.extend(state.step_tool_calls)
        state.tool_results.extend(state.step_tool_results)

        step = StepResult(
            text=state.step_text,
            finish_reason=finish_reason,
            usage=state.step_usage,
            step_type=state.step_type,
            reasoning=state.step_reasoning,
            sources=state.step_sources,
            tool_calls=state.step_tool_calls,
            tool_results=state.step_tool_results,
            metadata=state.step_metadata,
        )
        state.steps.append(step)

        await self._parts.publish(TextStreamPart(
            type=PartType.STEP_FINISH,
            step=state.current_step,
            finish_reason=finish_reason,
            usage=state.step_usage,
            is_continued=upcoming != StepType.DONE,
        ))
        self._callback.on_llm_end({
            "text": state.full_text,
            "step": step,
            "model_id": self._model.model,
            **self._settings,
        })
        return upcoming

    async def _complete(self) -> None:
        state = self._state
        if self._cancelled:
            state.finish_reason = FinishReason.CANCELLED.value
        finish_reason = state.finish_reason or FinishReason.UNKNOWN.value

        await self._parts.publish(TextStreamPart(
            type=PartType.FINISH, finish_reason=finish_reason, usage=state.usage
        ))
        self._callback.on_text_generated(state.full_text, {
            "steps": state.steps,
            "usage": state.usage,
            "finish_reason": finish_reason,
            **self._settings,
        })

        self._settle(lambda d, value: d.resolve(value), {
            self._text: state.full_text,
            self._reasoning: state.reasoning_text,
            self._sources: state.sources,
            self._finish_reason: finish_reason,
            self._usage: state.usage,
            self._tool_calls: state.tool_calls,
            self._tool_results: state.tool_results,
            self._steps: state.steps,
            self._metadata: state.metadata,
        })
        await self._parts.close()

    async def _fail(self, error: Exception) -> None:
        logger.error(f"stream_text failed at step {self._state.current_step + 1}: {error}")
        self._callback.on_error(error, {"model_id": self._model.model, **self._settings})

        await self._parts.publish(TextStreamPart(type=PartType.ERROR, error=error))

        deferreds = (
            self._text, self._reasoning, self._sources, self._finish_reason, self._usage,
            self._tool_calls, self._tool_results, self._steps, self._metadata,
        )
        self._settle(lambda d, value: d.reject(value), {d: error for d in deferreds})
        await self._parts.close(error)

    def _settle(self, settle, values: dict) -> None:
        if self._settled:
            return
        self._settled = True
        for deferred, value in values.items():
            settle(deferred, value)


def stream_text(
    model: LanguageModel,
    prompt: Union[str, Sequence[Message]],
    tools: Optional[Sequence[BaseTool]] = None,
    callback: Optional[Callback] = None,
    max_steps: Optional[int] = None,
    signal: Optional[asyncio.Event] = None,
    buffer_size: Optional[int] = None,
    config: Optional[LunaConfig] = None,
    **settings: Any,
) -> StreamTextResult:
    """Stream a multi-step generation.

    Example:
        result = stream_text(model, "Tell me a story")
        async for delta in result.text_stream:
            print(delta, end="")
        print(await result.usage)
    """
    if buffer_size is None:
        buffer_size = config.stream_buffer_size if config is not None else DEFAULT_STREAM_BUFFER_SIZE
    return StreamTextResult(
        model=model,
        prompt=format_prompt(prompt),
        tools=tools,
        callback=as_callback(callback),
        max_steps=check_max_steps(max_steps, config),
        signal=signal,
        settings=split_call_settings(settings),
        buffer_size=buffer_size,
    )


async def _close_on_exit(subscription) -> AsyncIterator[TextStreamPart]:
    try:
        async for part in subscription:
            yield part
    finally:
        await subscription.aclose()


async def _text_deltas(subscription) -> AsyncIterator[str]:
    try:
        async for part in subscription:
            if part.type == PartType.TEXT_DELTA:
                yield part.text_delta
    finally:
        await subscription.aclose()


async def stream_message_chunks(
    source: AsyncIterator[TextStreamPart], role: MessageRole = MessageRole.ASSISTANT
) -> AsyncIterator[Message]:
    """Turn stream parts into message chunks that :func:`concat_chunks` can fold.

    Tool results come out as ``tool`` role chunks; step boundaries are
    skipped.
    """
    try:
        async for part in source:
            if part.type == PartType.TEXT_DELTA:
                yield create_message_chunk(role, [TextPart(text=part.text_delta)])
            elif part.type == PartType.REASONING:
                yield create_message_chunk(role, [ThinkPart(think=part.text_delta)])
            elif part.type == PartType.TOOL_CALL:
                yield create_message_chunk(role, [part.tool_call])
            elif part.type == PartType.TOOL_RESULT:
                yield create_message_chunk(MessageRole.TOOL, [part.tool_result])
            elif part.type == PartType.SOURCE:
                yield create_message_chunk(role, "", metadata={"sources": [asdict(part.source)]})
            elif part.type == PartType.RESPONSE_METADATA:
                yield create_message_chunk(
                    role, "", metadata={"response_metadata": asdict(part.metadata)}
                )
            elif part.type == PartType.FINISH:
                usage = part.usage.to_dict() if part.usage is not None else None
                yield create_message_chunk(
                    role, "", metadata={"usage": usage, "finish_reason": part.finish_reason}
                )
    finally:
        aclose = getattr(source, "aclose", None)
        if aclose is not None:
            await aclose()
