"""Test configuration and fixtures."""

from types import SimpleNamespace
from typing import List

import pytest

from luna_llm.core import (
    GenerateResponse,
    LanguageModelStreamChunk,
    LanguageModelToolCall,
    LanguageModelUsage,
    Message,
    ResponseMetadata,
)
from luna_llm.core.tools import FunctionTool, tool
from luna_llm.providers.mock import ScriptedEmbeddingModel, ScriptedLanguageModel


def usage(prompt: int, completion: int) -> LanguageModelUsage:
    return LanguageModelUsage(
        prompt_tokens=prompt, completion_tokens=completion, total_tokens=prompt + completion
    )


def text_response(text: str, finish_reason: str = "stop", tokens=(10, 5)) -> GenerateResponse:
    return GenerateResponse(
        response=Message.assistant(text),
        text=text,
        finish_reason=finish_reason,
        usage=usage(*tokens),
        response_metadata=[ResponseMetadata(timestamp=1.0, model="scripted", response_type="text")],
    )


def tool_call_response(*calls, text: str = "", tokens=(12, 8)) -> GenerateResponse:
    """``calls`` are ``(tool_id, tool_name, arguments_json)`` tuples."""
    return GenerateResponse(
        response=Message.assistant(text),
        text=text,
        finish_reason="tool-calls",
        usage=usage(*tokens),
        tool_calls=[
            LanguageModelToolCall(tool_id=tool_id, tool_name=name, arguments=arguments)
            for tool_id, name, arguments in calls
        ],
    )


def text_stream_chunks(*deltas: str, finish_reason: str = "stop", tokens=(10, 5)) -> List[LanguageModelStreamChunk]:
    return [LanguageModelStreamChunk.text(d) for d in deltas] + [
        LanguageModelStreamChunk.finish(finish_reason, usage(*tokens))
    ]


def tool_call_stream_chunks(tool_id: str, name: str, arguments: str, tokens=(12, 8)) -> List[LanguageModelStreamChunk]:
    return [
        LanguageModelStreamChunk.tool_call_delta(tool_id, name, arguments[: len(arguments) // 2]),
        LanguageModelStreamChunk.tool_call_chunk(tool_id, name, arguments),
        LanguageModelStreamChunk.finish("tool-calls", usage(*tokens)),
    ]


@pytest.fixture
def script() -> SimpleNamespace:
    """Builders for scripted model responses and stream chunks."""
    return SimpleNamespace(
        usage=usage,
        text_response=text_response,
        tool_call_response=tool_call_response,
        text_stream_chunks=text_stream_chunks,
        tool_call_stream_chunks=tool_call_stream_chunks,
    )


@pytest.fixture
def sample_messages() -> List[Message]:
    """Sample messages for testing."""
    return [
        Message.system("You are a helpful assistant."),
        Message.user("Hello, how are you?"),
    ]


@pytest.fixture
def sample_usage() -> LanguageModelUsage:
    """Sample token usage for testing."""
    return usage(10, 20)


@pytest.fixture
def weather_tool() -> FunctionTool:
    """Tool returning canned weather."""

    @tool
    def get_weather(city: str, unit: str = "celsius") -> str:
        """Get the weather for a city.

        Args:
            city: Name of the city
            unit: Temperature unit
        """
        return f"Sunny in {city}, 21 {unit}"

    return get_weather


@pytest.fixture
def add_tool() -> FunctionTool:
    """Async tool adding two integers."""

    @tool(name="add")
    async def add_numbers(a: int, b: int) -> int:
        """Add two numbers together."""
        return a + b

    return add_numbers


@pytest.fixture
def failing_tool() -> FunctionTool:
    """Tool that always raises."""

    @tool
    def explode() -> str:
        """Always fails."""
        raise RuntimeError("boom")

    return explode


@pytest.fixture
def direct_tool() -> FunctionTool:
    """Tool whose result ends the generation."""

    @tool(return_direct=True)
    def lookup_order(order_id: str) -> dict:
        """Look up an order."""
        return {"order_id": order_id, "status": "shipped"}

    return lookup_order


@pytest.fixture
def scripted_model():
    """Factory for scripted language models."""

    def factory(responses=None, streams=None, **kwargs) -> ScriptedLanguageModel:
        return ScriptedLanguageModel(responses=responses, streams=streams, **kwargs)

    return factory


@pytest.fixture
def embedding_model():
    """Factory for scripted embedding models."""

    def factory(**kwargs) -> ScriptedEmbeddingModel:
        return ScriptedEmbeddingModel(**kwargs)

    return factory
