"""Structured output generation."""

import asyncio
import json
import logging
from dataclasses import dataclass, field
from typing import Any, List, Optional, Sequence, Union

from ..callback import Callback, as_callback
from ..exceptions import ModelError, ValidationError
from ..language_model import (
    GenerateResponse,
    LanguageModel,
    LanguageModelCallOptions,
    ResponseFormat,
    ResponseMetadata,
    split_call_settings,
)
from ..message import Message
from ..metrics import EMPTY_USAGE, LanguageModelUsage, add_language_model_usage
from ..tools import ParameterSchema
from .generate_text import format_prompt

logger = logging.getLogger(__name__)

OBJECT_TOOL_NAME = "generateObject"
OBJECT_TOOL_DESCRIPTION = "Generate an object that matches the given JSON schema."
MODES = ("auto", "json", "tool")


@dataclass
class GenerateObjectResult:
    object: Any
    finish_reason: str
    usage: LanguageModelUsage
    metadata: List[ResponseMetadata] = field(default_factory=list)
    reasoning: Optional[str] = None


def _object_tool(schema: ParameterSchema, name: Optional[str], description: Optional[str]) -> dict:
    return {
        "type": "function",
        "function": {
            "name": name or OBJECT_TOOL_NAME,
            "description": description or OBJECT_TOOL_DESCRIPTION,
            "parameters": {
                "type": "object",
                "properties": {"object": schema.to_json_schema()},
                "required": ["object"],
            },
        },
    }


async def generate_object(
    model: LanguageModel,
    prompt: Union[str, Sequence[Message]],
    schema: ParameterSchema,
    schema_name: Optional[str] = None,
    schema_description: Optional[str] = None,
    mode: str = "auto",
    callback: Optional[Callback] = None,
    signal: Optional[asyncio.Event] = None,
    **settings: Any,
) -> GenerateObjectResult:
    """Ask the model for an object matching ``schema``.

    ``json`` mode (the default for ``auto``) requests a JSON response
    format; ``tool`` mode offers a single tool whose ``object`` argument
    carries the schema. A failed JSON-mode call is retried once in tool
    mode. Output that is not valid JSON or does not match the schema
    raises ValidationError.
    """
    if mode not in MODES:
        raise ValueError(f"mode must be one of {MODES}, got {mode!r}")
    if mode == "auto":
        mode = "json"

    formatted_prompt = format_prompt(prompt)
    call_settings = split_call_settings(settings)
    callback = as_callback(callback)
    json_schema = schema.to_json_schema()

    metadata: List[ResponseMetadata] = []
    usage = EMPTY_USAGE
    response: Optional[GenerateResponse] = None

    while response is None:
        callback.on_llm_start({"messages": formatted_prompt, "model_id": model.model, **call_settings})

        options = LanguageModelCallOptions(prompt=formatted_prompt, signal=signal, **call_settings)
        if mode == "json":
            options.response_format = ResponseFormat(
                type="json", schema=json_schema, name=schema_name, description=schema_description
            )
        else:
            options.tools = [_object_tool(schema, schema_name, schema_description)]

        try:
            response = await model.do_generate(options)
        except Exception as e:
            callback.on_error(e, {"model_id": model.model, **call_settings})
            if mode == "json":
                logger.warning(f"JSON mode failed for {model.model} ({e}), retrying in tool mode")
                mode = "tool"
                continue
            raise

    metadata.extend(response.response_metadata)
    usage = add_language_model_usage(usage, response.usage)
    callback.on_llm_end({"response": response, "model_id": model.model, **call_settings})

    if response.tool_calls:
        raw = response.tool_calls[0].arguments
    else:
        raw = response.text

    if raw is None or (isinstance(raw, str) and not raw.strip()):
        raise ModelError(f"No result returned from model, model result: {response.text!r}")

    try:
        value = json.loads(raw)
    except json.JSONDecodeError as e:
        raise ValidationError(f"Model output is not valid JSON: {e}", e) from e

    if response.tool_calls and isinstance(value, dict) and set(value) == {"object"}:
        value = value["object"]

    parsed = schema.validate(value)

    callback.on_text_generated(raw, {"response": response, **call_settings})

    return GenerateObjectResult(
        object=parsed,
        finish_reason=response.finish_reason,
        usage=usage,
        metadata=metadata,
        reasoning=response.reasoning,
    )
