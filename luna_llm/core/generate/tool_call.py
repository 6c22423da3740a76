"""Parsing and execution of model-issued tool calls."""

import asyncio
import logging
from typing import Any, List, Optional, Sequence, Tuple

from ..callback import Callback, as_callback
from ..exceptions import ToolExecutionError, ValidationError
from ..language_model import LanguageModelToolCall
from ..message import Message, ToolCallPart, ToolResultPart
from ..tools import BaseTool, find_tool
from ...utils.json_utils import safe_parse_json

logger = logging.getLogger(__name__)

EXCEPTION_TOOL_NAME = "_exception"


def _exception_call(tool_call_id: Optional[str], error: str) -> ToolCallPart:
    return ToolCallPart(tool_call_id=tool_call_id, tool_name=EXCEPTION_TOOL_NAME, args={"error": error})


def parse_tool_call(
    tool_call: LanguageModelToolCall, tools: Optional[Sequence[BaseTool]]
) -> ToolCallPart:
    """Resolve a raw tool call against the declared tools.

    Never raises for a bad call: an unknown tool or arguments that fail
    validation produce a call to the ``_exception`` pseudo-tool whose args
    carry the error text.
    """
    tool_name = tool_call.tool_name
    tool = find_tool(tools, tool_name)

    if tool is None:
        return _exception_call(tool_call.tool_id, f"The tool {tool_name} does not exist")

    arguments = tool_call.arguments
    if isinstance(arguments, str):
        if arguments.strip() == "":
            arguments = "{}"
        parsed = safe_parse_json(arguments)
        if not parsed.success:
            return _exception_call(
                tool_call.tool_id,
                f"The tool {tool_name} returned invalid arguments: {parsed.error}",
            )
        arguments = parsed.data

    try:
        args = tool.validate_parameters(arguments)
    except ValidationError as e:
        return _exception_call(
            tool_call.tool_id,
            f"The tool {tool_name} returned invalid arguments: {e.message}",
        )

    return ToolCallPart(tool_call_id=tool_call.tool_id, tool_name=tool_name, args=args)


def _exception_result(
    tool_call_id: Optional[str],
    tool_name: str,
    args: Any,
    callback: Callback,
    meta: dict,
) -> ToolResultPart:
    callback.on_tool_call_start(tool_name, args, meta)
    result = ToolResultPart(
        tool_call_id=tool_call_id, tool_name=tool_name, args=args, result=args, is_error=True
    )
    callback.on_tool_call_end(tool_name, args, meta)
    return result


async def execute_tools(
    tool_calls: Sequence[ToolCallPart],
    tools: Optional[Sequence[BaseTool]],
    callback: Optional[Callback] = None,
    messages: Optional[List[Message]] = None,
) -> Tuple[List[ToolResultPart], bool]:
    """Run every tool call concurrently.

    Returns the results in the order of ``tool_calls`` and whether any
    executed tool asked to return directly. A tool that raises yields an
    ``_exception`` result instead of propagating.
    """
    callback = as_callback(callback)
    meta = {"messages": messages or []}
    return_directly = False

    async def run(tool_call: ToolCallPart) -> ToolResultPart:
        nonlocal return_directly

        if tool_call.tool_name == EXCEPTION_TOOL_NAME:
            return _exception_result(
                tool_call.tool_call_id, tool_call.tool_name, tool_call.args, callback, meta
            )

        tool = find_tool(tools, tool_call.tool_name)
        if tool is None:
            return _exception_result(
                tool_call.tool_call_id,
                EXCEPTION_TOOL_NAME,
                {"error": f"The tool {tool_call.tool_name} does not exist"},
                callback,
                meta,
            )

        if tool.return_direct:
            return_directly = True

        try:
            callback.on_tool_call_start(tool_call.tool_name, tool_call.args, meta)
            output = await tool.call(tool_call.args if tool_call.args is not None else {})
        except Exception as e:
            error = ToolExecutionError(tool_call.tool_name, e)
            logger.error(error.message, exc_info=True)
            payload = {"error": error.message}
            callback.on_tool_call_end(tool_call.tool_name, payload, meta)
            return ToolResultPart(
                tool_call_id=tool_call.tool_call_id,
                tool_name=tool_call.tool_name,
                args=payload,
                result=payload,
                is_error=True,
            )

        callback.on_tool_call_end(tool_call.tool_name, output, meta)
        return ToolResultPart(
            tool_call_id=tool_call.tool_call_id,
            tool_name=tool_call.tool_name,
            args=tool_call.args,
            result=output,
        )

    results = await asyncio.gather(*(run(tc) for tc in tool_calls))
    return list(results), return_directly
