"""Tool definitions: schema IR, validation, function and HTTP tools."""

import inspect
import json
import logging
import typing
from abc import ABC, abstractmethod
from dataclasses import dataclass, field, replace
from enum import Enum
from typing import Any, Callable, Dict, List, Optional, Sequence, Type, get_type_hints

import httpx

from .exceptions import ValidationError

logger = logging.getLogger(__name__)

JSON_TYPES = ("string", "number", "integer", "boolean", "array", "object", "null")

_TRUE_STRINGS = ("true", "1", "yes", "on")
_FALSE_STRINGS = ("false", "0", "no", "off")


class ToolType(Enum):
    """Types of tools supported."""
    FUNCTION = "function"
    HTTP_API = "http_api"


@dataclass
class ParameterSchema:
    """Schema node for a tool parameter or a structured output.

    A closed set of JSON types; ``items`` describes array elements and
    ``properties`` the fields of an object. ``required=False`` marks an
    optional field.
    """
    name: str
    type: str  # "string", "number", "integer", "boolean", "array", "object", "null"
    description: str = ""
    required: bool = True
    enum: Optional[List[Any]] = None
    default: Optional[Any] = None
    items: Optional["ParameterSchema"] = None
    properties: Optional[List["ParameterSchema"]] = None

    def __post_init__(self):
        if self.type not in JSON_TYPES:
            raise ValueError(f"Unsupported parameter type {self.type!r} for {self.name}")

    def to_json_schema(self) -> Dict[str, Any]:
        """Convert to JSON Schema format."""
        schema: Dict[str, Any] = {"type": self.type}
        if self.description:
            schema["description"] = self.description
        if self.enum:
            schema["enum"] = self.enum
        if self.default is not None:
            schema["default"] = self.default
        if self.type == "array" and self.items is not None:
            schema["items"] = self.items.to_json_schema()
        if self.type == "object" and self.properties is not None:
            schema["properties"] = {p.name: p.to_json_schema() for p in self.properties}
            schema["required"] = [p.name for p in self.properties if p.required]
        return schema

    def validate(self, value: Any, path: Optional[str] = None) -> Any:
        """Validate ``value`` against this node and return the converted value."""
        path = path or self.name

        if self.enum and value not in self.enum:
            raise ValidationError(f"{path} must be one of {self.enum}")

        if self.type == "string":
            if isinstance(value, str):
                return value
            if isinstance(value, (int, float)) and not isinstance(value, bool):
                return str(value)
        elif self.type == "integer":
            if isinstance(value, int) and not isinstance(value, bool):
                return value
            if isinstance(value, float) and value.is_integer():
                return int(value)
            if isinstance(value, str):
                try:
                    return int(value)
                except ValueError:
                    pass
        elif self.type == "number":
            if isinstance(value, (int, float)) and not isinstance(value, bool):
                return value
            if isinstance(value, str):
                try:
                    return float(value)
                except ValueError:
                    pass
        elif self.type == "boolean":
            if isinstance(value, bool):
                return value
            if isinstance(value, str) and value.lower() in _TRUE_STRINGS + _FALSE_STRINGS:
                return value.lower() in _TRUE_STRINGS
        elif self.type == "array":
            if isinstance(value, list):
                if self.items is None:
                    return value
                return [self.items.validate(v, f"{path}[{i}]") for i, v in enumerate(value)]
        elif self.type == "object":
            if isinstance(value, dict):
                if self.properties is None:
                    return value
                return validate_object(self.properties, value, path)
        elif self.type == "null":
            if value is None:
                return None

        raise ValidationError(f"{path} must be of type {self.type}, got {type(value).__name__}")


def validate_object(
    properties: Sequence[ParameterSchema], value: Dict[str, Any], path: Optional[str] = None
) -> Dict[str, Any]:
    """Validate a dictionary against a list of property schemas."""
    prefix = f"{path}." if path else ""
    lookup = {p.name: p for p in properties}

    missing = [p.name for p in properties if p.required and p.name not in value]
    if missing:
        raise ValidationError(f"Missing required parameters: {', '.join(prefix + m for m in missing)}")

    unknown = [k for k in value if k not in lookup]
    if unknown:
        raise ValidationError(f"Unknown parameter: {', '.join(prefix + u for u in unknown)}")

    validated = {
        name: lookup[name].validate(v, prefix + name) for name, v in value.items()
    }

    for param in properties:
        if not param.required and param.name not in validated and param.default is not None:
            validated[param.name] = param.default

    return validated


@dataclass
class ToolSchema:
    """Complete schema definition for a tool."""
    name: str
    description: str
    tool_type: ToolType = ToolType.FUNCTION
    parameters: List[ParameterSchema] = field(default_factory=list)

    def to_json_schema(self) -> Dict[str, Any]:
        return {
            "type": "object",
            "properties": {p.name: p.to_json_schema() for p in self.parameters},
            "required": [p.name for p in self.parameters if p.required],
        }

    def to_language_model_tool(self) -> Dict[str, Any]:
        """Function declaration handed to language models."""
        return {
            "type": "function",
            "function": {
                "name": self.name,
                "description": self.description,
                "parameters": self.to_json_schema(),
            },
        }


class BaseTool(ABC):
    """Abstract base class for all tools.

    ``return_direct`` tells the generation loop to stop after this tool's
    result instead of handing it back to the model.
    """

    def __init__(self, schema: ToolSchema, return_direct: bool = False):
        self.schema = schema
        self.return_direct = return_direct

    @property
    def name(self) -> str:
        return self.schema.name

    @property
    def description(self) -> str:
        return self.schema.description

    def validate_parameters(self, parameters: Dict[str, Any]) -> Dict[str, Any]:
        """Validate parameters against schema."""
        if not isinstance(parameters, dict):
            raise ValidationError(
                f"Arguments for {self.name} must be an object, got {type(parameters).__name__}"
            )
        return validate_object(self.schema.parameters, parameters)

    @abstractmethod
    async def call(self, args: Dict[str, Any]) -> Any:
        """Execute the tool with validated arguments."""


class FunctionTool(BaseTool):
    """Tool that wraps a Python function."""

    def __init__(
        self,
        func: Callable,
        name: Optional[str] = None,
        description: Optional[str] = None,
        schema: Optional[ToolSchema] = None,
        return_direct: bool = False,
    ):
        self.func = func

        if schema is None:
            schema = self._generate_schema_from_function(name, description)

        super().__init__(schema, return_direct=return_direct)

    def _generate_schema_from_function(
        self, name: Optional[str], description: Optional[str]
    ) -> ToolSchema:
        """Generate tool schema from function signature and docstring."""
        sig = inspect.signature(self.func)
        type_hints = get_type_hints(self.func)

        doc = inspect.getdoc(self.func) or ""
        param_descriptions = self._parse_docstring_params(doc)

        parameters = []
        for param_name, param in sig.parameters.items():
            if param_name == "self" or param.kind in (param.VAR_POSITIONAL, param.VAR_KEYWORD):
                continue

            annotation = type_hints.get(param_name, str)
            required = param.default is inspect.Parameter.empty
            parameters.append(ParameterSchema(
                name=param_name,
                type=_python_type_to_json_type(annotation),
                description=param_descriptions.get(param_name, f"Parameter {param_name}"),
                required=required,
                default=None if required else param.default,
            ))

        if not description:
            description = doc.split("\n")[0] if doc else f"Function {self.func.__name__}"

        return ToolSchema(
            name=name or self.func.__name__,
            description=description,
            tool_type=ToolType.FUNCTION,
            parameters=parameters,
        )

    @staticmethod
    def _parse_docstring_params(docstring: str) -> Dict[str, str]:
        """Parse ``name: description`` lines from an Args section."""
        params: Dict[str, str] = {}
        in_args = False
        current = None

        for raw_line in docstring.split("\n"):
            line = raw_line.strip()
            if line in ("Args:", "Parameters:"):
                in_args = True
                continue
            if not in_args:
                continue
            if not line:
                current = None
                continue
            if line.endswith(":") and " " not in line:
                # next section header
                in_args = False
                continue

            head, sep, tail = line.partition(":")
            name = head.split("(")[0].strip()
            if sep and name.isidentifier():
                current = name
                params[current] = tail.strip()
            elif current:
                params[current] += " " + line

        return params

    async def call(self, args: Dict[str, Any]) -> Any:
        """Execute the wrapped function."""
        validated = self.validate_parameters(args)

        result = self.func(**validated)
        if inspect.isawaitable(result):
            result = await result
        return result


class HTTPTool(BaseTool):
    """Tool that makes HTTP API calls."""

    def __init__(
        self,
        schema: ToolSchema,
        url: str,
        method: str = "GET",
        headers: Optional[Dict[str, str]] = None,
        timeout: Optional[float] = 30.0,
        return_direct: bool = False,
    ):
        super().__init__(replace(schema, tool_type=ToolType.HTTP_API), return_direct=return_direct)
        self.url = url
        self.method = method.upper()
        self.headers = headers or {}
        self.timeout = timeout

    async def call(self, args: Dict[str, Any]) -> Any:
        """Execute HTTP API call. Transport and status errors propagate to the caller."""
        validated = self.validate_parameters(args)

        async with httpx.AsyncClient(timeout=self.timeout) as client:
            if self.method == "GET":
                response = await client.get(self.url, params=validated, headers=self.headers)
            elif self.method == "POST":
                response = await client.post(self.url, json=validated, headers=self.headers)
            else:
                raise ValueError(f"Unsupported HTTP method: {self.method}")

            response.raise_for_status()

            try:
                return response.json()
            except json.JSONDecodeError:
                return response.text


def tool(
    func: Optional[Callable] = None,
    *,
    name: Optional[str] = None,
    description: Optional[str] = None,
    return_direct: bool = False,
):
    """Turn a function into a :class:`FunctionTool`.

    Example:
        @tool
        def add(a: int, b: int) -> int:
            '''Add two numbers together.'''
            return a + b

        @tool(name="weather", return_direct=True)
        async def get_weather(city: str) -> str:
            '''Get weather for a city.'''
            return f"Weather in {city}: sunny"
    """
    def decorator(f: Callable) -> FunctionTool:
        return FunctionTool(f, name=name, description=description, return_direct=return_direct)

    if func is not None:
        return decorator(func)
    return decorator


def find_tool(tools: Optional[Sequence[BaseTool]], name: str) -> Optional[BaseTool]:
    for candidate in tools or ():
        if candidate.name == name:
            return candidate
    return None


def format_tools_to_language_model_tools(
    tools: Optional[Sequence[BaseTool]],
) -> Optional[List[Dict[str, Any]]]:
    """Declarations for the model, or ``None`` when there are no tools."""
    if not tools:
        return None
    return [t.schema.to_language_model_tool() for t in tools]


def _python_type_to_json_type(python_type: Type) -> str:
    """Convert Python type hints to JSON Schema types."""
    origin = typing.get_origin(python_type)
    if origin is typing.Union:
        args = [a for a in typing.get_args(python_type) if a is not type(None)]
        return _python_type_to_json_type(args[0]) if len(args) == 1 else "string"

    if python_type is bool:
        return "boolean"
    if python_type is int:
        return "integer"
    if python_type is float:
        return "number"
    if python_type is str:
        return "string"
    if python_type in (list, tuple) or origin in (list, tuple):
        return "array"
    if python_type is dict or origin is dict:
        return "object"
    return "string"
