"""Tests for tool schemas, function tools and HTTP tools."""

from typing import Dict, List, Optional
from unittest.mock import AsyncMock, MagicMock, patch

import pytest

from luna_llm.core import (
    FunctionTool,
    HTTPTool,
    ParameterSchema,
    ToolSchema,
    ToolType,
    ValidationError,
    format_tools_to_language_model_tools,
    tool,
)


class TestParameterSchema:
    """Test suite for ParameterSchema validation."""

    def test_coerces_scalars(self):
        """Test lenient conversion of scalar values."""
        assert ParameterSchema("n", "integer").validate("42") == 42
        assert ParameterSchema("n", "integer").validate(3.0) == 3
        assert ParameterSchema("x", "number").validate("2.5") == 2.5
        assert ParameterSchema("flag", "boolean").validate("yes") is True
        assert ParameterSchema("s", "string").validate(7) == "7"

    def test_rejects_wrong_type(self):
        """Test that incompatible values raise ValidationError with the path."""
        with pytest.raises(ValidationError, match="n must be of type integer"):
            ParameterSchema("n", "integer").validate("many")

        with pytest.raises(ValidationError):
            ParameterSchema("flag", "boolean").validate(1)

    def test_enum(self):
        """Test enum membership."""
        unit = ParameterSchema("unit", "string", enum=["celsius", "fahrenheit"])
        assert unit.validate("celsius") == "celsius"
        with pytest.raises(ValidationError):
            unit.validate("kelvin")

    def test_nested_object(self):
        """Test validation of nested objects and arrays."""
        person = ParameterSchema("person", "object", properties=[
            ParameterSchema("name", "string"),
            ParameterSchema("age", "integer"),
            ParameterSchema("tags", "array", items=ParameterSchema("tag", "string"), required=False),
            ParameterSchema("country", "string", required=False, default="FR"),
        ])

        assert person.validate({"name": "Ada", "age": "36", "tags": ["x"]}) == {
            "name": "Ada",
            "age": 36,
            "tags": ["x"],
            "country": "FR",
        }

        with pytest.raises(ValidationError, match="person.age"):
            person.validate({"name": "Ada"})

        with pytest.raises(ValidationError, match="Unknown parameter"):
            person.validate({"name": "Ada", "age": 1, "email": "a@b.c"})

        with pytest.raises(ValidationError, match=r"person.tags\[1\]"):
            person.validate({"name": "Ada", "age": 1, "tags": ["ok", {"no": 1}]})

    def test_unsupported_type(self):
        """Test that unknown JSON types are rejected at construction."""
        with pytest.raises(ValueError):
            ParameterSchema("d", "date")

    def test_to_json_schema(self):
        """Test JSON schema output."""
        schema = ParameterSchema("items", "array", description="List", items=ParameterSchema("i", "integer"))

        assert schema.to_json_schema() == {
            "type": "array",
            "description": "List",
            "items": {"type": "integer"},
        }


class TestFunctionTool:
    """Test suite for FunctionTool and the tool decorator."""

    def test_schema_from_signature(self, weather_tool):
        """Test that the schema is generated from signature and docstring."""
        schema = weather_tool.schema

        assert weather_tool.name == "get_weather"
        assert weather_tool.description == "Get the weather for a city."
        assert [p.name for p in schema.parameters] == ["city", "unit"]
        assert schema.parameters[0].description == "Name of the city"
        assert schema.parameters[0].required is True
        assert schema.parameters[1].required is False
        assert schema.parameters[1].default == "celsius"

    def test_type_mapping(self):
        """Test Python annotations mapped to JSON types."""

        def search(query: str, limit: int, ratio: float, exact: bool,
                   tags: List[str], filters: Dict[str, str], page: Optional[int] = None):
            """Search things."""

        types = {p.name: p.type for p in FunctionTool(search).schema.parameters}

        assert types == {
            "query": "string",
            "limit": "integer",
            "ratio": "number",
            "exact": "boolean",
            "tags": "array",
            "filters": "object",
            "page": "integer",
        }

    @pytest.mark.asyncio
    async def test_call_sync_function(self, weather_tool):
        """Test calling a sync function with defaults applied."""
        assert await weather_tool.call({"city": "Paris"}) == "Sunny in Paris, 21 celsius"

    @pytest.mark.asyncio
    async def test_call_async_function(self, add_tool):
        """Test calling an async function with argument coercion."""
        assert add_tool.name == "add"
        assert await add_tool.call({"a": "2", "b": 3}) == 5

    @pytest.mark.asyncio
    async def test_call_validates(self, add_tool):
        """Test that invalid arguments raise ValidationError."""
        with pytest.raises(ValidationError):
            await add_tool.call({"a": 1})

    def test_decorator_options(self, direct_tool):
        """Test decorator keyword arguments."""
        assert direct_tool.return_direct is True
        assert direct_tool.name == "lookup_order"

    def test_format_tools(self, weather_tool):
        """Test the declaration handed to models."""
        declarations = format_tools_to_language_model_tools([weather_tool])

        assert declarations == [{
            "type": "function",
            "function": {
                "name": "get_weather",
                "description": "Get the weather for a city.",
                "parameters": {
                    "type": "object",
                    "properties": {
                        "city": {"type": "string", "description": "Name of the city"},
                        "unit": {"type": "string", "description": "Temperature unit", "default": "celsius"},
                    },
                    "required": ["city"],
                },
            },
        }]
        assert format_tools_to_language_model_tools([]) is None
        assert format_tools_to_language_model_tools(None) is None


class TestHTTPTool:
    """Test suite for HTTPTool."""

    @pytest.fixture
    def schema(self):
        """Schema with a single query parameter."""
        return ToolSchema(
            name="lookup",
            description="Look up a post",
            parameters=[ParameterSchema("post_id", "integer")],
        )

    @staticmethod
    def _client(method: str, payload):
        response = MagicMock()
        response.json.return_value = payload
        client = MagicMock()
        setattr(client, method, AsyncMock(return_value=response))
        client.__aenter__ = AsyncMock(return_value=client)
        client.__aexit__ = AsyncMock(return_value=False)
        return client, response

    @pytest.mark.asyncio
    async def test_get(self, schema):
        """Test that GET sends validated params as the query string."""
        client, response = self._client("get", {"id": 1, "title": "hello"})
        http_tool = HTTPTool(schema, url="https://api.example.com/posts", headers={"X-Key": "k"})

        with patch("luna_llm.core.tools.httpx.AsyncClient", return_value=client):
            result = await http_tool.call({"post_id": "1"})

        assert result == {"id": 1, "title": "hello"}
        client.get.assert_awaited_once_with(
            "https://api.example.com/posts", params={"post_id": 1}, headers={"X-Key": "k"}
        )
        response.raise_for_status.assert_called_once()

    @pytest.mark.asyncio
    async def test_post(self, schema):
        """Test that POST sends validated params as JSON."""
        client, _ = self._client("post", {"ok": True})
        http_tool = HTTPTool(schema, url="https://api.example.com/posts", method="post")

        with patch("luna_llm.core.tools.httpx.AsyncClient", return_value=client):
            assert await http_tool.call({"post_id": 2}) == {"ok": True}

        client.post.assert_awaited_once_with(
            "https://api.example.com/posts", json={"post_id": 2}, headers={}
        )

    @pytest.mark.asyncio
    async def test_unsupported_method(self, schema):
        """Test that other HTTP methods are rejected."""
        client, _ = self._client("get", None)
        http_tool = HTTPTool(schema, url="https://api.example.com/posts", method="DELETE")

        with patch("luna_llm.core.tools.httpx.AsyncClient", return_value=client):
            with pytest.raises(ValueError):
                await http_tool.call({"post_id": 2})

    def test_schema_tagged_as_http(self, schema):
        """Test that the tool's schema is marked as an HTTP API without touching the original."""
        http_tool = HTTPTool(schema, url="https://api.example.com/posts")

        assert http_tool.schema.tool_type == ToolType.HTTP_API
        assert http_tool.schema.parameters == schema.parameters
        assert schema.tool_type == ToolType.FUNCTION
