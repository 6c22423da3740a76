"""Tests for JSON and list helpers."""

import pytest

from luna_llm.core import ParameterSchema, ValidationError
from luna_llm.utils import chunk_array, safe_parse_json


class TestSafeParseJson:
    """Test suite for safe_parse_json."""

    def test_valid(self):
        """Test parsing without a schema."""
        result = safe_parse_json('{"a": [1, 2]}')

        assert result.success is True
        assert result.data == {"a": [1, 2]}
        assert result.error is None

    def test_invalid_json(self):
        """Test that malformed JSON is reported, not raised."""
        result = safe_parse_json("{'a': 1}")

        assert result.success is False
        assert result.data is None
        assert result.error is not None

    def test_schema(self):
        """Test validation against a schema, keeping the raw value on failure."""
        schema = ParameterSchema("point", "object", properties=[
            ParameterSchema("x", "integer"),
            ParameterSchema("y", "integer"),
        ])

        ok = safe_parse_json('{"x": "1", "y": 2}', schema)
        assert ok.success is True
        assert ok.data == {"x": 1, "y": 2}
        assert ok.raw_value == {"x": "1", "y": 2}

        bad = safe_parse_json('{"x": 1}', schema)
        assert bad.success is False
        assert bad.raw_value == {"x": 1}
        assert isinstance(bad.error, ValidationError)


class TestChunkArray:
    """Test suite for chunk_array."""

    @pytest.mark.parametrize("values,size,expected", [
        ([1, 2, 3, 4, 5], 2, [[1, 2], [3, 4], [5]]),
        ([1, 2, 3, 4], 2, [[1, 2], [3, 4]]),
        ([1, 2], 5, [[1, 2]]),
        ([], 3, []),
    ])
    def test_chunks(self, values, size, expected):
        """Test splitting into consecutive chunks."""
        assert chunk_array(values, size) == expected

    def test_invalid_size(self):
        """Test that the chunk size must be positive."""
        with pytest.raises(ValueError):
            chunk_array([1], 0)
