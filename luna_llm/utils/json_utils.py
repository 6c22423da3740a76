"""JSON parsing and list helpers."""

import json
from dataclasses import dataclass
from typing import TYPE_CHECKING, Any, List, Optional, Sequence, TypeVar

from ..core.exceptions import ValidationError

if TYPE_CHECKING:
    from ..core.tools import ParameterSchema

T = TypeVar("T")


@dataclass
class ParseResult:
    success: bool
    data: Any = None
    raw_value: Any = None
    error: Optional[Exception] = None


def safe_parse_json(text: str, schema: Optional["ParameterSchema"] = None) -> ParseResult:
    """Parse ``text`` as JSON and optionally validate it, without raising."""
    try:
        value = json.loads(text)
    except (json.JSONDecodeError, TypeError) as e:
        return ParseResult(success=False, error=e)

    if schema is None:
        return ParseResult(success=True, data=value, raw_value=value)

    try:
        data = schema.validate(value)
    except ValidationError as e:
        return ParseResult(success=False, raw_value=value, error=e)

    return ParseResult(success=True, data=data, raw_value=value)


def chunk_array(values: Sequence[T], chunk_size: int) -> List[List[T]]:
    """Split ``values`` into consecutive lists of at most ``chunk_size`` items."""
    if chunk_size < 1:
        raise ValueError("chunk_size must be >= 1")
    return [list(values[i:i + chunk_size]) for i in range(0, len(values), chunk_size)]
