"""Message and content part model, plus the chunk merge engine."""

import copy
import logging
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, ClassVar, Dict, List, Mapping, Optional, Union

from .exceptions import MergeError, ValidationError

logger = logging.getLogger(__name__)


class MessageRole(Enum):
    """Message roles in a conversation."""
    USER = "user"
    ASSISTANT = "assistant"
    SYSTEM = "system"
    TOOL = "tool"


@dataclass
class TextPart:
    text: str
    type: ClassVar[str] = "text"


@dataclass
class ImagePart:
    """Image content as a URL, data URI or raw bytes."""
    image: Union[str, bytes]
    mime_type: Optional[str] = None
    type: ClassVar[str] = "image"


@dataclass
class AudioPart:
    audio: Union[str, bytes]
    type: ClassVar[str] = "audio"


@dataclass
class FilePart:
    file: Union[str, bytes]
    mime_type: Optional[str] = None
    type: ClassVar[str] = "file"


@dataclass
class ToolCallPart:
    """A tool invocation issued by the model."""
    tool_call_id: Optional[str]
    tool_name: str
    args: Any = None
    type: ClassVar[str] = "tool-call"


@dataclass
class ToolResultPart:
    """The outcome of a tool invocation, matched to its call by ``tool_call_id``."""
    tool_call_id: Optional[str]
    tool_name: str
    result: Any = None
    args: Any = None
    is_error: bool = False
    type: ClassVar[str] = "tool-result"


@dataclass
class ThinkPart:
    """Reasoning text emitted by the model before its answer."""
    think: str
    type: ClassVar[str] = "think"


Part = Union[TextPart, ImagePart, AudioPart, FilePart, ToolCallPart, ToolResultPart, ThinkPart]
MessageContent = Union[str, List[Part]]

_PART_TYPES = {
    cls.type: cls
    for cls in (TextPart, ImagePart, AudioPart, FilePart, ToolCallPart, ToolResultPart, ThinkPart)
}

_CAMEL_KEYS = {
    "toolCallId": "tool_call_id",
    "toolName": "tool_name",
    "isError": "is_error",
    "mimeType": "mime_type",
    "mine_type": "mime_type",
}

# Parts each role may carry. ``None`` means unrestricted.
_ALLOWED_PARTS = {
    MessageRole.USER: None,
    MessageRole.SYSTEM: (TextPart,),
    MessageRole.ASSISTANT: (TextPart, ToolCallPart, ThinkPart),
    MessageRole.TOOL: (ToolResultPart,),
}


def part_from_dict(data: Mapping[str, Any]) -> Part:
    """Build a content part from its tagged dictionary form."""
    part_type = data.get("type")
    part_cls = _PART_TYPES.get(part_type)
    if part_cls is None:
        raise ValidationError(f"Unknown content part type: {part_type!r}")

    kwargs = {_CAMEL_KEYS.get(k, k): v for k, v in data.items() if k != "type"}
    try:
        return part_cls(**kwargs)
    except TypeError as e:
        raise ValidationError(f"Invalid {part_type} part: {e}", e) from e


def part_to_dict(part: Part) -> Dict[str, Any]:
    data = {"type": part.type}
    data.update(part.__dict__)
    return data


@dataclass
class Message:
    """A single chat turn.

    ``content`` is either a plain string or a list of parts. Tool messages
    carry only tool results; assistant messages carry text, tool calls and
    reasoning. A message with ``chunk=True`` is a partial fragment from a
    stream and can be folded with :func:`concat_chunks`.
    """
    role: MessageRole
    content: MessageContent = ""
    name: Optional[str] = None
    id: Optional[str] = None
    metadata: Dict[str, Any] = field(default_factory=dict)
    chunk: bool = False

    def __post_init__(self):
        if isinstance(self.role, str):
            try:
                self.role = MessageRole(self.role)
            except ValueError as e:
                raise ValidationError(f"Unknown message role: {self.role!r}", e) from e

        if self.metadata is None:
            self.metadata = {}

        if not isinstance(self.content, str):
            self.content = [
                part_from_dict(p) if isinstance(p, Mapping) else p for p in self.content
            ]

        self._validate_content()

    def _validate_content(self) -> None:
        allowed = _ALLOWED_PARTS[self.role]

        if isinstance(self.content, str):
            if self.role == MessageRole.TOOL:
                raise ValidationError("Tool messages must carry a list of tool-result parts")
            return

        for part in self.content:
            if not isinstance(part, tuple(_PART_TYPES.values())):
                raise ValidationError(f"Unsupported content part: {part!r}")
            if allowed is not None and not isinstance(part, allowed):
                raise ValidationError(
                    f"{self.role.value} messages cannot carry {part.type} parts"
                )

    @classmethod
    def user(cls, content: MessageContent, **kwargs) -> "Message":
        return cls(role=MessageRole.USER, content=content, **kwargs)

    @classmethod
    def system(cls, content: MessageContent, **kwargs) -> "Message":
        return cls(role=MessageRole.SYSTEM, content=content, **kwargs)

    @classmethod
    def assistant(cls, content: MessageContent, **kwargs) -> "Message":
        return cls(role=MessageRole.ASSISTANT, content=content, **kwargs)

    @classmethod
    def tool(cls, results: List[ToolResultPart], **kwargs) -> "Message":
        return cls(role=MessageRole.TOOL, content=list(results), **kwargs)

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "Message":
        return cls(
            role=data["role"],
            content=data.get("content", ""),
            name=data.get("name"),
            id=data.get("id"),
            metadata=dict(data.get("metadata") or {}),
            chunk=bool(data.get("chunk", False)),
        )

    @property
    def text(self) -> str:
        """Concatenated text of the message content."""
        return get_text_in_message_content(self.content)

    @property
    def tool_calls(self) -> List[ToolCallPart]:
        if isinstance(self.content, str):
            return []
        return [p for p in self.content if isinstance(p, ToolCallPart)]

    def to_dict(self) -> Dict[str, Any]:
        data: Dict[str, Any] = {
            "role": self.role.value,
            "content": self.content if isinstance(self.content, str)
            else [part_to_dict(p) for p in self.content],
        }
        if self.name is not None:
            data["name"] = self.name
        if self.id is not None:
            data["id"] = self.id
        if self.metadata:
            data["metadata"] = self.metadata
        if self.chunk:
            data["chunk"] = True
        return data


def get_text_in_message_content(content: MessageContent) -> str:
    if isinstance(content, str):
        return content
    return "".join(part.text for part in content if isinstance(part, TextPart))


def create_message_chunk(
    role: Union[MessageRole, str], content: MessageContent = "", **kwargs
) -> Message:
    return Message(role=role, content=content, chunk=True, **kwargs)


def concat_chunks(*chunks: Message) -> Message:
    """Fold a sequence of message chunks into a single chunk.

    Text parts concatenate, tool results with the same call id and tool
    calls with the same call id merge, metadata deep-merges. A merged
    content of exactly one text part collapses back to a plain string.
    """
    if not chunks:
        raise ValueError("concat_chunks requires at least one chunk")

    role = chunks[0].role
    all_parts: List[Part] = []
    name = None
    message_id = None
    metadata: Dict[str, Any] = {}

    for chunk in chunks:
        if chunk.role != role:
            raise MergeError(
                f"Cannot merge messages with different roles: {role.value} and {chunk.role.value}"
            )

        if isinstance(chunk.content, str):
            if chunk.content:
                all_parts.append(TextPart(text=chunk.content))
        else:
            all_parts.extend(copy.copy(p) for p in chunk.content)

        if chunk.name is not None:
            name = chunk.name
        if chunk.id:
            message_id = chunk.id
        if chunk.metadata:
            metadata = merge_dicts(metadata, chunk.metadata)

    merged: List[Part] = []
    for part in all_parts:
        if merged and _can_merge(merged[-1], part):
            merged[-1] = _merge_two_parts(merged[-1], part)
        else:
            merged.append(part)

    if len(merged) == 1 and isinstance(merged[0], TextPart):
        content: MessageContent = merged[0].text
    elif not merged:
        content = [] if role == MessageRole.TOOL else ""
    else:
        content = merged

    return Message(
        role=role, content=content, name=name, id=message_id, metadata=metadata, chunk=True
    )


def _can_merge(a: Part, b: Part) -> bool:
    if type(a) is not type(b):
        return False
    if isinstance(a, (TextPart, ThinkPart)):
        return True
    if isinstance(a, ToolResultPart):
        return a.tool_call_id == b.tool_call_id
    if isinstance(a, ToolCallPart):
        return b.tool_call_id is None or a.tool_call_id == b.tool_call_id
    return False


def _merge_two_parts(a: Part, b: Part) -> Part:
    if isinstance(a, TextPart):
        return TextPart(text=a.text + b.text)
    if isinstance(a, ThinkPart):
        return ThinkPart(think=a.think + b.think)
    if isinstance(a, ToolResultPart):
        return ToolResultPart(
            tool_call_id=a.tool_call_id,
            tool_name=a.tool_name or b.tool_name,
            result=merge_obj(a.result, b.result),
            args=a.args if a.args is not None else b.args,
            is_error=a.is_error or b.is_error,
        )
    if isinstance(a, ToolCallPart):
        return ToolCallPart(
            tool_call_id=a.tool_call_id,
            tool_name=a.tool_name or b.tool_name,
            args=merge_obj(a.args, b.args),
        )
    raise MergeError(f"Cannot merge parts of types {a.type} and {b.type}")


def _kind(value: Any) -> str:
    if isinstance(value, bool):
        return "bool"
    if isinstance(value, (int, float)):
        return "number"
    if isinstance(value, str):
        return "str"
    if isinstance(value, Mapping):
        return "dict"
    if isinstance(value, list):
        return "list"
    return type(value).__name__


def merge_dicts(left: Mapping[str, Any], right: Mapping[str, Any]) -> Dict[str, Any]:
    """Deep-merge two dictionaries.

    Strings concatenate (except ``type``), dictionaries recurse, lists merge
    with :func:`merge_lists`. Values of different kinds under the same key
    raise :class:`MergeError`.
    """
    merged = dict(left)
    for key, value in right.items():
        current = merged.get(key)
        if current is None:
            merged[key] = value
        elif value is None:
            continue
        elif _kind(current) != _kind(value):
            raise MergeError(
                f"field[{key}] already exists in the message chunk, but with a different type."
            )
        elif isinstance(current, str):
            if key == "type":
                continue
            merged[key] = current + value
        elif isinstance(current, Mapping):
            merged[key] = merge_dicts(current, value)
        elif isinstance(current, list):
            merged[key] = merge_lists(current, value)
        elif current == value:
            continue
        else:
            logger.warning(
                f"field[{key}] already exists in this message chunk and value has unsupported type."
            )
    return merged


def merge_lists(left: Optional[List[Any]], right: Optional[List[Any]]) -> Optional[List[Any]]:
    """Merge two lists, splicing dict items that share an integer ``index``."""
    if left is None and right is None:
        return None
    if left is None or right is None:
        return list(left or right)

    merged = list(left)
    for item in right:
        if isinstance(item, Mapping) and isinstance(item.get("index"), int) \
                and not isinstance(item.get("index"), bool):
            position = next(
                (i for i, existing in enumerate(merged)
                 if isinstance(existing, Mapping) and existing.get("index") == item["index"]),
                None,
            )
            if position is not None:
                merged[position] = merge_dicts(merged[position], item)
            else:
                merged.append(item)
        elif isinstance(item, Mapping) and item.get("text") == "":
            continue
        else:
            merged.append(item)
    return merged


def merge_obj(left: Any, right: Any) -> Any:
    """Merge two arbitrary values of the same kind."""
    if left is None or right is None:
        return right if left is None else left
    if _kind(left) != _kind(right):
        raise MergeError(
            f"Cannot merge objects of different types.\nLeft {_kind(left)}\nRight {_kind(right)}"
        )
    if isinstance(left, str):
        return left + right
    if isinstance(left, list):
        return merge_lists(left, right)
    if isinstance(left, Mapping):
        return merge_dicts(left, right)
    if left == right:
        return left
    raise MergeError(f"Can not merge objects of different values.\nLeft {left}\nRight {right}")
