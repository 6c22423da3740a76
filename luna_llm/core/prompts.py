"""Prompt templates: f-string style templates rendered into text and messages.

Templates use single braces for variables and doubled braces for literal
ones, the same syntax as :meth:`str.format` without format specs::

    template = PromptTemplate("Translate {text} to {language}. Reply as {{json}}.")
    template.format(text="hello", language="French")

A :class:`ChatPromptTemplate` turns a list of message templates into a
list of :class:`~luna_llm.core.message.Message` objects ready for
``generate_text`` or ``stream_text``.
"""

import json
import logging
from dataclasses import dataclass, field
from typing import Any, Dict, List, Mapping, Optional, Sequence, Tuple, Union

from .message import ImagePart, Message, MessageContent, MessageRole, TextPart

logger = logging.getLogger(__name__)


@dataclass
class TemplateNode:
    """A literal run of text or a variable reference in a parsed template."""
    type: str  # "literal" or "variable"
    text: str = ""
    name: str = ""


def parse_template(template: str) -> List[TemplateNode]:
    """Split ``template`` into literal and variable nodes.

    Raises:
        ValueError: on an unclosed ``{`` or a single ``}``.
    """
    nodes: List[TemplateNode] = []
    i = 0
    size = len(template)

    while i < size:
        char = template[i]
        if char == "{" and template.startswith("{{", i):
            nodes.append(TemplateNode("literal", text="{"))
            i += 2
        elif char == "}" and template.startswith("}}", i):
            nodes.append(TemplateNode("literal", text="}"))
            i += 2
        elif char == "{":
            end = template.find("}", i)
            if end < 0:
                raise ValueError("Unclosed '{' in template.")
            nodes.append(TemplateNode("variable", name=template[i + 1:end]))
            i = end + 1
        elif char == "}":
            raise ValueError("Single '}' in template.")
        else:
            end = _next_brace(template, i)
            nodes.append(TemplateNode("literal", text=template[i:end]))
            i = end

    return nodes


def _next_brace(template: str, start: int) -> int:
    for i in range(start, len(template)):
        if template[i] in "{}":
            return i
    return len(template)


def template_variables(template: str) -> List[str]:
    """Variable names of ``template`` in order of first appearance."""
    names: List[str] = []
    for node in parse_template(template):
        if node.type == "variable" and node.name not in names:
            names.append(node.name)
    return names


def render_template(template: str, values: Mapping[str, Any]) -> str:
    """Substitute ``values`` into ``template``.

    Strings are inserted as-is, anything else as JSON.

    Raises:
        KeyError: when a variable has no value.
    """
    rendered = []
    for node in parse_template(template):
        if node.type == "literal":
            rendered.append(node.text)
            continue
        if node.name not in values:
            raise KeyError(f"Missing value for input {node.name}")
        value = values[node.name]
        rendered.append(value if isinstance(value, str) else json.dumps(value))
    return "".join(rendered)


def check_valid_template(template: MessageContent, input_variables: Sequence[str]) -> None:
    """Render ``template`` with placeholder values to surface syntax errors early.

    ``template`` is a template string or a list of text and image parts
    whose text (and image URL) are templates.
    """
    dummy = {name: "foo" for name in input_variables}
    try:
        if isinstance(template, str):
            render_template(template, dummy)
            return
        for part in template:
            if isinstance(part, TextPart):
                render_template(part.text, dummy)
            elif isinstance(part, ImagePart):
                if isinstance(part.image, str):
                    render_template(part.image, dummy)
            else:
                raise ValueError(f"Invalid message template part: {part!r}")
    except (KeyError, ValueError) as e:
        raise ValueError(f"Invalid prompt schema: {e}") from e


def _merge_values(
    partial_values: Mapping[str, Any], values: Optional[Mapping[str, Any]], kwargs: Mapping[str, Any]
) -> Dict[str, Any]:
    merged = dict(partial_values)
    merged.update(values or {})
    merged.update(kwargs)
    return merged


@dataclass
class PromptTemplate:
    """A text template with optional pre-filled (partial) values."""
    template: str
    partial_values: Dict[str, Any] = field(default_factory=dict)
    input_variables: List[str] = field(init=False)

    def __post_init__(self):
        self.input_variables = template_variables(self.template)

    def format(self, values: Optional[Mapping[str, Any]] = None, **kwargs) -> str:
        return render_template(self.template, _merge_values(self.partial_values, values, kwargs))

    def partial(self, values: Optional[Mapping[str, Any]] = None, **kwargs) -> "PromptTemplate":
        """Return a copy with some variables filled in ahead of time."""
        return PromptTemplate(self.template, _merge_values(self.partial_values, values, kwargs))


def _as_prompt(prompt: Union[str, PromptTemplate]) -> PromptTemplate:
    return PromptTemplate(prompt) if isinstance(prompt, str) else prompt


class MessagePromptTemplate:
    """Renders one message of a fixed role.

    ``prompt`` is a template string, a :class:`PromptTemplate`, or a list of
    text and image parts whose text and image URLs are templates.
    """

    def __init__(
        self,
        role: Union[MessageRole, str],
        prompt: Union[str, PromptTemplate, List[Union[TextPart, ImagePart]]],
        partial_values: Optional[Mapping[str, Any]] = None,
    ):
        self.role = MessageRole(role)
        if self.role == MessageRole.TOOL:
            raise ValueError("Tool messages cannot be templated")
        self.partial_values: Dict[str, Any] = dict(partial_values or {})

        if isinstance(prompt, list):
            self.prompt: Union[PromptTemplate, List[Union[TextPart, ImagePart]]] = list(prompt)
            names: List[str] = []
            for part in self.prompt:
                if isinstance(part, TextPart):
                    text = part.text
                elif isinstance(part, ImagePart):
                    text = part.image
                else:
                    raise ValueError(f"Invalid message template part: {part!r}")
                if isinstance(text, str):
                    names.extend(n for n in template_variables(text) if n not in names)
            self.input_variables = names
            check_valid_template(self.prompt, names)
        else:
            self.prompt = _as_prompt(prompt)
            self.input_variables = list(self.prompt.input_variables)

    def format(self, values: Optional[Mapping[str, Any]] = None, **kwargs) -> Message:
        merged = _merge_values(self.partial_values, values, kwargs)
        if isinstance(self.prompt, PromptTemplate):
            return Message(role=self.role, content=self.prompt.format(merged))
        return Message(role=self.role, content=[_render_part(p, merged) for p in self.prompt])

    def format_messages(self, values: Optional[Mapping[str, Any]] = None, **kwargs) -> List[Message]:
        return [self.format(values, **kwargs)]

    def partial(self, values: Optional[Mapping[str, Any]] = None, **kwargs) -> "MessagePromptTemplate":
        return MessagePromptTemplate(
            self.role, self.prompt, _merge_values(self.partial_values, values, kwargs)
        )


def _render_part(part: Union[TextPart, ImagePart], values: Mapping[str, Any]):
    if isinstance(part, TextPart):
        return TextPart(text=render_template(part.text, values))
    if isinstance(part.image, str):
        return ImagePart(image=render_template(part.image, values), mime_type=part.mime_type)
    return part


def system_message_prompt_template(prompt: Union[str, PromptTemplate]) -> MessagePromptTemplate:
    return MessagePromptTemplate(MessageRole.SYSTEM, prompt)


def user_message_prompt_template(prompt: Union[str, PromptTemplate]) -> MessagePromptTemplate:
    return MessagePromptTemplate(MessageRole.USER, prompt)


def assistant_message_prompt_template(prompt: Union[str, PromptTemplate]) -> MessagePromptTemplate:
    return MessagePromptTemplate(MessageRole.ASSISTANT, prompt)


class MessagesPlaceholder:
    """Inserts a list of messages taken from one input variable.

    A list value must hold :class:`Message` objects or message dicts; any
    other value becomes a single user message.
    """

    def __init__(self, variable_name: str, optional: bool = False):
        self.variable_name = variable_name
        self.optional = optional
        self.input_variables = [variable_name]

    def format_messages(self, values: Optional[Mapping[str, Any]] = None, **kwargs) -> List[Message]:
        merged = _merge_values({}, values, kwargs)
        if self.variable_name not in merged or merged[self.variable_name] is None:
            if self.optional:
                return []
            raise KeyError(f"MessagesPlaceholder requires a value for {self.variable_name}")

        value = merged[self.variable_name]
        if isinstance(value, list):
            return [m if isinstance(m, Message) else Message.from_dict(m) for m in value]
        return [Message.user(value)]

    def partial(self, values: Optional[Mapping[str, Any]] = None, **kwargs):
        raise NotImplementedError("MessagesPlaceholder does not support partial values")


ChatPromptItem = Union[
    MessagePromptTemplate,
    MessagesPlaceholder,
    Tuple[Union[MessageRole, str], Union[str, PromptTemplate]],
]


class ChatPromptTemplate:
    """Formats a sequence of message templates into a list of messages.

    Example:
        prompt = ChatPromptTemplate([
            ("system", "You are a {persona}."),
            MessagesPlaceholder("history", optional=True),
            ("user", "{question}"),
        ])
        messages = prompt.format_messages(persona="pirate", question="Where is the gold?")
    """

    def __init__(self, messages: Sequence[ChatPromptItem], partial_values: Optional[Mapping[str, Any]] = None):
        self.messages: List[Union[MessagePromptTemplate, MessagesPlaceholder]] = [
            MessagePromptTemplate(item[0], item[1]) if isinstance(item, tuple) else item
            for item in messages
        ]
        self.partial_values: Dict[str, Any] = dict(partial_values or {})

        names: List[str] = []
        for template in self.messages:
            names.extend(n for n in template.input_variables if n not in names)
        self.input_variables = names

    def format_messages(self, values: Optional[Mapping[str, Any]] = None, **kwargs) -> List[Message]:
        merged = _merge_values(self.partial_values, values, kwargs)
        result: List[Message] = []
        for template in self.messages:
            result.extend(template.format_messages(merged))
        return result

    format = format_messages

    def partial(self, values: Optional[Mapping[str, Any]] = None, **kwargs) -> "ChatPromptTemplate":
        return ChatPromptTemplate(self.messages, _merge_values(self.partial_values, values, kwargs))
