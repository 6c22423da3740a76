"""Tests for prompt templates."""

import pytest

from luna_llm.core import (
    ChatPromptTemplate,
    ImagePart,
    Message,
    MessagePromptTemplate,
    MessageRole,
    MessagesPlaceholder,
    PromptTemplate,
    TextPart,
    render_template,
    system_message_prompt_template,
    user_message_prompt_template,
)
from luna_llm.core.prompts import check_valid_template, parse_template


class TestParseTemplate:
    """Test suite for template parsing and rendering."""

    def test_nodes(self):
        """Test that literals, variables and escaped braces are split apart."""
        nodes = parse_template("Hi {name}, use {{braces}}")

        assert [(n.type, n.text or n.name) for n in nodes] == [
            ("literal", "Hi "),
            ("variable", "name"),
            ("literal", ", use "),
            ("literal", "{"),
            ("literal", "braces"),
            ("literal", "}"),
        ]

    def test_unclosed_brace(self):
        """Test that an unclosed brace is rejected."""
        with pytest.raises(ValueError, match="Unclosed"):
            parse_template("Hello {name")

    def test_single_closing_brace(self):
        """Test that a lone closing brace is rejected."""
        with pytest.raises(ValueError, match="Single"):
            parse_template("Hello name}")

    def test_render_values(self):
        """Test that strings are inserted as-is and other values as JSON."""
        rendered = render_template(
            "{city}: {forecast} {{ok}}", {"city": "Oslo", "forecast": {"temp": 3}}
        )

        assert rendered == 'Oslo: {"temp": 3} {ok}'

    def test_render_missing_value(self):
        """Test that a missing value names the variable."""
        with pytest.raises(KeyError, match="city"):
            render_template("Weather in {city}", {})

    def test_check_valid_template(self):
        """Test placeholder rendering of string and part templates."""
        check_valid_template("Hi {name}", ["name"])
        check_valid_template([TextPart("Look at {thing}"), ImagePart("https://img/{id}.png")], ["thing", "id"])

        with pytest.raises(ValueError, match="Invalid prompt schema"):
            check_valid_template("Hi {name}", [])


class TestPromptTemplate:
    """Test suite for PromptTemplate."""

    def test_input_variables(self):
        """Test that variables are listed once in order of appearance."""
        template = PromptTemplate("{a} and {b} then {a}")

        assert template.input_variables == ["a", "b"]

    def test_format(self):
        """Test formatting with a mapping and keyword arguments."""
        template = PromptTemplate("Translate {text} to {language}.")

        assert template.format({"text": "hello"}, language="French") == "Translate hello to French."

    def test_partial(self):
        """Test that partial values are kept and can be overridden."""
        template = PromptTemplate("{greeting}, {name}!")
        greeter = template.partial(greeting="Hello")

        assert greeter.format(name="Ada") == "Hello, Ada!"
        assert greeter.format(greeting="Hi", name="Ada") == "Hi, Ada!"
        assert greeter.partial(name="Bob").format() == "Hello, Bob!"
        assert template.partial_values == {}

    def test_invalid_template_fails_early(self):
        """Test that syntax errors surface at construction."""
        with pytest.raises(ValueError):
            PromptTemplate("{unclosed")


class TestMessagePromptTemplate:
    """Test suite for message templates."""

    def test_format(self):
        """Test that a message of the template's role is produced."""
        template = system_message_prompt_template("You are a {persona}.")

        message = template.format(persona="pirate")

        assert message == Message.system("You are a pirate.")
        assert template.input_variables == ["persona"]

    def test_part_templates(self):
        """Test that text and image URL parts are rendered."""
        template = MessagePromptTemplate(
            "user", [TextPart("Describe {subject}"), ImagePart("https://img/{image_id}.png", mime_type="image/png")]
        )

        message = template.format(subject="the cat", image_id=42)

        assert template.input_variables == ["subject", "image_id"]
        assert message.content == [
            TextPart("Describe the cat"),
            ImagePart("https://img/42.png", mime_type="image/png"),
        ]

    def test_partial(self):
        """Test partial values on a message template."""
        template = user_message_prompt_template("{verb} {noun}").partial(verb="Open")

        assert template.format_messages(noun="the door") == [Message.user("Open the door")]

    def test_tool_role_rejected(self):
        """Test that tool messages cannot be templated."""
        with pytest.raises(ValueError):
            MessagePromptTemplate(MessageRole.TOOL, "{result}")


class TestChatPromptTemplate:
    """Test suite for ChatPromptTemplate."""

    @pytest.fixture
    def prompt(self):
        """System, history and question prompt."""
        return ChatPromptTemplate([
            ("system", "You are a {persona}."),
            MessagesPlaceholder("history", optional=True),
            user_message_prompt_template("{question}"),
        ])

    def test_input_variables(self, prompt):
        """Test that variables are collected across messages."""
        assert prompt.input_variables == ["persona", "history", "question"]

    def test_format_messages(self, prompt):
        """Test that history messages are spliced between the rendered ones."""
        history = [Message.user("Hi"), {"role": "assistant", "content": "Ahoy"}]

        messages = prompt.format_messages(persona="pirate", history=history, question="Gold?")

        assert [(m.role, m.content) for m in messages] == [
            (MessageRole.SYSTEM, "You are a pirate."),
            (MessageRole.USER, "Hi"),
            (MessageRole.ASSISTANT, "Ahoy"),
            (MessageRole.USER, "Gold?"),
        ]

    def test_optional_placeholder(self, prompt):
        """Test that an optional placeholder without a value adds nothing."""
        messages = prompt.format_messages(persona="pirate", question="Gold?")

        assert [m.role for m in messages] == [MessageRole.SYSTEM, MessageRole.USER]

    def test_required_placeholder(self):
        """Test that a required placeholder without a value raises."""
        prompt = ChatPromptTemplate([MessagesPlaceholder("history")])

        with pytest.raises(KeyError, match="history"):
            prompt.format_messages()

    def test_placeholder_single_value(self):
        """Test that a non-list placeholder value becomes a user message."""
        prompt = ChatPromptTemplate([MessagesPlaceholder("input")])

        assert prompt.format(input="hello") == [Message.user("hello")]

    def test_placeholder_rejects_partial(self):
        """Test that placeholders cannot be partially filled."""
        with pytest.raises(NotImplementedError):
            MessagesPlaceholder("history").partial(history=[])

    def test_partial(self, prompt):
        """Test partial values on the whole chat prompt."""
        pirate = prompt.partial(persona="pirate")

        messages = pirate.format_messages(question="Where?")

        assert messages[0].content == "You are a pirate."
        assert prompt.partial_values == {}

    def test_unknown_role(self):
        """Test that an unknown role is rejected."""
        with pytest.raises(ValueError):
            ChatPromptTemplate([("narrator", "Once upon a time")])
