"""Message list rewrites for models with restricted role support."""

from typing import List

from ..core.message import Message, MessageRole

ACKNOWLEDGEMENT = "Okay, what do I need to do?"
FOLLOW_INSTRUCTIONS = "Continue what I said to you last user message. Follow these instructions."
CONTINUE_PROMPT = "Continue what I said to you last user message."
FILLER_USER = "noop"


def transform_message_remove_system(messages: List[Message]) -> List[Message]:
    """Rewrite system turns as user/assistant exchanges.

    Roles are kept alternating: consecutive user turns get an assistant
    acknowledgement between them, consecutive assistant turns a filler user
    turn. The result never ends on an assistant turn.
    """
    if not messages:
        return list(messages)

    result: List[Message] = []

    for message in messages:
        # system turns become user turns
        role = MessageRole.USER if message.role == MessageRole.SYSTEM else message.role

        if result:
            last_role = result[-1].role
            if last_role == MessageRole.USER and role == MessageRole.USER:
                result.append(Message.assistant(ACKNOWLEDGEMENT))
            elif last_role == MessageRole.ASSISTANT and role == MessageRole.ASSISTANT:
                result.append(Message.user(FILLER_USER))

        if message.role == MessageRole.SYSTEM:
            result.append(Message.user(message.content))
            result.append(Message.assistant(ACKNOWLEDGEMENT))
            result.append(Message.user(FOLLOW_INSTRUCTIONS))
        else:
            result.append(message)

    if result[-1].role == MessageRole.ASSISTANT:
        result.append(Message.user(CONTINUE_PROMPT))

    return result
