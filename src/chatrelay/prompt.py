"""Request-body schema and outbound message assembly.

The client holds the whole conversation and sends it on every turn.
We check its shape, put the system directive in front, and hand the
result to the completion provider exactly as received.
"""

import json
import logging
from typing import Literal, TypeVar

from pydantic import BaseModel, ConfigDict, ValidationError

from . import config
from .errors import MalformedInput

logger = logging.getLogger(__name__)


class ConversationTurn(BaseModel):
    """One prior turn of the conversation, as the client sent it."""

    model_config = ConfigDict(extra="forbid", frozen=True)

    role: Literal["user", "assistant"]
    content: str

    def as_message(self) -> dict[str, str]:
        return {"role": self.role, "content": self.content}


class ChatStreamRequest(BaseModel):
    """Body of `POST /chat-stream`."""

    model_config = ConfigDict(extra="forbid")

    messages: list[ConversationTurn]


class ChatRequest(BaseModel):
    """Body of `POST /chat`. `text` is the newest user turn."""

    model_config = ConfigDict(extra="forbid")

    text: str
    messages: list[ConversationTurn] = []


Body = TypeVar("Body", bound=BaseModel)


def parse_body(model: type[Body], raw: bytes) -> Body:
    """Decode and validate a JSON request body, or raise MalformedInput."""
    try:
        data = json.loads(raw)
    except (json.JSONDecodeError, UnicodeDecodeError) as e:
        raise MalformedInput("Request body must be JSON") from e

    try:
        return model.model_validate(data)
    except ValidationError as e:
        # Field locations only; never echo the conversation back
        fields = ", ".join(".".join(str(p) for p in err["loc"]) or "body" for err in e.errors())
        raise MalformedInput(f"Invalid request body: {fields}") from e


# === System directives ===

STREAM_DIRECTIVE_TEXT = """You are a compassionate pastor providing guidance through this chat interface only by summarizing the bible verses and providing concise, practical, actionable guidance. Respond in a warm, conversational tone while keeping these guidelines in mind:

- Focus on providing direct guidance and support through this chat only, make sure it's not too long and can be actionable for the user
- Your response should not be long, keep it concise and no more than 3 paragraphs
- Never suggest meeting them in person
- Never imply you're part of a real church or congregation
- Speak naturally and avoid listing or itemizing responses unless asked by the user
- Focus on understanding and addressing the person's situation
- Offer practical, actionable guidance they can implement to resolve their situation
- If applicable for the problem, weave in a single or multiple Bible verses that directly relates to their situation
- Ask gentle follow-up questions when needed to better understand their situation
- Avoid continuously being apologetic and saying sorry

Remember: This is a conversation inteded to help the user, not a formal counseling session or sermon."""

SINGLE_SHOT_DIRECTIVE_TEXT = """You are a compassionate spiritual advisor providing guidance through this chat interface only. Respond in a warm, conversational tone while keeping these guidelines in mind:

- Focus on providing direct guidance and support through this chat only, make sure it can be actionable for the user
- Never suggest meeting in person, calling, or visiting any physical location
- Never imply you're part of a real church or congregation
- Speak naturally and avoid listing or itemizing responses unless asked by the user
- Focus on understanding and addressing the person's situation
- Offer practical, actionable guidance they can implement on their own
- If relevant, weave in a single or multiple Bible verses that directly relates to their situation
- Ask gentle follow-up questions when needed to better understand their situation
- Avoid continuously being apologetic and saying sorry
- Avoid theological jargon or preachy language

Remember: This is a casual chat conversation, not a formal counseling session or sermon."""

SYSTEM_DIRECTIVE = {"role": "system", "content": STREAM_DIRECTIVE_TEXT}
SINGLE_SHOT_DIRECTIVE = {"role": "system", "content": SINGLE_SHOT_DIRECTIVE_TEXT}


def load_system_directive() -> dict[str, str]:
    """Return the streaming directive, replaced by SYSTEM_PROMPT_PATH if set.

    Called once at startup. A configured path that can't be read is a
    deployment error, so it raises instead of falling back.
    """
    if config.SYSTEM_PROMPT_PATH is None:
        return SYSTEM_DIRECTIVE

    text = config.SYSTEM_PROMPT_PATH.read_text(encoding="utf-8").strip()
    if not text:
        raise ValueError(f"System prompt file is empty: {config.SYSTEM_PROMPT_PATH}")
    logger.info(f"Loaded system prompt from {config.SYSTEM_PROMPT_PATH} ({len(text)} chars)")
    return {"role": "system", "content": text}


def assemble_messages(
    turns: list[ConversationTurn],
    directive: dict[str, str] = SYSTEM_DIRECTIVE,
) -> list[dict[str, str]]:
    """Build the outbound message list: the directive, then every turn in order."""
    return [dict(directive), *(turn.as_message() for turn in turns)]


def assemble_single_shot(
    request: ChatRequest,
    directive: dict[str, str] = SINGLE_SHOT_DIRECTIVE,
) -> list[dict[str, str]]:
    """Like assemble_messages, with the request's `text` appended as a user turn."""
    messages = assemble_messages(request.messages, directive)
    messages.append({"role": "user", "content": request.text})
    return messages
