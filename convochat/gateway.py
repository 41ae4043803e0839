# convochat/gateway.py
import logging
from dataclasses import dataclass
from typing import List, Optional

from sqlalchemy.orm import Session

from . import conversations
from .clients import InlineFile, OpenAIGenerator
from .errors import BadRequest, UpstreamError
from .security import Authenticated, Identity

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ChatReply:
    text: str
    conversation_id: Optional[str] = None


def transcript_text(message: str, inline_file: Optional[InlineFile]) -> str:
    """What gets stored as the user's side of the turn."""
    if inline_file is None:
        return message
    if not message.strip():
        return f"[File: {inline_file.filename}]"
    return f"[File: {inline_file.filename}] {message}"


def handle_chat(
    db: Session,
    generator: OpenAIGenerator,
    identity: Identity,
    message: Optional[str],
    inline_file: Optional[InlineFile] = None,
    conversation_id: Optional[str] = None,
    max_upload_bytes: Optional[int] = None,
) -> ChatReply:
    message = message or ""
    # a zero-byte upload carries nothing for the model
    if inline_file is not None and not inline_file.data:
        inline_file = None
    if not message.strip() and inline_file is None:
        raise BadRequest("Message or file is required")
    if inline_file is not None and max_upload_bytes is not None and len(inline_file.data) > max_upload_bytes:
        raise BadRequest("File too large")

    text_parts: List[str] = [message] if message.strip() else []
    try:
        reply = generator.generate(text_parts, inline_file)
    except Exception as e:
        logger.exception("AI generation failed")
        raise UpstreamError(str(e))

    if not isinstance(identity, Authenticated):
        return ChatReply(text=reply)

    conv = conversations.append_turn(
        db,
        identity.user_id,
        conversation_id,
        transcript_text(message, inline_file),
        reply,
        title=conversations.derive_title(message, file_attached=inline_file is not None),
    )
    return ChatReply(text=reply, conversation_id=conv.id)
