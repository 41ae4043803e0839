# convochat/conversations.py
import logging
import re
from typing import List, Optional

from sqlalchemy import desc
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from .errors import NotFound
from .models import ChatMessage, Conversation, utcnow
from .security import Authenticated, Identity

logger = logging.getLogger(__name__)

TITLE_LENGTH = 30
FILE_TITLE = "File Upload"
DEFAULT_TITLE = "New Chat"

_CONVERSATION_ID = re.compile(r"^[0-9a-f]{32}$")


def is_valid_conversation_id(value: Optional[str]) -> bool:
    return bool(value) and _CONVERSATION_ID.match(value) is not None


def derive_title(user_text: str, file_attached: bool = False) -> str:
    text = (user_text or "").strip()
    if not text:
        return FILE_TITLE if file_attached else DEFAULT_TITLE
    if len(text) > TITLE_LENGTH:
        return text[:TITLE_LENGTH] + "..."
    return text


def list_for_user(db: Session, identity: Identity) -> List[Conversation]:
    if not isinstance(identity, Authenticated):
        return []
    return (
        db.query(Conversation)
        .filter(Conversation.user_id == identity.user_id)
        .order_by(desc(Conversation.updated_at), desc(Conversation.created_at))
        .all()
    )


def get_by_id(db: Session, user_id: int, conversation_id: str) -> Conversation:
    """Owner-scoped fetch. Someone else's conversation is reported exactly like a missing one."""
    conv = None
    if is_valid_conversation_id(conversation_id):
        conv = (
            db.query(Conversation)
            .filter(Conversation.id == conversation_id, Conversation.user_id == user_id)
            .first()
        )
    if conv is None:
        raise NotFound("Conversation not found")
    return conv


def append_turn(
    db: Session,
    user_id: int,
    conversation_id: Optional[str],
    user_text: str,
    assistant_text: str,
    *,
    title: Optional[str] = None,
) -> Conversation:
    """
    Append one user/assistant exchange, creating the conversation when
    `conversation_id` is absent or does not resolve to one owned by `user_id`.
    `title` only applies to a newly created conversation; it defaults to
    one derived from `user_text`.

    Both messages and the new `updated_at` are committed together.
    """
    conv = None
    if conversation_id:
        try:
            conv = get_by_id(db, user_id, conversation_id)
        except NotFound:
            logger.info("Conversation %r not found for user %s, starting a new one", conversation_id, user_id)

    created = conv is None
    if created:
        conv = Conversation(user_id=user_id, title=title or derive_title(user_text))
        db.add(conv)

    now = utcnow()
    position = len(conv.messages)
    conv.messages.append(ChatMessage(role="user", text=user_text, position=position, created_at=now))
    conv.messages.append(ChatMessage(role="assistant", text=assistant_text, position=position + 1, created_at=now))
    conv.updated_at = now

    try:
        db.commit()
    except SQLAlchemyError:
        db.rollback()
        raise
    db.refresh(conv)
    if created:
        logger.info("Created conversation %s for user %s", conv.id, user_id)
    return conv


def delete(db: Session, user_id: int, conversation_id: str) -> None:
    if not is_valid_conversation_id(conversation_id):
        return
    conv = (
        db.query(Conversation)
        .filter(Conversation.id == conversation_id, Conversation.user_id == user_id)
        .first()
    )
    if conv is None:
        return
    db.delete(conv)
    db.commit()
    logger.info("Deleted conversation %s of user %s", conversation_id, user_id)
