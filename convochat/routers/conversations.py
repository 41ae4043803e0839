from datetime import datetime
from typing import Annotated, List

from fastapi import APIRouter, Depends
from pydantic import BaseModel, ConfigDict, Field
from sqlalchemy.orm import Session

from .. import conversations
from ..database import get_db
from ..errors import BadRequest
from ..security import current_identity, current_user

router = APIRouter(prefix="/api/conversations", tags=["conversations"])

conv_db = Annotated[Session, Depends(get_db)]


class MessageOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    role: str
    text: str
    timestamp: datetime = Field(validation_alias="created_at")


class ConversationSummary(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: str = Field(serialization_alias="_id")
    title: str
    updated_at: datetime = Field(serialization_alias="updatedAt")


class ConversationOut(ConversationSummary):
    created_at: datetime = Field(serialization_alias="createdAt")
    messages: List[MessageOut]


class MessageResponse(BaseModel):
    message: str


@router.get("", response_model=List[ConversationSummary])
def list_conversations(db: conv_db, identity: current_identity):
    """Newest first; guests get an empty list."""
    return conversations.list_for_user(db, identity)


@router.get("/{conversation_id}", response_model=ConversationOut)
def get_conversation(conversation_id: str, db: conv_db, user: current_user):
    if not conversations.is_valid_conversation_id(conversation_id):
        raise BadRequest("Invalid ID")
    return conversations.get_by_id(db, user.user_id, conversation_id)


@router.delete("/{conversation_id}", response_model=MessageResponse)
def delete_conversation(conversation_id: str, db: conv_db, user: current_user):
    conversations.delete(db, user.user_id, conversation_id)
    return MessageResponse(message="Deleted")
