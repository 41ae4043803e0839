from typing import Annotated, Optional

from fastapi import APIRouter, Depends, File, Form, UploadFile
from sqlalchemy.orm import Session

from ..clients import InlineFile, OpenAIGenerator, get_generator
from ..config import Settings, get_settings
from ..database import get_db
from ..gateway import handle_chat
from ..security import current_identity

router = APIRouter(prefix="/api/chat", tags=["chat"])

chat_db = Annotated[Session, Depends(get_db)]


def read_upload(upload: Optional[UploadFile], limit: int) -> Optional[InlineFile]:
    # browsers post an empty part when no file was picked
    if upload is None or not upload.filename:
        return None
    # one byte past the limit is enough to know it is too large
    data = upload.file.read(limit + 1)
    return InlineFile(
        data=data,
        mime_type=upload.content_type or "application/octet-stream",
        filename=upload.filename,
    )


@router.post("")
def chat(
    db: chat_db,
    identity: current_identity,
    generator: Annotated[OpenAIGenerator, Depends(get_generator)],
    settings: Annotated[Settings, Depends(get_settings)],
    message: Annotated[Optional[str], Form()] = None,
    conversationId: Annotated[Optional[str], Form()] = None,
    file: Annotated[Optional[UploadFile], File()] = None,
):
    """
    POST /api/chat (multipart)
    Guests get {"text": ...}; signed-in users also get the conversationId
    the turn was stored under, which the client sends back to continue it.
    """
    reply = handle_chat(
        db,
        generator,
        identity,
        message,
        read_upload(file, settings.MAX_UPLOAD_BYTES),
        conversationId,
        max_upload_bytes=settings.MAX_UPLOAD_BYTES,
    )
    body = {"text": reply.text}
    if reply.conversation_id is not None:
        body["conversationId"] = reply.conversation_id
    return body
