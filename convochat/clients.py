# convochat/clients.py
"""
Thin wrappers around the third-party services the backend talks to:
the OpenAI Responses API, Google's ID-token verifier and an SMTP mailbox.

Each wrapper is built once in `create_app()` from the settings object and
stored on `app.state`; routes receive them through the `get_*` dependencies
below, which tests replace via `app.dependency_overrides`.
"""
import base64
import logging
import smtplib
from dataclasses import dataclass
from email.message import EmailMessage
from typing import Any, Dict, List, Optional, Sequence

from fastapi import Request
from google.auth.transport import requests as google_requests
from google.oauth2 import id_token
from openai import OpenAI

from .config import Settings

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class InlineFile:
    data: bytes
    mime_type: str
    filename: str = "upload"


@dataclass(frozen=True)
class VerifiedIdentity:
    email: str
    subject_id: str


class OpenAIGenerator:
    def __init__(self, api_key: Optional[str], model: str, timeout: float = 60.0):
        self.model = model
        # single attempt; failures are reported to the caller as-is
        self._client = (
            OpenAI(api_key=api_key, timeout=timeout, max_retries=0) if api_key else None
        )

    def generate(self, text_parts: Sequence[str], inline_file: Optional[InlineFile] = None) -> str:
        if self._client is None:
            raise RuntimeError("OPENAI_API_KEY is missing")

        content: List[Dict[str, Any]] = [
            {"type": "input_text", "text": part} for part in text_parts if part
        ]
        if inline_file is not None:
            content.append(file_to_content_part(inline_file))

        resp = self._client.responses.create(
            model=self.model,
            input=[{"role": "user", "content": content}],
        )

        reply = getattr(resp, "output_text", "") or collect_output_text(getattr(resp, "output", None) or [])
        if not reply:
            raise RuntimeError("No text returned by model")
        return reply


def collect_output_text(output: Sequence[Any]) -> str:
    """Joins the output_text chunks of every message item in a Responses payload."""
    messages = (item for item in output if getattr(item, "type", "") == "message")
    return "".join(
        getattr(chunk, "text", "")
        for item in messages
        for chunk in getattr(item, "content", [])
        if getattr(chunk, "type", "") == "output_text"
    )


def file_to_content_part(inline_file: InlineFile) -> Dict[str, Any]:
    mime_type = inline_file.mime_type or "application/octet-stream"
    if mime_type.startswith("text/"):
        text = inline_file.data.decode("utf-8", errors="replace")
        return {"type": "input_text", "text": f"{inline_file.filename}:\n{text}"}

    data_url = f"data:{mime_type};base64,{base64.b64encode(inline_file.data).decode('ascii')}"
    if mime_type.startswith("image/"):
        return {"type": "input_image", "image_url": data_url}
    return {"type": "input_file", "filename": inline_file.filename, "file_data": data_url}


class GoogleIdentityVerifier:
    def __init__(self, client_id: Optional[str]):
        self.client_id = client_id

    def verify(self, raw_token: str) -> VerifiedIdentity:
        if not self.client_id:
            raise ValueError("GOOGLE_CLIENT_ID is not configured")
        payload = id_token.verify_oauth2_token(raw_token, google_requests.Request(), self.client_id)
        email = payload.get("email")
        if not email:
            raise ValueError("Google token carries no email")
        return VerifiedIdentity(email=email, subject_id=payload["sub"])


class SmtpNotifier:
    def __init__(self, host: str, port: int, username: Optional[str], password: Optional[str]):
        self.host = host
        self.port = port
        self.username = username
        self.password = password

    def send(self, to_email: str, subject: str, body: str) -> None:
        if not self.username or not self.password:
            raise RuntimeError("Email transport is not configured")

        msg = EmailMessage()
        msg["From"] = self.username
        msg["To"] = to_email
        msg["Subject"] = subject
        msg.set_content(body)

        with smtplib.SMTP(self.host, self.port, timeout=30) as smtp:
            smtp.starttls()
            smtp.login(self.username, self.password)
            smtp.send_message(msg)
        logger.info("Sent '%s' mail to %s", subject, to_email)


def build_clients(settings: Settings) -> Dict[str, Any]:
    return {
        "generator": OpenAIGenerator(
            settings.OPENAI_API_KEY, settings.OPENAI_MODEL, settings.OPENAI_TIMEOUT_SECONDS
        ),
        "identity_verifier": GoogleIdentityVerifier(settings.GOOGLE_CLIENT_ID),
        "notifier": SmtpNotifier(
            settings.SMTP_HOST, settings.SMTP_PORT, settings.EMAIL_USER, settings.EMAIL_PASS
        ),
    }


def get_generator(request: Request) -> OpenAIGenerator:
    return request.app.state.generator


def get_identity_verifier(request: Request) -> GoogleIdentityVerifier:
    return request.app.state.identity_verifier


def get_notifier(request: Request) -> SmtpNotifier:
    return request.app.state.notifier
