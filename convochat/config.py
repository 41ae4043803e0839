# convochat/config.py
from typing import Optional

from dotenv import load_dotenv
from fastapi import Request
from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict

# Load .env once here
load_dotenv()


class Settings(BaseSettings):
    """
    Process-wide configuration, read from the environment (and `.env`)
    once at startup. Instances are frozen; request code gets the instance
    through the `get_settings` dependency.
    """

    model_config = SettingsConfigDict(frozen=True, extra="ignore")

    JWT_SECRET: str = Field(..., min_length=1)
    """Secret used to sign access and reset tokens. Required."""

    JWT_ALGORITHM: str = "HS256"
    ACCESS_TOKEN_EXPIRE_DAYS: int = 7
    RESET_TOKEN_EXPIRE_MINUTES: int = 60

    DATABASE_URL: str = "sqlite:///./convochat.db"

    OPENAI_API_KEY: Optional[str] = None
    OPENAI_MODEL: str = "gpt-4o-mini"
    OPENAI_TIMEOUT_SECONDS: float = 60.0

    GOOGLE_CLIENT_ID: Optional[str] = None

    SMTP_HOST: str = "smtp.gmail.com"
    SMTP_PORT: int = 587
    EMAIL_USER: Optional[str] = None
    EMAIL_PASS: Optional[str] = None

    FRONTEND_URL: str = "http://localhost:5173"
    """Base URL of the browser client; used for reset links and CORS."""

    MAX_UPLOAD_BYTES: int = 5 * 1024 * 1024
    LOG_LEVEL: str = "INFO"


def get_settings(request: Request) -> Settings:
    return request.app.state.settings
