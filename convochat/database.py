# convochat/database.py
from typing import Iterator

from fastapi import Request
from sqlalchemy import create_engine
from sqlalchemy.engine import Engine
from sqlalchemy.orm import sessionmaker, declarative_base, Session
from sqlalchemy.pool import StaticPool

Base = declarative_base()


def build_engine(url: str, **kwargs) -> Engine:
    if url.startswith("sqlite"):
        # needed for SQLite + FastAPI
        kwargs.setdefault("connect_args", {"check_same_thread": False})
    if url in ("sqlite://", "sqlite:///:memory:"):
        # one shared connection, otherwise every session sees its own empty database
        kwargs.setdefault("poolclass", StaticPool)
    return create_engine(url, future=True, echo=False, **kwargs)


def build_session_factory(engine: Engine) -> sessionmaker:
    return sessionmaker(bind=engine, autoflush=False, expire_on_commit=False, future=True)


def get_db(request: Request) -> Iterator[Session]:
    db = request.app.state.session_factory()
    try:
        yield db
    finally:
        db.close()
