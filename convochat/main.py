import logging
from typing import Optional

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse
from starlette.middleware.cors import CORSMiddleware

from .clients import build_clients
from .config import Settings
from .database import Base, build_engine, build_session_factory
from .errors import ConvochatError
from .routers import auth, chats, conversations

logger = logging.getLogger(__name__)

LOG_FORMAT = "%(asctime)s [%(levelname)s] %(name)s: %(message)s"


def create_app(settings: Optional[Settings] = None) -> FastAPI:
    # Settings() raises when JWT_SECRET is missing, so the app never starts without it
    settings = settings or Settings()
    logging.basicConfig(level=settings.LOG_LEVEL, format=LOG_FORMAT)

    app = FastAPI(title="Convochat")

    engine = build_engine(settings.DATABASE_URL)
    Base.metadata.create_all(bind=engine)  # create tables

    app.state.settings = settings
    app.state.engine = engine
    app.state.session_factory = build_session_factory(engine)
    for name, client in build_clients(settings).items():
        setattr(app.state, name, client)

    app.include_router(auth.authRoutes)
    app.include_router(chats.router)
    app.include_router(conversations.router)

    app.add_middleware(
        CORSMiddleware,
        allow_origins=[settings.FRONTEND_URL],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    @app.exception_handler(ConvochatError)
    async def convochat_error_handler(request: Request, exc: ConvochatError) -> JSONResponse:
        # 5xx errors are logged with their traceback where they are raised
        if exc.status_code < 500:
            logger.warning("%s %s -> %s %s", request.method, request.url.path, exc.status_code, exc.message)
        return JSONResponse(status_code=exc.status_code, content={"error": exc.message})

    @app.get("/")
    def read_root() -> dict:
        return {"msg": "welcome to convochat"}

    logger.info("Convochat ready (database=%s)", engine.url.render_as_string(hide_password=True))
    return app


app = create_app()
