from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from api.routes import chat_router, info_router, sessions_router
from app.assembler import MessageAssembler
from app.coordinator import TurnCoordinator
from app.session import SessionRegistry
from app.streaming import ChatStreamingHandler
from config import Settings
from stream.transport import SESSION_HEADER


def create_app(
    settings: Settings,
    registry: SessionRegistry,
    assembler: MessageAssembler,
    coordinator: TurnCoordinator,
    streaming_handler: ChatStreamingHandler,
    lifespan=None,
) -> FastAPI:
    app = FastAPI(
        title="PA Relay",
        description="Relays agent turns as server-sent events and keeps \
        each session's message log",
        version="0.1.0",
        lifespan=lifespan,
    )

    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
        # Browsers only hand custom headers to scripts when exposed
        expose_headers=[SESSION_HEADER],
    )

    app.state.settings = settings
    app.state.registry = registry
    app.state.assembler = assembler
    app.state.coordinator = coordinator
    app.state.streaming_handler = streaming_handler

    app.include_router(chat_router, tags=["Chat"])
    app.include_router(sessions_router, prefix="/sessions", tags=["Sessions"])
    app.include_router(info_router, tags=["System Info"])

    return app
