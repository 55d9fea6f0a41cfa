"""
BizLink - Main FastAPI application.

Realtime core of the business-networking platform: presence-aware direct
messages, notifications, dashboard broadcasts and streamed AI chat replies.
"""
from contextlib import asynccontextmanager
from typing import Optional

from fastapi import FastAPI, Request, status
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from fastapi.encoders import jsonable_encoder
from fastapi.exceptions import RequestValidationError
from sqlalchemy.orm import sessionmaker
import logging

from bizlink.core.config import settings
from bizlink.core.api import chat, dashboard, health, users
from bizlink.core.llm import LLMClient, get_llm_client
from bizlink.core.memory.db import init_db
from bizlink.core.memory.store import ConversationStore, SqlConversationStore
from bizlink.core.services.dashboard_service import DashboardService
from bizlink.core.services.user_directory import UserDirectory
from bizlink.core.streaming.bridge import StreamingBridge
from bizlink.core.websocket.manager import RealtimeHub
from bizlink.core.websocket.routes import websocket_endpoint

# Configure logging
logging.basicConfig(
    level=logging.DEBUG if settings.debug else logging.INFO,
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
)
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Handle application startup and shutdown."""
    logger.info("Initializing database...")
    init_db(app.state.session_factory)
    await app.state.dashboard.start()
    logger.info("BizLink binding on %s:%s", settings.api_host, settings.api_port)

    yield

    await app.state.dashboard.stop()
    await app.state.hub.close_all()
    await app.state.bridge.drain()
    logger.info("BizLink shutting down")


def create_app(
    session_factory: Optional[sessionmaker] = None,
    llm_client: Optional[LLMClient] = None,
    store: Optional[ConversationStore] = None,
    dashboard_interval: Optional[float] = None,
) -> FastAPI:
    """
    Build the application and its realtime components.

    Every app owns its own hub, so presence never leaks between instances.
    """
    app = FastAPI(
        title="BizLink",
        description="Realtime messaging and AI chat streaming for the BizLink platform",
        version="1.0.0",
        lifespan=lifespan,
    )

    hub = RealtimeHub(max_frame_size=settings.max_frame_size)
    store = store or SqlConversationStore(session_factory)
    app.state.session_factory = session_factory
    app.state.hub = hub
    app.state.store = store
    app.state.bridge = StreamingBridge(
        provider=llm_client or get_llm_client(),
        store=store,
        persist_retries=settings.persist_retries,
        persist_retry_delay=settings.persist_retry_delay,
    )
    app.state.directory = UserDirectory(hub.registry, session_factory)
    app.state.dashboard = DashboardService(
        hub,
        session_factory,
        interval=settings.dashboard_interval if dashboard_interval is None else dashboard_interval,
    )

    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origin_list,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    @app.middleware("http")
    async def log_requests(request: Request, call_next):
        """Log all HTTP requests. Health/status endpoints at DEBUG to reduce log spam."""
        path = request.url.path
        level = logger.debug if path in ("/health", "/api/status") else logger.info
        level("%s %s", request.method, path)
        response = await call_next(request)
        level("%s %s - %s", request.method, path, response.status_code)
        return response

    @app.exception_handler(RequestValidationError)
    async def validation_exception_handler(request: Request, exc: RequestValidationError):
        return JSONResponse(
            status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
            content={"detail": jsonable_encoder(exc.errors())},
        )

    @app.exception_handler(Exception)
    async def general_exception_handler(request: Request, exc: Exception):
        logger.error("Unhandled exception: %s", exc, exc_info=True)
        return JSONResponse(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            content={
                "detail": "Internal server error",
                "error": str(exc) if settings.debug else None,
            },
        )

    app.add_api_websocket_route("/ws", websocket_endpoint)

    app.include_router(health.router)
    app.include_router(users.router)
    app.include_router(chat.router)
    app.include_router(dashboard.router)

    return app


app = create_app()


if __name__ == "__main__":
    import uvicorn
    uvicorn.run(
        "bizlink.core.main:app",
        host=settings.api_host,
        port=settings.api_port,
        reload=settings.debug,
    )
