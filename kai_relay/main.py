from contextlib import asynccontextmanager
import logging

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from kai_relay.api.router import api_router
from kai_relay.api.routers.health import router as health_router
from kai_relay.core.logging import configure_logging
from kai_relay.core.settings import get_settings
from kai_relay.dependency_injection import build_container

settings = get_settings()
configure_logging(settings.effective_log_level)
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    logger.info("starting chat relay", extra={"app_env": settings.app_env})

    # The conversation store lives exactly as long as this container: one process run.
    app.state.settings = settings
    app.state.container = build_container(settings)

    try:
        yield
    finally:
        logger.info("chat relay shutdown complete; in-memory conversations discarded")


app = FastAPI(
    title="Kai Chat Relay",
    version="0.1.0",
    docs_url="/docs" if settings.enable_swagger else None,
    redoc_url="/redoc" if settings.enable_swagger else None,
    openapi_url="/openapi.json" if settings.enable_swagger else None,
    lifespan=lifespan,
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_allow_origins,
    allow_methods=["*"],
    allow_headers=["*"],
)
app.include_router(health_router)
app.include_router(api_router, prefix="/api")
