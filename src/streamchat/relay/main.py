"""FastAPI application for the streamchat relay."""

import logging
import sys
from contextlib import asynccontextmanager

import uvicorn
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from .. import __version__
from .config import settings
from .logging_config import configure_logging
from .routers import chat_router

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan handler."""
    # Leave pytest's log capture alone.
    if "pytest" not in sys.modules:
        log_file = configure_logging(
            settings.log_dir,
            settings.log_max_bytes,
            settings.log_retention_days,
            settings.debug,
            settings.uvicorn_log_level,
        )
        logger.info("Logging to %s", log_file)
        if not settings.gemini_api_key:
            logger.warning("GEMINI_API_KEY is not set; /api/chat will return 500")
        logger.info("Relay ready (model=%s)", settings.gemini_model)

    yield

    if "pytest" not in sys.modules:
        logger.info("Shutting down...")


app = FastAPI(
    title="streamchat relay",
    description="Stateless relay streaming Gemini chat replies as plain text",
    version=__version__,
    lifespan=lifespan,
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

app.include_router(chat_router)


@app.get("/api/health")
async def root():
    """Basic service info."""
    return {
        "name": "streamchat relay",
        "version": __version__,
        "status": "running",
    }


@app.get("/health")
async def health():
    """Health check endpoint."""
    return {"status": "healthy"}


def main():
    """Run the relay server."""
    print(f"Starting streamchat relay on {settings.host}:{settings.port}")
    uvicorn.run(
        "streamchat.relay.main:app",
        host=settings.host,
        port=settings.port,
        reload=settings.debug,
    )


if __name__ == "__main__":
    main()
