"""
OpenAI to Ollama Proxy - Main Entry Point

Ollama-compatible API server that forwards to an OpenAI-compatible
chat completions API. Ollama clients (CLIs, editors, chat UIs) see a
local Ollama instance; requests are answered by the upstream service.

Usage:
    python -m ollama_proxy.main

Environment Variables:
    HOST                      - Server host (default: 0.0.0.0)
    PORT                      - Server port (default: 17924)
    OPENAI_API_URL            - Upstream base URL (default: https://api.openai.com/v1)
    OPENAI_API_KEY            - Bearer token forwarded upstream
    DEFAULT_MODEL             - Model used when a request names none (default: gpt-3.5-turbo)
    UPSTREAM_TIMEOUT          - Upstream read timeout in seconds (default: 300)
    UPSTREAM_CONNECT_TIMEOUT  - Upstream connect timeout in seconds (default: 10)
    MODELS_CACHE_TTL          - Model list cache TTL in seconds (default: 300)
    DEBUG                     - Log translated payloads when set
"""

import logging
import sys
from contextlib import asynccontextmanager

import uvicorn
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from .api import router as api_router
from .catalog import ModelCatalog
from .config import config
from .upstream_client import UpstreamClient

# Configure logging
logging.basicConfig(
    level=logging.DEBUG if config.debug else logging.INFO,
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    handlers=[logging.StreamHandler(sys.stdout)],
)
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application startup and shutdown lifecycle."""

    # Startup
    upstream = UpstreamClient(config)
    app.state.upstream = upstream
    app.state.catalog = ModelCatalog(
        fetch_models=upstream.list_models,
        default_model=config.default_model,
        ttl=config.models_cache_ttl,
    )

    logger.info("=" * 60)
    logger.info(f"OpenAI to Ollama proxy server running on {config.listen_url}")
    logger.info(f"Proxying to: {config.openai_api_url}")
    logger.info(f"Default model: {config.default_model}")
    if not config.openai_api_key:
        logger.warning("OPENAI_API_KEY is not set - upstream calls will likely be rejected")
    logger.info("=" * 60)

    yield

    # Shutdown
    logger.info("Shutting down...")
    await upstream.close()
    logger.info("Shutdown complete")


# Create FastAPI app
app = FastAPI(
    title="OpenAI to Ollama Proxy",
    description=(
        "Ollama-compatible API (/api/chat, /api/generate, /api/tags) "
        "translated to and from an OpenAI-compatible chat completions API."
    ),
    version="0.1.0",
    lifespan=lifespan,
)

# Add CORS middleware
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# Mount routers
app.include_router(api_router)


def main():
    """Run the proxy server."""
    uvicorn.run(
        "ollama_proxy.main:app",
        host=config.host,
        port=config.port,
        reload=False,
        log_level="debug" if config.debug else "info",
    )


if __name__ == "__main__":
    main()
