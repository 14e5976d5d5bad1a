"""
Ollama-compatible API endpoints backed by an OpenAI-compatible upstream.

Provides /api/chat, /api/generate, /api/tags and the small static endpoints
Ollama clients probe (/api/show, /api/ps, /api/version, /).
"""

import json
import logging
from typing import Any, AsyncIterator, Dict, Union

from fastapi import APIRouter, Depends, Request
from fastapi.responses import JSONResponse, PlainTextResponse, StreamingResponse

from .catalog import ModelCatalog
from .config import config
from .metadata import describe_model
from .models import (
    LocalChatRequest,
    LocalGenerateRequest,
    ProcessListResponse,
    ShowRequest,
    ShowResponse,
    TagsResponse,
    Variant,
    VersionResponse,
    parse_lenient,
)
from .stream import StreamReframer, to_ndjson
from .translator import is_streaming, to_local, to_upstream
from .upstream_client import UpstreamClient, UpstreamError, UpstreamStream

logger = logging.getLogger(__name__)

router = APIRouter()

OLLAMA_VERSION = "0.1.88"
LIVENESS_TEXT = "Ollama is running"
NDJSON_MEDIA_TYPE = "application/x-ndjson"


# =============================================================================
# Dependencies
# =============================================================================

def get_upstream(request: Request) -> UpstreamClient:
    return request.app.state.upstream


def get_catalog(request: Request) -> ModelCatalog:
    return request.app.state.catalog


async def _read_body(request: Request) -> Dict[str, Any]:
    """Request JSON body, or {} when it is missing or not an object."""
    try:
        body = await request.json()
    except ValueError:
        logger.warning(f"Ignoring unparseable body on {request.url.path}")
        return {}
    return body if isinstance(body, dict) else {}


# =============================================================================
# Chat / Generate
# =============================================================================

@router.post("/api/chat")
async def chat(request: Request, upstream: UpstreamClient = Depends(get_upstream)):
    """Ollama chat, streamed as NDJSON unless `stream` is false."""
    body = await _read_body(request)
    if logger.isEnabledFor(logging.DEBUG):
        logger.debug(f"Raw chat request: {json.dumps(body)}")
    return await _proxy(parse_lenient(LocalChatRequest, body), Variant.CHAT, upstream)


@router.post("/api/generate")
async def generate(request: Request, upstream: UpstreamClient = Depends(get_upstream)):
    """Ollama generate, sent upstream as a chat completion."""
    body = await _read_body(request)
    if logger.isEnabledFor(logging.DEBUG):
        logger.debug(f"Raw generate request: {json.dumps(body)}")
    return await _proxy(parse_lenient(LocalGenerateRequest, body), Variant.GENERATE, upstream)


async def _proxy(
    local_request: Union[LocalChatRequest, LocalGenerateRequest],
    variant: Variant,
    upstream: UpstreamClient,
):
    stream = is_streaming(local_request)
    upstream_request = to_upstream(
        local_request,
        variant,
        stream=stream,
        default_model=config.default_model,
    )
    model = upstream_request.model
    payload = upstream_request.model_dump()

    logger.info(f"{variant.value.capitalize()} request: model={model}, "
                f"messages={len(upstream_request.messages)}, stream={stream}")
    if logger.isEnabledFor(logging.DEBUG):
        logger.debug(f"Converted to OpenAI format: {json.dumps(payload)}")

    try:
        if not stream:
            completion = await upstream.chat(payload)
            response = to_local(completion, model, variant)
            logger.info(f"Response sent for model: {model}")
            return response

        upstream_stream = await upstream.open_chat_stream(payload)
    except UpstreamError as e:
        logger.error(f"{variant.value.capitalize()} error ({e.status_code}): {e.message}")
        return JSONResponse(status_code=e.status_code, content={"error": e.message})

    return StreamingResponse(
        _relay_stream(upstream_stream, StreamReframer(model, variant)),
        media_type=NDJSON_MEDIA_TYPE,
    )


async def _relay_stream(
    upstream_stream: UpstreamStream,
    reframer: StreamReframer,
) -> AsyncIterator[str]:
    """
    Relay upstream SSE as Ollama NDJSON.

    Headers are already sent once this runs, so a mid-stream upstream failure
    becomes a final `{"error": ...}` line. The upstream response is closed on
    every exit path, including client disconnect.
    """
    try:
        async for line in reframer.reframe(upstream_stream.iter_text()):
            yield line
    except UpstreamError as e:
        logger.error(f"Stream error for {reframer.model}: {e.message}")
        yield to_ndjson({"error": e.message})
    finally:
        await upstream_stream.aclose()
        if reframer.terminated:
            logger.info(f"Response sent for model: {reframer.model} ({reframer.token_count} chunks)")
        else:
            logger.info(f"Stream for {reframer.model} closed before completion")


# =============================================================================
# Models
# =============================================================================

@router.get("/api/tags", response_model=TagsResponse)
async def list_models(catalog: ModelCatalog = Depends(get_catalog)):
    """List upstream models with synthesized Ollama metadata."""
    models = await catalog.list_models()
    logger.info(f"Returning {len(models.models)} models")
    return models


@router.post("/api/show", response_model=ShowResponse)
async def show_model(request: Request):
    """Static model descriptor; upstream is not consulted."""
    show = parse_lenient(ShowRequest, await _read_body(request))
    logger.info(f"Show request for model: {show.model}")
    return describe_model(show.model)


@router.get("/api/ps", response_model=ProcessListResponse)
async def running_models():
    """Loaded models are not tracked; always empty."""
    return ProcessListResponse()


@router.get("/api/version", response_model=VersionResponse)
async def version():
    return VersionResponse(version=OLLAMA_VERSION)


@router.api_route("/", methods=["GET", "HEAD"], response_class=PlainTextResponse)
@router.api_route("/api", methods=["GET", "HEAD"], response_class=PlainTextResponse)
async def liveness():
    return LIVENESS_TEXT
