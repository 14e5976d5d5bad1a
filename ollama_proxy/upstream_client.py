"""OpenAI-compatible upstream API client."""

import logging
from typing import Any, AsyncIterator, Dict, List

import httpx

from .config import Config

logger = logging.getLogger(__name__)


class UpstreamError(RuntimeError):
    """Raised when the upstream API fails; carries the status to relay."""

    def __init__(self, status_code: int, message: str):
        super().__init__(message)
        self.status_code = status_code
        self.message = message


def _error_message(response: httpx.Response) -> str:
    """Pull `error.message` out of an OpenAI error body, else the raw text."""
    try:
        body = response.json()
    except ValueError:
        return response.text or f"Upstream returned HTTP {response.status_code}"

    error = body.get("error") if isinstance(body, dict) else None
    if isinstance(error, dict) and error.get("message"):
        return error["message"]
    if isinstance(error, str) and error:
        return error
    return response.text


class UpstreamStream:
    """
    An open streaming response from /chat/completions.

    The caller owns it and must call `aclose()` once done, including when
    the local client disconnects halfway.
    """

    def __init__(self, response: httpx.Response):
        self.response = response

    async def iter_text(self) -> AsyncIterator[str]:
        """Yield raw decoded text chunks as they arrive."""
        try:
            async for text in self.response.aiter_text():
                yield text
        except httpx.HTTPError as e:
            logger.error(f"Upstream stream error: {e}")
            raise UpstreamError(500, str(e) or e.__class__.__name__) from e

    async def aclose(self):
        await self.response.aclose()


class UpstreamClient:
    """
    Async client for the OpenAI-compatible API.

    Handles:
    - Model listing (GET /models)
    - Chat completions, complete and streamed (POST /chat/completions)
    - Normalising failures into UpstreamError
    """

    def __init__(self, config: Config):
        self.base_url = config.openai_api_url
        self.client = httpx.AsyncClient(
            timeout=httpx.Timeout(config.upstream_timeout, connect=config.upstream_connect_timeout),
            headers={
                "Authorization": f"Bearer {config.openai_api_key}",
                "Content-Type": "application/json",
            },
        )

    async def close(self):
        """Close HTTP client."""
        await self.client.aclose()

    async def list_models(self) -> List[Dict[str, Any]]:
        """List available models (the `data` array of GET /models)."""
        logger.info("Fetching model list from upstream API...")
        try:
            resp = await self.client.get(f"{self.base_url}/models")
        except httpx.HTTPError as e:
            raise UpstreamError(500, str(e) or e.__class__.__name__) from e

        if resp.is_error:
            raise UpstreamError(resp.status_code, _error_message(resp))

        try:
            data = resp.json().get("data", [])
        except (ValueError, AttributeError) as e:
            raise UpstreamError(502, f"Malformed model list: {e}") from e
        return data

    async def chat(self, payload: Dict[str, Any]) -> Dict[str, Any]:
        """Non-streaming chat completion."""
        try:
            resp = await self.client.post(f"{self.base_url}/chat/completions", json=payload)
        except httpx.HTTPError as e:
            logger.error(f"Upstream chat request failed: {e}")
            raise UpstreamError(500, str(e) or e.__class__.__name__) from e

        if resp.is_error:
            message = _error_message(resp)
            logger.error(f"Upstream HTTP error {resp.status_code}: {message}")
            raise UpstreamError(resp.status_code, message)

        try:
            return resp.json()
        except ValueError as e:
            raise UpstreamError(502, f"Malformed chat completion: {e}") from e

    async def open_chat_stream(self, payload: Dict[str, Any]) -> UpstreamStream:
        """
        Start a streaming chat completion.

        Waits only for the response headers so HTTP errors can still be
        relayed with their status code before any body is sent.
        """
        request = self.client.build_request("POST", f"{self.base_url}/chat/completions", json=payload)
        try:
            resp = await self.client.send(request, stream=True)
        except httpx.HTTPError as e:
            logger.error(f"Upstream stream request failed: {e}")
            raise UpstreamError(500, str(e) or e.__class__.__name__) from e

        if resp.is_error:
            try:
                await resp.aread()
            except httpx.HTTPError as e:
                raise UpstreamError(resp.status_code, str(e) or e.__class__.__name__) from e
            finally:
                await resp.aclose()
            message = _error_message(resp)
            logger.error(f"Upstream HTTP error {resp.status_code}: {message}")
            raise UpstreamError(resp.status_code, message)

        return UpstreamStream(resp)
