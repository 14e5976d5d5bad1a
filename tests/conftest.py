from __future__ import annotations

import os
from collections.abc import Generator
from typing import Any, Dict, List, Optional

import pytest
from fastapi.testclient import TestClient

os.environ.setdefault("OPENAI_API_KEY", "test-key")

from ollama_proxy import main
from ollama_proxy.api import get_catalog, get_upstream
from ollama_proxy.catalog import ModelCatalog
from ollama_proxy.config import config
from ollama_proxy.upstream_client import UpstreamError

TIMING_FIELDS = (
    "done_reason",
    "total_duration",
    "load_duration",
    "prompt_eval_count",
    "prompt_eval_duration",
    "eval_count",
    "eval_duration",
)


def sse(*payloads: str) -> str:
    """Join payloads into OpenAI-style SSE text."""
    return "".join(f"data: {p}\n\n" for p in payloads)


def delta(content: str) -> str:
    return '{"choices":[{"index":0,"delta":{"content":"%s"}}]}' % content


class FakeStream:
    def __init__(self, chunks: List[str], error: Optional[UpstreamError] = None) -> None:
        self.chunks = chunks
        self.error = error
        self.closed = False

    async def iter_text(self):
        for chunk in self.chunks:
            yield chunk
        if self.error is not None:
            raise self.error

    async def aclose(self) -> None:
        self.closed = True


class FakeUpstream:
    def __init__(self) -> None:
        self.payloads: List[Dict[str, Any]] = []
        self.error: Optional[UpstreamError] = None
        self.completion: Dict[str, Any] = {
            "choices": [{"index": 0, "message": {"role": "assistant", "content": "Hello there"}}],
            "usage": {"prompt_tokens": 12, "completion_tokens": 3},
        }
        self.stream_chunks: List[str] = [sse(delta("Hel"), delta("lo"), "[DONE]")]
        self.stream_error: Optional[UpstreamError] = None
        self.streams: List[FakeStream] = []
        self.models: List[Dict[str, Any]] = [
            {"id": "gpt-4", "object": "model", "created": 1687882411},
            {"id": "my-custom-model", "object": "model", "created": 1700000000},
        ]
        self.model_calls = 0

    async def chat(self, payload: Dict[str, Any]) -> Dict[str, Any]:
        self.payloads.append(payload)
        if self.error is not None:
            raise self.error
        return self.completion

    async def open_chat_stream(self, payload: Dict[str, Any]) -> FakeStream:
        self.payloads.append(payload)
        if self.error is not None:
            raise self.error
        stream = FakeStream(list(self.stream_chunks), self.stream_error)
        self.streams.append(stream)
        return stream

    async def list_models(self) -> List[Dict[str, Any]]:
        self.model_calls += 1
        if self.error is not None:
            raise self.error
        return self.models


@pytest.fixture()
def fake_upstream() -> FakeUpstream:
    return FakeUpstream()


@pytest.fixture()
def client(fake_upstream: FakeUpstream) -> Generator[TestClient, None, None]:
    catalog = ModelCatalog(fake_upstream.list_models, default_model=config.default_model)
    main.app.dependency_overrides[get_upstream] = lambda: fake_upstream
    main.app.dependency_overrides[get_catalog] = lambda: catalog
    with TestClient(main.app) as http_client:
        yield http_client
    main.app.dependency_overrides.clear()
