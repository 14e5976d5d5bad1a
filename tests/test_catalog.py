from __future__ import annotations

import asyncio
from typing import Any, Dict, List

import pytest

from ollama_proxy.catalog import ModelCatalog
from ollama_proxy.metadata import FALLBACK_DIGEST
from ollama_proxy.upstream_client import UpstreamError

from .conftest import FakeUpstream


class FakeClock:
    def __init__(self) -> None:
        self.now = 1000.0

    def __call__(self) -> float:
        return self.now


@pytest.fixture()
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture()
def catalog(fake_upstream: FakeUpstream, clock: FakeClock) -> ModelCatalog:
    return ModelCatalog(fake_upstream.list_models, default_model="fallback-model", ttl=300, clock=clock)


@pytest.mark.asyncio
async def test_entries_built_from_upstream(catalog: ModelCatalog) -> None:
    listing = await catalog.list_models()
    names = [m.name for m in listing.models]
    assert names == ["gpt-4", "my-custom-model"]

    gpt4 = listing.models[0]
    assert gpt4.model == gpt4.name
    assert gpt4.size == 8500000000
    assert gpt4.details.parameter_size == "175B"
    assert gpt4.details.quantization_level == "Q4_K_M"
    assert gpt4.details.format == "gguf"
    assert gpt4.details.families == ["llama"]
    assert len(gpt4.digest) == 64

    custom = listing.models[1]
    assert custom.modified_at == "2023-11-14T22:13:20.000Z"
    assert custom.digest != gpt4.digest


@pytest.mark.asyncio
async def test_cache_respects_ttl(catalog: ModelCatalog, fake_upstream: FakeUpstream, clock: FakeClock) -> None:
    first = await catalog.list_models()
    clock.now += 299
    second = await catalog.list_models()

    assert fake_upstream.model_calls == 1
    assert second.model_dump_json() == first.model_dump_json()

    clock.now += 2
    third = await catalog.list_models()
    assert fake_upstream.model_calls == 2
    assert [m.name for m in third.models] == [m.name for m in first.models]
    assert third.models[0].digest != first.models[0].digest


@pytest.mark.asyncio
async def test_stale_cache_served_when_upstream_fails(
    catalog: ModelCatalog, fake_upstream: FakeUpstream, clock: FakeClock
) -> None:
    first = await catalog.list_models()
    fetched_at = catalog.cache.fetched_at

    clock.now += 600
    fake_upstream.error = UpstreamError(503, "unavailable")
    stale = await catalog.list_models()

    assert stale.model_dump_json() == first.model_dump_json()
    assert catalog.cache.fetched_at == fetched_at

    # Still expired, so the next call retries upstream
    await catalog.list_models()
    assert fake_upstream.model_calls == 3


@pytest.mark.asyncio
async def test_default_entry_when_nothing_cached(catalog: ModelCatalog, fake_upstream: FakeUpstream) -> None:
    fake_upstream.error = UpstreamError(500, "connection refused")
    listing = await catalog.list_models()

    assert len(listing.models) == 1
    entry = listing.models[0]
    assert entry.name == "fallback-model"
    assert entry.model == "fallback-model"
    assert entry.digest == FALLBACK_DIGEST
    assert entry.modified_at.endswith("Z")
    assert catalog.cache is None


@pytest.mark.asyncio
async def test_malformed_upstream_list_falls_back(catalog: ModelCatalog, fake_upstream: FakeUpstream) -> None:
    fake_upstream.models = None  # type: ignore[assignment]
    listing = await catalog.list_models()
    assert [m.name for m in listing.models] == ["fallback-model"]


@pytest.mark.asyncio
async def test_empty_upstream_list_is_cached(catalog: ModelCatalog, fake_upstream: FakeUpstream) -> None:
    fake_upstream.models = []
    assert (await catalog.list_models()).models == []
    assert catalog.cache is not None
    assert (await catalog.list_models()).models == []
    assert fake_upstream.model_calls == 1


@pytest.mark.asyncio
async def test_concurrent_misses_share_one_fetch() -> None:
    calls = 0
    release = asyncio.Event()

    async def slow_fetch() -> List[Dict[str, Any]]:
        nonlocal calls
        calls += 1
        await release.wait()
        return [{"id": "gpt-4o", "created": 0}]

    catalog = ModelCatalog(slow_fetch, default_model="d")
    waiters = [asyncio.create_task(catalog.list_models()) for _ in range(5)]
    await asyncio.sleep(0)
    release.set()
    results = await asyncio.gather(*waiters)

    assert calls == 1
    assert all(r.model_dump_json() == results[0].model_dump_json() for r in results)


@pytest.mark.asyncio
async def test_cancelled_caller_does_not_cancel_shared_fetch() -> None:
    release = asyncio.Event()

    async def slow_fetch() -> List[Dict[str, Any]]:
        await release.wait()
        return [{"id": "gpt-4o", "created": 0}]

    catalog = ModelCatalog(slow_fetch, default_model="d")
    impatient = asyncio.create_task(catalog.list_models())
    patient = asyncio.create_task(catalog.list_models())
    await asyncio.sleep(0)

    impatient.cancel()
    release.set()
    listing = await patient

    assert impatient.cancelled()
    assert [m.name for m in listing.models] == ["gpt-4o"]
    assert catalog.cache is not None
