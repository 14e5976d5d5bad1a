"""Model catalog: upstream model list in Ollama /api/tags shape, cached."""

import asyncio
import logging
import time
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any, Awaitable, Callable, Dict, List, Optional

from .metadata import FALLBACK_DIGEST, model_details, random_digest, synthesize, utc_timestamp
from .models import ModelEntry, TagsResponse

logger = logging.getLogger(__name__)

DEFAULT_TTL = 5 * 60

ModelFetcher = Callable[[], Awaitable[List[Dict[str, Any]]]]


@dataclass(frozen=True)
class CatalogCache:
    """A complete model listing and when it was fetched (monotonic clock)."""
    entries: List[ModelEntry]
    fetched_at: float


def _modified_at(created: Any) -> str:
    if isinstance(created, (int, float)) and not isinstance(created, bool):
        try:
            return utc_timestamp(datetime.fromtimestamp(created, tz=timezone.utc))
        except (OverflowError, OSError, ValueError):
            pass
    return utc_timestamp()


def build_entry(model_id: str, digest: str, modified_at: str) -> ModelEntry:
    """Ollama model entry for an upstream model id."""
    metadata = synthesize(model_id)
    return ModelEntry(
        name=model_id,
        model=model_id,
        modified_at=modified_at,
        size=metadata.size,
        digest=digest,
        details=model_details(metadata),
    )


class ModelCatalog:
    """
    Serves the upstream model list as Ollama model entries.

    Policy:
    - A cache younger than `ttl` seconds is returned unchanged
    - Otherwise upstream is asked and the cache replaced wholesale
    - If upstream fails, any previous cache is served (even if expired)
    - With no cache at all, a single entry for the default model is served

    Concurrent callers that miss the cache share one in-flight refresh.
    """

    def __init__(
        self,
        fetch_models: ModelFetcher,
        default_model: str,
        ttl: float = DEFAULT_TTL,
        clock: Callable[[], float] = time.monotonic,
    ):
        self._fetch_models = fetch_models
        self.default_model = default_model
        self.ttl = ttl
        self._clock = clock
        self._cache: Optional[CatalogCache] = None
        self._refresh_task: Optional[asyncio.Task] = None

    @property
    def cache(self) -> Optional[CatalogCache]:
        return self._cache

    def _is_fresh(self, cache: CatalogCache) -> bool:
        return self._clock() - cache.fetched_at < self.ttl

    async def list_models(self) -> TagsResponse:
        """Return the model listing. Never raises."""
        cache = self._cache
        if cache is not None and self._is_fresh(cache):
            return TagsResponse(models=cache.entries)

        if self._refresh_task is None:
            self._refresh_task = asyncio.create_task(self._refresh())
        else:
            logger.debug("Joining in-flight model list refresh")

        # Shielded so one cancelled caller does not cancel everyone's fetch
        return await asyncio.shield(self._refresh_task)

    async def _refresh(self) -> TagsResponse:
        try:
            try:
                upstream_models = await self._fetch_models()
                entries = [
                    build_entry(
                        str(m.get("id", "unknown")),
                        digest=random_digest(),
                        modified_at=_modified_at(m.get("created")),
                    )
                    for m in upstream_models
                    if isinstance(m, dict)
                ]
            except Exception as e:
                logger.error(f"Failed to fetch models from upstream API: {e}")
                return self._fallback()

            self._cache = CatalogCache(entries=entries, fetched_at=self._clock())
            logger.info(f"Fetched {len(entries)} models from upstream API")
            return TagsResponse(models=entries)
        finally:
            self._refresh_task = None

    def _fallback(self) -> TagsResponse:
        if self._cache is not None:
            logger.info("Using cached model list")
            return TagsResponse(models=self._cache.entries)

        logger.warning(f"No cached model list, serving default model {self.default_model}")
        entry = build_entry(self.default_model, digest=FALLBACK_DIGEST, modified_at=utc_timestamp())
        return TagsResponse(models=[entry])
