"""
Synthesized metadata for fields the OpenAI API never reports.

Ollama clients expect model sizes, quantization levels, digests and timing
counters. None of these exist upstream, so everything here is a plausible
placeholder. Values are only guaranteed to be present and well-typed.
"""

import random
import secrets
import struct
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Dict, Optional

from .models import ModelDetails, ShowResponse

DEFAULT_QUANTIZATION = "Q4_K_M"

# Digest used for the catalog entry served when upstream has never answered
FALLBACK_DIGEST = "fallback123456789abcdef"


@dataclass(frozen=True)
class ModelMetadata:
    """Size in bytes, parameter label and quantization level of a model."""
    size: int
    param: str
    quant: str = DEFAULT_QUANTIZATION


KNOWN_MODELS: Dict[str, ModelMetadata] = {
    "gpt-4": ModelMetadata(8500000000, "175B"),
    "gpt-4-turbo": ModelMetadata(7200000000, "175B"),
    "gpt-3.5-turbo": ModelMetadata(4200000000, "20B"),
    "gpt-4o": ModelMetadata(6800000000, "175B"),
    "gpt-4o-mini": ModelMetadata(2100000000, "8B"),
    "claude": ModelMetadata(5500000000, "70B"),
    "gemini": ModelMetadata(4800000000, "30B"),
}

# Smallest to largest
SIZE_BUCKETS = (
    ModelMetadata(2100000000, "8B"),
    ModelMetadata(4200000000, "20B"),
    ModelMetadata(6800000000, "70B"),
    ModelMetadata(8500000000, "175B"),
)

# Placeholder duration ranges in nanoseconds, [low, high)
TOTAL_DURATION_RANGE = (500_000_000, 1_500_000_000)
LOAD_DURATION_RANGE = (1_000_000, 11_000_000)
PROMPT_EVAL_DURATION_RANGE = (50_000_000, 150_000_000)
EVAL_DURATION_RANGE = (200_000_000, 700_000_000)


def _string_hash(value: str) -> int:
    """31-based rolling hash over UTF-16 code units, wrapped to signed 32 bits."""
    encoded = value.encode("utf-16-le")
    h = 0
    for code in struct.unpack(f"<{len(encoded) // 2}H", encoded):
        h = (h * 31 + code) & 0xFFFFFFFF
    return h - 0x100000000 if h & 0x80000000 else h


def synthesize(model_id: str) -> ModelMetadata:
    """
    Map a model identifier to a (size, parameter size, quantization) triple.

    Well-known identifiers come from KNOWN_MODELS. Anything else is hashed
    into one of the four SIZE_BUCKETS, so the same id always gets the same
    answer.
    """
    known = KNOWN_MODELS.get(model_id)
    if known is not None:
        return known
    return SIZE_BUCKETS[abs(_string_hash(model_id)) % len(SIZE_BUCKETS)]


def model_details(metadata: ModelMetadata) -> ModelDetails:
    return ModelDetails(
        parameter_size=metadata.param,
        quantization_level=metadata.quant,
    )


def random_digest() -> str:
    """Opaque token shaped like a sha256 hex digest. Not verifiable."""
    return secrets.token_hex(32)


def placeholder_timings() -> Dict[str, int]:
    """
    Synthesize the duration fields of a terminal Ollama chunk.

    These are not measurements. Strict clients refuse to parse a final chunk
    without them, so each is drawn from its *_RANGE constant above.
    """
    return {
        "total_duration": random.randrange(*TOTAL_DURATION_RANGE),
        "load_duration": random.randrange(*LOAD_DURATION_RANGE),
        "prompt_eval_duration": random.randrange(*PROMPT_EVAL_DURATION_RANGE),
        "eval_duration": random.randrange(*EVAL_DURATION_RANGE),
    }


def utc_timestamp(when: Optional[datetime] = None) -> str:
    """ISO-8601 UTC timestamp with millisecond precision and a trailing Z."""
    when = when or datetime.now(timezone.utc)
    return when.astimezone(timezone.utc).isoformat(timespec="milliseconds").replace("+00:00", "Z")


def describe_model(model: str) -> ShowResponse:
    """Static /api/show descriptor built from the model name alone."""
    return ShowResponse(
        modelfile=f"# Modelfile for {model}\nFROM {model}",
        parameters="temperature 0.7\nnum_ctx 4096",
        template="{{ .System }}{{ .Prompt }}",
        details=ModelDetails(
            family="gpt",
            families=["gpt"],
            parameter_size="unknown",
            quantization_level="unknown",
        ),
    )
