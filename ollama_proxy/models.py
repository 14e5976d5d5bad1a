"""Data models for the Ollama <-> OpenAI proxy."""

import copy
import logging
from enum import Enum
from typing import Any, List, Optional, Tuple, Type, TypeVar

from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator

logger = logging.getLogger(__name__)

M = TypeVar("M", bound=BaseModel)


class Variant(str, Enum):
    """Which local-protocol endpoint a request or response belongs to."""
    CHAT = "chat"
    GENERATE = "generate"


# ============================================================================
# Shared
# ============================================================================

class ChatMessage(BaseModel):
    """A single conversation turn (system, user or assistant)."""
    model_config = ConfigDict(frozen=True)

    role: str
    content: str = ""

    @field_validator("content", mode="before")
    @classmethod
    def _flatten_content(cls, value: Any) -> Any:
        """None becomes "", a list of OpenAI-style text parts is joined."""
        if value is None:
            return ""
        if isinstance(value, list) and all(isinstance(part, dict) for part in value):
            return "".join(
                part["text"] for part in value
                if part.get("type") == "text" and isinstance(part.get("text"), str)
            )
        return value


# ============================================================================
# Ollama (local protocol) request models
# ============================================================================

class ModelOptions(BaseModel):
    """Subset of Ollama `options` that maps onto the upstream request."""
    temperature: Optional[float] = None
    num_predict: Optional[int] = None


class LocalChatRequest(BaseModel):
    """Ollama /api/chat request."""
    model: Optional[str] = None
    messages: Optional[List[ChatMessage]] = None
    prompt: Optional[str] = None
    stream: Optional[bool] = None
    options: ModelOptions = Field(default_factory=ModelOptions)


class LocalGenerateRequest(BaseModel):
    """Ollama /api/generate request."""
    model: Optional[str] = None
    prompt: Optional[str] = None
    system: Optional[str] = None
    stream: Optional[bool] = None
    options: ModelOptions = Field(default_factory=ModelOptions)


class ShowRequest(BaseModel):
    """Ollama /api/show request."""
    model: str = ""


# ============================================================================
# OpenAI (upstream protocol) request models
# ============================================================================

class UpstreamChatRequest(BaseModel):
    """OpenAI chat completion request. Generate calls are sent as chat too."""
    model: str
    messages: List[ChatMessage]
    stream: bool = False
    temperature: float = 0.7
    max_tokens: int = 2048


# ============================================================================
# Ollama (local protocol) response models
# ============================================================================

class ModelDetails(BaseModel):
    """`details` block of an Ollama model listing."""
    parent_model: str = ""
    format: str = "gguf"
    family: str = "llama"
    families: List[str] = Field(default_factory=lambda: ["llama"])
    parameter_size: str
    quantization_level: str


class ModelEntry(BaseModel):
    """One model in the Ollama /api/tags listing."""
    name: str
    model: str
    modified_at: str
    size: int
    digest: str
    details: ModelDetails


class TagsResponse(BaseModel):
    """Ollama /api/tags response."""
    models: List[ModelEntry]


class ShowResponse(BaseModel):
    """Ollama /api/show response."""
    modelfile: str
    parameters: str
    template: str
    details: ModelDetails


class ProcessListResponse(BaseModel):
    """Ollama /api/ps response. Loaded models are not tracked."""
    models: List[ModelEntry] = Field(default_factory=list)


class VersionResponse(BaseModel):
    """Ollama /api/version response."""
    version: str


def _prune(data: Any, loc: Tuple[Any, ...]) -> bool:
    """
    Remove the invalid value at `loc` from `data` in place.

    A bad list element is dropped whole, so one broken message does not take
    the rest of the conversation with it. A bad field inside an object is
    dropped on its own, so its siblings survive.
    """
    if not loc:
        return False
    key, rest = loc[0], loc[1:]

    if isinstance(data, list):
        if isinstance(key, int) and 0 <= key < len(data):
            del data[key]
            return True
        return False

    if isinstance(data, dict) and key in data:
        if rest and _prune(data[key], rest):
            return True
        del data[key]
        return True
    return False


def parse_lenient(model_cls: Type[M], body: Any) -> M:
    """
    Validate a raw request body, dropping values that fail validation.

    Ollama clients send loosely typed bodies. An invalid value is removed so
    the model default applies instead of rejecting the request.
    """
    data = copy.deepcopy(body) if isinstance(body, dict) else {}

    while True:
        try:
            return model_cls.model_validate(data)
        except ValidationError as e:
            # One removal per pass; list indices shift after a delete.
            for err in e.errors():
                loc = tuple(err["loc"])
                if _prune(data, loc):
                    break
            else:
                raise
            logger.warning(f"Ignoring invalid {model_cls.__name__} value at {'.'.join(map(str, loc))}")
