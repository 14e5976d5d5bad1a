"""
Request and response translation between the Ollama and OpenAI wire formats.

Requests:  Ollama chat/generate body  -> OpenAI chat completion request
Responses: OpenAI chat completion     -> Ollama chat/generate response
"""

from typing import Any, Dict, List, Union

from .metadata import placeholder_timings, utc_timestamp
from .models import (
    ChatMessage,
    LocalChatRequest,
    LocalGenerateRequest,
    UpstreamChatRequest,
    Variant,
)
from .upstream_client import UpstreamError

DEFAULT_TEMPERATURE = 0.7
DEFAULT_MAX_TOKENS = 2048

LocalRequest = Union[LocalChatRequest, LocalGenerateRequest]


# =============================================================================
# Ollama -> OpenAI
# =============================================================================

def is_streaming(request: LocalRequest) -> bool:
    """Ollama streams unless `stream` is explicitly false."""
    return request.stream is not False


def _chat_messages(request: LocalChatRequest) -> List[ChatMessage]:
    if request.messages is not None:
        return list(request.messages)
    return [ChatMessage(role="user", content=request.prompt or "")]


def _generate_messages(request: LocalGenerateRequest) -> List[ChatMessage]:
    messages = []
    if request.system:
        messages.append(ChatMessage(role="system", content=request.system))
    if request.prompt:
        messages.append(ChatMessage(role="user", content=request.prompt))
    return messages


def to_upstream(
    request: LocalRequest,
    variant: Variant,
    *,
    stream: bool,
    default_model: str,
) -> UpstreamChatRequest:
    """
    Build the OpenAI chat completion request for an Ollama request.

    Missing fields fall back to defaults: the configured model, temperature
    0.7 and 2048 max tokens. `num_predict` values below 1 (Ollama uses -1 for
    "unlimited") are treated as unset.
    """
    if variant == Variant.GENERATE:
        messages = _generate_messages(request)
    else:
        messages = _chat_messages(request)

    options = request.options
    temperature = options.temperature if options.temperature is not None else DEFAULT_TEMPERATURE
    max_tokens = options.num_predict if options.num_predict and options.num_predict > 0 else DEFAULT_MAX_TOKENS

    return UpstreamChatRequest(
        model=request.model or default_model,
        messages=messages,
        stream=stream,
        temperature=temperature,
        max_tokens=max_tokens,
    )


# =============================================================================
# OpenAI -> Ollama
# =============================================================================

def build_chunk(
    model: str,
    variant: Variant,
    content: str,
    role: str = "assistant",
) -> Dict[str, Any]:
    """Non-terminal Ollama chunk. Carries no timing or eval fields."""
    chunk: Dict[str, Any] = {"model": model, "created_at": utc_timestamp()}
    if variant == Variant.GENERATE:
        chunk["response"] = content
    else:
        chunk["message"] = {"role": role, "content": content}
    chunk["done"] = False
    return chunk


def build_final_chunk(
    model: str,
    variant: Variant,
    content: str,
    prompt_eval_count: int,
    eval_count: int,
    role: str = "assistant",
) -> Dict[str, Any]:
    """Terminal Ollama chunk with every timing and eval field present."""
    chunk = build_chunk(model, variant, content, role)
    chunk["done"] = True
    chunk["done_reason"] = "stop"
    if variant == Variant.GENERATE:
        chunk["context"] = []

    timings = placeholder_timings()
    chunk.update(
        total_duration=timings["total_duration"],
        load_duration=timings["load_duration"],
        prompt_eval_count=max(int(prompt_eval_count), 0),
        prompt_eval_duration=timings["prompt_eval_duration"],
        eval_count=max(int(eval_count), 0),
        eval_duration=timings["eval_duration"],
    )
    return chunk


def _usage_count(usage: Any, key: str) -> int:
    if not isinstance(usage, dict):
        return 0
    value = usage.get(key)
    return value if isinstance(value, int) else 0


def to_local(upstream_response: Dict[str, Any], model: str, variant: Variant) -> Dict[str, Any]:
    """Convert a complete OpenAI chat completion into a final Ollama response."""
    if not isinstance(upstream_response, dict):
        raise UpstreamError(502, "Upstream response was not a JSON object")

    choices = upstream_response.get("choices") or []
    if not isinstance(choices, list) or not choices:
        raise UpstreamError(502, "Upstream response contained no choices")

    choice = choices[0]
    message = (choice.get("message") or {}) if isinstance(choice, dict) else None
    if not isinstance(message, dict):
        raise UpstreamError(502, "Upstream response contained a malformed choice")
    usage = upstream_response.get("usage")

    return build_final_chunk(
        model,
        variant,
        content=message.get("content") or "",
        prompt_eval_count=_usage_count(usage, "prompt_tokens"),
        eval_count=_usage_count(usage, "completion_tokens"),
        role=message.get("role") or "assistant",
    )
