"""
OpenAI to Ollama Proxy

Ollama-compatible API layer in front of an OpenAI-compatible
chat completions service.

Components:
- metadata: Synthesized model sizes, digests and timing placeholders
- catalog: Cached model listing with fallback and single-flight refresh
- translator: Ollama <-> OpenAI request/response conversion
- stream: OpenAI SSE -> Ollama NDJSON re-framing
- upstream_client: OpenAI API client
- api: Ollama-compatible endpoints
"""

from .main import app

__version__ = "0.1.0"
