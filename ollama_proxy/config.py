"""Proxy configuration."""

import os
from dataclasses import dataclass, field

from dotenv import load_dotenv

load_dotenv()


def _env_flag(name: str) -> bool:
    return os.getenv(name, "").strip().lower() in ("1", "true", "yes", "on")


@dataclass
class Config:
    """Configuration loaded from environment variables."""

    # Server
    host: str = field(default_factory=lambda: os.getenv("HOST", "0.0.0.0"))
    port: int = field(default_factory=lambda: int(os.getenv("PORT", "17924")))
    debug: bool = field(default_factory=lambda: _env_flag("DEBUG"))

    # Upstream (OpenAI-compatible)
    openai_api_url: str = field(default_factory=lambda:
        os.getenv("OPENAI_API_URL", "https://api.openai.com/v1").rstrip("/"))
    openai_api_key: str = field(default_factory=lambda: os.getenv("OPENAI_API_KEY", ""))
    default_model: str = field(default_factory=lambda: os.getenv("DEFAULT_MODEL", "gpt-3.5-turbo"))
    upstream_timeout: float = field(default_factory=lambda: float(os.getenv("UPSTREAM_TIMEOUT", "300")))
    upstream_connect_timeout: float = field(default_factory=lambda:
        float(os.getenv("UPSTREAM_CONNECT_TIMEOUT", "10")))

    # Model catalog
    models_cache_ttl: float = field(default_factory=lambda: float(os.getenv("MODELS_CACHE_TTL", "300")))

    @property
    def listen_url(self) -> str:
        """Local URL clients should point their Ollama host at."""
        return f"http://{self.host}:{self.port}"


# Global config instance
config = Config()
