"""
Float configuration — all environment variables in one place.

Read from environment at runtime. Never hardcode secrets.
"""

from __future__ import annotations

import os
import shlex


def _bool(name: str, default: str) -> bool:
    return os.environ.get(name, default).lower() in ("1", "true", "yes", "on")


class Settings:
    """Application settings from environment variables."""

    # Logging
    LOG_LEVEL: str = os.environ.get("FLOAT_LOG_LEVEL", "INFO")

    # Chroma MCP provider (spawned over stdio)
    CHROMA_ENABLED: bool = _bool("FLOAT_CHROMA_ENABLED", "true")
    CHROMA_COMMAND: str = os.environ.get("FLOAT_CHROMA_COMMAND", "uvx")
    CHROMA_ARGS: str = os.environ.get(
        "FLOAT_CHROMA_ARGS",
        "chroma-mcp --client-type persistent --data-dir ./chroma-data",
    )

    # Collections queried by the side-effect interceptors
    SEARCH_COLLECTION: str = os.environ.get("FLOAT_SEARCH_COLLECTION", "float_dispatch_bay")
    SEARCH_RESULTS: int = int(os.environ.get("FLOAT_SEARCH_RESULTS", "5"))
    BRIDGE_COLLECTION: str = os.environ.get("FLOAT_BRIDGE_COLLECTION", "float_continuity_anchors")
    BRIDGE_RESULTS: int = int(os.environ.get("FLOAT_BRIDGE_RESULTS", "10"))

    # Gateway
    GATEWAY_TIMEOUT_SEC: float = float(os.environ.get("FLOAT_GATEWAY_TIMEOUT_SEC", "30"))
    GATEWAY_CONNECT_TIMEOUT_SEC: float = float(os.environ.get("FLOAT_GATEWAY_CONNECT_TIMEOUT_SEC", "15"))

    # Rule compiler fallback (text completion)
    COMPLETION_PROVIDER: str = os.environ.get("FLOAT_COMPLETION_PROVIDER", "ollama").lower()
    COMPLETION_TIMEOUT_SEC: float = float(os.environ.get("FLOAT_COMPLETION_TIMEOUT_SEC", "60"))
    COMPLETION_MODEL: str = os.environ.get("FLOAT_COMPLETION_MODEL", "")
    OLLAMA_URL: str = os.environ.get("OLLAMA_URL", "http://localhost:11434")
    OLLAMA_MODEL: str = os.environ.get("OLLAMA_MODEL", "llama3.1")
    ANTHROPIC_API_KEY: str = os.environ.get("ANTHROPIC_API_KEY", "")
    ANTHROPIC_MODEL: str = os.environ.get("ANTHROPIC_MODEL", "claude-3-5-haiku-20241022")

    # Dispatch pipeline guards
    MAX_CASCADE_DEPTH: int = int(os.environ.get("FLOAT_MAX_CASCADE_DEPTH", "16"))
    MAX_CASCADE_STEPS: int = int(os.environ.get("FLOAT_MAX_CASCADE_STEPS", "256"))
    DIAGNOSTICS_LIMIT: int = int(os.environ.get("FLOAT_DIAGNOSTICS_LIMIT", "200"))

    @property
    def chroma_argv(self) -> list[str]:
        return shlex.split(self.CHROMA_ARGS)


# Singleton instance
settings = Settings()
