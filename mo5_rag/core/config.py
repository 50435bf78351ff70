"""
MO5 RAG Bridge Configuration
----------------------------
Centralized configuration for the MCP bridge and its backend client.
Loads from environment variables; every value can also be passed explicitly.
"""

import os
import math
import logging
from typing import Optional
from urllib.parse import urlparse

from pydantic import BaseModel, Field, field_validator

logger = logging.getLogger("Mo5Rag.Config")

DEFAULT_BASE_URL = "http://nas:8080"
DEFAULT_TIMEOUT_SEC = 30.0
DEFAULT_MAX_ATTEMPTS = 3
DEFAULT_BACKOFF_SEC = 1.0
DEFAULT_TOOL_RESPONSE_MAX_CHARS = 12000
SUPPORTED_LOG_LEVELS = ("DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL")


def _parse_float_env(name: str, default: float, *, minimum: float = 0.0) -> float:
    raw = os.environ.get(name)
    if raw is None or raw.strip() == "":
        return default
    try:
        value = float(raw)
    except ValueError:
        logger.warning("Invalid %s=%r; using default of %s.", name, raw, default)
        return default
    if not math.isfinite(value) or value < minimum:
        logger.warning("Out-of-range %s=%r; using default of %s.", name, raw, default)
        return default
    return value


def _parse_int_env(name: str, default: int, *, minimum: int = 1) -> int:
    raw = os.environ.get(name)
    if raw is None or raw.strip() == "":
        return default
    try:
        value = int(raw)
    except ValueError:
        logger.warning("Invalid %s=%r; using default of %d.", name, raw, default)
        return default
    if value < minimum:
        logger.warning("Out-of-range %s=%r; using default of %d.", name, raw, default)
        return default
    return value


def _normalize_log_level(level: Optional[str]) -> str:
    candidate = (level or "").strip().upper()
    if candidate in SUPPORTED_LOG_LEVELS:
        return candidate
    if candidate:
        logger.warning(
            "Unsupported log level '%s'; expected one of %s. Falling back to 'INFO'.",
            candidate,
            SUPPORTED_LOG_LEVELS,
        )
    return "INFO"


class BridgeConfig(BaseModel):
    """Root configuration for the MCP bridge."""
    base_url: str = DEFAULT_BASE_URL
    request_timeout_sec: float = Field(default=DEFAULT_TIMEOUT_SEC, gt=0)
    max_attempts: int = Field(default=DEFAULT_MAX_ATTEMPTS, ge=1)
    backoff_base_sec: float = Field(default=DEFAULT_BACKOFF_SEC, ge=0)
    retry_jitter: float = Field(default=0.0, ge=0.0, le=1.0)
    tool_response_max_chars: int = Field(default=DEFAULT_TOOL_RESPONSE_MAX_CHARS, ge=256)
    log_level: str = "INFO"
    log_file: Optional[str] = None

    @field_validator("base_url")
    @classmethod
    def _check_base_url(cls, value: str) -> str:
        value = value.strip().rstrip("/")
        parsed = urlparse(value)
        if parsed.scheme not in ("http", "https") or not parsed.netloc:
            raise ValueError(f"Invalid RAG base URL: {value!r}")
        return value

    @field_validator("log_level")
    @classmethod
    def _check_log_level(cls, value: str) -> str:
        return _normalize_log_level(value)

    @classmethod
    def from_env(cls) -> "BridgeConfig":
        """
        Load configuration from environment variables.

        Environment variables override defaults:
        - RAG_BASE_URL: Base URL of the RAG search service
        - MO5_RAG_TIMEOUT_SEC: Per-attempt request timeout
        - MO5_RAG_MAX_ATTEMPTS: Attempt ceiling for search calls
        - MO5_RAG_BACKOFF_SEC: Base delay of the exponential backoff
        - MO5_RAG_RETRY_JITTER: Random spread applied to backoff delays (0..1)
        - MO5_RAG_TOOL_RESPONSE_MAX_CHARS: Truncation limit for tool replies
        - MO5_RAG_LOG_LEVEL / MO5_RAG_LOG_FILE: Diagnostics output
        """
        jitter = _parse_float_env("MO5_RAG_RETRY_JITTER", 0.0)
        if jitter > 1.0:
            logger.warning("MO5_RAG_RETRY_JITTER=%s exceeds 1.0; clamping.", jitter)
            jitter = 1.0

        timeout = _parse_float_env("MO5_RAG_TIMEOUT_SEC", DEFAULT_TIMEOUT_SEC)
        if timeout <= 0:
            logger.warning("Non-positive MO5_RAG_TIMEOUT_SEC; using default of %s.", DEFAULT_TIMEOUT_SEC)
            timeout = DEFAULT_TIMEOUT_SEC

        return cls(
            base_url=os.environ.get("RAG_BASE_URL") or DEFAULT_BASE_URL,
            request_timeout_sec=timeout,
            max_attempts=_parse_int_env("MO5_RAG_MAX_ATTEMPTS", DEFAULT_MAX_ATTEMPTS),
            backoff_base_sec=_parse_float_env("MO5_RAG_BACKOFF_SEC", DEFAULT_BACKOFF_SEC),
            retry_jitter=jitter,
            tool_response_max_chars=_parse_int_env(
                "MO5_RAG_TOOL_RESPONSE_MAX_CHARS",
                DEFAULT_TOOL_RESPONSE_MAX_CHARS,
                minimum=256,
            ),
            log_level=os.environ.get("MO5_RAG_LOG_LEVEL", "INFO"),
            log_file=os.environ.get("MO5_RAG_LOG_FILE") or None,
        )
