"""
llmwire - Configuration

Environment-driven settings and API key lookup.
"""

import os
from dataclasses import dataclass
from functools import lru_cache
from typing import Dict, List, Optional


def _is_truthy(value: Optional[str]) -> bool:
    """Check if environment variable is truthy."""
    if value is None:
        return False
    return value.lower() in ("1", "true", "yes", "on")


# Checked in order; the first non-empty variable wins
ENV_API_KEYS: Dict[str, List[str]] = {
    "anthropic": ["ANTHROPIC_OAUTH_TOKEN", "ANTHROPIC_API_KEY"],
    "openai": ["OPENAI_API_KEY"],
    "kimi": ["KIMI_API_KEY", "MOONSHOT_API_KEY"],
    "kimi-coding": ["KIMI_CODING_API_KEY", "KIMI_API_KEY"],
}

BEDROCK_CREDENTIAL_VARS = (
    "AWS_PROFILE",
    "AWS_ACCESS_KEY_ID",
    "AWS_BEARER_TOKEN_BEDROCK",
    "AWS_CONTAINER_CREDENTIALS_RELATIVE_URI",
    "AWS_WEB_IDENTITY_TOKEN_FILE",
)


def get_env_api_key(provider: str) -> Optional[str]:
    """
    Resolve the API key for a provider from the environment.

    Bedrock authenticates through the AWS credential chain, so for it this
    returns the marker ``"<authenticated>"`` when any credential source is
    configured.
    """
    if provider == "amazon-bedrock":
        if any(os.getenv(name) for name in BEDROCK_CREDENTIAL_VARS):
            return "<authenticated>"
        return None

    for name in ENV_API_KEYS.get(provider, []):
        value = os.getenv(name)
        if value:
            return value
    return None


@dataclass
class Settings:
    """Process-wide defaults read from the environment."""
    log_level: str = "INFO"
    log_format: str = "json"
    http_timeout: float = 600.0
    event_history_limit: int = 1000
    metrics_enabled: bool = True
    tracing_enabled: bool = True
    aws_region: str = "us-east-1"

    @classmethod
    def from_env(cls) -> "Settings":
        return cls(
            log_level=os.getenv("LLMWIRE_LOG_LEVEL", "INFO").upper(),
            log_format=os.getenv("LLMWIRE_LOG_FORMAT", "json").lower(),
            http_timeout=float(os.getenv("LLMWIRE_HTTP_TIMEOUT", "600")),
            event_history_limit=int(os.getenv("LLMWIRE_EVENT_HISTORY_LIMIT", "1000")),
            metrics_enabled=_is_truthy(os.getenv("LLMWIRE_METRICS_ENABLED", "true")),
            tracing_enabled=_is_truthy(os.getenv("LLMWIRE_TRACING_ENABLED", "true")),
            aws_region=os.getenv("AWS_REGION") or os.getenv("AWS_DEFAULT_REGION") or "us-east-1",
        )


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    """Cached settings; call ``get_settings.cache_clear()`` after changing env in tests."""
    return Settings.from_env()
