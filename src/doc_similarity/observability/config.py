"""
Phoenix/OpenTelemetry Configuration

Loads tracing settings from environment variables.
Supports graceful degradation when Phoenix is not installed.
"""

import os
from dataclasses import dataclass


def _env_flag(name: str, default: str = "false") -> bool:
    return os.environ.get(name, default).lower() in ("true", "1", "yes")


@dataclass
class PhoenixConfig:
    """Configuration for search tracing.

    Environment Variables:
        PHOENIX_ENABLED: Enable Phoenix tracing (default: false)
        PHOENIX_PROJECT_NAME: Project name in Phoenix UI (default: doc-similarity)
        PHOENIX_COLLECTOR_ENDPOINT: Remote endpoint (optional, local if empty)
        TRACE_CANDIDATE_IDS: Attach candidate document ids to stage spans (default: false)

    Candidate ids reveal which documents a user's document resembles.
    Keep TRACE_CANDIDATE_IDS off unless the trace backend is access-controlled.
    """

    enabled: bool = False
    project_name: str = "doc-similarity"
    collector_endpoint: str | None = None
    trace_candidate_ids: bool = False

    @classmethod
    def from_env(cls) -> "PhoenixConfig":
        """Load config from environment variables."""
        return cls(
            enabled=_env_flag("PHOENIX_ENABLED"),
            project_name=os.environ.get("PHOENIX_PROJECT_NAME", "doc-similarity"),
            collector_endpoint=os.environ.get("PHOENIX_COLLECTOR_ENDPOINT") or None,
            trace_candidate_ids=_env_flag("TRACE_CANDIDATE_IDS"),
        )


# Global config singleton
_config: PhoenixConfig | None = None


def get_config() -> PhoenixConfig:
    """Get the global Phoenix config (lazy-loaded from env)."""
    global _config
    if _config is None:
        _config = PhoenixConfig.from_env()
    return _config


def reset_config() -> None:
    """Reset config (useful for testing)."""
    global _config
    _config = None
