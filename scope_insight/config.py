"""
Process-wide settings.

Rationale:
- Read everything from the environment once (main.py loads .env first).
- Freeze the result so the credential can't be mutated after startup.
"""

import os
from dataclasses import dataclass
from functools import lru_cache
from typing import Optional, Tuple


DEFAULT_MODEL = "gemini-2.5-flash"
DEFAULT_OUTPUT_LANGUAGE = "Thai (ภาษาไทย)"


def _split_csv(raw: str) -> Tuple[str, ...]:
    return tuple(p.strip().lower() for p in raw.split(",") if p.strip())


@dataclass(frozen=True)
class Settings:
    api_key: Optional[str] = None
    model_name: str = DEFAULT_MODEL
    temperature: float = 0.4
    max_tokens: int = 8192
    output_language: str = DEFAULT_OUTPUT_LANGUAGE
    allowed_file_types: Tuple[str, ...] = (".csv", ".txt", ".json")
    max_file_size_mb: int = 5
    session_ttl_minutes: int = 60
    max_sessions: int = 1000

    @property
    def has_api_key(self) -> bool:
        return bool(self.api_key)

    @property
    def max_file_size_bytes(self) -> int:
        return self.max_file_size_mb * 1024 * 1024

    @property
    def session_ttl_seconds(self) -> int:
        return self.session_ttl_minutes * 60

    def __repr__(self) -> str:
        # never echo the secret into logs
        return (
            f"Settings(api_key={'***' if self.api_key else None}, model_name={self.model_name!r}, "
            f"temperature={self.temperature}, max_tokens={self.max_tokens})"
        )


def load_settings() -> Settings:
    """Build Settings from the current environment."""
    api_key = os.getenv("GEMINI_API_KEY") or os.getenv("LLM_API_KEY") or os.getenv("API_KEY")
    return Settings(
        api_key=api_key.strip() if api_key and api_key.strip() else None,
        model_name=os.getenv("GEMINI_MODEL", DEFAULT_MODEL),
        temperature=float(os.getenv("LLM_TEMPERATURE", "0.4")),
        max_tokens=int(os.getenv("MAX_LLM_TOKENS", "8192")),
        output_language=os.getenv("OUTPUT_LANGUAGE", DEFAULT_OUTPUT_LANGUAGE),
        allowed_file_types=_split_csv(os.getenv("ALLOWED_FILE_TYPES", ".csv,.txt,.json")),
        max_file_size_mb=int(os.getenv("MAX_FILE_SIZE_MB", "5")),
        session_ttl_minutes=int(os.getenv("SESSION_TTL_MINUTES", "60")),
        max_sessions=int(os.getenv("MAX_SESSIONS", "1000")),
    )


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    return load_settings()


def has_api_key(settings: Optional[Settings] = None) -> bool:
    """Capability probe: True when a generation credential is configured. No side effects."""
    return (settings or get_settings()).has_api_key
