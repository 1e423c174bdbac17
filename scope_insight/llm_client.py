"""
Minimal LLM client wrapper using Google Gemini.

Rationale:
- Use google-genai SDK (supported) for Gemini access.
- Keep interface tiny: call_llm(prompt, ...) -> Optional[str].
- Empty output is returned as None; the caller decides whether that is fatal.
- No retries / no fallback.
"""

import logging
from typing import Any, Dict, Optional

from .config import Settings, get_settings
from .errors import ConfigurationError, ServiceError

try:
    from google import genai
    from google.genai import types
except Exception as e:  # pragma: no cover
    raise RuntimeError(
        "Missing dependency for Gemini client. Install 'google-genai'. "
        "Original import error: " + str(e)
    )


logger = logging.getLogger(__name__)


def _response_text(response: Any) -> Optional[str]:
    # Prefer the SDK's convenience property
    result = getattr(response, "text", None)
    if result:
        return result

    # Fallback: attempt to extract from candidates (SDK shape can vary across versions)
    candidates = getattr(response, "candidates", None) or []
    if not candidates:
        return None

    content = getattr(candidates[0], "content", None)
    parts = getattr(content, "parts", None) if content else None
    if parts:
        text0 = getattr(parts[0], "text", None)
        if text0:
            return text0
    return None


def call_llm(
    prompt: str,
    *,
    settings: Optional[Settings] = None,
    response_schema: Optional[Dict[str, Any]] = None,
) -> Optional[str]:
    """
    Single generate_content round trip.

    With `response_schema` the call runs in JSON mode and declares the schema
    to the service. Raises ConfigurationError before any network attempt when
    no API key is configured, ServiceError on any SDK/transport failure.
    """
    settings = settings or get_settings()
    if not settings.has_api_key:
        raise ConfigurationError()

    config_kwargs: Dict[str, Any] = {
        "temperature": settings.temperature,
        "max_output_tokens": settings.max_tokens,
    }
    if response_schema is not None:
        config_kwargs["response_mime_type"] = "application/json"
        config_kwargs["response_schema"] = response_schema

    logger.debug(
        "llm.call model=%s json_mode=%s prompt_chars=%d",
        settings.model_name,
        response_schema is not None,
        len(prompt),
    )

    try:
        client = genai.Client(api_key=settings.api_key)
        response = client.models.generate_content(
            model=settings.model_name,
            contents=prompt,
            config=types.GenerateContentConfig(**config_kwargs),
        )
    except Exception as e:
        logger.error("llm.call_failed model=%s err=%s", settings.model_name, str(e)[:200])
        raise ServiceError(f"Gemini API error: {e}", original_error=e) from e

    return _response_text(response)
