"""
Generation operations.

Flow:
1. run_analysis: validated request -> analysis prompt + declared JSON schema
   -> one Gemini call -> JSON extraction -> AnalysisResult validation.
   All-or-nothing; every failure is a typed ScopeInsightError.
2. ask_follow_up: question + context + last 10 chat turns -> one Gemini call
   -> free text, or a fixed apology when the model returns nothing.
"""

import json
import logging
import re
from typing import Any, Dict, Optional, Sequence

from pydantic import ValidationError as PydanticValidationError

from .config import Settings, get_settings
from .errors import (
    ANALYSIS_FAILED_MESSAGE,
    CHAT_FALLBACK_MESSAGE,
    MISSING_DATASET_MESSAGE,
    MISSING_SCOPE_MESSAGE,
    ConfigurationError,
    EmptyResponseError,
    MalformedResponseError,
    ServiceError,
    ValidationError,
)
from .llm_client import call_llm
from .prompts import build_analysis_prompt, build_follow_up_prompt, validate_ambition_level
from .schemas import ANALYSIS_RESPONSE_SCHEMA, AnalysisRequest, AnalysisResult, ChatMessage

logger = logging.getLogger(__name__)


def build_request(dataset_text: str, scope_text: str, ambition_level: int) -> AnalysisRequest:
    """Validate raw inputs into an AnalysisRequest. Raises ValidationError, never calls out."""
    if not dataset_text or not dataset_text.strip():
        raise ValidationError(MISSING_DATASET_MESSAGE)
    if not scope_text or not scope_text.strip():
        raise ValidationError(MISSING_SCOPE_MESSAGE)
    validate_ambition_level(ambition_level)
    return AnalysisRequest(dataset_text=dataset_text, scope_text=scope_text, ambition_level=ambition_level)


def _strip_fences(text: str) -> str:
    if "```" not in text:
        return text
    match = re.search(r"```json\s*([\s\S]*?)\s*```", text, re.IGNORECASE)
    if match:
        return match.group(1).strip()
    text = re.sub(r"```\w*\s*", "", text)
    return text.replace("```", "").strip()


def _scan_object(text: str) -> Any:
    """Brace-match the single JSON object embedded in surrounding prose."""
    start = text.find("{")
    if start == -1:
        raise json.JSONDecodeError("No JSON object found", text, 0)
    if text[:start].rstrip().endswith("["):
        raise json.JSONDecodeError("JSON object is wrapped in an array", text, start)

    # Count braces, skipping over string contents and escapes
    depth = 0
    in_string = False
    i = start
    end = -1

    while i < len(text):
        char = text[i]

        if in_string:
            if char == "\\" and i + 1 < len(text):
                i += 2
                continue
            elif char == '"':
                in_string = False
        else:
            if char == '"':
                in_string = True
            elif char == "{":
                depth += 1
            elif char == "}":
                depth -= 1
                if depth == 0:
                    end = i
                    break
        i += 1

    if end == -1:
        raise json.JSONDecodeError("Unmatched braces in JSON", text, start)
    if "{" in text[end + 1:]:
        raise json.JSONDecodeError("More than one JSON object in response", text, end + 1)

    return json.loads(text[start:end + 1])


def _extract_json_object(text: str) -> Dict[str, Any]:
    """
    Parse the model response as exactly one top-level JSON object.
    Plain JSON is parsed directly; markdown fences and leading/trailing prose
    around a single object are tolerated. Arrays, scalars and multiple
    objects are rejected.
    """
    text = _strip_fences(text.strip())
    try:
        data = json.loads(text)
    except json.JSONDecodeError:
        data = _scan_object(text)

    if not isinstance(data, dict):
        raise json.JSONDecodeError(f"Expected a JSON object, got {type(data).__name__}", text, 0)
    return data


def parse_analysis_response(text: Optional[str]) -> AnalysisResult:
    if not text or not text.strip():
        raise EmptyResponseError(ANALYSIS_FAILED_MESSAGE, detail="No response from AI")

    try:
        data = _extract_json_object(text)
    except json.JSONDecodeError as e:
        logger.error("analysis.parse_failed err=%s raw=%s", e, text[:1000])
        raise MalformedResponseError(ANALYSIS_FAILED_MESSAGE, detail=f"Invalid JSON: {e}", original_error=e) from e

    try:
        return AnalysisResult.model_validate(data)
    except PydanticValidationError as e:
        logger.error("analysis.shape_mismatch errors=%d raw=%s", e.error_count(), text[:1000])
        raise MalformedResponseError(
            ANALYSIS_FAILED_MESSAGE,
            detail=f"Response does not match AnalysisResult: {e}",
            original_error=e,
        ) from e


def run_analysis(request: AnalysisRequest, settings: Optional[Settings] = None) -> AnalysisResult:
    """
    One analysis round trip. Single attempt; the caller decides whether to retry.
    Every raised error carries ANALYSIS_FAILED_MESSAGE; the specific cause is
    in `detail` and `original_error`.

    Raises:
        ConfigurationError: no API key (checked before any network attempt)
        ServiceError: transport / SDK failure
        EmptyResponseError: model returned nothing
        MalformedResponseError: not JSON, or missing/invalid AnalysisResult fields
    """
    settings = settings or get_settings()
    prompt = build_analysis_prompt(
        request.dataset_text,
        request.scope_text,
        request.ambition_level,
        settings.output_language,
    )
    logger.info(
        "analysis.request level=%d dataset_chars=%d scope_chars=%d",
        request.ambition_level,
        len(request.dataset_text),
        len(request.scope_text),
    )

    try:
        response = call_llm(prompt, settings=settings, response_schema=ANALYSIS_RESPONSE_SCHEMA)
    except ConfigurationError as e:
        raise ConfigurationError(ANALYSIS_FAILED_MESSAGE, detail=e.message, original_error=e) from e
    except ServiceError as e:
        raise ServiceError(ANALYSIS_FAILED_MESSAGE, detail=e.message, original_error=e.original_error or e) from e

    result = parse_analysis_response(response)
    logger.info(
        "analysis.ok chart_type=%s points=%d insights=%d tools=%d",
        result.chart_type,
        len(result.chart_data),
        len(result.operational_insights),
        len(result.tool_suggestions),
    )
    return result


def ask_follow_up(
    question: str,
    dataset_text: str,
    scope_text: str,
    history: Sequence[ChatMessage],
    settings: Optional[Settings] = None,
) -> str:
    """
    Answer a follow-up question in the context of the dataset and JD.

    `history` is the transcript before this question; only the last 10 turns
    are sent. Empty model output yields CHAT_FALLBACK_MESSAGE. Configuration
    and service errors propagate.
    """
    settings = settings or get_settings()
    prompt = build_follow_up_prompt(question, dataset_text, scope_text, history, settings.output_language)
    logger.info("follow_up.request history=%d question_chars=%d", len(history), len(question))

    answer = call_llm(prompt, settings=settings)
    if not answer:
        logger.warning("follow_up.empty_response")
        return CHAT_FALLBACK_MESSAGE
    return answer
