"""
OpenAI client for trace failure analysis.

This module encapsulates all OpenAI interaction for classifying a failed test
from its AnalysisContext. The model is asked for strict JSON; whatever comes
back is normalized so callers always receive a well-formed AnalysisResult
(closed category set, confidence within [0, 1], fallback texts). Provider
failures are raised as AnalysisError.
"""
import asyncio
import json
import logging
import math
from typing import Any, Dict, Optional
from openai import AsyncOpenAI, APIError
from trace_analyst.agent.prompt import PROMPT_VERSION, get_system_prompt
from trace_analyst.config import Settings
from trace_analyst.errors import AnalysisError
from trace_analyst.models.analysis import AnalysisResult
from trace_analyst.models.enums import FailureCategory
from trace_analyst.models.trace import AnalysisContext

logger = logging.getLogger(__name__)

# Classification output, kept close to deterministic
ANALYSIS_TEMPERATURE = 0.3

DEFAULT_CONFIDENCE = 0.5
FALLBACK_ROOT_CAUSE = "Unable to determine root cause"
FALLBACK_SUGGESTED_FIX = "No fix suggestion available"


def get_openai_client(settings: Settings) -> AsyncOpenAI:
    """
    Build an AsyncOpenAI client from settings.

    Raises:
        AnalysisError: If no API key is configured
    """
    if not settings.openai_api_key:
        raise AnalysisError("OpenAI API key not configured. Set OPENAI_API_KEY environment variable.")
    return AsyncOpenAI(api_key=settings.openai_api_key)


def normalize_category(value: Any) -> FailureCategory:
    """Map model output onto the closed category set (anything unrecognized is OTHER)."""
    if isinstance(value, str):
        try:
            return FailureCategory(value.strip().upper())
        except ValueError:
            pass
    return FailureCategory.OTHER


def normalize_confidence(value: Any) -> float:
    """Clamp numeric confidence into [0, 1]; non-numeric or missing becomes 0.5."""
    if value is None or isinstance(value, bool):
        return DEFAULT_CONFIDENCE
    try:
        confidence = float(value)
    except (TypeError, ValueError):
        return DEFAULT_CONFIDENCE
    if math.isnan(confidence):
        return DEFAULT_CONFIDENCE
    return min(max(confidence, 0.0), 1.0)


def _text_or(value: Any, fallback: Optional[str]) -> Optional[str]:
    if isinstance(value, str) and value.strip():
        return value
    return fallback


def normalize_analysis(raw: Dict[str, Any]) -> AnalysisResult:
    """
    Validate and normalize the model's JSON object.

    Missing or unusable fields are replaced with fallbacks.
    """
    return AnalysisResult(
        root_cause=_text_or(raw.get("rootCause"), FALLBACK_ROOT_CAUSE),
        category=normalize_category(raw.get("category")),
        suggested_fix=_text_or(raw.get("suggestedFix"), FALLBACK_SUGGESTED_FIX),
        fix_code=_text_or(raw.get("fixCode"), None),
        confidence=normalize_confidence(raw.get("confidence")),
        additional_notes=_text_or(raw.get("additionalNotes"), None),
    )


async def analyze_context(
    context: AnalysisContext,
    settings: Settings,
    client: Optional[AsyncOpenAI] = None,
    timeout: Optional[float] = None,
) -> AnalysisResult:
    """
    Classify a test failure and propose a fix.

    Args:
        context: Bounded, redacted analysis context
        settings: Application settings (model name, API key, default timeout)
        client: Optional AsyncOpenAI client (built from settings when omitted)
        timeout: Seconds to wait for the provider (defaults to settings.openai_timeout_seconds)

    Returns:
        Normalized AnalysisResult

    Raises:
        AnalysisError: If the API call fails, times out, or returns malformed content
    """
    if client is None:
        client = get_openai_client(settings)
    if timeout is None:
        timeout = settings.openai_timeout_seconds

    try:
        response = await asyncio.wait_for(
            client.chat.completions.create(
                model=settings.openai_model,
                temperature=ANALYSIS_TEMPERATURE,
                response_format={"type": "json_object"},
                messages=[
                    {"role": "system", "content": get_system_prompt()},
                    {"role": "user", "content": context.to_prompt_json()},
                ],
            ),
            timeout=timeout,
        )
    except asyncio.TimeoutError as e:
        raise AnalysisError(f"AI analysis timed out after {timeout}s") from e
    except APIError as e:
        raise AnalysisError(f"OpenAI API error: {str(e)}") from e
    except Exception as e:
        raise AnalysisError(f"Unexpected error during AI analysis: {str(e)}") from e

    # Extract content from response
    if not response.choices:
        raise AnalysisError("OpenAI API returned empty response")

    content = response.choices[0].message.content
    if not content:
        raise AnalysisError("OpenAI API returned empty content")

    try:
        raw = json.loads(content)
    except json.JSONDecodeError as e:
        raise AnalysisError(f"Failed to parse JSON response: {str(e)}") from e

    if not isinstance(raw, dict):
        raise AnalysisError(f"Expected a JSON object from the model, got {type(raw).__name__}")

    result = normalize_analysis(raw)
    logger.info(
        f"Trace analysis completed: model={settings.openai_model} prompt={PROMPT_VERSION} "
        f"category={result.category.value} confidence={result.confidence:.2f}"
    )
    return result
