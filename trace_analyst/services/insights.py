"""
Free-text AI insights for failed tests and test runs.

Unlike trace analysis these return prose, are not quota-gated, and only see
error text from the test result (redacted before it is sent).
"""
import asyncio
import logging
from typing import Any, Dict, List, Optional
from openai import AsyncOpenAI, APIError
from trace_analyst.agent.prompt import (
    get_diagnosis_prompt,
    get_failure_patterns_prompt,
    get_run_summary_prompt,
)
from trace_analyst.config import Settings
from trace_analyst.errors import AnalysisError
from trace_analyst.services.llm_client import get_openai_client
from trace_analyst.services.sanitizer import sanitize_pii

logger = logging.getLogger(__name__)

MAX_STACK_TRACE_CHARS = 1000
MAX_RUN_SUMMARY_FAILURES = 10
MAX_RUN_SUMMARY_ERROR_CHARS = 100
MAX_PATTERN_FAILURES = 15
MAX_PATTERN_ERROR_CHARS = 150

NO_FAILURES_MESSAGE = "No failures to analyze."


async def _complete(
    settings: Settings,
    client: Optional[AsyncOpenAI],
    system_prompt: str,
    prompt: str,
    max_completion_tokens: int,
    timeout: Optional[float],
) -> str:
    if client is None:
        client = get_openai_client(settings)
    if timeout is None:
        timeout = settings.openai_timeout_seconds

    try:
        response = await asyncio.wait_for(
            client.chat.completions.create(
                model=settings.openai_insights_model,
                messages=[
                    {"role": "system", "content": system_prompt},
                    {"role": "user", "content": prompt},
                ],
                max_completion_tokens=max_completion_tokens,
            ),
            timeout=timeout,
        )
    except asyncio.TimeoutError as e:
        raise AnalysisError(f"AI insight request timed out after {timeout}s") from e
    except APIError as e:
        raise AnalysisError(f"OpenAI API error: {str(e)}") from e
    except Exception as e:
        raise AnalysisError(f"Unexpected error during AI insight request: {str(e)}") from e

    content = response.choices[0].message.content if response.choices else None
    if not content:
        raise AnalysisError("No content in OpenAI response")
    return content


async def diagnose_failed_test(
    test_case_title: str,
    test_type: str,
    priority: str,
    settings: Settings,
    test_case_description: Optional[str] = None,
    error_message: Optional[str] = None,
    stack_trace: Optional[str] = None,
    client: Optional[AsyncOpenAI] = None,
    timeout: Optional[float] = None,
) -> str:
    """
    Diagnose a failed test and provide insights on what might have gone wrong.

    Raises:
        AnalysisError: If the model call fails or returns no content
    """
    prompt = get_diagnosis_prompt(
        test_case_title=test_case_title,
        test_type=test_type,
        priority=priority,
        test_case_description=test_case_description,
        error_message=sanitize_pii(error_message) or None,
        stack_trace=sanitize_pii((stack_trace or "")[:MAX_STACK_TRACE_CHARS]) or None,
    )
    try:
        return await _complete(
            settings,
            client,
            "You are an expert QA engineer who helps diagnose test failures. Provide clear, actionable insights.",
            prompt,
            max_completion_tokens=500,
            timeout=timeout,
        )
    except AnalysisError as e:
        logger.error(f"AI diagnosis error: {str(e)}")
        raise


async def summarize_test_run(
    test_run_name: str,
    total_tests: int,
    passed: int,
    failed: int,
    blocked: int,
    skipped: int,
    failed_tests: List[Dict[str, Any]],
    settings: Settings,
    client: Optional[AsyncOpenAI] = None,
    timeout: Optional[float] = None,
) -> str:
    """
    Generate a summary of test run results with insights on failure patterns.

    Args:
        failed_tests: Dicts with title, test_type, priority and optional error_message

    Raises:
        AnalysisError: If the model call fails or returns no content
    """
    pass_rate = round((passed / total_tests) * 100) if total_tests > 0 else 0

    # Limit failed tests in prompt to avoid token limits
    failed_lines = []
    for index, test in enumerate(failed_tests[:MAX_RUN_SUMMARY_FAILURES], start=1):
        line = f"{index}. [{test.get('test_type')}] {test.get('title')}"
        error_message = test.get("error_message")
        if error_message:
            line += f"\n   Error: {sanitize_pii(error_message[:MAX_RUN_SUMMARY_ERROR_CHARS])}"
        failed_lines.append(line)

    prompt = get_run_summary_prompt(
        test_run_name=test_run_name,
        total_tests=total_tests,
        passed=passed,
        failed=failed,
        blocked=blocked,
        skipped=skipped,
        pass_rate=pass_rate,
        failed_lines=failed_lines,
    )
    try:
        return await _complete(
            settings,
            client,
            "You are an expert QA engineer who analyzes test results and identifies patterns. "
            "Provide clear, strategic insights.",
            prompt,
            max_completion_tokens=600,
            timeout=timeout,
        )
    except AnalysisError as e:
        logger.error(f"AI summary error: {str(e)}")
        raise


async def analyze_failure_patterns(
    failures: List[Dict[str, Any]],
    settings: Settings,
    client: Optional[AsyncOpenAI] = None,
    timeout: Optional[float] = None,
) -> str:
    """
    Analyze patterns across multiple test failures to identify root causes.

    Args:
        failures: Dicts with test_case_title, test_type and optional error_message, suite_name

    Raises:
        AnalysisError: If the model call fails or returns no content
    """
    if not failures:
        return NO_FAILURES_MESSAGE

    failure_lines = []
    for index, failure in enumerate(failures[:MAX_PATTERN_FAILURES], start=1):
        label = failure.get("test_type") or ""
        if failure.get("suite_name"):
            label = f"{label} - {failure['suite_name']}"
        line = f"{index}. [{label}] {failure.get('test_case_title')}"
        error_message = failure.get("error_message")
        if error_message:
            line += f"\n   Error: {sanitize_pii(error_message[:MAX_PATTERN_ERROR_CHARS])}"
        failure_lines.append(line)

    prompt = get_failure_patterns_prompt(len(failures), failure_lines)
    try:
        return await _complete(
            settings,
            client,
            "You are an expert QA engineer who identifies patterns in test failures. Focus on finding root causes.",
            prompt,
            max_completion_tokens=500,
            timeout=timeout,
        )
    except AnalysisError as e:
        logger.error(f"AI pattern analysis error: {str(e)}")
        raise
