"""
AI-powered trace analysis for test failures.

Pipeline: quota check -> archive extraction -> context build -> model call ->
usage increment. Any failure before the model returns aborts with a typed
error and nothing is counted. The increment runs only after a successful
analysis and its failure never discards the result.
"""
import asyncio
import logging
from typing import Optional
from openai import AsyncOpenAI
from sqlalchemy.orm import Session
from trace_analyst.config import Settings
from trace_analyst.errors import QuotaExceededError
from trace_analyst.models.analysis import AnalysisResult
from trace_analyst.models.subscription import SubscriptionRecord
from trace_analyst.models.trace import TestResultRecord
from trace_analyst.services.context_builder import build_analysis_context
from trace_analyst.services.llm_client import analyze_context
from trace_analyst.services.quota import check_quota, increment_usage
from trace_analyst.services.trace_extractor import extract_trace_events

logger = logging.getLogger(__name__)


async def _increment_usage_supervised(
    db: Session,
    team_id: str,
    subscription: Optional[SubscriptionRecord],
    settings: Settings,
) -> None:
    # Logged, never raised: the analysis has already been produced
    try:
        await asyncio.to_thread(increment_usage, db, team_id, subscription, settings)
    except Exception as e:
        logger.error(f"AI_USAGE_INCREMENT_FAILED: team_id={team_id}: {str(e)}", exc_info=True)


async def analyze_failure(
    trace_archive_bytes: bytes,
    test_result: TestResultRecord,
    team_id: str,
    subscription: Optional[SubscriptionRecord],
    *,
    db: Session,
    settings: Settings,
    client: Optional[AsyncOpenAI] = None,
    timeout: Optional[float] = None,
) -> AnalysisResult:
    """
    Analyze a failed test from its trace archive.

    Args:
        trace_archive_bytes: Uploaded trace.zip content
        test_result: Test result the trace belongs to
        team_id: Team (tenant) the quota is charged to
        subscription: Team's subscription snapshot (None for teams without one)
        db: Database session for the quota store
        settings: Application settings
        client: Optional AsyncOpenAI client
        timeout: Optional model call timeout in seconds

    Returns:
        AnalysisResult

    Raises:
        QuotaExceededError: Team has no analyses left this month
        QuotaStorageError: Quota store unavailable
        InvalidTraceError: Archive rejected
        AnalysisError: Model provider failed
    """
    quota = await asyncio.to_thread(check_quota, db, team_id, subscription, settings)
    if not quota.allowed:
        raise QuotaExceededError(quota.message, limit=quota.limit, used=quota.used)

    # Decompression is CPU-bound; keep it off the event loop
    extraction = await asyncio.to_thread(extract_trace_events, trace_archive_bytes)
    logger.info(
        f"Extracted {extraction.event_count} trace events from {extraction.file_name} "
        f"(skipped {extraction.skipped_lines} malformed lines) for team_id={team_id}"
    )

    context = build_analysis_context(extraction, test_result)

    analysis = await analyze_context(context, settings, client=client, timeout=timeout)

    await _increment_usage_supervised(db, team_id, subscription, settings)

    return analysis
