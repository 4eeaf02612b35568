"""
End-to-end tests for analyze_failure: quota gate, extraction, model call and usage accounting.
"""
import asyncio
import logging
from datetime import datetime, timezone
from unittest.mock import patch
import pytest
from trace_analyst.errors import AnalysisError, InvalidTraceError, QuotaExceededError, QuotaStorageError
from trace_analyst.models.enums import FailureCategory
from trace_analyst.models.trace import TestResultRecord
from trace_analyst.services.analyzer import analyze_failure
from trace_analyst.services.quota import FREE_TIER_LIMIT, get_subscription_record

TIMING_ANALYSIS = {
    "rootCause": "The submit button is clicked before the form finishes rendering",
    "category": "TIMING_ISSUE",
    "suggestedFix": "Wait for the form to be visible before clicking submit",
    "fixCode": "await expect(page.locator('form')).toBeVisible();",
    "confidence": 0.9,
}


def _trace_events():
    return [
        {"type": "action", "apiName": "page.goto", "params": {"url": "https://app.test/login"}},
        {"type": "console", "params": {"type": "warning", "text": "slow render"}},
        {"type": "action", "apiName": "locator.click", "params": {"selector": "#submit"},
         "error": {"message": "Timeout 5000ms exceeded"}},
    ]


def _test_result():
    return TestResultRecord(full_title="login > submits form", error_message="Timeout 5000ms exceeded")


def _usage(db_session, team_id="team-1"):
    db_session.expire_all()
    return get_subscription_record(db_session, team_id).ai_analysis_count


def _run(trace_bytes, record, db_session, settings, client, team_id="team-1"):
    return asyncio.run(analyze_failure(
        trace_bytes, _test_result(), team_id, record,
        db=db_session, settings=settings, client=client,
    ))


def test_last_free_analysis_succeeds_then_next_is_refused(
    db_session, make_subscription, make_trace_zip, make_openai_client, settings
):
    """Free-tier team at 9 of 10 gets one more analysis, then is refused before extraction."""
    make_subscription(ai_analysis_count=FREE_TIER_LIMIT - 1, ai_analysis_reset_at=datetime.now(timezone.utc))
    client = make_openai_client(TIMING_ANALYSIS)

    result = _run(make_trace_zip(_trace_events()), get_subscription_record(db_session, "team-1"),
                  db_session, settings, client)

    assert result.category == FailureCategory.TIMING_ISSUE
    assert result.confidence == pytest.approx(0.9)
    assert _usage(db_session) == FREE_TIER_LIMIT

    with pytest.raises(QuotaExceededError) as exc_info:
        # Not a zip: the quota gate must reject before the archive is looked at
        _run(b"not a zip", get_subscription_record(db_session, "team-1"), db_session, settings, client)

    assert exc_info.value.limit == FREE_TIER_LIMIT
    assert exc_info.value.used == FREE_TIER_LIMIT
    assert "Upgrade" in str(exc_info.value)
    assert client.chat.completions.create.await_count == 1
    assert _usage(db_session) == FREE_TIER_LIMIT


def test_invalid_trace_is_not_counted(db_session, make_subscription, make_openai_client, settings):
    make_subscription(ai_analysis_count=3, ai_analysis_reset_at=datetime.now(timezone.utc))
    client = make_openai_client(TIMING_ANALYSIS)

    with pytest.raises(InvalidTraceError):
        _run(b"garbage", get_subscription_record(db_session, "team-1"), db_session, settings, client)

    client.chat.completions.create.assert_not_awaited()
    assert _usage(db_session) == 3


def test_model_failure_is_not_counted(db_session, make_subscription, make_trace_zip, make_openai_client, settings):
    make_subscription(ai_analysis_count=3, ai_analysis_reset_at=datetime.now(timezone.utc))
    client = make_openai_client(side_effect=RuntimeError("provider down"))

    with pytest.raises(AnalysisError):
        _run(make_trace_zip(_trace_events()), get_subscription_record(db_session, "team-1"),
             db_session, settings, client)

    assert _usage(db_session) == 3


def test_increment_failure_does_not_discard_result(
    db_session, make_subscription, make_trace_zip, make_openai_client, settings, caplog
):
    make_subscription(ai_analysis_count=0, ai_analysis_reset_at=datetime.now(timezone.utc))
    client = make_openai_client(TIMING_ANALYSIS)

    with patch(
        "trace_analyst.services.analyzer.increment_usage",
        side_effect=QuotaStorageError("Failed to increment AI analysis usage for team team-1"),
    ):
        with caplog.at_level(logging.ERROR, logger="trace_analyst.services.analyzer"):
            result = _run(make_trace_zip(_trace_events()), get_subscription_record(db_session, "team-1"),
                          db_session, settings, client)

    assert result.category == FailureCategory.TIMING_ISSUE
    assert "AI_USAGE_INCREMENT_FAILED" in caplog.text
    assert _usage(db_session) == 0


def test_quota_storage_failure_aborts_before_model_call(make_trace_zip, make_openai_client, settings):
    client = make_openai_client(TIMING_ANALYSIS)

    with patch(
        "trace_analyst.services.analyzer.check_quota",
        side_effect=QuotaStorageError("Failed to reset AI analysis usage"),
    ):
        with pytest.raises(QuotaStorageError):
            asyncio.run(analyze_failure(
                make_trace_zip(_trace_events()), _test_result(), "team-1", None,
                db=None, settings=settings, client=client,
            ))

    client.chat.completions.create.assert_not_awaited()


def test_unlimited_team_is_not_counted(db_session, make_subscription, make_trace_zip, make_openai_client, settings):
    make_subscription(status="ACTIVE", ai_analysis_count=500)
    client = make_openai_client(TIMING_ANALYSIS)

    result = _run(make_trace_zip(_trace_events()), get_subscription_record(db_session, "team-1"),
                  db_session, settings, client)

    assert result.category == FailureCategory.TIMING_ISSUE
    assert _usage(db_session) == 500


def test_self_hosted_skips_quota_store(make_trace_zip, make_openai_client, settings):
    settings.self_hosted = True
    client = make_openai_client(TIMING_ANALYSIS)

    result = asyncio.run(analyze_failure(
        make_trace_zip(_trace_events()), _test_result(), "team-1", None,
        db=None, settings=settings, client=client,
    ))

    assert result.root_cause == TIMING_ANALYSIS["rootCause"]


def test_context_sent_to_model_is_redacted(db_session, make_trace_zip, make_openai_client, settings):
    client = make_openai_client(TIMING_ANALYSIS)
    events = _trace_events() + [{"type": "console", "params": {"text": "signed in as jane@corp.io"}}]

    _run(make_trace_zip(events), None, db_session, settings, client, team_id="team-without-billing")

    user_prompt = client.chat.completions.create.call_args.kwargs["messages"][1]["content"]
    assert "jane@corp.io" not in user_prompt
    assert "[EMAIL]" in user_prompt


def test_corrupt_trace_entry_is_typed_and_not_counted(
    db_session, make_subscription, make_trace_zip, make_openai_client, settings
):
    make_subscription(ai_analysis_count=2, ai_analysis_reset_at=datetime.now(timezone.utc))
    client = make_openai_client(TIMING_ANALYSIS)
    archive = bytearray(make_trace_zip(_trace_events() * 50))
    archive[40:60] = b"\xff" * 20

    with pytest.raises(InvalidTraceError):
        _run(bytes(archive), get_subscription_record(db_session, "team-1"), db_session, settings, client)

    client.chat.completions.create.assert_not_awaited()
    assert _usage(db_session) == 2
