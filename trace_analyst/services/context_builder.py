"""
Reduce a trace event log plus its test result to a bounded, PII-scrubbed
analysis context.

Only the most recent events of each kind are kept, so the context size does not
grow with the trace. Free text goes through sanitize_pii; structural fields
(statuses, durations, selectors, query-stripped URLs) are kept as-is.
"""
from typing import Any, Dict, Iterable, List, Optional, Union
from trace_analyst.models.trace import (
    ActionContext,
    AnalysisContext,
    ConsoleLog,
    NetworkRequest,
    StepContext,
    TestResultRecord,
    TraceExtraction,
)
from trace_analyst.services.sanitizer import sanitize_optional, sanitize_pii, strip_query_string

MAX_ACTIONS = 10
MAX_NETWORK_REQUESTS = 5
MAX_CONSOLE_LOGS = 10
MAX_DOM_SNAPSHOT_CHARS = 5000

UNKNOWN_TEST_TITLE = "Unknown Test"


def _params(event: Dict[str, Any]) -> Dict[str, Any]:
    params = event.get("params")
    return params if isinstance(params, dict) else {}


def _as_str(value: Any) -> Optional[str]:
    if value is None or value == "":
        return None
    return value if isinstance(value, str) else str(value)


def _as_int(value: Any) -> Optional[int]:
    if isinstance(value, bool):
        return None
    if isinstance(value, int):
        return value
    try:
        return int(value)
    except (TypeError, ValueError):
        return None


def _last_of_type(events: List[Dict[str, Any]], types: Iterable[str], limit: int) -> List[Dict[str, Any]]:
    wanted = set(types)
    matching = [event for event in events if event.get("type") in wanted]
    return matching[-limit:]


def _build_steps(test_result: TestResultRecord) -> List[StepContext]:
    return [
        StepContext(
            title=step.title,
            status=step.status,
            error=sanitize_optional(step.error),
            duration_ms=step.duration,
        )
        for step in test_result.steps
    ]


def _build_actions(events: List[Dict[str, Any]]) -> List[ActionContext]:
    actions = []
    for event in _last_of_type(events, ["action"], MAX_ACTIONS):
        params = _params(event)
        error = event.get("error")
        error_message = error.get("message") if isinstance(error, dict) else error
        actions.append(ActionContext(
            type=_as_str(event.get("apiName")) or "unknown",
            selector=_as_str(params.get("selector")),
            value=sanitize_optional(_as_str(params.get("value"))),
            error=sanitize_optional(_as_str(error_message)),
        ))
    return actions


def _build_dom_snapshot(events: List[Dict[str, Any]]) -> str:
    snapshots = _last_of_type(events, ["snapshot"], 1)
    if not snapshots:
        return ""
    snapshot = snapshots[-1].get("snapshot")
    if not isinstance(snapshot, str):
        return ""
    # Truncated first, then redacted
    return sanitize_pii(snapshot[:MAX_DOM_SNAPSHOT_CHARS])


def _build_network_requests(events: List[Dict[str, Any]]) -> List[NetworkRequest]:
    requests = []
    for event in _last_of_type(events, ["resource", "route"], MAX_NETWORK_REQUESTS):
        params = _params(event)
        requests.append(NetworkRequest(
            url=strip_query_string(_as_str(params.get("url") or event.get("url"))),
            status=_as_int(params.get("status") or event.get("status")),
            method=_as_str(params.get("method") or event.get("method")) or "GET",
        ))
    return requests


def _build_console_logs(events: List[Dict[str, Any]]) -> List[ConsoleLog]:
    logs = []
    for event in _last_of_type(events, ["console"], MAX_CONSOLE_LOGS):
        params = _params(event)
        logs.append(ConsoleLog(
            type=_as_str(params.get("type")) or "log",
            text=sanitize_pii(_as_str(params.get("text") or event.get("text"))),
        ))
    return logs


def build_analysis_context(
    trace: Union[TraceExtraction, List[Any]],
    test_result: TestResultRecord,
) -> AnalysisContext:
    """
    Build the model-ready context for a failed test.

    Args:
        trace: Extraction result (or its raw event list)
        test_result: Test result the trace was recorded for

    Returns:
        AnalysisContext bounded to the last 10 actions, last snapshot
        (5000 chars), last 5 network calls and last 10 console lines
    """
    raw_events = trace.events if isinstance(trace, TraceExtraction) else (trace or [])
    # Events are untrusted JSON values; only objects carry a type
    events = [event for event in raw_events if isinstance(event, dict)]

    return AnalysisContext(
        test_title=test_result.full_title or UNKNOWN_TEST_TITLE,
        error_message=sanitize_optional(test_result.error_message),
        stack_trace=sanitize_optional(test_result.stack_trace),
        steps=_build_steps(test_result),
        actions=_build_actions(events),
        dom_snapshot=_build_dom_snapshot(events),
        network_requests=_build_network_requests(events),
        console_logs=_build_console_logs(events),
    )
