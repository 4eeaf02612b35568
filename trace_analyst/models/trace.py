"""
Trace input records and the bounded analysis context handed to the model.

The context is built fresh per request and never persisted. Field aliases give
the camelCase JSON shape the system prompt describes.
"""
from typing import Any, List, Optional
from pydantic import BaseModel, ConfigDict, Field


class _CamelModel(BaseModel):
    model_config = ConfigDict(populate_by_name=True)


class TestStepRecord(BaseModel):
    """A recorded step of a test result, as stored by the test-run ingest."""

    __test__ = False  # not a pytest test class

    title: str
    status: str
    error: Optional[str] = None
    duration: Optional[int] = Field(default=None, description="Step duration in milliseconds")


class TestResultRecord(_CamelModel):
    """The failed test result a trace belongs to."""

    __test__ = False  # not a pytest test class

    full_title: Optional[str] = Field(default=None, alias="fullTitle")
    error_message: Optional[str] = Field(default=None, alias="errorMessage")
    stack_trace: Optional[str] = Field(default=None, alias="stackTrace")
    steps: List[TestStepRecord] = Field(default_factory=list)


class TraceExtraction(_CamelModel):
    """Parsed events of the first trace file found in an archive."""

    events: List[Any] = Field(default_factory=list)
    file_name: str = Field(..., alias="fileName")
    event_count: int = Field(..., alias="eventCount")
    skipped_lines: int = Field(default=0, alias="skippedLines", description="Lines that failed to parse as JSON")


class StepContext(_CamelModel):
    title: str
    status: str
    error: Optional[str] = None
    duration_ms: Optional[int] = Field(default=None, alias="durationMs")


class ActionContext(_CamelModel):
    type: str
    selector: Optional[str] = None
    value: Optional[str] = None
    error: Optional[str] = None


class NetworkRequest(_CamelModel):
    url: str
    status: Optional[int] = None
    method: str = "GET"


class ConsoleLog(_CamelModel):
    type: str = "log"
    text: str = ""


class AnalysisContext(_CamelModel):
    """Bounded, PII-scrubbed summary of a failure sent to the model."""

    test_title: str = Field(..., alias="testTitle")
    error_message: Optional[str] = Field(default=None, alias="errorMessage")
    stack_trace: Optional[str] = Field(default=None, alias="stackTrace")
    steps: List[StepContext] = Field(default_factory=list)
    actions: List[ActionContext] = Field(default_factory=list)
    dom_snapshot: str = Field(default="", alias="domSnapshot")
    network_requests: List[NetworkRequest] = Field(default_factory=list, alias="networkRequests")
    console_logs: List[ConsoleLog] = Field(default_factory=list, alias="consoleLogs")

    def to_prompt_json(self) -> str:
        """Serialize for the user message (camelCase, indented)."""
        return self.model_dump_json(by_alias=True, indent=2)
