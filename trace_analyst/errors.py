"""
Error taxonomy for trace analysis.

Callers map these to user-facing responses:
- QuotaExceededError: user must upgrade or wait for the monthly reset
- InvalidTraceError: user must re-upload a valid trace
- AnalysisError: model provider failed, retry with backoff
- QuotaStorageError: quota store unavailable, allowance unknown, retry with backoff
"""
from typing import Optional


class TraceAnalysisError(Exception):
    """Base class for trace analysis failures."""
    retryable = False


class QuotaExceededError(TraceAnalysisError):
    """Raised when a team has used its monthly AI analysis allowance."""

    def __init__(self, message: Optional[str], limit: int, used: int):
        super().__init__(message or "AI analysis quota exceeded")
        self.message = message
        self.limit = limit
        self.used = used


class InvalidTraceError(TraceAnalysisError):
    """Raised when a trace archive is malformed, oversized, or missing trace events."""
    pass


class AnalysisError(TraceAnalysisError):
    """Raised when the language model call or its response handling fails."""
    retryable = True


class QuotaStorageError(TraceAnalysisError):
    """Raised when the quota store cannot be read or updated."""
    retryable = True
