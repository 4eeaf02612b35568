"""
PII redaction for text that leaves the system (sent to the model provider).

Patterns are applied in a fixed order so later patterns never re-match text
already replaced by earlier ones. Output of sanitize_pii is stable under a
second pass.
"""
import re
from typing import Optional

# Ordered (pattern, replacement) pairs
_REDACTIONS = (
    # Email addresses
    (re.compile(r"\b[A-Za-z0-9._%+-]+@[A-Za-z0-9.-]+\.[A-Za-z]{2,}\b"), "[EMAIL]"),
    # Potential API keys/tokens (long alphanumeric runs)
    (re.compile(r"\b[A-Za-z0-9]{32,}\b"), "[TOKEN]"),
    # JWTs
    (re.compile(r"\beyJ[A-Za-z0-9_-]+\.[A-Za-z0-9_-]+\.[A-Za-z0-9_-]+"), "[JWT]"),
    # Authorization headers / token params, JSON-quoted or chained (scheme word is consumed with the value)
    (
        re.compile(
            r"(authorization|auth|token|api[_-]?key)\"?[\s:=]+\"?"
            r"(?:(?:authorization|auth|token|api[_-]?key)\"?[\s:=]+\"?)*"
            r"(?:(?:bearer|basic)\s+)?[^\s&\"']+",
            re.IGNORECASE,
        ),
        r"\1: [REDACTED]",
    ),
    # Password fields (password: "..." or value="...")
    (re.compile(r"(password|passwd|pwd)[\s:=]+\"[^\"]*\"", re.IGNORECASE), r'\1: "[REDACTED]"'),
    # Credit card numbers (13-16 digits, optionally grouped in 4s)
    (re.compile(r"\b(?:\d{4}[\s-]?){3}\d{1,4}\b"), "[CARD]"),
    # Social security numbers
    (re.compile(r"\b\d{3}-\d{2}-\d{4}\b"), "[SSN]"),
)


def sanitize_pii(text: Optional[str]) -> str:
    """
    Redact common PII and secret patterns from free text.

    Args:
        text: Text to sanitize (None or empty yields "")

    Returns:
        Sanitized text
    """
    if not text:
        return ""

    sanitized = str(text)
    for pattern, replacement in _REDACTIONS:
        sanitized = pattern.sub(replacement, sanitized)
    return sanitized


def sanitize_optional(text: Optional[str]) -> Optional[str]:
    """sanitize_pii that keeps absent values absent."""
    if text is None:
        return None
    return sanitize_pii(text)


def strip_query_string(url: Optional[str]) -> str:
    """Drop everything from the first '?' (query strings often carry tokens or session ids)."""
    if not url:
        return ""
    return str(url).split("?", 1)[0]
