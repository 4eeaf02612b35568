"""
Trace archive extraction.

Archives are untrusted user uploads. Every limit is checked before any entry is
decompressed, cheapest first: total size, then entry count from the central
directory, then each entry's declared uncompressed size.
"""
import io
import json
import logging
import zipfile
import zlib
from typing import Any, List, Tuple
from trace_analyst.errors import InvalidTraceError
from trace_analyst.models.trace import TraceExtraction

logger = logging.getLogger(__name__)

# Security limits for trace file processing
MAX_TRACE_FILE_SIZE = 50 * 1024 * 1024  # 50MB
MAX_ZIP_ENTRIES = 1000
MAX_INDIVIDUAL_FILE_SIZE = 10 * 1024 * 1024  # 10MB per file

# Playwright traces store JSON-lines events in .trace files (not trace.json)
TRACE_FILE_EXTENSION = ".trace"


def _mb(size: int) -> str:
    return f"{size / 1024 / 1024:.1f}MB"


def extract_trace_events(archive_bytes: bytes) -> TraceExtraction:
    """
    Extract and parse the first trace event file from a trace archive.

    Args:
        archive_bytes: Raw zip archive content

    Returns:
        TraceExtraction with parsed events in original order

    Raises:
        InvalidTraceError: If the archive is too large, has too many entries,
            contains an oversized entry, is not a zip, or has no trace file
    """
    if len(archive_bytes) > MAX_TRACE_FILE_SIZE:
        raise InvalidTraceError(
            f"Trace file too large ({_mb(len(archive_bytes))}). "
            f"Maximum size is {MAX_TRACE_FILE_SIZE // 1024 // 1024}MB."
        )

    try:
        archive = zipfile.ZipFile(io.BytesIO(archive_bytes))
    except (zipfile.BadZipFile, zipfile.LargeZipFile, ValueError) as e:
        raise InvalidTraceError("Trace file is not a valid zip archive.") from e

    with archive:
        entries = archive.infolist()

        if len(entries) > MAX_ZIP_ENTRIES:
            raise InvalidTraceError(
                f"Trace file contains too many entries ({len(entries)}). Maximum is {MAX_ZIP_ENTRIES}."
            )

        for entry in entries:
            if entry.file_size > MAX_INDIVIDUAL_FILE_SIZE:
                raise InvalidTraceError(
                    f"File '{entry.filename}' is too large ({_mb(entry.file_size)}). "
                    f"Maximum is {MAX_INDIVIDUAL_FILE_SIZE // 1024 // 1024}MB."
                )

        trace_entries = [
            entry for entry in entries
            if not entry.is_dir() and entry.filename.endswith(TRACE_FILE_EXTENSION)
        ]
        if not trace_entries:
            available_files = ", ".join(entry.filename for entry in entries)
            logger.error(f"No {TRACE_FILE_EXTENSION} files in trace archive. Available files: {available_files}")
            raise InvalidTraceError(
                f"Invalid trace file - no {TRACE_FILE_EXTENSION} files found. Available files: {available_files}"
            )

        # Parse the first trace file (usually there's only one for single-page tests)
        trace_entry = trace_entries[0]
        # Reads stop at the declared size; a header that understates it fails the CRC check
        try:
            with archive.open(trace_entry) as handle:
                raw = handle.read(MAX_INDIVIDUAL_FILE_SIZE)
        except (zipfile.BadZipFile, zlib.error, NotImplementedError, RuntimeError, EOFError, OSError) as e:
            raise InvalidTraceError(f"Failed to read '{trace_entry.filename}' from trace archive.") from e

    events, skipped = parse_json_lines(raw.decode("utf-8", errors="replace"))
    if skipped:
        logger.debug(f"Skipped {skipped} malformed line(s) in {trace_entry.filename}")

    return TraceExtraction(
        events=events,
        file_name=trace_entry.filename,
        event_count=len(events),
        skipped_lines=skipped,
    )


def parse_json_lines(content: str) -> Tuple[List[Any], int]:
    """
    Parse newline-delimited JSON, skipping blank lines.

    Lines that fail to parse are dropped (trace producers may leave a trailing
    partial line) and counted.

    Returns:
        Tuple of (events, skipped_line_count)
    """
    events: List[Any] = []
    skipped = 0
    for line in content.split("\n"):
        if not line.strip():
            continue
        try:
            events.append(json.loads(line))
        except ValueError:
            skipped += 1
    return events, skipped
