"""
Exit diagnostics segmentation.

The launcher reports one diagnostics blob per attempt. Up to three layers
write into it independently:

- the container layer appends the stderr tail of the failed process inside
  a Java ``ExitCodeException`` trace,
- the runtime (the launch scripts) prints a YAML self-report between
  ``[RUNTIME_ERROR_START]`` and ``[RUNTIME_ERROR_END]``,
- the launcher writes its own narrative around both.

Each segment is located with plain substring search so that missing or
malformed layers do not affect the others.
"""

from typing import Optional

import yaml
from pydantic import ValidationError

from bifrost.common.errors import ParseError
from bifrost.common.models.jobs import ExitMessages, RuntimeExitInfo
from bifrost.gateway.utils.logger import logger

MAX_DIAGNOSTICS_CHARS = 256 * 1024

CONTAINER_EXCEPTION_ANCHOR = "ExitCodeException exitCode"
CONTAINER_STACK_ANCHOR = "at org.apache.hadoop.util.Shell.runCommand"
RUNTIME_START_ANCHOR = "[RUNTIME_ERROR_START]"
RUNTIME_END_ANCHOR = "[RUNTIME_ERROR_END]"


def _bound(diag: str) -> str:
    return diag[:MAX_DIAGNOSTICS_CHARS]


def _container_segment_start(diag: str) -> int:
    """Index just past ``ExitCodeException exitCode<anything on the same line>:``, or -1."""
    search_from = 0
    while True:
        anchor = diag.find(CONTAINER_EXCEPTION_ANCHOR, search_from)
        if anchor < 0:
            return -1
        tail = anchor + len(CONTAINER_EXCEPTION_ANCHOR)
        colon = diag.find(":", tail)
        newline = diag.find("\n", tail)
        if colon >= 0 and (newline < 0 or colon < newline):
            return colon + 1
        search_from = tail


def _runtime_span(diag: str):
    """(start, end) of the text between the runtime markers, or None."""
    start = diag.find(RUNTIME_START_ANCHOR)
    if start < 0:
        return None
    content_start = start + len(RUNTIME_START_ANCHOR)
    end = diag.find(RUNTIME_END_ANCHOR, content_start)
    if end < 0:
        return None
    return content_start, end


def extract_container_stderr(diag: Optional[str]) -> Optional[str]:
    if not diag:
        return None
    diag = _bound(diag)
    start = _container_segment_start(diag)
    end = diag.find(CONTAINER_STACK_ANCHOR)
    if start < 0 or end < 0 or end < start:
        return None
    return diag[start:end].strip()


def extract_runtime_output(diag: Optional[str]) -> Optional[RuntimeExitInfo]:
    """
    Parse the runtime self-report.

    Raises ParseError when the delimited text is not a YAML mapping of
    JSON-compatible values.
    """
    if not diag:
        return None
    diag = _bound(diag)
    span = _runtime_span(diag)
    if span is None:
        return None
    output = diag[span[0]:span[1]].strip()
    try:
        document = yaml.safe_load(output)
    except yaml.YAMLError as e:
        raise ParseError(f"Runtime exit output is not valid YAML: {e}") from e
    if not isinstance(document, dict):
        raise ParseError(f"Runtime exit output is not a mapping: {type(document).__name__}")
    try:
        info = RuntimeExitInfo.model_validate(document)
    except ValidationError as e:
        raise ParseError(f"Runtime exit output has invalid fields: {e}") from e
    # YAML tags such as !!binary load into values with no JSON form
    try:
        return RuntimeExitInfo.model_validate_json(info.model_dump_json(by_alias=True))
    except ValueError as e:
        raise ParseError(f"Runtime exit output is not JSON serializable: {e}") from e


def extract_launcher_output(diag: Optional[str]) -> Optional[str]:
    if not diag:
        return None
    diag = _bound(diag)
    span = _runtime_span(diag)
    if span is not None:
        start = span[0] - len(RUNTIME_START_ANCHOR)
        end = span[1] + len(RUNTIME_END_ANCHOR)
        diag = diag[:start] + diag[end:]
    return diag.strip()


def extract_exit_messages(diag: Optional[str], job_name: Optional[str] = None) -> ExitMessages:
    try:
        runtime = extract_runtime_output(diag)
    except ParseError as e:
        logger.warning(f"Dropping runtime exit output: {e}", extra={"event": "diagnostics_parse", "job_name": job_name})
        runtime = None

    return ExitMessages(
        container=extract_container_stderr(diag),
        runtime=runtime,
        launcher=extract_launcher_output(diag),
    )
