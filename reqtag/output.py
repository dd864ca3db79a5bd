"""reqtag output - plain-text rendering of outcomes, previews and history."""

from __future__ import annotations

from datetime import datetime, timezone

from reqtag.executor import ExecutionOutcome, ResolvedRequest
from reqtag.models import HistoryEntry
from reqtag.templating import unresolved_placeholders


def format_outcome(
    outcome: ExecutionOutcome,
    verbose: bool = False,
    raw: bool = False,
) -> str:
    """Format an execution outcome for CLI output.

    Default:
        STATUS: 200 OK
        TIME: 45ms
        BODY:
        {...}

    verbose adds the dispatched URL and response headers; raw prints
    the response body only.
    """
    if not outcome.success:
        return f"ERROR: {outcome.error}"

    if raw:
        return outcome.response_body

    lines: list[str] = []
    status_line = f"STATUS: {outcome.status}"
    if outcome.status_text:
        status_line += f" {outcome.status_text}"
    lines.append(status_line)
    lines.append(f"TIME: {outcome.duration}ms")

    if verbose:
        lines.append(f"URL: {outcome.resolved_url}")
        if outcome.response_headers:
            lines.append("HEADERS:")
            for key, value in outcome.response_headers.items():
                lines.append(f"  {key}: {value}")

    if outcome.response_body:
        lines.append("BODY:")
        lines.append(outcome.response_body)

    return "\n".join(lines)


def format_resolved(resolved: ResolvedRequest, variables: dict[str, str]) -> str:
    """Show what would be sent, flagging placeholders with no binding."""
    lines = [f"{resolved.method} {resolved.url}"]
    if resolved.headers:
        lines.append("HEADERS:")
        for key, value in resolved.headers.items():
            lines.append(f"  {key}: {value}")
    if resolved.query_params:
        lines.append("PARAMS:")
        for key, value in resolved.query_params.items():
            lines.append(f"  {key}={value}")
    if resolved.dispatch_body:
        lines.append("BODY:")
        lines.append(resolved.dispatch_body)

    texts = [resolved.url, resolved.body]
    texts.extend(resolved.headers.values())
    texts.extend(resolved.query_params.values())
    missing: list[str] = []
    for text in texts:
        for name in unresolved_placeholders(text, variables):
            if name not in missing:
                missing.append(name)
    if missing:
        lines.append(f"UNRESOLVED: {', '.join(missing)}")
    return "\n".join(lines)


def format_timestamp(ms: int) -> str:
    return datetime.fromtimestamp(ms / 1000, tz=timezone.utc).isoformat(timespec="seconds")


def format_history_line(index: int, entry: HistoryEntry) -> str:
    if entry.error:
        result = f"ERROR {entry.error}"
    else:
        result = f"{entry.status} ({entry.duration}ms)"
    ts = format_timestamp(entry.timestamp)
    return f"  [{index}] {entry.id}  {entry.method:<7} {entry.resolved_url}  {result}  ({ts})"


def format_history_entry(entry: HistoryEntry) -> str:
    lines = [
        f"ID: {entry.id}",
        f"TIME: {format_timestamp(entry.timestamp)}",
        f"REQUEST: {entry.method} {entry.url}",
        f"RESOLVED: {entry.method} {entry.resolved_url}",
    ]
    if entry.resolved_headers:
        lines.append("REQUEST HEADERS:")
        for key, value in entry.resolved_headers.items():
            lines.append(f"  {key}: {value}")
    if entry.resolved_body:
        lines.append("REQUEST BODY:")
        lines.append(entry.resolved_body)
    if entry.error:
        lines.append(f"ERROR: {entry.error}")
    else:
        status_line = f"STATUS: {entry.status}"
        if entry.status_text:
            status_line += f" {entry.status_text}"
        lines.append(status_line)
    lines.append(f"DURATION: {entry.duration}ms")
    if entry.response_headers:
        lines.append("RESPONSE HEADERS:")
        for key, value in entry.response_headers.items():
            lines.append(f"  {key}: {value}")
    if entry.response_body:
        lines.append("RESPONSE BODY:")
        lines.append(entry.response_body)
    return "\n".join(lines)
