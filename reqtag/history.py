"""reqtag history - append-only record of every execution attempt."""

from __future__ import annotations

import logging
from dataclasses import dataclass

from reqtag.executor import ExecutionOutcome
from reqtag.models import HistoryEntry, ReqtagError
from reqtag.store import Store

logger = logging.getLogger(__name__)

DEFAULT_LIMIT = 50


@dataclass(frozen=True)
class ExecutionContext:
    """What triggered an execution: ids plus the unresolved method and URL."""

    project_id: str
    request_id: str
    method: str
    url: str
    environment_id: str | None = None


def history_fields(outcome: ExecutionOutcome, context: ExecutionContext) -> dict:
    """Build the stored history payload for one outcome.

    Failed executions carry error and no status; successful ones carry
    status and response data and no error.
    """
    fields = {
        "projectId": context.project_id,
        "requestId": context.request_id,
        "environmentId": context.environment_id,
        "method": context.method,
        "url": context.url,
        "resolvedUrl": outcome.resolved_url,
        "resolvedHeaders": dict(outcome.resolved_headers),
        "resolvedQueryParams": dict(outcome.resolved_query_params),
        "resolvedBody": outcome.resolved_body or None,
        "duration": outcome.duration,
    }
    if outcome.success:
        fields.update(
            {
                "status": outcome.status,
                "statusText": outcome.status_text,
                "responseHeaders": dict(outcome.response_headers),
                "responseBody": outcome.response_body,
            },
        )
    else:
        fields["error"] = outcome.error or "Unknown error"
    return fields


class HistoryRecorder:
    """Persist and query history entries.

    A failed write never affects the outcome it describes: record()
    logs the problem, keeps it in last_error and returns None.
    """

    def __init__(self, store: Store):
        self.store = store
        self.last_error: str | None = None

    def record(self, outcome: ExecutionOutcome, context: ExecutionContext) -> str | None:
        self.last_error = None
        try:
            entry = self.store.insert_history(history_fields(outcome, context))
        except (ReqtagError, OSError) as e:
            self.last_error = str(e)
            logger.warning(
                "Could not save history for request %s: %s",
                context.request_id,
                e,
            )
            return None
        logger.debug("Recorded history %s for request %s", entry.id, context.request_id)
        return entry.id

    def list(self, project_id: str, limit: int = DEFAULT_LIMIT) -> list[HistoryEntry]:
        """Entries for project_id, newest first."""
        return self.store.list_history(project_id, limit=limit)

    def get(self, history_id: str) -> HistoryEntry:
        return self.store.get_history(history_id)

    def delete(self, history_id: str) -> None:
        """Remove one entry. Deleting a missing id is not an error."""
        if not self.store.delete_history(history_id):
            logger.debug("History %s already absent", history_id)
