"""reqtag service - load a saved request, run it, record it."""

from __future__ import annotations

import logging
import time
from dataclasses import dataclass
from typing import Callable

from reqtag.executor import (
    DEFAULT_TIMEOUT,
    ExecutionOutcome,
    ResolvedRequest,
    execute_request,
    resolve_request,
)
from reqtag.history import ExecutionContext, HistoryRecorder
from reqtag.models import Environment, RequestDefinition, Tag
from reqtag.policy import fetch_tags
from reqtag.store import Store

logger = logging.getLogger(__name__)


@dataclass
class SendResult:
    outcome: ExecutionOutcome
    history_id: str | None
    history_error: str | None = None


def active_environment(
    store: Store,
    request: RequestDefinition,
    environment_id: str | None = None,
) -> Environment | None:
    """The explicitly requested environment, else the project's selected one."""
    if environment_id is not None:
        return store.get_environment(environment_id)
    project = store.get_project(request.project_id)
    if project.selected_environment_id is None:
        return None
    return store.get_environment(project.selected_environment_id)


def _load(
    store: Store,
    request_id: str,
    environment_id: str | None,
    tag_workers: int,
) -> tuple[RequestDefinition, list[Tag], Environment | None]:
    request = store.get_request(request_id)
    tags = fetch_tags(request.tag_ids, store.get_tag, max_workers=tag_workers)
    env = active_environment(store, request, environment_id)
    return request, tags, env


def preview_request(
    store: Store,
    request_id: str,
    environment_id: str | None = None,
    tag_workers: int = 4,
) -> tuple[ResolvedRequest, Environment | None]:
    """Resolve a saved request without sending it."""
    request, tags, env = _load(store, request_id, environment_id, tag_workers)
    return resolve_request(request, tags, env.variables if env else {}), env


def send_request(
    store: Store,
    request_id: str,
    environment_id: str | None = None,
    timeout: float = DEFAULT_TIMEOUT,
    recorder: HistoryRecorder | None = None,
    tag_workers: int = 4,
    clock: Callable[[], float] = time.monotonic,
) -> SendResult:
    """Execute a saved request and record the attempt in history.

    The history write happens after the network call; if it fails the
    outcome is still returned, with history_error set.
    """
    request, tags, env = _load(store, request_id, environment_id, tag_workers)
    recorder = recorder or HistoryRecorder(store)

    logger.info(
        "Sending %s %s with %d tag(s)%s",
        request.method,
        request.name,
        len(tags),
        f" in environment {env.name}" if env else "",
    )
    outcome = execute_request(
        request,
        tags,
        env.variables if env else {},
        timeout=timeout,
        clock=clock,
    )

    context = ExecutionContext(
        project_id=request.project_id,
        request_id=request.id,
        method=request.method,
        url=request.url,
        environment_id=env.id if env else None,
    )
    history_id = recorder.record(outcome, context)
    return SendResult(
        outcome=outcome,
        history_id=history_id,
        history_error=recorder.last_error,
    )
