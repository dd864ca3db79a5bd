"""reqtag executor - resolve a stored request and execute it over HTTP."""

from __future__ import annotations

import json
import logging
import time
from typing import Callable

import requests

from reqtag.models import BODYLESS_METHODS, RequestDefinition, Tag
from reqtag.policy import merge_headers, merge_params
from reqtag.templating import resolve_template, resolve_template_object
from reqtag.urls import build_final_url

logger = logging.getLogger(__name__)

DEFAULT_TIMEOUT = 30


class ResolvedRequest:
    """A request after template resolution, tag merging and URL building."""

    def __init__(
        self,
        method: str,
        url: str,
        headers: dict[str, str],
        query_params: dict[str, str],
        body: str,
    ):
        self.method = method
        self.url = url
        self.headers = headers
        self.query_params = query_params
        self.body = body

    @property
    def dispatch_body(self) -> str | None:
        """Body actually sent: never for GET/HEAD/OPTIONS, never when empty."""
        if self.method in BODYLESS_METHODS or not self.body:
            return None
        return self.body


class ExecutionOutcome:
    """Result of one execution attempt."""

    def __init__(self):
        self.success: bool = False
        self.status: int | None = None
        self.status_text: str | None = None
        self.response_headers: dict[str, str] = {}
        self.response_body: str = ""
        self.error: str | None = None
        self.duration: int = 0  # milliseconds
        self.resolved_url: str = ""
        self.resolved_headers: dict[str, str] = {}
        self.resolved_query_params: dict[str, str] = {}
        self.resolved_body: str | None = None


def resolve_request(
    definition: RequestDefinition,
    tags: list[Tag],
    variables: dict[str, str] | None = None,
) -> ResolvedRequest:
    """Resolve templates, merge tag policy and build the dispatch URL.

    Pure function of (definition, ordered tags, variables).
    """
    variables = variables or {}

    url = resolve_template(definition.url, variables)
    request_headers = resolve_template_object(definition.headers, variables)
    request_params = resolve_template_object(definition.query_params, variables)
    body = resolve_template(definition.body, variables)

    tag_headers = [resolve_template_object(t.headers, variables) for t in tags]
    tag_params = [resolve_template_object(t.query_params, variables) for t in tags]

    headers = merge_headers(tag_headers, request_headers)
    params = merge_params(tag_params, request_params)

    return ResolvedRequest(
        method=definition.method.upper(),
        url=build_final_url(url, params),
        headers=headers,
        query_params=params,
        body=body,
    )


def is_json_content_type(content_type: str | None) -> bool:
    if not content_type:
        return False
    media_type = content_type.split(";", 1)[0].strip().lower()
    return media_type == "application/json" or media_type.endswith("+json")


def _reject_constant(name: str):
    raise ValueError(f"{name} is not valid JSON")


def format_response_body(content_type: str | None, text: str) -> str:
    """Pretty-print JSON bodies with 2-space indent, pass anything else through."""
    if not is_json_content_type(content_type):
        return text
    try:
        data = json.loads(text, parse_constant=_reject_constant)
    except ValueError:
        return text
    return json.dumps(data, indent=2, ensure_ascii=False)


def execute_request(
    definition: RequestDefinition,
    tags: list[Tag] | None = None,
    variables: dict[str, str] | None = None,
    timeout: float = DEFAULT_TIMEOUT,
    clock: Callable[[], float] = time.monotonic,
) -> ExecutionOutcome:
    """Execute a stored request and return structured outcome.

    - Any HTTP response, 4xx/5xx included, is a successful execution
    - Transport failures set success=False and error, and report the
      unresolved request values
    - Exactly one network call, no retries
    - Never raises - always returns ExecutionOutcome
    """
    outcome = ExecutionOutcome()
    start = clock()

    try:
        resolved = resolve_request(definition, tags or [], variables)

        resp = requests.request(
            method=resolved.method,
            url=resolved.url,
            headers=resolved.headers,
            data=resolved.dispatch_body.encode("utf-8") if resolved.dispatch_body else None,
            timeout=timeout,
            allow_redirects=True,
        )
        text = resp.text
        outcome.duration = int((clock() - start) * 1000)

        outcome.success = True
        outcome.status = resp.status_code
        outcome.status_text = resp.reason or ""
        outcome.response_headers = {str(k): str(v) for k, v in resp.headers.items()}
        outcome.response_body = format_response_body(resp.headers.get("content-type"), text)
        outcome.resolved_url = resolved.url
        outcome.resolved_headers = resolved.headers
        outcome.resolved_query_params = resolved.query_params
        outcome.resolved_body = resolved.body
        logger.debug(
            "%s %s -> %s (%dms)",
            resolved.method,
            resolved.url,
            resp.status_code,
            outcome.duration,
        )
        return outcome

    except requests.exceptions.Timeout:
        outcome.error = f"Request timed out after {timeout}s"
    except requests.exceptions.ConnectionError as e:
        outcome.error = f"Connection error: {e}"
    except requests.exceptions.RequestException as e:
        outcome.error = f"Request failed: {e}"
    except Exception as e:
        outcome.error = f"Unexpected error: {e}"

    outcome.duration = int((clock() - start) * 1000)
    outcome.success = False
    outcome.resolved_url = definition.url
    outcome.resolved_headers = dict(definition.headers)
    outcome.resolved_query_params = dict(definition.query_params)
    outcome.resolved_body = definition.body
    logger.debug("%s %s failed: %s", definition.method, definition.url, outcome.error)
    return outcome
