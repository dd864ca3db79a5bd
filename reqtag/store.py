"""reqtag store - JSON document store for projects, requests, tags and history.

The whole workspace lives in one JSON file:

    {
      "projects":     {id: {...}},
      "requests":     {id: {...}},
      "tags":         {id: {...}},
      "environments": {id: {...}},
      "history":      {id: {...}},
      "shares":       {id: {...}}
    }

Each table keeps insertion order, so "newest first" is reverse order.
Passing path=None keeps everything in memory.

Every change goes through atomic(): if validation or the file write
fails, the in-memory tables are restored to what they were before.
"""

from __future__ import annotations

import copy
import json
import logging
import os
import secrets
import threading
import time
import uuid
from contextlib import contextmanager
from pathlib import Path
from typing import Any, Callable, Iterator

from reqtag.models import (
    BODYLESS_METHODS,
    Environment,
    HistoryEntry,
    NotFoundError,
    Project,
    ReqtagError,
    RequestDefinition,
    Share,
    Tag,
    ValidationError,
    parse_entity,
)

logger = logging.getLogger(__name__)

TABLES = ("projects", "requests", "tags", "environments", "history", "shares")

REQUEST_FIELDS = {
    "name": "name",
    "method": "method",
    "url": "url",
    "headers": "headers",
    "query_params": "queryParams",
    "body": "body",
    "tag_ids": "tagIds",
}

TAG_FIELDS = {
    "name": "name",
    "color": "color",
    "icon": "icon",
    "description": "description",
    "headers": "headers",
    "query_params": "queryParams",
}


class StoreError(ReqtagError):
    """Raised when the store file cannot be read or written."""


def _now_ms() -> int:
    return int(time.time() * 1000)


def _new_id() -> str:
    return uuid.uuid4().hex


def _new_share_token() -> str:
    return secrets.token_urlsafe(24)


class Store:
    def __init__(
        self,
        path: str | Path | None = None,
        clock: Callable[[], int] = _now_ms,
        id_factory: Callable[[], str] = _new_id,
        token_factory: Callable[[], str] = _new_share_token,
    ):
        self.path = Path(path) if path is not None else None
        self.clock = clock
        self.id_factory = id_factory
        self.token_factory = token_factory
        self._lock = threading.RLock()
        self._in_atomic = False
        self._data = self._load()

    # ── Persistence ─────────────────────────────────────────────────────

    def _load(self) -> dict[str, dict[str, dict]]:
        data: dict[str, Any] = {}
        if self.path is not None and self.path.exists():
            try:
                data = json.loads(self.path.read_text()) or {}
            except (OSError, ValueError) as e:
                raise StoreError(f"Cannot read store {self.path}: {e}") from e
            if not isinstance(data, dict):
                raise StoreError(f"Store {self.path} is not a JSON object")
        return {table: dict(data.get(table) or {}) for table in TABLES}

    def _save(self) -> None:
        if self.path is None:
            return
        tmp = self.path.with_name(self.path.name + ".tmp")
        try:
            self.path.parent.mkdir(parents=True, exist_ok=True)
            tmp.write_text(json.dumps(self._data, indent=2))
            os.replace(tmp, self.path)
        except OSError as e:
            raise StoreError(f"Cannot write store {self.path}: {e}") from e

    @contextmanager
    def atomic(self) -> Iterator[Store]:
        """Group changes into one write.

        Nested blocks join the outermost one. Any exception restores the
        tables as they were when the outermost block started, so memory
        never holds state that did not reach the file.
        """
        with self._lock:
            if self._in_atomic:
                yield self
                return
            snapshot = copy.deepcopy(self._data)
            self._in_atomic = True
            try:
                yield self
                self._save()
            except Exception:
                self._data = snapshot
                raise
            finally:
                self._in_atomic = False

    def _row(self, table: str, kind: str, ident: str) -> dict:
        row = self._data[table].get(ident)
        if row is None:
            raise NotFoundError(kind, ident)
        return row

    def _put(self, table: str, entity) -> None:
        self._data[table][entity.id] = entity.to_row()

    def _newest_first(self, table: str, **match: Any) -> list[dict]:
        rows = [
            row
            for row in self._data[table].values()
            if all(row.get(k) == v for k, v in match.items())
        ]
        rows.reverse()
        return rows

    def _delete_rows(self, table: str, **match: Any) -> list[str]:
        ids = [
            ident
            for ident, row in self._data[table].items()
            if all(row.get(k) == v for k, v in match.items())
        ]
        for ident in ids:
            del self._data[table][ident]
        return ids

    def _delete_history_rows(self, **match: Any) -> None:
        for history_id in self._delete_rows("history", **match):
            self._delete_rows("shares", historyId=history_id)

    def _stamp(self, payload: dict) -> dict:
        now = self.clock()
        payload["id"] = self.id_factory()
        payload["createdAt"] = now
        payload["updatedAt"] = now
        return payload

    @staticmethod
    def _clear_body_if_bodyless(row: dict) -> dict:
        method = row.get("method")
        if isinstance(method, str) and method.upper() in BODYLESS_METHODS:
            row["body"] = None
        return row

    @staticmethod
    def _apply(row: dict, fields: dict[str, Any], keys: dict[str, str], kind: str) -> dict:
        unknown = set(fields) - set(keys)
        if unknown:
            raise ValidationError(f"Unknown {kind} fields: {', '.join(sorted(unknown))}")
        updated = dict(row)
        for name, value in fields.items():
            updated[keys[name]] = value
        return updated

    # ── Projects ────────────────────────────────────────────────────────

    def create_project(self, name: str) -> Project:
        with self.atomic():
            project = parse_entity(Project, self._stamp({"name": name}))
            self._put("projects", project)
            return project

    def get_project(self, project_id: str) -> Project:
        return parse_entity(Project, self._row("projects", "Project", project_id))

    def list_projects(self) -> list[Project]:
        return [parse_entity(Project, r) for r in self._newest_first("projects")]

    def find_project(self, name_or_id: str) -> Project:
        for project in self.list_projects():
            if project.id == name_or_id or project.name == name_or_id:
                return project
        raise NotFoundError("Project", name_or_id)

    def update_project(self, project_id: str, name: str) -> Project:
        with self.atomic():
            row = dict(self._row("projects", "Project", project_id))
            row.update({"name": name, "updatedAt": self.clock()})
            project = parse_entity(Project, row)
            self._put("projects", project)
            return project

    def set_selected_environment(
        self,
        project_id: str,
        environment_id: str | None,
    ) -> Project:
        with self.atomic():
            row = dict(self._row("projects", "Project", project_id))
            if environment_id is not None:
                env = self.get_environment(environment_id)
                if env.project_id != project_id:
                    raise ValidationError(
                        f"Environment '{env.name}' belongs to a different project",
                    )
            row["selectedEnvironmentId"] = environment_id
            project = parse_entity(Project, row)
            self._put("projects", project)
            return project

    def delete_project(self, project_id: str) -> None:
        """Delete a project with its requests, environments, history and shares."""
        with self.atomic():
            self._row("projects", "Project", project_id)
            self._delete_rows("requests", projectId=project_id)
            self._delete_rows("environments", projectId=project_id)
            self._delete_history_rows(projectId=project_id)
            self._delete_rows("shares", projectId=project_id)
            del self._data["projects"][project_id]

    # ── Requests ────────────────────────────────────────────────────────

    def create_request(
        self,
        project_id: str,
        name: str,
        method: str = "GET",
        url: str = "",
        headers: dict[str, str] | None = None,
        query_params: dict[str, str] | None = None,
        body: str | None = None,
        tag_ids: list[str] | None = None,
    ) -> RequestDefinition:
        with self.atomic():
            self._row("projects", "Project", project_id)
            for tag_id in tag_ids or []:
                self._row("tags", "Tag", tag_id)
            payload = self._stamp(
                {
                    "projectId": project_id,
                    "name": name,
                    "method": method,
                    "url": url,
                    "headers": headers,
                    "queryParams": query_params,
                    "body": body,
                    "tagIds": tag_ids,
                },
            )
            request = parse_entity(RequestDefinition, self._clear_body_if_bodyless(payload))
            self._put("requests", request)
            return request

    def get_request(self, request_id: str) -> RequestDefinition:
        return parse_entity(RequestDefinition, self._row("requests", "Request", request_id))

    def list_requests(self, project_id: str) -> list[RequestDefinition]:
        return [
            parse_entity(RequestDefinition, r)
            for r in self._newest_first("requests", projectId=project_id)
        ]

    def find_request(self, project_id: str, name_or_id: str) -> RequestDefinition:
        for request in self.list_requests(project_id):
            if request.id == name_or_id or request.name == name_or_id:
                return request
        raise NotFoundError("Request", name_or_id)

    def update_request(self, request_id: str, **fields: Any) -> RequestDefinition:
        """Update request fields (name, method, url, headers, query_params, body, tag_ids).

        Switching the method to GET, HEAD or OPTIONS clears the body.
        """
        with self.atomic():
            row = self._apply(
                self._row("requests", "Request", request_id),
                fields,
                REQUEST_FIELDS,
                "request",
            )
            for tag_id in fields.get("tag_ids") or []:
                self._row("tags", "Tag", tag_id)
            row["updatedAt"] = self.clock()
            request = parse_entity(RequestDefinition, self._clear_body_if_bodyless(row))
            self._put("requests", request)
            return request

    def delete_request(self, request_id: str) -> None:
        """Delete a request and every history entry (and share) referencing it."""
        with self.atomic():
            self._row("requests", "Request", request_id)
            self._delete_history_rows(requestId=request_id)
            del self._data["requests"][request_id]

    # ── Tags ────────────────────────────────────────────────────────────

    def create_tag(
        self,
        name: str,
        color: str = "blue",
        icon: str | None = None,
        description: str | None = None,
        headers: dict[str, str] | None = None,
        query_params: dict[str, str] | None = None,
    ) -> Tag:
        with self.atomic():
            tag = parse_entity(
                Tag,
                self._stamp(
                    {
                        "name": name,
                        "color": color,
                        "icon": icon,
                        "description": description,
                        "headers": headers,
                        "queryParams": query_params,
                    },
                ),
            )
            self._put("tags", tag)
            return tag

    def get_tag(self, tag_id: str) -> Tag:
        return parse_entity(Tag, self._row("tags", "Tag", tag_id))

    def list_tags(self) -> list[Tag]:
        return [parse_entity(Tag, r) for r in self._newest_first("tags")]

    def find_tag(self, name_or_id: str) -> Tag:
        for tag in self.list_tags():
            if tag.id == name_or_id or tag.name == name_or_id:
                return tag
        raise NotFoundError("Tag", name_or_id)

    def update_tag(self, tag_id: str, **fields: Any) -> Tag:
        with self.atomic():
            row = self._apply(self._row("tags", "Tag", tag_id), fields, TAG_FIELDS, "tag")
            row["updatedAt"] = self.clock()
            tag = parse_entity(Tag, row)
            self._put("tags", tag)
            return tag

    def delete_tag(self, tag_id: str) -> None:
        """Delete a tag and detach it from every request."""
        with self.atomic():
            self._row("tags", "Tag", tag_id)
            now = self.clock()
            for row in self._data["requests"].values():
                if tag_id in row.get("tagIds", []):
                    row["tagIds"] = [t for t in row["tagIds"] if t != tag_id]
                    row["updatedAt"] = now
            del self._data["tags"][tag_id]

    # ── Environments ────────────────────────────────────────────────────

    def create_environment(
        self,
        project_id: str,
        name: str,
        variables: dict[str, str] | None = None,
    ) -> Environment:
        with self.atomic():
            self._row("projects", "Project", project_id)
            env = parse_entity(
                Environment,
                self._stamp({"projectId": project_id, "name": name, "variables": variables}),
            )
            self._put("environments", env)
            return env

    def get_environment(self, environment_id: str) -> Environment:
        return parse_entity(
            Environment,
            self._row("environments", "Environment", environment_id),
        )

    def list_environments(self, project_id: str) -> list[Environment]:
        return [
            parse_entity(Environment, r)
            for r in self._newest_first("environments", projectId=project_id)
        ]

    def find_environment(self, project_id: str, name_or_id: str) -> Environment:
        for env in self.list_environments(project_id):
            if env.id == name_or_id or env.name == name_or_id:
                return env
        raise NotFoundError("Environment", name_or_id)

    def update_environment(
        self,
        environment_id: str,
        name: str | None = None,
        variables: dict[str, str] | None = None,
    ) -> Environment:
        with self.atomic():
            row = dict(self._row("environments", "Environment", environment_id))
            if name is not None:
                row["name"] = name
            if variables is not None:
                row["variables"] = variables
            row["updatedAt"] = self.clock()
            env = parse_entity(Environment, row)
            self._put("environments", env)
            return env

    def delete_environment(self, environment_id: str) -> None:
        """Delete an environment, unselecting it wherever it was selected."""
        with self.atomic():
            self._row("environments", "Environment", environment_id)
            for row in self._data["projects"].values():
                if row.get("selectedEnvironmentId") == environment_id:
                    row["selectedEnvironmentId"] = None
            del self._data["environments"][environment_id]

    # ── History ─────────────────────────────────────────────────────────

    def insert_history(self, fields: dict) -> HistoryEntry:
        """Append a history entry. Entries are never updated afterwards."""
        with self.atomic():
            now = self.clock()
            payload = dict(fields)
            payload["id"] = self.id_factory()
            payload.setdefault("timestamp", now)
            payload["createdAt"] = now
            entry = parse_entity(HistoryEntry, payload)
            self._put("history", entry)
            return entry

    def get_history(self, history_id: str) -> HistoryEntry:
        return parse_entity(HistoryEntry, self._row("history", "History entry", history_id))

    def list_history(self, project_id: str, limit: int = 50) -> list[HistoryEntry]:
        rows = self._newest_first("history", projectId=project_id)
        return [parse_entity(HistoryEntry, r) for r in rows[: max(limit, 0)]]

    def delete_history(self, history_id: str) -> bool:
        """Delete one entry. Returns False when it was already absent."""
        with self._lock:
            if history_id not in self._data["history"]:
                return False
            with self.atomic():
                self._delete_history_rows(id=history_id)
            return True

    # ── Shares ──────────────────────────────────────────────────────────

    def create_share(self, project_id: str, history_id: str, is_public: bool = False) -> Share:
        with self.atomic():
            self._row("projects", "Project", project_id)
            self._row("history", "History entry", history_id)
            share = parse_entity(
                Share,
                {
                    "id": self.id_factory(),
                    "projectId": project_id,
                    "historyId": history_id,
                    "shareToken": self.token_factory(),
                    "isPublic": is_public,
                    "createdAt": self.clock(),
                },
            )
            self._put("shares", share)
            return share

    def get_share_by_token(self, share_token: str) -> tuple[Share, HistoryEntry | None] | None:
        for row in self._data["shares"].values():
            if row.get("shareToken") == share_token:
                share = parse_entity(Share, row)
                history_row = self._data["history"].get(share.history_id)
                history = parse_entity(HistoryEntry, history_row) if history_row else None
                return share, history
        return None

    def list_shares(self, project_id: str) -> list[Share]:
        return [parse_entity(Share, r) for r in self._newest_first("shares", projectId=project_id)]

    def delete_share(self, share_id: str) -> None:
        with self.atomic():
            self._row("shares", "Share", share_id)
            del self._data["shares"][share_id]
