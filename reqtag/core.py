"""reqtag core - config loading, env resolution, workspace import."""

from __future__ import annotations

import json
import logging
import os
import re
from pathlib import Path
from typing import Any

import yaml
from dotenv import dotenv_values
from pydantic import BaseModel, Field, field_validator

from reqtag.models import NotFoundError, ValidationError, parse_entity
from reqtag.store import Store

logger = logging.getLogger(__name__)

GLOBAL_DIR = Path.home() / ".reqtag"
GLOBAL_CONFIG = GLOBAL_DIR / "config.yaml"
GLOBAL_STORE = GLOBAL_DIR / "store.json"

CWD_CONFIG_CANDIDATES = [
    ".reqtag.yaml",
    ".reqtag.yml",
    "reqtag.yaml",
    "reqtag.yml",
]

DEFAULTS = {
    "timeout": 30,
    "history_limit": 50,
    "tag_workers": 4,
}


def resolve_path(
    candidates: list[Path],
    default: Path | None = None,
) -> Path | None:
    """Return the first existing path from candidates, else default."""
    for p in candidates:
        if p.exists():
            return p.resolve()
    return default


def resolve_config_path(config_file: str | None) -> Path | None:
    """Find the config file to use.

    Resolution order:
      1. Explicit -c flag (hard — no fallthrough if missing)
      2. .reqtag.yaml (variants) in CWD
      3. ~/.reqtag/config.yaml
    """
    if config_file:
        return resolve_path([Path(config_file)])
    return resolve_path([Path(c) for c in CWD_CONFIG_CANDIDATES] + [GLOBAL_CONFIG])


def load_config(config_path: str | Path | None) -> dict:
    """Load YAML config file. Missing file means built-in defaults.

    Stores '_config_dir' in the returned dict so a relative store path
    resolves against the config file's directory.
    """
    if config_path is None:
        return {"defaults": dict(DEFAULTS), "_config_dir": None}
    path = Path(config_path)
    if not path.exists():
        return {"defaults": dict(DEFAULTS), "_config_dir": None}
    with open(path) as f:
        data = yaml.safe_load(f) or {}
    if not isinstance(data, dict):
        raise ValidationError(f"Config {path} must be a mapping")
    defaults = dict(DEFAULTS)
    defaults.update(data.get("defaults") or {})
    return {
        "defaults": defaults,
        "_config_dir": path.resolve().parent,
    }


def load_env(env_file: str | None, base_dir: str | Path = ".") -> dict[str, str]:
    """Load .env file and merge with os.environ (.env wins)."""
    env = dict(os.environ)
    if env_file:
        dotenv_path = Path(base_dir) / env_file
        if dotenv_path.exists():
            dotenv_vars = dotenv_values(str(dotenv_path))
            env.update({k: v for k, v in dotenv_vars.items() if v is not None})
        else:
            logger.warning("env_file %s not found", dotenv_path)
    return env


def resolve_value(value: str | None, env: dict[str, str]) -> str | None:
    """Resolve $VAR and ${VAR} references in a config value.

    Unknown variables are left as written.
    """
    if value is None:
        return None
    if not isinstance(value, str):
        return value

    def _replace(m: re.Match) -> str:
        var_name = m.group(1) or m.group(2)
        return env.get(var_name, m.group(0))

    return re.sub(r"\$\{([^}]+)\}|\$([A-Za-z_][A-Za-z0-9_]*)", _replace, value)


def resolve_store_path(
    cli_store: str | None,
    config: dict,
    env: dict[str, str],
) -> Path:
    """Pick the store file.

    Resolution order:
      1. --store CLI flag (relative to CWD)
      2. store from config defaults (relative to config file)
      3. ~/.reqtag/store.json
    """
    if cli_store:
        return Path(os.path.expanduser(cli_store))
    configured = resolve_value(config.get("defaults", {}).get("store"), env)
    if configured:
        p = Path(os.path.expanduser(configured))
        config_dir = config.get("_config_dir")
        if not p.is_absolute() and config_dir:
            p = Path(config_dir) / p
        return p
    return GLOBAL_STORE


# ── Workspace import ─────────────────────────────────────────────────────


class WorkspaceFile(BaseModel):
    """Top-level shape of a workspace YAML file.

    Entries are plain mappings here; their fields are validated by the
    entity models when the store writes them.

        project: demo
        selected_environment: dev
        environments:
          - name: dev
            variables: {BASE_URL: https://api.example.com}
        tags:
          - name: auth
            color: blue
            headers: {Authorization: "Bearer {{TOKEN}}"}
        requests:
          - name: list-users
            method: GET
            url: "{{BASE_URL}}/users"
            tags: [auth]
    """

    project: str = Field(min_length=1)
    selected_environment: str | None = None
    environments: list[dict[str, Any]] = []
    tags: list[dict[str, Any]] = []
    requests: list[dict[str, Any]] = []

    @field_validator("environments", "tags", "requests", mode="before")
    @classmethod
    def _none_as_empty(cls, value: Any) -> Any:
        return [] if value is None else value


def load_workspace_file(path: str | Path) -> WorkspaceFile:
    """Read and shape-check a workspace YAML file."""
    p = Path(path)
    with open(p) as f:
        data = yaml.safe_load(f)
    return parse_entity(WorkspaceFile, data, f"workspace file {p}")


def _find_or_none(find, *args):
    try:
        return find(*args)
    except NotFoundError:
        return None


def import_workspace(store: Store, data: WorkspaceFile | dict) -> dict[str, Any]:
    """Create or update the project, environments, tags and requests in data.

    Entities are matched by name; existing ones are updated in place so
    their history is kept. The import is all-or-nothing: if any entry is
    invalid the store is left as it was. Returns a summary of what was
    touched.
    """
    if not isinstance(data, WorkspaceFile):
        data = parse_entity(WorkspaceFile, data, "workspace")

    with store.atomic():
        summary = _import_entries(store, data)

    project = summary["project"]
    logger.info(
        "Imported project %s: %d environment(s), %d tag(s), %d request(s)",
        project.name,
        len(summary["environments"]),
        len(summary["tags"]),
        len(summary["requests"]),
    )
    return summary


def _import_entries(store: Store, data: WorkspaceFile) -> dict[str, Any]:
    summary: dict[str, Any] = {
        "project": None,
        "environments": [],
        "tags": [],
        "requests": [],
    }

    project = _find_or_none(store.find_project, data.project)
    if project is None:
        project = store.create_project(data.project)
    summary["project"] = project

    envs_by_name = {}
    for item in data.environments:
        name = item.get("name")
        existing = _find_or_none(store.find_environment, project.id, name) if name else None
        if existing:
            env = store.update_environment(existing.id, variables=item.get("variables") or {})
        else:
            env = store.create_environment(project.id, name, item.get("variables"))
        envs_by_name[env.name] = env
        summary["environments"].append(env)

    tags_by_name = {}
    for item in data.tags:
        fields = {
            "color": item.get("color", "blue"),
            "icon": item.get("icon"),
            "description": item.get("description"),
            "headers": item.get("headers") or {},
            "query_params": item.get("query_params") or item.get("queryParams") or {},
        }
        name = item.get("name")
        existing = _find_or_none(store.find_tag, name) if name else None
        if existing:
            tag = store.update_tag(existing.id, **fields)
        else:
            tag = store.create_tag(name, **fields)
        tags_by_name[tag.name] = tag
        summary["tags"].append(tag)

    for item in data.requests:
        tag_ids = []
        for tag_name in item.get("tags") or []:
            tag = tags_by_name.get(tag_name) or store.find_tag(tag_name)
            tag_ids.append(tag.id)
        fields = {
            "method": item.get("method", "GET"),
            "url": item.get("url", ""),
            "headers": item.get("headers") or {},
            "query_params": item.get("query_params") or item.get("queryParams") or {},
            "body": _body_text(item.get("body")),
            "tag_ids": tag_ids,
        }
        name = item.get("name")
        existing = _find_or_none(store.find_request, project.id, name) if name else None
        if existing:
            request = store.update_request(existing.id, **fields)
        else:
            request = store.create_request(project.id, name, **fields)
        summary["requests"].append(request)

    if data.selected_environment:
        selected = data.selected_environment
        env = envs_by_name.get(selected) or store.find_environment(project.id, selected)
        summary["project"] = store.set_selected_environment(project.id, env.id)

    return summary


def _body_text(body: Any) -> str | None:
    """Bodies are stored as text; YAML mappings/lists are dumped as JSON."""
    if body is None or isinstance(body, str):
        return body
    if isinstance(body, (dict, list)):
        return json.dumps(body, indent=2)
    raise ValidationError(f"request body must be text or a mapping, got {type(body).__name__}")
