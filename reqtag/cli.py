"""reqtag CLI - send saved API requests with tags and environments."""

import logging
import sys

import click
import yaml

TOOL_HELP = """\
reqtag — API request authoring and testing.

Requests live in projects. Tags bundle extra headers and query
parameters that any request can reuse. Environments hold variables
that fill {{NAME}} placeholders in URLs, headers, params and bodies.

\b
MODES
─────
  Send:       reqtag REQUEST [-p PROJECT] [-e ENV]
  Preview:    reqtag REQUEST --preview
  Import:     reqtag --import workspace.yaml
  Browse:     reqtag --projects | --requests | --tags | --envs
  History:    reqtag --history | --show-history ID | --delete-history ID

\b
WORKSPACE FILE (--import)
─────────────────────────
  \b
  project: demo
  selected_environment: dev
  environments:
    - name: dev
      variables: {BASE_URL: "https://api.example.com", TOKEN: abc}
  tags:
    - name: auth
      color: blue                   # blue|red|green|purple|yellow|pink
      headers: {Authorization: "Bearer {{TOKEN}}"}
    - name: eu
      color: green
      query_params: {region: eu}
  requests:
    - name: list-users
      method: GET
      url: "{{BASE_URL}}/users"
      tags: [auth, eu]              # later tags override earlier ones
      query_params: {page: "1"}

  Re-importing updates entities with the same name.

\b
MERGE PRECEDENCE
────────────────
  request values > last-listed tag > ... > first-listed tag

  Unknown {{NAME}} placeholders are sent verbatim. Use --preview to
  see the resolved request and any unresolved names.

\b
OUTPUT FORMAT
─────────────
    STATUS: 200 OK
    TIME: 45ms
    BODY:
    {...}

  4xx/5xx responses are still successful sends (exit 0). Transport
  failures print ERROR and exit 1. Both are recorded in history.

\b
CONFIG FILE FORMAT (.reqtag.yaml)
─────────────────────────────────
  Config resolution order:
    1. -c/--config flag (explicit path)
    2. .reqtag.yaml / .reqtag.yml / reqtag.yaml / reqtag.yml in CWD
    3. ~/.reqtag/config.yaml (global)

  \b
  defaults:
    store: ${REQTAG_STORE}          # default ~/.reqtag/store.json
    env_file: .env                  # used for ${VAR} in this file
    timeout: 30                     # seconds
    history_limit: 50
    tag_workers: 4
"""


@click.command(
    cls=click.Command,
    help=TOOL_HELP,
    context_settings={"max_content_width": 88},
)
@click.argument("request_name", metavar="REQUEST", required=False)
@click.option(
    "-c",
    "--config",
    "config_file",
    default=None,
    help="Config file path. Default: .reqtag.yaml in CWD, then ~/.reqtag/config.yaml.",
)
@click.option("--store", "store_path", default=None, help="Store file. Overrides config.")
@click.option(
    "-p",
    "--project",
    default=None,
    help="Project name or id. Optional when only one project exists.",
)
@click.option(
    "-e",
    "--env",
    "env_name",
    default=None,
    help="Environment name or id for this send. Default: the project's selected one.",
)
@click.option("--timeout", type=float, default=None, help="Request timeout in seconds. Default: 30.")
@click.option("--verbose", is_flag=True, default=False, help="Include URL and response headers.")
@click.option("--raw", is_flag=True, default=False, help="Output the response body only.")
@click.option(
    "--preview",
    is_flag=True,
    default=False,
    help="Print the resolved request without sending it.",
)
@click.option(
    "--import",
    "import_file",
    default=None,
    metavar="FILE",
    help="Import a workspace YAML file.",
)
@click.option("--projects", "show_projects", is_flag=True, default=False, help="List projects.")
@click.option("--requests", "show_requests", is_flag=True, default=False, help="List requests.")
@click.option("--tags", "show_tags", is_flag=True, default=False, help="List tags.")
@click.option("--envs", "show_envs", is_flag=True, default=False, help="List environments.")
@click.option(
    "--use-env",
    "use_env",
    default=None,
    metavar="NAME",
    help="Select the project's environment. 'none' clears the selection.",
)
@click.option("--history", "show_history", is_flag=True, default=False, help="Show history.")
@click.option("--limit", type=int, default=None, help="History entries to show. Default: 50.")
@click.option("--show-history", "show_history_id", default=None, metavar="ID", help="Show one entry.")
@click.option(
    "--delete-history",
    "delete_history_id",
    default=None,
    metavar="ID",
    help="Delete one history entry.",
)
@click.option(
    "--delete-request",
    "delete_request_name",
    default=None,
    metavar="NAME",
    help="Delete a request and its history.",
)
@click.option(
    "--share",
    "share_history_id",
    default=None,
    metavar="ID",
    help="Create a share token for a history entry.",
)
@click.option("--public", is_flag=True, default=False, help="Make the share public.")
@click.option("--shared", "shared_token", default=None, metavar="TOKEN", help="Show a share.")
@click.option(
    "--log-level",
    type=click.Choice(["DEBUG", "INFO", "WARNING", "ERROR"], case_sensitive=False),
    default="WARNING",
    help="Log level for diagnostics on stderr.",
)
def main(
    request_name,
    config_file,
    store_path,
    project,
    env_name,
    timeout,
    verbose,
    raw,
    preview,
    import_file,
    show_projects,
    show_requests,
    show_tags,
    show_envs,
    use_env,
    show_history,
    limit,
    show_history_id,
    delete_history_id,
    delete_request_name,
    share_history_id,
    public,
    shared_token,
    log_level,
):
    """Send saved API requests with tag policy and environment variables."""
    from reqtag.core import load_config, load_env, resolve_config_path, resolve_store_path
    from reqtag.models import ReqtagError
    from reqtag.store import Store

    _configure_logging(log_level)

    try:
        # --- Load config ---
        config_path = resolve_config_path(config_file)
        config = load_config(config_path)
        defaults = config.get("defaults", {})
        env = load_env(defaults.get("env_file"), config.get("_config_dir") or ".")
        store = Store(resolve_store_path(store_path, config, env))

        # --- Dispatch ---

        if import_file:
            _cmd_import(store, import_file)
            return

        if show_projects:
            _cmd_projects(store)
            return

        if show_tags:
            _cmd_tags(store)
            return

        if shared_token:
            _cmd_shared(store, shared_token)
            return

        if show_history_id:
            _cmd_show_history(store, show_history_id)
            return

        if delete_history_id:
            _cmd_delete_history(store, delete_history_id)
            return

        if share_history_id:
            _cmd_share(store, share_history_id, public)
            return

        # Everything below is project-scoped
        if not (
            show_requests
            or show_envs
            or use_env
            or show_history
            or delete_request_name
            or request_name
        ):
            ctx = click.get_current_context()
            click.echo(ctx.get_help())
            ctx.exit(1)

        proj = _pick_project(store, project)

        if show_requests:
            _cmd_requests(store, proj)
            return

        if show_envs:
            _cmd_envs(store, proj)
            return

        if use_env:
            _cmd_use_env(store, proj, use_env)
            return

        if show_history:
            _cmd_history(store, proj, _first(limit, defaults.get("history_limit"), default=50))
            return

        if delete_request_name:
            _cmd_delete_request(store, proj, delete_request_name)
            return

        request = store.find_request(proj.id, request_name)
        environment_id = store.find_environment(proj.id, env_name).id if env_name else None
        tag_workers = _first(defaults.get("tag_workers"), default=4)

        if preview:
            _cmd_preview(store, request, environment_id, tag_workers)
            return

        _cmd_send(
            store,
            request,
            environment_id,
            timeout=_first(timeout, defaults.get("timeout"), default=30),
            tag_workers=tag_workers,
            verbose=verbose,
            raw=raw,
        )
    except (ReqtagError, OSError, yaml.YAMLError) as e:
        click.echo(f"ERROR: {e}", err=True)
        sys.exit(1)


# ── Subcommand implementations ──────────────────────────────────────────


def _cmd_import(store, import_file):
    from reqtag.core import import_workspace, load_workspace_file

    data = load_workspace_file(import_file)
    summary = import_workspace(store, data)
    project = summary["project"]
    click.echo(f"Imported project: {project.name} ({project.id})")
    for key in ("environments", "tags", "requests"):
        items = summary[key]
        if items:
            click.echo(f"  {key}: {', '.join(i.name for i in items)}")


def _cmd_projects(store):
    projects = store.list_projects()
    if not projects:
        click.echo("No projects. Import one with --import FILE.")
        return
    for p in projects:
        click.echo(f"  {p.name}  ({p.id})")


def _cmd_requests(store, project):
    from reqtag.models import NotFoundError

    requests_ = store.list_requests(project.id)
    if not requests_:
        click.echo(f"No requests in project {project.name}.")
        return
    click.echo(f"Requests in {project.name}:\n")
    for r in requests_:
        tag_names = []
        for tag_id in r.tag_ids:
            try:
                tag_names.append(store.get_tag(tag_id).name)
            except NotFoundError:
                continue
        label = f"  {r.name} — {r.method} {r.url}"
        if tag_names:
            label += f"  [{', '.join(tag_names)}]"
        click.echo(label)


def _cmd_tags(store):
    tags = store.list_tags()
    if not tags:
        click.echo("No tags.")
        return
    for t in tags:
        label = f"  {t.name} ({t.color})"
        if t.description:
            label += f" — {t.description}"
        click.echo(label)
        for key, value in t.headers.items():
            click.echo(f"    header {key}: {value}")
        for key, value in t.query_params.items():
            click.echo(f"    param  {key}={value}")


def _cmd_envs(store, project):
    envs = store.list_environments(project.id)
    if not envs:
        click.echo(f"No environments in project {project.name}.")
        return
    for e in envs:
        marker = "*" if e.id == project.selected_environment_id else " "
        click.echo(f" {marker} {e.name}  ({len(e.variables)} variables)")


def _cmd_use_env(store, project, name):
    if name.lower() == "none":
        store.set_selected_environment(project.id, None)
        click.echo(f"Cleared environment for {project.name}.")
        return
    env = store.find_environment(project.id, name)
    store.set_selected_environment(project.id, env.id)
    click.echo(f"Selected environment {env.name} for {project.name}.")


def _cmd_history(store, project, limit):
    from reqtag.history import HistoryRecorder
    from reqtag.output import format_history_line

    entries = HistoryRecorder(store).list(project.id, limit=limit)
    if not entries:
        click.echo("No request history.")
        return
    click.echo("Request history:\n")
    for i, entry in enumerate(entries):
        click.echo(format_history_line(i, entry))


def _cmd_show_history(store, history_id):
    from reqtag.history import HistoryRecorder
    from reqtag.output import format_history_entry

    click.echo(format_history_entry(HistoryRecorder(store).get(history_id)))


def _cmd_delete_history(store, history_id):
    from reqtag.history import HistoryRecorder

    HistoryRecorder(store).delete(history_id)
    click.echo(f"Deleted history {history_id}")


def _cmd_delete_request(store, project, name):
    request = store.find_request(project.id, name)
    store.delete_request(request.id)
    click.echo(f"Deleted request {request.name} and its history")


def _cmd_share(store, history_id, public):
    entry = store.get_history(history_id)
    share = store.create_share(entry.project_id, entry.id, is_public=public)
    visibility = "public" if share.is_public else "private"
    click.echo(f"Share token ({visibility}): {share.share_token}")


def _cmd_shared(store, token):
    from reqtag.output import format_history_entry

    found = store.get_share_by_token(token)
    if found is None:
        click.echo(f"Share '{token}' not found.", err=True)
        sys.exit(1)
    share, entry = found
    if entry is None:
        click.echo("Shared history entry no longer exists.", err=True)
        sys.exit(1)
    click.echo(format_history_entry(entry))


def _cmd_preview(store, request, environment_id, tag_workers):
    from reqtag.output import format_resolved
    from reqtag.service import preview_request

    resolved, env = preview_request(store, request.id, environment_id, tag_workers=tag_workers)
    if env:
        click.echo(f"ENVIRONMENT: {env.name}")
    click.echo(format_resolved(resolved, env.variables if env else {}))


def _cmd_send(store, request, environment_id, timeout, tag_workers, verbose, raw):
    from reqtag.output import format_outcome
    from reqtag.service import send_request

    result = send_request(
        store,
        request.id,
        environment_id=environment_id,
        timeout=timeout,
        tag_workers=tag_workers,
    )
    if result.history_error:
        click.echo(f"WARNING: history not saved: {result.history_error}", err=True)

    outcome = result.outcome
    if not outcome.success:
        click.echo(f"ERROR: {outcome.error}", err=True)
        sys.exit(1)
    click.echo(format_outcome(outcome, verbose=verbose, raw=raw))


# ── Helpers ──────────────────────────────────────────────────────────────


def _configure_logging(level):
    logging.basicConfig(
        level=getattr(logging, level.upper()),
        format="%(levelname)s %(name)s: %(message)s",
        stream=sys.stderr,
        force=True,
    )


def _pick_project(store, name_or_id):
    """Find the named project, or the only one when no name is given."""
    from reqtag.models import ValidationError

    if name_or_id:
        return store.find_project(name_or_id)
    projects = store.list_projects()
    if not projects:
        raise ValidationError("No projects. Import one with --import FILE.")
    if len(projects) > 1:
        names = ", ".join(p.name for p in projects)
        raise ValidationError(f"Several projects exist ({names}); choose one with -p.")
    return projects[0]


def _first(*sources, default):
    """Return the first source that is not None, or default."""
    for value in sources:
        if value is not None:
            return value
    return default
