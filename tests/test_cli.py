"""CLI scenario tests."""

import json
from unittest.mock import patch

import pytest
import requests
import yaml

from reqtag.cli import main
from reqtag.store import Store
from tests.conftest import make_response

WORKSPACE = {
    "project": "demo",
    "selected_environment": "dev",
    "environments": [
        {"name": "dev", "variables": {"BASE_URL": "https://dev.example.com", "TOKEN": "t0k"}},
        {"name": "prod", "variables": {"BASE_URL": "https://api.example.com", "TOKEN": "p0k"}},
    ],
    "tags": [
        {
            "name": "auth",
            "color": "blue",
            "description": "Bearer auth",
            "headers": {"Authorization": "Bearer {{TOKEN}}"},
        },
        {"name": "eu", "color": "green", "query_params": {"region": "eu"}},
    ],
    "requests": [
        {
            "name": "list-users",
            "method": "GET",
            "url": "{{BASE_URL}}/users",
            "tags": ["auth", "eu"],
            "query_params": {"page": "1"},
        },
        {
            "name": "create-user",
            "method": "POST",
            "url": "{{BASE_URL}}/users",
            "headers": {"Content-Type": "application/json", "X-Trace": "{{TRACE_ID}}"},
            "body": {"name": "{{USER_NAME}}"},
            "tags": ["auth"],
        },
    ],
}


@pytest.fixture
def store_file(tmp_path):
    return tmp_path / "store.json"


@pytest.fixture
def imported(runner, tmp_path, store_file):
    ws = tmp_path / "workspace.yaml"
    ws.write_text(yaml.dump(WORKSPACE, sort_keys=False))
    result = runner.invoke(main, ["--store", str(store_file), "--import", str(ws)])
    assert result.exit_code == 0, result.output
    return store_file


def _invoke(runner, store_file, *args):
    return runner.invoke(main, ["--store", str(store_file), *args])


class TestImport:
    def test_import_summary(self, runner, imported):
        result = _invoke(runner, imported, "--projects")
        assert "demo" in result.output

    def test_import_persists_entities(self, imported):
        store = Store(imported)
        project = store.find_project("demo")
        assert [r.name for r in store.list_requests(project.id)] == ["create-user", "list-users"]
        selected = store.get_environment(project.selected_environment_id)
        assert selected.name == "dev"
        create = store.find_request(project.id, "create-user")
        assert json.loads(create.body) == {"name": "{{USER_NAME}}"}

    def test_reimport_updates_in_place(self, runner, tmp_path, imported):
        store = Store(imported)
        project = store.find_project("demo")
        original_id = store.find_request(project.id, "list-users").id

        changed = dict(WORKSPACE)
        changed["requests"] = [dict(WORKSPACE["requests"][0], url="{{BASE_URL}}/v2/users")]
        ws = tmp_path / "workspace2.yaml"
        ws.write_text(yaml.dump(changed))
        result = _invoke(runner, imported, "--import", str(ws))
        assert result.exit_code == 0, result.output

        store = Store(imported)
        request = store.find_request(project.id, "list-users")
        assert request.id == original_id
        assert request.url == "{{BASE_URL}}/v2/users"

    def test_invalid_workspace(self, runner, tmp_path, store_file):
        ws = tmp_path / "bad.yaml"
        ws.write_text(yaml.dump({"project": "p", "tags": [{"name": "t", "color": "orange"}]}))
        result = _invoke(runner, store_file, "--import", str(ws))
        assert result.exit_code == 1
        assert "ERROR: Invalid tag: color" in result.output

    def test_invalid_entry_writes_nothing(self, runner, tmp_path, store_file):
        ws = tmp_path / "half.yaml"
        ws.write_text(
            yaml.dump(
                {
                    "project": "p",
                    "environments": [{"name": "dev", "variables": {"A": "1"}}],
                    "tags": [{"name": "t", "color": "orange"}],
                },
            ),
        )
        result = _invoke(runner, store_file, "--import", str(ws))
        assert result.exit_code == 1
        assert not store_file.exists()
        assert Store(store_file).list_projects() == []

    def test_failed_reimport_keeps_previous_state(self, runner, tmp_path, imported):
        changed = dict(WORKSPACE)
        changed["requests"] = [
            dict(WORKSPACE["requests"][0], url="{{BASE_URL}}/v2/users", tags=["missing-tag"]),
        ]
        ws = tmp_path / "broken.yaml"
        ws.write_text(yaml.dump(changed))
        result = _invoke(runner, imported, "--import", str(ws))
        assert result.exit_code == 1
        assert "ERROR: Tag 'missing-tag' not found" in result.output

        store = Store(imported)
        project = store.find_project("demo")
        assert store.find_request(project.id, "list-users").url == "{{BASE_URL}}/users"

    def test_workspace_without_project(self, runner, tmp_path, store_file):
        ws = tmp_path / "noproject.yaml"
        ws.write_text(yaml.dump({"requests": [{"name": "r"}]}))
        result = _invoke(runner, store_file, "--import", str(ws))
        assert result.exit_code == 1
        assert "ERROR: Invalid workspace file" in result.output
        assert "project: Field required" in result.output

    def test_missing_file(self, runner, tmp_path, store_file):
        result = _invoke(runner, store_file, "--import", str(tmp_path / "nope.yaml"))
        assert result.exit_code == 1
        assert "ERROR:" in result.output


class TestListing:
    def test_requests_show_tags(self, runner, imported):
        result = _invoke(runner, imported, "--requests")
        assert result.exit_code == 0
        assert "list-users — GET {{BASE_URL}}/users  [auth, eu]" in result.output

    def test_tags(self, runner, imported):
        result = _invoke(runner, imported, "--tags")
        assert "auth (blue) — Bearer auth" in result.output
        assert "param  region=eu" in result.output

    def test_envs_marks_selected(self, runner, imported):
        result = _invoke(runner, imported, "--envs")
        assert " * dev" in result.output
        assert "   prod" in result.output

    def test_use_env(self, runner, imported):
        result = _invoke(runner, imported, "--use-env", "prod")
        assert result.exit_code == 0
        result = _invoke(runner, imported, "--envs")
        assert " * prod" in result.output
        result = _invoke(runner, imported, "--use-env", "none")
        assert "Cleared environment" in result.output

    def test_no_arguments_shows_help(self, runner, store_file):
        result = _invoke(runner, store_file)
        assert result.exit_code == 1
        assert "reqtag" in result.output


class TestSend:
    @patch("reqtag.executor.requests.request")
    def test_send_success(self, mock_request, runner, imported):
        mock_request.return_value = make_response(
            200,
            '{"users":[1]}',
            {"Content-Type": "application/json"},
        )
        result = _invoke(runner, imported, "list-users")
        assert result.exit_code == 0, result.output
        assert "STATUS: 200 OK" in result.output
        assert "TIME:" in result.output
        assert '"users": [' in result.output
        _, kwargs = mock_request.call_args
        assert kwargs["url"] == "https://dev.example.com/users?region=eu&page=1"
        assert kwargs["headers"] == {"Authorization": "Bearer t0k"}
        assert kwargs["timeout"] == 30

    @patch("reqtag.executor.requests.request")
    def test_send_with_env_override_and_timeout(self, mock_request, runner, imported):
        mock_request.return_value = make_response(200, "ok")
        result = _invoke(runner, imported, "list-users", "-e", "prod", "--timeout", "3")
        assert result.exit_code == 0, result.output
        _, kwargs = mock_request.call_args
        assert kwargs["url"].startswith("https://api.example.com/users")
        assert kwargs["timeout"] == 3

    @patch("reqtag.executor.requests.request")
    def test_not_found_exits_zero(self, mock_request, runner, imported):
        mock_request.return_value = make_response(404, "missing")
        result = _invoke(runner, imported, "list-users")
        assert result.exit_code == 0
        assert "STATUS: 404 Not Found" in result.output

    @patch("reqtag.executor.requests.request")
    def test_transport_error_exits_one_and_is_recorded(self, mock_request, runner, imported):
        mock_request.side_effect = requests.exceptions.ConnectionError("Name or service not known")
        result = _invoke(runner, imported, "list-users")
        assert result.exit_code == 1
        assert "ERROR: Connection error: Name or service not known" in result.output

        history = _invoke(runner, imported, "--history")
        assert "ERROR Connection error" in history.output

    @patch("reqtag.executor.requests.request")
    def test_raw_and_verbose(self, mock_request, runner, imported):
        mock_request.return_value = make_response(200, "pong", {"X-Trace": "abc"})
        raw = _invoke(runner, imported, "list-users", "--raw")
        assert raw.output.strip() == "pong"
        verbose = _invoke(runner, imported, "list-users", "--verbose")
        assert "X-Trace: abc" in verbose.output
        assert "URL: https://dev.example.com/users?region=eu&page=1" in verbose.output

    def test_unknown_request(self, runner, imported):
        result = _invoke(runner, imported, "nope")
        assert result.exit_code == 1
        assert "ERROR: Request 'nope' not found" in result.output

    def test_project_required_when_ambiguous(self, runner, imported):
        Store(imported).create_project("second")
        result = _invoke(runner, imported, "list-users")
        assert result.exit_code == 1
        assert "choose one with -p" in result.output


class TestPreview:
    def test_preview_shows_resolved_request_and_unresolved_names(self, runner, imported):
        with patch("reqtag.executor.requests.request") as mock_request:
            result = _invoke(runner, imported, "create-user", "--preview")
        mock_request.assert_not_called()
        assert result.exit_code == 0, result.output
        assert "ENVIRONMENT: dev" in result.output
        assert "POST https://dev.example.com/users" in result.output
        assert "Authorization: Bearer t0k" in result.output
        assert "UNRESOLVED: USER_NAME, TRACE_ID" in result.output


class TestHistoryCommands:
    @patch("reqtag.executor.requests.request")
    def test_history_show_delete(self, mock_request, runner, imported):
        mock_request.return_value = make_response(201, "made", reason="Created")
        _invoke(runner, imported, "create-user")

        store = Store(imported)
        project = store.find_project("demo")
        entry = store.list_history(project.id)[0]
        assert entry.status == 201

        listing = _invoke(runner, imported, "--history")
        assert entry.id in listing.output

        shown = _invoke(runner, imported, "--show-history", entry.id)
        assert "STATUS: 201 Created" in shown.output
        assert "RESPONSE BODY:" in shown.output

        deleted = _invoke(runner, imported, "--delete-history", entry.id)
        assert deleted.exit_code == 0
        again = _invoke(runner, imported, "--delete-history", entry.id)
        assert again.exit_code == 0
        assert "No request history." in _invoke(runner, imported, "--history").output

    @patch("reqtag.executor.requests.request")
    def test_delete_request_removes_history(self, mock_request, runner, imported):
        mock_request.return_value = make_response(200, "")
        _invoke(runner, imported, "list-users")
        _invoke(runner, imported, "create-user")
        result = _invoke(runner, imported, "--delete-request", "list-users")
        assert result.exit_code == 0

        store = Store(imported)
        project = store.find_project("demo")
        remaining = store.list_history(project.id)
        assert [e.url for e in remaining] == ["{{BASE_URL}}/users"]
        assert all(e.method == "POST" for e in remaining)

    @patch("reqtag.executor.requests.request")
    def test_share_and_view(self, mock_request, runner, imported):
        mock_request.return_value = make_response(200, "shared body")
        _invoke(runner, imported, "list-users")
        store = Store(imported)
        entry = store.list_history(store.find_project("demo").id)[0]

        result = _invoke(runner, imported, "--share", entry.id, "--public")
        assert "Share token (public): " in result.output
        token = result.output.strip().rsplit(" ", 1)[-1]

        shown = _invoke(runner, imported, "--shared", token)
        assert shown.exit_code == 0
        assert "shared body" in shown.output

        missing = _invoke(runner, imported, "--shared", "bogus")
        assert missing.exit_code == 1
