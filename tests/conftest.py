"""Shared fixtures for reqtag tests."""

import itertools

import pytest
import requests
from click.testing import CliRunner
from requests.structures import CaseInsensitiveDict

from reqtag import core
from reqtag.store import Store


@pytest.fixture
def runner():
    return CliRunner()


@pytest.fixture(autouse=True)
def global_reqtag_dir(tmp_path, monkeypatch):
    """Keep tests away from ~/.reqtag and run them inside tmp_path."""
    fake_global = tmp_path / "fake_home" / ".reqtag"
    fake_global.mkdir(parents=True)
    monkeypatch.setattr(core, "GLOBAL_DIR", fake_global)
    monkeypatch.setattr(core, "GLOBAL_CONFIG", fake_global / "config.yaml")
    monkeypatch.setattr(core, "GLOBAL_STORE", fake_global / "store.json")
    monkeypatch.chdir(tmp_path)
    return fake_global


@pytest.fixture
def store():
    """In-memory store with a ticking clock and predictable ids."""
    ticks = itertools.count(1_700_000_000_000, 1000)
    ids = itertools.count(1)
    tokens = itertools.count(1)
    return Store(
        None,
        clock=lambda: next(ticks),
        id_factory=lambda: f"id{next(ids)}",
        token_factory=lambda: f"token{next(tokens)}",
    )


def make_response(
    status_code=200,
    body="",
    headers=None,
    reason=None,
):
    """Build a real requests.Response without touching the network."""
    resp = requests.Response()
    resp.status_code = status_code
    resp.reason = reason if reason is not None else _REASONS.get(status_code, "")
    resp.headers = CaseInsensitiveDict(headers or {})
    resp._content = body.encode("utf-8")
    resp.encoding = "utf-8"
    resp.url = "http://test.invalid/"
    return resp


@pytest.fixture
def response_factory():
    return make_response


_REASONS = {
    200: "OK",
    201: "Created",
    204: "No Content",
    404: "Not Found",
    500: "Internal Server Error",
}
