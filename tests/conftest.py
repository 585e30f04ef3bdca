"""Shared fixtures: isolated settings and a scripted fake LinkedIn API."""

from __future__ import annotations

import json
from pathlib import Path
from urllib.parse import parse_qs

import httpx
import pytest

from linkedin_cli.config.settings import Settings, load_settings


class FakeLinkedIn:
    """Routes requests by (method, path) to canned responses and records them."""

    def __init__(self):
        self.requests: list[httpx.Request] = []
        self._routes: dict[tuple[str, str], tuple[int, dict]] = {}

    def route(self, method: str, path: str, status_code: int = 200, **response_kwargs) -> None:
        self._routes[(method, path)] = (status_code, response_kwargs)

    def handler(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        key = (request.method, request.url.path)
        if key not in self._routes:
            return httpx.Response(404, text=f"no route for {key}")
        status_code, response_kwargs = self._routes[key]
        return httpx.Response(status_code, **response_kwargs)

    @property
    def transport(self) -> httpx.MockTransport:
        return httpx.MockTransport(self.handler)

    def requests_to(self, path: str) -> list[httpx.Request]:
        return [r for r in self.requests if r.url.path == path]

    @staticmethod
    def json_body(request: httpx.Request) -> dict:
        return json.loads(request.content)

    @staticmethod
    def form_body(request: httpx.Request) -> dict:
        return {k: v[0] for k, v in parse_qs(request.content.decode()).items()}


@pytest.fixture(autouse=True)
def clean_env(monkeypatch):
    """Keep real LinkedIn credentials in the environment out of the tests."""
    for name in Settings.model_fields:
        monkeypatch.delenv(name, raising=False)


@pytest.fixture
def credentials_file(tmp_path) -> Path:
    return tmp_path / ".linkedincli"


@pytest.fixture
def settings(credentials_file) -> Settings:
    return load_settings(
        credentials_file,
        LINKEDIN_CLIENT_ID="client-id",
        LINKEDIN_CLIENT_SECRET="client-secret",
    )


@pytest.fixture
def api() -> FakeLinkedIn:
    return FakeLinkedIn()
