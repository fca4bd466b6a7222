"""Shared fixtures: an in-memory cloud service and ledger/orchestrator builders."""

from __future__ import annotations

import json
from collections import defaultdict
from collections.abc import Callable, Iterator
from pathlib import Path
from typing import Any
from uuid import uuid4

import httpx
import pytest

from home_cloud_transfer.cloud.client import CloudApiClient
from home_cloud_transfer.models.entities import HouseholdSnapshot
from home_cloud_transfer.source.reader import SnapshotEntitySource
from home_cloud_transfer.storage.ledger import TransferLedger
from home_cloud_transfer.transfer.orchestrator import TransferOrchestrator

BASE_URL = "https://cloud.test"
EMAIL = "owner@example.com"
PASSWORD = "correct horse"


class FakeCloud:
    """Minimal stand-in for the cloud API, served through ``httpx.MockTransport``.

    Collections are keyed by request path (e.g. ``api/v1/locations``) and hold
    the camelCase JSON bodies that were created, plus any seeded items.
    """

    def __init__(self) -> None:
        self.accounts: dict[str, str] = {EMAIL: PASSWORD}
        self.collections: dict[str, list[dict[str, Any]]] = defaultdict(list)
        self.requests: list[tuple[str, str, Any]] = []
        self.home: dict[str, Any] | None = None
        self.access_token: str | None = None
        self.refresh_token: str | None = None
        self._token_counter = 0

        self.offline = False
        self.reject_names: dict[str, str] = {}
        self.list_status: dict[str, int] = {}
        self.create_status: dict[str, int] = {}
        self.on_create: Callable[[str, dict[str, Any]], None] | None = None

    @property
    def transport(self) -> httpx.MockTransport:
        return httpx.MockTransport(self.handler)

    def client(self) -> CloudApiClient:
        return CloudApiClient(base_url=BASE_URL, transport=self.transport)

    def seed(self, path: str, **item: Any) -> dict[str, Any]:
        """Add an existing remote item to a collection."""
        body = {"id": str(uuid4()), **item}
        self.collections[path].append(body)
        return body

    def created(self, path: str) -> list[dict[str, Any]]:
        """Bodies POSTed to ``path`` during the test."""
        return [body for method, p, body in self.requests if method == "POST" and p == path]

    def expire_access_token(self) -> None:
        self.access_token = "expired"

    def handler(self, request: httpx.Request) -> httpx.Response:
        if self.offline:
            raise httpx.ConnectError("cloud unreachable", request=request)

        path = request.url.path.lstrip("/")
        body = json.loads(request.content) if request.content else None
        self.requests.append((request.method, path, body))

        if path == "api/auth/login":
            if self.accounts.get(body["email"]) != body["password"]:
                return httpx.Response(401, json={"error_message": "Invalid email or password"})
            return httpx.Response(200, json=self._issue_tokens())
        if path == "api/auth/register":
            if body["email"] in self.accounts:
                return httpx.Response(400, json={"error_message": "Email already registered"})
            self.accounts[body["email"]] = body["password"]
            return httpx.Response(200, json=self._issue_tokens())
        if path == "api/auth/refresh":
            if self.refresh_token is None or body["refreshToken"] != self.refresh_token:
                return httpx.Response(401, json={"error_message": "Invalid refresh token"})
            return httpx.Response(200, json=self._issue_tokens())

        expected = f"Bearer {self.access_token}"
        if self.access_token is None or request.headers.get("Authorization") != expected:
            return httpx.Response(401)

        if request.method == "GET":
            status = self.list_status.get(path, 200)
            if status != 200:
                return httpx.Response(status, text="list unavailable")
            return httpx.Response(200, json=self.collections[path])

        if request.method == "PUT" and path == "api/v1/home":
            self.home = body
            return httpx.Response(204)

        if request.method == "POST":
            status = self.create_status.get(path)
            if status is not None:
                return httpx.Response(status, json={"error_message": f"{path} rejected"})
            if isinstance(body, dict) and body.get("name") in self.reject_names:
                return httpx.Response(400, json={"error_message": self.reject_names[body["name"]]})
            if isinstance(body, list):
                self.collections[path].extend(body)
                if self.on_create is not None:
                    self.on_create(path, {"items": body})
                return httpx.Response(200)
            created = {"id": str(uuid4()), **(body or {})}
            self.collections[path].append(created)
            if self.on_create is not None:
                self.on_create(path, created)
            return httpx.Response(201, json={"id": created["id"]})

        return httpx.Response(404)

    def _issue_tokens(self) -> dict[str, str]:
        self._token_counter += 1
        self.access_token = f"access-{self._token_counter}"
        self.refresh_token = f"refresh-{self._token_counter}"
        return {"accessToken": self.access_token, "refreshToken": self.refresh_token}


@pytest.fixture
def cloud() -> FakeCloud:
    return FakeCloud()


@pytest.fixture
def ledger(tmp_path: Path) -> Iterator[TransferLedger]:
    db = TransferLedger(sqlite_path=tmp_path / "transfer.sqlite3")
    db.init_schema()
    yield db
    db.close()


@pytest.fixture
def make_orchestrator(
    ledger: TransferLedger,
    cloud: FakeCloud,
) -> Callable[[HouseholdSnapshot], TransferOrchestrator]:
    """Build orchestrators over the shared ledger and fake cloud."""

    def _make(snapshot: HouseholdSnapshot) -> TransferOrchestrator:
        return TransferOrchestrator(
            ledger=ledger,
            source=SnapshotEntitySource.from_snapshot(snapshot),
            client_factory=cloud.client,
            list_fetch_backoff_s=0.0,
        )

    return _make
