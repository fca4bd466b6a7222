"""Tests for the transfer HTTP endpoints."""

from __future__ import annotations

import time
from collections.abc import Iterator
from pathlib import Path
from typing import Any
from uuid import uuid4

import pytest
from fastapi.testclient import TestClient

from conftest import EMAIL, PASSWORD, FakeCloud
from home_cloud_transfer.api.app import create_app
from home_cloud_transfer.config.settings import AppSettings, ServerSettings, StorageSettings
from home_cloud_transfer.models import entities
from home_cloud_transfer.models.entities import HouseholdSnapshot
from home_cloud_transfer.transfer.errors import TransferAlreadyRunningError
from home_cloud_transfer.transfer.orchestrator import TransferOrchestrator

API_KEY = "s3cret-admin-key"
HEADERS = {"X-API-Key": API_KEY}


def _household() -> HouseholdSnapshot:
    pantry = entities.Location(id=uuid4(), name="Pantry")
    return HouseholdSnapshot(
        locations=[pantry],
        products=[entities.Product(id=uuid4(), name="Flour", location_id=pantry.id)],
        todo_items=[entities.TodoItem(id=uuid4(), reason="Clean gutters")],
    )


@pytest.fixture
def orchestrator(make_orchestrator: Any) -> TransferOrchestrator:
    return make_orchestrator(_household())


@pytest.fixture
def api(tmp_path: Path, orchestrator: TransferOrchestrator) -> Iterator[TestClient]:
    settings = AppSettings(
        storage=StorageSettings(root_dir=tmp_path),
        server=ServerSettings(admin_api_key=API_KEY),
    )
    with TestClient(create_app(settings, orchestrator=orchestrator)) as client:
        yield client


def _wait_for_finish(api: TestClient, *, timeout_s: float = 10.0) -> dict[str, Any]:
    deadline = time.monotonic() + timeout_s
    while time.monotonic() < deadline:
        response = api.get("/transfer/progress", headers=HEADERS)
        if response.status_code == 200 and response.json()["sessionStatus"] != "InProgress":
            return response.json()
        time.sleep(0.02)
    raise AssertionError("transfer did not finish in time")


def test_available_needs_no_key(api: TestClient) -> None:
    response = api.get("/transfer/available")
    assert response.status_code == 200
    assert response.json() == {"available": True}


def test_missing_or_wrong_key_is_rejected(api: TestClient) -> None:
    missing = api.get("/transfer/summary")
    assert missing.status_code == 401
    assert missing.headers["WWW-Authenticate"] == "ApiKey"

    wrong = api.get("/transfer/summary", headers={"X-API-Key": "nope"})
    assert wrong.status_code == 401
    assert wrong.json()["detail"] == "Invalid API key"


def test_blank_key_disables_auth(tmp_path: Path, orchestrator: TransferOrchestrator) -> None:
    settings = AppSettings(
        storage=StorageSettings(root_dir=tmp_path),
        server=ServerSettings(admin_api_key="  "),
    )
    with TestClient(create_app(settings, orchestrator=orchestrator)) as client:
        assert client.get("/transfer/session").status_code == 200


def test_full_transfer_over_http(api: TestClient, cloud: FakeCloud) -> None:
    """Authenticate, start, poll and read results through the HTTP surface."""
    summary = api.get("/transfer/summary", headers=HEADERS)
    assert summary.status_code == 200
    assert summary.json()["locations"] == 1
    assert summary.json()["todoItems"] == 1
    assert summary.json()["stockEntries"] == 0

    assert api.get("/transfer/progress", headers=HEADERS).status_code == 204

    auth = api.post(
        "/transfer/authenticate",
        json={"email": EMAIL, "password": PASSWORD},
        headers=HEADERS,
    )
    assert auth.status_code == 200
    assert auth.json() == {"success": True, "cloudUserEmail": EMAIL, "errorMessage": None}

    start = api.post("/transfer/start", json={"includeHistory": False}, headers=HEADERS)
    assert start.status_code == 200
    session_id = start.json()["sessionId"]

    progress = _wait_for_finish(api)
    assert progress["sessionStatus"] == "Completed"
    assert progress["overallProgressPercent"] == 100.0
    assert progress["sessionId"] == session_id

    results = api.get("/transfer/results", params={"sessionId": session_id}, headers=HEADERS)
    assert results.status_code == 200
    by_category = {entry["category"]: entry for entry in results.json()}
    assert list(by_category) == ["Locations", "Products", "Todo Items"]
    assert by_category["Products"]["createdCount"] == 1
    assert by_category["Products"]["items"] == [
        {"name": "Flour", "status": "Created", "errorMessage": None},
    ]
    [product_body] = cloud.created("api/v1/products")
    [location_body] = cloud.collections["api/v1/locations"]
    assert product_body["locationId"] == location_body["id"]

    session = api.get("/transfer/session", headers=HEADERS)
    assert session.json()["hasIncompleteSession"] is False


def test_failed_authentication_is_not_an_http_error(api: TestClient) -> None:
    response = api.post(
        "/transfer/authenticate",
        json={"email": EMAIL, "password": "wrong"},
        headers=HEADERS,
    )
    assert response.status_code == 200
    assert response.json()["success"] is False
    assert response.json()["errorMessage"] == "Invalid email or password"


def test_malformed_authenticate_body(api: TestClient) -> None:
    response = api.post(
        "/transfer/authenticate",
        json={"email": "not-an-email", "password": PASSWORD},
        headers=HEADERS,
    )
    assert response.status_code == 422


def test_start_errors_map_to_client_errors(
    api: TestClient,
    orchestrator: TransferOrchestrator,
    monkeypatch: pytest.MonkeyPatch,
) -> None:
    unauthenticated = api.post("/transfer/start", json={}, headers=HEADERS)
    assert unauthenticated.status_code == 400

    no_session = api.post("/transfer/start", json={"resume": True}, headers=HEADERS)
    assert no_session.status_code == 400
    assert "No incomplete transfer session" in no_session.json()["detail"]

    async def _busy(**_kwargs: Any) -> None:
        raise TransferAlreadyRunningError("A transfer is already running")

    monkeypatch.setattr(orchestrator, "start_transfer", _busy)
    busy = api.post("/transfer/start", json={}, headers=HEADERS)
    assert busy.status_code == 409


def test_cancel_without_running_transfer(api: TestClient) -> None:
    response = api.post("/transfer/cancel", headers=HEADERS)
    assert response.status_code == 204
    assert response.content == b""


def test_results_for_unknown_session_are_empty(api: TestClient) -> None:
    response = api.get("/transfer/results", params={"sessionId": str(uuid4())}, headers=HEADERS)
    assert response.status_code == 200
    assert response.json() == []
