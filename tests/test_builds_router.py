"""Tests for tinyci/api/routers/builds.py -- build endpoints."""

import asyncio
import time
from datetime import datetime, timezone
from unittest.mock import AsyncMock, MagicMock, patch

import pytest
from fastapi.testclient import TestClient

from tinyci.log_registry import BUILD_COMPLETE
from tinyci.main import create_app
from tinyci.services.build_service import BuildPipeline, BuildStage
from tests.conftest import COMMIT_SHA, REPO_URL, FakeRunner, FakeStore

_BUILD_ID = "5a1b2c3d-0000-4000-8000-000000000001"


def _record(**overrides):
    defaults = {
        "id": _BUILD_ID,
        "repo_url": REPO_URL,
        "commit_id": COMMIT_SHA,
        "timestamp": datetime.now(timezone.utc),
    }
    defaults.update(overrides)
    return defaults


@pytest.fixture
def app():
    application = create_app()
    pipeline = MagicMock(spec=BuildPipeline)
    pipeline.start.return_value = _BUILD_ID
    pipeline.stage.return_value = None
    application.state.pipeline = pipeline
    return application


@pytest.fixture
def client(app):
    return TestClient(app)


def _wait_for(predicate, timeout: float = 5.0) -> None:
    deadline = time.monotonic() + timeout
    while not predicate():
        if time.monotonic() > deadline:
            raise AssertionError("condition not reached in time")
        time.sleep(0.01)


# ---------------------------------------------------------------------------
# Tests: POST /api/build
# ---------------------------------------------------------------------------


def test_start_build_returns_id_and_empty_commit(app, client):
    resp = client.post("/api/build", json={"repoUrl": REPO_URL})

    assert resp.status_code == 200
    assert resp.json() == {"buildId": _BUILD_ID, "resolvedCommit": ""}
    app.state.pipeline.start.assert_called_once_with(REPO_URL)


def test_start_build_accepts_source_url_alias(app, client):
    resp = client.post("/api/build", json={"sourceURL": REPO_URL})
    assert resp.status_code == 200
    app.state.pipeline.start.assert_called_once_with(REPO_URL)


@pytest.mark.parametrize("body", [{}, {"repoUrl": ""}])
def test_start_build_requires_repo_url(app, client, body):
    resp = client.post("/api/build", json=body)
    assert resp.status_code == 422
    assert "request_id" in resp.json()
    app.state.pipeline.start.assert_not_called()


# ---------------------------------------------------------------------------
# Tests: GET /api/last-build
# ---------------------------------------------------------------------------


@patch("tinyci.services.build_service.build_repo.get_last_build", new_callable=AsyncMock)
def test_last_build(mock_last, client):
    mock_last.return_value = _record()

    resp = client.get("/api/last-build")

    assert resp.status_code == 200
    assert resp.json() == {"buildId": _BUILD_ID, "resolvedCommit": COMMIT_SHA}


@patch("tinyci.services.build_service.build_repo.get_last_build", new_callable=AsyncMock)
def test_last_build_not_found(mock_last, client):
    mock_last.return_value = None

    resp = client.get("/api/last-build")

    assert resp.status_code == 404
    assert resp.json()["error"] == "No builds recorded yet"


# ---------------------------------------------------------------------------
# Tests: GET /api/builds/{build_id}
# ---------------------------------------------------------------------------


@patch("tinyci.api.routers.builds.build_repo.get_build_by_id", new_callable=AsyncMock)
def test_build_status_running(mock_get, app, client):
    app.state.pipeline.stage.return_value = BuildStage.IMAGE_BUILDING

    resp = client.get(f"/api/builds/{_BUILD_ID}")

    assert resp.status_code == 200
    assert resp.json() == {"buildId": _BUILD_ID, "resolvedCommit": "", "stage": "image_building"}
    mock_get.assert_not_called()


@patch("tinyci.api.routers.builds.build_repo.get_build_by_id", new_callable=AsyncMock)
def test_build_status_from_record_after_restart(mock_get, client):
    mock_get.return_value = _record()

    resp = client.get(f"/api/builds/{_BUILD_ID}")

    assert resp.status_code == 200
    assert resp.json()["resolvedCommit"] == COMMIT_SHA
    assert resp.json()["stage"] == "completed"


@patch("tinyci.api.routers.builds.build_repo.get_build_by_id", new_callable=AsyncMock)
def test_build_status_unknown(mock_get, client):
    mock_get.return_value = None
    resp = client.get("/api/builds/nope")
    assert resp.status_code == 404


# ---------------------------------------------------------------------------
# Tests: full flow over HTTP
# ---------------------------------------------------------------------------


def test_build_streams_logs_and_becomes_last_build(tmp_path):
    """POST a build, watch its log socket, then find it as the last build."""
    application = create_app()
    registry = application.state.log_registry
    store = FakeStore()
    gate = asyncio.Event()
    application.state.pipeline = BuildPipeline(
        registry, store, runner=FakeRunner(gate=gate), workspace_root=tmp_path / "ws",
    )

    with TestClient(application) as client:
        resp = client.post("/api/build", json={"repoUrl": REPO_URL})
        assert resp.status_code == 200
        build_id = resp.json()["buildId"]
        assert resp.json()["resolvedCommit"] == ""

        frames: list[str] = []
        with client.websocket_connect(f"/api/logs/{build_id}") as ws:
            _wait_for(lambda: registry.has_subscriber(build_id))
            client.portal.call(gate.set)
            while True:
                frame = ws.receive_text()
                frames.append(frame)
                if frame == BUILD_COMPLETE:
                    break

        assert frames[-3:] == [
            "#1 [internal] load build definition\n",
            "#2 DONE 0.1s\n",
            BUILD_COMPLETE,
        ]

        assert not (tmp_path / "ws" / build_id).exists()

        with patch(
            "tinyci.services.build_service.build_repo.get_last_build",
            new=AsyncMock(side_effect=store.get_last_build),
        ), patch(
            "tinyci.api.routers.builds.build_repo.get_build_by_id",
            new=AsyncMock(return_value=None),
        ):
            status = client.get(f"/api/builds/{build_id}").json()
            last = client.get("/api/last-build").json()

    assert status["stage"] == "completed"
    assert last == {"buildId": build_id, "resolvedCommit": COMMIT_SHA}
