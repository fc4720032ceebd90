"""Tests for the HTTP API."""

from __future__ import annotations

import subprocess
from collections.abc import Iterator
from pathlib import Path
from unittest import mock

import pytest
from fastapi.testclient import TestClient

from blacksmith.api import create_app
from blacksmith.config import Settings
from blacksmith.errors import CheckpointError
from blacksmith.generators import MockGenerator
from blacksmith.services import Services, build_services


def _git_available() -> bool:
    try:
        subprocess.run(
            ["git", "--version"],
            check=True,
            capture_output=True,
            text=True,
        )
    except (OSError, subprocess.CalledProcessError):
        return False
    return True


@pytest.fixture()
def services(tmp_path: Path) -> Services:
    template = tmp_path / "default-files"
    (template / "english").mkdir(parents=True)
    (template / "english" / "README.md").write_text("# Widget API\n", encoding="utf-8")
    settings = Settings(
        root=tmp_path / "files",
        template_dir=template,
        targets=("python", "go"),
        cors_origins=["http://localhost:3000"],
    )
    return build_services(settings, generator=MockGenerator())


@pytest.fixture()
def client(services: Services) -> Iterator[TestClient]:
    app = create_app(services=services)
    with TestClient(app) as test_client:
        yield test_client


def _run_update(client: TestClient, services: Services) -> None:
    response = client.post("/api/update")
    assert response.status_code == 202
    summary = services.orchestrator.wait(timeout=30)
    assert summary is not None
    assert summary.error is None


# ---------------------------------------------------------------------------
# Endpoints that need no workspace
# ---------------------------------------------------------------------------


class TestBasics:
    def test_root(self, client: TestClient) -> None:
        response = client.get("/")
        assert response.status_code == 200
        assert response.json()["targets"] == ["python", "go"]

    def test_idle_progress(self, client: TestClient) -> None:
        body = client.get("/api/progress").json()
        assert body["isRunning"] is False
        assert body["fraction"] == 0.0
        assert body["message"] == "idle"
        assert body["error"] is None

    def test_unknown_target_is_bad_request(self, client: TestClient) -> None:
        response = client.post("/api/approve", json={"target": "cobol"})
        assert response.status_code == 400
        assert "Invalid target 'cobol'" in response.json()["detail"]

    def test_empty_target_is_bad_request(self, client: TestClient) -> None:
        response = client.post("/api/reject", json={"target": ""})
        assert response.status_code == 400
        assert response.json()["detail"] == "Target parameter is required"

    def test_missing_field_is_unprocessable(self, client: TestClient) -> None:
        response = client.post("/api/files", json={"target": "python", "path": "sdk.py"})
        assert response.status_code == 422

    def test_missing_workspace_is_not_found(self, client: TestClient) -> None:
        response = client.post("/api/approve", json={"target": "python"})
        assert response.status_code == 404
        assert "Run an update first" in response.json()["detail"]

    def test_checkpoint_failure_is_server_error(
        self, client: TestClient, services: Services
    ) -> None:
        with mock.patch.object(
            services.store,
            "approve",
            side_effect=CheckpointError("git commit failed (exit 1): boom"),
        ):
            response = client.post("/api/approve", json={"target": "python"})
        assert response.status_code == 500
        assert response.json()["detail"] == "git commit failed (exit 1): boom"

    def test_cors_headers(self, client: TestClient) -> None:
        response = client.get("/api/progress", headers={"Origin": "http://localhost:3000"})
        assert response.headers["access-control-allow-origin"] == "http://localhost:3000"


# ---------------------------------------------------------------------------
# Full review workflow
# ---------------------------------------------------------------------------


@pytest.mark.skipif(not _git_available(), reason="git not available")
class TestReviewWorkflow:
    def test_update_then_approve(self, client: TestClient, services: Services) -> None:
        response = client.post("/api/update")
        assert response.status_code == 202
        body = response.json()
        assert body["accepted"] is True
        assert body["runId"]
        services.orchestrator.wait(timeout=30)

        progress = client.get("/api/progress").json()
        assert progress["fraction"] == 1.0
        assert progress["isRunning"] is False
        assert progress["message"] == "Update complete: 2 processed, 0 skipped"

        status = client.get("/api/status/python").json()
        assert status == {
            "stagedFiles": {"sdk.py": "added"},
            "hasStagedChanges": True,
            "hasUnstagedChanges": False,
        }

        approved = client.post(
            "/api/approve", json={"target": "python", "message": "Ship python"}
        ).json()
        assert approved["committed"] is True
        assert approved["checkpointId"]
        assert client.get("/api/status/python").json()["hasStagedChanges"] is False

    def test_reject_is_idempotent(self, client: TestClient, services: Services) -> None:
        _run_update(client, services)
        assert client.post("/api/reject", json={"target": "go"}).json() == {"reverted": True}
        assert client.post("/api/reject", json={"target": "go"}).json() == {"reverted": False}
        assert client.get("/api/files", params={"target": "go"}).json()["files"] == []

    def test_targets(self, client: TestClient, services: Services) -> None:
        _run_update(client, services)
        targets = client.get("/api/targets").json()["targets"]
        assert [t["id"] for t in targets] == ["english", "python", "go"]
        assert targets[0]["label"] == "English"
        assert targets[0]["hasStagedChanges"] is False
        assert targets[1]["hasStagedChanges"] is True

    def test_save_and_read_files(self, client: TestClient, services: Services) -> None:
        _run_update(client, services)
        response = client.post(
            "/api/files",
            json={"target": "english", "path": "docs/auth.md", "content": "Tokens expire.\n"},
        )
        assert response.status_code == 200
        assert response.json() == {"saved": True}

        listing = client.get("/api/files", params={"target": "english"}).json()
        assert listing["files"] == ["README.md", "docs/auth.md"]
        content = client.get(
            "/api/files", params={"target": "english", "path": "docs/auth.md"}
        ).json()
        assert content["content"] == "Tokens expire.\n"
        status = client.get("/api/status/english").json()
        assert status["stagedFiles"] == {"docs/auth.md": "added"}

    def test_save_rejects_traversal(self, client: TestClient, services: Services) -> None:
        _run_update(client, services)
        response = client.post(
            "/api/files",
            json={"target": "python", "path": "../go/main.go", "content": "x"},
        )
        assert response.status_code == 400
        assert "Path traversal not allowed" in response.json()["detail"]

    def test_read_missing_file(self, client: TestClient, services: Services) -> None:
        _run_update(client, services)
        response = client.get("/api/files", params={"target": "python", "path": "nope.py"})
        assert response.status_code == 404
