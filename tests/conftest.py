"""Shared test fixtures -- reduces boilerplate across test modules.

Provides:
- ``set_test_config`` -- autouse fixture that patches common settings
- ``FakeWebSocket`` -- records frames sent by the log registry
- ``FakeRunner`` -- stands in for git/docker behind the process runner
- ``FakeStore`` -- in-memory build record store
"""

import asyncio
from pathlib import Path

import pytest

from tinyci.errors import ExecutionError, LaunchError


COMMIT_SHA = "0123456789abcdef0123456789abcdef01234567"
REPO_URL = "https://example.com/repo.git"


def pytest_configure(config):
    """Register custom markers.

    Tests that need real external services (database, docker daemon) should
    be decorated with ``@pytest.mark.integration``.
    """
    config.addinivalue_line(
        "markers",
        "integration: tests requiring external services (database, docker, etc.)",
    )


# ---------------------------------------------------------------------------
# Environment patching
# ---------------------------------------------------------------------------


@pytest.fixture(autouse=True)
def set_test_config(monkeypatch, tmp_path):
    """Deterministic, non-production configuration for every test."""
    monkeypatch.setenv("TESTING", "1")
    monkeypatch.setattr("tinyci.config.settings.WORKSPACE_ROOT", str(tmp_path / "workspaces"))
    monkeypatch.setattr("tinyci.config.settings.APP_IMAGE_NAME", "myapp")
    monkeypatch.setattr("tinyci.config.settings.DEPLOY_CONTAINER_NAME", "testcontainer")
    monkeypatch.setattr("tinyci.config.settings.GIT_BINARY", "git")
    monkeypatch.setattr("tinyci.config.settings.DOCKER_BINARY", "docker")


# ---------------------------------------------------------------------------
# Fakes
# ---------------------------------------------------------------------------


class FakeWebSocket:
    """Fake WebSocket recording text frames and close calls."""

    def __init__(self, *, fail_sends: bool = False):
        self.messages: list[str] = []
        self.closed = False
        self.close_code: int | None = None
        self.fail_sends = fail_sends

    async def send_text(self, text: str) -> None:
        if self.closed or self.fail_sends:
            raise RuntimeError("WebSocket closed")
        self.messages.append(text)

    async def close(self, code: int = 1000, reason: str = "") -> None:
        self.closed = True
        self.close_code = code


class FakeRunner:
    """Replays canned git/docker behaviour instead of spawning processes.

    ``fail`` names the steps that exit non-zero (``clone``, ``rev-parse``,
    ``build``, ``run``); ``launch_fail`` names steps whose binary is missing.
    ``gate`` (if set) is awaited before the image build starts.
    """

    def __init__(
        self,
        *,
        commit: str = COMMIT_SHA,
        fail: set[str] | None = None,
        launch_fail: set[str] | None = None,
        build_output: list[bytes] | None = None,
        clone_output: list[bytes] | None = None,
        gate: asyncio.Event | None = None,
    ):
        self.commit = commit
        self.fail = fail or set()
        self.launch_fail = launch_fail or set()
        self.build_output = build_output or [b"#1 [internal] load build definition\n", b"#2 DONE 0.1s\n"]
        self.clone_output = clone_output
        self.gate = gate
        self.calls: list[tuple[str, list[str]]] = []
        self.workspaces_seen: list[Path] = []

    @staticmethod
    def _step(command: str, args: list[str]) -> str:
        if command == "git" and args[0] == "clone":
            return "clone"
        if command == "git" and "rev-parse" in args:
            return "rev-parse"
        if command == "docker" and args[:2] == ["buildx", "build"]:
            return "build"
        if command == "docker" and args[0] == "run":
            return "run"
        return "unknown"

    async def __call__(self, command, args, cwd=None, sink=None, **kwargs):
        args = list(args)
        self.calls.append((command, args))
        step = self._step(command, args)
        display = " ".join([command, *args])
        if step in self.launch_fail:
            raise LaunchError(display, "No such file or directory")

        if step == "clone":
            dest = Path(args[-1])
            self.workspaces_seen.append(dest)
            for chunk in self.clone_output or [f"Cloning into '{dest}'...\n".encode()]:
                await sink(chunk)
            if step not in self.fail:
                (dest / "Dockerfile").write_text("FROM scratch\n")
        elif step == "rev-parse" and step not in self.fail:
            await sink(f"{self.commit}\n".encode())
        elif step == "build":
            if self.gate is not None:
                await self.gate.wait()
            for chunk in self.build_output:
                await sink(chunk)
        elif step == "run" and step not in self.fail:
            await sink(b"f00dfeedc0de\n")

        if step in self.fail:
            raise ExecutionError(display, 128)
        return 0


class FakeStore:
    """In-memory build record store."""

    def __init__(self, *, fail: bool = False):
        self.records: list[dict] = []
        self.fail = fail

    async def save_build(self, build_id: str, repo_url: str, commit_id: str) -> None:
        if self.fail:
            raise ConnectionRefusedError("database is down")
        self.records.append({"id": build_id, "repo_url": repo_url, "commit_id": commit_id})

    async def get_last_build(self) -> dict | None:
        return self.records[-1] if self.records else None


