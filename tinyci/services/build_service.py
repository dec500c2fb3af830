"""Build pipeline -- clone, resolve commit, build image, record, clean up.

Each build request gets a fresh id and its own ``asyncio.Task``.  The task
walks the stages strictly in order; any failing step ends the build but
the workspace is always removed and the live-log subscriber (if any) always
receives the completion sentinel.  Failures are only logged: the HTTP
caller was answered with the build id before the first step started.
"""

import asyncio
import codecs
import collections
import enum
import logging
import shutil
import uuid
from pathlib import Path
from typing import Protocol

from tinyci.clients import docker_client, git_client, process_runner
from tinyci.clients.process_runner import Runner
from tinyci.config import settings
from tinyci.errors import NotFoundError, PersistenceError, PipelineError
from tinyci.log_registry import LogSinkRegistry
from tinyci.repos import build_repo

logger = logging.getLogger(__name__)

# Stage entries kept in memory for finished builds
MAX_FINISHED_STAGES = 1000


class BuildStage(str, enum.Enum):
    CREATED = "created"
    CLONING = "cloning"
    RESOLVING_COMMIT = "resolving_commit"
    IMAGE_BUILDING = "image_building"
    PERSISTING = "persisting"
    CLEANING_UP = "cleaning_up"
    COMPLETED = "completed"
    FAILED = "failed"

    @property
    def is_terminal(self) -> bool:
        return self in (BuildStage.COMPLETED, BuildStage.FAILED)


class BuildRecordStore(Protocol):
    async def save_build(self, build_id: str, repo_url: str, commit_id: str) -> None: ...


class BuildPipeline:
    """Runs build pipelines in the background and tracks their stage."""

    def __init__(
        self,
        registry: LogSinkRegistry,
        store: BuildRecordStore,
        *,
        runner: Runner = process_runner.run,
        workspace_root: str | Path | None = None,
        image_name: str | None = None,
        max_finished: int = MAX_FINISHED_STAGES,
    ) -> None:
        self._registry = registry
        self._store = store
        self._runner = runner
        self._workspace_root = Path(workspace_root or settings.WORKSPACE_ROOT)
        self._image_name = image_name or settings.APP_IMAGE_NAME
        self._stages: dict[str, BuildStage] = {}
        self._tasks: dict[str, asyncio.Task] = {}
        # Terminal builds in finishing order; the oldest stage entries are
        # evicted past max_finished and answered from the build record instead
        self._finished: collections.deque[str] = collections.deque()
        self._max_finished = max_finished

    # ── public API ────────────────────────────────────────────

    def start(self, repo_url: str) -> str:
        """Mint a build id and launch its pipeline without waiting for it."""
        build_id = str(uuid.uuid4())
        while build_id in self._stages:
            build_id = str(uuid.uuid4())
        self._stages[build_id] = BuildStage.CREATED
        task = asyncio.create_task(self.run(build_id, repo_url), name=f"build-{build_id}")
        self._tasks[build_id] = task
        task.add_done_callback(lambda _t: self._tasks.pop(build_id, None))
        logger.info("Build %s queued for %s", build_id[:8], repo_url)
        return build_id

    def stage(self, build_id: str) -> BuildStage | None:
        return self._stages.get(build_id)

    def workspace_for(self, build_id: str) -> Path:
        return self._workspace_root / build_id

    async def join(self, build_id: str) -> None:
        """Wait for a running pipeline to finish (returns at once if it has)."""
        task = self._tasks.get(build_id)
        if task is not None:
            await asyncio.shield(task)

    async def shutdown(self) -> None:
        """Cancel all running pipelines and wait for their cleanup."""
        tasks = list(self._tasks.values())
        for task in tasks:
            task.cancel()
        if tasks:
            await asyncio.gather(*tasks, return_exceptions=True)
            logger.info("Cancelled %d running build(s) on shutdown.", len(tasks))

    # ── the pipeline ──────────────────────────────────────────

    async def run(self, build_id: str, repo_url: str) -> BuildStage:
        """Execute every stage for *build_id*; returns the terminal stage."""
        short = build_id[:8]
        workspace = self.workspace_for(build_id)
        outcome = BuildStage.FAILED
        created = False
        self._stages.setdefault(build_id, BuildStage.CREATED)
        try:
            workspace.mkdir(parents=True, exist_ok=False)
            created = True

            self._set_stage(build_id, BuildStage.CLONING)
            await self._streamed(build_id, git_client.clone_repo, repo_url, workspace)

            self._set_stage(build_id, BuildStage.RESOLVING_COMMIT)
            commit_id = await git_client.rev_parse_head(workspace, runner=self._runner)

            self._set_stage(build_id, BuildStage.IMAGE_BUILDING)
            tag = docker_client.image_tag(commit_id, self._image_name)
            await self._streamed(build_id, docker_client.build_image, workspace, tag)
            logger.info("Build %s produced image %s", short, tag)

            self._set_stage(build_id, BuildStage.PERSISTING)
            await self._persist(build_id, repo_url, commit_id)
            outcome = BuildStage.COMPLETED
        except PipelineError as exc:
            logger.error("Build %s failed while %s: %s", short, self._stages[build_id].value, exc)
        except OSError as exc:
            logger.error("Build %s could not prepare workspace %s: %s", short, workspace, exc)
        except asyncio.CancelledError:
            logger.warning("Build %s cancelled while %s", short, self._stages[build_id].value)
            raise
        except Exception:
            logger.exception("Build %s crashed while %s", short, self._stages[build_id].value)
        finally:
            self._set_stage(build_id, BuildStage.CLEANING_UP)
            if created:
                await self._cleanup(build_id, workspace)
            self._set_stage(build_id, outcome)
            self._retire(build_id)
            await self._registry.complete_and_close(build_id)
        return outcome

    # ── helpers ───────────────────────────────────────────────

    def _set_stage(self, build_id: str, stage: BuildStage) -> None:
        self._stages[build_id] = stage
        logger.debug("Build %s -> %s", build_id[:8], stage.value)

    def _retire(self, build_id: str) -> None:
        self._finished.append(build_id)
        while len(self._finished) > self._max_finished:
            self._stages.pop(self._finished.popleft(), None)

    async def _streamed(self, build_id: str, step, *args):  # noqa: ANN001
        """Run a client *step* with its output streamed to the build's subscriber.

        Each step gets its own decoder, flushed when the step ends, so a
        truncated multi-byte sequence neither vanishes nor leaks into the
        next step's output.
        """
        sink = _StepLogSink(self._registry, build_id)
        try:
            return await step(*args, sink=sink, runner=self._runner)
        finally:
            await sink.flush()

    async def _persist(self, build_id: str, repo_url: str, commit_id: str) -> None:
        try:
            await self._store.save_build(build_id, repo_url, commit_id)
        except Exception as exc:
            error = PersistenceError(f"Could not save build {build_id}: {exc}")
            logger.error("Build %s image kept, record lost: %s", build_id[:8], error)

    async def _cleanup(self, build_id: str, workspace: Path) -> None:
        try:
            await asyncio.to_thread(_remove_tree, workspace)
        except Exception as exc:
            logger.error("Build %s could not remove workspace %s: %s", build_id[:8], workspace, exc)


class _StepLogSink:
    """Decodes one step's output incrementally and forwards it to the registry."""

    def __init__(self, registry: LogSinkRegistry, build_id: str) -> None:
        self._registry = registry
        self._build_id = build_id
        self._decoder = codecs.getincrementaldecoder("utf-8")(errors="replace")

    async def __call__(self, chunk: bytes) -> None:
        await self._forward(self._decoder.decode(chunk))

    async def flush(self) -> None:
        await self._forward(self._decoder.decode(b"", final=True))

    async def _forward(self, text: str) -> None:
        if text:
            await self._registry.deliver(self._build_id, text)


def _remove_tree(path: Path) -> None:
    if path.exists():
        shutil.rmtree(path)


async def get_last_build() -> dict:
    """Return the most recently recorded build or raise NotFoundError."""
    record = await build_repo.get_last_build()
    if record is None:
        raise NotFoundError("No builds recorded yet")
    return record
