"""Docker client -- image build and container launch via the docker CLI."""

import logging
from pathlib import Path

from tinyci.clients import process_runner
from tinyci.clients.process_runner import OutputBuffer, OutputSink, Runner
from tinyci.config import settings

logger = logging.getLogger(__name__)


def image_tag(commit_id: str, image_name: str | None = None) -> str:
    """Return the deterministic tag for *commit_id*: ``<image name>:<commit>``."""
    return f"{image_name or settings.APP_IMAGE_NAME}:{commit_id}"


async def build_image(
    context_dir: str | Path,
    tag: str,
    *,
    sink: OutputSink = process_runner.discard,
    runner: Runner = process_runner.run,
) -> str:
    """Build *context_dir* with buildx into the local image store as *tag*."""
    await runner(
        settings.DOCKER_BINARY,
        ["buildx", "build", str(context_dir), "--tag", tag, "--output=type=docker"],
        None,
        sink,
    )
    return tag


async def run_container(
    tag: str,
    name: str,
    *,
    runner: Runner = process_runner.run,
) -> str:
    """Start a detached container *name* from image *tag*.

    Returns docker's stdout (the container id on success).
    """
    buffer = OutputBuffer()
    await runner(
        settings.DOCKER_BINARY,
        ["run", "-d", "--name", name, tag],
        None,
        buffer,
        merge_stderr=False,
    )
    container_id = buffer.text().strip()
    logger.info("Started container %s from %s (%s)", name, tag, container_id[:12])
    return container_id
