"""Deploy service -- start a container from a previously built image."""

import logging

from tinyci.clients import docker_client, process_runner
from tinyci.clients.process_runner import Runner
from tinyci.config import settings
from tinyci.errors import BadRequestError, DeployError, NotFoundError, PipelineError
from tinyci.repos import build_repo

logger = logging.getLogger(__name__)


async def deploy(
    *,
    commit_id: str | None = None,
    repo_url: str | None = None,
    runner: Runner = process_runner.run,
) -> dict:
    """Run the image built for *commit_id* as the deploy container.

    When only *repo_url* is given, the commit of that repository's latest
    recorded build is used.
    """
    commit_id = (commit_id or "").strip()
    if not commit_id:
        if not repo_url:
            raise BadRequestError("Either commitId or repoUrl is required")
        record = await build_repo.get_last_build_for_repo(repo_url)
        if record is None:
            raise NotFoundError(f"No recorded build for {repo_url}")
        commit_id = record["commit_id"]

    tag = docker_client.image_tag(commit_id)
    container = settings.DEPLOY_CONTAINER_NAME
    logger.info("Deploying %s as %s", tag, container)
    try:
        container_id = await docker_client.run_container(tag, container, runner=runner)
    except PipelineError as exc:
        logger.error("Error running Docker container %s: %s", tag, exc)
        raise DeployError() from exc

    return {"image": tag, "container": container, "container_id": container_id}
