"""Project service -- stored project configuration."""

import logging

from tinyci.errors import NotFoundError
from tinyci.repos import project_repo

logger = logging.getLogger(__name__)


async def save_project(repo_url: str, token: str, autodeploy: bool, branch: str = "") -> dict:
    project = await project_repo.save_project(repo_url, token, autodeploy, branch)
    logger.info("Saved project %s for %s", project["id"], repo_url)
    return project


async def get_current_project() -> dict:
    """Return the most recently saved project or raise NotFoundError."""
    project = await project_repo.get_current_project()
    if project is None:
        raise NotFoundError("No project configured")
    return project
