"""Deploy router -- run a built image as the deploy container."""

from fastapi import APIRouter
from pydantic import AliasChoices, BaseModel, Field

from tinyci.services import deploy_service

router = APIRouter(prefix="/api", tags=["deploy"])


class DeployRequest(BaseModel):
    """Which image to run: an explicit commit, or the latest build of a repo."""
    repo_url: str | None = Field(
        None, validation_alias=AliasChoices("repoUrl", "sourceURL", "repo_url"),
    )
    commit_id: str | None = Field(
        None, validation_alias=AliasChoices("commitId", "resolvedCommit", "commit_id"),
    )


@router.post("/deploy")
async def deploy(body: DeployRequest):
    """Start a container from the image tagged with the requested commit."""
    return await deploy_service.deploy(commit_id=body.commit_id, repo_url=body.repo_url)
