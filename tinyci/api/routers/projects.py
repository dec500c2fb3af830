"""Projects router -- store and read the current project configuration."""

from fastapi import APIRouter
from pydantic import AliasChoices, BaseModel, ConfigDict, Field

from tinyci.services import project_service

router = APIRouter(prefix="/api", tags=["projects"])


class SaveProjectRequest(BaseModel):
    """Request body for saving a project."""
    repo_url: str = Field(..., min_length=1, validation_alias=AliasChoices("repoUrl", "repo_url"))
    token: str = ""
    autodeploy: bool = False
    branch: str = ""


class ProjectResponse(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    id: int
    repo_url: str | None = Field(None, serialization_alias="repoUrl")
    token: str | None = None
    autodeploy: bool | None = None
    branch: str | None = None


@router.post("/project")
async def save_project(body: SaveProjectRequest) -> dict:
    """Save a project configuration."""
    await project_service.save_project(body.repo_url, body.token, body.autodeploy, body.branch)
    return {"status": "ok"}


@router.get("/current-project", response_model=ProjectResponse, response_model_by_alias=True)
async def current_project():
    """Return the most recently saved project."""
    return ProjectResponse(**await project_service.get_current_project())
