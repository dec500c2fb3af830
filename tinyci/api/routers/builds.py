"""Builds router -- start a build, query the latest and per-build status."""

from fastapi import APIRouter, Depends
from pydantic import AliasChoices, BaseModel, ConfigDict, Field

from tinyci.api.deps import get_pipeline
from tinyci.errors import NotFoundError
from tinyci.repos import build_repo
from tinyci.services import build_service
from tinyci.services.build_service import BuildPipeline

router = APIRouter(prefix="/api", tags=["builds"])


class StartBuildRequest(BaseModel):
    """Request body for starting a build."""
    repo_url: str = Field(
        ...,
        min_length=1,
        validation_alias=AliasChoices("repoUrl", "sourceURL", "repo_url"),
    )


class BuildResponse(BaseModel):
    """A build id and the commit it resolved to (empty until recorded)."""
    model_config = ConfigDict(populate_by_name=True)

    build_id: str = Field(..., serialization_alias="buildId")
    resolved_commit: str = Field("", serialization_alias="resolvedCommit")


class BuildStatusResponse(BuildResponse):
    stage: str


# ── POST /api/build ───────────────────────────────────────────────────────


@router.post("/build", response_model=BuildResponse, response_model_by_alias=True)
async def start_build(
    body: StartBuildRequest,
    pipeline: BuildPipeline = Depends(get_pipeline),
):
    """Start a build; returns the build id before any step has run."""
    build_id = pipeline.start(body.repo_url.strip())
    return BuildResponse(build_id=build_id, resolved_commit="")


# ── GET /api/last-build ───────────────────────────────────────────────────


@router.get("/last-build", response_model=BuildResponse, response_model_by_alias=True)
async def last_build():
    """Return the most recently recorded build."""
    record = await build_service.get_last_build()
    return BuildResponse(build_id=record["id"], resolved_commit=record["commit_id"] or "")


# ── GET /api/builds/{build_id} ────────────────────────────────────────────


@router.get(
    "/builds/{build_id}",
    response_model=BuildStatusResponse,
    response_model_by_alias=True,
)
async def build_status(
    build_id: str,
    pipeline: BuildPipeline = Depends(get_pipeline),
):
    """Report a build's pipeline stage and, once recorded, its commit."""
    stage = pipeline.stage(build_id)
    record = None
    if stage is None or stage.is_terminal:
        record = await build_repo.get_build_by_id(build_id)
    if stage is None and record is None:
        raise NotFoundError(f"Build {build_id} not found")
    return BuildStatusResponse(
        build_id=build_id,
        resolved_commit=(record or {}).get("commit_id") or "",
        stage=stage.value if stage is not None else build_service.BuildStage.COMPLETED.value,
    )
