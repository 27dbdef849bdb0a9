"""Draft listing and deletion endpoints."""

from typing import Annotated, Optional
from uuid import UUID

from fastapi import APIRouter, Depends, Path, Query, Request

from app.core.auth import get_current_user
from app.core.dependencies import get_draft_admin_service, get_project_service
from app.core.step_graph import Stage
from app.schemas.auth import CurrentUser
from app.schemas.common import ApiResponse, ErrorResponse
from app.schemas.workflow import BatchDeleteRequest
from app.services.workflow.draft_admin_service import DraftAdminService
from app.services.workflow.project_service import ProjectService
from app.utils.responses import create_api_response

router = APIRouter()

_ERRORS = {
    401: {"description": "Not authenticated", "model": ErrorResponse},
    403: {"description": "Project belongs to another user", "model": ErrorResponse},
    404: {"description": "Project or drafts not found", "model": ErrorResponse},
}


@router.post(
    "/batch-delete",
    response_model=ApiResponse,
    responses=_ERRORS,
    summary="Delete all drafts of several stages",
    operation_id="batch_delete_drafts",
)
async def batch_delete_drafts(
    body: BatchDeleteRequest,
    request: Request,
    user: Annotated[CurrentUser, Depends(get_current_user)],
    project_service: Annotated[ProjectService, Depends(get_project_service)],
    draft_service: Annotated[DraftAdminService, Depends(get_draft_admin_service)],
):
    project = await project_service.get_owned_project(body.project_id, user.id)
    deleted = await draft_service.batch_delete(project, body.stages)
    return create_api_response(
        {"deleted": deleted},
        message=f"Deleted {sum(deleted.values())} drafts",
        request=request,
    )


@router.get(
    "/{stage}",
    response_model=ApiResponse,
    responses=_ERRORS,
    summary="List drafts of a stage",
    operation_id="list_stage_drafts",
)
async def list_drafts(
    stage: Stage,
    request: Request,
    user: Annotated[CurrentUser, Depends(get_current_user)],
    project_service: Annotated[ProjectService, Depends(get_project_service)],
    draft_service: Annotated[DraftAdminService, Depends(get_draft_admin_service)],
    project_id: Annotated[UUID, Query(alias="projectId")],
    segment_id: Annotated[Optional[UUID], Query(alias="segmentId")] = None,
):
    project = await project_service.get_owned_project(project_id, user.id)
    drafts = await draft_service.list_drafts(stage, project, segment_id)
    return create_api_response(
        {"drafts": drafts},
        message="Drafts retrieved successfully",
        request=request,
    )


@router.delete(
    "/{stage}/versions/{version}",
    response_model=ApiResponse,
    responses=_ERRORS,
    summary="Delete one version of a stage's drafts",
    operation_id="delete_stage_draft_version",
)
async def delete_draft_version(
    stage: Stage,
    version: Annotated[int, Path(ge=1)],
    request: Request,
    user: Annotated[CurrentUser, Depends(get_current_user)],
    project_service: Annotated[ProjectService, Depends(get_project_service)],
    draft_service: Annotated[DraftAdminService, Depends(get_draft_admin_service)],
    project_id: Annotated[UUID, Query(alias="projectId")],
):
    project = await project_service.get_owned_project(project_id, user.id)
    removed = await draft_service.delete_version(stage, project, version)
    return create_api_response(
        {"deleted": removed, "version": version},
        message=f"Deleted version {version} of {stage.value} drafts",
        request=request,
    )
