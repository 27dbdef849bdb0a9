"""Project read and reset endpoints."""

from typing import Annotated, Optional
from uuid import UUID

from fastapi import APIRouter, Depends, Query, Request

from app.core.auth import get_current_user
from app.core.dependencies import get_project_service
from app.schemas.auth import CurrentUser
from app.schemas.common import ApiResponse, ErrorResponse
from app.services.workflow.project_service import ProjectService
from app.utils.responses import create_api_response

router = APIRouter()

_ERRORS = {
    401: {"description": "Not authenticated", "model": ErrorResponse},
    403: {"description": "Project belongs to another user", "model": ErrorResponse},
    404: {"description": "Project not found", "model": ErrorResponse},
}


@router.get(
    "/{project_id}",
    response_model=ApiResponse,
    responses=_ERRORS,
    summary="Get a project",
    operation_id="get_project",
)
async def get_project(
    project_id: UUID,
    request: Request,
    user: Annotated[CurrentUser, Depends(get_current_user)],
    project_service: Annotated[ProjectService, Depends(get_project_service)],
):
    project = await project_service.get_owned_project(project_id, user.id)
    return create_api_response(
        {"project": project.to_dict()},
        message="Project retrieved successfully",
        request=request,
    )


@router.post(
    "/{project_id}/reset",
    response_model=ApiResponse,
    responses=_ERRORS,
    summary="Reset a project",
    description="Deletes every draft and canonical row of the project and moves it back to onboarding.",
    operation_id="reset_project",
)
async def reset_project(
    project_id: UUID,
    request: Request,
    user: Annotated[CurrentUser, Depends(get_current_user)],
    project_service: Annotated[ProjectService, Depends(get_project_service)],
):
    project = await project_service.get_owned_project(project_id, user.id)
    project = await project_service.reset(project)
    return create_api_response(
        {"project": project.to_dict(), "next_step": project.current_step},
        message="Project reset",
        request=request,
    )


@router.post(
    "/{project_id}/reset-to-segment-details",
    response_model=ApiResponse,
    responses=_ERRORS,
    summary="Reset a project to segment details",
    description=(
        "Deletes the approved segment details, the working segments and every later stage, "
        "keeping final segments and segment-details drafts so they can be approved again."
    ),
    operation_id="reset_project_to_segment_details",
)
async def reset_project_to_segment_details(
    project_id: UUID,
    request: Request,
    user: Annotated[CurrentUser, Depends(get_current_user)],
    project_service: Annotated[ProjectService, Depends(get_project_service)],
):
    project = await project_service.get_owned_project(project_id, user.id)
    project = await project_service.reset_to_segment_details(project)
    return create_api_response(
        {"project": project.to_dict(), "next_step": project.current_step},
        message="Project reset to Segment Details step. Please approve segment details again.",
        request=request,
    )


@router.get(
    "/{project_id}/top-pains",
    response_model=ApiResponse,
    responses=_ERRORS,
    summary="List pains with their ranking",
    operation_id="list_project_top_pains",
)
async def list_top_pains(
    project_id: UUID,
    request: Request,
    user: Annotated[CurrentUser, Depends(get_current_user)],
    project_service: Annotated[ProjectService, Depends(get_project_service)],
    segment_id: Annotated[Optional[UUID], Query(alias="segmentId")] = None,
):
    project = await project_service.get_owned_project(project_id, user.id)
    pains = await project_service.top_pains(project, segment_id)
    return create_api_response(
        {"pains": pains, "top_pains": [pain for pain in pains if pain["is_top_pain"]]},
        message="Pains retrieved successfully",
        request=request,
    )
