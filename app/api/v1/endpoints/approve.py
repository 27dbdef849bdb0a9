"""Draft approval endpoints, one per stage."""

from typing import Annotated

from fastapi import APIRouter, Depends, Request, status

from app.core.auth import get_current_user
from app.core.dependencies import get_approval_service, get_project_service
from app.core.step_graph import Stage
from app.schemas.auth import CurrentUser
from app.schemas.common import ApiResponse, ErrorResponse
from app.schemas.workflow import ApproveRequest
from app.services.workflow.approval_service import ApprovalService
from app.services.workflow.project_service import ProjectService
from app.utils.logging import get_logger
from app.utils.responses import create_api_response

LOGGER = get_logger(__name__)

router = APIRouter()


@router.post(
    "/{stage}",
    status_code=status.HTTP_200_OK,
    response_model=ApiResponse,
    responses={
        400: {"description": "Batch invariant failed or nothing approvable", "model": ErrorResponse},
        401: {"description": "Not authenticated", "model": ErrorResponse},
        403: {"description": "Project belongs to another user", "model": ErrorResponse},
        404: {"description": "Project or drafts not found", "model": ErrorResponse},
    },
    summary="Approve drafts of a stage",
    description=(
        "Converts the given drafts into canonical rows and moves the project to the "
        "next step. Drafts whose segment or parent cannot be resolved are skipped and "
        "reported in `skipped`."
    ),
    operation_id="approve_stage_drafts",
)
async def approve_drafts(
    stage: Stage,
    body: ApproveRequest,
    request: Request,
    user: Annotated[CurrentUser, Depends(get_current_user)],
    project_service: Annotated[ProjectService, Depends(get_project_service)],
    approval_service: Annotated[ApprovalService, Depends(get_approval_service)],
):
    project = await project_service.get_owned_project(body.project_id, user.id)

    result = await approval_service.execute(
        stage, project, body.draft_ids, segment_id=body.segment_id, changed_by=user.id
    )

    payload = {
        "approved": result.approved,
        "next_step": result.next_step,
        "skipped": [{"draft_id": draft_id, "reason": reason} for draft_id, reason in result.skipped],
        **result.extra,
    }
    return create_api_response(
        payload,
        message=f"Approved {len(result.approved)} {stage.value} rows",
        request=request,
    )
