"""Draft generation endpoints, one per stage."""

from typing import Annotated

from fastapi import APIRouter, Depends, Request, status

from app.core.auth import get_current_user
from app.core.dependencies import get_draft_generator, get_project_service
from app.core.step_graph import Stage
from app.schemas.auth import CurrentUser
from app.schemas.common import ApiResponse, ErrorResponse
from app.schemas.workflow import GenerateRequest
from app.services.workflow.draft_generator import DraftGeneratorService
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
        400: {"description": "Missing inputs or invalid request", "model": ErrorResponse},
        401: {"description": "Not authenticated", "model": ErrorResponse},
        403: {"description": "Project belongs to another user", "model": ErrorResponse},
        404: {"description": "Project or segment not found", "model": ErrorResponse},
        502: {"description": "Generation failed", "model": ErrorResponse},
    },
    summary="Generate drafts for a stage",
    description=(
        "Runs the stage's generator over every scope unit (or one segment when "
        "segmentId is given), stores the drafts under a new version and moves the "
        "project to the stage's draft step."
    ),
    operation_id="generate_stage_drafts",
)
async def generate_drafts(
    stage: Stage,
    body: GenerateRequest,
    request: Request,
    user: Annotated[CurrentUser, Depends(get_current_user)],
    project_service: Annotated[ProjectService, Depends(get_project_service)],
    generator: Annotated[DraftGeneratorService, Depends(get_draft_generator)],
):
    project = await project_service.get_owned_project(body.project_id, user.id)

    result = await generator.execute(stage, project, segment_id=body.segment_id)

    LOGGER.info(
        f"Generated {len(result.drafts)} {stage.value} drafts",
        extra={"project_id": str(project.id), "user_id": user.id},
    )
    return create_api_response(
        {
            "drafts": result.drafts,
            "current_step": result.current_step,
            "skipped": [{"unit": unit, "reason": reason} for unit, reason in result.skipped_units],
        },
        message=f"Generated {len(result.drafts)} {stage.value} drafts",
        request=request,
    )
