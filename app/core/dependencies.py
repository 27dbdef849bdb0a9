"""Dependency factories shared by the API endpoints."""

from typing import Annotated

from fastapi import Depends
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.database import get_async_session
from app.core.retry import RetryPolicy
from app.core.unified_llm import TextGenerator, create_llm_client_from_settings
from app.services.workflow.approval_service import ApprovalService
from app.services.workflow.draft_admin_service import DraftAdminService
from app.services.workflow.draft_generator import DraftGeneratorService
from app.services.workflow.project_service import ProjectService


def get_llm_client() -> TextGenerator:
    """Provider client built from the LLM settings."""
    return create_llm_client_from_settings()


def get_retry_policy() -> RetryPolicy:
    return RetryPolicy.from_settings()


async def get_project_service(
    db_session: Annotated[AsyncSession, Depends(get_async_session)]
) -> ProjectService:
    return ProjectService(db_session)


async def get_draft_generator(
    db_session: Annotated[AsyncSession, Depends(get_async_session)],
    llm_client: Annotated[TextGenerator, Depends(get_llm_client)],
    retry_policy: Annotated[RetryPolicy, Depends(get_retry_policy)],
) -> DraftGeneratorService:
    return DraftGeneratorService(db_session, llm_client, retry_policy)


async def get_approval_service(
    db_session: Annotated[AsyncSession, Depends(get_async_session)]
) -> ApprovalService:
    return ApprovalService(db_session)


async def get_draft_admin_service(
    db_session: Annotated[AsyncSession, Depends(get_async_session)]
) -> DraftAdminService:
    return DraftAdminService(db_session)
