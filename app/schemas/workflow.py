"""Request models for the generate, approve and draft endpoints.

Field names follow the camelCase wire format (``projectId``); Python code
reads the snake_case attributes.
"""

from typing import List, Optional
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field, field_validator

from app.core.step_graph import Stage


class _Request(BaseModel):
    model_config = ConfigDict(populate_by_name=True)


class GenerateRequest(_Request):
    """Body of ``POST /generate/{stage}``."""

    project_id: UUID = Field(..., alias="projectId", description="Project to generate drafts for")
    segment_id: Optional[UUID] = Field(
        None, alias="segmentId", description="Restrict generation to one segment"
    )


class ApproveRequest(_Request):
    """Body of ``POST /approve/{stage}``. ``draftIds`` may be one id or a list."""

    project_id: UUID = Field(..., alias="projectId", description="Project the drafts belong to")
    draft_ids: List[UUID] = Field(..., alias="draftIds", description="Draft rows to approve")
    segment_id: Optional[UUID] = Field(
        None, alias="segmentId", description="Only approve drafts of this segment"
    )

    @field_validator("draft_ids", mode="before")
    @classmethod
    def wrap_single_id(cls, value):
        if isinstance(value, (str, UUID)):
            return [value]
        return value


class BatchDeleteRequest(_Request):
    """Body of ``POST /drafts/batch-delete``."""

    project_id: UUID = Field(..., alias="projectId")
    stages: List[Stage] = Field(..., min_length=1, description="Stages whose drafts are deleted")
