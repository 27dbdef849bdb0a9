"""Tests for API endpoints."""

import time
import uuid
from types import SimpleNamespace
from unittest.mock import AsyncMock, patch

import jwt
import pytest
from fastapi.testclient import TestClient

from app.core.auth import get_current_user
from app.core.dependencies import (
    get_approval_service,
    get_draft_admin_service,
    get_draft_generator,
    get_project_service,
)
from app.core.exceptions import APIClientError, NotFoundError, PermissionDeniedError, ValidationError
from app.core.step_graph import Stage
from app.main import app
from app.schemas.auth import CurrentUser
from app.services.workflow.approval_service import ApprovalResult
from app.services.workflow.draft_generator import GenerationResult
from tests.helpers import TEST_USER_ID

PROJECT_ID = str(uuid.uuid4())


def _token(secret="test-jwt-secret-with-enough-length-for-hs256", **overrides) -> str:
    now = int(time.time())
    claims = {
        "sub": TEST_USER_ID,
        "email": "owner@example.com",
        "role": "authenticated",
        "aud": "authenticated",
        "iss": "https://test-project.supabase.co/auth/v1",
        "iat": now,
        "exp": now + 3600,
        **overrides,
    }
    return jwt.encode(claims, secret, algorithm="HS256")


def _fake_project():
    project = SimpleNamespace(id=uuid.UUID(PROJECT_ID), current_step="onboarding")
    project.to_dict = lambda: {"id": PROJECT_ID, "current_step": project.current_step}
    return project


@pytest.fixture
def project_service():
    service = AsyncMock()
    service.get_owned_project.return_value = _fake_project()
    app.dependency_overrides[get_project_service] = lambda: service
    return service


@pytest.fixture
def signed_in():
    app.dependency_overrides[get_current_user] = lambda: CurrentUser(id=TEST_USER_ID, email="owner@example.com")


class TestAuthentication:
    """Bearer token handling at the HTTP boundary."""

    def test_missing_token_is_401(self, test_client: TestClient, project_service) -> None:
        response = test_client.post("/api/v1/generate/validation", json={"projectId": PROJECT_ID})

        assert response.status_code == 401
        assert response.headers["WWW-Authenticate"] == "Bearer"
        body = response.json()
        assert body["success"] is False
        assert body["error"]["title"] == "Unauthorized"

    def test_token_with_wrong_secret_is_401(self, test_client: TestClient, project_service) -> None:
        response = test_client.get(
            f"/api/v1/projects/{PROJECT_ID}",
            headers={"Authorization": f"Bearer {_token(secret='another-secret-that-is-long-enough-too')}"},
        )

        assert response.status_code == 401

    def test_expired_token_is_401(self, test_client: TestClient, project_service) -> None:
        token = _token(exp=int(time.time()) - 60)

        response = test_client.get(f"/api/v1/projects/{PROJECT_ID}", headers={"Authorization": f"Bearer {token}"})

        assert response.status_code == 401
        assert response.json()["error"]["detail"] == "Access token has expired"

    def test_valid_token_reaches_the_endpoint(self, test_client: TestClient, project_service) -> None:
        response = test_client.get(
            f"/api/v1/projects/{PROJECT_ID}",
            headers={"Authorization": f"Bearer {_token()}"},
        )

        assert response.status_code == 200
        assert response.json()["project"]["id"] == PROJECT_ID
        project_service.get_owned_project.assert_awaited_once_with(uuid.UUID(PROJECT_ID), TEST_USER_ID)


class TestGenerateEndpoints:
    """Test suite for the generate endpoints."""

    def test_generate_success(self, test_client: TestClient, project_service, signed_in) -> None:
        generator = AsyncMock()
        generator.execute.return_value = GenerationResult(
            stage=Stage.VALIDATION,
            drafts=[{"id": "d-1", "what_brand_sells": "Coffee", "version": 1}],
            skipped_units=[],
            current_step="validation_draft",
        )
        app.dependency_overrides[get_draft_generator] = lambda: generator

        response = test_client.post(
            "/api/v1/generate/validation",
            json={"projectId": PROJECT_ID},
            headers={"X-Correlation-ID": "req-123"},
        )

        assert response.status_code == 200
        data = response.json()
        assert data["success"] is True
        assert data["current_step"] == "validation_draft"
        assert data["drafts"][0]["what_brand_sells"] == "Coffee"
        assert data["skipped"] == []
        assert data["meta"]["request_id"] == "req-123"
        generator.execute.assert_awaited_once()
        assert generator.execute.await_args.args[0] == Stage.VALIDATION

    def test_generate_passes_segment_filter(self, test_client: TestClient, project_service, signed_in) -> None:
        segment_id = uuid.uuid4()
        generator = AsyncMock()
        generator.execute.return_value = GenerationResult(
            stage=Stage.JOBS, drafts=[], current_step="jobs_draft", skipped_units=[("segment 2", "missing triggers")]
        )
        app.dependency_overrides[get_draft_generator] = lambda: generator

        response = test_client.post(
            "/api/v1/generate/jobs", json={"projectId": PROJECT_ID, "segmentId": str(segment_id)}
        )

        assert response.status_code == 200
        assert response.json()["skipped"] == [{"unit": "segment 2", "reason": "missing triggers"}]
        assert generator.execute.await_args.kwargs["segment_id"] == segment_id

    def test_provider_failure_is_502_with_stable_message(self, test_client: TestClient, project_service, signed_in) -> None:
        generator = AsyncMock()
        generator.execute.side_effect = APIClientError("API Error 503: upstream secret detail")
        app.dependency_overrides[get_draft_generator] = lambda: generator

        response = test_client.post("/api/v1/generate/portrait", json={"projectId": PROJECT_ID})

        assert response.status_code == 502
        error = response.json()["error"]
        assert error["title"] == "Generation Failed"
        assert "secret" not in error["detail"]

    def test_missing_inputs_is_400(self, test_client: TestClient, project_service, signed_in) -> None:
        generator = AsyncMock()
        generator.execute.side_effect = ValidationError("Nothing to generate for portrait (project: missing validation)")
        app.dependency_overrides[get_draft_generator] = lambda: generator

        response = test_client.post("/api/v1/generate/portrait", json={"projectId": PROJECT_ID})

        assert response.status_code == 400
        assert "missing validation" in response.json()["error"]["detail"]

    def test_malformed_project_id_is_400(self, test_client: TestClient, project_service, signed_in) -> None:
        app.dependency_overrides[get_draft_generator] = lambda: AsyncMock()

        response = test_client.post("/api/v1/generate/validation", json={"projectId": "not-a-uuid"})

        assert response.status_code == 400
        assert response.json()["error"]["title"] == "Validation Failed"

    def test_unknown_stage_is_400(self, test_client: TestClient, project_service, signed_in) -> None:
        app.dependency_overrides[get_draft_generator] = lambda: AsyncMock()

        response = test_client.post("/api/v1/generate/horoscope", json={"projectId": PROJECT_ID})

        assert response.status_code == 400

    def test_foreign_project_is_403(self, test_client: TestClient, project_service, signed_in) -> None:
        project_service.get_owned_project.side_effect = PermissionDeniedError("You do not have access to this project")
        app.dependency_overrides[get_draft_generator] = lambda: AsyncMock()

        response = test_client.post("/api/v1/generate/validation", json={"projectId": PROJECT_ID})

        assert response.status_code == 403

    def test_missing_project_is_404(self, test_client: TestClient, project_service, signed_in) -> None:
        project_service.get_owned_project.side_effect = NotFoundError("Project not found")
        app.dependency_overrides[get_draft_generator] = lambda: AsyncMock()

        response = test_client.post("/api/v1/generate/validation", json={"projectId": PROJECT_ID})

        assert response.status_code == 404
        assert response.json()["error"]["detail"] == "Project not found"


class TestApproveEndpoints:
    """Test suite for the approve endpoints."""

    def test_approve_success_reports_skips(self, test_client: TestClient, project_service, signed_in) -> None:
        approved_id, skipped_id = str(uuid.uuid4()), str(uuid.uuid4())
        approval = AsyncMock()
        approval.execute.return_value = ApprovalResult(
            stage=Stage.CANVAS,
            approved=[{"id": approved_id}],
            skipped=[(skipped_id, "pain not found")],
            next_step="canvas_approved",
        )
        app.dependency_overrides[get_approval_service] = lambda: approval

        response = test_client.post(
            "/api/v1/approve/canvas",
            json={"projectId": PROJECT_ID, "draftIds": [approved_id, skipped_id]},
        )

        assert response.status_code == 200
        data = response.json()
        assert data["next_step"] == "canvas_approved"
        assert data["skipped"] == [{"draft_id": skipped_id, "reason": "pain not found"}]

    def test_single_draft_id_is_accepted(self, test_client: TestClient, project_service, signed_in) -> None:
        draft_id = uuid.uuid4()
        approval = AsyncMock()
        approval.execute.return_value = ApprovalResult(
            stage=Stage.SEGMENT_DETAILS,
            approved=[{"id": "row"}],
            skipped=[],
            next_step="segment_details_approved",
            extra={"segments": [{"id": "seg"}]},
        )
        app.dependency_overrides[get_approval_service] = lambda: approval

        response = test_client.post(
            "/api/v1/approve/segment-details",
            json={"projectId": PROJECT_ID, "draftIds": str(draft_id)},
        )

        assert response.status_code == 200
        assert response.json()["segments"] == [{"id": "seg"}]
        assert approval.execute.await_args.args[2] == [draft_id]

    def test_approver_is_recorded_as_changed_by(self, test_client: TestClient, project_service, signed_in) -> None:
        approval = AsyncMock()
        approval.execute.return_value = ApprovalResult(
            stage=Stage.VALIDATION, approved=[{"id": "row"}], skipped=[], next_step="validation_approved"
        )
        app.dependency_overrides[get_approval_service] = lambda: approval

        response = test_client.post(
            "/api/v1/approve/validation",
            json={"projectId": PROJECT_ID, "draftIds": [str(uuid.uuid4())]},
        )

        assert response.status_code == 200
        assert approval.execute.await_args.kwargs["changed_by"] == TEST_USER_ID

    def test_top_pick_rejection_is_400(self, test_client: TestClient, project_service, signed_in) -> None:
        approval = AsyncMock()
        approval.execute.side_effect = ValidationError("Select at least one TOP pain before approving")
        app.dependency_overrides[get_approval_service] = lambda: approval

        response = test_client.post(
            "/api/v1/approve/pains-ranking",
            json={"projectId": PROJECT_ID, "draftIds": [str(uuid.uuid4())]},
        )

        assert response.status_code == 400
        assert response.json()["error"]["detail"] == "Select at least one TOP pain before approving"


class TestDraftAndProjectEndpoints:
    """Draft administration and project views."""

    def test_batch_delete(self, test_client: TestClient, project_service, signed_in) -> None:
        drafts = AsyncMock()
        drafts.batch_delete.return_value = {"jobs": 2, "pains": 4}
        app.dependency_overrides[get_draft_admin_service] = lambda: drafts

        response = test_client.post(
            "/api/v1/drafts/batch-delete", json={"projectId": PROJECT_ID, "stages": ["jobs", "pains"]}
        )

        assert response.status_code == 200
        assert response.json()["deleted"] == {"jobs": 2, "pains": 4}
        assert drafts.batch_delete.await_args.args[1] == [Stage.JOBS, Stage.PAINS]

    def test_list_drafts(self, test_client: TestClient, project_service, signed_in) -> None:
        drafts = AsyncMock()
        drafts.list_drafts.return_value = [{"id": "d-1", "version": 2}]
        app.dependency_overrides[get_draft_admin_service] = lambda: drafts

        response = test_client.get("/api/v1/drafts/validation", params={"projectId": PROJECT_ID})

        assert response.status_code == 200
        assert response.json()["drafts"] == [{"id": "d-1", "version": 2}]

    def test_reset_project(self, test_client: TestClient, project_service, signed_in) -> None:
        project_service.reset.return_value = _fake_project()

        response = test_client.post(f"/api/v1/projects/{PROJECT_ID}/reset")

        assert response.status_code == 200
        assert response.json()["next_step"] == "onboarding"

    def test_reset_project_to_segment_details(self, test_client: TestClient, project_service, signed_in) -> None:
        rewound = _fake_project()
        rewound.current_step = "segment_details_draft"
        project_service.reset_to_segment_details.return_value = rewound

        response = test_client.post(f"/api/v1/projects/{PROJECT_ID}/reset-to-segment-details")

        assert response.status_code == 200
        data = response.json()
        assert data["next_step"] == "segment_details_draft"
        assert data["message"].startswith("Project reset to Segment Details step")
        project_service.get_owned_project.assert_awaited_once_with(uuid.UUID(PROJECT_ID), TEST_USER_ID)

    def test_top_pains_view(self, test_client: TestClient, project_service, signed_in) -> None:
        project_service.top_pains.return_value = [
            {"name": "Cold cups", "is_top_pain": True, "impact_score": 8},
            {"name": "Queues", "is_top_pain": False, "impact_score": 0},
        ]

        response = test_client.get(f"/api/v1/projects/{PROJECT_ID}/top-pains")

        assert response.status_code == 200
        assert [pain["name"] for pain in response.json()["top_pains"]] == ["Cold cups"]


class TestServiceEndpoints:
    def test_root(self, test_client: TestClient) -> None:
        response = test_client.get("/")

        assert response.status_code == 200
        assert response.json()["message"] == "Server is running"

    def test_health_reports_database_status(self, test_client: TestClient) -> None:
        with patch(
            "app.api.v1.endpoints.health.db_client.health_check",
            AsyncMock(return_value={"status": "unhealthy"}),
        ):
            response = test_client.get("/health")

        assert response.status_code == 200
        assert response.json()["status"] == "degraded"
