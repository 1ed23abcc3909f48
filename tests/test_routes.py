# ============================================================================
# API ROUTES TESTS
# ============================================================================
# EPOCH: 1 - CASE WORKFLOW ENGINE
# STATUS: Tests - HTTP endpoints
# PURPOSE: Verify routes, error mapping and request validation
# CREATED: 12 OCT 2026
# ============================================================================
"""
API Route Tests

Template endpoints run against a real TemplateService with a mocked
repository. Instance, step and context endpoints run against real
services over the in-memory fakes from conftest.py.

Run with:
    pytest tests/test_routes.py -v
"""

from unittest.mock import AsyncMock, MagicMock

import pytest
from fastapi import FastAPI
from fastapi.exceptions import RequestValidationError
from fastapi.testclient import TestClient

from core.errors import WorkflowError
from core.models import TemplateStep, WorkflowTemplate
from api.routes import router, request_validation_error_handler, set_services, workflow_error_handler
from orchestrator.engine.dependencies import DependencyEvaluator
from orchestrator.engine.scheduler import StepScheduler
from services import ContextService, InstanceService, NotificationService, TemplateService


# ============================================================================
# FIXTURES
# ============================================================================

def _published_template():
    return WorkflowTemplate(
        template_id="intake",
        name="Client intake",
        version=1,
        is_active=True,
        steps=[
            TemplateStep(order=0, title="Conflict check"),
            TemplateStep(
                order=1,
                title="Partner review",
                depends_on=[0],
                required=False,
                condition_type="IF_TRUE",
                condition_config={"field": "amount", "operator": ">", "value": 1000},
            ),
        ],
    )


def _make_template_repo(existing=None, active=None):
    repo = MagicMock()
    repo.get = AsyncMock(return_value=existing)
    repo.get_active = AsyncMock(return_value=active)
    repo.list_latest = AsyncMock(return_value=[existing] if existing else [])
    repo.create = AsyncMock(side_effect=lambda template, conn=None: template)
    repo.update = AsyncMock(return_value=True)
    repo.publish = AsyncMock(return_value=None)
    return repo


def _make_test_app(fake_pool, instance_repo, sink, template_repo=None):
    """Test app with real services over fakes."""
    template_repo = template_repo or _make_template_repo(active=_published_template())
    template_service = TemplateService(fake_pool, template_repo=template_repo)
    context_service = ContextService(fake_pool, instance_repo)
    instance_service = InstanceService(
        pool=fake_pool,
        template_service=template_service,
        instance_repo=instance_repo,
        context_service=context_service,
        notification_service=NotificationService(sink=sink),
        scheduler=StepScheduler(DependencyEvaluator(skipped_satisfies_dependencies=False)),
    )

    app = FastAPI()
    app.include_router(router, prefix="/api/v1")
    app.add_exception_handler(WorkflowError, workflow_error_handler)
    app.add_exception_handler(RequestValidationError, request_validation_error_handler)
    set_services(template_service, instance_service, context_service)
    return app


@pytest.fixture
def client(fake_pool, instance_repo, sink):
    return TestClient(_make_test_app(fake_pool, instance_repo, sink))


def _instantiate(client, **body):
    resp = client.post("/api/v1/workflows/templates/intake/instantiate", json=body)
    assert resp.status_code == 201
    return resp.json()


def _step_ids(data):
    return {s["template_order"]: s["step_id"] for s in data["steps"]}


# ============================================================================
# VALIDATION
# ============================================================================

class TestValidationRoutes:

    def test_valid_steps(self, client):
        resp = client.post("/api/v1/workflows/validate", json={"steps": [
            {"order": 0, "title": "Intake"},
            {"order": 1, "title": "Docs", "depends_on": [0]},
            {"order": 2, "title": "Conflicts", "depends_on": [0]},
        ]})

        assert resp.status_code == 200
        data = resp.json()
        assert data["valid"] is True
        assert data["dependency_summary"] == "Steps 1, 2 execute in parallel (fork pattern)"

    def test_invalid_steps_return_422_with_issues(self, client):
        resp = client.post("/api/v1/workflows/validate", json={"steps": [
            {"order": 0, "title": "Intake", "depends_on": [1]},
            {"order": 1, "title": "Docs", "depends_on": [0]},
        ]})

        assert resp.status_code == 422
        data = resp.json()
        assert data["error"].startswith("Invalid workflow: ")
        messages = [i["message"] for i in data["issues"]]
        assert "Cannot depend on future step: Step 1" in messages
        assert any(m.startswith("Circular dependency detected") for m in messages)

    def test_malformed_condition_reported_as_issues(self, client):
        resp = client.post("/api/v1/workflows/validate", json={"steps": [
            {"order": 0, "title": "Intake", "condition_type": "IF_TRUE",
             "condition_config": {"field": "a", "operator": "approx"}},
        ]})

        assert resp.status_code == 422
        data = resp.json()
        assert data["error"].startswith("Invalid workflow: ")
        assert "detail" not in data
        assert data["issues"][0]["field"].startswith("steps[0].condition_config")

    def test_single_item_compound_reported_as_issues(self, client):
        resp = client.post("/api/v1/workflows/templates", json={
            "template_id": "intake",
            "name": "Client intake",
            "steps": [
                {"order": 0, "title": "Intake", "condition_type": "IF_TRUE",
                 "condition_config": {"logic": "AND", "conditions": [
                     {"field": "a", "operator": "exists"},
                 ]}},
            ],
        })

        assert resp.status_code == 422
        issue = resp.json()["issues"][0]
        assert issue["field"] == "steps[0].condition_config.compound.conditions"
        assert "at least 2" in issue["message"]

    def test_validate_condition(self, client):
        resp = client.post("/api/v1/workflows/validate-condition", json={
            "condition": {"field": "amount", "operator": ">", "value": 100},
            "test_context": {"amount": 150},
        })

        assert resp.status_code == 200
        assert resp.json() == {
            "valid": True,
            "errors": [],
            "evaluation": {"success": True, "value": True},
        }

    def test_validate_condition_errors(self, client):
        resp = client.post("/api/v1/workflows/validate-condition", json={
            "condition": {"field": "amount", "operator": ">"},
        })

        data = resp.json()
        assert resp.status_code == 200
        assert data["valid"] is False
        assert data["errors"]
        assert data["evaluation"] is None

    def test_validate_condition_evaluation_failure(self, client):
        resp = client.post("/api/v1/workflows/validate-condition", json={
            "condition": {"field": "amount", "operator": ">", "value": 100},
            "test_context": {"amount": "many"},
        })

        evaluation = resp.json()["evaluation"]
        assert evaluation["success"] is False
        assert "numeric" in evaluation["error"]


# ============================================================================
# TEMPLATES
# ============================================================================

class TestTemplateRoutes:

    def test_create(self, client):
        resp = client.post("/api/v1/workflows/templates", json={
            "template_id": "estate",
            "name": "Estate plan",
            "steps": [{
                "order": 0,
                "title": "Questionnaire",
                "action_type": "POPULATE_QUESTIONNAIRE",
                "action_config": {"questionnaire_id": "q-estate", "title": "Estate questionnaire"},
            }],
        })

        assert resp.status_code == 201
        data = resp.json()
        assert data["version"] == 1
        assert data["is_active"] is False
        assert data["dependency_summary"] == "Sequential execution (no parallelism)"

    def test_get_unknown_template(self, fake_pool, instance_repo, sink):
        client = TestClient(_make_test_app(fake_pool, instance_repo, sink, _make_template_repo()))

        resp = client.get("/api/v1/workflows/templates/nope")

        assert resp.status_code == 404
        assert resp.json() == {"error": "Template not found: nope"}

    def test_list(self, fake_pool, instance_repo, sink):
        repo = _make_template_repo(existing=_published_template())
        client = TestClient(_make_test_app(fake_pool, instance_repo, sink, repo))

        resp = client.get("/api/v1/workflows/templates", params={"active_only": True})

        assert resp.status_code == 200
        assert resp.json()["total"] == 1
        repo.list_latest.assert_awaited_once_with(active_only=True, limit=100)

    def test_update_published_creates_draft(self, fake_pool, instance_repo, sink):
        repo = _make_template_repo(existing=_published_template())
        client = TestClient(_make_test_app(fake_pool, instance_repo, sink, repo))

        resp = client.put("/api/v1/workflows/templates/intake", json={"name": "Intake (2026)"})

        assert resp.status_code == 200
        assert resp.json()["version"] == 2
        assert resp.json()["is_active"] is False

    def test_publish(self, fake_pool, instance_repo, sink):
        draft = _published_template().model_copy(update={"is_active": False})
        repo = _make_template_repo(existing=draft)
        client = TestClient(_make_test_app(fake_pool, instance_repo, sink, repo))

        resp = client.post("/api/v1/workflows/templates/intake/publish", json={"version": 1})

        assert resp.status_code == 200
        assert resp.json()["is_active"] is True
        repo.publish.assert_awaited_once()

    def test_instantiate_unpublished(self, fake_pool, instance_repo, sink):
        repo = _make_template_repo(existing=_published_template().model_copy(update={"is_active": False}))
        client = TestClient(_make_test_app(fake_pool, instance_repo, sink, repo))

        resp = client.post("/api/v1/workflows/templates/intake/instantiate")

        assert resp.status_code == 409
        assert resp.json()["error"] == "Template intake has no published version"


# ============================================================================
# INSTANCES / STEPS / CONTEXT
# ============================================================================

class TestInstanceRoutes:

    def test_instantiate_and_get(self, client, sink):
        created = _instantiate(client, case_id="m-1", context={"amount": 50})
        instance_id = created["instance"]["instance_id"]

        assert created["instance"]["case_id"] == "m-1"
        assert created["steps"][0]["action_state"] == "READY"
        assert created["scheduling"]["activated_count"] == 1
        assert len(sink.sent) == 1

        resp = client.get(f"/api/v1/workflows/instances/{instance_id}")
        assert resp.status_code == 200
        assert resp.json()["scheduling"] is None

    def test_instantiate_without_body(self, client):
        resp = client.post("/api/v1/workflows/templates/intake/instantiate")

        assert resp.status_code == 201
        assert resp.json()["instance"]["context"] == {}

    def test_step_flow(self, client):
        created = _instantiate(client)
        ids = _step_ids(created)

        resp = client.post(f"/api/v1/workflows/steps/{ids[0]}/start", json={"by": "lawyer-1"})
        assert resp.status_code == 200

        resp = client.post(
            f"/api/v1/workflows/steps/{ids[0]}/complete",
            json={"by": "lawyer-1", "context_updates": {"amount": 10}},
        )
        assert resp.status_code == 200
        data = resp.json()
        assert data["instance"]["status"] == "COMPLETED"
        assert data["instance"]["context"] == {"amount": 10}
        review = next(s for s in data["steps"] if s["step_id"] == ids[1])
        assert review["action_state"] == "SKIPPED"
        assert review["notes"] == "Skipped: Condition not met (IF_TRUE, evaluated to false)"

    def test_invalid_transition_is_409(self, client):
        ids = _step_ids(_instantiate(client))

        resp = client.post(f"/api/v1/workflows/steps/{ids[0]}/complete")

        assert resp.status_code == 409
        assert "not permitted" in resp.json()["error"]

    def test_skip_optional_step(self, client):
        ids = _step_ids(_instantiate(client, context={"amount": 5000}))
        client.post(f"/api/v1/workflows/steps/{ids[0]}/start")
        client.post(f"/api/v1/workflows/steps/{ids[0]}/complete")

        resp = client.post(f"/api/v1/workflows/steps/{ids[1]}/skip", json={"by": "admin", "note": "Waived"})

        assert resp.status_code == 200
        assert resp.json()["instance"]["status"] == "COMPLETED"

    def test_skip_required_step_is_409(self, client):
        ids = _step_ids(_instantiate(client))

        resp = client.post(f"/api/v1/workflows/steps/{ids[0]}/skip")

        assert resp.status_code == 409

    def test_unknown_step_is_404(self, client):
        resp = client.post("/api/v1/workflows/steps/step-missing/start")

        assert resp.status_code == 404

    def test_list_and_cancel(self, client):
        created = _instantiate(client, case_id="m-7")
        instance_id = created["instance"]["instance_id"]

        resp = client.get("/api/v1/workflows/instances", params={"case_id": "m-7"})
        assert resp.json()["total"] == 1

        resp = client.post(f"/api/v1/workflows/instances/{instance_id}/cancel")
        assert resp.status_code == 200
        assert resp.json()["status"] == "CANCELLED"

        resp = client.get("/api/v1/workflows/instances", params={"status": "ACTIVE"})
        assert resp.json()["total"] == 0

    def test_dependencies(self, client):
        created = _instantiate(client)
        ids = _step_ids(created)

        resp = client.get(f"/api/v1/workflows/instances/{created['instance']['instance_id']}/dependencies")

        data = resp.json()
        assert data["ready"] == [ids[0]]
        assert data["blocked"] == [ids[1]]

    def test_context_endpoints(self, client):
        created = _instantiate(client, context={"amount": 1})
        instance_id = created["instance"]["instance_id"]
        url = f"/api/v1/workflows/instances/{instance_id}/context"

        assert client.get(url).json() == {"instance_id": instance_id, "context": {"amount": 1}}

        resp = client.patch(url, json={"updates": {"pro_bono": True}})
        assert resp.json()["context"] == {"amount": 1, "pro_bono": True}

        resp = client.patch(url, json={"context": {"amount": 2}})
        assert resp.json()["context"] == {"amount": 2}

        resp = client.patch(url, json={"clear": True})
        assert resp.json()["context"] == {}

    def test_context_patch_needs_exactly_one_mode(self, client):
        created = _instantiate(client)
        url = f"/api/v1/workflows/instances/{created['instance']['instance_id']}/context"

        assert client.patch(url, json={}).status_code == 422
        assert client.patch(url, json={"updates": {"a": 1}, "clear": True}).status_code == 422

    def test_advance(self, client):
        created = _instantiate(client)

        resp = client.post(f"/api/v1/workflows/instances/{created['instance']['instance_id']}/advance")

        assert resp.status_code == 200
        assert resp.json()["scheduling"]["transitions"] == []

    def test_unknown_instance_is_404(self, client):
        resp = client.get("/api/v1/workflows/instances/inst-missing/context")

        assert resp.status_code == 404
        assert resp.json() == {"error": "Workflow instance inst-missing not found"}


class TestActionRoutes:

    def _approval_client(self, fake_pool, instance_repo, sink):
        template = WorkflowTemplate(
            template_id="intake",
            name="Client intake",
            version=1,
            is_active=True,
            steps=[TemplateStep(order=0, title="Partner approval", action_type="APPROVAL_LAWYER")],
        )
        repo = _make_template_repo(active=template)
        return TestClient(_make_test_app(fake_pool, instance_repo, sink, repo))

    def test_list_action_handlers(self, client):
        resp = client.get("/api/v1/workflows/actions")

        assert resp.status_code == 200
        by_type = {h["action_type"]: h for h in resp.json()}
        assert len(by_type) == 8
        assert by_type["WRITE_TEXT"]["payload_required"] is True
        assert "request_text" in by_type["REQUEST_DOC_CLIENT"]["config_schema"]["properties"]

    def test_bad_action_config_rejected_on_create(self, client):
        resp = client.post("/api/v1/workflows/templates", json={
            "template_id": "retainer",
            "name": "Retainer",
            "steps": [{"order": 0, "title": "Collect retainer", "action_type": "PAYMENT_CLIENT",
                       "action_config": {"amount": 100}}],
        })

        assert resp.status_code == 422
        assert [i["field"] for i in resp.json()["issues"]] == ["steps[0].action_config.currency"]

    def test_rejected_payload_is_422(self, fake_pool, instance_repo, sink):
        client = self._approval_client(fake_pool, instance_repo, sink)
        step_id = _step_ids(_instantiate(client))[0]
        client.post(f"/api/v1/workflows/steps/{step_id}/start", json={"by": "lawyer-1"})

        resp = client.post(f"/api/v1/workflows/steps/{step_id}/complete", json={"payload": {"comment": "ok"}})

        assert resp.status_code == 422
        data = resp.json()
        assert data["code"] == "INVALID_PAYLOAD"
        assert data["issues"] == [{"field": "approved", "message": "Field required"}]

    def test_decision_returned_with_step(self, fake_pool, instance_repo, sink):
        client = self._approval_client(fake_pool, instance_repo, sink)
        step_id = _step_ids(_instantiate(client))[0]
        client.post(f"/api/v1/workflows/steps/{step_id}/start", json={"by": "lawyer-1"})

        resp = client.post(
            f"/api/v1/workflows/steps/{step_id}/complete",
            json={"by": "lawyer-1", "payload": {"approved": False, "comment": "Conflict"}},
        )

        assert resp.status_code == 200
        step = resp.json()["steps"][0]
        assert step["action_state"] == "COMPLETED"
        assert step["action_data"]["decision"]["approved"] is False
        assert step["action_data"]["decision"]["comment"] == "Conflict"


class TestServicesNotInitialized:

    def test_500_without_services(self):
        app = FastAPI()
        app.include_router(router, prefix="/api/v1")
        set_services(None, None, None)

        resp = TestClient(app).get("/api/v1/workflows/templates")

        assert resp.status_code == 500
        assert resp.json() == {"detail": "Services not initialized"}
