# ============================================================================
# TEMPLATE SERVICE TESTS
# ============================================================================
# EPOCH: 1 - CASE WORKFLOW ENGINE
# STATUS: Tests - Template authoring, versioning and seed loading
# PURPOSE: Verify create/update/publish rules and YAML loading
# CREATED: 12 OCT 2026
# ============================================================================
"""
Template Service Tests

The repository is an AsyncMock; publish() runs inside a FakePool
transaction.

Run with:
    pytest tests/test_template_service.py -v
"""

import asyncio
from pathlib import Path
from unittest.mock import AsyncMock, MagicMock

import pytest

from core.errors import (
    TemplateNotPublishedError,
    WorkflowNotFoundError,
    WorkflowValidationError,
)
from core.models import TemplateStep, WorkflowTemplate
from core.observability import WorkflowMetrics, get_metrics
from services import TemplateService


TEMPLATES_DIR = Path(__file__).resolve().parent.parent / "templates"


def _template(version=1, is_active=False, steps=None):
    return WorkflowTemplate(
        template_id="intake",
        name="Client intake",
        version=version,
        is_active=is_active,
        steps=steps or [
            TemplateStep(order=0, title="Conflict check"),
            TemplateStep(order=1, title="Engagement letter", depends_on=[0]),
        ],
    )


def _make_repo(existing=None, active=None):
    repo = MagicMock()
    repo.get = AsyncMock(return_value=existing)
    repo.get_active = AsyncMock(return_value=active)
    repo.list_latest = AsyncMock(return_value=[])
    repo.create = AsyncMock(side_effect=lambda template, conn=None: template)
    repo.update = AsyncMock(return_value=True)
    repo.publish = AsyncMock(return_value=None)
    return repo


def _make_service(fake_pool, repo, templates_dir=None):
    return TemplateService(fake_pool, template_repo=repo, templates_dir=templates_dir)


class TestValidate:

    def test_valid_steps(self, fake_pool):
        service = _make_service(fake_pool, _make_repo())

        assert service.validate(_template().steps) == []

    def test_issues_recorded_as_metric(self, fake_pool):
        service = _make_service(fake_pool, _make_repo())
        steps = [TemplateStep(order=0, title="Loop", depends_on=[0])]

        issues = service.validate(steps)

        assert [i.message for i in issues] == ["Step cannot depend on itself"]
        assert get_metrics().get_counter(WorkflowMetrics.VALIDATION_FAILURES, {"issues": "1"}) == 1

    def test_describe(self, fake_pool):
        service = _make_service(fake_pool, _make_repo())

        assert service.describe(_template()) == "Sequential execution (no parallelism)"


class TestQueries:

    def test_get_template_not_found(self, fake_pool):
        service = _make_service(fake_pool, _make_repo())

        with pytest.raises(WorkflowNotFoundError) as exc_info:
            asyncio.run(service.get_template("intake", 3))
        assert exc_info.value.message == "Template not found: intake v3"

    def test_get_published(self, fake_pool):
        active = _template(is_active=True)
        service = _make_service(fake_pool, _make_repo(active=active))

        assert asyncio.run(service.get_published("intake")) is active

    def test_get_published_without_active_version(self, fake_pool):
        service = _make_service(fake_pool, _make_repo(existing=_template()))

        with pytest.raises(TemplateNotPublishedError) as exc_info:
            asyncio.run(service.get_published("intake"))
        assert exc_info.value.status_code == 409

    def test_get_published_unknown(self, fake_pool):
        service = _make_service(fake_pool, _make_repo())

        with pytest.raises(WorkflowNotFoundError):
            asyncio.run(service.get_published("intake"))

    def test_list_templates(self, fake_pool):
        repo = _make_repo()
        service = _make_service(fake_pool, repo)

        asyncio.run(service.list_templates(active_only=True, limit=5))

        repo.list_latest.assert_awaited_once_with(active_only=True, limit=5)


class TestCreate:

    def test_create_stores_draft_v1(self, fake_pool):
        repo = _make_repo()
        service = _make_service(fake_pool, repo)
        submitted = _template(version=4, is_active=True)

        created = asyncio.run(service.create_template(submitted))

        assert created.version == 1
        assert created.is_active is False
        assert created.published_at is None
        repo.create.assert_awaited_once()

    def test_create_rejects_invalid_steps(self, fake_pool):
        repo = _make_repo()
        service = _make_service(fake_pool, repo)
        template = _template(steps=[TemplateStep(order=0, title="Intake", depends_on=[2])])

        with pytest.raises(WorkflowValidationError):
            asyncio.run(service.create_template(template))

        repo.create.assert_not_awaited()

    def test_create_rejects_existing_id(self, fake_pool):
        repo = _make_repo(existing=_template())
        service = _make_service(fake_pool, repo)

        with pytest.raises(WorkflowValidationError) as exc_info:
            asyncio.run(service.create_template(_template()))

        assert exc_info.value.issues[0].field == "template_id"
        assert exc_info.value.issues[0].message == "Template intake already exists"


class TestUpdate:

    def test_draft_updated_in_place(self, fake_pool):
        repo = _make_repo(existing=_template(version=2))
        service = _make_service(fake_pool, repo)

        updated = asyncio.run(service.update_template("intake", name="Intake v2"))

        assert updated.version == 2
        assert updated.name == "Intake v2"
        repo.update.assert_awaited_once()
        repo.create.assert_not_awaited()

    def test_published_version_forks_new_draft(self, fake_pool):
        published = _template(version=2, is_active=True)
        repo = _make_repo(existing=published)
        service = _make_service(fake_pool, repo)
        steps = [TemplateStep(order=0, title="Conflict check")]

        updated = asyncio.run(service.update_template("intake", steps=steps))

        assert updated.version == 3
        assert updated.is_active is False
        assert [s.title for s in updated.steps] == ["Conflict check"]
        assert len(published.steps) == 2
        repo.create.assert_awaited_once()
        repo.update.assert_not_awaited()

    def test_update_validates(self, fake_pool):
        repo = _make_repo(existing=_template())
        service = _make_service(fake_pool, repo)

        with pytest.raises(WorkflowValidationError):
            asyncio.run(service.update_template(
                "intake", steps=[TemplateStep(order=0, title="Loop", depends_on=[0])]
            ))

        repo.update.assert_not_awaited()

    def test_update_lost_draft(self, fake_pool):
        repo = _make_repo(existing=_template())
        repo.update = AsyncMock(return_value=False)
        service = _make_service(fake_pool, repo)

        with pytest.raises(WorkflowNotFoundError):
            asyncio.run(service.update_template("intake", description="changed"))


class TestPublish:

    def test_publish(self, fake_pool):
        repo = _make_repo(existing=_template(version=2))
        service = _make_service(fake_pool, repo)

        published = asyncio.run(service.publish_template("intake", 2))

        assert published.is_active is True
        assert published.published_at is not None
        repo.publish.assert_awaited_once_with(published, conn=fake_pool.conn)
        assert fake_pool.conn.commits == 1

    def test_publish_revalidates(self, fake_pool):
        broken = _template(steps=[TemplateStep(order=0, title="Loop", depends_on=[0])])
        repo = _make_repo(existing=broken)
        service = _make_service(fake_pool, repo)

        with pytest.raises(WorkflowValidationError):
            asyncio.run(service.publish_template("intake"))

        repo.publish.assert_not_awaited()


SEED_YAML = """
name: Client intake
publish: true
steps:
  - order: 0
    title: Conflict check
  - order: 1
    title: Engagement letter
    action_type: SIGNATURE_CLIENT
    role_scope: CLIENT
    depends_on: 0
"""

DRAFT_YAML = """
template_id: estate_plan
name: Estate plan
steps:
  - order: 0
    title: Questionnaire
"""

BROKEN_YAML = """
name: Broken
steps:
  - order: 0
    title: Loop
    depends_on: [0]
"""


BAD_CONDITION_YAML = """
name: Bad condition
steps:
  - order: 0
    title: Review
    condition_type: IF_TRUE
    condition_config:
      field: amount
      operator: approx
"""


BAD_ACTION_YAML = """
name: Bad action
steps:
  - order: 0
    title: Collect retainer
    action_type: PAYMENT_CLIENT
    action_config:
      amount: 2500
"""


class TestLoadAll:

    def test_loads_seed_files(self, fake_pool, tmp_path):
        (tmp_path / "client_intake.yaml").write_text(SEED_YAML)
        (tmp_path / "draft.yml").write_text(DRAFT_YAML)
        (tmp_path / "broken.yaml").write_text(BROKEN_YAML)
        (tmp_path / "garbage.yaml").write_text("- just\n- a list\n")
        (tmp_path / "notes.txt").write_text("ignored")

        created = {}
        repo = _make_repo()
        repo.get = AsyncMock(side_effect=lambda tid, version=None, conn=None: created.get(tid))

        async def create(template, conn=None):
            created[template.template_id] = template
            return template

        repo.create = AsyncMock(side_effect=create)
        service = _make_service(fake_pool, repo, templates_dir=str(tmp_path))

        count = asyncio.run(service.load_all())

        assert count == 2
        assert set(created) == {"client_intake", "estate_plan"}
        assert created["client_intake"].steps[1].depends_on == [0]
        repo.publish.assert_awaited_once()
        assert repo.publish.await_args.args[0].template_id == "client_intake"

    def test_existing_templates_skipped(self, fake_pool, tmp_path):
        (tmp_path / "client_intake.yaml").write_text(SEED_YAML)
        repo = _make_repo(existing=_template())
        service = _make_service(fake_pool, repo, templates_dir=str(tmp_path))

        assert asyncio.run(service.load_all()) == 0
        repo.create.assert_not_awaited()

    def test_malformed_condition_raises_validation_error(self, fake_pool, tmp_path):
        path = tmp_path / "bad_condition.yaml"
        path.write_text(BAD_CONDITION_YAML)
        service = _make_service(fake_pool, _make_repo(), templates_dir=str(tmp_path))

        with pytest.raises(WorkflowValidationError) as exc_info:
            service._load_yaml(path)

        field = exc_info.value.issues[0].field
        assert field.startswith("steps[0].condition_config")

    def test_malformed_condition_file_skipped(self, fake_pool, tmp_path):
        (tmp_path / "bad_condition.yaml").write_text(BAD_CONDITION_YAML)
        (tmp_path / "estate_plan.yaml").write_text(DRAFT_YAML)
        repo = _make_repo()
        service = _make_service(fake_pool, repo, templates_dir=str(tmp_path))

        assert asyncio.run(service.load_all()) == 1
        assert repo.create.await_args.args[0].template_id == "estate_plan"

    def test_bad_action_config_file_skipped(self, fake_pool, tmp_path, caplog):
        (tmp_path / "bad_action.yaml").write_text(BAD_ACTION_YAML)
        (tmp_path / "estate_plan.yaml").write_text(DRAFT_YAML)
        repo = _make_repo()
        service = _make_service(fake_pool, repo, templates_dir=str(tmp_path))

        assert asyncio.run(service.load_all()) == 1
        assert repo.create.await_count == 1
        assert "Seed template bad_action.yaml rejected" in caplog.text

    def test_missing_directory(self, fake_pool, tmp_path):
        service = _make_service(fake_pool, _make_repo(), templates_dir=str(tmp_path / "nope"))

        assert asyncio.run(service.load_all()) == 0

    def test_bundled_seed_template_is_valid(self, fake_pool):
        service = _make_service(fake_pool, _make_repo(), templates_dir=str(TEMPLATES_DIR))

        template, publish = service._load_yaml(service.templates_dir / "client_intake.yaml")

        assert publish is True
        assert service.validate(template.steps) == []
