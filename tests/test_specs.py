"""Tests for the spec service."""

import sqlite3

import pytest

from spec_mcp.errors import NotFoundError, ValidationError, VersionConflictError
from spec_mcp.specs import SpecService, validate_page
from spec_mcp.store.database import Database
from spec_mcp.store.file_store import FileSpecStore


class RecordingNotifier:
    """Collects published events in order."""

    def __init__(self):
        self.events = []

    def publish(self, event_type, data=None):
        self.events.append((event_type, data))

    def types(self):
        return [event_type for event_type, _ in self.events]


class ExplodingNotifier:
    def publish(self, event_type, data=None):
        raise RuntimeError("observer went away")


@pytest.fixture
def db(tmp_path):
    database = Database(tmp_path / "specs.db")
    database.initialize()
    yield database
    database.close()


@pytest.fixture
def notifier():
    return RecordingNotifier()


@pytest.fixture
def service(db, notifier):
    return SpecService(db, notifier=notifier)


class TestCreateSpec:
    def test_create(self, service: SpecService):
        spec = service.create_spec("  Auth Service ", "Body", status="todo")

        assert spec.id == 1
        assert spec.title == "Auth Service"
        assert spec.status == "todo"
        assert spec.version == 1

    @pytest.mark.parametrize(
        ("title", "body", "field"),
        [
            ("", "Body", "title"),
            ("   ", "Body", "title"),
            ("x" * 256, "Body", "title"),
            ("Title", "", "body_md"),
            ("Title", "  \n", "body_md"),
        ],
    )
    def test_create_validation(self, service: SpecService, title, body, field):
        with pytest.raises(ValidationError) as exc_info:
            service.create_spec(title, body)
        assert exc_info.value.field == field

    def test_title_at_limit_accepted(self, service: SpecService):
        assert len(service.create_spec("x" * 255, "Body").title) == 255

    def test_invalid_status(self, service: SpecService):
        with pytest.raises(ValidationError, match="Invalid status 'archived'"):
            service.create_spec("Title", "Body", status="archived")

    def test_body_size_limit(self, db):
        service = SpecService(db, max_body_size=10)
        service.create_spec("Title", "x" * 10)
        with pytest.raises(ValidationError, match="body_md must be at most 10"):
            service.create_spec("Title", "x" * 11)

    def test_create_notifies(self, service: SpecService, notifier: RecordingNotifier):
        spec = service.create_spec("Auth", "Body")

        assert notifier.types() == ["spec_created", "stats_updated"]
        created = notifier.events[0][1]
        assert created["id"] == spec.id
        assert created["title"] == "Auth"
        stats = notifier.events[1][1]
        assert stats["total_specs"] == 1
        assert stats["by_status"]["draft"] == 1


class TestGetAndList:
    def test_get_missing(self, service: SpecService):
        with pytest.raises(NotFoundError, match="Spec 42 not found"):
            service.get_spec(42)

    def test_get_with_relations(self, service: SpecService):
        spec = service.create_spec("Auth", "Body")
        service.add_todo(spec.id, text="Step", step_no=1)

        assert len(service.get_spec(spec.id, include_relations=True).todos) == 1

    def test_list_validation(self, service: SpecService):
        with pytest.raises(ValidationError):
            service.list_specs(status="archived")
        with pytest.raises(ValidationError):
            service.list_specs(sort_by="body_md")
        with pytest.raises(ValidationError):
            service.list_specs(sort_order="sideways")
        with pytest.raises(ValidationError):
            service.list_specs(limit=0)
        with pytest.raises(ValidationError):
            service.list_specs(limit=101)
        with pytest.raises(ValidationError):
            service.list_specs(offset=-1)

    def test_list(self, service: SpecService):
        service.create_spec("A", "Body")
        service.create_spec("B", "Body", status="done")

        page = service.list_specs(status="done")
        assert [s.title for s in page.specs] == ["B"]


class TestUpdateSpec:
    def test_update_requires_a_field(self, service: SpecService):
        spec = service.create_spec("Auth", "Body")
        with pytest.raises(ValidationError, match="At least one field"):
            service.update_spec(spec.id)

    def test_update_missing(self, service: SpecService):
        with pytest.raises(NotFoundError):
            service.update_spec(9, title="New")

    def test_update_content_notifies_once(self, service, notifier):
        spec = service.create_spec("Auth", "Body")
        notifier.events.clear()

        updated = service.update_spec(spec.id, body_md="New body")

        assert updated.version == 2
        assert notifier.types() == ["spec_updated"]
        assert notifier.events[0][1]["body_md"] == "New body"

    def test_status_change_notifies(self, service, notifier):
        spec = service.create_spec("Auth", "Body")
        notifier.events.clear()

        service.update_spec(spec.id, status="in-progress")

        assert notifier.types() == ["spec_updated", "spec_status_changed", "stats_updated"]
        assert notifier.events[1][1] == {
            "id": spec.id,
            "old_status": "draft",
            "new_status": "in-progress",
        }
        assert notifier.events[2][1]["by_status"]["in-progress"] == 1

    def test_same_status_is_not_a_change(self, service, notifier):
        spec = service.create_spec("Auth", "Body")
        notifier.events.clear()

        service.update_spec(spec.id, status="draft")

        assert notifier.types() == ["spec_updated"]

    def test_advisory_mode_ignores_expected_version(self, service: SpecService):
        spec = service.create_spec("Auth", "Body")
        service.update_spec(spec.id, title="A", expected_version=1)

        updated = service.update_spec(spec.id, title="B", expected_version=1)

        assert updated.title == "B"
        assert updated.version == 3

    def test_enforced_mode_requires_expected_version(self, db):
        service = SpecService(db, enforce_version=True)
        spec = service.create_spec("Auth", "Body")

        with pytest.raises(ValidationError) as exc_info:
            service.update_spec(spec.id, title="A")
        assert exc_info.value.field == "expected_version"

    def test_enforced_mode_rejects_stale_write(self, db):
        service = SpecService(db, enforce_version=True)
        spec = service.create_spec("Auth", "Body")
        service.update_spec(spec.id, title="A", expected_version=1)

        with pytest.raises(VersionConflictError):
            service.update_spec(spec.id, title="B", expected_version=1)

        assert service.get_spec(spec.id).title == "A"


class TestDeleteSpec:
    def test_delete_notifies(self, service, notifier):
        spec = service.create_spec("Auth", "Body")
        notifier.events.clear()

        deleted = service.delete_spec(spec.id)

        assert deleted.title == "Auth"
        assert notifier.types() == ["spec_deleted", "stats_updated"]
        assert notifier.events[0][1] == {"id": spec.id, "title": "Auth"}
        assert notifier.events[1][1]["total_specs"] == 0

    def test_delete_missing(self, service: SpecService):
        with pytest.raises(NotFoundError):
            service.delete_spec(1)


class TestStats:
    def test_by_status_zero_filled(self, service: SpecService):
        service.create_spec("A", "Body", status="todo")

        stats = service.get_stats()

        assert stats.total_specs == 1
        assert stats.by_status == {"draft": 0, "todo": 1, "in-progress": 0, "done": 0}
        assert stats.recent_activity is None
        assert stats.latest_specs is None

    def test_details(self, service: SpecService):
        for i in range(7):
            service.create_spec(f"Spec {i}", "Body")

        stats = service.get_stats(include_details=True)

        assert stats.recent_activity == 7
        assert len(stats.latest_specs) == 5


class TestChildren:
    def test_todos(self, service: SpecService):
        spec = service.create_spec("Auth", "Body")
        todo = service.add_todo(spec.id, text="Write tests", step_no=1)

        updated = service.update_todo(spec.id, todo.id, status="completed")

        assert updated.status == "completed"
        assert [t.status for t in service.list_todos(spec.id)] == ["completed"]

    def test_todo_validation(self, service: SpecService):
        spec = service.create_spec("Auth", "Body")
        with pytest.raises(ValidationError):
            service.add_todo(spec.id, text="x", status="blocked")
        with pytest.raises(ValidationError):
            service.update_todo(spec.id, 1)

    def test_todo_missing(self, service: SpecService):
        spec = service.create_spec("Auth", "Body")
        with pytest.raises(NotFoundError, match="Spec 99"):
            service.add_todo(99, text="x")
        with pytest.raises(NotFoundError, match="Todo 5"):
            service.update_todo(spec.id, 5, status="completed")

    def test_logs(self, service: SpecService):
        spec = service.create_spec("Auth", "Body")
        service.log_execution(spec.id, layer="api", status="done", summary="Routes wired")
        service.log_issue(
            spec.id,
            task_id="T1",
            task_description="Wire routes",
            layer="api",
            status="resolved",
            resolution="Added prefix",
        )

        assert service.list_exec_logs(spec.id)[0].summary == "Routes wired"
        assert service.list_issue_logs(spec.id)[0].resolution == "Added prefix"

    def test_log_validation(self, service: SpecService):
        spec = service.create_spec("Auth", "Body")
        with pytest.raises(ValidationError, match="layer is required"):
            service.log_execution(spec.id, layer="", status="done")
        with pytest.raises(ValidationError, match="task_id is required"):
            service.log_issue(spec.id, "", "desc", "api", "open")

    def test_children_do_not_notify(self, service, notifier):
        spec = service.create_spec("Auth", "Body")
        notifier.events.clear()

        service.add_todo(spec.id, text="x")
        service.log_execution(spec.id, layer="api", status="done")

        assert notifier.events == []


class TestMetadata:
    def test_category_detected_when_missing(self, service: SpecService):
        spec = service.create_spec("Auth Service", "JWT token refresh flow")

        assert spec.category == "authentication"
        assert spec.priority == "medium"

    def test_undetectable_category_falls_back(self, service: SpecService):
        assert service.create_spec("Hello world", "Nothing to see").category == "general"

    def test_explicit_category_normalized(self, service: SpecService):
        spec = service.create_spec("Auth Service", "JWT token", category=" Payments ")
        assert spec.category == "payments"

    @pytest.mark.parametrize(
        ("kwargs", "field"),
        [
            ({"category": ""}, "category"),
            ({"category": "two words"}, "category"),
            ({"category": "x" * 51}, "category"),
            ({"priority": "urgent"}, "priority"),
            ({"parent_spec_id": 42}, "parent_spec_id"),
            ({"related_specs": [42]}, "related_specs"),
        ],
    )
    def test_create_metadata_validation(self, service: SpecService, kwargs, field):
        with pytest.raises(ValidationError) as exc_info:
            service.create_spec("Title", "Body", **kwargs)
        assert exc_info.value.field == field

    def test_related_specs_deduplicated(self, service: SpecService):
        first = service.create_spec("A", "Body")
        second = service.create_spec("B", "Body")

        spec = service.create_spec("C", "Body", related_specs=[second.id, first.id, second.id])

        assert spec.related_specs == [second.id, first.id]

    def test_spec_cannot_relate_to_itself(self, service: SpecService):
        spec = service.create_spec("A", "Body")
        with pytest.raises(ValidationError, match="relate to itself"):
            service.update_spec(spec.id, related_specs=[spec.id])

    def test_parent_cycles_rejected(self, service: SpecService):
        root = service.create_spec("Root", "Body")
        child = service.create_spec("Child", "Body", parent_spec_id=root.id)

        with pytest.raises(ValidationError, match="own ancestor"):
            service.update_spec(root.id, parent_spec_id=child.id)
        with pytest.raises(ValidationError, match="own ancestor"):
            service.update_spec(root.id, parent_spec_id=root.id)

    def test_parent_zero_detaches(self, service: SpecService):
        root = service.create_spec("Root", "Body")
        child = service.create_spec("Child", "Body", parent_spec_id=root.id)

        updated = service.update_spec(child.id, parent_spec_id=0)

        assert updated.parent_spec_id is None
        assert updated.version == 2

    def test_metadata_update_does_not_count_as_status_change(self, service, notifier):
        spec = service.create_spec("A", "Body")
        notifier.events.clear()

        service.update_spec(spec.id, priority="high", category="security")

        assert notifier.types() == ["spec_updated"]
        assert notifier.events[0][1]["priority"] == "high"
        assert notifier.events[0][1]["category"] == "security"

    def test_list_filters(self, service: SpecService):
        service.create_spec("A", "Body", category="payments", priority="high")
        service.create_spec("B", "Body", category="payments")
        service.create_spec("C", "Body", category="database", priority="high")

        page = service.list_specs(category="PAYMENTS", priority="high")
        assert [s.title for s in page.specs] == ["A"]

        with pytest.raises(ValidationError) as exc_info:
            service.list_specs(priority="urgent")
        assert exc_info.value.field == "priority"


class TestNotificationFailures:
    def test_write_survives_broken_notifier(self, db):
        service = SpecService(db, notifier=ExplodingNotifier())

        spec = service.create_spec("Auth", "Body")

        assert service.get_spec(spec.id).title == "Auth"

    def test_write_survives_failing_stats_read(self, db, notifier, monkeypatch):
        service = SpecService(db, notifier=notifier)

        def broken():
            raise sqlite3.OperationalError("database is locked")

        monkeypatch.setattr(db, "count_by_status", broken)

        spec = service.create_spec("Auth", "Body")
        service.delete_spec(spec.id)

        assert notifier.types() == ["spec_created", "spec_deleted"]


def test_file_store_backend(tmp_path):
    store = FileSpecStore(tmp_path / "docs")
    store.initialize()
    service = SpecService(store)

    spec = service.create_spec("Auth", "Body")
    service.add_todo(spec.id, text="Step")
    service.update_spec(spec.id, status="done")

    fetched = service.get_spec(spec.id, include_relations=True)
    assert fetched.status == "done"
    assert len(fetched.todos) == 1
    assert service.get_stats().by_status["done"] == 1


def test_validate_page():
    validate_page(1, 0)
    validate_page(100, 5)
    with pytest.raises(ValidationError, match="limit must be between 1 and 100"):
        validate_page(101, 0)
    with pytest.raises(ValidationError, match="offset"):
        validate_page(10, -1)
