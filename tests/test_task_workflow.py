"""
Task workflow tests.

Covers floor assignment, the status graph, the review actions, optimistic
versioning, deliverable-link redaction and task comments.
"""

from datetime import datetime, timezone

import pytest

from app.core.exceptions import (
    ConflictError,
    InvalidTransitionError,
    NotFoundError,
    PermissionDenied,
    ValidationError,
)
from app.models import db
from app.models.audit import AuditLog
from app.models.project import Project
from app.models.task import Task
from app.services import task_service as ts
from app.utils.helpers import as_utc


@pytest.fixture()
def team(project, owner, make_user, add_member):
    """Project members by role: owner, developer, client, viewer."""
    members = {"owner": owner}
    for role in ("developer", "client", "viewer"):
        user = make_user(f"{role}@example.com")
        add_member(project["id"], user.id, role)
        members[role] = user
    return members


# ═════════════════════════════════════════════════════════════════════════════
# Creation & floors
# ═════════════════════════════════════════════════════════════════════════════


class TestCreateTask:
    def test_floors_stack_from_one(self, project, team):
        first = ts.create_task(project["id"], team["owner"].id, {"title": "Foundation"})
        second = ts.create_task(project["id"], team["developer"].id, {"title": "Walls"})
        assert first["floor_position"] == 1
        assert second["floor_position"] == 2
        assert first["status"] == second["status"] == "pending"
        assert first["version"] == 1

    def test_floor_follows_highest_existing(self, project, team, make_task):
        make_task(project["id"], floor_position=7)
        task = ts.create_task(project["id"], team["owner"].id, {"title": "Roof"})
        assert task["floor_position"] == 8

    def test_positions_strictly_increase(self, project, team):
        floors = [
            ts.create_task(project["id"], team["developer"].id, {"title": f"T{i}"})["floor_position"]
            for i in range(5)
        ]
        assert floors == sorted(set(floors))

    @pytest.mark.parametrize("role", ["client", "viewer"])
    def test_client_and_viewer_cannot_create(self, project, team, role):
        with pytest.raises(PermissionDenied):
            ts.create_task(project["id"], team[role].id, {"title": "Nope"})

    def test_title_required(self, project, team):
        with pytest.raises(ValidationError):
            ts.create_task(project["id"], team["owner"].id, {"title": "  "})

    def test_assignee_must_be_member(self, project, team, make_user):
        outsider = make_user("outsider@example.com")
        with pytest.raises(ValidationError) as exc:
            ts.create_task(project["id"], team["owner"].id, {"title": "X", "assignee_id": outsider.id})
        assert "assignee_id" in exc.value.details

    def test_list_newest_floor_first(self, project, team, make_task):
        make_task(project["id"], title="Bottom")
        make_task(project["id"], title="Top")
        titles = [t["title"] for t in ts.list_tasks(project["id"], team["viewer"].id)]
        assert titles == ["Top", "Bottom"]


# ═════════════════════════════════════════════════════════════════════════════
# Status & review
# ═════════════════════════════════════════════════════════════════════════════


class TestStatusChanges:
    def test_pending_to_in_progress(self, project, team, make_task):
        task = make_task(project["id"])
        result = ts.change_status(task.id, team["developer"].id, "in-progress")
        assert result["status"] == "in-progress"
        assert result["version"] == 2

    def test_invalid_transition(self, project, team, make_task):
        task = make_task(project["id"])
        with pytest.raises(InvalidTransitionError):
            ts.change_status(task.id, team["developer"].id, "complete")

    def test_review_statuses_need_review_actions(self, project, team, make_task):
        task = make_task(project["id"], status="ready-for-review")
        with pytest.raises(InvalidTransitionError):
            ts.change_status(task.id, team["owner"].id, "approved")

    def test_assignee_may_move_own_task(self, project, team, make_task):
        task = make_task(project["id"], assignee_id=team["client"].id)
        result = ts.change_status(task.id, team["client"].id, "in-progress")
        assert result["status"] == "in-progress"

    def test_viewer_cannot_move_task(self, project, team, make_task):
        task = make_task(project["id"])
        with pytest.raises(PermissionDenied):
            ts.change_status(task.id, team["viewer"].id, "in-progress")

    def test_developer_cannot_complete_from_review(self, project, team, make_task):
        task = make_task(project["id"], status="ready-for-review")
        with pytest.raises(PermissionDenied):
            ts.change_status(task.id, team["developer"].id, "complete")

    def test_completion_updates_progress(self, project, team, make_task):
        task = make_task(project["id"], status="ready-for-review")
        make_task(project["id"])
        ts.change_status(task.id, team["client"].id, "complete")
        assert db.session.get(Project, project["id"]).progress == 50


class TestReview:
    def test_client_approves(self, project, team, make_task):
        task = make_task(project["id"], status="ready-for-review", review_comments="old notes")
        result = ts.approve_task(task.id, team["client"].id)
        assert result["status"] == "approved"
        assert result["review_comments"] is None
        assert AuditLog.query.filter_by(action="task.approve").count() == 1

    def test_request_revisions_stores_comments(self, project, team, make_task):
        task = make_task(project["id"], status="ready-for-review")
        result = ts.request_revisions(task.id, team["owner"].id, "  Fix the colours  ")
        assert result["status"] == "revisions-requested"
        assert result["review_comments"] == "Fix the colours"

    def test_request_revisions_requires_comments(self, project, team, make_task):
        task = make_task(project["id"], status="ready-for-review")
        with pytest.raises(ValidationError):
            ts.request_revisions(task.id, team["client"].id, "   ")

    @pytest.mark.parametrize("status", ["pending", "in-progress", "approved", "complete"])
    def test_review_only_from_ready_for_review(self, project, team, make_task, status):
        task = make_task(project["id"], status=status)
        with pytest.raises(InvalidTransitionError):
            ts.approve_task(task.id, team["client"].id)
        with pytest.raises(InvalidTransitionError):
            ts.request_revisions(task.id, team["client"].id, "Please redo")

    def test_developer_cannot_review(self, project, team, make_task):
        task = make_task(project["id"], status="ready-for-review")
        with pytest.raises(PermissionDenied):
            ts.approve_task(task.id, team["developer"].id)

    def test_outsider_sees_not_found(self, project, make_task, make_user):
        outsider = make_user("outsider@example.com")
        task = make_task(project["id"], status="ready-for-review")
        with pytest.raises(NotFoundError):
            ts.approve_task(task.id, outsider.id)


class TestWriteSideEffects:
    """Review and status writes stamp updated_at and never move a task between floors."""

    STALE = datetime(2024, 1, 1, tzinfo=timezone.utc)

    def _stale_task(self, make_task, project, status):
        task = make_task(project["id"], status=status, floor_position=3, updated_at=self.STALE)
        return task.id

    def _assert_touched_in_place(self, task_id):
        task = db.session.get(Task, task_id)
        assert as_utc(task.updated_at) > self.STALE
        assert task.floor_position == 3
        assert task.version == 2

    def test_approve(self, project, team, make_task):
        task_id = self._stale_task(make_task, project, "ready-for-review")
        ts.approve_task(task_id, team["client"].id)
        self._assert_touched_in_place(task_id)

    def test_request_revisions(self, project, team, make_task):
        task_id = self._stale_task(make_task, project, "ready-for-review")
        ts.request_revisions(task_id, team["owner"].id, "Tighten the copy")
        self._assert_touched_in_place(task_id)

    def test_change_status(self, project, team, make_task):
        task_id = self._stale_task(make_task, project, "pending")
        ts.change_status(task_id, team["developer"].id, "in-progress")
        self._assert_touched_in_place(task_id)


class TestVersioning:
    def test_stale_version_rejected(self, project, team, make_task):
        task = make_task(project["id"])
        task_id = task.id
        ts.update_task(task_id, team["owner"].id, {"title": "First edit"}, expected_version=1)
        with pytest.raises(ConflictError):
            ts.update_task(task_id, team["developer"].id, {"title": "Second edit"}, expected_version=1)
        assert ts.get_task(task_id, team["owner"].id)["title"] == "First edit"

    def test_update_ignores_status_and_floor(self, project, team, make_task):
        task = make_task(project["id"], floor_position=3)
        result = ts.update_task(
            task.id, team["owner"].id, {"status": "complete", "floor_position": 9, "priority": "high"},
        )
        assert result["status"] == "pending"
        assert result["floor_position"] == 3
        assert result["priority"] == "high"


class TestDeliverableLink:
    def test_viewer_does_not_see_link(self, project, team, make_task):
        task = make_task(project["id"], deliverable_link="https://files.example.com/build.zip")
        assert ts.get_task(task.id, team["viewer"].id)["deliverable_link"] is None
        assert ts.get_task(task.id, team["client"].id)["deliverable_link"].endswith("build.zip")

    def test_link_must_be_http(self, project, team, make_task):
        task = make_task(project["id"])
        with pytest.raises(ValidationError):
            ts.update_task(task.id, team["owner"].id, {"deliverable_link": "ftp://example.com/x"})


# ═════════════════════════════════════════════════════════════════════════════
# Comments
# ═════════════════════════════════════════════════════════════════════════════


class TestComments:
    def test_any_member_comments(self, project, team, make_task):
        task = make_task(project["id"])
        comment = ts.add_comment(task.id, team["viewer"].id, "  Looks good  ")
        assert comment["content"] == "Looks good"
        assert [c["id"] for c in ts.list_comments(task.id, team["owner"].id)] == [comment["id"]]

    def test_empty_comment_rejected(self, project, team, make_task):
        task = make_task(project["id"])
        with pytest.raises(ValidationError):
            ts.add_comment(task.id, team["developer"].id, "   ")

    def test_only_author_edits(self, project, team, make_task):
        task = make_task(project["id"])
        comment = ts.add_comment(task.id, team["developer"].id, "Draft")
        with pytest.raises(PermissionDenied):
            ts.edit_comment(comment["id"], team["owner"].id, "Hijacked")
        assert ts.edit_comment(comment["id"], team["developer"].id, "Final")["content"] == "Final"

    def test_only_author_deletes(self, project, team, make_task):
        task = make_task(project["id"])
        comment = ts.add_comment(task.id, team["client"].id, "Remove me")
        with pytest.raises(PermissionDenied):
            ts.delete_comment(comment["id"], team["developer"].id)
        ts.delete_comment(comment["id"], team["client"].id)
        assert ts.list_comments(task.id, team["client"].id) == []

    def test_outsider_cannot_comment(self, project, make_task, make_user):
        outsider = make_user("outsider@example.com")
        task = make_task(project["id"])
        with pytest.raises(NotFoundError):
            ts.add_comment(task.id, outsider.id, "Hello")
