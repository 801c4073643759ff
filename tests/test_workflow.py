"""
Workflow tests: templates, assignments, checklist logs and archiving.

Covers the pure progress helpers plus the service/API paths for
V1 (flat steps) and V2 (department sections) templates.
"""

from datetime import datetime, timezone

import pytest

from storeops.core.exceptions import PermissionDeniedError, StateError, ValidationError
from storeops.models import db
from storeops.models.workflow import (
    Assignment,
    AssignmentCollaborator,
    compute_progress,
    count_steps,
    replay_checked_steps,
)
from storeops.services import workflow_service


STEPS = [
    {"id": "s1", "label": "開店檢查", "required": True},
    {"id": "s2", "label": "盤點", "required": True,
     "subSteps": [{"id": "s2a", "label": "冷藏"}, {"id": "s2b", "label": "常溫"}]},
]


def _v1_template(actor, assigned_to=None, steps=None):
    template = workflow_service.create_template(actor, {
        "title": "每日開店",
        "steps_schema": steps if steps is not None else STEPS,
        "assigned_to": assigned_to or [],
    })
    db.session.commit()
    return template


def _assignment_of(template):
    return Assignment.query.filter_by(template_id=template.id).one()


def _check_all(actor, assignment, ids):
    for step_id in ids:
        workflow_service.log_action(actor, assignment.id, step_id, "complete")
    db.session.commit()


# ═════════════════════════════════════════════════════════════════════════════
# Pure helpers
# ═════════════════════════════════════════════════════════════════════════════


class TestReplay:
    def test_complete_then_uncomplete(self):
        logs = [
            {"step_id": "1", "action": "complete"},
            {"step_id": "2", "action": "complete"},
            {"step_id": "1", "action": "uncomplete"},
        ]
        assert replay_checked_steps(logs) == {"2"}

    def test_legacy_actions_and_comments(self):
        logs = [
            {"step_id": "a", "action": "checked"},
            {"step_id": None, "action": "comment"},
            {"step_id": "b", "action": "checked"},
            {"step_id": "b", "action": "unchecked"},
        ]
        assert replay_checked_steps(logs) == {"a"}

    def test_replays_in_timestamp_order(self):
        logs = [
            {"step_id": "x", "action": "uncomplete", "created_at": "2024-03-01T10:00:05Z"},
            {"step_id": "x", "action": "complete", "created_at": "2024-03-01T10:00:00Z"},
        ]
        assert replay_checked_steps(logs) == set()

    def test_numeric_step_ids_become_strings(self):
        assert replay_checked_steps([{"step_id": 3, "action": "complete"}]) == {"3"}


class TestProgress:
    def test_counts_sub_steps(self):
        assert count_steps(STEPS) == 4

    def test_empty_schema_is_zero(self):
        assert compute_progress([], {"s1"}) == 0

    def test_rounded_percentage(self):
        assert compute_progress(STEPS, {"s1"}) == 25
        assert compute_progress(STEPS, {"s1", "s2", "s2a"}) == 75
        assert compute_progress(STEPS, {"s1", "s2", "s2a", "s2b"}) == 100

    def test_unknown_ids_ignored(self):
        assert compute_progress(STEPS, {"s1", "other-section-step"}) == 25

    def test_one_of_three(self):
        steps = [{"id": "a"}, {"id": "b"}, {"id": "c"}]
        assert compute_progress(steps, {"a"}) == 33


class TestArchiveGrouping:
    def test_newest_month_first(self):
        items = [
            {"id": "a", "created_at": "2024-01-15T08:00:00Z"},
            {"id": "b", "created_at": "2024-03-02T08:00:00Z"},
            {"id": "c", "created_at": "2024-03-20T08:00:00Z"},
        ]
        grouped = workflow_service.group_archived_by_month(items)
        assert list(grouped) == ["2024/03", "2024/01"]
        assert [i["id"] for i in grouped["2024/03"]] == ["c", "b"]

    def test_skips_missing_created_at(self):
        grouped = workflow_service.group_archived_by_month([{"id": "x", "created_at": None}])
        assert grouped == {}

    def test_accepts_datetimes(self):
        created = datetime(2023, 12, 31, 23, 0, tzinfo=timezone.utc)
        grouped = workflow_service.group_archived_by_month([{"id": "d", "created_at": created}])
        assert list(grouped) == ["2023/12"]


# ═════════════════════════════════════════════════════════════════════════════
# Templates
# ═════════════════════════════════════════════════════════════════════════════


class TestTemplates:
    def test_v1_creates_assignment_with_collaborators(self, manager, member):
        template = _v1_template(manager, assigned_to=[member.id])
        assignment = _assignment_of(template)
        assert assignment.state == "pending"
        assert assignment.assigned_to == manager.id
        users = {c.user_id for c in AssignmentCollaborator.query.filter_by(assignment_id=assignment.id)}
        assert users == {manager.id, member.id}

    def test_title_required(self, manager):
        with pytest.raises(ValidationError):
            workflow_service.create_template(manager, {"title": "  ", "steps_schema": STEPS})

    def test_v2_sections_assign_section_ids(self, manager, make_profile):
        store_user = make_profile(department="營業部")
        hr_user = make_profile(department="人資部")
        template = workflow_service.create_template(manager, {
            "title": "新人到職",
            "sections": [
                {"id": "sec-store", "department": "營業部", "assigned_users": [store_user.id],
                 "steps": [{"id": "a1", "label": "門市報到"}]},
                {"id": "sec-hr", "department": "人資部", "assigned_users": [hr_user.id, store_user.id],
                 "steps": [{"id": "b1", "label": "勞健保"}, {"id": "b2", "label": "合約"}]},
            ],
        })
        db.session.commit()
        assert [s["id"] for s in template.steps_schema] == ["a1", "b1", "b2"]

        assignment = _assignment_of(template)
        sections = {
            c.user_id: c.section_id
            for c in AssignmentCollaborator.query.filter_by(assignment_id=assignment.id)
        }
        assert sections == {manager.id: None, store_user.id: "sec-store", hr_user.id: "sec-hr"}

    def test_v2_mine_shows_only_own_section(self, manager, make_profile):
        hr_user = make_profile(department="人資部")
        workflow_service.create_template(manager, {
            "title": "新人到職",
            "sections": [
                {"id": "sec-store", "assigned_users": [], "steps": [{"id": "a1"}]},
                {"id": "sec-hr", "assigned_users": [hr_user.id], "steps": [{"id": "b1"}, {"id": "b2"}]},
            ],
        })
        db.session.commit()

        mine = workflow_service.list_my_assignments(hr_user)
        assert len(mine) == 1
        view = mine[0]
        assert view["userSectionId"] == "sec-hr"
        assert [s["id"] for s in view["template"]["steps_schema"]] == ["b1", "b2"]

        workflow_service.log_action(hr_user, view["id"], "b1", "complete")
        db.session.commit()
        assert workflow_service.list_my_assignments(hr_user)[0]["progress"] == 50

    def test_sections_must_not_be_empty(self, manager):
        with pytest.raises(ValidationError):
            workflow_service.create_template(manager, {"title": "x", "sections": []})

    def test_update_blocked_after_completion(self, manager):
        template = _v1_template(manager)
        assignment = _assignment_of(template)
        workflow_service.update_assignment_status(manager, assignment.id, "completed")
        db.session.commit()
        with pytest.raises(StateError):
            workflow_service.update_template(manager, template.id, {"title": "新標題"})

    def test_member_cannot_edit_others_template(self, manager, member):
        template = _v1_template(manager)
        with pytest.raises(PermissionDeniedError):
            workflow_service.update_template(member, template.id, {"title": "改"})

    def test_duplicate_via_api(self, client, auth_headers, manager):
        template = _v1_template(manager)
        res = client.post(
            f"/api/v1/templates/{template.id}/duplicate",
            json={"new_title": "每日開店（複製）"},
            headers=auth_headers(manager),
        )
        assert res.status_code == 201
        body = res.get_json()
        assert body["template"]["title"] == "每日開店（複製）"
        assert body["template"]["id"] != template.id


# ═════════════════════════════════════════════════════════════════════════════
# Assignment lifecycle
# ═════════════════════════════════════════════════════════════════════════════


class TestAssignmentState:
    def test_log_moves_pending_to_in_progress(self, manager):
        assignment = _assignment_of(_v1_template(manager))
        workflow_service.log_action(manager, assignment.id, "s1", "complete")
        db.session.commit()
        assert assignment.state == "in_progress"

    def test_invalid_action_rejected(self, manager):
        assignment = _assignment_of(_v1_template(manager))
        with pytest.raises(ValidationError):
            workflow_service.log_action(manager, assignment.id, "s1", "explode")

    def test_step_required_except_comment(self, manager):
        assignment = _assignment_of(_v1_template(manager))
        with pytest.raises(ValidationError):
            workflow_service.log_action(manager, assignment.id, None, "complete")
        log = workflow_service.log_action(manager, assignment.id, None, "comment", "備註")
        assert log.comment == "備註"

    def test_outsider_cannot_log(self, manager, make_profile):
        outsider = make_profile()
        assignment = _assignment_of(_v1_template(manager))
        with pytest.raises(PermissionDeniedError):
            workflow_service.log_action(outsider, assignment.id, "s1", "complete")

    def test_invalid_transition_is_conflict(self, client, auth_headers, manager):
        assignment = _assignment_of(_v1_template(manager))
        headers = auth_headers(manager)
        res = client.patch(f"/api/v1/assignments/{assignment.id}/status",
                           json={"status": "completed"}, headers=headers)
        assert res.status_code == 200
        res = client.patch(f"/api/v1/assignments/{assignment.id}/status",
                           json={"status": "pending"}, headers=headers)
        assert res.status_code == 409

    def test_status_cannot_archive(self, manager):
        assignment = _assignment_of(_v1_template(manager))
        with pytest.raises(StateError):
            workflow_service.update_assignment_status(manager, assignment.id, "archived")

    def test_archive_requires_full_progress(self, manager):
        assignment = _assignment_of(_v1_template(manager))
        _check_all(manager, assignment, ["s1"])
        with pytest.raises(StateError):
            workflow_service.archive_assignment(manager, assignment.id)

    def test_archive_and_lock(self, manager):
        assignment = _assignment_of(_v1_template(manager))
        _check_all(manager, assignment, ["s1", "s2", "s2a", "s2b"])
        workflow_service.archive_assignment(manager, assignment.id)
        db.session.commit()
        assert assignment.state == "archived"
        assert assignment.archived_by == manager.id
        assert assignment.completed_at is not None
        with pytest.raises(StateError):
            workflow_service.log_action(manager, assignment.id, "s1", "uncomplete")

    def test_member_cannot_archive(self, manager, member):
        template = _v1_template(manager, assigned_to=[member.id])
        assignment = _assignment_of(template)
        _check_all(member, assignment, ["s1", "s2", "s2a", "s2b"])
        with pytest.raises(PermissionDeniedError):
            workflow_service.archive_assignment(member, assignment.id)

    def test_duplicate_archived_starts_fresh(self, manager, member):
        assignment = _assignment_of(_v1_template(manager))
        _check_all(manager, assignment, ["s1", "s2", "s2a", "s2b"])
        workflow_service.archive_assignment(manager, assignment.id)
        db.session.commit()

        copy = workflow_service.duplicate_archived_assignment(member, assignment.id)
        db.session.commit()
        assert copy.state == "pending"
        assert copy.template_id == assignment.template_id
        mine = workflow_service.list_my_assignments(member)
        assert [a["id"] for a in mine] == [copy.id]
        assert mine[0]["progress"] == 0

    def test_archived_api_groups(self, client, auth_headers, admin):
        assignment = _assignment_of(_v1_template(admin, steps=[{"id": "only"}]))
        _check_all(admin, assignment, ["only"])
        workflow_service.archive_assignment(admin, assignment.id)
        db.session.commit()

        res = client.get("/api/v1/assignments/archived", headers=auth_headers(admin))
        body = res.get_json()
        assert res.status_code == 200
        assert len(body["groups"]) == 1
        assert body["groups"][0]["assignments"][0]["id"] == assignment.id

    def test_log_endpoint_requires_action(self, client, auth_headers, manager):
        assignment = _assignment_of(_v1_template(manager))
        res = client.post(f"/api/v1/assignments/{assignment.id}/logs",
                          json={"step_id": "s1"}, headers=auth_headers(manager))
        assert res.status_code == 400


class TestDashboard:
    def test_counts_by_state(self, client, auth_headers, manager, member):
        _v1_template(manager, assigned_to=[member.id])
        second = _assignment_of(_v1_template(manager, assigned_to=[member.id], steps=[{"id": "z"}]))
        workflow_service.log_action(member, second.id, "z", "complete")
        db.session.commit()

        res = client.get("/api/v1/dashboard", headers=auth_headers(member))
        body = res.get_json()
        assert res.status_code == 200
        assert body["is_admin"] is False
        assert body["counts"]["pending"] == 1
        assert body["counts"]["in_progress"] == 1
