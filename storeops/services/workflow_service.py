"""Workflow service layer — templates, assignments and checklist logs.

Transaction policy: functions use flush() for ID generation, never commit().
The route handler commits once, so a template and its auto-created
assignment (or a collaborator reconciliation) land together or not at all.

Progress is never stored: it is recomputed from the assignment's logs with
``replay_checked_steps`` / ``compute_progress``.
"""
import logging
from collections import OrderedDict
from datetime import datetime, timezone

from storeops.core.exceptions import (
    NotFoundError,
    PermissionDeniedError,
    StateError,
    ValidationError,
)
from storeops.models import db
from storeops.models.profile import Profile
from storeops.models.workflow import (
    LOG_ACTIONS,
    Assignment,
    AssignmentCollaborator,
    Log,
    Template,
    compute_progress,
    replay_checked_steps,
)
from storeops.services import policies

logger = logging.getLogger(__name__)

# UI verbs mapped onto stored log actions
_ACTION_ALIASES = {"checked": "complete", "unchecked": "uncomplete"}


def _now():
    return datetime.now(timezone.utc)


# ── Lookups ──────────────────────────────────────────────────────────────────


def _get_template(template_id):
    template = db.session.get(Template, template_id)
    if template is None:
        raise NotFoundError("Template", template_id, message="任務不存在")
    return template


def _get_assignment(assignment_id):
    assignment = db.session.get(Assignment, assignment_id)
    if assignment is None:
        raise NotFoundError("Assignment", assignment_id, message="任務不存在")
    return assignment


def _logs_by_assignment(assignment_ids):
    grouped = {aid: [] for aid in assignment_ids}
    if not assignment_ids:
        return grouped
    rows = (
        Log.query.filter(Log.assignment_id.in_(assignment_ids))
        .order_by(Log.created_at, Log.id)
        .all()
    )
    for log in rows:
        grouped[log.assignment_id].append(log)
    return grouped


def _collaborators_by_assignment(assignment_ids):
    grouped = {aid: [] for aid in assignment_ids}
    if not assignment_ids:
        return grouped
    rows = (
        AssignmentCollaborator.query
        .filter(AssignmentCollaborator.assignment_id.in_(assignment_ids))
        .order_by(AssignmentCollaborator.id)
        .all()
    )
    for row in rows:
        grouped[row.assignment_id].append(row)
    return grouped


def _profile_map(user_ids):
    ids = {uid for uid in user_ids if uid}
    if not ids:
        return {}
    return {p.id: p for p in Profile.query.filter(Profile.id.in_(ids)).all()}


def _latest_assignment(template_id):
    return (
        Assignment.query.filter_by(template_id=template_id)
        .order_by(Assignment.created_at.desc(), Assignment.id.desc())
        .first()
    )


# ── Template views ───────────────────────────────────────────────────────────


def template_view(template, section_id=None, creator=None):
    """
    Template dict as seen by one collaborator.

    When the template has sections and ``section_id`` names one of them,
    ``steps_schema`` is replaced by that section's steps only.
    """
    data = template.to_dict()
    if template.has_sections and section_id:
        section = template.find_section(section_id)
        if section is not None:
            data["steps_schema"] = section.get("steps") or []
            data["userSection"] = {"id": section.get("id"), "department": section.get("department")}
    if creator is not None:
        data["creator"] = creator.to_brief()
    return data


def _progress_for(assignment, logs, steps_schema):
    checked = replay_checked_steps(logs)
    return checked, compute_progress(steps_schema, checked)


def _serialize_assignment(assignment, logs, collaborators, profiles, section_id=None):
    template = assignment.template
    view = template_view(template, section_id, profiles.get(template.created_by)) if template else None
    steps = view["steps_schema"] if view else []
    checked, progress = _progress_for(assignment, logs, steps)
    data = assignment.to_dict()
    data.update({
        "template": view,
        "logs": [log.to_dict() for log in logs],
        "collaborators": [
            {**profiles[c.user_id].to_brief(), "section_id": c.section_id}
            for c in collaborators if c.user_id in profiles
        ],
        "assigned_user": profiles[assignment.assigned_to].to_brief()
        if assignment.assigned_to in profiles else None,
        "checked_steps": sorted(checked),
        "progress": progress,
        "userSectionId": section_id,
    })
    return data


def _serialize_many(assignments, section_for=None):
    ids = [a.id for a in assignments]
    logs = _logs_by_assignment(ids)
    collabs = _collaborators_by_assignment(ids)
    user_ids = set()
    for a in assignments:
        user_ids.update({a.assigned_to, a.created_by, a.archived_by})
        if a.template is not None:
            user_ids.add(a.template.created_by)
    for rows in collabs.values():
        user_ids.update(c.user_id for c in rows)
    profiles = _profile_map(user_ids)
    section_for = section_for or {}
    return [
        _serialize_assignment(a, logs[a.id], collabs[a.id], profiles, section_for.get(a.id))
        for a in assignments
    ]


# ═══════════════════════════════════════════════════════════════════════════
#  TEMPLATES
# ═══════════════════════════════════════════════════════════════════════════


def _validate_sections(sections):
    if not isinstance(sections, list) or not sections:
        raise ValidationError("至少需要一個部門區塊", details={"sections": "required"})
    for section in sections:
        if not isinstance(section, dict) or not section.get("id"):
            raise ValidationError("區塊資料不完整", details={"sections": "id required"})
        if not isinstance(section.get("steps") or [], list):
            raise ValidationError("區塊步驟格式錯誤", details={"sections": "steps must be a list"})


def _section_user_ids(sections):
    ordered = []
    for section in sections:
        for user_id in section.get("assigned_users") or []:
            if user_id and user_id not in ordered:
                ordered.append(user_id)
    return ordered


def _section_of(sections, user_id):
    for section in sections:
        if user_id in (section.get("assigned_users") or []):
            return section.get("id")
    return None


def _clean_user_ids(value):
    if isinstance(value, str):
        value = [value]
    if not isinstance(value, list):
        return []
    return [uid.strip() for uid in value if isinstance(uid, str) and uid.strip()]


def create_template(actor, data):
    """Create a V1 (``steps_schema``) or V2 (``sections``) template.

    An initial assignment is created in the same transaction. Its
    collaborators are the creator plus every assigned user; for V2 each
    collaborator's section_id is the first section listing them.
    """
    title = (data.get("title") or "").strip()
    if not title:
        raise ValidationError("缺少任務標題", details={"title": "required"})

    sections = data.get("sections")
    if sections is not None:
        _validate_sections(sections)
        steps_schema = [step for section in sections for step in (section.get("steps") or [])]
        assignee_ids = _section_user_ids(sections)
    else:
        steps_schema = data.get("steps_schema")
        if not isinstance(steps_schema, list):
            raise ValidationError("缺少步驟定義", details={"steps_schema": "must be a list"})
        assignee_ids = _clean_user_ids(data.get("assigned_to"))

    template = Template(
        title=title,
        description=data.get("description") or "",
        steps_schema=steps_schema,
        sections=sections,
        created_by=actor.id,
    )
    db.session.add(template)
    db.session.flush()

    user_ids = [actor.id] + [uid for uid in assignee_ids if uid != actor.id]
    assignment = Assignment(
        template_id=template.id,
        assigned_to=user_ids[0],
        department=actor.department,
        created_by=actor.id,
        state="pending",
    )
    db.session.add(assignment)
    db.session.flush()

    for user_id in user_ids:
        db.session.add(AssignmentCollaborator(
            assignment_id=assignment.id,
            user_id=user_id,
            section_id=_section_of(sections, user_id) if sections else None,
        ))
    db.session.flush()

    logger.info(
        "Template %s created by %s with %d collaborators",
        template.id, actor.id, len(user_ids),
    )
    return template


def list_templates(actor):
    """Admins see every template; everyone else sees their own."""
    query = Template.query.order_by(Template.created_at.desc())
    if not policies.is_admin(actor):
        query = query.filter(Template.created_by == actor.id)
    templates = query.all()

    result = []
    for template in templates:
        data = template.to_dict()
        latest = _latest_assignment(template.id)
        if latest is None:
            data["stats"] = {"assignment_id": None, "state": None, "progress": 0}
        else:
            logs = _logs_by_assignment([latest.id])[latest.id]
            _, progress = _progress_for(latest, logs, template.steps_schema)
            data["stats"] = {
                "assignment_id": latest.id,
                "state": latest.state,
                "status": latest.status,
                "progress": progress,
            }
        result.append(data)
    return result


def get_template(template_id):
    return _get_template(template_id)


def _has_completed_assignment(template_id):
    return (
        Assignment.query
        .filter(Assignment.template_id == template_id)
        .filter(Assignment.state.in_(("completed", "archived")))
        .count()
        > 0
    )


def update_template(actor, template_id, data):
    """Update title/description and either steps_schema (V1) or sections (V2).

    V2 updates reconcile collaborators on every assignment: new users are
    added, and removed users are only dropped when they have no logs.
    """
    template = _get_template(template_id)
    sections = data.get("sections")

    if sections is not None:
        policies.authorize(actor, policies.is_admin_or_manager)
    elif not (policies.is_admin_or_manager(actor) or template.created_by == actor.id):
        raise PermissionDeniedError("權限不足")

    if _has_completed_assignment(template.id):
        raise StateError("此任務已有完成的指派記錄，無法編輯")

    if "title" in data:
        title = (data.get("title") or "").strip()
        if not title:
            raise ValidationError("缺少任務標題", details={"title": "required"})
        template.title = title
    if "description" in data:
        template.description = data.get("description") or ""

    if sections is not None:
        _validate_sections(sections)
        template.sections = sections
        template.steps_schema = [
            step for section in sections for step in (section.get("steps") or [])
        ]
        db.session.flush()
        _reconcile_collaborators(template, sections)
    elif "steps_schema" in data:
        if not isinstance(data["steps_schema"], list):
            raise ValidationError("步驟格式錯誤", details={"steps_schema": "must be a list"})
        template.steps_schema = data["steps_schema"]

    db.session.flush()
    return template


def _reconcile_collaborators(template, sections):
    wanted = _section_user_ids(sections)
    for assignment in template.assignments.all():
        current = {c.user_id: c for c in assignment.collaborators.all()}
        for user_id in wanted:
            if user_id not in current:
                db.session.add(AssignmentCollaborator(
                    assignment_id=assignment.id,
                    user_id=user_id,
                    section_id=_section_of(sections, user_id),
                ))
        for user_id, row in current.items():
            if user_id in wanted:
                continue
            has_logs = (
                Log.query.filter_by(assignment_id=assignment.id, user_id=user_id).first()
                is not None
            )
            if not has_logs:
                db.session.delete(row)
    db.session.flush()


def delete_template(actor, template_id):
    template = _get_template(template_id)
    if not (policies.is_admin_or_manager(actor) or template.created_by == actor.id):
        raise PermissionDeniedError("權限不足，只有管理員、主管或模板創建者可以刪除流程模板")
    db.session.delete(template)
    db.session.flush()
    logger.info("Template %s deleted by %s", template_id, actor.id)


def duplicate_template(actor, template_id, new_title=None):
    original = _get_template(template_id)
    copy = Template(
        title=(new_title or "").strip() or f"{original.title} (副本)",
        description=original.description,
        steps_schema=original.steps_schema,
        sections=original.sections,
        created_by=actor.id,
    )
    db.session.add(copy)
    db.session.flush()
    return copy


def get_template_collaborators(template_id):
    """Unique user ids across all assignments of the template."""
    _get_template(template_id)
    rows = (
        db.session.query(AssignmentCollaborator.user_id)
        .join(Assignment, Assignment.id == AssignmentCollaborator.assignment_id)
        .filter(Assignment.template_id == template_id)
        .distinct()
        .all()
    )
    return sorted(r[0] for r in rows)


# ═══════════════════════════════════════════════════════════════════════════
#  ASSIGNMENTS
# ═══════════════════════════════════════════════════════════════════════════


def create_assignment(actor, template_id, assigned_to):
    """Reuse the template's latest assignment or create one.

    Collaborators are replaced wholesale with the creator plus assignees.
    """
    template = _get_template(template_id)
    user_ids = [actor.id] + [uid for uid in _clean_user_ids(assigned_to) if uid != actor.id]

    assignment = _latest_assignment(template.id)
    if assignment is not None:
        AssignmentCollaborator.query.filter_by(assignment_id=assignment.id).delete()
    else:
        assignment = Assignment(
            template_id=template.id,
            assigned_to=user_ids[0],
            department=actor.department,
            created_by=actor.id,
            state="pending",
        )
        db.session.add(assignment)
    db.session.flush()

    for user_id in user_ids:
        db.session.add(AssignmentCollaborator(
            assignment_id=assignment.id,
            user_id=user_id,
            section_id=_section_of(template.sections, user_id) if template.has_sections else None,
        ))
    db.session.flush()
    return assignment


def list_all_assignments(actor):
    policies.authorize(actor, policies.is_admin_or_manager)
    assignments = (
        Assignment.query.filter(Assignment.state != "archived")
        .order_by(Assignment.created_at.desc())
        .all()
    )
    return _serialize_many(assignments)


def list_my_assignments(actor):
    """Non-archived assignments where the caller is a collaborator."""
    rows = AssignmentCollaborator.query.filter_by(user_id=actor.id).all()
    section_for = {r.assignment_id: r.section_id for r in rows}
    if not section_for:
        return []
    assignments = (
        Assignment.query
        .filter(Assignment.id.in_(list(section_for)))
        .filter(Assignment.state != "archived")
        .order_by(Assignment.created_at.desc())
        .all()
    )
    return _serialize_many(assignments, section_for)


def _is_collaborator(actor, assignment):
    return (
        AssignmentCollaborator.query
        .filter_by(assignment_id=assignment.id, user_id=actor.id)
        .first()
        is not None
    )


def _authorize_participant(actor, assignment):
    if policies.is_admin_or_manager(actor):
        return
    if assignment.created_by == actor.id or _is_collaborator(actor, assignment):
        return
    raise PermissionDeniedError("權限不足")


def get_assignment_detail(actor, assignment_id):
    assignment = _get_assignment(assignment_id)
    _authorize_participant(actor, assignment)
    own = AssignmentCollaborator.query.filter_by(
        assignment_id=assignment.id, user_id=actor.id
    ).first()
    return _serialize_many([assignment], {assignment.id: own.section_id if own else None})[0]


def log_action(actor, assignment_id, step_id, action, comment=None):
    """Append a checklist log; a pending assignment moves to in_progress."""
    assignment = _get_assignment(assignment_id)
    action = _ACTION_ALIASES.get(action, action)
    if action not in LOG_ACTIONS:
        raise ValidationError("無效的動作", details={"action": f"must be one of {sorted(LOG_ACTIONS)}"})
    if action != "comment" and (step_id is None or str(step_id).strip() == ""):
        raise ValidationError("缺少步驟 ID", details={"step_id": "required"})
    if assignment.is_archived:
        raise StateError("任務已封存，無法修改")
    _authorize_participant(actor, assignment)

    log = Log(
        assignment_id=assignment.id,
        user_id=actor.id,
        step_id=str(step_id) if step_id is not None else None,
        action=action,
        comment=comment,
    )
    db.session.add(log)
    if assignment.state == "pending":
        assignment.state = "in_progress"
    db.session.flush()
    return log


def update_assignment_status(actor, assignment_id, new_state):
    assignment = _get_assignment(assignment_id)
    _authorize_participant(actor, assignment)
    if new_state == "archived":
        raise StateError("請使用封存功能")
    if not assignment.can_transition_to(new_state):
        raise StateError(f"無法從 {assignment.state} 變更為 {new_state}")

    assignment.state = new_state
    if new_state == "completed":
        assignment.completed_at = _now()
    db.session.flush()
    logger.info("Assignment %s -> %s by %s", assignment.id, new_state, actor.id)
    return assignment


def archive_assignment(actor, assignment_id):
    """Archive a fully checked assignment (admin / manager)."""
    policies.authorize(actor, policies.is_admin_or_manager)
    assignment = _get_assignment(assignment_id)
    if assignment.is_archived:
        raise StateError("任務已經封存")

    logs = _logs_by_assignment([assignment.id])[assignment.id]
    steps = assignment.template.steps_schema if assignment.template else []
    _, progress = _progress_for(assignment, logs, steps)
    if progress < 100:
        raise StateError("只能封存進度100%的任務")

    now = _now()
    assignment.state = "archived"
    assignment.archived_at = now
    assignment.archived_by = actor.id
    if assignment.completed_at is None:
        assignment.completed_at = now
    db.session.flush()
    logger.info("Assignment %s archived by %s", assignment.id, actor.id)
    return assignment


def delete_assignment(actor, assignment_id):
    policies.authorize(actor, policies.is_admin_or_manager)
    assignment = _get_assignment(assignment_id)
    if assignment.state not in ("completed", "archived"):
        raise StateError("只能刪除已完成的任務")
    db.session.delete(assignment)
    db.session.flush()
    logger.info("Assignment %s deleted by %s", assignment_id, actor.id)


def list_archived(actor):
    """Admins see every archived assignment; others their own or ones they archived."""
    query = Assignment.query.filter(Assignment.state == "archived")
    if not policies.is_admin(actor):
        query = query.filter(
            db.or_(Assignment.archived_by == actor.id, Assignment.created_by == actor.id)
        )
    assignments = query.order_by(Assignment.archived_at.desc()).all()
    return _serialize_many(assignments)


def _created_at(item):
    value = item.get("created_at") if isinstance(item, dict) else getattr(item, "created_at", None)
    if isinstance(value, str):
        value = datetime.fromisoformat(value.replace("Z", "+00:00"))
    if value is not None and value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    return value


def group_archived_by_month(assignments):
    """Group by created_at as zero-padded ``YYYY/MM``, newest month first.

    Within a month items are newest first. Items without created_at are
    skipped.
    """
    buckets = {}
    for item in assignments:
        created = _created_at(item)
        if created is None:
            continue
        key = f"{created.year:04d}/{created.month:02d}"
        buckets.setdefault(key, []).append((created, item))

    grouped = OrderedDict()
    for key in sorted(buckets, reverse=True):
        rows = sorted(buckets[key], key=lambda pair: pair[0], reverse=True)
        grouped[key] = [item for _, item in rows]
    return grouped


def duplicate_archived_assignment(actor, assignment_id):
    """Start a fresh pending run of an archived assignment's template for the caller."""
    original = _get_assignment(assignment_id)
    if not original.is_archived:
        raise NotFoundError("Assignment", assignment_id, message="找不到該封存任務")
    if original.template is None:
        raise ValidationError("該任務的模板已被刪除，無法複製")

    assignment = Assignment(
        template_id=original.template_id,
        assigned_to=actor.id,
        department=actor.department,
        created_by=actor.id,
        state="pending",
    )
    db.session.add(assignment)
    db.session.flush()
    db.session.add(AssignmentCollaborator(assignment_id=assignment.id, user_id=actor.id))
    db.session.flush()
    return assignment


# ── View models ──────────────────────────────────────────────────────────────


def dashboard(actor):
    """Profile, open assignments with progress and per-state counts."""
    if policies.is_admin_or_manager(actor):
        assignments = list_all_assignments(actor)
    else:
        assignments = list_my_assignments(actor)
    counts = {"pending": 0, "in_progress": 0, "completed": 0}
    for item in assignments:
        counts[item["state"]] = counts.get(item["state"], 0) + 1
    return {
        "profile": actor.to_dict(),
        "is_admin": policies.is_admin(actor),
        "assignments": assignments,
        "counts": counts,
    }
