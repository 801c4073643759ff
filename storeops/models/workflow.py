"""
Workflow models: Template, Assignment, AssignmentCollaborator, Log.

A Template defines an ordered checklist (``steps_schema``), optionally split
into department ``sections``. An Assignment is one run of a template; its
progress is never stored — the set of checked steps is rebuilt by replaying
the assignment's Logs in creation order.

Assignment lifecycle (explicit tagged state):

    pending ──► in_progress ──► completed ──► archived
       │                          ▲   │
       └──────────────────────────┘   └──► in_progress   (reopen)
"""

import uuid
from datetime import datetime, timezone

from storeops.models import db

# ── Constants ────────────────────────────────────────────────────────────────

ASSIGNMENT_STATES = ("pending", "in_progress", "completed", "archived")

# state → states reachable via an explicit status change
ASSIGNMENT_TRANSITIONS = {
    "pending": {"in_progress", "completed"},
    "in_progress": {"completed"},
    "completed": {"in_progress", "archived"},
    "archived": set(),
}

LOG_ACTIONS = {"complete", "uncomplete", "checked", "unchecked", "comment"}

# Legacy UI action names that mean the same as complete / uncomplete
_CHECK_ACTIONS = {"complete", "checked"}
_UNCHECK_ACTIONS = {"uncomplete", "unchecked"}


def _uuid():
    return str(uuid.uuid4())


def _utcnow():
    return datetime.now(timezone.utc)


# ── Pure helpers ─────────────────────────────────────────────────────────────


def count_steps(steps_schema) -> int:
    """Total checkable items: each step plus each of its subSteps."""
    total = 0
    for step in steps_schema or []:
        total += 1 + len(step.get("subSteps") or [])
    return total


def replay_checked_steps(logs) -> set[str]:
    """
    Rebuild the checked-step set from logs.

    ``logs`` may be Log instances or dicts; they are replayed in creation
    order (ties keep input order). complete adds, uncomplete removes; other
    actions and logs without a step are ignored.
    """
    def _get(log, key):
        return log.get(key) if isinstance(log, dict) else getattr(log, key, None)

    def _ts(log):
        created = _get(log, "created_at")
        if created is None:
            return 0.0
        if isinstance(created, str):
            created = datetime.fromisoformat(created.replace("Z", "+00:00"))
        if created.tzinfo is None:
            created = created.replace(tzinfo=timezone.utc)
        return created.timestamp()

    ordered = sorted(enumerate(logs), key=lambda pair: (_ts(pair[1]), pair[0]))
    checked: set[str] = set()
    for _, log in ordered:
        step_id = _get(log, "step_id")
        if step_id is None:
            continue
        action = _get(log, "action")
        if action in _CHECK_ACTIONS:
            checked.add(str(step_id))
        elif action in _UNCHECK_ACTIONS:
            checked.discard(str(step_id))
    return checked


def step_ids(steps_schema) -> set[str]:
    ids = set()
    for step in steps_schema or []:
        if step.get("id") is not None:
            ids.add(str(step["id"]))
        for sub in step.get("subSteps") or []:
            if sub.get("id") is not None:
                ids.add(str(sub["id"]))
    return ids


def compute_progress(steps_schema, checked: set[str]) -> int:
    """
    Percent complete, rounded; 0 when the template has no steps.

    Checked ids that are not part of ``steps_schema`` (e.g. another
    section's steps) are not counted.
    """
    total = count_steps(steps_schema)
    if total == 0:
        return 0
    known = step_ids(steps_schema)
    done = {s for s in checked if s in known} if known else checked
    return round(min(len(done), total) / total * 100)


# ═══════════════════════════════════════════════════════════════════════════
#  TEMPLATE
# ═══════════════════════════════════════════════════════════════════════════

class Template(db.Model):
    __tablename__ = "templates"

    id = db.Column(db.String(36), primary_key=True, default=_uuid)
    title = db.Column(db.String(300), nullable=False)
    description = db.Column(db.Text)
    # [{id, label, description?, required, subSteps?: [...]}]
    steps_schema = db.Column(db.JSON, nullable=False, default=list)
    # [{id, department, assigned_users: [...], steps: [...]}] or NULL (V1 templates)
    sections = db.Column(db.JSON, nullable=True)
    created_by = db.Column(db.String(36), db.ForeignKey("profiles.id", ondelete="SET NULL"))
    created_at = db.Column(db.DateTime, default=_utcnow)
    updated_at = db.Column(db.DateTime, default=_utcnow, onupdate=_utcnow)

    assignments = db.relationship(
        "Assignment", back_populates="template", lazy="dynamic", cascade="all, delete-orphan"
    )

    @property
    def has_sections(self):
        return isinstance(self.sections, list) and len(self.sections) > 0

    def find_section(self, section_id):
        for section in self.sections or []:
            if section.get("id") == section_id:
                return section
        return None

    def to_dict(self):
        return {
            "id": self.id,
            "title": self.title,
            "description": self.description,
            "steps_schema": self.steps_schema or [],
            "sections": self.sections,
            "created_by": self.created_by,
            "created_at": self.created_at.isoformat() if self.created_at else None,
            "updated_at": self.updated_at.isoformat() if self.updated_at else None,
        }


# ═══════════════════════════════════════════════════════════════════════════
#  ASSIGNMENT
# ═══════════════════════════════════════════════════════════════════════════

class Assignment(db.Model):
    __tablename__ = "assignments"

    id = db.Column(db.String(36), primary_key=True, default=_uuid)
    template_id = db.Column(
        db.String(36), db.ForeignKey("templates.id", ondelete="CASCADE"), nullable=False
    )
    assigned_to = db.Column(db.String(36), db.ForeignKey("profiles.id", ondelete="SET NULL"))
    department = db.Column(db.String(100))
    created_by = db.Column(db.String(36), db.ForeignKey("profiles.id", ondelete="SET NULL"))
    state = db.Column(db.String(20), nullable=False, default="pending")
    completed_at = db.Column(db.DateTime)
    archived_at = db.Column(db.DateTime)
    archived_by = db.Column(db.String(36), db.ForeignKey("profiles.id", ondelete="SET NULL"))
    created_at = db.Column(db.DateTime, default=_utcnow)
    updated_at = db.Column(db.DateTime, default=_utcnow, onupdate=_utcnow)

    __table_args__ = (
        db.CheckConstraint(
            "state IN ('pending', 'in_progress', 'completed', 'archived')",
            name="ck_assignment_state",
        ),
        db.Index("ix_assignments_template_id", "template_id"),
        db.Index("ix_assignments_state", "state"),
    )

    template = db.relationship("Template", back_populates="assignments")
    collaborators = db.relationship(
        "AssignmentCollaborator", back_populates="assignment",
        lazy="dynamic", cascade="all, delete-orphan",
    )
    logs = db.relationship(
        "Log", back_populates="assignment", lazy="dynamic", cascade="all, delete-orphan",
    )

    @property
    def is_archived(self):
        return self.state == "archived"

    @property
    def status(self):
        """Legacy three-value status; archived assignments report completed."""
        return "completed" if self.state == "archived" else self.state

    def can_transition_to(self, new_state: str) -> bool:
        return new_state in ASSIGNMENT_TRANSITIONS.get(self.state, set())

    def to_dict(self):
        return {
            "id": self.id,
            "template_id": self.template_id,
            "assigned_to": self.assigned_to,
            "department": self.department,
            "created_by": self.created_by,
            "state": self.state,
            "status": self.status,
            "archived": self.is_archived,
            "completed_at": self.completed_at.isoformat() if self.completed_at else None,
            "archived_at": self.archived_at.isoformat() if self.archived_at else None,
            "archived_by": self.archived_by,
            "created_at": self.created_at.isoformat() if self.created_at else None,
        }


class AssignmentCollaborator(db.Model):
    __tablename__ = "assignment_collaborators"

    id = db.Column(db.Integer, primary_key=True)
    assignment_id = db.Column(
        db.String(36), db.ForeignKey("assignments.id", ondelete="CASCADE"), nullable=False
    )
    user_id = db.Column(
        db.String(36), db.ForeignKey("profiles.id", ondelete="CASCADE"), nullable=False
    )
    section_id = db.Column(db.String(100))  # Template.sections[].id for V2 templates
    created_at = db.Column(db.DateTime, default=_utcnow)

    __table_args__ = (
        db.UniqueConstraint("assignment_id", "user_id", name="uq_assignment_collaborator"),
        db.Index("ix_assignment_collaborators_user_id", "user_id"),
    )

    assignment = db.relationship("Assignment", back_populates="collaborators")

    def to_dict(self):
        return {
            "assignment_id": self.assignment_id,
            "user_id": self.user_id,
            "section_id": self.section_id,
        }


class Log(db.Model):
    """Append-only audit trail of checklist actions on an assignment."""

    __tablename__ = "logs"

    id = db.Column(db.Integer, primary_key=True)
    assignment_id = db.Column(
        db.String(36), db.ForeignKey("assignments.id", ondelete="CASCADE"), nullable=False
    )
    user_id = db.Column(db.String(36), db.ForeignKey("profiles.id", ondelete="SET NULL"))
    step_id = db.Column(db.String(100))
    action = db.Column(db.String(30), nullable=False)
    comment = db.Column(db.Text)
    created_at = db.Column(db.DateTime, default=_utcnow)

    __table_args__ = (
        db.Index("ix_logs_assignment_id", "assignment_id"),
    )

    assignment = db.relationship("Assignment", back_populates="logs")

    def to_dict(self):
        return {
            "id": self.id,
            "assignment_id": self.assignment_id,
            "user_id": self.user_id,
            "step_id": self.step_id,
            "action": self.action,
            "comment": self.comment,
            "created_at": self.created_at.isoformat() if self.created_at else None,
        }
