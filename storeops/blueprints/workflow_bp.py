"""
Workflow Blueprint — checklist templates, assignments, logs and archive.

Endpoints:
  POST   /api/v1/templates                          — Create template (+ initial assignment)
  GET    /api/v1/templates                          — List templates with latest-run stats
  GET    /api/v1/templates/:id                      — Template detail
  PUT    /api/v1/templates/:id                      — Update (blocked once completed)
  DELETE /api/v1/templates/:id                      — Delete
  POST   /api/v1/templates/:id/duplicate            — Copy as the caller
  GET    /api/v1/templates/:id/collaborators        — User ids across its assignments
  POST   /api/v1/assignments                        — Assign (reuses latest assignment)
  GET    /api/v1/assignments                        — All open assignments (admin/manager)
  GET    /api/v1/assignments/mine                   — Caller's open assignments
  GET    /api/v1/assignments/archived               — Archive grouped by YYYY/MM
  GET    /api/v1/assignments/:id                    — Detail with logs and progress
  POST   /api/v1/assignments/:id/logs               — Log a checklist action
  PATCH  /api/v1/assignments/:id/status             — Explicit state transition
  POST   /api/v1/assignments/:id/archive            — Archive at 100% progress
  DELETE /api/v1/assignments/:id                    — Delete completed/archived
  POST   /api/v1/assignments/:id/duplicate          — New run from an archived one
  GET    /api/v1/dashboard                          — Dashboard view model
"""

import logging

from flask import Blueprint, jsonify

from storeops.auth import require_auth
from storeops.blueprints import actor_profile, json_body
from storeops.services import workflow_service
from storeops.utils.errors import E, api_error
from storeops.utils.helpers import db_commit_or_error

logger = logging.getLogger(__name__)

workflow_bp = Blueprint("workflow", __name__, url_prefix="/api/v1")


# ═══════════════════════════════════════════════════════════════
# Templates
# ═══════════════════════════════════════════════════════════════

@workflow_bp.route("/templates", methods=["POST"])
@require_auth
def create_template():
    actor = actor_profile()
    template = workflow_service.create_template(actor, json_body())
    err = db_commit_or_error()
    if err:
        return err
    return jsonify({"success": True, "template": template.to_dict()}), 201


@workflow_bp.route("/templates", methods=["GET"])
@require_auth
def list_templates():
    templates = workflow_service.list_templates(actor_profile())
    return jsonify({"success": True, "templates": templates})


@workflow_bp.route("/templates/<template_id>", methods=["GET"])
@require_auth
def get_template(template_id):
    template = workflow_service.get_template(template_id)
    return jsonify({"success": True, "template": template.to_dict()})


@workflow_bp.route("/templates/<template_id>", methods=["PUT"])
@require_auth
def update_template(template_id):
    template = workflow_service.update_template(actor_profile(), template_id, json_body())
    err = db_commit_or_error()
    if err:
        return err
    return jsonify({"success": True, "template": template.to_dict()})


@workflow_bp.route("/templates/<template_id>", methods=["DELETE"])
@require_auth
def delete_template(template_id):
    workflow_service.delete_template(actor_profile(), template_id)
    err = db_commit_or_error()
    if err:
        return err
    return jsonify({"success": True})


@workflow_bp.route("/templates/<template_id>/duplicate", methods=["POST"])
@require_auth
def duplicate_template(template_id):
    data = json_body()
    template = workflow_service.duplicate_template(
        actor_profile(), template_id, data.get("new_title") or data.get("title")
    )
    err = db_commit_or_error()
    if err:
        return err
    return jsonify({"success": True, "template": template.to_dict()}), 201


@workflow_bp.route("/templates/<template_id>/collaborators", methods=["GET"])
@require_auth
def template_collaborators(template_id):
    user_ids = workflow_service.get_template_collaborators(template_id)
    return jsonify({"success": True, "collaborators": user_ids})


# ═══════════════════════════════════════════════════════════════
# Assignments
# ═══════════════════════════════════════════════════════════════

@workflow_bp.route("/assignments", methods=["POST"])
@require_auth
def create_assignment():
    data = json_body()
    template_id = data.get("template_id")
    if not template_id:
        return api_error(E.VALIDATION_REQUIRED, "缺少模板 ID", details={"template_id": "required"})
    assignment = workflow_service.create_assignment(
        actor_profile(), template_id, data.get("assigned_to") or []
    )
    err = db_commit_or_error()
    if err:
        return err
    return jsonify({"success": True, "assignment": assignment.to_dict()})


@workflow_bp.route("/assignments", methods=["GET"])
@require_auth
def list_assignments():
    assignments = workflow_service.list_all_assignments(actor_profile())
    return jsonify({"success": True, "assignments": assignments})


@workflow_bp.route("/assignments/mine", methods=["GET"])
@require_auth
def my_assignments():
    assignments = workflow_service.list_my_assignments(actor_profile())
    return jsonify({"success": True, "assignments": assignments})


@workflow_bp.route("/assignments/archived", methods=["GET"])
@require_auth
def archived_assignments():
    assignments = workflow_service.list_archived(actor_profile())
    grouped = workflow_service.group_archived_by_month(assignments)
    return jsonify({
        "success": True,
        "groups": [{"month": month, "assignments": rows} for month, rows in grouped.items()],
        "assignments": assignments,
    })


@workflow_bp.route("/assignments/<assignment_id>", methods=["GET"])
@require_auth
def get_assignment(assignment_id):
    detail = workflow_service.get_assignment_detail(actor_profile(), assignment_id)
    return jsonify({"success": True, "assignment": detail})


@workflow_bp.route("/assignments/<assignment_id>/logs", methods=["POST"])
@require_auth
def log_action(assignment_id):
    data = json_body()
    if not data.get("action"):
        return api_error(E.VALIDATION_REQUIRED, "缺少動作", details={"action": "required"})
    log = workflow_service.log_action(
        actor_profile(), assignment_id,
        data.get("step_id"), data["action"], data.get("comment"),
    )
    err = db_commit_or_error()
    if err:
        return err
    return jsonify({"success": True, "log": log.to_dict()}), 201


@workflow_bp.route("/assignments/<assignment_id>/status", methods=["PATCH"])
@require_auth
def update_status(assignment_id):
    new_state = json_body().get("status")
    if not new_state:
        return api_error(E.VALIDATION_REQUIRED, "缺少狀態", details={"status": "required"})
    assignment = workflow_service.update_assignment_status(actor_profile(), assignment_id, new_state)
    err = db_commit_or_error()
    if err:
        return err
    return jsonify({"success": True, "assignment": assignment.to_dict()})


@workflow_bp.route("/assignments/<assignment_id>/archive", methods=["POST"])
@require_auth
def archive_assignment(assignment_id):
    assignment = workflow_service.archive_assignment(actor_profile(), assignment_id)
    err = db_commit_or_error()
    if err:
        return err
    return jsonify({"success": True, "assignment": assignment.to_dict()})


@workflow_bp.route("/assignments/<assignment_id>", methods=["DELETE"])
@require_auth
def delete_assignment(assignment_id):
    workflow_service.delete_assignment(actor_profile(), assignment_id)
    err = db_commit_or_error()
    if err:
        return err
    return jsonify({"success": True})


@workflow_bp.route("/assignments/<assignment_id>/duplicate", methods=["POST"])
@require_auth
def duplicate_assignment(assignment_id):
    assignment = workflow_service.duplicate_archived_assignment(actor_profile(), assignment_id)
    err = db_commit_or_error()
    if err:
        return err
    logger.info("Archived assignment %s re-run as %s", assignment_id, assignment.id)
    return jsonify({"success": True, "assignment": assignment.to_dict()}), 201


# ═══════════════════════════════════════════════════════════════
# Dashboard
# ═══════════════════════════════════════════════════════════════

@workflow_bp.route("/dashboard", methods=["GET"])
@require_auth
def dashboard():
    view = workflow_service.dashboard(actor_profile())
    return jsonify({"success": True, **view})
