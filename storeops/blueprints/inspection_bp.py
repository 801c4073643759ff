"""
Inspection Blueprint — checklist templates, grade mapping and store inspections.

Endpoints:
  GET    /api/v1/inspection-templates            — Templates (admin; ?include_inactive=true)
  POST   /api/v1/inspection-templates            — Create (admin)
  PUT    /api/v1/inspection-templates/:id        — Update
  DELETE /api/v1/inspection-templates/:id        — Soft delete
  GET    /api/v1/inspection-grade-mapping        — Mapping, or the default (admin)
  PUT    /api/v1/inspection-grade-mapping        — Replace all 11 grades (admin)
  POST   /api/v1/inspections                     — Submit an inspection (scored here)
  GET    /api/v1/inspections?store_id=           — List (paginated)
  GET    /api/v1/inspections/:id                 — Detail with results
  DELETE /api/v1/inspections/:id                 — Delete with results (admin)
"""

import logging

from flask import Blueprint, jsonify, request

from storeops.auth import require_auth, require_role
from storeops.blueprints import actor_profile, json_body, paginate_query
from storeops.middleware.permission_required import require_permission
from storeops.services import inspection_service
from storeops.utils.helpers import db_commit_or_error

logger = logging.getLogger(__name__)

inspection_bp = Blueprint("inspection", __name__, url_prefix="/api/v1")


# ═══════════════════════════════════════════════════════════════
# Templates
# ═══════════════════════════════════════════════════════════════

@inspection_bp.route("/inspection-templates", methods=["GET"])
@require_role("admin")
def list_templates():
    include_inactive = request.args.get("include_inactive", "false").lower() == "true"
    templates = inspection_service.list_templates(include_inactive=include_inactive)
    return jsonify({"success": True, "templates": [t.to_dict() for t in templates]})


@inspection_bp.route("/inspection-templates", methods=["POST"])
@require_role("admin")
def create_template():
    template = inspection_service.create_template(actor_profile(), json_body())
    err = db_commit_or_error()
    if err:
        return err
    return jsonify({"success": True, "template": template.to_dict()}), 201


@inspection_bp.route("/inspection-templates/<int:template_id>", methods=["PUT"])
@require_permission("inspection.template.manage")
def update_template(template_id):
    template = inspection_service.update_template(template_id, json_body())
    err = db_commit_or_error()
    if err:
        return err
    return jsonify({"success": True, "template": template.to_dict()})


@inspection_bp.route("/inspection-templates/<int:template_id>", methods=["DELETE"])
@require_permission("inspection.template.manage")
def delete_template(template_id):
    inspection_service.deactivate_template(template_id)
    err = db_commit_or_error()
    if err:
        return err
    return jsonify({"success": True, "message": "檢查項目已停用"})


# ═══════════════════════════════════════════════════════════════
# Grade mapping
# ═══════════════════════════════════════════════════════════════

@inspection_bp.route("/inspection-grade-mapping", methods=["GET"])
@require_role("admin")
def get_grade_mapping():
    mappings, is_default = inspection_service.get_grade_mapping()
    return jsonify({"success": True, "mappings": mappings, "isDefault": is_default})


@inspection_bp.route("/inspection-grade-mapping", methods=["PUT"])
@require_role("admin")
def replace_grade_mapping():
    rows = inspection_service.replace_grade_mapping(actor_profile(), json_body().get("mappings"))
    err = db_commit_or_error()
    if err:
        return err
    return jsonify({"success": True, "mappings": [r.to_dict() for r in rows]})


# ═══════════════════════════════════════════════════════════════
# Inspections
# ═══════════════════════════════════════════════════════════════

@inspection_bp.route("/inspections", methods=["POST"])
@require_auth
def create_inspection():
    inspection = inspection_service.create_inspection(actor_profile(), json_body())
    err = db_commit_or_error()
    if err:
        return err
    return jsonify({"success": True, "inspection": inspection.to_dict(include_results=True)}), 201


@inspection_bp.route("/inspections", methods=["GET"])
@require_auth
def list_inspections():
    query = inspection_service.inspections_query(request.args.get("store_id", type=int))
    inspections, total = paginate_query(query)
    return jsonify({
        "success": True,
        "inspections": [i.to_dict() for i in inspections],
        "total": total,
    })


@inspection_bp.route("/inspections/<int:inspection_id>", methods=["GET"])
@require_auth
def get_inspection(inspection_id):
    inspection = inspection_service.get_inspection(inspection_id)
    return jsonify({"success": True, "inspection": inspection.to_dict(include_results=True)})


@inspection_bp.route("/inspections/<int:inspection_id>", methods=["DELETE"])
@require_role("admin")
def delete_inspection(inspection_id):
    inspection_service.delete_inspection(inspection_id)
    err = db_commit_or_error()
    if err:
        return err
    return jsonify({"success": True})
