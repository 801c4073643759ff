"""
Import Blueprint — Excel uploads for employees, cashier performance and store statistics.

Uploads are multipart with a ``file`` part; monthly imports also carry a
``year_month`` form field.

Endpoints:
  POST /api/v1/import/employees      — Employee master rows   (employee.employee.create)
  POST /api/v1/import/performance    — Cashier performance    (admin or supervisor)
  POST /api/v1/import/store-stats    — Store statistics       (supervisor or 營業 staff)
"""

import logging

from flask import Blueprint, jsonify, request

from storeops.auth import require_auth
from storeops.blueprints import actor_profile
from storeops.middleware.permission_required import require_permission
from storeops.services import import_service, policies
from storeops.utils.errors import E, api_error
from storeops.utils.helpers import db_commit_or_error

logger = logging.getLogger(__name__)

import_bp = Blueprint("import", __name__, url_prefix="/api/v1/import")


def _extract_file_content() -> bytes | None:
    """Bytes of the uploaded ``file`` part, or None."""
    file = request.files.get("file")
    if file is None or not file.filename:
        return None
    return file.read()


def _missing_file():
    return api_error(E.VALIDATION_REQUIRED, "請上傳檔案", details={"file": "required"})


@import_bp.route("/employees", methods=["POST"])
@require_permission("employee.employee.create")
def import_employees():
    content = _extract_file_content()
    if content is None:
        return _missing_file()
    results = import_service.import_employees(content)
    err = db_commit_or_error()
    if err:
        return err
    return jsonify({"success": True, "results": results})


@import_bp.route("/performance", methods=["POST"])
@require_auth
def import_performance():
    policies.authorize(actor_profile(), policies.can_import_performance, "只有督導以上職位可以匯入")
    content = _extract_file_content()
    if content is None:
        return _missing_file()
    results = import_service.import_performance(content, request.form.get("year_month"))
    err = db_commit_or_error()
    if err:
        return err
    return jsonify({
        "success": True,
        **results,
        "message": f"成功更新 {results['updated']} 位員工的業績資料",
    })


@import_bp.route("/store-stats", methods=["POST"])
@require_auth
def import_store_stats():
    policies.authorize(actor_profile(), policies.can_import_store_stats, "無權限匯入門市統計")
    content = _extract_file_content()
    if content is None:
        return _missing_file()
    results = import_service.import_store_stats(content, request.form.get("year_month"))
    err = db_commit_or_error()
    if err:
        return err
    return jsonify({"success": True, "results": results})
