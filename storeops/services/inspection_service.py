"""Store inspections — checklist templates, scoring, grade mapping and records.

Scoring happens server-side from the submitted selections:
    item deduction  = Σ(checklist deduction × quantity)
    given_score     = max(0, max_score − deduction)
    total_score     = 220 − Σ item deductions
    grade           = first mapping row with min_score <= total_score

Transaction policy: flush() only; the route handler commits.
"""
import logging

from storeops.core.exceptions import NotFoundError, ValidationError
from storeops.models import db
from storeops.models.inspection import (
    BASE_SCORE,
    DEFAULT_GRADE_MAPPING,
    INSPECTION_STATUSES,
    InspectionGradeMapping,
    InspectionMaster,
    InspectionResult,
    InspectionTemplate,
    grade_for_score,
    item_deduction,
)
from storeops.models.store import Store
from storeops.utils.helpers import parse_date, to_float

logger = logging.getLogger(__name__)

GRADE_COUNT = 11

TEMPLATE_FIELDS = (
    "section", "section_name", "section_order", "item_name", "item_description",
    "item_order", "max_score", "scoring_type", "checklist_items", "is_active",
)


# ═══════════════════════════════════════════════════════════════════════════
#  TEMPLATES
# ═══════════════════════════════════════════════════════════════════════════


def list_templates(include_inactive=False):
    query = InspectionTemplate.query
    if not include_inactive:
        query = query.filter(InspectionTemplate.is_active.is_(True))
    return query.order_by(
        InspectionTemplate.section_order, InspectionTemplate.item_order, InspectionTemplate.id
    ).all()


def _validate_checklist(items):
    if items is None:
        return []
    if not isinstance(items, list):
        raise ValidationError("檢查項目格式錯誤", details={"checklist_items": "list expected"})
    for item in items:
        if not isinstance(item, dict) or not item.get("label"):
            raise ValidationError("檢查項目缺少名稱", details={"checklist_items": "label required"})
    return items


def create_template(actor, data):
    missing = [f for f in ("section", "section_name", "item_name") if not data.get(f)]
    if missing:
        raise ValidationError("缺少必要欄位", details={f: "required" for f in missing})
    template = InspectionTemplate(
        section=data["section"],
        section_name=data["section_name"],
        section_order=int(data.get("section_order") or 0),
        item_name=data["item_name"],
        item_description=data.get("item_description"),
        item_order=int(data.get("item_order") or 0),
        max_score=to_float(data.get("max_score"), 0.0),
        scoring_type=data.get("scoring_type") or "checklist",
        checklist_items=_validate_checklist(data.get("checklist_items")),
        is_active=True,
        created_by=actor.id,
    )
    db.session.add(template)
    db.session.flush()
    logger.info("Inspection template %d created", template.id)
    return template


def _get_template(template_id):
    template = db.session.get(InspectionTemplate, template_id)
    if template is None:
        raise NotFoundError("InspectionTemplate", template_id, message="找不到檢查項目")
    return template


def update_template(template_id, data):
    template = _get_template(template_id)
    for field in TEMPLATE_FIELDS:
        if field not in data:
            continue
        value = data[field]
        if field == "checklist_items":
            value = _validate_checklist(value)
        elif field == "max_score":
            value = to_float(value, 0.0)
        setattr(template, field, value)
    db.session.flush()
    return template


def deactivate_template(template_id):
    """Soft delete: past results keep pointing at the template."""
    template = _get_template(template_id)
    template.is_active = False
    db.session.flush()
    logger.info("Inspection template %s deactivated", template_id)
    return template


# ═══════════════════════════════════════════════════════════════════════════
#  GRADE MAPPING
# ═══════════════════════════════════════════════════════════════════════════


def get_grade_mapping():
    """Return ``(mappings, is_default)``, highest grade first."""
    rows = InspectionGradeMapping.query.order_by(InspectionGradeMapping.grade.desc()).all()
    if not rows:
        return [{"grade": g, "min_score": s} for g, s in DEFAULT_GRADE_MAPPING], True
    return [r.to_dict() for r in rows], False


def _mapping_pairs():
    rows = InspectionGradeMapping.query.all()
    if not rows:
        return DEFAULT_GRADE_MAPPING
    return [(r.grade, r.min_score) for r in rows]


def replace_grade_mapping(actor, mappings):
    """Replace the mapping with exactly one row per grade 0–10."""
    if not isinstance(mappings, list) or len(mappings) != GRADE_COUNT:
        raise ValidationError("需要 11 個評級（0-10）")
    parsed = {}
    for item in mappings:
        try:
            grade = int(item.get("grade"))
            min_score = float(item.get("min_score"))
        except (AttributeError, TypeError, ValueError):
            raise ValidationError("評級格式錯誤") from None
        if not 0 <= grade <= 10:
            raise ValidationError("評級必須介於 0 到 10")
        parsed[grade] = min_score
    if len(parsed) != GRADE_COUNT:
        raise ValidationError("評級不可重複")

    InspectionGradeMapping.query.delete()
    rows = [
        InspectionGradeMapping(grade=grade, min_score=min_score, updated_by=actor.id)
        for grade, min_score in sorted(parsed.items(), reverse=True)
    ]
    db.session.add_all(rows)
    db.session.flush()
    logger.info("Inspection grade mapping replaced by %s", actor.id)
    return rows


# ═══════════════════════════════════════════════════════════════════════════
#  INSPECTIONS
# ═══════════════════════════════════════════════════════════════════════════


def score_results(results, templates_by_id):
    """Score submitted results against their templates.

    Returns ``(scored, total_deduction)`` where each scored entry carries
    ``deduction`` and ``given_score``.
    """
    scored = []
    total_deduction = 0.0
    for result in results:
        template = templates_by_id.get(result.get("template_id"))
        if template is None:
            raise ValidationError("檢查項目不存在", details={"template_id": result.get("template_id")})
        selected = result.get("selected_items") or []
        quantities = result.get("quantities") or {}
        deduction = item_deduction(template.checklist_items, selected, quantities)
        max_score = template.max_score or 0
        scored.append({
            **result,
            "max_score": max_score,
            "deduction": deduction,
            "given_score": max(0.0, max_score - deduction),
        })
        total_deduction += deduction
    return scored, total_deduction


def create_inspection(actor, data):
    store_id = data.get("store_id")
    if not store_id:
        raise ValidationError("請選擇門市", details={"store_id": "required"})
    if db.session.get(Store, store_id) is None:
        raise NotFoundError("Store", store_id, message="找不到門市")
    inspection_date = parse_date(data.get("inspection_date"))
    if inspection_date is None:
        raise ValidationError("日期格式錯誤", details={"inspection_date": "expected YYYY-MM-DD"})
    status = data.get("status") or "completed"
    if status not in INSPECTION_STATUSES:
        raise ValidationError("狀態無效", details={"status": list(INSPECTION_STATUSES)})
    results = data.get("results") or []
    if not isinstance(results, list):
        raise ValidationError("檢查結果格式錯誤")

    template_ids = {r.get("template_id") for r in results}
    templates = {
        t.id: t for t in InspectionTemplate.query.filter(InspectionTemplate.id.in_(template_ids))
    } if template_ids else {}
    scored, total_deduction = score_results(results, templates)
    total_score = BASE_SCORE - total_deduction

    master = InspectionMaster(
        store_id=store_id,
        inspector_id=actor.id,
        inspection_date=inspection_date,
        status=status,
        max_possible_score=BASE_SCORE,
        total_score=total_score,
        grade=grade_for_score(total_score, _mapping_pairs()),
        gps_latitude=data.get("gps_latitude"),
        gps_longitude=data.get("gps_longitude"),
        signature_photo_url=data.get("signature_photo_url"),
    )
    db.session.add(master)
    db.session.flush()

    for entry in scored:
        db.session.add(InspectionResult(
            inspection_id=master.id,
            template_id=entry["template_id"],
            max_score=entry["max_score"],
            given_score=entry["given_score"],
            deduction_amount=entry["deduction"],
            is_improvement=entry["deduction"] > 0,
            notes=entry.get("notes"),
            selected_items=entry.get("selected_items") or [],
            quantities=entry.get("quantities") or {},
            photo_urls=entry.get("photo_urls") or None,
        ))
    db.session.flush()
    logger.info(
        "Inspection %d for store %s: total=%s grade=%s",
        master.id, store_id, total_score, master.grade,
    )
    return master


def inspections_query(store_id=None):
    query = InspectionMaster.query
    if store_id:
        query = query.filter_by(store_id=store_id)
    return query.order_by(
        InspectionMaster.inspection_date.desc(), InspectionMaster.id.desc()
    )


def get_inspection(inspection_id):
    inspection = db.session.get(InspectionMaster, inspection_id)
    if inspection is None:
        raise NotFoundError("InspectionMaster", inspection_id, message="找不到巡店記錄")
    return inspection


def delete_inspection(inspection_id):
    """Delete the results first, then the master."""
    inspection = get_inspection(inspection_id)
    removed = InspectionResult.query.filter_by(inspection_id=inspection.id).delete()
    db.session.delete(inspection)
    db.session.flush()
    logger.info("Inspection %s deleted with %d results", inspection_id, removed)
