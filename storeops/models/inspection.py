"""
Store inspection models.

InspectionTemplate rows are the scored checklist items, grouped by section.
An InspectionMaster is one visit; its InspectionResult rows hold per-item
scores. InspectionGradeMapping maps a total score to a 0–10 grade.
"""

from datetime import datetime, timezone

from storeops.models import db

INSPECTION_STATUSES = ("draft", "completed")

BASE_SCORE = 220

# (grade, min_score), highest grade first
DEFAULT_GRADE_MAPPING = [
    (10, 220), (9, 215), (8, 191), (7, 181), (6, 171), (5, 161),
    (4, 151), (3, 141), (2, 131), (1, 121), (0, 0),
]


def _utcnow():
    return datetime.now(timezone.utc)


# ── Pure scoring helpers ─────────────────────────────────────────────────────


def item_deduction(checklist_items, selected_labels, quantities=None) -> float:
    """
    Sum of deductions for the selected checklist entries.

    Each selected entry deducts ``deduction × quantity``; quantity defaults
    to 1 and is clamped to at least 1. Unknown labels are ignored.
    """
    quantities = quantities or {}
    by_label = {item.get("label"): item for item in checklist_items or []}
    total = 0.0
    for label in selected_labels or []:
        item = by_label.get(label)
        if item is None:
            continue
        try:
            qty = int(quantities.get(label) or 1)
        except (TypeError, ValueError):
            qty = 1
        total += float(item.get("deduction") or 0) * max(qty, 1)
    return total


def grade_for_score(total_score, mapping=None) -> int:
    """First grade whose min_score <= total, scanning highest min_score first."""
    rows = sorted(mapping or DEFAULT_GRADE_MAPPING, key=lambda r: r[1], reverse=True)
    for grade, min_score in rows:
        if total_score >= min_score:
            return grade
    return 0


# ═══════════════════════════════════════════════════════════════════════════
#  TEMPLATE
# ═══════════════════════════════════════════════════════════════════════════

class InspectionTemplate(db.Model):
    __tablename__ = "inspection_templates"

    id = db.Column(db.Integer, primary_key=True)
    section = db.Column(db.String(50), nullable=False)
    section_name = db.Column(db.String(200), nullable=False)
    section_order = db.Column(db.Integer, default=0)
    item_name = db.Column(db.String(300), nullable=False)
    item_description = db.Column(db.Text)
    item_order = db.Column(db.Integer, default=0)
    max_score = db.Column(db.Float, nullable=False, default=0)
    scoring_type = db.Column(db.String(30), default="checklist")
    # [{label, deduction, requires_quantity?, unit?}]
    checklist_items = db.Column(db.JSON, default=list)
    is_active = db.Column(db.Boolean, default=True)
    created_by = db.Column(db.String(36), db.ForeignKey("profiles.id", ondelete="SET NULL"))
    created_at = db.Column(db.DateTime, default=_utcnow)
    updated_at = db.Column(db.DateTime, default=_utcnow, onupdate=_utcnow)

    def to_dict(self):
        return {
            "id": self.id,
            "section": self.section,
            "section_name": self.section_name,
            "section_order": self.section_order,
            "item_name": self.item_name,
            "item_description": self.item_description,
            "item_order": self.item_order,
            "max_score": self.max_score,
            "scoring_type": self.scoring_type,
            "checklist_items": self.checklist_items or [],
            "is_active": self.is_active,
        }


# ═══════════════════════════════════════════════════════════════════════════
#  INSPECTION
# ═══════════════════════════════════════════════════════════════════════════

class InspectionMaster(db.Model):
    __tablename__ = "inspection_masters"

    id = db.Column(db.Integer, primary_key=True)
    store_id = db.Column(
        db.Integer, db.ForeignKey("stores.id", ondelete="CASCADE"), nullable=False
    )
    inspector_id = db.Column(db.String(36), db.ForeignKey("profiles.id", ondelete="SET NULL"))
    inspection_date = db.Column(db.Date, nullable=False)
    status = db.Column(db.String(20), nullable=False, default="draft")
    max_possible_score = db.Column(db.Float, default=BASE_SCORE)
    total_score = db.Column(db.Float)
    grade = db.Column(db.Integer)
    gps_latitude = db.Column(db.Float)
    gps_longitude = db.Column(db.Float)
    signature_photo_url = db.Column(db.Text)
    created_at = db.Column(db.DateTime, default=_utcnow)

    __table_args__ = (
        db.Index("ix_inspection_masters_store_id", "store_id"),
    )

    store = db.relationship("Store")
    results = db.relationship("InspectionResult", back_populates="inspection", lazy="dynamic")

    def to_dict(self, include_results=False):
        d = {
            "id": self.id,
            "store_id": self.store_id,
            "inspector_id": self.inspector_id,
            "inspection_date": self.inspection_date.isoformat() if self.inspection_date else None,
            "status": self.status,
            "max_possible_score": self.max_possible_score,
            "total_score": self.total_score,
            "grade": self.grade,
            "gps_latitude": self.gps_latitude,
            "gps_longitude": self.gps_longitude,
            "signature_photo_url": self.signature_photo_url,
            "created_at": self.created_at.isoformat() if self.created_at else None,
        }
        if self.store is not None:
            d["store"] = self.store.to_brief()
        if include_results:
            d["results"] = [r.to_dict() for r in self.results.order_by(InspectionResult.id)]
        return d


class InspectionResult(db.Model):
    __tablename__ = "inspection_results"

    id = db.Column(db.Integer, primary_key=True)
    inspection_id = db.Column(
        db.Integer, db.ForeignKey("inspection_masters.id"), nullable=False
    )
    template_id = db.Column(db.Integer, db.ForeignKey("inspection_templates.id"))
    max_score = db.Column(db.Float, default=0)
    given_score = db.Column(db.Float, default=0)
    deduction_amount = db.Column(db.Float, default=0)
    is_improvement = db.Column(db.Boolean, default=False)
    notes = db.Column(db.Text)
    selected_items = db.Column(db.JSON)
    quantities = db.Column(db.JSON)
    photo_urls = db.Column(db.JSON)
    created_at = db.Column(db.DateTime, default=_utcnow)

    __table_args__ = (
        db.Index("ix_inspection_results_inspection_id", "inspection_id"),
    )

    inspection = db.relationship("InspectionMaster", back_populates="results")

    def to_dict(self):
        return {
            "id": self.id,
            "inspection_id": self.inspection_id,
            "template_id": self.template_id,
            "max_score": self.max_score,
            "given_score": self.given_score,
            "deduction_amount": self.deduction_amount,
            "is_improvement": self.is_improvement,
            "notes": self.notes,
            "selected_items": self.selected_items or [],
            "quantities": self.quantities or {},
            "photo_urls": self.photo_urls,
        }


class InspectionGradeMapping(db.Model):
    __tablename__ = "inspection_grade_mapping"

    id = db.Column(db.Integer, primary_key=True)
    grade = db.Column(db.Integer, unique=True, nullable=False)
    min_score = db.Column(db.Float, nullable=False)
    updated_by = db.Column(db.String(36), db.ForeignKey("profiles.id", ondelete="SET NULL"))
    updated_at = db.Column(db.DateTime, default=_utcnow, onupdate=_utcnow)

    __table_args__ = (
        db.CheckConstraint("grade >= 0 AND grade <= 10", name="ck_inspection_grade_range"),
    )

    def to_dict(self):
        return {"id": self.id, "grade": self.grade, "min_score": self.min_score}
