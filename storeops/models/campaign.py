"""
Campaign scheduling models.

A Campaign is a promotion window; each participating store gets exactly one
CampaignSchedule (its activity date). EventDate rows mark chain-wide special
or blocked dates and StoreActivitySetting holds per-store weekday rules.
"""

from datetime import datetime, timezone

from storeops.models import db

PUBLISH_TYPES = {
    "supervisors": "published_to_supervisors",
    "store_managers": "published_to_store_managers",
}


def _utcnow():
    return datetime.now(timezone.utc)


class Campaign(db.Model):
    __tablename__ = "campaigns"

    id = db.Column(db.Integer, primary_key=True)
    name = db.Column(db.String(200), nullable=False)
    start_date = db.Column(db.Date, nullable=False)
    end_date = db.Column(db.Date, nullable=False)
    is_active = db.Column(db.Boolean, default=True)
    published_to_supervisors = db.Column(db.Boolean, default=False)
    published_to_store_managers = db.Column(db.Boolean, default=False)
    published_at = db.Column(db.DateTime)
    created_by = db.Column(db.String(36), db.ForeignKey("profiles.id", ondelete="SET NULL"))
    created_at = db.Column(db.DateTime, default=_utcnow)
    updated_at = db.Column(db.DateTime, default=_utcnow, onupdate=_utcnow)

    schedules = db.relationship(
        "CampaignSchedule", back_populates="campaign", lazy="dynamic", cascade="all, delete-orphan"
    )

    def to_dict(self):
        return {
            "id": self.id,
            "name": self.name,
            "start_date": self.start_date.isoformat() if self.start_date else None,
            "end_date": self.end_date.isoformat() if self.end_date else None,
            "is_active": self.is_active,
            "published_to_supervisors": bool(self.published_to_supervisors),
            "published_to_store_managers": bool(self.published_to_store_managers),
            "published_at": self.published_at.isoformat() if self.published_at else None,
            "created_by": self.created_by,
            "created_at": self.created_at.isoformat() if self.created_at else None,
        }


class CampaignSchedule(db.Model):
    __tablename__ = "campaign_schedules"

    id = db.Column(db.Integer, primary_key=True)
    campaign_id = db.Column(
        db.Integer, db.ForeignKey("campaigns.id", ondelete="CASCADE"), nullable=False
    )
    store_id = db.Column(
        db.Integer, db.ForeignKey("stores.id", ondelete="CASCADE"), nullable=False
    )
    activity_date = db.Column(db.Date, nullable=False)
    created_at = db.Column(db.DateTime, default=_utcnow)
    updated_at = db.Column(db.DateTime, default=_utcnow, onupdate=_utcnow)

    __table_args__ = (
        db.UniqueConstraint("campaign_id", "store_id", name="uq_campaign_schedule_store"),
    )

    campaign = db.relationship("Campaign", back_populates="schedules")
    store = db.relationship("Store")

    def to_dict(self, include_store=False):
        d = {
            "id": self.id,
            "campaign_id": self.campaign_id,
            "store_id": self.store_id,
            "activity_date": self.activity_date.isoformat() if self.activity_date else None,
        }
        if include_store and self.store is not None:
            d["store"] = self.store.to_brief()
        return d


class EventDate(db.Model):
    __tablename__ = "event_dates"

    id = db.Column(db.Integer, primary_key=True)
    event_date = db.Column(db.Date, unique=True, nullable=False)
    description = db.Column(db.Text)
    event_type = db.Column(db.String(50), nullable=False)
    is_blocked = db.Column(db.Boolean, default=False)
    created_at = db.Column(db.DateTime, default=_utcnow)
    updated_at = db.Column(db.DateTime, default=_utcnow, onupdate=_utcnow)

    def to_dict(self):
        return {
            "id": self.id,
            "event_date": self.event_date.isoformat() if self.event_date else None,
            "description": self.description,
            "event_type": self.event_type,
            "is_blocked": bool(self.is_blocked),
        }


class StoreActivitySetting(db.Model):
    __tablename__ = "store_activity_settings"

    id = db.Column(db.Integer, primary_key=True)
    store_id = db.Column(
        db.Integer, db.ForeignKey("stores.id", ondelete="CASCADE"), unique=True, nullable=False
    )
    allowed_days = db.Column(db.JSON)    # weekday numbers, 0 = Sunday
    forbidden_days = db.Column(db.JSON)
    notes = db.Column(db.Text)
    created_at = db.Column(db.DateTime, default=_utcnow)
    updated_at = db.Column(db.DateTime, default=_utcnow, onupdate=_utcnow)

    store = db.relationship("Store")

    def to_dict(self):
        d = {
            "id": self.id,
            "store_id": self.store_id,
            "allowed_days": self.allowed_days,
            "forbidden_days": self.forbidden_days,
            "notes": self.notes,
        }
        if self.store is not None:
            d["store"] = self.store.to_brief()
        return d
