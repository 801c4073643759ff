"""
Store models: Store, StoreManager.

StoreManager is the many-to-many assignment of people to stores. A row with
``role_type="store_manager"`` and ``is_primary=True`` is exclusive: one per
store and one per user, replaced wholesale on reassignment.
"""

from datetime import datetime, timezone

from storeops.models import db

STORE_ROLE_TYPES = ("supervisor", "store_manager")


def _utcnow():
    return datetime.now(timezone.utc)


class Store(db.Model):
    __tablename__ = "stores"

    id = db.Column(db.Integer, primary_key=True)
    store_code = db.Column(db.String(20), unique=True, nullable=False)
    store_name = db.Column(db.String(200), nullable=False)
    short_name = db.Column(db.String(100))
    hr_store_code = db.Column(db.String(20))
    manager_name = db.Column(db.String(100))
    address = db.Column(db.String(300))
    phone = db.Column(db.String(50))
    is_active = db.Column(db.Boolean, default=True)
    created_at = db.Column(db.DateTime, default=_utcnow)
    updated_at = db.Column(db.DateTime, default=_utcnow, onupdate=_utcnow)

    managers = db.relationship(
        "StoreManager", back_populates="store", lazy="dynamic", cascade="all, delete-orphan"
    )

    def to_dict(self):
        return {
            "id": self.id,
            "store_code": self.store_code,
            "store_name": self.store_name,
            "short_name": self.short_name,
            "hr_store_code": self.hr_store_code,
            "manager_name": self.manager_name,
            "address": self.address,
            "phone": self.phone,
            "is_active": self.is_active,
        }

    def to_brief(self):
        return {
            "id": self.id,
            "store_code": self.store_code,
            "store_name": self.store_name,
            "short_name": self.short_name,
        }


class StoreManager(db.Model):
    __tablename__ = "store_managers"

    id = db.Column(db.Integer, primary_key=True)
    user_id = db.Column(
        db.String(36), db.ForeignKey("profiles.id", ondelete="CASCADE"), nullable=False
    )
    store_id = db.Column(
        db.Integer, db.ForeignKey("stores.id", ondelete="CASCADE"), nullable=False
    )
    role_type = db.Column(db.String(20), nullable=False)  # supervisor, store_manager
    is_primary = db.Column(db.Boolean, default=False)
    created_at = db.Column(db.DateTime, default=_utcnow)

    __table_args__ = (
        db.UniqueConstraint("user_id", "store_id", "role_type", name="uq_store_manager"),
        db.Index("ix_store_managers_user_id", "user_id"),
        db.Index("ix_store_managers_store_id", "store_id"),
    )

    store = db.relationship("Store", back_populates="managers")
    profile = db.relationship("Profile")

    def to_dict(self):
        return {
            "id": self.id,
            "user_id": self.user_id,
            "store_id": self.store_id,
            "role_type": self.role_type,
            "is_primary": self.is_primary,
        }
