"""Store master data — create, edit and clone/relocate.

Transaction policy: flush() only; the route handler commits.

Cloning creates a new store from an existing one. Optionally it also:
    copy_managers      supervisor rows are copied; the primary store-manager
                       row moves with the store only when the source is
                       deactivated (it is exclusive per user)
    copy_employees     active employees are re-homed to the new store
                       (an employee belongs to exactly one store)
    deactivate_source  the source store is marked inactive (a relocation)
"""
import logging

from storeops.core.exceptions import ConflictError, NotFoundError, ValidationError
from storeops.models import db
from storeops.models.staff import StoreEmployee
from storeops.models.store import Store, StoreManager

logger = logging.getLogger(__name__)

OPTIONAL_FIELDS = ("short_name", "hr_store_code", "manager_name", "address", "phone")


def _clean(value):
    if value is None:
        return None
    value = str(value).strip()
    return value or None


def get_store(store_id):
    store = db.session.get(Store, store_id)
    if store is None:
        raise NotFoundError("Store", store_id, message="找不到門市")
    return store


def _ensure_code_free(store_code):
    if Store.query.filter_by(store_code=store_code).first() is not None:
        raise ConflictError("Store", "store_code", store_code, message=f"門市代號 {store_code} 已存在")


def create_store(data):
    store_code = _clean(data.get("store_code"))
    store_name = _clean(data.get("store_name"))
    if not store_code or not store_name:
        raise ValidationError(
            "請填寫門市代號與名稱",
            details={"store_code": "required", "store_name": "required"},
        )
    _ensure_code_free(store_code)

    store = Store(
        store_code=store_code,
        store_name=store_name,
        is_active=True,
        **{field: _clean(data.get(field)) for field in OPTIONAL_FIELDS},
    )
    db.session.add(store)
    db.session.flush()
    logger.info("Store %s created (%s)", store.id, store_code)
    return store


def update_store(store_id, data):
    """Edit a store; ``store_code`` is immutable."""
    store = get_store(store_id)
    if "store_name" in data:
        name = _clean(data.get("store_name"))
        if not name:
            raise ValidationError("請填寫門市名稱", details={"store_name": "required"})
        store.store_name = name
    for field in OPTIONAL_FIELDS:
        if field in data:
            setattr(store, field, _clean(data[field]))
    if "is_active" in data:
        store.is_active = bool(data["is_active"])
    db.session.flush()
    logger.info("Store %s updated", store_id)
    return store


def clone_store(source_id, data):
    """Returns ``(new_store, copied_managers, copied_employees)``."""
    source = get_store(source_id)
    new_store = create_store({
        "store_code": data.get("new_store_code"),
        "store_name": data.get("new_store_name"),
        **{field: data.get(f"new_{field}") for field in OPTIONAL_FIELDS},
    })
    deactivate_source = bool(data.get("deactivate_source"))

    copied_managers = 0
    if data.get("copy_managers"):
        for row in StoreManager.query.filter_by(store_id=source.id).all():
            if row.role_type == "supervisor":
                db.session.add(StoreManager(
                    user_id=row.user_id, store_id=new_store.id,
                    role_type="supervisor", is_primary=False,
                ))
                copied_managers += 1
            elif deactivate_source:
                row.store_id = new_store.id
                copied_managers += 1

    copied_employees = 0
    if data.get("copy_employees"):
        copied_employees = (
            StoreEmployee.query
            .filter_by(store_id=source.id)
            .filter(StoreEmployee.is_active.is_(True))
            .update({"store_id": new_store.id}, synchronize_session="fetch")
        )

    if deactivate_source:
        source.is_active = False

    db.session.flush()
    logger.info(
        "Store %s cloned to %s (managers=%d employees=%d relocated=%s)",
        source.store_code, new_store.store_code, copied_managers, copied_employees,
        deactivate_source,
    )
    return new_store, copied_managers, copied_employees


def list_store_employees(store_id):
    get_store(store_id)
    return (
        StoreEmployee.query
        .filter_by(store_id=store_id)
        .filter(StoreEmployee.is_active.is_(True))
        .order_by(StoreEmployee.employee_code)
        .all()
    )
