"""Store role service — who supervises or manages which store.

Transaction policy: flush() only; the route handler commits.

Two kinds of StoreManager rows exist:
    supervisor     — many stores per user, never primary
    store_manager  — the primary row is exclusive per user and per store
"""
import logging
from collections import Counter

from storeops.core.exceptions import NotFoundError, ValidationError
from storeops.models import db
from storeops.models.profile import Profile
from storeops.models.store import Store, StoreManager
from storeops.services import policies

logger = logging.getLogger(__name__)

# A supervisor row-holder covering at least this many stores...
SUPERVISOR_MIN_STORES = 3
# ...but fewer than this share of all stores (above that it is an admin/area account)
SUPERVISOR_MAX_SHARE = 0.9


def classify_supervisors(assignment_rows, total_stores) -> set[str]:
    """
    Users whose supervisor row count ``n`` satisfies
    ``3 <= n < 0.9 * total_stores``.

    Known approximation: a real supervisor of very few stores, or one who
    covers nearly the whole chain, is not recognised.
    """
    def _user(row):
        return row.get("user_id") if isinstance(row, dict) else row.user_id

    counts = Counter(_user(row) for row in assignment_rows)
    limit = SUPERVISOR_MAX_SHARE * total_stores
    return {
        user_id for user_id, n in counts.items()
        if SUPERVISOR_MIN_STORES <= n < limit
    }


def _active_stores():
    return Store.query.filter(Store.is_active.is_(True)).order_by(Store.store_code).all()


def list_stores(include_inactive=False):
    query = Store.query.order_by(Store.store_code)
    if not include_inactive:
        query = query.filter(Store.is_active.is_(True))
    return query.all()


def list_stores_with_supervisors():
    stores = _active_stores()
    active_ids = {s.id for s in stores}
    supervisor_rows = [
        row for row in StoreManager.query.filter_by(role_type="supervisor")
        if row.store_id in active_ids
    ]
    qualified = classify_supervisors(supervisor_rows, len(stores))

    by_store = {}
    for row in supervisor_rows:
        if row.user_id in qualified:
            by_store.setdefault(row.store_id, []).append(row.user_id)

    primary = {
        row.store_id: row.user_id
        for row in StoreManager.query.filter_by(role_type="store_manager", is_primary=True)
    }
    profiles = {
        p.id: p for p in Profile.query.filter(
            Profile.id.in_(set(qualified) | set(primary.values()))
        ).all()
    } if (qualified or primary) else {}

    result = []
    for store in stores:
        supervisors = sorted(by_store.get(store.id, []))
        data = store.to_brief()
        data["supervisor_id"] = supervisors[0] if supervisors else None
        data["supervisors"] = [
            profiles[uid].to_brief() for uid in supervisors if uid in profiles
        ]
        manager_id = primary.get(store.id)
        data["store_manager"] = profiles[manager_id].to_brief() if manager_id in profiles else None
        result.append(data)
    return result


# ═══════════════════════════════════════════════════════════════════════════
#  STORE MANAGERS
# ═══════════════════════════════════════════════════════════════════════════


def list_store_manager_candidates():
    profiles = (
        Profile.query.filter(Profile.job_title.isnot(None))
        .order_by(Profile.full_name)
        .all()
    )
    return [p for p in profiles if policies.is_store_manager_candidate(p)]


def list_stores_for_assignment():
    return _active_stores()


def list_store_manager_assignments():
    rows = StoreManager.query.filter_by(role_type="store_manager", is_primary=True).all()
    result = []
    for row in rows:
        profile = row.profile
        result.append({
            "store_id": row.store_id,
            "user_id": row.user_id,
            "user_name": profile.full_name if profile and profile.full_name else "未知",
            "employee_code": profile.employee_code if profile else None,
        })
    return result


def _primary_manager_rows():
    return StoreManager.query.filter_by(role_type="store_manager", is_primary=True)


def assign_store_manager(user_id, store_id):
    """Make ``user_id`` the sole primary store manager of ``store_id``.

    ``store_id=None`` only removes the user's current primary assignment.
    The user's old primary rows and the store's old primary rows are
    replaced, never merged.
    """
    if not user_id:
        raise ValidationError("缺少使用者 ID", details={"userId": "required"})
    if db.session.get(Profile, user_id) is None:
        raise NotFoundError("Profile", user_id, message="找不到使用者")

    _primary_manager_rows().filter(StoreManager.user_id == user_id).delete()
    if store_id is None:
        db.session.flush()
        logger.info("Primary store manager assignment removed for %s", user_id)
        return None

    if db.session.get(Store, store_id) is None:
        raise NotFoundError("Store", store_id, message="找不到門市")

    _primary_manager_rows().filter(StoreManager.store_id == store_id).delete()
    row = StoreManager(
        user_id=user_id, store_id=store_id, role_type="store_manager", is_primary=True,
    )
    db.session.add(row)
    db.session.flush()
    logger.info("User %s assigned as store manager of store %s", user_id, store_id)
    return row


# ═══════════════════════════════════════════════════════════════════════════
#  SUPERVISORS
# ═══════════════════════════════════════════════════════════════════════════


def list_supervisor_candidates():
    profiles = (
        Profile.query.filter(Profile.job_title.isnot(None))
        .order_by(Profile.full_name)
        .all()
    )
    return [p for p in profiles if policies.has_manager_title(p)]


def list_supervisor_assignments():
    return [
        {"user_id": r.user_id, "store_id": r.store_id, "role_type": r.role_type}
        for r in StoreManager.query.order_by(StoreManager.id).all()
    ]


def assign_supervisor_stores(user_id, store_ids):
    """Diff the user's supervisor rows against ``store_ids``.

    Returns ``{"added": [...], "removed": [...]}``.
    """
    if not user_id or not isinstance(store_ids, list):
        raise ValidationError("缺少必要參數", details={"storeIds": "must be a list"})
    try:
        wanted = {int(sid) for sid in store_ids}
    except (TypeError, ValueError):
        raise ValidationError("門市 ID 格式錯誤", details={"storeIds": "integers expected"}) from None
    if db.session.get(Profile, user_id) is None:
        raise NotFoundError("Profile", user_id, message="找不到使用者")
    if wanted:
        found = {sid for (sid,) in db.session.query(Store.id).filter(Store.id.in_(wanted))}
        missing = sorted(wanted - found)
        if missing:
            ids = ", ".join(str(sid) for sid in missing)
            raise NotFoundError("Store", ids, message=f"找不到門市：{ids}")

    existing = StoreManager.query.filter_by(user_id=user_id, role_type="supervisor").all()
    existing_ids = {row.store_id for row in existing}

    removed = []
    for row in existing:
        if row.store_id not in wanted:
            removed.append(row.store_id)
            db.session.delete(row)

    added = sorted(wanted - existing_ids)
    for store_id in added:
        db.session.add(StoreManager(
            user_id=user_id, store_id=store_id, role_type="supervisor", is_primary=False,
        ))
    db.session.flush()
    logger.info(
        "Supervisor %s stores updated: +%d -%d", user_id, len(added), len(removed),
    )
    return {"added": added, "removed": sorted(removed)}


def get_managed_stores(profile):
    """Stores the user runs, each with the role under which it is managed."""
    if policies.is_admin(profile):
        return [{**s.to_brief(), "role_type": "admin"} for s in _active_stores()]
    rows = (
        StoreManager.query.filter_by(user_id=profile.id)
        .join(Store, Store.id == StoreManager.store_id)
        .order_by(Store.store_code)
        .all()
    )
    return [{**row.store.to_brief(), "role_type": row.role_type} for row in rows]


def managed_rows(user_id):
    return StoreManager.query.filter_by(user_id=user_id).all()
