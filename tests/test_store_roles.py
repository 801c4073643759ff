"""
Store role tests: supervisor classification, store-manager exclusivity,
supervisor diffs and the managed-stores view.
"""

import pytest

from storeops.core.exceptions import NotFoundError, PermissionDeniedError, ValidationError
from storeops.models import db
from storeops.models.store import StoreManager
from storeops.services import policies, store_role_service


def _rows(user_id, n):
    return [{"user_id": user_id, "store_id": i} for i in range(n)]


# ═════════════════════════════════════════════════════════════════════════════
# Supervisor classification
# ═════════════════════════════════════════════════════════════════════════════


class TestClassifySupervisors:
    def test_thresholds_with_twenty_stores(self):
        rows = _rows("regular", 5) + _rows("area", 19) + _rows("tiny", 2)
        assert store_role_service.classify_supervisors(rows, 20) == {"regular"}

    def test_lower_bound_inclusive(self):
        assert store_role_service.classify_supervisors(_rows("u", 3), 20) == {"u"}

    def test_upper_bound_exclusive(self):
        # 0.9 * 20 = 18
        assert store_role_service.classify_supervisors(_rows("u", 18), 20) == set()
        assert store_role_service.classify_supervisors(_rows("u", 17), 20) == {"u"}

    def test_no_stores(self):
        assert store_role_service.classify_supervisors(_rows("u", 5), 0) == set()


class TestSupervisorFlags:
    def test_title_alone(self, make_profile):
        profile = make_profile(job_title="督導")
        assert policies.supervisor_flags(profile, []) == (True, False)

    def test_rows_alone(self, make_profile):
        profile = make_profile(job_title="專員")
        assert policies.supervisor_flags(profile, [{"role_type": "store_manager"}]) == (False, True)


class TestPolicies:
    def test_business_assistant(self, make_profile):
        assert policies.is_business_assistant(make_profile(department="營業一部"))
        assert not policies.is_business_assistant(make_profile(department="營業部", job_title="店長"))
        assert not policies.is_business_assistant(make_profile(department="財務部"))
        assert not policies.is_business_assistant(make_profile(role="manager", department="營業部"))

    def test_business_supervisor(self, make_profile):
        assert policies.is_business_supervisor(make_profile(role="manager", department="營業部"))
        assert not policies.is_business_supervisor(make_profile(department="營業部"))

    @pytest.mark.parametrize("title,expected", [
        ("區經理", True),
        ("代理店長", True),
        ("專員", False),
        (None, False),
    ])
    def test_store_manager_or_above(self, make_profile, title, expected):
        assert policies.is_store_manager_or_above(make_profile(job_title=title)) is expected

    def test_admin_is_store_manager_or_above(self, admin):
        assert policies.is_store_manager_or_above(admin)

    def test_authorize_raises_with_message(self, member):
        with pytest.raises(PermissionDeniedError, match="僅限管理員"):
            policies.authorize(member, policies.is_admin, "僅限管理員")
        policies.authorize(member, lambda p: True)


# ═════════════════════════════════════════════════════════════════════════════
# Store managers
# ═════════════════════════════════════════════════════════════════════════════


class TestStoreManagers:
    def test_assignment_is_exclusive(self, make_profile, make_store):
        first = make_profile(job_title="店長")
        second = make_profile(job_title="店長")
        store_a = make_store("A01")
        store_b = make_store("A02")

        store_role_service.assign_store_manager(first.id, store_a.id)
        db.session.commit()
        # moving the manager drops their old primary row
        store_role_service.assign_store_manager(first.id, store_b.id)
        db.session.commit()
        # a new manager replaces the store's old one
        store_role_service.assign_store_manager(second.id, store_b.id)
        db.session.commit()

        primary = StoreManager.query.filter_by(role_type="store_manager", is_primary=True).all()
        assert [(r.user_id, r.store_id) for r in primary] == [(second.id, store_b.id)]

    def test_none_store_clears(self, make_profile, make_store):
        user = make_profile(job_title="代理店長")
        store = make_store("A01")
        store_role_service.assign_store_manager(user.id, store.id)
        db.session.commit()
        assert store_role_service.assign_store_manager(user.id, None) is None
        db.session.commit()
        assert StoreManager.query.count() == 0

    def test_unknown_user(self, make_store):
        store = make_store("A01")
        with pytest.raises(NotFoundError):
            store_role_service.assign_store_manager("missing", store.id)

    def test_candidates_by_title(self, make_profile):
        make_profile(job_title="店長", full_name="甲")
        make_profile(job_title="代理店長", full_name="乙")
        make_profile(job_title="藥師", full_name="丙")
        names = [p.full_name for p in store_role_service.list_store_manager_candidates()]
        assert set(names) == {"甲", "乙"}

    def test_assign_requires_admin(self, client, auth_headers, manager, make_store):
        store = make_store("A01")
        res = client.post("/api/v1/store-managers/assign",
                          json={"userId": manager.id, "storeId": store.id},
                          headers=auth_headers(manager))
        assert res.status_code == 403
        assert StoreManager.query.count() == 0


# ═════════════════════════════════════════════════════════════════════════════
# Supervisors
# ═════════════════════════════════════════════════════════════════════════════


class TestSupervisorStores:
    def test_diff(self, make_profile, make_store):
        user = make_profile(job_title="督導")
        s1, s2, s3 = make_store("B01"), make_store("B02"), make_store("B03")
        store_role_service.assign_supervisor_stores(user.id, [s1.id, s2.id])
        db.session.commit()

        diff = store_role_service.assign_supervisor_stores(user.id, [str(s2.id), s3.id])
        db.session.commit()
        assert diff == {"added": [s3.id], "removed": [s1.id]}
        held = {r.store_id for r in StoreManager.query.filter_by(user_id=user.id)}
        assert held == {s2.id, s3.id}

    def test_store_ids_must_be_list(self, make_profile):
        user = make_profile(job_title="督導")
        with pytest.raises(ValidationError):
            store_role_service.assign_supervisor_stores(user.id, "1,2")

    def test_unknown_store_is_404(self, client, auth_headers, admin, make_profile, make_store):
        user = make_profile(job_title="督導")
        store = make_store("B01")
        res = client.post("/api/v1/supervisors/assign",
                          json={"userId": user.id, "storeIds": [store.id, 424242]},
                          headers=auth_headers(admin))
        assert res.status_code == 404
        assert "424242" in res.get_json()["error"]
        assert StoreManager.query.count() == 0

    def test_unknown_user(self, make_store):
        store = make_store("B01")
        with pytest.raises(NotFoundError):
            store_role_service.assign_supervisor_stores("missing", [store.id])

    def test_inactive_store_rows_not_counted(self, make_profile, make_store):
        supervisor = make_profile(job_title="督導")
        active = [make_store(f"F{i:02d}") for i in range(5)]
        closed = [make_store(f"X{i:02d}", is_active=False) for i in range(2)]
        # 1 active + 2 closed rows: only one row counts, below the minimum of 3
        store_role_service.assign_supervisor_stores(
            supervisor.id, [active[0].id] + [s.id for s in closed],
        )
        db.session.commit()
        listing = {row["store_code"]: row for row in store_role_service.list_stores_with_supervisors()}
        assert listing["F00"]["supervisor_id"] is None

    def test_stores_with_supervisors(self, make_profile, make_store):
        supervisor = make_profile(job_title="督導")
        stores = [make_store(f"C{i:02d}") for i in range(10)]
        store_role_service.assign_supervisor_stores(supervisor.id, [s.id for s in stores[:4]])
        db.session.commit()

        listing = {row["store_code"]: row for row in store_role_service.list_stores_with_supervisors()}
        assert listing["C00"]["supervisor_id"] == supervisor.id
        assert listing["C09"]["supervisor_id"] is None
        assert listing["C09"]["supervisors"] == []


class TestManagedStores:
    def test_admin_sees_all_active(self, admin, make_store):
        make_store("D01")
        make_store("D02", is_active=False)
        stores = store_role_service.get_managed_stores(admin)
        assert [s["store_code"] for s in stores] == ["D01"]
        assert stores[0]["role_type"] == "admin"

    def test_user_sees_own_rows(self, client, auth_headers, make_profile, make_store):
        user = make_profile(job_title="店長")
        make_store("E01")
        store = make_store("E02")
        store_role_service.assign_store_manager(user.id, store.id)
        db.session.commit()

        res = client.get("/api/v1/user/managed-stores", headers=auth_headers(user))
        body = res.get_json()
        assert res.status_code == 200
        assert [(s["store_code"], s["role_type"]) for s in body["stores"]] == [("E02", "store_manager")]
