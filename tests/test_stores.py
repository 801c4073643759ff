"""
Store master data tests: create, edit, clone/relocate and the employee list.
"""

import pytest

from storeops.core.exceptions import ConflictError, NotFoundError, ValidationError
from storeops.models import db
from storeops.models.staff import StoreEmployee
from storeops.models.store import Store, StoreManager
from storeops.services import store_role_service, store_service


def _employee(store, code, is_active=True):
    emp = StoreEmployee(employee_code=code, employee_name=f"員工{code}",
                        store_id=store.id, is_active=is_active)
    db.session.add(emp)
    db.session.commit()
    return emp


# ═════════════════════════════════════════════════════════════════════════════
# Create / edit
# ═════════════════════════════════════════════════════════════════════════════


class TestCreateStore:
    def test_create(self, client, auth_headers, admin):
        res = client.post("/api/v1/stores", json={
            "store_code": " A10 ", "store_name": "新店", "address": "台北市", "phone": "",
        }, headers=auth_headers(admin))
        assert res.status_code == 201
        store = res.get_json()["store"]
        assert store["store_code"] == "A10"
        assert store["address"] == "台北市"
        assert store["phone"] is None
        assert store["is_active"] is True

    def test_required_fields(self):
        with pytest.raises(ValidationError):
            store_service.create_store({"store_code": "A10", "store_name": "  "})

    def test_duplicate_code(self, make_store):
        make_store("A10")
        with pytest.raises(ConflictError):
            store_service.create_store({"store_code": "A10", "store_name": "重複"})

    def test_requires_admin(self, client, auth_headers, manager):
        res = client.post("/api/v1/stores", json={"store_code": "A10", "store_name": "新店"},
                          headers=auth_headers(manager))
        assert res.status_code == 403
        assert Store.query.count() == 0


class TestUpdateStore:
    def test_update(self, client, auth_headers, admin, make_store):
        store = make_store("A01")
        res = client.put(f"/api/v1/stores/{store.id}", json={
            "store_name": "改名店", "manager_name": "王店長", "is_active": False,
            "store_code": "ZZZ",
        }, headers=auth_headers(admin))
        assert res.status_code == 200
        body = res.get_json()["store"]
        assert body["store_name"] == "改名店"
        assert body["manager_name"] == "王店長"
        assert body["is_active"] is False
        assert body["store_code"] == "A01"

    def test_blank_name_rejected(self, make_store):
        store = make_store("A01")
        with pytest.raises(ValidationError):
            store_service.update_store(store.id, {"store_name": ""})

    def test_unknown_store(self, client, auth_headers, admin):
        res = client.put("/api/v1/stores/999", json={"store_name": "x"},
                         headers=auth_headers(admin))
        assert res.status_code == 404


# ═════════════════════════════════════════════════════════════════════════════
# Clone / relocate
# ═════════════════════════════════════════════════════════════════════════════


class TestCloneStore:
    @pytest.fixture()
    def source(self, make_profile, make_store):
        store = make_store("A01")
        supervisor = make_profile(job_title="督導")
        store_manager = make_profile(job_title="店長")
        store_role_service.assign_supervisor_stores(supervisor.id, [store.id])
        store_role_service.assign_store_manager(store_manager.id, store.id)
        db.session.commit()
        _employee(store, "E1")
        _employee(store, "E2")
        _employee(store, "E3", is_active=False)
        return store

    def test_plain_clone(self, source):
        store, managers, employees = store_service.clone_store(source.id, {
            "new_store_code": "A01N", "new_store_name": "新址",
        })
        db.session.commit()
        assert (managers, employees) == (0, 0)
        assert store.store_code == "A01N"
        assert source.is_active is True
        assert StoreManager.query.filter_by(store_id=store.id).count() == 0

    def test_copy_keeps_primary_manager_on_source(self, source):
        store, managers, employees = store_service.clone_store(source.id, {
            "new_store_code": "A01N", "new_store_name": "新址",
            "copy_managers": True, "copy_employees": True,
        })
        db.session.commit()
        assert (managers, employees) == (1, 2)
        roles = [r.role_type for r in StoreManager.query.filter_by(store_id=store.id)]
        assert roles == ["supervisor"]
        assert StoreManager.query.filter_by(store_id=source.id, role_type="store_manager").count() == 1
        moved = {e.employee_code for e in StoreEmployee.query.filter_by(store_id=store.id)}
        assert moved == {"E1", "E2"}

    def test_relocation(self, client, auth_headers, admin, source):
        res = client.post(f"/api/v1/stores/{source.id}/clone", json={
            "new_store_code": "A01N", "new_store_name": "新址",
            "copy_managers": True, "deactivate_source": True,
        }, headers=auth_headers(admin))
        assert res.status_code == 201
        body = res.get_json()
        assert body["copied_managers"] == 2
        assert body["copied_employees"] == 0

        new_id = body["store"]["id"]
        db.session.refresh(source)
        assert source.is_active is False
        roles = sorted(r.role_type for r in StoreManager.query.filter_by(store_id=new_id))
        assert roles == ["store_manager", "supervisor"]
        assert StoreManager.query.filter_by(store_id=source.id, role_type="store_manager").count() == 0

    def test_new_code_must_be_free(self, source):
        with pytest.raises(ConflictError):
            store_service.clone_store(source.id, {
                "new_store_code": "A01", "new_store_name": "新址",
            })

    def test_unknown_source(self):
        with pytest.raises(NotFoundError):
            store_service.clone_store(999, {"new_store_code": "B01", "new_store_name": "x"})


class TestStoreEmployees:
    def test_active_only(self, client, auth_headers, member, make_store):
        store = make_store("A01")
        _employee(store, "E2")
        _employee(store, "E1")
        _employee(store, "E3", is_active=False)
        res = client.get(f"/api/v1/stores/{store.id}/employees", headers=auth_headers(member))
        assert res.status_code == 200
        assert [e["employee_code"] for e in res.get_json()["employees"]] == ["E1", "E2"]
