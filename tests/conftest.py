"""
Shared pytest fixtures for the Store Operations Platform test suite.

Provides:
    - app: Flask application (session-scoped)
    - _setup_db: Database table creation/teardown (session-scoped)
    - session: Per-test DB cleanup w/ rollback + recreate (autouse)
    - client: Flask test client (function-scoped)
    - make_profile / auth_headers: users and signed bearer tokens
    - grant: RBAC permission grants for a profile
    - make_store: Store rows
"""

import uuid

import pytest

from storeops import create_app
from storeops.models import db as _db
from storeops.models.profile import Profile
from storeops.models.rbac import Permission, Role, RolePermission, UserRole
from storeops.models.store import Store
from storeops.services.jwt_service import generate_access_token
from storeops.services.permission_service import invalidate_all_cache


# ── App & DB fixtures ────────────────────────────────────────────────────


@pytest.fixture(scope="session")
def app():
    """Create the Flask application once per test session."""
    return create_app("testing")


@pytest.fixture(scope="session")
def _setup_db(app):
    """Create all tables at session start, drop at end."""
    with app.app_context():
        _db.create_all()
    yield
    with app.app_context():
        _db.drop_all()


@pytest.fixture(autouse=True)
def session(app, _setup_db):
    """Per-test: open app context, rollback after test, recreate tables."""
    with app.app_context():
        # Ids are reused across tests; stale permission sets would leak.
        invalidate_all_cache()
        yield
        invalidate_all_cache()
        _db.session.rollback()
        _db.drop_all()
        _db.create_all()


@pytest.fixture()
def client(app):
    """Flask test client."""
    return app.test_client()


# ── Users & tokens ───────────────────────────────────────────────────────


@pytest.fixture()
def make_profile():
    """Factory: create and commit a Profile."""
    counter = {"n": 0}

    def _make(role="member", job_title=None, department=None, employee_code=None,
              full_name=None, email=None):
        counter["n"] += 1
        n = counter["n"]
        profile = Profile(
            id=str(uuid.uuid4()),
            email=email or f"user{n}@example.com",
            full_name=full_name or f"User {n}",
            role=role,
            department=department,
            job_title=job_title,
            employee_code=employee_code,
        )
        _db.session.add(profile)
        _db.session.commit()
        return profile

    return _make


@pytest.fixture()
def auth_headers():
    """Return ``Authorization: Bearer`` headers for a profile."""
    def _headers(profile):
        token = generate_access_token(profile.id, profile.email)
        return {"Authorization": f"Bearer {token}"}

    return _headers


@pytest.fixture()
def admin(make_profile):
    return make_profile(role="admin", full_name="Admin", department="資訊部")


@pytest.fixture()
def manager(make_profile):
    return make_profile(role="manager", full_name="Manager", department="營業部")


@pytest.fixture()
def member(make_profile):
    return make_profile(role="member", full_name="Member", department="營業部")


@pytest.fixture()
def grant():
    """Grant RBAC permission keys to a profile through a dedicated role."""
    def _grant(profile, *codes, role_code=None):
        role = Role(
            name=role_code or f"role-{profile.id[:8]}",
            code=role_code or f"role_{uuid.uuid4().hex[:8]}",
            is_active=True,
        )
        _db.session.add(role)
        _db.session.flush()
        for code in codes:
            perm = Permission.query.filter_by(code=code).first()
            if perm is None:
                module, feature, action = code.split(".")
                perm = Permission(module=module, feature=feature, action=action, code=code)
                _db.session.add(perm)
                _db.session.flush()
            _db.session.add(RolePermission(role_id=role.id, permission_id=perm.id, is_allowed=True))
        _db.session.add(UserRole(user_id=profile.id, role_id=role.id, is_active=True))
        _db.session.commit()
        invalidate_all_cache()
        return role

    return _grant


@pytest.fixture()
def make_store():
    """Factory: create and commit a Store."""
    def _make(store_code, store_name=None, is_active=True):
        store = Store(store_code=store_code, store_name=store_name or f"門市{store_code}",
                      is_active=is_active)
        _db.session.add(store)
        _db.session.commit()
        return store

    return _make
