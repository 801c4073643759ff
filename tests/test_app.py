"""
App-level tests: health, error envelopes, authentication and the user
management endpoints.
"""

import json
import logging

from flask import g

from storeops.middleware.logging_config import JSONFormatter, RequestContextFilter, TextFormatter
from storeops.models import db
from storeops.models.workflow import Template
from storeops.services import supabase_admin, user_service


# ═════════════════════════════════════════════════════════════════════════════
# App wiring
# ═════════════════════════════════════════════════════════════════════════════


class TestApp:
    def test_health(self, client):
        res = client.get("/api/v1/health")
        assert res.status_code == 200
        assert res.get_json() == {"status": "ok"}

    def test_unknown_api_path_is_json_404(self, client):
        res = client.get("/api/v1/does-not-exist")
        assert res.status_code == 404
        body = res.get_json()
        assert body["success"] is False
        assert body["path"] == "/api/v1/does-not-exist"

    def test_method_not_allowed(self, client):
        res = client.patch("/api/v1/health")
        assert res.status_code == 405

    def test_unauthenticated_write_creates_nothing(self, client):
        res = client.post("/api/v1/templates", json={"title": "x", "steps_schema": []})
        assert res.status_code == 401
        assert Template.query.count() == 0

    def test_invalid_token_is_401(self, client):
        res = client.get("/api/v1/dashboard", headers={"Authorization": "Bearer not-a-jwt"})
        assert res.status_code == 401

    def test_token_without_profile_is_403(self, client, auth_headers, make_profile):
        ghost = make_profile()
        headers = auth_headers(ghost)
        db.session.delete(ghost)
        db.session.commit()
        res = client.get("/api/v1/dashboard", headers=headers)
        assert res.status_code == 403

    def test_service_error_envelope(self, client, auth_headers, member):
        res = client.get("/api/v1/assignments/missing", headers=auth_headers(member))
        assert res.status_code == 404
        assert res.get_json()["error"] == "任務不存在"


# ═════════════════════════════════════════════════════════════════════════════
# Users
# ═════════════════════════════════════════════════════════════════════════════


class TestUsers:
    def test_profile(self, client, auth_headers, member):
        res = client.get("/api/v1/user/profile", headers=auth_headers(member))
        assert res.status_code == 200
        assert res.get_json()["profile"]["id"] == member.id

    def test_search_min_length(self, make_profile):
        make_profile(employee_code="A123", full_name="王大同")
        assert user_service.search_users("a") == []
        assert [u["employee_code"] for u in user_service.search_users("a12")] == ["A123"]

    def test_departments(self, admin, manager, member):
        assert user_service.list_departments() == ["營業部", "資訊部"]

    def test_list_users_admin_only(self, client, auth_headers, admin, member):
        assert client.get("/api/v1/users", headers=auth_headers(member)).status_code == 403
        res = client.get("/api/v1/users?limit=1", headers=auth_headers(admin))
        body = res.get_json()
        assert body["total"] == 2
        assert len(body["users"]) == 1

    def test_update_user(self, client, auth_headers, admin, member):
        res = client.put(f"/api/v1/users/{member.id}",
                         json={"role": "manager", "employee_code": " e55 "},
                         headers=auth_headers(admin))
        assert res.status_code == 200
        assert member.role == "manager"
        assert member.employee_code == "E55"

    def test_update_user_invalid_role(self, client, auth_headers, admin, member):
        res = client.put(f"/api/v1/users/{member.id}", json={"role": "owner"},
                         headers=auth_headers(admin))
        assert res.status_code == 400

    def test_reset_password(self, client, auth_headers, admin, member, monkeypatch):
        calls = []
        monkeypatch.setattr(supabase_admin, "update_user_password",
                            lambda uid, pw: calls.append((uid, pw)))
        res = client.post("/api/v1/admin/reset-password",
                          json={"userId": member.id, "newPassword": "secret1"},
                          headers=auth_headers(admin))
        assert res.status_code == 200
        assert calls == [(member.id, "secret1")]

    def test_reset_password_too_short(self, client, auth_headers, admin, member):
        res = client.post("/api/v1/admin/reset-password",
                          json={"userId": member.id, "newPassword": "123"},
                          headers=auth_headers(admin))
        assert res.status_code == 400


# ═════════════════════════════════════════════════════════════════════════════
# Logging
# ═════════════════════════════════════════════════════════════════════════════


def _record(msg="hello", **extra):
    record = logging.LogRecord("storeops.services.x", logging.INFO, __file__, 1, msg, (), None)
    for key, value in extra.items():
        setattr(record, key, value)
    return record


class TestLogging:
    def test_request_context_stamped(self, app):
        with app.test_request_context("/api/v1/stores"):
            g.request_id = "abc123"
            g.user_id = "user-1"
            record = _record()
            RequestContextFilter().filter(record)
        entry = json.loads(JSONFormatter().format(record))
        assert entry["request_id"] == "abc123"
        assert entry["user_id"] == "user-1"
        assert entry["msg"] == "hello"

    def test_outside_request(self):
        record = _record(store_id=7)
        RequestContextFilter().filter(record)
        entry = json.loads(JSONFormatter().format(record))
        assert "request_id" not in entry
        assert entry["store_id"] == 7

    def test_text_format_shows_request_and_duration(self):
        record = _record(request_id="abc123", user_id="0123456789", duration_ms=12.4)
        RequestContextFilter().filter(record)
        line = TextFormatter().format(record)
        assert "[abc123 01234567]" in line
        assert line.endswith("hello (12ms)")
