"""
Campaign tests: publish gating by role, schedules, event dates and
store activity settings.
"""

from datetime import date

import pytest

from storeops.core.exceptions import PermissionDeniedError, ValidationError
from storeops.models import db
from storeops.models.campaign import CampaignSchedule
from storeops.services import campaign_service


def _campaign(actor, name="春季促銷", supervisors=False, store_managers=False):
    campaign = campaign_service.create_campaign(actor, {
        "name": name, "start_date": "2024-03-01", "end_date": "2024-03-31",
    })
    campaign.published_to_supervisors = supervisors
    campaign.published_to_store_managers = store_managers
    db.session.commit()
    return campaign


# ═════════════════════════════════════════════════════════════════════════════
# Campaign CRUD
# ═════════════════════════════════════════════════════════════════════════════


class TestCampaigns:
    def test_end_before_start(self, admin):
        with pytest.raises(ValidationError):
            campaign_service.create_campaign(admin, {
                "name": "x", "start_date": "2024-03-31", "end_date": "2024-03-01",
            })

    def test_publish_stamps_time(self, admin):
        campaign = _campaign(admin)
        campaign_service.publish_campaign(campaign.id, "store_managers", True)
        db.session.commit()
        assert campaign.published_to_store_managers is True
        assert campaign.published_at is not None

    def test_publish_type_validated(self, admin):
        campaign = _campaign(admin)
        with pytest.raises(ValidationError):
            campaign_service.publish_campaign(campaign.id, "everyone", True)

    @pytest.mark.parametrize("status", ["false", "true", 1, None])
    def test_publish_status_must_be_bool(self, admin, status):
        campaign = _campaign(admin)
        with pytest.raises(ValidationError):
            campaign_service.publish_campaign(campaign.id, "supervisors", status)
        assert campaign.published_to_supervisors is False

    def test_unpublish(self, admin):
        campaign = _campaign(admin, supervisors=True)
        campaign_service.publish_campaign(campaign.id, "supervisors", False)
        db.session.commit()
        assert campaign.published_to_supervisors is False

    def test_member_cannot_create(self, client, auth_headers, member):
        res = client.post("/api/v1/campaigns", json={
            "name": "x", "start_date": "2024-03-01", "end_date": "2024-03-02",
        }, headers=auth_headers(member))
        assert res.status_code == 403

    def test_manager_publish_via_api(self, client, auth_headers, manager):
        campaign = _campaign(manager)
        res = client.patch("/api/v1/campaigns/publish", json={
            "campaignId": campaign.id, "publishType": "supervisors", "status": True,
        }, headers=auth_headers(manager))
        assert res.status_code == 200
        assert res.get_json()["campaign"]["published_to_supervisors"] is True


# ═════════════════════════════════════════════════════════════════════════════
# Visibility
# ═════════════════════════════════════════════════════════════════════════════


class TestVisibility:
    @pytest.fixture()
    def campaigns(self, admin):
        return {
            "draft": _campaign(admin, "草稿"),
            "sup": _campaign(admin, "督導限定", supervisors=True),
            "sm": _campaign(admin, "店長公告", store_managers=True),
        }

    def test_admin_sees_all(self, admin, campaigns):
        rows, role = campaign_service.list_published(admin)
        assert role == "admin"
        assert len(rows) == 3

    def test_supervisor_sees_supervisor_flag(self, make_profile, campaigns):
        supervisor = make_profile(job_title="督導")
        rows, role = campaign_service.list_published(supervisor)
        assert role == "supervisor"
        assert [c.name for c in rows] == ["督導限定"]

    def test_store_manager_sees_store_manager_flag(self, make_profile, campaigns):
        store_manager = make_profile(job_title="店長")
        rows, role = campaign_service.list_published(store_manager)
        assert role == "store_manager"
        assert [c.name for c in rows] == ["店長公告"]

    def test_unrelated_user_sees_nothing(self, member, campaigns):
        assert campaign_service.list_published(member) == ([], None)

    def test_view_gating(self, make_profile, campaigns):
        store_manager = make_profile(job_title="店長")
        supervisor = make_profile(job_title="督導")
        with pytest.raises(PermissionDeniedError):
            campaign_service.view_campaign(store_manager, campaigns["sup"].id)
        with pytest.raises(PermissionDeniedError):
            campaign_service.view_campaign(supervisor, campaigns["draft"].id)
        view = campaign_service.view_campaign(supervisor, campaigns["sm"].id)
        assert view["isSupervisor"] is True
        assert view["schedules"] == []

    def test_published_endpoint(self, client, auth_headers, make_profile, campaigns):
        store_manager = make_profile(job_title="代理店長")
        res = client.get("/api/v1/campaigns/published", headers=auth_headers(store_manager))
        body = res.get_json()
        assert body["role"] == "store_manager"
        assert [c["name"] for c in body["campaigns"]] == ["店長公告"]


# ═════════════════════════════════════════════════════════════════════════════
# Schedules, event dates, settings
# ═════════════════════════════════════════════════════════════════════════════


class TestSchedules:
    def test_upsert_is_one_per_store(self, admin, make_store):
        campaign = _campaign(admin)
        store = make_store("A01")
        campaign_service.upsert_schedule({
            "campaign_id": campaign.id, "store_id": store.id, "activity_date": "2024-03-05",
        })
        campaign_service.upsert_schedule({
            "campaign_id": campaign.id, "store_id": store.id, "activity_date": "2024-03-09",
        })
        db.session.commit()
        rows = CampaignSchedule.query.all()
        assert len(rows) == 1
        assert rows[0].activity_date == date(2024, 3, 9)

    def test_replace(self, admin, make_store):
        campaign = _campaign(admin)
        a, b = make_store("A01"), make_store("A02")
        campaign_service.upsert_schedule({
            "campaign_id": campaign.id, "store_id": a.id, "activity_date": "2024-03-05",
        })
        campaign_service.replace_schedules(campaign.id, [
            {"store_id": b.id, "activity_date": "2024-03-10"},
        ])
        db.session.commit()
        assert [s.store_id for s in campaign_service.list_schedules(campaign.id)] == [b.id]

    def test_replace_rejects_bad_item(self, admin):
        campaign = _campaign(admin)
        with pytest.raises(ValidationError):
            campaign_service.replace_schedules(campaign.id, [{"store_id": 1}])


class TestEventDatesAndSettings:
    def test_event_date_upsert(self):
        campaign_service.upsert_event_date({"event_date": "2024-04-04", "event_type": "holiday"})
        campaign_service.upsert_event_date({
            "event_date": "2024-04-04", "event_type": "blackout", "is_blocked": True,
        })
        db.session.commit()
        events = campaign_service.list_event_dates()
        assert len(events) == 1
        assert events[0].event_type == "blackout"
        assert events[0].is_blocked is True

    def test_activity_setting_upsert(self, make_store):
        store = make_store("A01")
        campaign_service.upsert_activity_setting({"store_id": store.id, "allowed_days": [6, 0]})
        campaign_service.upsert_activity_setting({"store_id": store.id, "forbidden_days": [1]})
        db.session.commit()
        settings = campaign_service.list_activity_settings()
        assert len(settings) == 1
        assert settings[0].allowed_days == []
        assert settings[0].forbidden_days == [1]
