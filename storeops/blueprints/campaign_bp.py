"""
Campaign Blueprint — campaigns, per-store schedules, event dates and store settings.

Endpoints:
  GET    /api/v1/campaigns                        — All campaigns
  POST   /api/v1/campaigns                        — Create (admin/manager)
  PUT    /api/v1/campaigns                        — Update (admin/manager)
  DELETE /api/v1/campaigns?id=                    — Delete (admin/manager)
  PATCH  /api/v1/campaigns/publish                — Toggle a publish flag (admin/manager)
  GET    /api/v1/campaigns/published              — Campaigns visible to the caller
  GET    /api/v1/campaigns/:id/view               — Campaign with schedules, publish-gated
  GET    /api/v1/campaign-schedules?campaign_id=  — Schedules of a campaign
  POST   /api/v1/campaign-schedules               — Upsert on (campaign, store)
  PUT    /api/v1/campaign-schedules               — Replace a campaign's schedules
  DELETE /api/v1/campaign-schedules/:id           — Delete a schedule
  GET    /api/v1/event-dates                      — Event calendar
  POST   /api/v1/event-dates                      — Upsert on date (admin/manager)
  DELETE /api/v1/event-dates/:id                  — Delete (admin/manager)
  GET    /api/v1/store-activity-settings          — Per-store allowed/forbidden days
  POST   /api/v1/store-activity-settings          — Upsert on store (admin/manager)
  DELETE /api/v1/store-activity-settings/:id      — Delete (admin/manager)
"""

import logging

from flask import Blueprint, jsonify, request

from storeops.auth import require_auth, require_role
from storeops.blueprints import actor_profile, json_body
from storeops.services import campaign_service
from storeops.utils.helpers import db_commit_or_error

logger = logging.getLogger(__name__)

campaign_bp = Blueprint("campaign", __name__, url_prefix="/api/v1")


# ═══════════════════════════════════════════════════════════════
# Campaigns
# ═══════════════════════════════════════════════════════════════

@campaign_bp.route("/campaigns", methods=["GET"])
@require_auth
def list_campaigns():
    campaigns = campaign_service.list_campaigns()
    return jsonify({"success": True, "campaigns": [c.to_dict() for c in campaigns]})


@campaign_bp.route("/campaigns", methods=["POST"])
@require_role("admin", "manager")
def create_campaign():
    campaign = campaign_service.create_campaign(actor_profile(), json_body())
    err = db_commit_or_error()
    if err:
        return err
    return jsonify({"success": True, "campaign": campaign.to_dict()}), 201


@campaign_bp.route("/campaigns", methods=["PUT"])
@require_role("admin", "manager")
def update_campaign():
    data = json_body()
    campaign = campaign_service.update_campaign(data.get("id"), data)
    err = db_commit_or_error()
    if err:
        return err
    return jsonify({"success": True, "campaign": campaign.to_dict()})


@campaign_bp.route("/campaigns", methods=["DELETE"])
@require_role("admin", "manager")
def delete_campaign():
    campaign_service.delete_campaign(request.args.get("id", type=int))
    err = db_commit_or_error()
    if err:
        return err
    return jsonify({"success": True})


@campaign_bp.route("/campaigns/publish", methods=["PATCH"])
@require_role("admin", "manager")
def publish_campaign():
    data = json_body()
    campaign = campaign_service.publish_campaign(
        data.get("campaignId"), data.get("publishType"), data.get("status")
    )
    err = db_commit_or_error()
    if err:
        return err
    return jsonify({"success": True, "campaign": campaign.to_dict()})


@campaign_bp.route("/campaigns/published", methods=["GET"])
@require_auth
def published_campaigns():
    campaigns, role = campaign_service.list_published(actor_profile())
    return jsonify({
        "success": True,
        "campaigns": [c.to_dict() for c in campaigns],
        "role": role,
    })


@campaign_bp.route("/campaigns/<int:campaign_id>/view", methods=["GET"])
@require_auth
def view_campaign(campaign_id):
    view = campaign_service.view_campaign(actor_profile(), campaign_id)
    return jsonify({"success": True, **view})


# ═══════════════════════════════════════════════════════════════
# Schedules
# ═══════════════════════════════════════════════════════════════

@campaign_bp.route("/campaign-schedules", methods=["GET"])
@require_auth
def list_schedules():
    schedules = campaign_service.list_schedules(request.args.get("campaign_id", type=int))
    return jsonify({
        "success": True,
        "schedules": [s.to_dict(include_store=True) for s in schedules],
    })


@campaign_bp.route("/campaign-schedules", methods=["POST"])
@require_role("admin", "manager")
def upsert_schedule():
    schedule = campaign_service.upsert_schedule(json_body())
    err = db_commit_or_error()
    if err:
        return err
    return jsonify({"success": True, "schedule": schedule.to_dict()})


@campaign_bp.route("/campaign-schedules", methods=["PUT"])
@require_role("admin", "manager")
def replace_schedules():
    data = json_body()
    rows = campaign_service.replace_schedules(data.get("campaign_id"), data.get("schedules"))
    err = db_commit_or_error()
    if err:
        return err
    return jsonify({"success": True, "count": len(rows)})


@campaign_bp.route("/campaign-schedules/<int:schedule_id>", methods=["DELETE"])
@require_role("admin", "manager")
def delete_schedule(schedule_id):
    campaign_service.delete_schedule(schedule_id)
    err = db_commit_or_error()
    if err:
        return err
    return jsonify({"success": True})


# ═══════════════════════════════════════════════════════════════
# Event dates
# ═══════════════════════════════════════════════════════════════

@campaign_bp.route("/event-dates", methods=["GET"])
@require_auth
def list_event_dates():
    events = campaign_service.list_event_dates()
    return jsonify({"success": True, "events": [e.to_dict() for e in events]})


@campaign_bp.route("/event-dates", methods=["POST"])
@require_role("admin", "manager")
def upsert_event_date():
    event = campaign_service.upsert_event_date(json_body())
    err = db_commit_or_error()
    if err:
        return err
    return jsonify({"success": True, "event": event.to_dict()})


@campaign_bp.route("/event-dates/<int:event_id>", methods=["DELETE"])
@require_role("admin", "manager")
def delete_event_date(event_id):
    campaign_service.delete_event_date(event_id)
    err = db_commit_or_error()
    if err:
        return err
    return jsonify({"success": True})


# ═══════════════════════════════════════════════════════════════
# Store activity settings
# ═══════════════════════════════════════════════════════════════

@campaign_bp.route("/store-activity-settings", methods=["GET"])
@require_auth
def list_activity_settings():
    settings = campaign_service.list_activity_settings()
    return jsonify({"success": True, "settings": [s.to_dict() for s in settings]})


@campaign_bp.route("/store-activity-settings", methods=["POST"])
@require_role("admin", "manager")
def upsert_activity_setting():
    setting = campaign_service.upsert_activity_setting(json_body())
    err = db_commit_or_error()
    if err:
        return err
    return jsonify({"success": True, "setting": setting.to_dict()})


@campaign_bp.route("/store-activity-settings/<int:setting_id>", methods=["DELETE"])
@require_role("admin", "manager")
def delete_activity_setting(setting_id):
    campaign_service.delete_activity_setting(setting_id)
    err = db_commit_or_error()
    if err:
        return err
    return jsonify({"success": True})
