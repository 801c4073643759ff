"""Campaign scheduling — campaigns, per-store schedules, event dates and store settings.

Transaction policy: flush() only; the route handler commits.

Visibility of a campaign to store staff depends on its publish flags:
    supervisor           sees it once either flag is set
    store manager only   needs published_to_store_managers
"""
import logging
from datetime import datetime, timezone

from sqlalchemy import or_

from storeops.core.exceptions import NotFoundError, PermissionDeniedError, ValidationError
from storeops.models import db
from storeops.models.campaign import (
    PUBLISH_TYPES,
    Campaign,
    CampaignSchedule,
    EventDate,
    StoreActivitySetting,
)
from storeops.models.store import Store
from storeops.services import policies
from storeops.services.store_role_service import managed_rows
from storeops.utils.helpers import parse_date

logger = logging.getLogger(__name__)


def _get_campaign(campaign_id):
    campaign = db.session.get(Campaign, campaign_id)
    if campaign is None:
        raise NotFoundError("Campaign", campaign_id, message="找不到活動")
    return campaign


def _require_date(value, field):
    parsed = parse_date(value)
    if parsed is None:
        raise ValidationError("日期格式錯誤", details={field: "expected YYYY-MM-DD"})
    return parsed


def _role_flags(profile):
    return policies.supervisor_flags(profile, managed_rows(profile.id))


# ── Campaigns ────────────────────────────────────────────────────────────────


def list_campaigns():
    return Campaign.query.order_by(Campaign.start_date.desc(), Campaign.id.desc()).all()


def create_campaign(actor, data):
    if not data.get("name") or not data.get("start_date") or not data.get("end_date"):
        raise ValidationError("缺少必要欄位")
    start = _require_date(data["start_date"], "start_date")
    end = _require_date(data["end_date"], "end_date")
    if end < start:
        raise ValidationError("結束日期不可早於開始日期")
    campaign = Campaign(
        name=data["name"], start_date=start, end_date=end,
        is_active=True, created_by=actor.id,
    )
    db.session.add(campaign)
    db.session.flush()
    logger.info("Campaign %d '%s' created by %s", campaign.id, campaign.name, actor.id)
    return campaign


def update_campaign(campaign_id, data):
    if not campaign_id:
        raise ValidationError("缺少活動 ID")
    campaign = _get_campaign(campaign_id)
    if "name" in data:
        if not data["name"]:
            raise ValidationError("活動名稱為必填")
        campaign.name = data["name"]
    if "start_date" in data:
        campaign.start_date = _require_date(data["start_date"], "start_date")
    if "end_date" in data:
        campaign.end_date = _require_date(data["end_date"], "end_date")
    if "is_active" in data:
        campaign.is_active = bool(data["is_active"])
    if campaign.end_date < campaign.start_date:
        raise ValidationError("結束日期不可早於開始日期")
    db.session.flush()
    return campaign


def delete_campaign(campaign_id):
    if not campaign_id:
        raise ValidationError("缺少活動 ID")
    campaign = _get_campaign(campaign_id)
    db.session.delete(campaign)
    db.session.flush()
    logger.info("Campaign %s deleted", campaign_id)


def publish_campaign(campaign_id, publish_type, status):
    """Set one publish flag; ``published_at`` is stamped when publishing."""
    if not campaign_id or publish_type not in PUBLISH_TYPES:
        raise ValidationError("缺少必要欄位或發布類型錯誤")
    if not isinstance(status, bool):
        raise ValidationError("發布狀態必須是布林值", details={"status": "boolean expected"})
    campaign = _get_campaign(campaign_id)
    setattr(campaign, PUBLISH_TYPES[publish_type], status)
    if status:
        campaign.published_at = datetime.now(timezone.utc)
    db.session.flush()
    logger.info("Campaign %s %s publish=%s", campaign_id, publish_type, status)
    return campaign


def list_published(profile):
    """Campaigns visible to the caller; returns ``(campaigns, role)``."""
    query = Campaign.query.order_by(Campaign.start_date.desc(), Campaign.id.desc())
    if policies.is_admin(profile):
        return query.all(), "admin"
    if not policies.needs_store_assignment(profile):
        return [], None

    is_supervisor, is_store_manager = _role_flags(profile)
    if is_supervisor and is_store_manager:
        query = query.filter(or_(
            Campaign.published_to_supervisors.is_(True),
            Campaign.published_to_store_managers.is_(True),
        ))
        role = "both"
    elif is_supervisor:
        query = query.filter(Campaign.published_to_supervisors.is_(True))
        role = "supervisor"
    elif is_store_manager:
        query = query.filter(Campaign.published_to_store_managers.is_(True))
        role = "store_manager"
    else:
        return [], None
    return query.all(), role


def view_campaign(profile, campaign_id):
    """Campaign with all its schedules, gated by the publish flags."""
    campaign = _get_campaign(campaign_id)
    result = {"campaign": campaign.to_dict()}
    if policies.is_admin(profile):
        result["schedules"] = [s.to_dict(include_store=True) for s in _schedules_of(campaign.id)]
        return result
    if not policies.needs_store_assignment(profile):
        raise PermissionDeniedError("權限不足")

    is_supervisor, is_store_manager = _role_flags(profile)
    published_any = campaign.published_to_supervisors or campaign.published_to_store_managers
    if is_supervisor and not published_any:
        raise PermissionDeniedError("此活動尚未發布")
    if is_store_manager and not is_supervisor and not campaign.published_to_store_managers:
        raise PermissionDeniedError("此活動尚未發布給店長")

    result["schedules"] = [s.to_dict(include_store=True) for s in _schedules_of(campaign.id)]
    result["isSupervisor"] = is_supervisor
    result["isStoreManager"] = is_store_manager
    return result


# ── Schedules ────────────────────────────────────────────────────────────────


def _schedules_of(campaign_id):
    return (
        CampaignSchedule.query.filter_by(campaign_id=campaign_id)
        .order_by(CampaignSchedule.activity_date, CampaignSchedule.id)
        .all()
    )


def list_schedules(campaign_id):
    if not campaign_id:
        raise ValidationError("缺少活動 ID")
    return _schedules_of(campaign_id)


def upsert_schedule(data):
    campaign_id, store_id = data.get("campaign_id"), data.get("store_id")
    if not campaign_id or not store_id or not data.get("activity_date"):
        raise ValidationError("缺少必要欄位")
    activity_date = _require_date(data["activity_date"], "activity_date")
    _get_campaign(campaign_id)
    if db.session.get(Store, store_id) is None:
        raise NotFoundError("Store", store_id, message="找不到門市")

    schedule = CampaignSchedule.query.filter_by(campaign_id=campaign_id, store_id=store_id).first()
    if schedule is None:
        schedule = CampaignSchedule(campaign_id=campaign_id, store_id=store_id)
        db.session.add(schedule)
    schedule.activity_date = activity_date
    db.session.flush()
    return schedule


def replace_schedules(campaign_id, schedules):
    """Replace every schedule of the campaign with ``schedules``."""
    if not campaign_id or not isinstance(schedules, list):
        raise ValidationError("資料格式錯誤")
    _get_campaign(campaign_id)
    parsed = []
    for item in schedules:
        if not item.get("store_id") or not item.get("activity_date"):
            raise ValidationError("資料格式錯誤")
        parsed.append((item["store_id"], _require_date(item["activity_date"], "activity_date")))

    CampaignSchedule.query.filter_by(campaign_id=campaign_id).delete()
    rows = [
        CampaignSchedule(campaign_id=campaign_id, store_id=store_id, activity_date=day)
        for store_id, day in parsed
    ]
    db.session.add_all(rows)
    db.session.flush()
    logger.info("Campaign %s schedules replaced (%d rows)", campaign_id, len(rows))
    return rows


def delete_schedule(schedule_id):
    schedule = db.session.get(CampaignSchedule, schedule_id)
    if schedule is None:
        raise NotFoundError("CampaignSchedule", schedule_id, message="找不到排程")
    db.session.delete(schedule)
    db.session.flush()


# ── Event dates ──────────────────────────────────────────────────────────────


def list_event_dates():
    return EventDate.query.order_by(EventDate.event_date).all()


def upsert_event_date(data):
    if not data.get("event_date") or not data.get("event_type"):
        raise ValidationError("缺少必要欄位")
    day = _require_date(data["event_date"], "event_date")
    event = EventDate.query.filter_by(event_date=day).first()
    if event is None:
        event = EventDate(event_date=day)
        db.session.add(event)
    event.event_type = data["event_type"]
    event.description = data.get("description")
    event.is_blocked = bool(data.get("is_blocked", False))
    db.session.flush()
    return event


def delete_event_date(event_id):
    event = db.session.get(EventDate, event_id)
    if event is None:
        raise NotFoundError("EventDate", event_id, message="找不到日期")
    db.session.delete(event)
    db.session.flush()


# ── Store activity settings ──────────────────────────────────────────────────


def list_activity_settings():
    return StoreActivitySetting.query.order_by(
        StoreActivitySetting.created_at, StoreActivitySetting.id
    ).all()


def upsert_activity_setting(data):
    store_id = data.get("store_id")
    if not store_id:
        raise ValidationError("缺少門市 ID")
    setting = StoreActivitySetting.query.filter_by(store_id=store_id).first()
    if setting is None:
        if db.session.get(Store, store_id) is None:
            raise NotFoundError("Store", store_id, message="找不到門市")
        setting = StoreActivitySetting(store_id=store_id)
        db.session.add(setting)
    setting.allowed_days = data.get("allowed_days") or []
    setting.forbidden_days = data.get("forbidden_days") or []
    setting.notes = data.get("notes")
    db.session.flush()
    return setting


def delete_activity_setting(setting_id):
    setting = db.session.get(StoreActivitySetting, setting_id)
    if setting is None:
        raise NotFoundError("StoreActivitySetting", setting_id, message="找不到設定")
    db.session.delete(setting)
    db.session.flush()
