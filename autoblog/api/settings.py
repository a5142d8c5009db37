"""
Settings API - read (secrets masked) and update application settings.

Changing a schedule setting starts the scheduler cooldown and re-arms the
next trigger, so a just-saved schedule does not fire immediately.
"""
import logging

from fastapi import APIRouter, Depends, HTTPException

from autoblog.api.deps import get_scheduler, get_settings_provider
from autoblog.schemas.api_requests import SettingsUpdateRequest
from autoblog.services.settings_store import (
    SCHEDULE_KEYS,
    SETTING_DEFINITIONS,
    DatabaseSettingsProvider,
    UnknownSettingError,
)
from autoblog.utils.encryption import mask_value
from autoblog.workers.scheduler import Scheduler

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/v1/settings", tags=["settings"])


def _public_settings(values: dict) -> dict:
    return {
        key: mask_value(value) if SETTING_DEFINITIONS[key].get("secret") else value
        for key, value in values.items()
    }


@router.get("")
async def get_settings_values(
    settings: DatabaseSettingsProvider = Depends(get_settings_provider),
):
    return {"success": True, "data": _public_settings(await settings.get_all())}


@router.put("")
async def update_settings(
    payload: SettingsUpdateRequest,
    settings: DatabaseSettingsProvider = Depends(get_settings_provider),
    scheduler: Scheduler = Depends(get_scheduler),
):
    before = {key: await settings.get(key) for key in SCHEDULE_KEYS}
    try:
        stored = await settings.update(payload.values)
    except UnknownSettingError as e:
        raise HTTPException(status_code=400, detail=f"Unknown setting(s): {e.args[0]}")

    changed = [key for key in SCHEDULE_KEYS if key in stored and stored[key] != before[key]]
    if changed:
        logger.info("Schedule settings changed: %s", ", ".join(changed))
        await scheduler.mark_schedule_changed()

    return {"success": True, "data": _public_settings(stored), "schedule_changed": bool(changed)}
