"""
Site style API - build and read the writing-style profile used by the content step.
"""
from typing import Optional

from fastapi import APIRouter, Depends

from autoblog.api.deps import get_settings_provider, get_style_analyzer
from autoblog.schemas.api_requests import StyleAnalyzeRequest
from autoblog.services.settings_store import DatabaseSettingsProvider
from autoblog.services.style_analyzer import StyleAnalyzer, style_prompt

router = APIRouter(prefix="/api/v1/style", tags=["style"])


@router.post("/analyze")
async def analyze_style(
    payload: Optional[StyleAnalyzeRequest] = None,
    analyzer: StyleAnalyzer = Depends(get_style_analyzer),
):
    profile = await analyzer.analyze(use_ai=bool(payload and payload.use_ai))
    return {"success": True, "data": profile}


@router.get("")
async def get_style_profile(
    settings: DatabaseSettingsProvider = Depends(get_settings_provider),
):
    profile = await settings.get("style_profile")
    return {
        "success": True,
        "data": {"profile": profile or None, "prompt": style_prompt(profile)},
    }


@router.delete("")
async def clear_style_profile(
    settings: DatabaseSettingsProvider = Depends(get_settings_provider),
):
    await settings.set("style_profile", {})
    return {"success": True}
