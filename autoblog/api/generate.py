"""
Generation API - manual jobs, advanced one step per request.

A client creates a job, then calls /step until next_step is "complete"
(calling /complete when the image step ran), or uses /run to drive the
whole job in one request.
"""
import logging
from typing import Optional

from fastapi import APIRouter, Depends

from autoblog.api.deps import get_config, get_pipeline, get_settings_provider
from autoblog.config import Settings
from autoblog.schemas.api_requests import CreateJobRequest, StepRequest
from autoblog.services.ai import AIClient
from autoblog.services.pipeline import GenerationPipeline
from autoblog.services.settings_store import DatabaseSettingsProvider
from autoblog.utils.errors import ConfigurationError, JobNotFoundError

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/v1/generate", tags=["generate"])


@router.post("/jobs")
async def create_job(
    payload: CreateJobRequest,
    pipeline: GenerationPipeline = Depends(get_pipeline),
):
    """Create a pending job. Fails fast when no API key is configured."""
    job_id = await pipeline.create_job(payload.topic, payload.options)
    job = await pipeline.get_job(job_id)
    return {"success": True, "data": job.public_dict()}


@router.get("/jobs/{job_id}")
async def get_job(
    job_id: str,
    pipeline: GenerationPipeline = Depends(get_pipeline),
):
    job = await pipeline.get_job(job_id)
    if job is None:
        raise JobNotFoundError(f"Job {job_id} not found or expired")
    return {"success": True, "data": job.public_dict()}


@router.post("/jobs/{job_id}/step")
async def process_step(
    job_id: str,
    payload: Optional[StepRequest] = None,
    pipeline: GenerationPipeline = Depends(get_pipeline),
):
    """Run the job's next step (or the step named in the body)."""
    result = await pipeline.process_step(job_id, payload.step if payload else None)
    return {"success": True, "data": result.model_dump(mode="json")}


@router.post("/jobs/{job_id}/finalize")
async def finalize_job(
    job_id: str,
    pipeline: GenerationPipeline = Depends(get_pipeline),
):
    result = await pipeline.finalize(job_id)
    return {"success": True, "data": result.model_dump(mode="json")}


@router.post("/jobs/{job_id}/complete")
async def complete_job(
    job_id: str,
    pipeline: GenerationPipeline = Depends(get_pipeline),
):
    """Merge the image cost and mark a finalized job complete."""
    job = await pipeline.complete_with_image(job_id)
    return {"success": True, "data": job.public_dict()}


@router.post("/run")
async def run_job(
    payload: CreateJobRequest,
    pipeline: GenerationPipeline = Depends(get_pipeline),
):
    """Create a job and drive it to completion in this request."""
    job_id = await pipeline.create_job(payload.topic, payload.options)
    job = await pipeline.run_to_completion(job_id)
    return {"success": True, "data": job.public_dict()}


async def _client_from_settings(settings: DatabaseSettingsProvider, config: Settings) -> AIClient:
    api_key = await settings.get("api_key") or config.openai_api_key
    if not api_key:
        raise ConfigurationError("OpenAI API key is not configured", kind="missing_api_key")
    org_id = await settings.get("org_id") or config.openai_org_id
    return AIClient(api_key, org_id=org_id, config=config)


@router.post("/verify-key")
async def verify_key(
    settings: DatabaseSettingsProvider = Depends(get_settings_provider),
    config: Settings = Depends(get_config),
):
    """Check the stored key against the provider and record the result."""
    client = await _client_from_settings(settings, config)
    result = await client.verify_api_key()
    await settings.set("api_verified", result["success"])
    logger.info("API key verification: success=%s kind=%s", result["success"], result["kind"])
    return {"success": result["success"], "data": result}


@router.get("/models")
async def list_models(
    settings: DatabaseSettingsProvider = Depends(get_settings_provider),
    config: Settings = Depends(get_config),
):
    client = await _client_from_settings(settings, config)
    return {"success": True, "data": await client.list_models()}
