"""
Request bodies for the HTTP API.
"""
from typing import Any, Optional

from pydantic import BaseModel, Field

from autoblog.schemas.job import JobOptions, Step


class CreateJobRequest(BaseModel):
    topic: str = Field(..., min_length=1, max_length=500)
    options: JobOptions = Field(default_factory=JobOptions)


class StepRequest(BaseModel):
    step: Optional[Step] = None


class TopicCreateRequest(BaseModel):
    topic: str = Field(..., min_length=1, max_length=500)
    keywords: Optional[str] = None
    category_id: Optional[int] = None
    priority: int = 0


class TopicImportRequest(BaseModel):
    """Either a list of rows or CSV text with a header row (topic,keywords,category_id,priority)."""
    topics: list[TopicCreateRequest] = Field(default_factory=list)
    csv: Optional[str] = None


class TopicGenerateRequest(BaseModel):
    publish: bool = False
    generate_image: Optional[bool] = None


class SettingsUpdateRequest(BaseModel):
    values: dict[str, Any]


class TrendsEnqueueRequest(BaseModel):
    """Queue the given titles, or the top `limit` cached trends when no titles are sent."""
    titles: list[str] = Field(default_factory=list)
    limit: int = Field(5, ge=1, le=50)
    country: Optional[str] = None
    category_id: Optional[int] = None


class StyleAnalyzeRequest(BaseModel):
    use_ai: bool = False
