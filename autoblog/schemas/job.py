"""
Generation job schemas - the state of one multi-step generation, persisted
as JSON in Redis between steps.
"""
from datetime import datetime, timezone
from enum import Enum
from typing import Optional
from pydantic import BaseModel, Field


class Step(str, Enum):
    OUTLINE = "outline"
    CONTENT = "content"
    HUMANIZE = "humanize"
    SEO = "seo"
    FINALIZE = "finalize"
    IMAGE = "image"
    COMPLETE = "complete"


class JobStatus(str, Enum):
    PENDING = "pending"
    PROCESSING = "processing"
    IN_PROGRESS = "in_progress"
    COMPLETED = "completed"
    ERROR = "error"


class JobOptions(BaseModel):
    """Per-job options. Unset values are filled from settings at creation."""
    model: Optional[str] = None
    keywords: str = ""
    category_id: Optional[int] = None
    publish: bool = False
    generate_image: Optional[bool] = None  # None: use the image_enabled setting
    source: str = Field(default="manual", description="manual, queue, scheduled, trending")
    instructions: str = ""
    queue_topic_id: Optional[str] = None
    queue_claim_token: Optional[str] = None  # Proves ownership when releasing the topic
    word_count_target: Optional[int] = None


class TokenUsage(BaseModel):
    prompt_tokens: int = 0
    completion_tokens: int = 0
    total_tokens: int = 0
    cost_usd: float = 0.0
    image_cost_usd: float = 0.0

    def add(self, result: dict) -> None:
        """Add one text call's usage."""
        self.prompt_tokens += result.get("prompt_tokens", 0) or 0
        self.completion_tokens += result.get("completion_tokens", 0) or 0
        self.total_tokens += result.get("total_tokens", 0) or 0
        self.cost_usd = round(self.cost_usd + (result.get("cost_usd", 0.0) or 0.0), 6)

    @property
    def total_cost_usd(self) -> float:
        return round(self.cost_usd + self.image_cost_usd, 6)


class JobData(BaseModel):
    outline: Optional[str] = None
    content: Optional[str] = None
    humanized: Optional[str] = None
    seo_data: Optional[dict] = None
    title: Optional[str] = None
    image_result: Optional[dict] = None


def _now() -> datetime:
    return datetime.now(timezone.utc)


class GenerationJob(BaseModel):
    job_id: str
    topic: str
    options: JobOptions = Field(default_factory=JobOptions)
    status: JobStatus = JobStatus.PENDING
    current_step: Step = Step.OUTLINE
    steps_completed: list[Step] = Field(default_factory=list)
    data: JobData = Field(default_factory=JobData)
    token_usage: TokenUsage = Field(default_factory=TokenUsage)
    content_ref: Optional[str] = None
    error: Optional[str] = None
    error_kind: Optional[str] = None
    started_at: datetime = Field(default_factory=_now)
    updated_at: datetime = Field(default_factory=_now)

    @property
    def latest_text(self) -> Optional[str]:
        return self.data.humanized or self.data.content

    @property
    def elapsed_seconds(self) -> float:
        return round((_now() - self.started_at).total_seconds(), 2)

    def public_dict(self) -> dict:
        """Shape returned by the HTTP API (no full article bodies)."""
        return {
            "job_id": self.job_id,
            "topic": self.topic,
            "status": self.status.value,
            "current_step": self.current_step.value,
            "steps_completed": [s.value for s in self.steps_completed],
            "title": self.data.title,
            "content_ref": self.content_ref,
            "token_usage": self.token_usage.model_dump(),
            "error": {"kind": self.error_kind, "message": self.error} if self.error else None,
            "started_at": self.started_at.isoformat(),
            "updated_at": self.updated_at.isoformat(),
        }


class StepResult(BaseModel):
    job_id: str
    step: Step
    next_step: Step
    job_status: JobStatus
    content_ref: Optional[str] = None
