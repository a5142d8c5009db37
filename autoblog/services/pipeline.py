"""
Generation pipeline - drives one job through

    outline -> content -> humanize -> [seo] -> finalize -> [image] -> complete

one step per call. Job state lives in the job store between calls, so a
manual run can advance one HTTP request at a time while a scheduled run
drives the same steps back to back (run_to_completion).

Each step makes exactly one provider call (finalize makes none), adds its
token usage to the job total and stores its output. A failing step marks
the job as errored, writes a failed ledger entry and releases the queue
topic the job came from; it never retries (the AI client already did) and
never advances.
"""
import logging
import uuid
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Optional, Union

from autoblog.config import Settings, get_settings
from autoblog.integrations.base import (
    ContentStore,
    CostLedger,
    MediaStore,
    SeoFieldWriter,
    SettingsProvider,
)
from autoblog.prompts.blog import (
    SYSTEM_PROMPTS,
    content_prompt,
    content_system_prompt,
    humanize_prompt,
    image_prompt,
    outline_prompt,
    seo_prompt,
)
from autoblog.schemas.job import (
    GenerationJob,
    JobOptions,
    JobStatus,
    Step,
    StepResult,
)
from autoblog.services.ai import AIClient
from autoblog.services.content_format import (
    convert_to_blocks,
    extract_title,
    extract_visual_concept,
    featured_image_filename,
    generate_tags,
    looks_like_markup,
    parse_seo_json,
    strip_tags,
    trim_words,
)
from autoblog.services.job_store import JobStore
from autoblog.services.queue import ClaimResult, TopicQueue
from autoblog.services.style_analyzer import style_prompt
from autoblog.utils.errors import (
    AutoblogError,
    ConfigurationError,
    ContentQualityError,
    JobBusyError,
    JobNotFoundError,
    MissingPrerequisiteError,
    PersistenceError,
    ProviderError,
    StepError,
)
from autoblog.utils.locks import acquire_marker, release_marker
from autoblog.utils.logging import job_context
from autoblog.utils.redis_client import get_redis

logger = logging.getLogger(__name__)

JOB_ID_PREFIX = "aibp_"
MIN_HUMANIZE_CHARS = 200
SEO_SAMPLE_WORDS = 300
MAX_CONTENT_TOKENS = 4000

STEP_ORDER = (
    Step.OUTLINE,
    Step.CONTENT,
    Step.HUMANIZE,
    Step.SEO,
    Step.FINALIZE,
    Step.IMAGE,
    Step.COMPLETE,
)

# Job attribute (on job.data, or content_ref on the job) each step needs
PREREQUISITES: dict[Step, Optional[str]] = {
    Step.OUTLINE: None,
    Step.CONTENT: "outline",
    Step.HUMANIZE: "content",
    Step.SEO: "content",
    Step.FINALIZE: "content",
    Step.IMAGE: "content_ref",
}


@dataclass(frozen=True)
class StepFlags:
    """Which optional steps run for a job."""
    humanize: bool = True
    seo: bool = True
    image: bool = False


def next_step(step: Step, flags: StepFlags) -> Step:
    """Transition table: the first non-skipped step after `step`."""
    skipped = {
        Step.HUMANIZE: not flags.humanize,
        Step.SEO: not flags.seo,
        Step.IMAGE: not flags.image,
    }
    for candidate in STEP_ORDER[STEP_ORDER.index(step) + 1:]:
        if not skipped.get(candidate, False):
            return candidate
    return Step.COMPLETE


def _now() -> datetime:
    return datetime.now(timezone.utc)


class GenerationPipeline:
    def __init__(
        self,
        settings: SettingsProvider,
        content_store: ContentStore,
        cost_ledger: CostLedger,
        job_store: JobStore,
        queue: Optional[TopicQueue] = None,
        media_store: Optional[MediaStore] = None,
        seo_writer: Optional[SeoFieldWriter] = None,
        ai_client: Optional[AIClient] = None,
        redis=None,
        config: Optional[Settings] = None,
    ):
        self.config = config or get_settings()
        self._settings = settings
        self._content = content_store
        self._ledger = cost_ledger
        self._jobs = job_store
        self._queue = queue
        self._media = media_store
        self._seo_writer = seo_writer
        self._injected_ai_client = ai_client
        self._ai_client: Optional[AIClient] = None
        self._ai_credentials: Optional[tuple] = None
        self._redis = redis
        self._handlers = {
            Step.OUTLINE: self._outline,
            Step.CONTENT: self._content_step,
            Step.HUMANIZE: self._humanize,
            Step.SEO: self._seo,
            Step.FINALIZE: self._finalize,
            Step.IMAGE: self._image,
        }

    # ── collaborators ──────────────────────────────────────────────────────

    async def _get_redis(self):
        if self._redis is None:
            self._redis = await get_redis()
        return self._redis

    async def get_ai_client(self) -> AIClient:
        """
        An injected client is used as is. Otherwise the client is rebuilt
        whenever the stored key or organization changes, so a long-lived
        pipeline picks up a rotated key on its next call.
        """
        if self._injected_ai_client is not None:
            return self._injected_ai_client

        api_key = await self._settings.get("api_key") or self.config.openai_api_key
        if not api_key:
            raise ConfigurationError(
                "OpenAI API key is not configured. Add it in settings before generating.",
                kind="missing_api_key",
            )
        org_id = await self._settings.get("org_id") or self.config.openai_org_id
        if self._ai_client is None or self._ai_credentials != (api_key, org_id):
            if self._ai_client is not None:
                logger.info("Provider credentials changed, rebuilding AI client")
            self._ai_client = AIClient(api_key, org_id=org_id, config=self.config)
            self._ai_credentials = (api_key, org_id)
        return self._ai_client

    async def _step_flags(self, job: GenerationJob) -> StepFlags:
        level = await self._settings.get("humanize_level")
        return StepFlags(
            humanize=level >= self.config.humanize_min_level,
            seo=bool(await self._settings.get("seo_enabled")),
            image=bool(job.options.generate_image),
        )

    async def _save(self, job: GenerationJob) -> None:
        job.updated_at = _now()
        await self._jobs.save(job)

    # ── public operations ──────────────────────────────────────────────────

    async def create_job(
        self,
        topic: str,
        options: Union[JobOptions, dict, None] = None,
    ) -> str:
        """Validate credentials, fill option defaults and store a pending job."""
        topic = (topic or "").strip()
        if not topic:
            raise ValueError("Topic is required")

        await self.get_ai_client()

        if isinstance(options, dict):
            options = JobOptions(**options)
        options = options or JobOptions()
        if not options.model:
            options.model = await self._settings.get("model")
        if options.generate_image is None:
            options.generate_image = bool(await self._settings.get("image_enabled"))
        if not options.word_count_target:
            word_min = await self._settings.get("word_count_min")
            word_max = await self._settings.get("word_count_max")
            options.word_count_target = (word_min + max(word_min, word_max)) // 2

        job = GenerationJob(
            job_id=f"{JOB_ID_PREFIX}{uuid.uuid4().hex}",
            topic=topic,
            options=options,
        )
        await self._save(job)
        logger.info(
            "Job created: %s topic=%r model=%s source=%s",
            job.job_id, topic[:60], options.model, options.source,
            extra={"job_id": job.job_id},
        )
        return job.job_id

    async def get_job(self, job_id: str) -> Optional[GenerationJob]:
        return await self._jobs.load(job_id)

    async def process_step(
        self,
        job_id: str,
        step: Union[Step, str, None] = None,
    ) -> StepResult:
        """
        Run one step of a job (the job's current step when step is None).
        A named step must be the current one: completed and skipped steps
        never run again.
        Raises JobNotFoundError, JobBusyError, StepError,
        MissingPrerequisiteError, or the step's own failure.
        """
        job = await self._jobs.load(job_id)
        if job is None:
            raise JobNotFoundError(f"Job {job_id} not found or expired")
        if job.status == JobStatus.COMPLETED:
            raise StepError(f"Job {job_id} is already complete")
        step = self._resolve_step(job, step)

        redis = await self._get_redis()
        marker = f"job:{job_id}"
        token = await acquire_marker(redis, marker, self.config.job_step_lock_seconds)
        if token is None:
            raise JobBusyError(f"Job {job_id} is already processing a step")
        try:
            job = await self._jobs.load(job_id) or job
            with job_context(job_id, step.value):
                return await self._run_step(job, step)
        finally:
            await release_marker(redis, marker, token)

    async def finalize(self, job_id: str) -> StepResult:
        """Create the post from the latest text. See _finalize."""
        return await self.process_step(job_id, Step.FINALIZE)

    async def complete_with_image(self, job_id: str) -> GenerationJob:
        """Merge the image cost into the job total and mark the job complete."""
        redis = await self._get_redis()
        marker = f"job:{job_id}"
        token = await acquire_marker(redis, marker, self.config.job_step_lock_seconds)
        if token is None:
            raise JobBusyError(f"Job {job_id} is already processing a step")
        try:
            job = await self._jobs.load(job_id)
            if job is None:
                raise JobNotFoundError(f"Job {job_id} not found or expired")
            if job.status == JobStatus.COMPLETED:
                return job
            if not job.content_ref:
                raise MissingPrerequisiteError(f"Job {job_id} has not been finalized")

            image_result = job.data.image_result or {}
            job.token_usage.image_cost_usd = round(float(image_result.get("cost_usd") or 0.0), 6)
            try:
                await self._content.update_meta(job.content_ref, {
                    "_autoblog_cost": job.token_usage.total_cost_usd,
                    "_autoblog_image_cost": job.token_usage.image_cost_usd,
                })
            except Exception as e:
                logger.error("Cost metadata update failed for %s: %s", job.content_ref, str(e))
            with job_context(job_id, Step.COMPLETE.value):
                await self._complete(job)
            return job
        finally:
            await release_marker(redis, marker, token)

    async def run_to_completion(self, job_id: str) -> GenerationJob:
        """Drive a job from its current step to complete. Step failures propagate."""
        for _ in range(len(STEP_ORDER) + 1):
            job = await self._jobs.load(job_id)
            if job is None:
                raise JobNotFoundError(f"Job {job_id} not found or expired")
            if job.status == JobStatus.COMPLETED:
                return job
            if job.current_step == Step.COMPLETE:
                return await self.complete_with_image(job_id)
            await self.process_step(job_id, job.current_step)
        raise StepError(f"Job {job_id} did not reach completion")

    # ── step machinery ─────────────────────────────────────────────────────

    def _resolve_step(self, job: GenerationJob, step: Union[Step, str, None]) -> Step:
        if step is None:
            step = job.current_step
        try:
            step = Step(step)
        except ValueError:
            raise StepError(f"Unknown step: {step}") from None
        if step == Step.COMPLETE:
            raise StepError("The complete state is not a runnable step")
        if step == Step.FINALIZE and job.content_ref:
            raise StepError(f"Job {job.job_id} is already finalized")
        if step == Step.IMAGE and Step.IMAGE in job.steps_completed:
            raise StepError(f"Job {job.job_id} already has an image")
        return step

    def _missing_prerequisite(self, job: GenerationJob, step: Step) -> Optional[str]:
        needed = PREREQUISITES[step]
        if needed is None:
            return None
        value = job.content_ref if needed == "content_ref" else getattr(job.data, needed)
        return None if value else needed

    async def _run_step(self, job: GenerationJob, step: Step) -> StepResult:
        missing = self._missing_prerequisite(job, step)
        if missing:
            raise MissingPrerequisiteError(f"Step {step.value} requires {missing}, which is not available yet")
        # Also covers re-running the failed step: current_step never advances on failure
        if step != job.current_step:
            raise StepError(
                f"Job {job.job_id} is at step {job.current_step.value}; {step.value} cannot run now"
            )

        flags = await self._step_flags(job)
        job.status = JobStatus.PROCESSING
        job.error = None
        job.error_kind = None
        await self._save(job)
        logger.info("Job %s: running %s", job.job_id, step.value)

        try:
            await self._handlers[step](job, flags)
        except AutoblogError as e:
            await self._fail(job, step, e)
            raise
        except Exception as e:
            await self._fail(job, step, AutoblogError(str(e), kind="internal_error"))
            raise

        if step not in job.steps_completed:
            job.steps_completed.append(step)
        job.current_step = next_step(step, flags)

        if job.current_step == Step.COMPLETE and step != Step.IMAGE:
            await self._complete(job)
        else:
            job.status = JobStatus.IN_PROGRESS
            await self._save(job)

        return StepResult(
            job_id=job.job_id,
            step=step,
            next_step=job.current_step,
            job_status=job.status,
            content_ref=job.content_ref,
        )

    async def _fail(self, job: GenerationJob, step: Step, error: AutoblogError) -> None:
        job.status = JobStatus.ERROR
        job.error = error.message
        job.error_kind = error.kind
        await self._save(job)
        logger.error(
            "Job %s failed at %s: %s", job.job_id, step.value, error.message,
            extra={"error_kind": error.kind},
        )
        await self._record_ledger(job, "failed", error_message=f"[{error.kind}] {error.message}")
        if job.options.queue_topic_id and self._queue is not None:
            await self._queue.release(
                job.options.queue_topic_id,
                ClaimResult(success=False, error=f"{step.value}: {error.message}"),
                job.options.queue_claim_token,
            )

    async def _complete(self, job: GenerationJob) -> None:
        job.status = JobStatus.COMPLETED
        job.current_step = Step.COMPLETE
        await self._save(job)
        await self._record_ledger(job, "success")
        if job.options.queue_topic_id and self._queue is not None:
            await self._queue.mark_completed(
                job.options.queue_topic_id, job.content_ref, job.options.queue_claim_token,
            )
        logger.info(
            "Job %s complete: content=%s tokens=%d cost=$%.6f",
            job.job_id, job.content_ref, job.token_usage.total_tokens, job.token_usage.total_cost_usd,
            extra={"job_id": job.job_id},
        )

    async def _record_ledger(self, job: GenerationJob, status: str, error_message: Optional[str] = None) -> None:
        usage = job.token_usage
        try:
            await self._ledger.append({
                "job_id": job.job_id,
                "content_ref": job.content_ref,
                "model_used": job.options.model or "",
                "prompt_tokens": usage.prompt_tokens,
                "completion_tokens": usage.completion_tokens,
                "total_tokens": usage.total_tokens,
                "cost_usd": usage.cost_usd,
                "image_cost_usd": usage.image_cost_usd,
                "generation_time": job.elapsed_seconds,
                "topic_source": job.options.source,
                "status": status,
                "error_message": error_message,
            })
        except Exception as e:
            logger.error("Cost ledger append failed for job %s: %s", job.job_id, str(e))

    # ── step handlers ──────────────────────────────────────────────────────

    async def _outline(self, job: GenerationJob, flags: StepFlags) -> None:
        ai = await self.get_ai_client()
        prompt = outline_prompt(
            job.topic,
            await self._settings.get("word_count_min"),
            await self._settings.get("word_count_max"),
            keywords=job.options.keywords,
            instructions=job.options.instructions,
        )
        result = await ai.generate_text(
            prompt, SYSTEM_PROMPTS["outline"],
            model=job.options.model, max_tokens=1000, temperature=0.7,
        )
        job.token_usage.add(result)

        if not result["content"].strip():
            raise ContentQualityError(
                f'The model "{job.options.model}" returned an empty outline. Check that the model '
                "exists, that the API key has access to it and that the account has credits.",
                kind="empty_outline",
            )
        job.data.outline = result["content"]
        job.data.title = extract_title(job.topic, job.data.outline)

    async def _content_step(self, job: GenerationJob, flags: StepFlags) -> None:
        ai = await self.get_ai_client()
        word_target = job.options.word_count_target
        result = await ai.generate_text(
            content_prompt(job.data.outline, word_target, keywords=job.options.keywords),
            content_system_prompt(
                await self._settings.get("website_context"),
                style_prompt(await self._settings.get("style_profile")),
            ),
            model=job.options.model,
            max_tokens=min(MAX_CONTENT_TOKENS, word_target * 2),
            temperature=0.7,
        )
        job.token_usage.add(result)

        if not result["content"].strip():
            raise ContentQualityError(
                "The model returned empty content. Check that the API key has sufficient credits.",
                kind="empty_content",
            )
        job.data.content = result["content"]

    async def _humanize(self, job: GenerationJob, flags: StepFlags) -> None:
        content = job.data.content
        level = await self._settings.get("humanize_level")
        if level < self.config.humanize_min_level or len(strip_tags(content)) < MIN_HUMANIZE_CHARS:
            job.data.humanized = content
            return

        ai = await self.get_ai_client()
        result = await ai.generate_text(
            humanize_prompt(content, level), SYSTEM_PROMPTS["humanize"],
            model=job.options.model, max_tokens=MAX_CONTENT_TOKENS, temperature=0.8,
        )
        job.token_usage.add(result)

        if looks_like_markup(result["content"], MIN_HUMANIZE_CHARS):
            job.data.humanized = result["content"]
        else:
            logger.warning(
                "Job %s: humanized output is not usable markup, keeping original content", job.job_id,
                extra={"job_id": job.job_id},
            )
            job.data.humanized = content

    async def _seo(self, job: GenerationJob, flags: StepFlags) -> None:
        ai = await self.get_ai_client()
        sample = trim_words(strip_tags(job.latest_text), SEO_SAMPLE_WORDS)
        result = await ai.generate_text(
            seo_prompt(job.topic, sample), SYSTEM_PROMPTS["seo"],
            model=job.options.model, max_tokens=1500, temperature=0.5,
        )
        job.token_usage.add(result)

        job.data.seo_data = parse_seo_json(result["content"])
        if not job.data.seo_data:
            logger.warning("Job %s: SEO reply was not valid JSON, skipping SEO fields", job.job_id)

    async def _finalize(self, job: GenerationJob, flags: StepFlags) -> None:
        text = job.latest_text
        title = extract_title(job.topic, job.data.outline or "")
        job.data.title = title

        category_id = job.options.category_id
        if category_id is None:
            categories = await self._settings.get("categories")
            if categories:
                try:
                    category_id = int(categories[0])
                except (TypeError, ValueError):
                    category_id = None

        status = "publish" if job.options.publish else await self._settings.get("post_status")
        usage = job.token_usage
        metadata = {
            "_autoblog_generated": True,
            "_autoblog_job_id": job.job_id,
            "_autoblog_topic": job.topic,
            "_autoblog_model": job.options.model,
            "_autoblog_tokens": usage.total_tokens,
            "_autoblog_cost": usage.total_cost_usd,
        }

        try:
            content_ref = await self._content.create(
                title=title,
                body=convert_to_blocks(text),
                status=status,
                author_id=await self._settings.get("default_author"),
                category_id=category_id,
                metadata=metadata,
            )
        except PersistenceError:
            raise
        except Exception as e:
            raise PersistenceError(f"Could not create post: {e}") from e

        try:
            if job.data.seo_data:
                writer = self._seo_writer
                if writer is None:
                    from autoblog.integrations.seo import MetaSeoFieldWriter
                    writer = MetaSeoFieldWriter(self._content, await self._settings.get("seo_plugin"))
                await writer.apply(content_ref, job.data.seo_data)
            await self._content.set_tags(content_ref, generate_tags(job.topic, job.options.keywords, text))
        except Exception as e:
            logger.error("Job %s: post-processing failed, removing post %s", job.job_id, content_ref)
            try:
                await self._content.delete(content_ref)
            except Exception as cleanup_error:
                logger.error("Rollback of post %s failed: %s", content_ref, str(cleanup_error))
            raise PersistenceError(f"Could not finish post: {e}") from e

        job.content_ref = content_ref
        logger.info("Job %s: post %s created (%r)", job.job_id, content_ref, title, extra={"job_id": job.job_id})

    async def _image(self, job: GenerationJob, flags: StepFlags) -> None:
        """
        Generate and attach the featured image. A failure here does not fail
        the job: the post already exists, so the job completes without an image.
        """
        title = job.data.title or extract_title(job.topic, job.data.outline or "")
        ai = await self.get_ai_client()
        try:
            result = await ai.generate_image(
                image_prompt(extract_visual_concept(title)),
                model=await self._settings.get("image_model"),
                size=await self._settings.get("image_size"),
                quality=await self._settings.get("image_quality"),
            )
        except ProviderError as e:
            logger.warning("Job %s: image generation failed, continuing without image: %s", job.job_id, e.message)
            job.data.image_result = {"error": e.to_dict(), "cost_usd": 0.0}
            return

        job.data.image_result = dict(result)
        if self._media is None:
            logger.warning("Job %s: no media store configured, image not attached", job.job_id)
            return
        try:
            asset_ref = await self._media.fetch_and_attach(
                result["url"], featured_image_filename(title), job.content_ref, alt_text=title,
            )
            await self._content.set_featured_image(job.content_ref, asset_ref)
        except Exception as e:
            logger.warning("Job %s: could not attach image: %s", job.job_id, str(e))
            job.data.image_result["error"] = {"kind": "persistence", "message": str(e)}
            return
        job.data.image_result["asset_ref"] = asset_ref
