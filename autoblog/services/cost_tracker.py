"""
Cost ledger - records every generation's token usage and cost, and answers
the budget questions the scheduler gates on.

Budget alerts: at 80% of the monthly limit a warning is sent; at 100% an
"exceeded" alert is sent and scheduled generation is switched off. Each
alert type fires at most once per day (see utils/alerting.py cooldowns).
"""
import csv
import io
import logging
from datetime import datetime, timedelta, timezone
from typing import Callable, Optional

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import async_sessionmaker

from autoblog.config import Settings, get_settings
from autoblog.integrations.base import CostLedger, SettingsProvider
from autoblog.models.generation_log import GenerationLog
from autoblog.utils.alerting import AlertType, send_alert

logger = logging.getLogger(__name__)

MAX_EXPORT_ROWS = 10000

_LEDGER_FIELDS = (
    "job_id", "content_ref", "model_used", "prompt_tokens", "completion_tokens",
    "total_tokens", "cost_usd", "image_cost_usd", "generation_time",
    "topic_source", "status", "error_message",
)


def _total_cost():
    return func.coalesce(func.sum(GenerationLog.cost_usd + GenerationLog.image_cost_usd), 0.0)


class DatabaseCostLedger(CostLedger):
    """CostLedger over the generation_logs table."""

    def __init__(
        self,
        session_factory: async_sessionmaker,
        settings: SettingsProvider,
        clock: Optional[Callable[[], datetime]] = None,
        config: Optional[Settings] = None,
    ):
        self._session_factory = session_factory
        self._settings = settings
        self.warning_ratio = (config or get_settings()).budget_warning_ratio
        self._clock = clock or (lambda: datetime.now(timezone.utc))

    def _day_start(self) -> datetime:
        return self._clock().replace(hour=0, minute=0, second=0, microsecond=0)

    def _week_start(self) -> datetime:
        today = self._day_start()
        return today - timedelta(days=today.weekday())

    def _month_start(self) -> datetime:
        return self._day_start().replace(day=1)

    async def append(self, entry: dict) -> None:
        row = GenerationLog(**{key: entry[key] for key in _LEDGER_FIELDS if key in entry})
        row.created_at = self._clock()
        if not row.total_tokens:
            row.total_tokens = (row.prompt_tokens or 0) + (row.completion_tokens or 0)

        async with self._session_factory() as db:
            db.add(row)
            await db.commit()

        logger.info(
            "Ledger entry: status=%s model=%s cost=$%.6f image=$%.6f",
            row.status, row.model_used, row.cost_usd or 0.0, row.image_cost_usd or 0.0,
        )
        if row.status == "success":
            await self.check_budget()

    async def _success_totals(self, since: Optional[datetime] = None) -> tuple[int, float]:
        query = select(func.count(), _total_cost()).where(GenerationLog.status == "success")
        if since is not None:
            query = query.where(GenerationLog.created_at >= since)
        async with self._session_factory() as db:
            count, cost = (await db.execute(query)).one()
        return int(count or 0), float(cost or 0.0)

    async def monthly_cost(self) -> float:
        _, cost = await self._success_totals(self._month_start())
        return cost

    async def posts_today(self) -> int:
        count, _ = await self._success_totals(self._day_start())
        return count

    async def can_generate_today(self) -> bool:
        max_per_day = await self._settings.get("max_posts_per_day")
        return await self.posts_today() < max_per_day

    async def within_budget(self) -> bool:
        limit = await self._settings.get("budget_limit")
        if limit <= 0:
            return True
        return await self.monthly_cost() < limit

    async def check_budget(self) -> Optional[str]:
        """Send budget alerts if thresholds are crossed. Returns the alert type sent."""
        limit = await self._settings.get("budget_limit")
        if limit <= 0:
            return None

        spent = await self.monthly_cost()
        ratio = spent / limit
        recipient = await self._settings.get("budget_alert_email") or None

        if ratio >= 1.0:
            await self._settings.set("schedule_enabled", False)
            logger.warning("Monthly budget exhausted ($%.2f of $%.2f), scheduling disabled", spent, limit)
            await send_alert(
                AlertType.BUDGET_EXCEEDED,
                f"Monthly AI spend ${spent:.2f} reached the ${limit:.2f} limit. Scheduled generation paused.",
                severity="critical",
                extra={"spent": round(spent, 4), "limit": limit},
                recipient=recipient,
            )
            return AlertType.BUDGET_EXCEEDED
        if ratio >= self.warning_ratio:
            await send_alert(
                AlertType.BUDGET_WARNING,
                f"Monthly AI spend ${spent:.2f} is {ratio:.0%} of the ${limit:.2f} limit.",
                severity="warning",
                extra={"spent": round(spent, 4), "limit": limit},
                recipient=recipient,
            )
            return AlertType.BUDGET_WARNING
        return None

    async def stats(self) -> dict:
        """All-time, month, week and today totals plus a per-model breakdown."""
        async with self._session_factory() as db:
            all_time = (await db.execute(
                select(
                    func.count(),
                    func.coalesce(func.sum(GenerationLog.total_tokens), 0),
                    _total_cost(),
                    func.avg(GenerationLog.cost_usd + GenerationLog.image_cost_usd),
                ).where(GenerationLog.status == "success")
            )).one()

            by_model = (await db.execute(
                select(
                    GenerationLog.model_used,
                    func.count(),
                    func.coalesce(func.sum(GenerationLog.total_tokens), 0),
                    _total_cost(),
                )
                .where(GenerationLog.status == "success")
                .group_by(GenerationLog.model_used)
                .order_by(func.count().desc())
            )).all()

            failed = (await db.execute(
                select(func.count()).where(GenerationLog.status == "failed")
            )).scalar() or 0

        month_posts, month_cost = await self._success_totals(self._month_start())
        week_posts, week_cost = await self._success_totals(self._week_start())
        today_posts, today_cost = await self._success_totals(self._day_start())

        return {
            "total_posts": int(all_time[0] or 0),
            "total_tokens": int(all_time[1] or 0),
            "total_cost": round(float(all_time[2] or 0.0), 6),
            "avg_cost": round(float(all_time[3] or 0.0), 6),
            "failed_generations": int(failed),
            "posts_this_month": month_posts,
            "cost_this_month": round(month_cost, 6),
            "posts_this_week": week_posts,
            "cost_this_week": round(week_cost, 6),
            "posts_today": today_posts,
            "cost_today": round(today_cost, 6),
            "by_model": [
                {"model": model, "count": int(count), "tokens": int(tokens), "cost": round(float(cost), 6)}
                for model, count, tokens, cost in by_model
            ],
        }

    async def list_entries(
        self,
        status: Optional[str] = None,
        model: Optional[str] = None,
        limit: int = 20,
        offset: int = 0,
    ) -> tuple[list[GenerationLog], int]:
        query = select(GenerationLog)
        count_query = select(func.count()).select_from(GenerationLog)
        if status:
            query = query.where(GenerationLog.status == status)
            count_query = count_query.where(GenerationLog.status == status)
        if model:
            query = query.where(GenerationLog.model_used == model)
            count_query = count_query.where(GenerationLog.model_used == model)

        async with self._session_factory() as db:
            rows = (await db.execute(
                query.order_by(GenerationLog.created_at.desc()).limit(limit).offset(offset)
            )).scalars().all()
            total = (await db.execute(count_query)).scalar() or 0
        return list(rows), int(total)

    async def export_csv(
        self,
        date_from: Optional[datetime] = None,
        date_to: Optional[datetime] = None,
    ) -> str:
        """Render ledger rows (newest first) as CSV. Empty string when there are none."""
        query = select(GenerationLog)
        if date_from is not None:
            query = query.where(GenerationLog.created_at >= date_from)
        if date_to is not None:
            query = query.where(GenerationLog.created_at <= date_to)

        async with self._session_factory() as db:
            rows = (await db.execute(
                query.order_by(GenerationLog.created_at.desc()).limit(MAX_EXPORT_ROWS)
            )).scalars().all()

        if not rows:
            return ""

        output = io.StringIO()
        writer = csv.writer(output)
        writer.writerow([
            "date", "content_ref", "model", "prompt_tokens", "completion_tokens",
            "total_tokens", "text_cost_usd", "image_cost_usd", "total_cost_usd",
            "generation_time_s", "source", "status", "error",
        ])
        for row in rows:
            writer.writerow([
                row.created_at.isoformat() if row.created_at else "",
                row.content_ref or "",
                row.model_used,
                row.prompt_tokens,
                row.completion_tokens,
                row.total_tokens,
                row.cost_usd,
                row.image_cost_usd,
                round((row.cost_usd or 0.0) + (row.image_cost_usd or 0.0), 6),
                row.generation_time,
                row.topic_source,
                row.status,
                row.error_message or "",
            ])
        return output.getvalue()
