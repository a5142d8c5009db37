"""
Stats API - cost ledger totals, generation log listing and CSV export.
"""
import logging
from datetime import datetime, timezone
from typing import Optional

from fastapi import APIRouter, Depends, Query
from fastapi.responses import StreamingResponse

from autoblog.api.deps import get_cost_ledger
from autoblog.services.cost_tracker import DatabaseCostLedger

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/v1/stats", tags=["stats"])


@router.get("")
async def get_stats(ledger: DatabaseCostLedger = Depends(get_cost_ledger)):
    data = await ledger.stats()
    data["within_budget"] = await ledger.within_budget()
    data["can_generate_today"] = await ledger.can_generate_today()
    return {"success": True, "data": data}


@router.get("/logs")
async def list_logs(
    status: Optional[str] = Query(None),
    model: Optional[str] = Query(None),
    limit: int = Query(20, ge=1, le=200),
    offset: int = Query(0, ge=0),
    ledger: DatabaseCostLedger = Depends(get_cost_ledger),
):
    rows, total = await ledger.list_entries(status=status, model=model, limit=limit, offset=offset)
    return {
        "success": True,
        "data": [
            {
                "id": str(row.id),
                "job_id": row.job_id,
                "content_ref": row.content_ref,
                "model": row.model_used,
                "total_tokens": row.total_tokens,
                "cost_usd": row.cost_usd,
                "image_cost_usd": row.image_cost_usd,
                "generation_time": row.generation_time,
                "source": row.topic_source,
                "status": row.status,
                "error": row.error_message,
                "created_at": row.created_at.isoformat() if row.created_at else None,
            }
            for row in rows
        ],
        "meta": {"total": total, "limit": limit, "offset": offset},
    }


@router.get("/export")
async def export_logs(
    date_from: Optional[datetime] = Query(None),
    date_to: Optional[datetime] = Query(None),
    ledger: DatabaseCostLedger = Depends(get_cost_ledger),
):
    """Download the generation log as CSV."""
    content = await ledger.export_csv(date_from=date_from, date_to=date_to)
    filename = f"generation-logs-{datetime.now(timezone.utc):%Y-%m-%d}.csv"
    return StreamingResponse(
        iter([content]),
        media_type="text/csv",
        headers={"Content-Disposition": f'attachment; filename="{filename}"'},
    )
