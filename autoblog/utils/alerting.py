"""
Budget and scheduler alerting.

Alert channels:
1. Structured log (always)
2. Webhook (configurable) - Discord/Slack URL via ALERT_WEBHOOK_URL env var

Rate limiting: per-type cooldowns stored in Redis (SET NX EX), so a budget
alert fires at most once per type per day.
"""
import logging
from typing import Optional

logger = logging.getLogger(__name__)

ALERT_COOLDOWN_SECONDS = 86400

_local_cooldowns: dict[str, float] = {}


class AlertType:
    BUDGET_WARNING = "budget_warning"
    BUDGET_EXCEEDED = "budget_exceeded"
    GENERATION_FAILED = "generation_failed"


async def send_alert(
    alert_type: str,
    message: str,
    severity: str = "error",
    extra: Optional[dict] = None,
    recipient: Optional[str] = None,
) -> bool:
    """
    Send an alert through all configured channels.
    Returns False when the alert was suppressed by its cooldown.
    """
    if not await _acquire_cooldown(alert_type):
        return False

    from autoblog.utils.logging import get_correlation_id
    cid = get_correlation_id()

    log_message = f"ALERT [{alert_type}]: {message}"
    if recipient:
        log_message += f" (recipient={recipient})"
    if severity == "critical":
        logger.critical(log_message)
    elif severity == "warning":
        logger.warning(log_message)
    else:
        logger.error(log_message)

    await _send_webhook_alert(alert_type, message, severity, cid, extra)
    return True


async def _acquire_cooldown(alert_type: str) -> bool:
    """Atomically check-and-set the cooldown. True if the alert should go out."""
    import time

    try:
        from autoblog.utils.redis_client import get_redis, make_key
        redis = await get_redis()
        acquired = await redis.set(
            make_key("alert_cooldown", alert_type), "1", nx=True, ex=ALERT_COOLDOWN_SECONDS,
        )
        return bool(acquired)
    except Exception as e:
        logger.debug("Alert cooldown Redis check failed, using in-memory fallback: %s", str(e))
        now = time.monotonic()
        if now < _local_cooldowns.get(alert_type, 0):
            return False
        _local_cooldowns[alert_type] = now + ALERT_COOLDOWN_SECONDS
        return True


async def _send_webhook_alert(
    alert_type: str,
    message: str,
    severity: str,
    correlation_id: Optional[str],
    extra: Optional[dict],
) -> None:
    """Send alert to configured webhook (Discord/Slack)."""
    try:
        from autoblog.config import get_settings
        webhook_url = get_settings().alert_webhook_url
        if not webhook_url:
            return

        import httpx

        content = f"[{severity.upper()}] **{alert_type}**\n{message}"
        if correlation_id:
            content += f"\n`correlation_id: {correlation_id}`"
        for key, val in (extra or {}).items():
            content += f"\n`{key}: {val}`"

        async with httpx.AsyncClient(timeout=5.0) as client:
            await client.post(webhook_url, json={"content": content})
    except Exception as e:
        logger.warning("Failed to send webhook alert: %s", str(e))
