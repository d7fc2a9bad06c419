"""Alert evaluation and digest scheduler."""

import asyncio

import structlog
from apscheduler.schedulers.asyncio import AsyncIOScheduler

from alert_engine.core.clock import utcnow
from alert_engine.core.config import get_settings
from alert_engine.core.database import get_session_factory
from alert_engine.services.digest_scheduler import DigestScheduler
from alert_engine.services.evaluation_engine import EvaluationEngine

logger = structlog.get_logger()

# Get settings
settings = get_settings()


async def run_alert_evaluation():
    """Cron job evaluating every enabled alert rule once."""
    try:
        await EvaluationEngine(session_factory=get_session_factory()).run_tick(utcnow())
    except Exception as e:
        logger.error("Alert evaluation tick failed", error=str(e), exc_info=True)


async def run_digest_flush():
    """Cron job sending due email digests."""
    async with get_session_factory()() as db:
        try:
            await DigestScheduler(db).run(utcnow())
        except Exception as e:
            logger.error("Digest flush failed", error=str(e), exc_info=True)


# Initialize scheduler
scheduler = AsyncIOScheduler(timezone="UTC")

# An overrunning tick is skipped rather than stacked
scheduler.add_job(
    run_alert_evaluation,
    "interval",
    minutes=settings.ALERT_EVALUATION_INTERVAL_MINUTES,
    id="alert_evaluation",
    max_instances=1,
    coalesce=True,
    replace_existing=True,
)

scheduler.add_job(
    run_digest_flush,
    "interval",
    minutes=settings.DIGEST_CHECK_INTERVAL_MINUTES,
    id="alert_digest_flush",
    max_instances=1,
    coalesce=True,
    replace_existing=True,
)


def start_scheduler():
    """Start the cron scheduler."""
    scheduler.start()
    logger.info(
        "Alert scheduler started",
        evaluation_interval_minutes=settings.ALERT_EVALUATION_INTERVAL_MINUTES,
        digest_interval_minutes=settings.DIGEST_CHECK_INTERVAL_MINUTES,
    )


def stop_scheduler():
    """Stop the cron scheduler."""
    if scheduler.running:
        scheduler.shutdown(wait=False)
    logger.info("Alert scheduler stopped")


async def _run_forever():
    start_scheduler()
    try:
        await asyncio.Event().wait()
    finally:
        stop_scheduler()


# Command to run jobs manually or the scheduler standalone
if __name__ == "__main__":
    import sys

    from alert_engine.core.logging_config import configure_logging

    configure_logging(settings.LOG_LEVEL)
    command = sys.argv[1] if len(sys.argv) > 1 else "run"

    if command == "tick":
        asyncio.run(run_alert_evaluation())
    elif command == "digest":
        asyncio.run(run_digest_flush())
    elif command == "run":
        asyncio.run(_run_forever())
    else:
        print("Usage: python -m alert_engine.cron.alert_scheduler [run|tick|digest]")
        sys.exit(1)
