import logging
from datetime import datetime
from typing import Optional

from apscheduler.schedulers.background import BackgroundScheduler
from apscheduler.triggers.interval import IntervalTrigger

from app.config import settings, LoanPolicy
from app.database import SessionLocal
from app.services import loans, sanctions
from app.services.queue_ledger import resource_queue, event_waitlist
from app.utils.timezone import now_local

logger = logging.getLogger("sweeper")

SWEEP_JOB_ID = "wellness_sweep_job"


def run_sweep(session_factory=SessionLocal, policy: Optional[LoanPolicy] = None,
              now: Optional[datetime] = None) -> dict:
    """Time-driven transitions: queue windows, overdue loans, unclaimed pickups and elapsed sanctions.

    Each step runs in its own units of work; a failing step is logged and the
    remaining steps still run.
    """
    policy = policy or settings.loan_policy()
    now = now or now_local()
    logger.info(f"Running sweep at {now}")
    counts = {"queueExpired": 0, "waitlistExpired": 0, "overdue": 0, "unclaimed": 0, "sanctionsCompleted": 0, "errors": 0}

    steps = (
        ("queueExpired", lambda db: resource_queue.expire_due(db, policy, now)),
        ("waitlistExpired", lambda db: event_waitlist.expire_due(db, policy, now)),
        ("overdue", lambda db: loans.mark_overdue(db, now)),
        ("unclaimed", lambda db: loans.expire_unclaimed(db, policy, now)),
        ("sanctionsCompleted", lambda db: sanctions.complete_elapsed(db, now)),
    )
    db = session_factory()
    try:
        for key, step in steps:
            try:
                counts[key] = len(step(db))
            except Exception:
                logger.error(f"Sweep step '{key}' failed", exc_info=True)
                db.rollback()
                counts["errors"] += 1
    finally:
        db.close()

    logger.info(
        f"Sweep finished. Queue expired: {counts['queueExpired']}, Waitlist expired: {counts['waitlistExpired']}, "
        f"Overdue: {counts['overdue']}, Unclaimed: {counts['unclaimed']}, "
        f"Sanctions completed: {counts['sanctionsCompleted']}, Errors: {counts['errors']}"
    )
    return counts


def create_scheduler() -> BackgroundScheduler:
    scheduler = BackgroundScheduler(timezone=settings.timezone)
    scheduler.add_job(
        run_sweep,
        trigger=IntervalTrigger(minutes=settings.sweep_interval_minutes),
        id=SWEEP_JOB_ID,
        name="Expire queue notifications and loans",
        replace_existing=True,
        max_instances=1,
        misfire_grace_time=60 * settings.sweep_interval_minutes,
    )
    return scheduler
