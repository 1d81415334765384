# worker/runner.py
import time
import logging
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Callable, List, Optional

from sqlalchemy.orm import Session

from ai_magellan.core.config import settings
from ai_magellan.core.timeutil import utcnow
from ai_magellan.db.session import Base, SessionLocal, engine
from ai_magellan.models import SchedulerState
from ai_magellan.worker.health_check import run_health_check
from ai_magellan.worker.maintenance import cleanup_dead_links

logger = logging.getLogger("worker")


@dataclass(frozen=True)
class Job:
    name: str
    interval: Callable[[], timedelta]
    run: Callable[[Session], object]


JOBS = [
    Job(
        name="health_check",
        interval=lambda: timedelta(hours=settings.health_check_interval_hours),
        run=lambda db: run_health_check(db, limit=settings.default_batch_limit),
    ),
    Job(
        name="dead_link_cleanup",
        interval=lambda: timedelta(days=settings.dead_link_cleanup_interval_days),
        run=cleanup_dead_links,
    ),
]


def _get_state(db: Session, name: str) -> SchedulerState:
    state = db.get(SchedulerState, name)
    if state is None:
        state = SchedulerState(job_name=name)
        db.add(state)
        db.commit()
    return state


def run_due_jobs(db: Session, now: Optional[datetime] = None, jobs: Optional[List[Job]] = None) -> List[str]:
    """
    Run every job whose persisted next_run_at is missing or already passed.
    Returns the names of the jobs that ran. A failing job is recorded and
    rescheduled; the remaining jobs still run.
    """
    if now is None:
        now = utcnow()
    if jobs is None:
        jobs = JOBS

    ran = []
    for job in jobs:
        state = _get_state(db, job.name)
        if state.next_run_at is not None and state.next_run_at > now:
            continue

        logger.info("Job %s start", job.name)
        try:
            job.run(db)
            status, error = "ok", None
            logger.info("Job %s done", job.name)
        except Exception as e:
            logger.exception("Job %s failed: %s", job.name, e)
            db.rollback()
            status, error = "error", str(e)[:500]

        state.last_run_at = now
        state.last_status = status
        state.last_error = error
        state.next_run_at = now + job.interval()
        db.commit()
        ran.append(job.name)

    return ran


def main_loop() -> None:
    logging.basicConfig(level=logging.INFO)

    if not settings.is_production:
        logger.info("Scheduled jobs only run in production (environment=%s)", settings.environment)
        return

    Base.metadata.create_all(bind=engine)
    logger.info(
        "Worker started, poll=%s sec, timeout=%s sec, batch_limit=%s",
        settings.scheduler_poll_seconds,
        settings.request_timeout,
        settings.default_batch_limit,
    )
    while True:
        db = SessionLocal()
        try:
            ran = run_due_jobs(db)
            if ran:
                logger.info("Worker ran jobs: %s", ", ".join(ran))
        except Exception as e:
            logger.exception("Error in worker loop: %s", e)
            db.rollback()
        finally:
            db.close()

        time.sleep(settings.scheduler_poll_seconds)


if __name__ == "__main__":
    main_loop()
