"""
Planificateur de tâches de fond (thread daemon).

Job par défaut ``auto-generate-journal`` : à chaque tick, génère le journal
des utilisateurs dont l'heure ``schedule_time`` correspond à l'heure courante
(à une minute près), au plus une fois par utilisateur et par jour.
"""

import logging
import threading
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Callable, Dict, List, Optional

from sqlalchemy.orm import Session

from gtd.core import database
from gtd.core.config import settings as app_settings
from gtd.models.user import User
from gtd.services.journal_generator import TRIGGER_SCHEDULE, generate_for_users, policy_block_reason
from gtd.services.user_settings import parse_settings

logger = logging.getLogger(__name__)

JOURNAL_JOB_ID = "auto-generate-journal"
SCHEDULE_TOLERANCE_MINUTES = 1


@dataclass
class ScheduledJob:
    id: str
    name: str
    interval_seconds: int
    handler: Callable[..., None]
    enabled: bool = True
    last_run_at: Optional[datetime] = None
    last_error: str = ""

    def next_run(self, now: datetime) -> Optional[datetime]:
        if not self.enabled:
            return None
        if self.last_run_at is None:
            return now
        return self.last_run_at + timedelta(seconds=self.interval_seconds)


def _minutes(hhmm: str) -> int:
    hour, minute = hhmm.split(":")
    return int(hour) * 60 + int(minute)


def is_schedule_due(schedule_time: str, now: datetime) -> bool:
    current = now.hour * 60 + now.minute
    return abs(current - _minutes(schedule_time)) <= SCHEDULE_TOLERANCE_MINUTES


def _run_key(now: datetime, schedule_time: str) -> str:
    return f"{now.date().isoformat()}@{schedule_time}"


class TaskScheduler:
    def __init__(self, poll_seconds: int = None):
        self.poll_seconds = poll_seconds or app_settings.SCHEDULER_POLL_SECONDS
        self._jobs: Dict[str, ScheduledJob] = {}
        self._lock = threading.Lock()
        self._stop_event = threading.Event()
        self._thread: Optional[threading.Thread] = None
        # user_id -> clé du dernier passage planifié
        self._last_run_keys: Dict[int, str] = {}

        self.register_job(ScheduledJob(
            id=JOURNAL_JOB_ID,
            name="Auto-generate daily journal",
            interval_seconds=60,
            handler=self.handle_auto_generate_journal,
        ))

    @property
    def running(self) -> bool:
        return self._thread is not None and self._thread.is_alive()

    def register_job(self, job: ScheduledJob) -> None:
        with self._lock:
            self._jobs[job.id] = job
        logger.info(f"Registered job {job.id} ({job.name}) every {job.interval_seconds}s")

    # ============ CYCLE DE VIE ============

    def start(self) -> None:
        if self.running:
            logger.warning("Scheduler already running")
            return
        self._stop_event.clear()
        self._thread = threading.Thread(target=self._loop, name="gtd-scheduler", daemon=True)
        self._thread.start()
        enabled = sum(1 for job in self._jobs.values() if job.enabled)
        logger.info(f"Scheduler started with {enabled} enabled jobs (poll={self.poll_seconds}s)")

    def stop(self, timeout: float = 5.0) -> None:
        if not self.running:
            return
        self._stop_event.set()
        self._thread.join(timeout)
        self._thread = None
        logger.info("Scheduler stopped")

    def _loop(self) -> None:
        while not self._stop_event.wait(self.poll_seconds):
            self.tick()

    def tick(self, now: datetime = None) -> List[str]:
        """Exécute les jobs arrivés à échéance, retourne leurs ids."""
        now = now or datetime.now()
        with self._lock:
            due = [job for job in self._jobs.values() if job.enabled and job.next_run(now) <= now]
        for job in due:
            self._execute(job, manual=False, now=now)
        return [job.id for job in due]

    def _execute(self, job: ScheduledJob, manual: bool, now: datetime) -> bool:
        started = datetime.now()
        job.last_run_at = now
        try:
            job.handler(manual=manual, now=now)
        except Exception as e:
            job.last_error = str(e)
            logger.exception(f"Job {job.id} failed")
            return False
        job.last_error = ""
        elapsed_ms = int((datetime.now() - started).total_seconds() * 1000)
        logger.debug(f"Job {job.id} done in {elapsed_ms}ms (manual={manual})")
        return True

    # ============ API ============

    def get_status(self, now: datetime = None) -> dict:
        now = now or datetime.now()
        with self._lock:
            jobs = list(self._jobs.values())
        return {
            "is_running": self.running,
            "poll_seconds": self.poll_seconds,
            "jobs": [
                {
                    "id": job.id,
                    "name": job.name,
                    "interval_seconds": job.interval_seconds,
                    "enabled": job.enabled,
                    "last_run_at": job.last_run_at,
                    "next_run": job.next_run(now),
                    "last_error": job.last_error or None,
                }
                for job in jobs
            ],
        }

    def execute_manually(self, job_id: str, now: datetime = None) -> bool:
        job = self._jobs.get(job_id)
        if job is None:
            logger.warning(f"Manual run requested for unknown job {job_id}")
            return False
        logger.info(f"Manual run of job {job_id}")
        return self._execute(job, manual=True, now=now or datetime.now())

    # ============ JOB JOURNAL ============

    def due_user_ids(self, db: Session, now: datetime, manual: bool = False) -> List[int]:
        due = []
        for user in db.query(User).all():
            prefs = parse_settings(user.settings, user.id).auto_journal_generation
            if policy_block_reason(prefs, TRIGGER_SCHEDULE):
                continue
            if manual:
                due.append(user.id)
                continue
            if not is_schedule_due(prefs.schedule_time, now):
                continue
            key = _run_key(now, prefs.schedule_time)
            if self._last_run_keys.get(user.id) == key:
                continue
            self._last_run_keys[user.id] = key
            due.append(user.id)
        return due

    def handle_auto_generate_journal(self, manual: bool = False, now: datetime = None) -> dict:
        now = now or datetime.now()
        db = database.SessionLocal()
        try:
            user_ids = self.due_user_ids(db, now, manual)
            if not user_ids:
                if manual or now.minute % 10 == 0:
                    logger.info(f"Journal job at {now:%H:%M}: no user to process")
                return {"success": 0, "failed": 0, "skipped": 0, "total": 0}
            result = generate_for_users(db, now, user_ids=user_ids)
            logger.info(
                f"Journal job at {now:%H:%M}: processed={len(user_ids)} "
                f"success={result['success']} failed={result['failed']}"
            )
            return result
        finally:
            db.close()


def schedule_stats(db: Session) -> dict:
    """Répartition des heures de génération (écran admin)."""
    distribution: Dict[str, int] = {}
    enabled, disabled = 0, 0
    users = db.query(User).all()
    for user in users:
        prefs = parse_settings(user.settings, user.id).auto_journal_generation
        if prefs.enabled and prefs.daily_schedule:
            enabled += 1
            distribution[prefs.schedule_time] = distribution.get(prefs.schedule_time, 0) + 1
        else:
            disabled += 1

    most_common = app_settings.DEFAULT_SCHEDULE_TIME
    if distribution:
        most_common = max(distribution.items(), key=lambda kv: kv[1])[0]

    return {
        "total_users": len(users),
        "enabled_users": enabled,
        "disabled_users": disabled,
        "schedule_distribution": distribution,
        "most_common_time": most_common,
    }


task_scheduler = TaskScheduler()
