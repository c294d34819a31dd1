# --- START OF FILE services/scheduler_service.py ---
"""
Background maintenance for the extractor: periodic deletion of old backups.

One BackgroundScheduler per process, owned by this module and driven from
main.py. The job only ever touches the pipeline's current project root.
"""
from typing import Any

import pytz
from apscheduler.events import EVENT_JOB_ERROR, EVENT_JOB_MISSED
from apscheduler.executors.pool import ThreadPoolExecutor
from apscheduler.schedulers.background import BackgroundScheduler

from tools.logger import log_info, log_error, log_warning

BACKUP_CLEANUP_JOB_ID = "backup_cleanup"
SCHEDULER_TIMEZONE = pytz.utc

_scheduler: BackgroundScheduler | None = None


def get_scheduler() -> BackgroundScheduler | None:
    return _scheduler


def _on_job_event(event):
    fn_name = "_on_job_event"
    if event.code == EVENT_JOB_MISSED:
        log_warning("scheduler_service", fn_name, f"Run of '{event.job_id}' missed its slot (scheduled {event.scheduled_run_time}).")
    elif event.exception:
        log_error("scheduler_service", fn_name, f"Job '{event.job_id}' raised {event.exception!r}\n{event.traceback}")


def _run_backup_cleanup(pipeline: Any):
    fn_name = "_run_backup_cleanup"
    if not pipeline.project_root:
        log_info("scheduler_service", fn_name, "No project root yet, nothing to clean.")
        return
    try:
        report = pipeline.cleanup_backups()
    except OSError as cleanup_err:
        log_error("scheduler_service", fn_name, f"Backup cleanup under {pipeline.project_root} failed", cleanup_err)
        return
    if report.errors:
        log_warning("scheduler_service", fn_name, f"{report.errors} backup(s) could not be removed.")


def start_scheduler(pipeline: Any, interval_hours: float | None = None) -> bool:
    """Schedules backup cleanup every ``interval_hours`` (settings value by default). 0 disables it."""
    global _scheduler
    fn_name = "start_scheduler"

    if _scheduler is not None and _scheduler.running:
        log_warning("scheduler_service", fn_name, "Already running, ignoring second start.")
        return True

    hours = pipeline.settings.backup_cleanup_interval_hours if interval_hours is None else interval_hours
    if not hours:
        log_info("scheduler_service", fn_name, "Backup cleanup interval is 0, not starting the scheduler.")
        return False

    try:
        candidate = BackgroundScheduler(
            executors={"default": ThreadPoolExecutor(1)},
            job_defaults={"coalesce": True, "max_instances": 1},
            timezone=SCHEDULER_TIMEZONE,
        )
        candidate.add_job(
            _run_backup_cleanup,
            trigger="interval",
            hours=hours,
            args=[pipeline],
            id=BACKUP_CLEANUP_JOB_ID,
            name="Backup cleanup",
            replace_existing=True,
        )
        candidate.add_listener(_on_job_event, EVENT_JOB_ERROR | EVENT_JOB_MISSED)
        candidate.start()
    except Exception as start_err:
        log_error("scheduler_service", fn_name, f"Could not start APScheduler: {start_err}", start_err)
        _scheduler = None
        return False

    _scheduler = candidate
    log_info("scheduler_service", fn_name, f"Backup cleanup scheduled every {hours}h (max age {pipeline.settings.backup_max_age_days} days).")
    return True


def shutdown_scheduler():
    global _scheduler
    fn_name = "shutdown_scheduler"
    current, _scheduler = _scheduler, None
    if current is None:
        log_info("scheduler_service", fn_name, "Scheduler was never started.")
        return
    if not current.running:
        log_info("scheduler_service", fn_name, "Scheduler already stopped.")
        return
    try:
        # Running cleanups are short; do not block process exit on them
        current.shutdown(wait=False)
        log_info("scheduler_service", fn_name, "Scheduler stopped.")
    except Exception as stop_err:
        log_error("scheduler_service", fn_name, f"Error while stopping the scheduler: {stop_err}", stop_err)

# --- END OF FILE services/scheduler_service.py ---
