import os
import time

from services import scheduler_service
from services.artifact_pipeline import ArtifactPipeline
from services.config_manager import ServiceSettings


def test_disabled_interval_does_not_start(settings):
    pipeline = ArtifactPipeline(settings)
    assert scheduler_service.start_scheduler(pipeline) is False
    assert scheduler_service.get_scheduler() is None


def test_start_and_shutdown(project_dir):
    pipeline = ArtifactPipeline(ServiceSettings(backup_cleanup_interval_hours=1))
    try:
        assert scheduler_service.start_scheduler(pipeline) is True
        job = scheduler_service.get_scheduler().get_job(scheduler_service.BACKUP_CLEANUP_JOB_ID)
        assert job is not None
        # Second start is a no-op
        assert scheduler_service.start_scheduler(pipeline) is True
    finally:
        scheduler_service.shutdown_scheduler()
    assert scheduler_service.get_scheduler() is None


def test_cleanup_job_body(pipeline, project_dir):
    pipeline.submit_artifact("A", "a.txt")
    pipeline.submit_artifact("B", "a.txt")
    (backup,) = (project_dir / ".claude-backups").iterdir()
    old = time.time() - 30 * 24 * 60 * 60
    os.utime(backup, (old, old))

    scheduler_service._run_backup_cleanup(pipeline)
    assert list((project_dir / ".claude-backups").iterdir()) == []


def test_cleanup_job_without_root(settings):
    # Must not raise
    scheduler_service._run_backup_cleanup(ArtifactPipeline(settings))
