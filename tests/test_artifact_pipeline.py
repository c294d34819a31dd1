import os

import pytest

from services.artifact_models import Language
from services.artifact_pipeline import ArtifactPipeline
from services.config_manager import ServiceSettings
from services.errors import (
    FileAlreadyExistsError,
    MalformedContentError,
    PathTraversalError,
    ProjectRootNotSetError,
)


def test_scenario_decorated_module(pipeline, project_dir):
    result = pipeline.submit_artifact("// src/util/math.js\nexport const add=(a,b)=>a+b;", "code1.js", "javascript")

    assert result.relative_path == "src/util/math.js"
    assert (project_dir / "src/util/math.js").read_text() == "export const add=(a,b)=>a+b;"
    assert result.metadata.has_exports is True
    assert result.metadata.language == Language.JAVASCRIPT
    assert result.duplicate is False


def test_undecorated_submission_uses_directory_table(pipeline, project_dir):
    result = pipeline.submit_artifact('{"b":1,"a":2}', "settings.json")
    assert result.relative_path == "src/data/settings.json"
    assert (project_dir / "src/data/settings.json").read_text() == '{\n  "b": 1,\n  "a": 2\n}'


def test_destination_extension_wins_over_hint(pipeline, project_dir):
    result = pipeline.submit_artifact("print('x')", "tool.py", "javascript")
    assert result.metadata.language == Language.PYTHON
    assert (project_dir / "src/tool.py").read_text().startswith("# -*- coding: utf-8 -*-\n")


def test_hint_used_for_unmapped_extension(pipeline):
    result = pipeline.submit_artifact("SELECT 1;", "query.unknownext", "sql")
    assert result.metadata.language == Language.SQL


def test_resubmission_is_idempotent(pipeline, project_dir):
    raw = "// src/a.js\nconst a = 1;"
    first = pipeline.submit_artifact(raw, "code1.js")
    second = pipeline.submit_artifact(raw, "code1.js")

    assert first.duplicate is False
    assert second.duplicate is True
    assert second.backup_created is False
    assert os.listdir(project_dir / ".claude-backups") == []

    entries = pipeline.ledger.entries()
    assert len(entries) == 1
    assert entries[0].times_seen == 2
    assert entries[0].last_seen_at >= entries[0].first_seen_at


def test_duplicate_still_restores_changed_file(pipeline, project_dir):
    raw = "// notes/a.txt\nkeep me"
    pipeline.submit_artifact(raw, "x.txt")
    (project_dir / "notes/a.txt").write_text("edited locally")

    result = pipeline.submit_artifact(raw, "x.txt")
    assert result.duplicate is True
    assert result.backup_created is True
    assert (project_dir / "notes/a.txt").read_text() == "keep me"
    backups = os.listdir(project_dir / ".claude-backups")
    assert (project_dir / ".claude-backups" / backups[0]).read_text() == "edited locally"


def test_changed_content_creates_one_backup(pipeline, project_dir):
    pipeline.submit_artifact("// a.txt\nA", "")
    result = pipeline.submit_artifact("// a.txt\nB", "")
    assert result.backup_created is True
    backups = os.listdir(project_dir / ".claude-backups")
    assert len(backups) == 1
    assert (project_dir / ".claude-backups" / backups[0]).read_text() == "A"


def test_counters_track_failures(pipeline, project_dir):
    pipeline.submit_artifact("ok", "a.txt")
    with pytest.raises(PathTraversalError):
        pipeline.submit_artifact("// ../../evil.js\nx", "code1.js")
    with pytest.raises(FileAlreadyExistsError):
        pipeline.submit_artifact("other", "a.txt", overwrite=False)

    stats = pipeline.query_stats()
    assert stats.total_processed == 3
    assert stats.successful_extractions == 1
    assert stats.failed_extractions == 2
    assert len(pipeline.ledger.entries()) == 1


def test_submit_without_root_counts_failure(settings):
    pipeline = ArtifactPipeline(settings)
    with pytest.raises(ProjectRootNotSetError):
        pipeline.submit_artifact("x", "a.txt")
    assert pipeline.query_stats().failed_extractions == 1


def test_non_text_content_is_malformed(pipeline):
    with pytest.raises(MalformedContentError):
        pipeline.submit_artifact(None, "a.txt")
    assert pipeline.query_stats().failed_extractions == 1


def test_is_duplicate_is_advisory(pipeline):
    verdict = pipeline.is_duplicate("// a.js\nx", "")
    assert verdict["duplicate"] is False
    assert verdict["relative_path"] == "a.js"

    pipeline.submit_artifact("// a.js\nx", "")
    verdict = pipeline.is_duplicate("// a.js\nx", "")
    assert verdict["duplicate"] is True
    assert verdict["last_seen_at"] is not None
    # Lookups never count as attempts
    assert pipeline.query_stats().total_processed == 1


def test_root_change_drops_ledger_but_keeps_counters(pipeline, tmp_path):
    pipeline.submit_artifact("x", "a.txt")
    pipeline.set_project_root(str(tmp_path / "other"))
    assert pipeline.ledger.entries() == []
    assert pipeline.query_stats().successful_extractions == 1
    assert pipeline.writer.get_stats()["files_written"] == 0


def test_reset_stats(pipeline):
    pipeline.submit_artifact("x", "a.txt")
    pipeline.reset_stats()
    assert pipeline.query_stats().total_processed == 0
    assert pipeline.ledger.entries() == []
    assert pipeline.writer.get_stats()["files_written"] == 0


def test_backups_can_be_disabled_by_settings(project_dir):
    pipeline = ArtifactPipeline(ServiceSettings(create_backups=False))
    pipeline.set_project_root(str(project_dir))
    pipeline.submit_artifact("A", "a.txt")
    result = pipeline.submit_artifact("B", "a.txt")
    assert result.backup_created is False


def test_instances_are_isolated(settings, tmp_path):
    first = ArtifactPipeline(settings)
    second = ArtifactPipeline(settings)
    first.set_project_root(str(tmp_path / "one"))
    second.set_project_root(str(tmp_path / "two"))
    first.submit_artifact("x", "a.txt")
    assert second.query_stats().total_processed == 0
    assert second.ledger.entries() == []


def test_status(pipeline, project_dir):
    status = pipeline.status()
    assert status["status"] == "running"
    assert status["project_root"] == os.path.realpath(str(project_dir))
    assert status["uptime"] >= 0


@pytest.mark.parametrize("content, name, error", [
    ("x", "a\x00b.txt", PathTraversalError),
    ("bad \ud800 text", "a.txt", MalformedContentError),
])
def test_unwritable_input_counts_as_failure(pipeline, project_dir, content, name, error):
    with pytest.raises(error):
        pipeline.submit_artifact(content, name)
    stats = pipeline.query_stats()
    assert stats.total_processed == 1
    assert stats.failed_extractions == 1
    assert os.listdir(project_dir) == [".claude-backups"]
