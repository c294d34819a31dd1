# --- START OF FILE services/artifact_pipeline.py ---
"""
ArtifactPipeline ties the four stages together for one service instance:

    resolve path -> normalize content -> safe write -> ledger/counters

All mutable state (ledger, counters, writer statistics, project root) belongs
to the instance, so tests and embedders can run several pipelines side by side.
"""
import threading
import time
from typing import Any, Dict

import pydantic

from tools.logger import log_info, log_error, log_warning
from services.artifact_models import (
    ArtifactSubmission,
    CleanupReport,
    Language,
    NormalizedArtifact,
    ServiceCounters,
    WriteResult,
)
from services.config_manager import ServiceSettings
from services.content_normalizer import ContentNormalizer
from services.errors import ArtifactExtractorError, MalformedContentError
from services.extraction_ledger import ExtractionLedger, content_fingerprint
from services.file_writer import SafeFileWriter
from services.path_inference import PathInferenceEngine

SERVICE_VERSION = "1.0.0"


class ArtifactPipeline:

    def __init__(self, settings: ServiceSettings | None = None):
        self.settings = settings or ServiceSettings()
        self.path_engine = PathInferenceEngine()
        self.normalizer = ContentNormalizer()
        self.writer = SafeFileWriter(backup_dir_name=self.settings.backup_dir_name)
        self.ledger = ExtractionLedger()
        self.started_at = time.time()
        self._root_lock = threading.Lock()

    # === Project root ===

    @property
    def project_root(self) -> str | None:
        return self.writer.project_root

    def set_project_root(self, path: str) -> str:
        """Validates and switches the destination root. State tied to the old root is dropped."""
        with self._root_lock:
            previous = self.writer.project_root
            absolute_path = self.writer.set_project_root(path)
            if previous and previous != absolute_path:
                dropped = self.ledger.clear_entries()
                log_info("artifact_pipeline", "set_project_root", f"Root changed from {previous}, {dropped} ledger entries dropped.")
            log_info("artifact_pipeline", "set_project_root", f"Project root set to: {absolute_path}")
            return absolute_path

    # === Pipeline ===

    @staticmethod
    def make_submission(raw_content: Any, suggested_name: str | None, language_hint: str | Language | None = None) -> ArtifactSubmission:
        try:
            return ArtifactSubmission(raw_content=raw_content, suggested_name=suggested_name or "", language_hint=language_hint)
        except pydantic.ValidationError as e:
            raise MalformedContentError(f"Invalid artifact submission: {e.errors()[0].get('msg', e)}") from e

    def prepare(self, submission: ArtifactSubmission) -> NormalizedArtifact:
        """Pure part of the pipeline: path inference and normalization, no I/O."""
        resolved = self.path_engine.resolve(submission.raw_content, submission.suggested_name, submission.language_hint)
        language = self._choose_language(resolved.language, submission.language_hint)
        return self.normalizer.normalize(submission.raw_content, language, resolved.relative_path)

    @staticmethod
    def _choose_language(path_language: Language, hint: Language | None) -> Language:
        # The destination extension decides; the hint only fills in for unmapped extensions
        if path_language is not Language.TEXT or hint is None:
            return path_language
        return hint

    def submit_artifact(self, raw_content: str, suggested_name: str, language_hint: str | Language | None = None,
                        create_backup: bool | None = None, overwrite: bool = True) -> WriteResult:
        fn_name = "submit_artifact"
        try:
            submission = self.make_submission(raw_content, suggested_name, language_hint)
            artifact = self.prepare(submission)
            content_hash = content_fingerprint(artifact.body)
            already_seen = self.ledger.has_been_processed(artifact.relative_path, content_hash)

            backup_enabled = self.settings.create_backups if create_backup is None else create_backup
            result = self.writer.write(
                artifact.relative_path,
                artifact.body,
                create_backup=backup_enabled,
                overwrite=overwrite,
                skip_identical_backup=already_seen and self.settings.consult_ledger,
            )
        except ArtifactExtractorError as e:
            self.ledger.count_attempt(success=False)
            log_warning("artifact_pipeline", fn_name, f"Rejected artifact {suggested_name!r}: {e}")
            raise
        except OSError as e:
            self.ledger.count_attempt(success=False)
            log_error("artifact_pipeline", fn_name, f"Filesystem error for artifact {suggested_name!r}: {e}", e)
            raise

        self.ledger.record(artifact.relative_path, content_hash)
        self.ledger.count_attempt(success=True)
        log_info("artifact_pipeline", fn_name, f"Artifact processed: {artifact.relative_path} ({artifact.metadata.language.value}){' [duplicate]' if already_seen else ''}")
        return result.model_copy(update={"metadata": artifact.metadata, "duplicate": already_seen})

    def is_duplicate(self, raw_content: str, suggested_name: str, language_hint: str | Language | None = None) -> Dict[str, Any]:
        """Advisory lookup for collaborators that want to skip resubmissions themselves."""
        submission = self.make_submission(raw_content, suggested_name, language_hint)
        artifact = self.prepare(submission)
        content_hash = content_fingerprint(artifact.body)
        entry = self.ledger.get_entry(artifact.relative_path, content_hash)
        return {
            "duplicate": entry is not None,
            "relative_path": artifact.relative_path,
            "content_hash": content_hash,
            "last_seen_at": entry.last_seen_at.isoformat() if entry else None,
        }

    # === Stats / maintenance ===

    def query_stats(self) -> ServiceCounters:
        return self.ledger.stats()

    def reset_stats(self):
        self.ledger.reset()
        self.writer.reset_stats()
        log_info("artifact_pipeline", "reset_stats", "Statistics reset by operator.")

    def cleanup_backups(self, max_age_seconds: float | None = None) -> CleanupReport:
        if max_age_seconds is None:
            max_age_seconds = self.settings.backup_max_age_seconds
        report = self.writer.cleanup_backups(max_age_seconds)
        log_info("artifact_pipeline", "cleanup_backups", f"Backup cleanup finished: removed={report.removed}, errors={report.errors}")
        return report

    def status(self) -> Dict[str, Any]:
        return {
            "status": "running",
            "version": SERVICE_VERSION,
            "project_root": self.project_root,
            "uptime": round(time.time() - self.started_at, 3),
            "ledger_entries": len(self.ledger.entries()),
        }

# --- END OF FILE services/artifact_pipeline.py ---
