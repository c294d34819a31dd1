# --- START OF FILE services/artifact_models.py ---
from datetime import datetime, timezone
from enum import Enum
import posixpath
from typing import List

from pydantic import BaseModel, ConfigDict, Field, field_validator


class Language(str, Enum):
    """Closed set of languages the normalizer knows about. TEXT is the fallback."""
    JAVASCRIPT = "javascript"
    TYPESCRIPT = "typescript"
    PYTHON = "python"
    HTML = "html"
    CSS = "css"
    SCSS = "scss"
    SASS = "sass"
    JSON = "json"
    XML = "xml"
    YAML = "yaml"
    MARKDOWN = "markdown"
    BASH = "bash"
    SQL = "sql"
    PHP = "php"
    JAVA = "java"
    C = "c"
    CPP = "cpp"
    CSHARP = "csharp"
    RUBY = "ruby"
    GO = "go"
    RUST = "rust"
    SWIFT = "swift"
    KOTLIN = "kotlin"
    DART = "dart"
    VUE = "vue"
    SVELTE = "svelte"
    TEXT = "text"

    @classmethod
    def from_hint(cls, hint: "str | Language | None") -> "Language | None":
        """Maps a collaborator-supplied hint to a member; unknown or empty hints give None."""
        if hint is None:
            return None
        if isinstance(hint, Language):
            return hint
        value = str(hint).strip().lower()
        if not value:
            return None
        value = _LANGUAGE_ALIASES.get(value, value)
        try:
            return cls(value)
        except ValueError:
            return None


_LANGUAGE_ALIASES = {
    "js": "javascript", "jsx": "javascript", "ts": "typescript", "tsx": "typescript",
    "py": "python", "htm": "html", "md": "markdown", "yml": "yaml", "sh": "bash",
    "shell": "bash", "c++": "cpp", "c#": "csharp", "rb": "ruby", "rs": "rust",
    "kt": "kotlin", "plaintext": "text", "txt": "text",
}


class Framework(str, Enum):
    REACT = "React"
    VUE = "Vue"
    ANGULAR = "Angular"


def _utc_now() -> datetime:
    return datetime.now(timezone.utc)


class ArtifactSubmission(BaseModel):
    """One extracted artifact as handed over by the scraping front-end."""
    model_config = ConfigDict(frozen=True)

    raw_content: str
    suggested_name: str = Field("", description="Best-effort filename from the page; may be empty.")
    language_hint: Language | None = None
    submitted_at: datetime = Field(default_factory=_utc_now)

    @field_validator("language_hint", mode="before")
    @classmethod
    def _coerce_hint(cls, v):
        return Language.from_hint(v)


class ResolvedPath(BaseModel):
    model_config = ConfigDict(frozen=True)

    relative_path: str
    language: Language = Language.TEXT

    @field_validator("relative_path")
    @classmethod
    def _must_stay_relative(cls, v: str) -> str:
        if not v or v.startswith("/") or ".." in v.split("/"):
            raise ValueError(f"relative_path must be relative and contained: {v!r}")
        return posixpath.normpath(v)


class Metadata(BaseModel):
    language: Language = Language.TEXT
    line_count: int = 0
    char_count: int = 0
    has_imports: bool = False
    has_exports: bool = False
    dependencies: List[str] = Field(default_factory=list)
    framework: Framework | None = None


class NormalizedArtifact(BaseModel):
    relative_path: str
    body: str
    metadata: Metadata


class WriteResult(BaseModel):
    relative_path: str
    absolute_path: str
    bytes_written: int
    backup_path: str | None = None
    backup_created: bool = False
    timestamp: datetime = Field(default_factory=_utc_now)
    # Filled in by ArtifactPipeline, not by the writer
    metadata: Metadata | None = None
    duplicate: bool = False


class LedgerEntry(BaseModel):
    relative_path: str
    content_hash: str
    first_seen_at: datetime = Field(default_factory=_utc_now)
    last_seen_at: datetime = Field(default_factory=_utc_now)
    times_seen: int = 1


class ServiceCounters(BaseModel):
    total_processed: int = 0
    successful_extractions: int = 0
    failed_extractions: int = 0


class FileStats(BaseModel):
    files_written: int = 0
    backups_created: int = 0
    directories_created: int = 0
    total_bytes: int = 0


class CleanupReport(BaseModel):
    removed: int = 0
    errors: int = 0

# --- END OF FILE services/artifact_models.py ---
