# --- START OF FILE services/file_writer.py ---
"""
Confined, backed-up file writes into the configured project root.

Every destination is resolved against the root and rejected if it escapes it.
Writes to one destination are serialised with a per-path lock so that the
backup snapshot and the replacement never interleave with another writer.
"""
import math
import os
import shutil
import tempfile
import threading
import time
import weakref
from datetime import datetime, timezone
from typing import Any, Dict, List

from tools.logger import log_info, log_error, log_warning
from services.artifact_models import CleanupReport, FileStats, WriteResult
from services.errors import (
    FileAlreadyExistsError,
    PathTraversalError,
    ProjectRootNotSetError,
    UnwritableRootError,
)
from services.path_inference import normalize_relative_path

DEFAULT_BACKUP_DIR_NAME = ".claude-backups"
WRITE_TEST_FILENAME = ".claude-extractor-test"
DEFAULT_EXCLUDE_DIRS = [".git", "node_modules"]
NEW_FILE_MODE = 0o644


def backup_timestamp(now: datetime | None = None) -> str:
    """ISO-8601 UTC with milliseconds, ':' and '.' replaced so it is filename-safe."""
    now = now or datetime.now(timezone.utc)
    iso = now.astimezone(timezone.utc).isoformat(timespec="milliseconds").replace("+00:00", "Z")
    return iso.replace(":", "-").replace(".", "-")


def format_bytes(size: int) -> str:
    if size <= 0:
        return "0 B"
    units = ["B", "KB", "MB", "GB"]
    i = min(int(math.floor(math.log(size, 1024))), len(units) - 1)
    value = round(size / (1024 ** i), 1)
    return f"{value:g} {units[i]}"


class SafeFileWriter:

    def __init__(self, backup_dir_name: str = DEFAULT_BACKUP_DIR_NAME):
        self.backup_dir_name = backup_dir_name
        self.project_root: str | None = None
        self.backup_dir: str | None = None
        self._stats = FileStats()
        self._stats_lock = threading.Lock()
        # An entry lives only while some writer holds a reference to its lock
        self._path_locks: "weakref.WeakValueDictionary[str, threading.Lock]" = weakref.WeakValueDictionary()
        self._path_locks_guard = threading.Lock()

    # === Root management ===

    def set_project_root(self, project_root: str) -> str:
        """Creates (if needed) and verifies the root, then prepares the backup directory."""
        fn_name = "set_project_root"
        if not project_root or not str(project_root).strip():
            raise UnwritableRootError(str(project_root), ValueError("empty path"))
        absolute_path = os.path.realpath(os.path.abspath(os.path.expanduser(str(project_root).strip())))
        try:
            os.makedirs(absolute_path, exist_ok=True)
            test_file = os.path.join(absolute_path, WRITE_TEST_FILENAME)
            with open(test_file, "w", encoding="utf-8") as f:
                f.write("test")
            os.remove(test_file)
            backup_dir = os.path.join(absolute_path, self.backup_dir_name)
            os.makedirs(backup_dir, exist_ok=True)
        except OSError as e:
            log_error("file_writer", fn_name, f"Project root '{absolute_path}' is not writable: {e}", e)
            raise UnwritableRootError(absolute_path, e) from e

        self.project_root = absolute_path
        self.backup_dir = backup_dir
        self.reset_stats()
        log_info("file_writer", fn_name, f"Project root set: {self.project_root}")
        log_info("file_writer", fn_name, f"Backup directory: {self.backup_dir}")
        return self.project_root

    def _require_root(self) -> str:
        if not self.project_root:
            raise ProjectRootNotSetError()
        return self.project_root

    def resolve_file_path(self, relative_path: str) -> str:
        """Absolute destination for ``relative_path``; raises before touching the disk."""
        clean = normalize_relative_path(relative_path)
        if clean.split("/")[0] == self.backup_dir_name:
            raise PathTraversalError(relative_path, "the backup directory cannot be written to")
        root = self._require_root()
        absolute_path = os.path.realpath(os.path.join(root, *clean.split("/")))
        if os.path.commonpath([root, absolute_path]) != root or absolute_path == root:
            raise PathTraversalError(relative_path, "resolves outside the project root")
        return absolute_path

    def _lock_for(self, absolute_path: str) -> threading.Lock:
        with self._path_locks_guard:
            lock = self._path_locks.get(absolute_path)
            if lock is None:
                lock = threading.Lock()
                self._path_locks[absolute_path] = lock
            return lock

    # === Writing ===

    def write(self, relative_path: str, content: str, create_backup: bool = True,
              overwrite: bool = True, skip_identical_backup: bool = False) -> WriteResult:
        fn_name = "write"
        absolute_path = self.resolve_file_path(relative_path)
        clean_path = normalize_relative_path(relative_path)
        data = content.encode("utf-8")

        with self._lock_for(absolute_path):
            exists = os.path.exists(absolute_path)
            if exists and not overwrite:
                raise FileAlreadyExistsError(clean_path)

            try:
                self._ensure_parent_dirs(absolute_path)

                backup_path = None
                if create_backup and exists:
                    if skip_identical_backup and self._has_same_bytes(absolute_path, data):
                        log_info("file_writer", fn_name, f"Destination already holds identical content, no backup for {clean_path}")
                    else:
                        backup_path = self.create_backup(absolute_path)

                self._atomic_write(absolute_path, data)
            except OSError as e:
                log_error("file_writer", fn_name, f"Failed to write {clean_path}: {e}", e)
                raise

        with self._stats_lock:
            self._stats.files_written += 1
            self._stats.total_bytes += len(data)

        log_info("file_writer", fn_name, f"Written: {clean_path} ({format_bytes(len(data))})")
        if backup_path:
            log_info("file_writer", fn_name, f"Backup: {os.path.basename(backup_path)}")

        return WriteResult(
            relative_path=clean_path,
            absolute_path=absolute_path,
            bytes_written=len(data),
            backup_path=backup_path,
            backup_created=backup_path is not None,
        )

    def _ensure_parent_dirs(self, absolute_path: str):
        directory = os.path.dirname(absolute_path)
        if not os.path.isdir(directory):
            os.makedirs(directory, exist_ok=True)
            with self._stats_lock:
                self._stats.directories_created += 1

    def _has_same_bytes(self, absolute_path: str, data: bytes) -> bool:
        try:
            if os.path.getsize(absolute_path) != len(data):
                return False
            with open(absolute_path, "rb") as f:
                return f.read() == data
        except OSError:
            return False

    def _atomic_write(self, absolute_path: str, data: bytes):
        # Unique hidden temp name: a fixed "<name>.tmp" could be a real project file
        fd, temp_path = tempfile.mkstemp(
            dir=os.path.dirname(absolute_path),
            prefix="." + os.path.basename(absolute_path) + ".",
            suffix=".tmp",
        )
        try:
            with os.fdopen(fd, "wb") as f:
                f.write(data)
            if os.path.exists(absolute_path):
                shutil.copymode(absolute_path, temp_path)
            else:
                os.chmod(temp_path, NEW_FILE_MODE)  # mkstemp creates 0600
            os.replace(temp_path, absolute_path)
        except OSError:
            if os.path.exists(temp_path):
                try: os.remove(temp_path)
                except OSError: pass
            raise

    def create_backup(self, absolute_path: str) -> str | None:
        """Copies the current file into the backup dir. Returns None (and logs) on failure."""
        fn_name = "create_backup"
        try:
            os.makedirs(self.backup_dir, exist_ok=True)
            base_name = f"{os.path.basename(absolute_path)}.backup.{backup_timestamp()}"
            backup_path = os.path.join(self.backup_dir, base_name)
            suffix = 1
            while os.path.exists(backup_path):
                backup_path = os.path.join(self.backup_dir, f"{base_name}-{suffix}")
                suffix += 1
            # copyfile, not copy2: the backup's mtime is its creation time for age-based cleanup
            shutil.copyfile(absolute_path, backup_path)
        except (OSError, TypeError) as e:
            log_warning("file_writer", fn_name, f"Failed to create backup for {absolute_path}: {e}", e)
            return None

        with self._stats_lock:
            self._stats.backups_created += 1
        return backup_path

    # === Reading / listing ===

    def file_exists(self, relative_path: str) -> bool:
        return os.path.exists(self.resolve_file_path(relative_path))

    def read_file(self, relative_path: str) -> str:
        with open(self.resolve_file_path(relative_path), "r", encoding="utf-8", newline="") as f:
            return f.read()

    def _excluded_dirs(self, extra: List[str] | None = None) -> List[str]:
        excluded = list(DEFAULT_EXCLUDE_DIRS) + [self.backup_dir_name]
        if extra:
            excluded.extend(extra)
        return excluded

    def list_files(self, directory: str = "", recursive: bool = False,
                   extensions: List[str] | None = None, exclude_dirs: List[str] | None = None) -> List[Dict[str, Any]]:
        root = self._require_root()
        target_dir = self.resolve_file_path(directory) if directory else root
        if not os.path.isdir(target_dir):
            return []

        excluded = set(self._excluded_dirs(exclude_dirs))
        wanted = {e.lower() if e.startswith(".") else "." + e.lower() for e in extensions} if extensions else None
        files: List[Dict[str, Any]] = []

        def _walk(current: str, relative: str):
            for item in sorted(os.listdir(current)):
                item_path = os.path.join(current, item)
                item_relative = f"{relative}/{item}" if relative else item
                if os.path.isdir(item_path):
                    if recursive and item not in excluded:
                        _walk(item_path, item_relative)
                    continue
                if wanted is not None and os.path.splitext(item)[1].lower() not in wanted:
                    continue
                stat = os.stat(item_path)
                files.append({
                    "name": item,
                    "path": item_relative,
                    "absolute_path": item_path,
                    "size": stat.st_size,
                    "modified": datetime.fromtimestamp(stat.st_mtime, timezone.utc).isoformat(),
                })

        _walk(target_dir, "")
        return files

    def get_project_structure(self, max_depth: int = 3) -> Dict[str, Any] | None:
        """Nested dict tree of the root, hidden entries and node_modules skipped."""
        if not self.project_root:
            return None

        def _build(current: str, depth: int) -> Dict[str, Any]:
            tree: Dict[str, Any] = {}
            if depth >= max_depth:
                return tree
            try:
                items = sorted(os.listdir(current))
            except OSError as e:
                log_warning("file_writer", "get_project_structure", f"Cannot read directory {current}: {e}")
                return tree
            for item in items:
                if item.startswith(".") or item == "node_modules":
                    continue
                item_path = os.path.join(current, item)
                stat = os.stat(item_path)
                if os.path.isdir(item_path):
                    tree[item] = {"type": "directory", "children": _build(item_path, depth + 1)}
                else:
                    tree[item] = {
                        "type": "file",
                        "size": stat.st_size,
                        "modified": datetime.fromtimestamp(stat.st_mtime, timezone.utc).isoformat(),
                    }
            return tree

        return _build(self.project_root, 0)

    # === Maintenance ===

    def cleanup_backups(self, max_age_seconds: float = 7 * 24 * 60 * 60) -> CleanupReport:
        """Deletes backups whose mtime is older than ``max_age_seconds``."""
        fn_name = "cleanup_backups"
        report = CleanupReport()
        if not self.backup_dir or not os.path.isdir(self.backup_dir):
            return report

        cutoff = time.time() - max_age_seconds
        try:
            names = os.listdir(self.backup_dir)
        except OSError as e:
            log_error("file_writer", fn_name, f"Failed to list backups: {e}", e)
            report.errors += 1
            return report

        for name in names:
            path = os.path.join(self.backup_dir, name)
            try:
                if not os.path.isfile(path) or os.path.getmtime(path) >= cutoff:
                    continue
                os.remove(path)
                report.removed += 1
                log_info("file_writer", fn_name, f"Removed old backup: {name}")
            except OSError as e:
                report.errors += 1
                log_warning("file_writer", fn_name, f"Failed to remove backup {name}: {e}")
        return report

    def get_stats(self) -> Dict[str, Any]:
        with self._stats_lock:
            stats = self._stats.model_dump()
        stats["project_root"] = self.project_root
        stats["backup_dir"] = self.backup_dir
        return stats

    def reset_stats(self):
        with self._stats_lock:
            self._stats = FileStats()

# --- END OF FILE services/file_writer.py ---
