import gc
import os
import shutil
import threading
import time

import pytest

from services.errors import (
    FileAlreadyExistsError,
    PathTraversalError,
    ProjectRootNotSetError,
    UnwritableRootError,
)
from services.file_writer import SafeFileWriter, backup_timestamp, format_bytes
from datetime import datetime, timezone


def _all_files(root):
    return sorted(
        os.path.relpath(os.path.join(dirpath, name), root)
        for dirpath, _dirs, names in os.walk(root)
        for name in names
    )


def test_set_project_root_creates_backup_dir(tmp_path):
    writer = SafeFileWriter()
    target = tmp_path / "new" / "root"
    absolute_path = writer.set_project_root(str(target))
    assert absolute_path == os.path.realpath(str(target))
    assert (target / ".claude-backups").is_dir()
    assert not (target / ".claude-extractor-test").exists()


def test_unwritable_root(tmp_path):
    blocker = tmp_path / "a_file"
    blocker.write_text("x")
    writer = SafeFileWriter()
    with pytest.raises(UnwritableRootError):
        writer.set_project_root(str(blocker / "sub"))
    assert writer.project_root is None


def test_write_without_root():
    with pytest.raises(ProjectRootNotSetError):
        SafeFileWriter().write("src/a.js", "x")


def test_write_creates_parents_and_reports(writer, project_dir):
    result = writer.write("src/deep/nested/a.js", "const a = 1;")
    assert (project_dir / "src/deep/nested/a.js").read_text() == "const a = 1;"
    assert result.relative_path == "src/deep/nested/a.js"
    assert result.absolute_path == os.path.join(os.path.realpath(str(project_dir)), "src", "deep", "nested", "a.js")
    assert result.bytes_written == len("const a = 1;")
    assert result.backup_created is False
    assert result.backup_path is None
    stats = writer.get_stats()
    assert stats["files_written"] == 1
    assert stats["directories_created"] == 1
    assert stats["total_bytes"] == result.bytes_written


def test_overwrite_leaves_exactly_one_backup_with_old_bytes(writer, project_dir):
    writer.write("src/a.txt", "content A")
    result = writer.write("src/a.txt", "content B")

    backups = os.listdir(project_dir / ".claude-backups")
    assert len(backups) == 1
    assert backups[0].startswith("a.txt.backup.")
    assert (project_dir / ".claude-backups" / backups[0]).read_bytes() == b"content A"
    assert (project_dir / "src/a.txt").read_text() == "content B"
    assert result.backup_created is True
    assert result.backup_path == str(project_dir.resolve() / ".claude-backups" / backups[0])


def test_no_backup_when_disabled(writer, project_dir):
    writer.write("src/a.txt", "A")
    result = writer.write("src/a.txt", "B", create_backup=False)
    assert result.backup_created is False
    assert os.listdir(project_dir / ".claude-backups") == []


def test_back_to_back_backups_do_not_collide(writer, project_dir):
    writer.write("a.txt", "1")
    writer.write("a.txt", "2")
    writer.write("a.txt", "3")
    contents = sorted(p.read_text() for p in (project_dir / ".claude-backups").iterdir())
    assert contents == ["1", "2"]


def test_identical_content_backup_can_be_skipped(writer, project_dir):
    writer.write("a.txt", "same")
    result = writer.write("a.txt", "same", skip_identical_backup=True)
    assert result.backup_created is False
    # Different bytes always get a backup, even when skipping is requested
    result = writer.write("a.txt", "changed", skip_identical_backup=True)
    assert result.backup_created is True


def test_overwrite_false(writer, project_dir):
    writer.write("src/a.txt", "A")
    with pytest.raises(FileAlreadyExistsError) as exc_info:
        writer.write("src/a.txt", "B", overwrite=False)
    assert isinstance(exc_info.value, FileExistsError)
    assert (project_dir / "src/a.txt").read_text() == "A"


@pytest.mark.parametrize("bad_path", ["../escape.txt", "src/../../escape.txt", "/tmp/abs.txt", ".claude-backups/x.txt"])
def test_traversal_leaves_filesystem_untouched(writer, project_dir, bad_path):
    before = _all_files(project_dir.parent)
    with pytest.raises(PathTraversalError):
        writer.write(bad_path, "evil")
    assert _all_files(project_dir.parent) == before


def test_symlink_escape_is_rejected(writer, project_dir, tmp_path):
    outside = tmp_path / "outside"
    outside.mkdir()
    os.symlink(str(outside), str(project_dir / "link"))
    with pytest.raises(PathTraversalError):
        writer.write("link/evil.txt", "x")
    assert list(outside.iterdir()) == []


def test_no_temp_file_left_behind(writer, project_dir):
    writer.write("src/a.txt", "A")
    writer.write("src/a.txt", "B")
    assert os.listdir(project_dir / "src") == ["a.txt"]


def test_list_files_and_structure(writer, project_dir):
    writer.write("src/a.js", "a")
    writer.write("src/b.css", "b")
    writer.write("docs/readme.md", "r")
    writer.write("src/a.js", "a2")  # creates a backup, which must not be listed

    top = writer.list_files()
    assert top == []
    everything = [f["path"] for f in writer.list_files(recursive=True)]
    assert everything == ["docs/readme.md", "src/a.js", "src/b.css"]
    only_js = [f["name"] for f in writer.list_files("src", extensions=["js"])]
    assert only_js == ["a.js"]

    tree = writer.get_project_structure()
    assert set(tree) == {"docs", "src"}
    assert tree["src"]["type"] == "directory"
    assert tree["src"]["children"]["a.js"]["size"] == 2


def test_structure_without_root():
    assert SafeFileWriter().get_project_structure() is None


def test_cleanup_removes_only_old_backups(writer, project_dir):
    writer.write("a.txt", "1")
    writer.write("a.txt", "2")
    writer.write("b.txt", "1")
    writer.write("b.txt", "2")
    backup_dir = project_dir / ".claude-backups"
    old, recent = sorted(backup_dir.iterdir())
    ten_days_ago = time.time() - 10 * 24 * 60 * 60
    os.utime(old, (ten_days_ago, ten_days_ago))

    report = writer.cleanup_backups(7 * 24 * 60 * 60)
    assert report.removed == 1
    assert report.errors == 0
    assert list(backup_dir.iterdir()) == [recent]


def test_backup_timestamp_is_filename_safe():
    stamp = backup_timestamp(datetime(2024, 5, 1, 12, 30, 45, 123000, tzinfo=timezone.utc))
    assert stamp == "2024-05-01T12-30-45-123Z"


def test_format_bytes():
    assert format_bytes(0) == "0 B"
    assert format_bytes(512) == "512 B"
    assert format_bytes(2048) == "2 KB"
    assert format_bytes(1536) == "1.5 KB"


def test_sibling_tmp_file_survives_write(writer, project_dir):
    (project_dir / "notes.txt.tmp").write_text("user data")
    writer.write("notes.txt", "new")
    assert (project_dir / "notes.txt.tmp").read_text() == "user data"
    assert (project_dir / "notes.txt").read_text() == "new"
    assert sorted(os.listdir(project_dir)) == [".claude-backups", "notes.txt", "notes.txt.tmp"]


def test_failed_backup_does_not_block_write(writer, project_dir, monkeypatch):
    writer.write("a.txt", "old")

    def _broken_copy(src, dst):
        raise OSError("disk full")

    monkeypatch.setattr(shutil, "copyfile", _broken_copy)
    result = writer.write("a.txt", "new")
    assert result.backup_path is None
    assert result.backup_created is False
    assert (project_dir / "a.txt").read_text() == "new"
    assert writer.get_stats()["backups_created"] == 0


def test_concurrent_writes_to_one_path_are_serialised(writer, project_dir):
    contents = [f"writer {i}\n" * 200 for i in range(8)]
    start = threading.Barrier(len(contents))

    def _write(content):
        start.wait()
        writer.write("shared.txt", content)

    threads = [threading.Thread(target=_write, args=(c,)) for c in contents]
    for t in threads:
        t.start()
    for t in threads:
        t.join()

    backups = [p.read_text() for p in (project_dir / ".claude-backups").iterdir()]
    final = (project_dir / "shared.txt").read_text()
    # Every overwrite backed up exactly the previous complete write
    assert len(backups) == len(contents) - 1
    assert sorted(backups + [final]) == sorted(contents)
    assert writer.get_stats()["files_written"] == len(contents)


def test_path_locks_are_released(writer):
    writer.write("a.txt", "1")
    writer.write("src/b.txt", "2")
    gc.collect()
    assert len(writer._path_locks) == 0
