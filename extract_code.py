# extract_code.py
"""
Offline collaborator: splits a saved chat transcript into code blocks and
submits each one through the ArtifactPipeline.

Two block styles are recognised:

    ```python                       === START FILE: src/app.py ===
    ...                             ...
    ```                             === END FILE: src/app.py ===

Fenced blocks are named ``extracted_code_{n}.{ext}`` unless their first line
carries a path comment; marker blocks use the path from the marker.
"""
import argparse
import os
import re
import sys
from typing import List, NamedTuple

from tools.logger import log_info, log_error
from services.artifact_models import Language
from services.artifact_pipeline import ArtifactPipeline
from services.config_manager import load_settings
from services.errors import ArtifactExtractorError
from services.path_inference import LANGUAGE_EXTENSIONS

FENCE_PATTERN = re.compile(r"^\s*```\s*([\w+#.\-]*)\s*$")
START_MARKER_PREFIX = "=== START FILE: "
END_MARKER_PREFIX = "=== END FILE: "
MARKER_SUFFIX = " ==="


class TranscriptBlock(NamedTuple):
    suggested_name: str
    language_hint: str | None
    content: str


def _marker_path(line: str, prefix: str) -> str | None:
    stripped = line.rstrip("\r\n")
    if stripped.startswith(prefix) and stripped.endswith(MARKER_SUFFIX):
        return stripped[len(prefix):len(stripped) - len(MARKER_SUFFIX)].strip()
    return None


def _fence_name(index: int, fence_language: str | None) -> str:
    language = Language.from_hint(fence_language) or Language.TEXT
    return f"extracted_code_{index}.{LANGUAGE_EXTENSIONS[language]}"


def split_transcript(lines: List[str]) -> List[TranscriptBlock]:
    """Collects fenced and START/END marker blocks in transcript order."""
    blocks: List[TranscriptBlock] = []
    current_name = None
    current_hint = None
    in_fence = False
    in_marker = False
    current_lines: List[str] = []

    def _flush():
        content = "".join(current_lines)
        if content.strip():
            blocks.append(TranscriptBlock(current_name, current_hint, content))
        else:
            print(f"   ⚠️ WARNING: Skipping empty block '{current_name}'.")

    for line_num, line in enumerate(lines, 1):
        if in_fence:
            closing = FENCE_PATTERN.match(line)
            if closing and not closing.group(1):
                _flush()
                in_fence = False
                current_lines = []
            else:
                current_lines.append(line)
            continue

        start_path = _marker_path(line, START_MARKER_PREFIX)
        if start_path is not None:
            if in_marker:
                print(f"   ⚠️ WARNING: Found new START marker on line {line_num} before END marker for '{current_name}'. Writing previous block.")
                _flush()
            current_name, current_hint = start_path, None
            in_marker = True
            current_lines = []
            continue

        end_path = _marker_path(line, END_MARKER_PREFIX)
        if end_path is not None:
            if not in_marker:
                print(f"   ⚠️ WARNING: Found END marker on line {line_num} but wasn't inside a file block. Ignoring.")
                continue
            if end_path != current_name:
                print(f"   ⚠️ WARNING: End marker path '{end_path}' on line {line_num} doesn't match '{current_name}'.")
            _flush()
            in_marker = False
            current_lines = []
            continue

        if in_marker:
            current_lines.append(line)
            continue

        fence = FENCE_PATTERN.match(line)
        if fence:
            fence_language = fence.group(1) or None
            current_name = _fence_name(len(blocks) + 1, fence_language)
            current_hint = fence_language
            in_fence = True
            current_lines = []

    if in_fence or in_marker:
        print(f"   ⚠️ WARNING: Transcript ended inside block '{current_name}'. Writing remaining content.")
        _flush()
    return blocks


def extract_transcript(input_filename: str, pipeline: ArtifactPipeline, dry_run: bool = False) -> tuple[int, int]:
    """Submits every block of the transcript. Returns (files_written, files_failed)."""
    fn_name = "extract_transcript"
    files_written = 0
    files_failed = 0

    print(f"--- Starting code extraction from '{input_filename}' ---")
    with open(input_filename, "r", encoding="utf-8") as f_in:
        blocks = split_transcript(f_in.readlines())
    print(f"   Found {len(blocks)} code block(s).")

    for block in blocks:
        try:
            if dry_run:
                submission = pipeline.make_submission(block.content, block.suggested_name, block.language_hint)
                artifact = pipeline.prepare(submission)
                print(f"   [dry-run] {block.suggested_name} -> {artifact.relative_path}")
                files_written += 1
                continue
            result = pipeline.submit_artifact(block.content, block.suggested_name, block.language_hint)
            print(f"   Successfully wrote file: {result.relative_path}" + (" (backup created)" if result.backup_created else ""))
            files_written += 1
        except (ArtifactExtractorError, OSError) as e:
            print(f"   ❌ ERROR processing block {block.suggested_name}: {e}")
            log_error("extract_code", fn_name, f"Block '{block.suggested_name}' failed: {e}")
            files_failed += 1

    print(f"\n--- Extraction finished ---")
    print(f"   Files successfully written: {files_written}")
    print(f"   Errors encountered: {files_failed}")
    return files_written, files_failed


def main(argv: List[str] | None = None) -> int:
    parser = argparse.ArgumentParser(description="Extract code blocks from a saved chat transcript into a project")
    parser.add_argument("transcript", help="Transcript text/markdown file")
    parser.add_argument("--project-root", help="Destination project root (defaults to PROJECT_ROOT / settings)")
    parser.add_argument("--dry-run", action="store_true", help="Only print where each block would be written")
    args = parser.parse_args(argv)

    if not os.path.exists(args.transcript):
        print(f"❌ ERROR: Input file '{args.transcript}' not found.")
        return 1

    settings = load_settings()
    pipeline = ArtifactPipeline(settings)
    project_root = args.project_root or settings.project_root
    if project_root:
        try:
            pipeline.set_project_root(project_root)
        except ArtifactExtractorError as e:
            print(f"❌ ERROR: {e}")
            return 1
    elif not args.dry_run:
        print("❌ ERROR: No project root given. Use --project-root or set PROJECT_ROOT.")
        return 1

    log_info("extract_code", "main", f"Extracting '{args.transcript}' into {pipeline.project_root or '(dry run)'}")
    _, files_failed = extract_transcript(args.transcript, pipeline, dry_run=args.dry_run)
    return 1 if files_failed else 0


if __name__ == "__main__":
    sys.exit(main())
