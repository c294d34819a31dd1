# --- START OF FILE services/content_normalizer.py ---
"""
Cleans extracted artifact text and derives descriptive metadata.

Per-language processing never aborts the pipeline: a transform that cannot
do its job logs a warning and returns the text it was given.
"""
import json
import re
from typing import Callable, Dict, List

from tools.logger import log_warning
from services.artifact_models import Framework, Language, Metadata, NormalizedArtifact
from services.errors import MalformedContentError
from services.path_inference import extension_of, match_decoration

REACT_IMPORT = "import React from 'react';\n\n"
PYTHON_CODING_LINE = "# -*- coding: utf-8 -*-\n"
HTML_DOCTYPE = "<!DOCTYPE html>\n"
COMPONENT_EXTENSIONS = {".tsx", ".jsx"}

# Evaluated in this order; the dependency list follows pattern order, then match order.
IMPORT_PATTERNS: List[re.Pattern] = [
    re.compile(r"^import\s+.*from\s+['\"]([^'\"]+)['\"]", re.MULTILINE),           # ES modules
    re.compile(r"^const\s+.*\s*=\s*require\(['\"]([^'\"]+)['\"]\)", re.MULTILINE),  # CommonJS
    re.compile(r"^#include\s+<([^>]+)>", re.MULTILINE),                           # C/C++
    re.compile(r"^import\s+([^\s]+)", re.MULTILINE),                              # Python
    re.compile(r"^@import\s+['\"]([^'\"]+)['\"]", re.MULTILINE),                   # CSS
]
ES_EXPORT_PATTERN = re.compile(r"^export\s+", re.MULTILINE)
COMMONJS_EXPORT_PATTERN = re.compile(r"module\.exports\s*=")

FRAMEWORK_MARKERS = [
    ("react", Framework.REACT),
    ("vue", Framework.VUE),
    ("angular", Framework.ANGULAR),
]


def strip_path_decoration(content: str) -> str:
    """Drops a leading path-decoration line and the blank lines right after it."""
    lines = content.split("\n")
    index = 0
    while index < len(lines) and not lines[index].strip():
        index += 1
    if index >= len(lines) or match_decoration(lines[index]) is None:
        return content

    index += 1
    while index < len(lines) and lines[index].strip() == "":
        index += 1
    return "\n".join(lines[index:])


# === Per-language transforms ===

def _process_script(content: str, ext: str) -> str:
    if ext in COMPONENT_EXTENSIONS and "React" not in content and "<" in content:
        return REACT_IMPORT + content
    return content


def _process_python(content: str, ext: str) -> str:
    if "# -*- coding:" in content or "# coding:" in content:
        return content
    return PYTHON_CODING_LINE + content


def _process_html(content: str, ext: str) -> str:
    if "<html" in content and "<!DOCTYPE" not in content:
        return HTML_DOCTYPE + content
    return content


def _reject_constant(name: str):
    raise ValueError(f"non-finite number {name} is not JSON")


def _process_json(content: str, ext: str) -> str:
    # NaN/Infinity literals and overflowing numbers (1e400) are rejected, not rewritten
    try:
        parsed = json.loads(content, parse_constant=_reject_constant)
        return json.dumps(parsed, indent=2, ensure_ascii=False, allow_nan=False)
    except (ValueError, RecursionError) as e:
        log_warning("content_normalizer", "_process_json", f"Invalid JSON, keeping original content ({e})")
        return content


def _pass_through(content: str, ext: str) -> str:
    return content


TRANSFORMS: Dict[Language, Callable[[str, str], str]] = {
    Language.JAVASCRIPT: _process_script,
    Language.TYPESCRIPT: _process_script,
    Language.PYTHON: _process_python,
    Language.HTML: _process_html,
    Language.JSON: _process_json,
    Language.CSS: _pass_through,
    Language.SCSS: _pass_through,
    Language.SASS: _pass_through,
    Language.XML: _pass_through,
    Language.YAML: _pass_through,
    Language.MARKDOWN: _pass_through,
    Language.BASH: _pass_through,
    Language.SQL: _pass_through,
    Language.PHP: _pass_through,
    Language.JAVA: _pass_through,
    Language.C: _pass_through,
    Language.CPP: _pass_through,
    Language.CSHARP: _pass_through,
    Language.RUBY: _pass_through,
    Language.GO: _pass_through,
    Language.RUST: _pass_through,
    Language.SWIFT: _pass_through,
    Language.KOTLIN: _pass_through,
    Language.DART: _pass_through,
    Language.VUE: _pass_through,
    Language.SVELTE: _pass_through,
    Language.TEXT: _pass_through,
}

_missing = set(Language) - set(TRANSFORMS)
if _missing:
    raise RuntimeError(f"content_normalizer: no transform registered for {sorted(m.value for m in _missing)}")


def extract_metadata(content: str, language: Language) -> Metadata:
    dependencies: List[str] = []
    for pattern in IMPORT_PATTERNS:
        dependencies.extend(match.group(1) for match in pattern.finditer(content))

    framework = None
    for marker, candidate in FRAMEWORK_MARKERS:
        if any(marker in dep for dep in dependencies):
            framework = candidate
            break

    return Metadata(
        language=language,
        line_count=len(content.split("\n")),
        char_count=len(content),
        has_imports=bool(dependencies),
        has_exports=bool(ES_EXPORT_PATTERN.search(content) or COMMONJS_EXPORT_PATTERN.search(content)),
        dependencies=dependencies,
        framework=framework,
    )


class ContentNormalizer:

    def normalize(self, raw_content: str | bytes, language: Language, resolved_path: str) -> NormalizedArtifact:
        if isinstance(raw_content, (bytes, bytearray)):
            try:
                raw_content = bytes(raw_content).decode("utf-8")
            except UnicodeDecodeError as e:
                raise MalformedContentError(f"Content for {resolved_path} is not UTF-8 text: {e}") from e
        else:
            try:
                raw_content.encode("utf-8")
            except UnicodeEncodeError as e:
                # Lone surrogates survive JSON decoding but cannot be written
                raise MalformedContentError(f"Content for {resolved_path} cannot be encoded as UTF-8: {e}") from e

        body = strip_path_decoration(raw_content)
        body = TRANSFORMS[language](body, extension_of(resolved_path))
        return NormalizedArtifact(
            relative_path=resolved_path,
            body=body,
            metadata=extract_metadata(body, language),
        )

# --- END OF FILE services/content_normalizer.py ---
