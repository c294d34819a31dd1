# --- START OF FILE services/path_inference.py ---
"""
Works out where an extracted artifact belongs inside the project.

Pure string/regex logic: nothing here touches the filesystem. The decoration
heuristic is deliberately loose (a bare ``name.ext`` first line counts), so a
first line that merely looks like a filename will be taken as one.
"""
import posixpath
import re
from typing import List, Tuple

from tools.logger import log_info
from services.artifact_models import Language, ResolvedPath
from services.errors import PathTraversalError

PATH_TOKEN = r"([\w\-./]+\.\w+)"

# Ordered, one per comment style. Full-line matches against the first non-blank line.
DECORATION_PATTERNS: List[Tuple[str, re.Pattern]] = [
    ("double_slash", re.compile(r"//\s+" + PATH_TOKEN)),
    ("hash", re.compile(r"#\s+" + PATH_TOKEN)),
    ("html_comment", re.compile(r"<!--\s+" + PATH_TOKEN + r"(?:\s*-->)?")),
    ("block_comment", re.compile(r"/\*\s+" + PATH_TOKEN + r"(?:\s*\*/)?")),
    ("double_dash", re.compile(r"--\s+" + PATH_TOKEN)),
    ("bare", re.compile(PATH_TOKEN)),
]

EXTENSION_DIRECTORIES = {
    ".tsx": "src/components/",
    ".jsx": "src/components/",
    ".ts": "src/utils/",
    ".js": "src/utils/",
    ".css": "src/styles/",
    ".scss": "src/styles/",
    ".html": "public/",
    ".json": "src/data/",
    ".py": "src/",
    ".md": "docs/",
}
DEFAULT_DIRECTORY = "src/"

EXTENSION_LANGUAGES = {
    ".js": Language.JAVASCRIPT, ".mjs": Language.JAVASCRIPT, ".cjs": Language.JAVASCRIPT,
    ".jsx": Language.JAVASCRIPT,
    ".ts": Language.TYPESCRIPT, ".tsx": Language.TYPESCRIPT,
    ".py": Language.PYTHON,
    ".html": Language.HTML, ".htm": Language.HTML,
    ".css": Language.CSS, ".scss": Language.SCSS, ".sass": Language.SASS,
    ".json": Language.JSON,
    ".xml": Language.XML,
    ".yml": Language.YAML, ".yaml": Language.YAML,
    ".md": Language.MARKDOWN,
    ".txt": Language.TEXT,
    ".sh": Language.BASH, ".bash": Language.BASH,
    ".sql": Language.SQL,
    ".php": Language.PHP,
    ".java": Language.JAVA,
    ".c": Language.C, ".h": Language.C,
    ".cpp": Language.CPP, ".hpp": Language.CPP,
    ".cs": Language.CSHARP,
    ".rb": Language.RUBY,
    ".go": Language.GO,
    ".rs": Language.RUST,
    ".swift": Language.SWIFT,
    ".kt": Language.KOTLIN,
    ".dart": Language.DART,
    ".vue": Language.VUE,
    ".svelte": Language.SVELTE,
}

LANGUAGE_EXTENSIONS = {
    Language.JAVASCRIPT: "js", Language.TYPESCRIPT: "ts", Language.PYTHON: "py",
    Language.HTML: "html", Language.CSS: "css", Language.SCSS: "scss", Language.SASS: "sass",
    Language.JSON: "json", Language.XML: "xml", Language.YAML: "yml",
    Language.MARKDOWN: "md", Language.BASH: "sh", Language.SQL: "sql", Language.PHP: "php",
    Language.JAVA: "java", Language.C: "c", Language.CPP: "cpp", Language.CSHARP: "cs",
    Language.RUBY: "rb", Language.GO: "go", Language.RUST: "rs", Language.SWIFT: "swift",
    Language.KOTLIN: "kt", Language.DART: "dart", Language.VUE: "vue", Language.SVELTE: "svelte",
    Language.TEXT: "txt",
}


def first_non_blank_line(content: str) -> str | None:
    for line in content.split("\n"):
        if line.strip():
            return line.strip()
    return None


def match_decoration(line: str | None) -> str | None:
    """Returns the path token if ``line`` is a path decoration. First pattern wins."""
    if not line:
        return None
    for _style, pattern in DECORATION_PATTERNS:
        match = pattern.fullmatch(line.strip())
        if match:
            return match.group(1)
    return None


def extension_of(path: str) -> str:
    return posixpath.splitext(path)[1].lower()


def language_for_path(path: str) -> Language:
    return EXTENSION_LANGUAGES.get(extension_of(path), Language.TEXT)


def directory_for_filename(filename: str) -> str:
    return EXTENSION_DIRECTORIES.get(extension_of(filename), DEFAULT_DIRECTORY)


def guess_language_from_content(content: str) -> Language:
    """Rough content sniffing used only when neither a hint nor an extension is available."""
    if '"manifest_version"' in content or '"name"' in content:
        return Language.JSON
    if "function" in content or "const " in content:
        return Language.JAVASCRIPT
    if "def " in content or "import " in content:
        return Language.PYTHON
    if "<html" in content or "<!DOCTYPE" in content:
        return Language.HTML
    if "{" in content and "}" in content and '"' in content:
        return Language.JSON
    return Language.TEXT


def normalize_relative_path(candidate: str) -> str:
    """
    Cleans a candidate path and enforces containment.
    Raises PathTraversalError for absolute paths, any '..' segment, and names
    the filesystem cannot take (NUL bytes, lone surrogates).
    """
    raw = (candidate or "").strip().replace("\\", "/")
    if not raw:
        raise PathTraversalError(candidate or "", "empty path")
    if "\x00" in raw:
        raise PathTraversalError(candidate, "path contains a NUL byte")
    try:
        raw.encode("utf-8")
    except UnicodeEncodeError:
        raise PathTraversalError(candidate, "path is not valid UTF-8 text")
    if raw.startswith("/") or re.match(r"^[A-Za-z]:", raw):
        raise PathTraversalError(candidate, "absolute paths are not allowed")
    if ".." in raw.split("/"):
        raise PathTraversalError(candidate)
    normalized = posixpath.normpath(raw)
    if normalized in (".", ""):
        raise PathTraversalError(candidate, "path does not name a file")
    return normalized


class PathInferenceEngine:
    """Maps (raw content, fallback filename) to a project-relative destination."""

    def resolve(self, raw_content: str, fallback_filename: str, language_hint: Language | None = None) -> ResolvedPath:
        fn_name = "resolve"
        decorated = match_decoration(first_non_blank_line(raw_content or ""))
        if decorated:
            candidate = decorated
            log_info("path_inference", fn_name, f"Extracted path from content: {candidate}")
        else:
            candidate = self._from_fallback(raw_content or "", fallback_filename, language_hint)

        relative_path = normalize_relative_path(candidate)
        return ResolvedPath(relative_path=relative_path, language=language_for_path(relative_path))

    def _from_fallback(self, raw_content: str, fallback_filename: str, language_hint: Language | None) -> str:
        name = (fallback_filename or "").strip().replace("\\", "/")
        if not name or name.endswith("/"):
            name = name + "artifact"

        basename = posixpath.basename(name)
        if "." not in basename:
            language = language_hint or guess_language_from_content(raw_content)
            name = f"{name}.{LANGUAGE_EXTENSIONS[language]}"

        if "/" in name:
            return name
        return directory_for_filename(name) + name

# --- END OF FILE services/path_inference.py ---
