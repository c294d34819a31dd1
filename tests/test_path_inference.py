import pytest

from services.artifact_models import Language
from services.errors import PathTraversalError
from services.path_inference import (
    PathInferenceEngine,
    guess_language_from_content,
    match_decoration,
    normalize_relative_path,
)


@pytest.fixture()
def engine():
    return PathInferenceEngine()


@pytest.mark.parametrize("first_line, expected", [
    ("// src/util/math.js", "src/util/math.js"),
    ("# scripts/build.py", "scripts/build.py"),
    ("<!-- public/index.html -->", "public/index.html"),
    ("<!-- public/index.html", "public/index.html"),
    ("/* src/styles/main.css */", "src/styles/main.css"),
    ("-- db/schema.sql", "db/schema.sql"),
    ("config.yaml", "config.yaml"),
])
def test_decoration_styles(engine, first_line, expected):
    resolved = engine.resolve(f"{first_line}\nbody line\n", "ignored.txt")
    assert resolved.relative_path == expected


def test_decoration_must_be_whole_line():
    assert match_decoration("// see utils.js for details") is None
    assert match_decoration("const x = require('./a.js');") is None
    assert match_decoration("# -*- coding: utf-8 -*-") is None


def test_leading_blank_lines_are_skipped(engine):
    resolved = engine.resolve("\n\n   \n// src/app.ts\nlet a = 1;", "code1.js")
    assert resolved.relative_path == "src/app.ts"
    assert resolved.language == Language.TYPESCRIPT


@pytest.mark.parametrize("fallback, expected", [
    ("Button.tsx", "src/components/Button.tsx"),
    ("Card.jsx", "src/components/Card.jsx"),
    ("helpers.ts", "src/utils/helpers.ts"),
    ("code1.js", "src/utils/code1.js"),
    ("main.css", "src/styles/main.css"),
    ("theme.scss", "src/styles/theme.scss"),
    ("index.html", "public/index.html"),
    ("data.json", "src/data/data.json"),
    ("app.py", "src/app.py"),
    ("README.md", "docs/README.md"),
    ("main.go", "src/main.go"),
])
def test_fallback_directory_table(engine, fallback, expected):
    resolved = engine.resolve("no decoration here at all", fallback)
    assert resolved.relative_path == expected


def test_fallback_with_directory_is_kept(engine):
    resolved = engine.resolve("plain text body", "lib/deep/thing.rb")
    assert resolved.relative_path == "lib/deep/thing.rb"
    assert resolved.language == Language.RUBY


def test_fallback_without_extension_uses_hint(engine):
    resolved = engine.resolve("print('hi')", "snippet", Language.PYTHON)
    assert resolved.relative_path == "src/snippet.py"
    assert resolved.language == Language.PYTHON


def test_empty_fallback_gets_a_name(engine):
    resolved = engine.resolve("const a = 1;", "")
    assert resolved.relative_path == "src/utils/artifact.js"


def test_unknown_extension_is_text(engine):
    resolved = engine.resolve("whatever", "notes.xyz")
    assert resolved.relative_path == "src/notes.xyz"
    assert resolved.language == Language.TEXT


def test_guess_language_from_content():
    assert guess_language_from_content('{"manifest_version": 3}') == Language.JSON
    assert guess_language_from_content("function go() {}") == Language.JAVASCRIPT
    assert guess_language_from_content("def go():\n    pass") == Language.PYTHON
    assert guess_language_from_content("just words") == Language.TEXT


@pytest.mark.parametrize("candidate", [
    "../outside.js",
    "src/../../outside.js",
    "/etc/passwd",
    "C:/Windows/win.ini",
    "..\\evil.py",
    "",
])
def test_traversal_is_rejected(candidate):
    with pytest.raises(PathTraversalError):
        normalize_relative_path(candidate)


def test_decorated_traversal_is_rejected(engine):
    with pytest.raises(PathTraversalError):
        engine.resolve("// ../../etc/evil.js\nboom", "code1.js")


def test_normalize_cleans_redundant_segments():
    assert normalize_relative_path("src//./utils/a.js") == "src/utils/a.js"
    assert normalize_relative_path("src\\win\\path.ts") == "src/win/path.ts"


@pytest.mark.parametrize("bad_name", ["a\x00b.txt", "src/bad\ud800.js"])
def test_unwritable_names_are_rejected(bad_name):
    with pytest.raises(PathTraversalError):
        normalize_relative_path(bad_name)
