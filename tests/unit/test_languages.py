"""Tests for language detection."""

from __future__ import annotations

from pathlib import Path

from reposcan.scanner.languages import LanguageDetector
from reposcan.scanner.models import Language


def _touch(root: Path, *names: str) -> None:
    for name in names:
        path = root / name
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_text("")


def test_detects_python_repo(python_repo):
    langs = LanguageDetector().detect_languages(python_repo)
    assert langs == [Language.PYTHON]


def test_orders_by_count_then_name(tmp_path):
    _touch(tmp_path, "a.go", "b.go", "c.rs", "d.py", "e.py")
    langs = LanguageDetector().detect_languages(tmp_path)
    assert langs == [Language.GO, Language.PYTHON, Language.RUST]


def test_percentages(tmp_path):
    _touch(tmp_path, "a.js", "b.js", "c.js", "d.ts")
    results = LanguageDetector().detect(tmp_path)
    assert results[0].language == Language.JAVASCRIPT
    assert results[0].file_count == 3
    assert results[0].percentage == 75.0
    assert results[1].percentage == 25.0


def test_marker_files_count(tmp_path):
    _touch(tmp_path, "Gemfile", "go.mod", "README.md")
    langs = LanguageDetector().detect_languages(tmp_path)
    assert set(langs) == {Language.RUBY, Language.GO}


def test_skips_vendored_directories(tmp_path):
    _touch(
        tmp_path,
        "main.py",
        "node_modules/left-pad/index.js",
        "vendor/lib/x.go",
        ".git/hooks/pre-commit.py",
    )
    langs = LanguageDetector().detect_languages(tmp_path)
    assert langs == [Language.PYTHON]


def test_empty_repo(tmp_path):
    assert LanguageDetector().detect(tmp_path) == []


def test_unrecognized_files_only(tmp_path):
    _touch(tmp_path, "README.md", "LICENSE", "data.csv")
    assert LanguageDetector().detect_languages(tmp_path) == []


def test_file_cap_returns_partial_result(tmp_path, caplog):
    _touch(tmp_path, *(f"f{i}.py" for i in range(20)))
    with caplog.at_level("WARNING"):
        results = LanguageDetector(max_files=5).detect(tmp_path)
    assert results[0].language == Language.PYTHON
    assert results[0].file_count == 5
    assert "Stopped language detection" in caplog.text


def test_extension_lookup_is_case_insensitive():
    assert LanguageDetector.language_for_extension("PY") == Language.PYTHON
    assert LanguageDetector.language_for_extension(".tsx") == Language.TYPESCRIPT
    assert LanguageDetector.language_for_extension(".md") is None


def test_uppercase_and_missing_extensions(tmp_path):
    (tmp_path / "SETUP.PY").write_text("")
    (tmp_path / "Makefile").write_text("all:\n")
    (tmp_path / "notes.").write_text("")
    assert LanguageDetector().detect_languages(tmp_path) == [Language.PYTHON]
