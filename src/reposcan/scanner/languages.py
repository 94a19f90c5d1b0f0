"""Language detection from file extensions and marker files."""

from __future__ import annotations

import logging
import os
from collections import Counter
from dataclasses import dataclass
from pathlib import Path

from reposcan.scanner.models import Language

logger = logging.getLogger(__name__)

DEFAULT_MAX_FILES = 50_000

_EXTENSIONS: dict[str, Language] = {
    ".go": Language.GO,
    ".js": Language.JAVASCRIPT,
    ".jsx": Language.JAVASCRIPT,
    ".mjs": Language.JAVASCRIPT,
    ".cjs": Language.JAVASCRIPT,
    ".ts": Language.TYPESCRIPT,
    ".tsx": Language.TYPESCRIPT,
    ".mts": Language.TYPESCRIPT,
    ".cts": Language.TYPESCRIPT,
    ".py": Language.PYTHON,
    ".pyw": Language.PYTHON,
    ".pyi": Language.PYTHON,
    ".java": Language.JAVA,
    ".rb": Language.RUBY,
    ".rake": Language.RUBY,
    ".gemspec": Language.RUBY,
    ".php": Language.PHP,
    ".phtml": Language.PHP,
    ".php3": Language.PHP,
    ".php4": Language.PHP,
    ".php5": Language.PHP,
    ".php7": Language.PHP,
    ".phps": Language.PHP,
    ".c": Language.C,
    ".h": Language.C,
    ".cpp": Language.CPP,
    ".cxx": Language.CPP,
    ".cc": Language.CPP,
    ".hpp": Language.CPP,
    ".hxx": Language.CPP,
    ".hh": Language.CPP,
    ".c++": Language.CPP,
    ".h++": Language.CPP,
    ".rs": Language.RUST,
}

# Manifest / build files that identify a stack even without source files
_MARKERS: dict[str, Language] = {
    "go.mod": Language.GO,
    "package.json": Language.JAVASCRIPT,
    "tsconfig.json": Language.TYPESCRIPT,
    "requirements.txt": Language.PYTHON,
    "pyproject.toml": Language.PYTHON,
    "setup.py": Language.PYTHON,
    "Pipfile": Language.PYTHON,
    "Cargo.toml": Language.RUST,
    "Gemfile": Language.RUBY,
    "pom.xml": Language.JAVA,
    "build.gradle": Language.JAVA,
    "composer.json": Language.PHP,
}

_SKIP_DIRS = {
    ".git",
    "node_modules",
    "vendor",
    ".venv",
    "venv",
    "__pycache__",
    ".cache",
    "dist",
    "build",
    "target",
    ".idea",
    ".vscode",
}


@dataclass
class LanguageResult:
    """A detected language with its share of recognized files."""

    language: Language
    file_count: int
    percentage: float


class LanguageDetector:
    """Classifies a repository tree into the languages it contains."""

    def __init__(self, max_files: int = DEFAULT_MAX_FILES) -> None:
        self._max_files = max_files

    def detect(self, repo_path: str | Path) -> list[LanguageResult]:
        """Return detected languages, most files first, ties broken by name."""
        counts: Counter[Language] = Counter()
        visited = 0

        for root, dirs, files in os.walk(repo_path):
            dirs[:] = sorted(d for d in dirs if d not in _SKIP_DIRS)
            for name in files:
                visited += 1
                if visited > self._max_files:
                    logger.warning(
                        "Stopped language detection after %d files in %s",
                        self._max_files,
                        repo_path,
                    )
                    return _to_results(counts)

                lang = _MARKERS.get(name) or self.language_for_extension(
                    os.path.splitext(name)[1]
                )
                if lang is not None:
                    counts[lang] += 1

        return _to_results(counts)

    def detect_languages(self, repo_path: str | Path) -> list[Language]:
        return [r.language for r in self.detect(repo_path)]

    @staticmethod
    def language_for_extension(ext: str) -> Language | None:
        ext = ext.lower()
        if not ext.startswith("."):
            ext = "." + ext
        return _EXTENSIONS.get(ext)


def _to_results(counts: Counter[Language]) -> list[LanguageResult]:
    total = sum(counts.values())
    results = [
        LanguageResult(
            language=lang,
            file_count=count,
            percentage=count / total * 100 if total else 0.0,
        )
        for lang, count in counts.items()
    ]
    results.sort(key=lambda r: (-r.file_count, r.language.value))
    return results
