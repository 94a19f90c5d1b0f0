"""Shared test fixtures."""

from __future__ import annotations

from pathlib import Path

import pytest

from reposcan.scanner.models import Finding, Severity


@pytest.fixture
def python_repo(tmp_path: Path) -> Path:
    """A small repository tree with Python sources and a requirements file."""
    repo = tmp_path / "repo"
    (repo / "app").mkdir(parents=True)
    (repo / "app" / "__init__.py").write_text("")
    (repo / "app" / "main.py").write_text(
        "import subprocess\n\n"
        "def run(cmd):\n"
        "    return subprocess.call(cmd, shell=True)\n"
    )
    (repo / "requirements.txt").write_text("requests==2.19.0\n")
    (repo / ".git").mkdir()
    (repo / ".git" / "config").write_text("[core]\n")
    return repo


@pytest.fixture
def make_finding():
    def _make(
        id: str = "f1",
        severity: Severity = Severity.MEDIUM,
        file_path: str = "app/main.py",
        line_number: int = 4,
        description: str = "subprocess call with shell=True",
        tool: str = "bandit",
    ) -> Finding:
        return Finding(
            id=id,
            severity=severity,
            tool=tool,
            file_path=file_path,
            line_number=line_number,
            description=description,
        )

    return _make
