"""Tool registry and runner for the external security analyzers."""

from __future__ import annotations

import asyncio
import enum
import logging
import os
import shutil
import time
from collections.abc import Callable, Iterable
from dataclasses import dataclass, field
from pathlib import Path

from reposcan.scanner import parsers
from reposcan.scanner.models import Language, RawFinding, ToolResult
from reposcan.scanner.parsers import ParseError
from reposcan.scanner.process import run_process

logger = logging.getLogger(__name__)

DEFAULT_TOOL_TIMEOUT = 300.0
DEFAULT_MAX_CONCURRENCY = 4


class ToolName(enum.Enum):
    """Identifiers of the analyzers the runner knows how to drive."""

    TRIVY = "trivy"
    SEMGREP = "semgrep"
    TRUFFLEHOG = "trufflehog"
    GITLEAKS = "gitleaks"
    GOVULNCHECK = "govulncheck"
    BANDIT = "bandit"
    PIP_AUDIT = "pip-audit"
    SAFETY = "safety"
    NPM_AUDIT = "npm-audit"
    CARGO_AUDIT = "cargo-audit"
    BUNDLER_AUDIT = "bundler-audit"
    BRAKEMAN = "brakeman"


class ToolCategory(enum.Enum):
    SECRETS = "secrets"
    DEPENDENCIES = "dependencies"
    CODE = "code"
    MISCONFIG = "misconfig"


# Fallback remediation text when a tool gives none
REMEDIATION_TEMPLATES = {
    ToolCategory.SECRETS: (
        "Revoke and rotate the exposed credential, remove it from the code, "
        "and load it from a secret manager or environment variable instead."
    ),
    ToolCategory.DEPENDENCIES: (
        "Upgrade the affected dependency to a version that includes the fix, "
        "then regenerate the lock file."
    ),
    ToolCategory.CODE: (
        "Review the flagged code and apply the secure pattern recommended for "
        "this rule, such as validating input or using a safe API."
    ),
    ToolCategory.MISCONFIG: (
        "Update the configuration to follow the recommended secure setting."
    ),
}


@dataclass(frozen=True)
class ToolSpec:
    """How to invoke one analyzer and read its output."""

    name: ToolName
    executable: str
    build_args: Callable[[str], list[str]]
    parse: Callable[[str], list[RawFinding]]
    category: ToolCategory
    languages: frozenset[Language] = frozenset()
    required_files: tuple[str, ...] = ()
    report_file: str = ""

    @property
    def universal(self) -> bool:
        return not self.languages


_GITLEAKS_REPORT = ".gitleaks-report.json"

TOOL_REGISTRY: dict[ToolName, ToolSpec] = {
    spec.name: spec
    for spec in (
        ToolSpec(
            name=ToolName.TRIVY,
            executable="trivy",
            build_args=lambda repo: [
                "fs", "--format", "json",
                "--scanners", "vuln,secret,misconfig",
                "--severity", "CRITICAL,HIGH,MEDIUM,LOW",
                "--skip-dirs", ".git",
                "--quiet",
                repo,
            ],
            parse=parsers.parse_trivy,
            category=ToolCategory.DEPENDENCIES,
        ),
        ToolSpec(
            name=ToolName.SEMGREP,
            executable="semgrep",
            build_args=lambda repo: [
                "scan",
                "--config", "p/security-audit",
                "--config", "p/owasp-top-ten",
                "--json", "--quiet", "--metrics=off",
                repo,
            ],
            parse=parsers.parse_semgrep,
            category=ToolCategory.CODE,
        ),
        ToolSpec(
            name=ToolName.TRUFFLEHOG,
            executable="trufflehog",
            build_args=lambda repo: ["filesystem", "--json", "--no-update", repo],
            parse=parsers.parse_trufflehog,
            category=ToolCategory.SECRETS,
        ),
        ToolSpec(
            name=ToolName.GITLEAKS,
            executable="gitleaks",
            build_args=lambda repo: [
                "detect",
                "--source", repo,
                "--report-format", "json",
                "--report-path", os.path.join(repo, _GITLEAKS_REPORT),
                "--no-git",
                "--exit-code", "0",
            ],
            parse=parsers.parse_gitleaks,
            category=ToolCategory.SECRETS,
            report_file=_GITLEAKS_REPORT,
        ),
        ToolSpec(
            name=ToolName.GOVULNCHECK,
            executable="govulncheck",
            build_args=lambda repo: ["-json", "./..."],
            parse=parsers.parse_govulncheck,
            category=ToolCategory.DEPENDENCIES,
            languages=frozenset({Language.GO}),
            required_files=("go.mod",),
        ),
        ToolSpec(
            name=ToolName.BANDIT,
            executable="bandit",
            build_args=lambda repo: ["-r", "-f", "json", "-q", repo],
            parse=parsers.parse_bandit,
            category=ToolCategory.CODE,
            languages=frozenset({Language.PYTHON}),
        ),
        ToolSpec(
            name=ToolName.PIP_AUDIT,
            executable="pip-audit",
            build_args=lambda repo: [
                "-r", os.path.join(repo, "requirements.txt"), "--format", "json",
            ],
            parse=parsers.parse_pip_audit,
            category=ToolCategory.DEPENDENCIES,
            languages=frozenset({Language.PYTHON}),
            required_files=("requirements.txt",),
        ),
        ToolSpec(
            name=ToolName.SAFETY,
            executable="safety",
            build_args=lambda repo: [
                "check", "-r", os.path.join(repo, "requirements.txt"), "--json",
            ],
            parse=parsers.parse_safety,
            category=ToolCategory.DEPENDENCIES,
            languages=frozenset({Language.PYTHON}),
            required_files=("requirements.txt",),
        ),
        ToolSpec(
            name=ToolName.NPM_AUDIT,
            executable="npm",
            build_args=lambda repo: ["audit", "--json", "--package-lock-only"],
            parse=parsers.parse_npm_audit,
            category=ToolCategory.DEPENDENCIES,
            languages=frozenset({Language.JAVASCRIPT, Language.TYPESCRIPT}),
            required_files=("package-lock.json", "npm-shrinkwrap.json"),
        ),
        ToolSpec(
            name=ToolName.CARGO_AUDIT,
            executable="cargo",
            build_args=lambda repo: ["audit", "--json"],
            parse=parsers.parse_cargo_audit,
            category=ToolCategory.DEPENDENCIES,
            languages=frozenset({Language.RUST}),
            required_files=("Cargo.lock",),
        ),
        ToolSpec(
            name=ToolName.BUNDLER_AUDIT,
            executable="bundle-audit",
            build_args=lambda repo: ["check", "--format", "json"],
            parse=parsers.parse_bundler_audit,
            category=ToolCategory.DEPENDENCIES,
            languages=frozenset({Language.RUBY}),
            required_files=("Gemfile.lock",),
        ),
        ToolSpec(
            name=ToolName.BRAKEMAN,
            executable="brakeman",
            build_args=lambda repo: ["-p", repo, "-f", "json", "--no-pager", "-q"],
            parse=parsers.parse_brakeman,
            category=ToolCategory.CODE,
            languages=frozenset({Language.RUBY}),
        ),
    )
}


@dataclass
class ToolRunner:
    """Selects and runs analyzers with per-tool timeouts and bounded concurrency.

    Whatever goes wrong with one tool is recorded on its own
    ToolResult and never affects the other tools.
    """

    timeout: float = DEFAULT_TOOL_TIMEOUT
    max_concurrency: int = DEFAULT_MAX_CONCURRENCY
    container: str = ""
    registry: dict[ToolName, ToolSpec] = field(default_factory=lambda: dict(TOOL_REGISTRY))

    def select_tools(self, languages: Iterable[Language]) -> list[ToolName]:
        """Universal tools plus those whose language was detected, registry order."""
        present = set(languages)
        return [
            name
            for name, spec in self.registry.items()
            if spec.universal or spec.languages & present
        ]

    async def run_all(
        self,
        tools: list[ToolName],
        repo_path: str,
        languages: Iterable[Language] = (),
    ) -> list[ToolResult]:
        """Run tools concurrently; results come back in the order given."""
        semaphore = asyncio.Semaphore(self.max_concurrency)
        langs = list(languages)

        async def _bounded(tool: ToolName) -> ToolResult:
            async with semaphore:
                return await self.run(tool, repo_path, langs)

        return list(await asyncio.gather(*(_bounded(t) for t in tools)))

    async def run(
        self,
        tool: ToolName,
        repo_path: str,
        languages: Iterable[Language] = (),
    ) -> ToolResult:
        """Run one tool against repo_path. Never raises except on cancellation."""
        result = ToolResult(tool=tool.value)
        start = time.monotonic()
        try:
            await self._execute(tool, repo_path, result)
        except asyncio.CancelledError:
            raise
        except Exception as e:
            logger.exception("Tool %s crashed", tool.value)
            result.error = f"{tool.value} failed unexpectedly: {type(e).__name__}"
        result.duration = time.monotonic() - start

        logger.info(
            "Tool %s finished: %d findings, timed_out=%s, exit=%s, error=%s",
            tool.value,
            len(result.findings),
            result.timed_out,
            result.exit_code,
            result.error,
        )
        return result

    async def _execute(self, tool: ToolName, repo_path: str, result: ToolResult) -> None:
        spec = self.registry.get(tool)
        if spec is None:
            result.error = f"unknown tool: {tool.value}"
            return

        root = Path(repo_path)
        if spec.required_files and not any((root / f).is_file() for f in spec.required_files):
            result.error = f"{tool.value} skipped: {' or '.join(spec.required_files)} not found"
            return

        args = [spec.executable, *spec.build_args(repo_path)]
        if self.container:
            args = ["docker", "exec", "-w", repo_path, self.container, *args]

        logger.debug("Executing %s", " ".join(args))
        try:
            proc = await run_process(args, timeout=self.timeout, cwd=repo_path)
        except FileNotFoundError:
            result.error = f"{tool.value} is not installed"
            return

        result.timed_out = proc.timed_out
        result.exit_code = proc.returncode

        output = proc.stdout_text
        if spec.report_file:
            output = _read_report(root / spec.report_file)

        try:
            raw = spec.parse(output)
        except ParseError as e:
            # Partial output from a killed tool is expected to be malformed
            result.error = str(e) if not proc.timed_out else f"{tool.value} timed out"
            return

        if proc.timed_out:
            result.error = f"{tool.value} timed out after {self.timeout:.0f}s"
        elif proc.returncode not in (0, None) and not output.strip():
            stderr = proc.stderr_text.strip().splitlines()
            tail = stderr[-1][:200] if stderr else "no output"
            result.error = f"{tool.value} exited with code {proc.returncode}: {tail}"

        template = REMEDIATION_TEMPLATES[spec.category]
        for finding in raw:
            finding.file_path = relative_path(finding.file_path, repo_path)
            if not finding.remediation:
                finding.remediation = template
        result.findings = raw


def relative_path(path: str, repo_path: str) -> str:
    """Express a tool-reported path relative to the repository root."""
    if not path:
        return ""
    root = os.path.normpath(repo_path)
    candidate = os.path.normpath(path)
    if os.path.isabs(candidate):
        try:
            rel = os.path.relpath(candidate, root)
        except ValueError:
            return candidate
        if rel == "." or rel.startswith(".."):
            return candidate
        return rel.replace(os.sep, "/")
    return candidate.removeprefix("./").replace(os.sep, "/")


def _read_report(path: Path) -> str:
    try:
        text = path.read_text(encoding="utf-8", errors="replace")
    except FileNotFoundError:
        return ""
    try:
        path.unlink()
    except OSError as e:
        logger.debug("Could not remove report %s: %s", path, e)
    return text


def tool_available(spec: ToolSpec) -> bool:
    return shutil.which(spec.executable) is not None
