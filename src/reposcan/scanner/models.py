"""Scanner data models: jobs, findings and tool results."""

from __future__ import annotations

import enum
import time
import uuid
from dataclasses import asdict, dataclass, field


class Severity(enum.Enum):
    """Finding severity level, most severe first."""

    CRITICAL = "critical"
    HIGH = "high"
    MEDIUM = "medium"
    LOW = "low"

    @property
    def rank(self) -> int:
        return _SEVERITY_RANK[self]

    @classmethod
    def parse(cls, raw: object) -> Severity:
        """Map a tool-reported severity onto the fixed four; unknown -> medium."""
        if not isinstance(raw, str):
            return cls.MEDIUM
        return _SEVERITY_ALIASES.get(raw.strip().lower(), cls.MEDIUM)


_SEVERITY_RANK = {
    Severity.CRITICAL: 0,
    Severity.HIGH: 1,
    Severity.MEDIUM: 2,
    Severity.LOW: 3,
}

_SEVERITY_ALIASES = {
    "critical": Severity.CRITICAL,
    "crit": Severity.CRITICAL,
    "high": Severity.HIGH,
    "error": Severity.HIGH,
    "medium": Severity.MEDIUM,
    "moderate": Severity.MEDIUM,
    "warning": Severity.MEDIUM,
    "warn": Severity.MEDIUM,
    "low": Severity.LOW,
    "info": Severity.LOW,
    "informational": Severity.LOW,
    "note": Severity.LOW,
    "negligible": Severity.LOW,
}


class Language(enum.Enum):
    """Programming languages the detector recognizes."""

    GO = "go"
    JAVASCRIPT = "javascript"
    TYPESCRIPT = "typescript"
    PYTHON = "python"
    JAVA = "java"
    RUBY = "ruby"
    PHP = "php"
    C = "c"
    CPP = "cpp"
    RUST = "rust"


class JobStatus(enum.Enum):
    """Lifecycle state of a scan job."""

    PENDING = "pending"
    CLONING = "cloning"
    SCANNING = "scanning"
    REVIEWING = "reviewing"
    COMPLETED = "completed"
    FAILED = "failed"

    @property
    def rank(self) -> int:
        return _STATUS_RANK[self]

    @property
    def is_terminal(self) -> bool:
        return self in (JobStatus.COMPLETED, JobStatus.FAILED)


_STATUS_RANK = {
    JobStatus.PENDING: 0,
    JobStatus.CLONING: 1,
    JobStatus.SCANNING: 2,
    JobStatus.REVIEWING: 3,
    JobStatus.COMPLETED: 4,
    JobStatus.FAILED: 4,
}


@dataclass
class RawFinding:
    """A finding as parsed from one tool's output, before aggregation."""

    file_path: str
    description: str
    severity: str = ""
    line_number: int = 0
    rule_id: str = ""
    remediation: str = ""


@dataclass
class Finding:
    """A normalized, aggregated security finding."""

    id: str
    severity: Severity
    tool: str
    file_path: str
    description: str
    line_number: int = 0
    remediation: str = ""
    code_example: str = ""
    rule_id: str = ""
    reviewed: bool = False

    def to_dict(self) -> dict:
        data = asdict(self)
        data["severity"] = self.severity.value
        return data


@dataclass
class ToolResult:
    """Outcome of one tool invocation for one job. Never persisted as-is."""

    tool: str
    findings: list[RawFinding] = field(default_factory=list)
    duration: float = 0.0
    timed_out: bool = False
    exit_code: int | None = None
    error: str | None = None


@dataclass
class ToolRun:
    """Per-tool summary kept on the job record."""

    tool: str
    duration: float = 0.0
    timed_out: bool = False
    exit_code: int | None = None
    error: str | None = None
    finding_count: int = 0

    @classmethod
    def from_result(cls, result: ToolResult) -> ToolRun:
        return cls(
            tool=result.tool,
            duration=round(result.duration, 3),
            timed_out=result.timed_out,
            exit_code=result.exit_code,
            error=result.error,
            finding_count=len(result.findings),
        )


@dataclass
class CloneResult:
    """An ephemeral workspace holding a shallow clone."""

    path: str
    owner: str
    repo: str
    size_bytes: int = 0
    ref: str = ""
    duration: float = 0.0


@dataclass
class ReviewStats:
    """Counts produced by the AI review phase."""

    files_reviewed: int = 0
    findings_reviewed: int = 0
    annotations_discarded: int = 0


@dataclass
class ScanJob:
    """One scan request, end to end."""

    repo_url: str
    status: JobStatus = JobStatus.PENDING
    languages: list[str] = field(default_factory=list)
    findings: list[Finding] = field(default_factory=list)
    review_stats: ReviewStats = field(default_factory=ReviewStats)
    tool_runs: list[ToolRun] = field(default_factory=list)
    created_at: float = field(default_factory=time.time)
    completed_at: float | None = None
    error_message: str | None = None
    id: str = field(default_factory=lambda: uuid.uuid4().hex[:12])

    def severity_counts(self) -> dict[str, int]:
        counts = {s.value: 0 for s in Severity}
        for finding in self.findings:
            counts[finding.severity.value] += 1
        return counts

    def to_dict(self) -> dict:
        data = {
            "id": self.id,
            "repo_url": self.repo_url,
            "status": self.status.value,
            "languages": list(self.languages),
            "findings": [f.to_dict() for f in self.findings],
            "severity_counts": self.severity_counts(),
            "review_stats": asdict(self.review_stats),
            "tool_runs": [asdict(t) for t in self.tool_runs],
            "created_at": self.created_at,
            "completed_at": self.completed_at,
        }
        if self.status == JobStatus.FAILED:
            data["error"] = self.error_message
        return data
