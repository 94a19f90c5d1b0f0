"""Merge tool results into a deduplicated, severity-ranked finding list."""

from __future__ import annotations

import hashlib
import re
from dataclasses import dataclass, field

from reposcan.scanner.models import Finding, RawFinding, Severity, ToolResult

LINE_TOLERANCE = 2
SIMILARITY_THRESHOLD = 0.5

_WORD = re.compile(r"[a-z0-9]+")
_STOPWORDS = frozenset(
    {"the", "and", "for", "with", "from", "that", "this", "are", "was", "not", "use", "used", "may"}
)


@dataclass
class _Candidate:
    severity: Severity
    file_path: str
    line_number: int
    description: str
    rule_id: str
    remediation: str
    tools: set[str] = field(default_factory=set)
    keywords: frozenset[str] = frozenset()


def aggregate(results: list[ToolResult]) -> list[Finding]:
    """Normalize, deduplicate and rank findings from all tool results.

    Never fails: anything a parser produced becomes a Finding. The output is a
    pure function of the input, ids included.
    """
    candidates = [
        _normalize(raw, result.tool)
        for result in results
        for raw in result.findings
    ]
    # Stable input order regardless of which tool finished first
    candidates.sort(
        key=lambda c: (
            c.file_path, c.line_number, c.severity.rank,
            min(c.tools), c.rule_id, c.description,
        )
    )

    merged: list[_Candidate] = []
    for candidate in candidates:
        for existing in merged:
            if _same_issue(existing, candidate):
                _merge(existing, candidate)
                break
        else:
            merged.append(candidate)

    findings = _assign_ids(merged)
    findings.sort(
        key=lambda f: (f.severity.rank, f.file_path, f.line_number, f.description)
    )
    return findings


def _normalize(raw: RawFinding, tool: str) -> _Candidate:
    description = " ".join(raw.description.split())
    return _Candidate(
        severity=Severity.parse(raw.severity),
        file_path=(raw.file_path or "").strip(),
        line_number=max(raw.line_number or 0, 0),
        description=description,
        rule_id=(raw.rule_id or "").strip(),
        remediation=(raw.remediation or "").strip(),
        tools={tool},
        keywords=keywords(description),
    )


def keywords(text: str) -> frozenset[str]:
    return frozenset(
        w for w in _WORD.findall(text.lower()) if len(w) > 2 and w not in _STOPWORDS
    )


def similarity(a: frozenset[str], b: frozenset[str]) -> float:
    """Jaccard index of two keyword sets."""
    if not a and not b:
        return 1.0
    return len(a & b) / len(a | b)


def _lines_match(a: int, b: int) -> bool:
    if a == 0 or b == 0:
        return a == b
    return abs(a - b) <= LINE_TOLERANCE


def _same_issue(a: _Candidate, b: _Candidate) -> bool:
    if a.file_path != b.file_path or not _lines_match(a.line_number, b.line_number):
        return False
    if a.rule_id and b.rule_id:
        # Distinct advisories on one manifest line are never the same issue
        return a.rule_id == b.rule_id
    return similarity(a.keywords, b.keywords) >= SIMILARITY_THRESHOLD


def _merge(kept: _Candidate, other: _Candidate) -> None:
    if other.severity.rank < kept.severity.rank:
        kept.severity = other.severity
        kept.description = other.description
        kept.line_number = other.line_number
        kept.keywords = other.keywords
        if other.rule_id:
            kept.rule_id = other.rule_id
    if not kept.rule_id:
        kept.rule_id = other.rule_id
    if len(other.remediation) > len(kept.remediation):
        kept.remediation = other.remediation
    kept.tools |= other.tools


def _assign_ids(candidates: list[_Candidate]) -> list[Finding]:
    findings = []
    seen: dict[str, int] = {}
    for c in candidates:
        basis = f"{c.file_path}\x00{c.line_number}\x00{c.rule_id or c.description}"
        digest = hashlib.sha1(basis.encode("utf-8")).hexdigest()[:16]
        n = seen.get(digest, 0)
        seen[digest] = n + 1
        finding_id = digest if n == 0 else f"{digest}-{n}"
        findings.append(
            Finding(
                id=finding_id,
                severity=c.severity,
                tool=",".join(sorted(c.tools)),
                file_path=c.file_path,
                line_number=c.line_number,
                description=c.description,
                remediation=c.remediation,
                rule_id=c.rule_id,
            )
        )
    return findings
