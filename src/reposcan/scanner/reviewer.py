"""AI-assisted explanation of findings.

The reviewer never creates findings. It sends a bounded set of findings plus
the relevant code to a summarizer and copies back remediation text for the
ids it was given; anything else the model returns is discarded.
"""

from __future__ import annotations

import asyncio
import dataclasses
import json
import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import Protocol, runtime_checkable

from openai import AsyncOpenAI

from reposcan.scanner.models import Finding, ReviewStats

logger = logging.getLogger(__name__)

DEFAULT_MAX_FILES = 10
DEFAULT_REVIEW_TIMEOUT = 120.0
MAX_FILE_BYTES = 50 * 1024
EXCERPT_CONTEXT = 20


@dataclass
class Annotation:
    """Remediation guidance for one finding, keyed by its id."""

    finding_id: str
    remediation: str = ""
    code_example: str = ""


@dataclass
class ReviewOutcome:
    findings: list[Finding]
    stats: ReviewStats = field(default_factory=ReviewStats)
    error: str | None = None


@runtime_checkable
class Summarizer(Protocol):
    """Anything that can explain findings given the code they point at."""

    async def summarize(
        self, findings: list[Finding], files: dict[str, str]
    ) -> list[Annotation]:
        """Return annotations for (a subset of) the given findings."""
        ...


class CodeReviewer:
    """Adds remediation guidance to the findings in the most severe files."""

    def __init__(
        self,
        summarizer: Summarizer | None = None,
        max_files: int = DEFAULT_MAX_FILES,
        timeout: float = DEFAULT_REVIEW_TIMEOUT,
    ) -> None:
        self._summarizer = summarizer
        self._max_files = max_files
        self._timeout = timeout

    @property
    def enabled(self) -> bool:
        return self._summarizer is not None

    @property
    def max_files(self) -> int:
        return self._max_files

    @property
    def timeout(self) -> float:
        return self._timeout

    def select_files(self, findings: list[Finding]) -> list[str]:
        """Files with findings, most severe first, then by path; capped."""
        best: dict[str, int] = {}
        for f in findings:
            if not f.file_path:
                continue
            rank = f.severity.rank
            if f.file_path not in best or rank < best[f.file_path]:
                best[f.file_path] = rank
        ordered = sorted(best, key=lambda p: (best[p], p))
        return ordered[: self._max_files]

    async def review(self, repo_path: str, findings: list[Finding]) -> ReviewOutcome:
        """Annotate findings. Returns the input unchanged on any failure."""
        if self._summarizer is None or not findings:
            return ReviewOutcome(findings=findings)

        try:
            return await asyncio.wait_for(
                self._review(repo_path, findings), timeout=self._timeout
            )
        except asyncio.TimeoutError:
            logger.warning("AI review timed out after %.0fs", self._timeout)
            return ReviewOutcome(findings=findings, error="review timed out")
        except asyncio.CancelledError:
            raise
        except Exception as e:
            logger.warning("AI review failed: %s", e, exc_info=True)
            return ReviewOutcome(findings=findings, error=f"review failed: {type(e).__name__}")

    async def _review(self, repo_path: str, findings: list[Finding]) -> ReviewOutcome:
        root = Path(repo_path).resolve()
        files: dict[str, str] = {}
        for path in self.select_files(findings):
            lines = sorted({f.line_number for f in findings if f.file_path == path})
            content = await asyncio.to_thread(read_source, root, path, lines)
            if content is not None:
                files[path] = content

        if not files:
            logger.info("No reviewable files among %d findings", len(findings))
            return ReviewOutcome(findings=findings)

        sent = [f for f in findings if f.file_path in files]
        logger.info("Reviewing %d findings across %d files", len(sent), len(files))
        annotations = await self._summarizer.summarize(sent, files)

        sent_ids = {f.id for f in sent}
        by_id: dict[str, Annotation] = {}
        discarded = 0
        for a in annotations:
            if a.finding_id not in sent_ids or not a.remediation.strip():
                discarded += 1
                continue
            by_id[a.finding_id] = a
        if discarded:
            logger.info("Discarded %d unusable annotations", discarded)

        reviewed = []
        for f in findings:
            a = by_id.get(f.id)
            if a is None:
                reviewed.append(f)
                continue
            reviewed.append(
                dataclasses.replace(
                    f,
                    remediation=a.remediation.strip(),
                    code_example=a.code_example.strip(),
                    reviewed=True,
                )
            )

        return ReviewOutcome(
            findings=reviewed,
            stats=ReviewStats(
                files_reviewed=len(files),
                findings_reviewed=len(by_id),
                annotations_discarded=discarded,
            ),
        )


def read_source(root: Path, rel_path: str, lines: list[int]) -> str | None:
    """Read a repository file for review, or None if it is unsafe or unreadable.

    Files larger than MAX_FILE_BYTES are reduced to numbered excerpts around
    the flagged lines.
    """
    try:
        target = (root / rel_path).resolve()
    except OSError:
        return None
    if not target.is_relative_to(root) or not target.is_file():
        logger.debug("Skipping %s: outside repository or not a file", rel_path)
        return None

    try:
        size = target.stat().st_size
        text = target.read_text(encoding="utf-8", errors="replace")
    except OSError as e:
        logger.debug("Cannot read %s: %s", rel_path, e)
        return None

    if size <= MAX_FILE_BYTES:
        return text
    return _excerpts(text.splitlines(), [n for n in lines if n > 0])


def _excerpts(lines: list[str], flagged: list[int]) -> str:
    if not flagged:
        head = lines[: EXCERPT_CONTEXT * 2]
        return _numbered(head, 1) + "\n... (truncated)"

    windows: list[tuple[int, int]] = []
    for n in sorted(flagged):
        lo = max(n - EXCERPT_CONTEXT, 1)
        hi = min(n + EXCERPT_CONTEXT, len(lines))
        if windows and lo <= windows[-1][1] + 1:
            windows[-1] = (windows[-1][0], max(hi, windows[-1][1]))
        else:
            windows.append((lo, hi))

    parts = [_numbered(lines[lo - 1 : hi], lo) for lo, hi in windows if lo <= hi]
    return "\n...\n".join(parts)


def _numbered(lines: list[str], start: int) -> str:
    return "\n".join(f"{i:>6}  {line}" for i, line in enumerate(lines, start))


SYSTEM_PROMPT = """\
You are a security code reviewer. You receive security findings reported by \
scanning tools, each with an id, together with the code they point at.

For each finding you can explain, give:
1. what the issue is and why it matters, in plain language;
2. a concrete fix, with a short before/after code example.

Respond with JSON only:
{"annotations": [{"finding_id": "<id from the list>", "remediation": "...", "code_example": "..."}]}

Only use finding ids from the list. Do not report new vulnerabilities."""


def build_prompt(findings: list[Finding], files: dict[str, str]) -> str:
    parts = ["Review these security findings and provide remediation.\n"]
    for path, content in files.items():
        parts.append(f"## File: {path}\n\n### Findings:")
        for f in findings:
            if f.file_path != path:
                continue
            line = f" (line {f.line_number})" if f.line_number else ""
            parts.append(f"- id={f.id} [{f.severity.value}] {f.tool}{line}: {f.description}")
        parts.append(f"\n### Code:\n```\n{content}\n```\n")
    return "\n".join(parts)


def parse_annotations(content: str) -> list[Annotation]:
    """Decode the model's JSON reply, tolerating a markdown code fence."""
    text = content.strip()
    if text.startswith("```"):
        text = text.split("\n", 1)[1] if "\n" in text else ""
        text = text.rsplit("```", 1)[0]
    data = json.loads(text)
    if isinstance(data, dict):
        items = data.get("annotations") or data.get("findings") or []
    else:
        items = data if isinstance(data, list) else []
    annotations = []
    for item in items:
        if not isinstance(item, dict) or not item.get("finding_id"):
            continue
        annotations.append(
            Annotation(
                finding_id=str(item["finding_id"]),
                remediation=str(item.get("remediation") or ""),
                code_example=str(item.get("code_example") or ""),
            )
        )
    return annotations


class OpenAISummarizer:
    """Summarizer backed by the OpenAI chat completions API."""

    def __init__(self, api_key: str, model: str = "gpt-4o-mini", max_tokens: int = 4000) -> None:
        self._client = AsyncOpenAI(api_key=api_key)
        self.model = model
        self.max_tokens = max_tokens

    async def summarize(
        self, findings: list[Finding], files: dict[str, str]
    ) -> list[Annotation]:
        response = await self._client.chat.completions.create(
            model=self.model,
            messages=[
                {"role": "system", "content": SYSTEM_PROMPT},
                {"role": "user", "content": build_prompt(findings, files)},
            ],
            response_format={"type": "json_object"},
            max_tokens=self.max_tokens,
            temperature=0.2,
        )
        content = response.choices[0].message.content
        if not content:
            raise ValueError("empty response from model")
        logger.debug("Model response: %d chars", len(content))
        return parse_annotations(content)
