"""Job repositories: the only state shared between scan jobs and callers."""

from __future__ import annotations

import asyncio
import copy
import json
import threading
import time
from dataclasses import asdict
from typing import Protocol, runtime_checkable

import aiosqlite

from reposcan.scanner.models import (
    Finding,
    JobStatus,
    ReviewStats,
    ScanJob,
    Severity,
    ToolRun,
)

_DAY = 86400


@runtime_checkable
class JobRepository(Protocol):
    """Persistence for scan jobs. Implementations must be safe to share."""

    async def save(self, job: ScanJob) -> None:
        """Insert or replace the job, findings included."""
        ...

    async def load(self, job_id: str) -> ScanJob | None:
        ...

    async def list_expired(self, retention_days: int) -> list[ScanJob]:
        """Jobs created more than retention_days ago."""
        ...

    async def delete(self, job_id: str) -> None:
        ...


def _cutoff(retention_days: int) -> float:
    return time.time() - retention_days * _DAY


class InMemoryJobRepo:
    """Process-local repository. Stores copies so callers never share objects."""

    def __init__(self) -> None:
        self._jobs: dict[str, ScanJob] = {}
        self._lock = threading.Lock()

    async def save(self, job: ScanJob) -> None:
        with self._lock:
            self._jobs[job.id] = copy.deepcopy(job)

    async def load(self, job_id: str) -> ScanJob | None:
        with self._lock:
            job = self._jobs.get(job_id)
            return copy.deepcopy(job) if job else None

    async def list_expired(self, retention_days: int) -> list[ScanJob]:
        cutoff = _cutoff(retention_days)
        with self._lock:
            return [
                copy.deepcopy(j) for j in self._jobs.values() if j.created_at < cutoff
            ]

    async def delete(self, job_id: str) -> None:
        with self._lock:
            self._jobs.pop(job_id, None)

    def __len__(self) -> int:
        with self._lock:
            return len(self._jobs)


class SqliteJobRepo:
    """CRUD for scan jobs and their findings."""

    def __init__(self, db: aiosqlite.Connection) -> None:
        self._db = db
        self._write_lock = asyncio.Lock()

    async def save(self, job: ScanJob) -> None:
        async with self._write_lock:
            await self._db.execute(
                "INSERT OR REPLACE INTO scan_jobs "
                "(id, repo_url, status, languages, error_message, "
                "created_at, completed_at, review_stats, tool_runs) "
                "VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?)",
                (
                    job.id,
                    job.repo_url,
                    job.status.value,
                    json.dumps(job.languages),
                    job.error_message,
                    job.created_at,
                    job.completed_at,
                    json.dumps(asdict(job.review_stats)),
                    json.dumps([asdict(t) for t in job.tool_runs]),
                ),
            )
            await self._db.execute(
                "DELETE FROM scan_findings WHERE job_id = ?", (job.id,)
            )
            await self._db.executemany(
                "INSERT INTO scan_findings "
                "(job_id, id, position, severity, tool, file_path, line_number, "
                "description, remediation, code_example, rule_id, reviewed) "
                "VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)",
                [
                    (
                        job.id,
                        f.id,
                        position,
                        f.severity.value,
                        f.tool,
                        f.file_path,
                        f.line_number,
                        f.description,
                        f.remediation,
                        f.code_example,
                        f.rule_id,
                        int(f.reviewed),
                    )
                    for position, f in enumerate(job.findings)
                ],
            )
            await self._db.commit()

    async def load(self, job_id: str) -> ScanJob | None:
        cursor = await self._db.execute(
            "SELECT * FROM scan_jobs WHERE id = ?", (job_id,)
        )
        row = await cursor.fetchone()
        if row is None:
            return None
        return await self._hydrate(dict(row))

    async def list_expired(self, retention_days: int) -> list[ScanJob]:
        cursor = await self._db.execute(
            "SELECT * FROM scan_jobs WHERE created_at < ? ORDER BY created_at",
            (_cutoff(retention_days),),
        )
        rows = [dict(row) async for row in cursor]
        return [await self._hydrate(row) for row in rows]

    async def delete(self, job_id: str) -> None:
        async with self._write_lock:
            await self._db.execute(
                "DELETE FROM scan_findings WHERE job_id = ?", (job_id,)
            )
            await self._db.execute("DELETE FROM scan_jobs WHERE id = ?", (job_id,))
            await self._db.commit()

    async def _hydrate(self, row: dict) -> ScanJob:
        cursor = await self._db.execute(
            "SELECT * FROM scan_findings WHERE job_id = ? ORDER BY position",
            (row["id"],),
        )
        findings = [
            Finding(
                id=f["id"],
                severity=Severity(f["severity"]),
                tool=f["tool"],
                file_path=f["file_path"],
                line_number=f["line_number"],
                description=f["description"],
                remediation=f["remediation"],
                code_example=f["code_example"],
                rule_id=f["rule_id"],
                reviewed=bool(f["reviewed"]),
            )
            async for f in cursor
        ]
        return ScanJob(
            id=row["id"],
            repo_url=row["repo_url"],
            status=JobStatus(row["status"]),
            languages=json.loads(row["languages"] or "[]"),
            findings=findings,
            review_stats=ReviewStats(**json.loads(row["review_stats"] or "{}")),
            tool_runs=[ToolRun(**t) for t in json.loads(row["tool_runs"] or "[]")],
            created_at=row["created_at"],
            completed_at=row["completed_at"],
            error_message=row["error_message"],
        )
