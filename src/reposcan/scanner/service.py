"""ScanService: orchestrates one asyncio task per scan job.

Job lifecycle::

    pending -> cloning -> scanning -> reviewing -> completed
                   \\           \\           \\
                    `-----------`-----------`---> failed

Transitions only move forward; a terminal job is never touched again.
The cloned workspace is removed before the terminal state is recorded.
"""

from __future__ import annotations

import asyncio
import copy
import logging
import math
import time

from reposcan.config import ReposcanConfig
from reposcan.scanner.aggregator import aggregate
from reposcan.scanner.cloner import CleanupError, CloneError, Cloner
from reposcan.scanner.languages import LanguageDetector
from reposcan.scanner.models import JobStatus, Language, ScanJob, ToolRun
from reposcan.scanner.reviewer import CodeReviewer, OpenAISummarizer
from reposcan.scanner.tools import ToolRunner
from reposcan.scanner.validator import normalize_github_url, validate_github_url
from reposcan.storage.repos import JobRepository

logger = logging.getLogger(__name__)

# Headroom for detection, aggregation and persistence
_JOB_TIMEOUT_SLACK = 60.0

MSG_TIMED_OUT = "Scan timed out"
MSG_CANCELLED = "Scan was cancelled"
MSG_INTERNAL = "Internal error during scan"


class JobNotFoundError(LookupError):
    def __init__(self, job_id: str) -> None:
        super().__init__(f"scan job not found: {job_id}")
        self.job_id = job_id


class InvalidTransitionError(RuntimeError):
    """A job was asked to move backwards or out of a terminal state."""


class ScanService:
    """Runs scans in the background and records their progress."""

    def __init__(
        self,
        repo: JobRepository,
        cloner: Cloner,
        detector: LanguageDetector,
        runner: ToolRunner,
        reviewer: CodeReviewer,
        retention_days: int = 7,
        job_timeout: float | None = None,
    ) -> None:
        self._repo = repo
        self._cloner = cloner
        self._detector = detector
        self._runner = runner
        self._reviewer = reviewer
        self._retention_days = retention_days
        self._job_timeout = job_timeout or self._default_job_timeout()
        self._tasks: dict[str, asyncio.Task] = {}

    @classmethod
    def from_config(cls, config: ReposcanConfig, repo: JobRepository) -> ScanService:
        summarizer = None
        if config.ai_review_enabled:
            summarizer = OpenAISummarizer(config.openai_api_key, model=config.review_model)
        return cls(
            repo=repo,
            cloner=Cloner(
                github_token=config.github_token,
                max_size_mb=config.max_repo_size_mb,
                clone_timeout=config.clone_timeout,
                temp_dir=config.temp_dir,
            ),
            detector=LanguageDetector(max_files=config.max_detect_files),
            runner=ToolRunner(
                timeout=float(config.tool_timeout_seconds),
                max_concurrency=config.max_concurrent_tools,
                container=config.scanner_container,
            ),
            reviewer=CodeReviewer(
                summarizer,
                max_files=config.max_review_files,
                timeout=config.review_timeout,
            ),
            retention_days=config.retention_days,
        )

    def _default_job_timeout(self) -> float:
        waves = math.ceil(len(self._runner.registry) / max(self._runner.max_concurrency, 1))
        review = self._reviewer.timeout if self._reviewer.enabled else 0.0
        return self._cloner.clone_timeout + self._runner.timeout * waves + review + _JOB_TIMEOUT_SLACK

    @property
    def job_timeout(self) -> float:
        return self._job_timeout

    @property
    def active_jobs(self) -> list[str]:
        return list(self._tasks)

    async def start_scan(self, repo_url: str) -> ScanJob:
        """Validate, record a pending job and start it. Returns immediately.

        Raises ValidationError for a bad URL; no job is created then.
        """
        validate_github_url(repo_url)
        job = ScanJob(repo_url=normalize_github_url(repo_url))
        await self._repo.save(job)
        snapshot = copy.deepcopy(job)

        task = asyncio.create_task(self._run_job(job), name=f"scan-{job.id}")
        self._tasks[job.id] = task
        task.add_done_callback(lambda _t, job_id=job.id: self._tasks.pop(job_id, None))

        logger.info("Started scan job %s for %s", job.id, job.repo_url)
        return snapshot

    async def get_job(self, job_id: str) -> ScanJob:
        job = await self._repo.load(job_id)
        if job is None:
            raise JobNotFoundError(job_id)
        return job

    def get_config(self) -> dict:
        return {
            "max_files_to_review": self._reviewer.max_files,
            "ai_review_enabled": self._reviewer.enabled,
            "private_repo_enabled": self._cloner.has_token,
        }

    async def wait(self, job_id: str) -> ScanJob:
        """Block until the job's task is done, then return the stored job."""
        task = self._tasks.get(job_id)
        if task is not None:
            await asyncio.wait({task})
        return await self.get_job(job_id)

    async def purge_expired(self) -> int:
        """Delete jobs past the retention period. Running jobs are left alone."""
        expired = await self._repo.list_expired(self._retention_days)
        purged = 0
        for job in expired:
            if job.id in self._tasks:
                continue
            await self._repo.delete(job.id)
            purged += 1
        if purged:
            logger.info("Purged %d expired scan jobs", purged)
        return purged

    async def shutdown(self) -> None:
        tasks = list(self._tasks.values())
        for task in tasks:
            task.cancel()
        if tasks:
            logger.info("Cancelling %d running scan jobs", len(tasks))
            await asyncio.gather(*tasks, return_exceptions=True)

    async def _run_job(self, job: ScanJob) -> None:
        try:
            await asyncio.wait_for(self._run_scan(job), timeout=self._job_timeout)
        except asyncio.TimeoutError:
            logger.warning("Job %s exceeded %.0fs", job.id, self._job_timeout)
            await self._fail(job, MSG_TIMED_OUT)
        except CloneError as e:
            logger.info("Job %s clone failed: %s", job.id, e)
            await self._fail(job, f"Clone failed: {e}")
        except asyncio.CancelledError:
            await self._fail(job, MSG_CANCELLED)
            raise
        except Exception:
            logger.exception("Job %s crashed", job.id)
            await self._fail(job, MSG_INTERNAL)

    async def _run_scan(self, job: ScanJob) -> None:
        await self._advance(job, JobStatus.CLONING)
        clone = await self._cloner.clone(job.repo_url)
        try:
            await self._advance(job, JobStatus.SCANNING)
            languages = await self._detect(clone.path)
            job.languages = [lang.value for lang in languages]

            tools = self._runner.select_tools(languages)
            logger.info(
                "Job %s: languages=%s tools=%s",
                job.id,
                job.languages,
                [t.value for t in tools],
            )
            results = await self._runner.run_all(tools, clone.path, languages)
            job.tool_runs = [ToolRun.from_result(r) for r in results]
            job.findings = aggregate(results)
            await self._repo.save(job)

            if job.findings and self._reviewer.enabled:
                await self._advance(job, JobStatus.REVIEWING)
                outcome = await self._reviewer.review(clone.path, job.findings)
                job.findings = outcome.findings
                job.review_stats = outcome.stats
                if outcome.error:
                    logger.warning("Job %s review degraded: %s", job.id, outcome.error)
        finally:
            self._cleanup(clone.path)

        job.completed_at = time.time()
        await self._advance(job, JobStatus.COMPLETED)
        logger.info(
            "Job %s completed with %d findings %s",
            job.id,
            len(job.findings),
            job.severity_counts(),
        )

    async def _detect(self, path: str) -> list[Language]:
        try:
            return await asyncio.to_thread(self._detector.detect_languages, path)
        except Exception as e:
            logger.warning("Language detection failed for %s: %s", path, e)
            return []

    def _cleanup(self, path: str) -> None:
        try:
            self._cloner.cleanup(path)
        except CleanupError as e:
            logger.error("Workspace cleanup failed: %s", e)

    async def _advance(self, job: ScanJob, status: JobStatus) -> None:
        if job.status.is_terminal or status.rank <= job.status.rank:
            raise InvalidTransitionError(
                f"job {job.id}: cannot move from {job.status.value} to {status.value}"
            )
        logger.debug("Job %s: %s -> %s", job.id, job.status.value, status.value)
        job.status = status
        await self._repo.save(job)

    async def _fail(self, job: ScanJob, message: str) -> None:
        if job.status.is_terminal:
            logger.error("Job %s already %s; not marking failed", job.id, job.status.value)
            return
        job.error_message = message
        job.completed_at = time.time()
        try:
            await self._advance(job, JobStatus.FAILED)
        except Exception:
            logger.exception("Could not record failure of job %s", job.id)
