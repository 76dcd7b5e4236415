"""Background upload jobs with a polled status object.

An upload can outlive the request that started it (the caller navigates
away, the HTTP handler returns early). :class:`UploadJobRunner` runs
:func:`~statement_ingest.api.ingest_upload` on a small thread pool and keeps
a :class:`JobStatus` per job id that callers poll. Finished jobs are kept
for ``retention`` and at most ``max_finished`` of them are held; older ones
are pruned on the next ``submit`` or ``status`` call and their ids become
unknown.
"""

from __future__ import annotations

import threading
import uuid
from collections.abc import Callable
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass, replace
from datetime import UTC, datetime, timedelta
from enum import StrEnum

from openai import OpenAI

from .api import ingest_upload
from .logging_setup import get_logger
from .models import UploadResult
from .settings import IngestSettings
from .store import RecordStore

_logger = get_logger("statement_ingest.jobs")

_DEFAULT_RETENTION = timedelta(hours=1)
_DEFAULT_MAX_FINISHED = 100


def _utcnow() -> datetime:
    return datetime.now(UTC)


class JobState(StrEnum):
    PENDING = "pending"
    RUNNING = "running"
    SUCCEEDED = "succeeded"
    FAILED = "failed"


@dataclass(frozen=True, slots=True)
class JobStatus:
    job_id: str
    filename: str
    state: JobState
    created_at: datetime
    result: UploadResult | None = None
    error: str | None = None
    finished_at: datetime | None = None

    @property
    def done(self) -> bool:
        return self.state in (JobState.SUCCEEDED, JobState.FAILED)


class UploadJobRunner:
    """Run uploads in the background and report their status by id."""

    def __init__(
        self,
        store: RecordStore,
        settings: IngestSettings,
        *,
        max_workers: int = 2,
        client: OpenAI | None = None,
        retention: timedelta = _DEFAULT_RETENTION,
        max_finished: int = _DEFAULT_MAX_FINISHED,
        clock: Callable[[], datetime] = _utcnow,
    ) -> None:
        if max_finished < 0:
            raise ValueError(f"max_finished must be >= 0, got {max_finished}")
        self._store = store
        self._settings = settings
        self._client = client
        self._retention = retention
        self._max_finished = max_finished
        self._clock = clock
        self._executor = ThreadPoolExecutor(
            max_workers=max_workers, thread_name_prefix="statement-ingest"
        )
        self._lock = threading.Lock()
        self._jobs: dict[str, JobStatus] = {}

    def _prune_locked(self) -> None:
        cutoff = self._clock() - self._retention
        finished = sorted(
            (s for s in self._jobs.values() if s.done and s.finished_at is not None),
            key=lambda s: s.finished_at,  # type: ignore[arg-type,return-value]
        )
        expired = [s for s in finished if s.finished_at < cutoff]  # type: ignore[operator]
        kept = finished[len(expired) :]
        overflow = kept[: max(0, len(kept) - self._max_finished)]
        for s in (*expired, *overflow):
            del self._jobs[s.job_id]
        if expired or overflow:
            _logger.debug("jobs:pruned count=%d", len(expired) + len(overflow))

    def _set(self, job_id: str, **changes: object) -> None:
        with self._lock:
            self._jobs[job_id] = replace(self._jobs[job_id], **changes)  # type: ignore[arg-type]

    def _run(self, job_id: str, data: bytes, filename: str, media_type: str | None) -> None:
        self._set(job_id, state=JobState.RUNNING)
        _logger.info("jobs:start job_id=%s filename=%s", job_id, filename)
        try:
            result = ingest_upload(
                data,
                filename,
                media_type,
                store=self._store,
                settings=self._settings,
                client=self._client,
            )
        except Exception as e:  # noqa: BLE001 - failures are reported through the status
            _logger.error("jobs:failed job_id=%s error=%s", job_id, e.__class__.__name__)
            self._set(
                job_id,
                state=JobState.FAILED,
                error=str(e) or e.__class__.__name__,
                finished_at=self._clock(),
            )
            return
        _logger.info(
            "jobs:done job_id=%s created=%d duplicates=%d",
            job_id,
            len(result.records_created),
            result.duplicate_count,
        )
        self._set(job_id, state=JobState.SUCCEEDED, result=result, finished_at=self._clock())

    def submit(self, data: bytes, filename: str, media_type: str | None = None) -> str:
        job_id = uuid.uuid4().hex
        with self._lock:
            self._prune_locked()
            self._jobs[job_id] = JobStatus(
                job_id=job_id,
                filename=filename,
                state=JobState.PENDING,
                created_at=self._clock(),
            )
        self._executor.submit(self._run, job_id, data, filename, media_type)
        return job_id

    def status(self, job_id: str) -> JobStatus:
        """Return the current status; unknown or pruned ids raise ``KeyError``."""

        with self._lock:
            self._prune_locked()
            return self._jobs[job_id]

    def shutdown(self, wait: bool = True) -> None:
        self._executor.shutdown(wait=wait)

    def __enter__(self) -> UploadJobRunner:
        return self

    def __exit__(self, *exc: object) -> None:
        self.shutdown(wait=True)


__all__ = ["JobState", "JobStatus", "UploadJobRunner"]
