"""
Durable deferred-job scheduler.

Jobs are keyed by (order_id, kind, phase) and persisted in a JobStore, so a
restarted process picks up whatever is still outstanding instead of losing
in-process timers. Handlers must be re-entrant: they re-read the order and
decide from its current status what, if anything, is left to do.
"""
import asyncio
import json
from abc import ABC, abstractmethod
from datetime import datetime
from enum import Enum
from pathlib import Path
from typing import Awaitable, Callable, Dict, Iterable, List, Optional, Set

import aiofiles
from pydantic import BaseModel, Field

from config.settings import settings
from src.utils.logger import logger


class JobKind(str, Enum):
    ASSIGNMENT_START = "assignment_start"
    ASSIGNMENT_ESCALATION = "assignment_escalation"
    SLA_CHECK = "sla_check"


class JobStatus(str, Enum):
    PENDING = "pending"
    RUNNING = "running"
    DONE = "done"
    FAILED = "failed"


class ScheduledJob(BaseModel):
    order_id: str
    kind: JobKind
    phase: Optional[str] = None
    due_at: datetime
    status: JobStatus = JobStatus.PENDING
    attempts: int = 0
    last_error: Optional[str] = None
    created_at: datetime = Field(default_factory=datetime.now)

    @property
    def key(self) -> str:
        return job_key(self.order_id, self.kind, self.phase)


def job_key(order_id: str, kind: JobKind, phase: Optional[str] = None) -> str:
    return f"{order_id}:{kind.value}:{phase or '-'}"


JobHandler = Callable[[ScheduledJob], Awaitable[None]]
RetentionCheck = Callable[[str], Awaitable[bool]]


class JobStore(ABC):

    @abstractmethod
    async def get(self, key: str) -> Optional[ScheduledJob]:
        ...

    @abstractmethod
    async def save(self, job: ScheduledJob) -> None:
        ...

    @abstractmethod
    async def all(self) -> List[ScheduledJob]:
        ...

    async def due(self, now: datetime) -> List[ScheduledJob]:
        jobs = [j for j in await self.all() if j.status == JobStatus.PENDING and j.due_at <= now]
        return sorted(jobs, key=lambda j: j.due_at)

    @abstractmethod
    async def delete(self, keys: Iterable[str]) -> int:
        """Remove jobs by key; returns how many existed"""

    async def for_order(self, order_id: str) -> List[ScheduledJob]:
        return [j for j in await self.all() if j.order_id == order_id]

    async def order_ids(self) -> Set[str]:
        return {j.order_id for j in await self.all()}


class InMemoryJobStore(JobStore):

    def __init__(self):
        self._jobs: Dict[str, ScheduledJob] = {}

    async def get(self, key: str) -> Optional[ScheduledJob]:
        job = self._jobs.get(key)
        return job.model_copy() if job else None

    async def save(self, job: ScheduledJob) -> None:
        self._jobs[job.key] = job.model_copy()

    async def all(self) -> List[ScheduledJob]:
        return [j.model_copy() for j in self._jobs.values()]

    async def delete(self, keys: Iterable[str]) -> int:
        return sum(self._jobs.pop(key, None) is not None for key in keys)


class FileJobStore(JobStore):
    """JSON file store; survives process restarts"""

    def __init__(self, path: str):
        self.path = Path(path)
        self.path.parent.mkdir(parents=True, exist_ok=True)
        self._jobs: Optional[Dict[str, ScheduledJob]] = None
        self._lock = asyncio.Lock()

    async def _load(self) -> Dict[str, ScheduledJob]:
        if self._jobs is None:
            self._jobs = {}
            if self.path.exists():
                async with aiofiles.open(self.path, "r", encoding="utf-8") as f:
                    raw = await f.read()
                for item in json.loads(raw or "[]"):
                    job = ScheduledJob.model_validate(item)
                    self._jobs[job.key] = job
                logger.info("Job store loaded", path=str(self.path), jobs=len(self._jobs))
        return self._jobs

    async def _flush(self):
        payload = json.dumps([j.model_dump(mode="json") for j in self._jobs.values()], ensure_ascii=False)
        tmp_path = self.path.with_suffix(self.path.suffix + ".tmp")
        async with aiofiles.open(tmp_path, "w", encoding="utf-8") as f:
            await f.write(payload)
        tmp_path.replace(self.path)

    async def get(self, key: str) -> Optional[ScheduledJob]:
        async with self._lock:
            job = (await self._load()).get(key)
            return job.model_copy() if job else None

    async def save(self, job: ScheduledJob) -> None:
        async with self._lock:
            jobs = await self._load()
            jobs[job.key] = job.model_copy()
            await self._flush()

    async def all(self) -> List[ScheduledJob]:
        async with self._lock:
            return [j.model_copy() for j in (await self._load()).values()]

    async def delete(self, keys: Iterable[str]) -> int:
        async with self._lock:
            jobs = await self._load()
            removed = sum(jobs.pop(key, None) is not None for key in keys)
            if removed:
                await self._flush()
            return removed


def create_job_store() -> JobStore:
    if settings.JOB_STORE_PATH:
        return FileJobStore(settings.JOB_STORE_PATH)
    return InMemoryJobStore()


class Scheduler:
    """Runs due jobs from a JobStore on the event loop.

    Jobs of finished orders are purged: right after any of the order's jobs
    completes, and by a periodic sweep every ``purge_interval`` seconds.
    "Finished" is decided by the retention check installed with
    ``set_retention``; without one nothing is ever purged. Jobs of live
    orders are kept, including done ones, so re-arming after a restart
    stays idempotent.
    """

    def __init__(self, store: Optional[JobStore] = None,
                 clock: Callable[[], datetime] = datetime.now,
                 tick_seconds: float = settings.SCHEDULER_TICK_SECONDS,
                 purge_interval: float = settings.JOB_PURGE_INTERVAL_SECONDS):
        self.store = store or create_job_store()
        self.clock = clock
        self.tick_seconds = tick_seconds
        self.purge_interval = purge_interval
        self._handlers: Dict[JobKind, JobHandler] = {}
        self._inflight: Dict[str, asyncio.Task] = {}
        self._loop_task: Optional[asyncio.Task] = None
        self._is_finished: Optional[RetentionCheck] = None
        self._purged = 0

    def register(self, kind: JobKind, handler: JobHandler):
        self._handlers[kind] = handler

    def set_retention(self, is_finished: RetentionCheck):
        self._is_finished = is_finished

    async def schedule(self, order_id: str, kind: JobKind, due_at: datetime,
                       phase: Optional[str] = None) -> ScheduledJob:
        """Idempotent: an existing live job with the same key is returned unchanged"""
        key = job_key(order_id, kind, phase)
        existing = await self.store.get(key)
        if existing is not None and existing.status != JobStatus.FAILED:
            return existing

        job = ScheduledJob(order_id=order_id, kind=kind, phase=phase, due_at=due_at)
        await self.store.save(job)
        logger.debug("Job scheduled", key=key, due_at=due_at)
        return job

    async def run_pending(self) -> List[asyncio.Task]:
        """Claim every due job and start its handler; returns the started tasks"""
        started = []
        for job in await self.store.due(self.clock()):
            if job.key in self._inflight:
                continue
            handler = self._handlers.get(job.kind)
            if handler is None:
                logger.warning("No handler registered for job", key=job.key)
                continue

            job.status = JobStatus.RUNNING
            job.attempts += 1
            await self.store.save(job)

            task = asyncio.create_task(self._run_job(job, handler), name=f"job-{job.key}")
            self._inflight[job.key] = task
            started.append(task)
        return started

    async def _run_job(self, job: ScheduledJob, handler: JobHandler):
        try:
            await handler(job)
            job.status = JobStatus.DONE
            job.last_error = None
        except asyncio.CancelledError:
            # Остается RUNNING: будет перезапущена при следующем старте
            raise
        except Exception as e:
            job.status = JobStatus.FAILED
            job.last_error = str(e)
            logger.exception("Scheduled job failed", key=job.key, error=str(e))
        finally:
            self._inflight.pop(job.key, None)
        await self.store.save(job)

        try:
            await self.purge_if_finished(job.order_id)
        except Exception as e:
            logger.exception("Job purge failed", order_id=job.order_id, error=str(e))

    async def purge_order(self, order_id: str) -> int:
        """Drop every job of an order except those still running here"""
        keys = [j.key for j in await self.store.for_order(order_id) if j.key not in self._inflight]
        removed = await self.store.delete(keys)
        if removed:
            self._purged += removed
            logger.debug("Jobs purged", order_id=order_id, removed=removed)
        return removed

    async def purge_if_finished(self, order_id: str) -> int:
        if self._is_finished is None or not await self._is_finished(order_id):
            return 0
        return await self.purge_order(order_id)

    async def purge_finished(self) -> int:
        """Sweep the store for orders that finished without a job firing afterwards"""
        removed = 0
        for order_id in await self.store.order_ids():
            removed += await self.purge_if_finished(order_id)
        if removed:
            logger.info("🧹 Finished orders purged from job store", removed=removed)
        return removed

    async def recover(self) -> int:
        """Return jobs left RUNNING by a dead process to PENDING"""
        recovered = 0
        for job in await self.store.all():
            if job.status == JobStatus.RUNNING and job.key not in self._inflight:
                job.status = JobStatus.PENDING
                await self.store.save(job)
                recovered += 1
        if recovered:
            logger.info("Recovered interrupted jobs", count=recovered)
        return recovered

    async def start(self):
        if self._loop_task is not None:
            return
        await self.recover()
        self._loop_task = asyncio.create_task(self._loop(), name="scheduler-loop")
        logger.info("🕒 Scheduler started", tick_seconds=self.tick_seconds)

    async def stop(self):
        if self._loop_task is not None:
            self._loop_task.cancel()
            await asyncio.gather(self._loop_task, return_exceptions=True)
            self._loop_task = None
        tasks = list(self._inflight.values())
        for task in tasks:
            task.cancel()
        await asyncio.gather(*tasks, return_exceptions=True)
        self._inflight.clear()
        logger.info("Scheduler stopped", cancelled_jobs=len(tasks))

    async def drain(self):
        """Wait for every in-flight job to finish"""
        while self._inflight:
            await asyncio.gather(*list(self._inflight.values()), return_exceptions=True)

    async def _loop(self):
        loop = asyncio.get_running_loop()
        next_purge = loop.time() + self.purge_interval
        while True:
            try:
                await self.run_pending()
                if loop.time() >= next_purge:
                    next_purge = loop.time() + self.purge_interval
                    await self.purge_finished()
            except Exception as e:
                logger.exception("Scheduler sweep failed", error=str(e))
            await asyncio.sleep(self.tick_seconds)

    def get_stats(self) -> Dict[str, int]:
        return {
            "inflight": len(self._inflight),
            "running": int(self._loop_task is not None),
            "purged": self._purged,
        }
