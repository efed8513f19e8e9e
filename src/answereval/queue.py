"""Test-run job queue — Redis list producer and BRPOP worker loop."""

from __future__ import annotations

import asyncio
import json
import logging
import signal
import uuid
from typing import Any, Awaitable, Callable, Dict, Optional, Set

from answereval.config import DEFAULT_REDIS_URL
from answereval.runner import process_test_run
from answereval.store import ResultStore

logger = logging.getLogger(__name__)

QUEUE_KEY = "answereval:test-run"
WORKER_CONCURRENCY = 2

ProcessFn = Callable[..., Awaitable[Any]]


def _get_redis():
    try:
        import redis
        return redis
    except ImportError:
        raise ImportError(
            "Redis is required for the job queue. "
            "Install it with: pip install answereval[queue]"
        )


def connect(redis_url: str = DEFAULT_REDIS_URL):
    return _get_redis().Redis.from_url(redis_url, decode_responses=True)


def enqueue_test_run(run_id: str, client=None, *, redis_url: str = DEFAULT_REDIS_URL) -> Dict[str, str]:
    """Push a ``{"testRunId": ...}`` job for the worker and return it."""
    client = client if client is not None else connect(redis_url)
    job = {"testRunId": run_id}
    client.lpush(QUEUE_KEY, json.dumps(job))
    logger.info("Enqueued test run %s", run_id)
    return job


def parse_job(raw: str) -> str:
    """Return the run id carried by a raw job payload.

    Raises:
        ValueError: If the payload is not JSON or has no ``testRunId``.
    """
    try:
        job = json.loads(raw)
    except json.JSONDecodeError as exc:
        raise ValueError(f"Job payload is not valid JSON: {exc}") from exc
    if not isinstance(job, dict) or not job.get("testRunId"):
        raise ValueError("testRunId is required")
    return str(job["testRunId"])


class QueueWorker:
    """Consumes test-run jobs and processes up to ``concurrency`` runs at once."""

    def __init__(
        self,
        store: ResultStore,
        *,
        redis_url: str = DEFAULT_REDIS_URL,
        concurrency: int = WORKER_CONCURRENCY,
        client=None,
        process: ProcessFn = process_test_run,
        poll_timeout: int = 2,
        run_options: Optional[Dict[str, Any]] = None,
    ) -> None:
        if concurrency < 1:
            raise ValueError("concurrency must be >= 1")
        self.worker_id = uuid.uuid4().hex[:12]
        self.store = store
        self.concurrency = concurrency
        self.poll_timeout = poll_timeout
        self._redis = client if client is not None else connect(redis_url)
        self._process = process
        self._run_options = dict(run_options or {})
        self._running = False
        self._tasks: Set[asyncio.Task] = set()

    async def handle_job(self, raw: str) -> bool:
        """Process one job payload. Returns True when the run completed."""
        try:
            run_id = parse_job(raw)
        except ValueError as exc:
            logger.error("worker=%s rejected job: %s", self.worker_id, exc)
            return False

        logger.info("worker=%s processing run=%s", self.worker_id, run_id)
        try:
            await self._process(run_id, self.store, **self._run_options)
        except Exception as exc:
            logger.error("worker=%s job for run=%s failed: %s", self.worker_id, run_id, exc)
            return False
        logger.info("worker=%s job for run=%s completed", self.worker_id, run_id)
        return True

    async def _next_job(self) -> Optional[str]:
        item = await asyncio.to_thread(self._redis.brpop, [QUEUE_KEY], timeout=self.poll_timeout)
        if item is None:
            return None
        _, raw = item
        return raw

    async def drain(self) -> int:
        """Process every job currently queued, then return how many were handled."""
        semaphore = asyncio.Semaphore(self.concurrency)

        async def _bounded(raw: str) -> bool:
            async with semaphore:
                return await self.handle_job(raw)

        jobs = []
        while True:
            raw = self._redis.rpop(QUEUE_KEY)
            if raw is None:
                break
            jobs.append(raw)
        await asyncio.gather(*(_bounded(raw) for raw in jobs))
        return len(jobs)

    async def run(self) -> None:
        """BRPOP loop. Returns after :meth:`stop` once in-flight runs finish."""
        self._running = True
        slots = asyncio.Semaphore(self.concurrency)
        logger.info(
            "worker=%s listening on %s (concurrency=%d)",
            self.worker_id, QUEUE_KEY, self.concurrency,
        )
        while self._running:
            await slots.acquire()
            try:
                raw = await self._next_job()
            except Exception:
                slots.release()
                raise
            if raw is None:
                slots.release()
                continue
            task = asyncio.create_task(self.handle_job(raw))
            self._tasks.add(task)
            task.add_done_callback(self._tasks.discard)
            task.add_done_callback(lambda _: slots.release())

        if self._tasks:
            await asyncio.gather(*self._tasks)
        logger.info("worker=%s stopped", self.worker_id)

    def start(self) -> None:
        """Run the worker until SIGINT/SIGTERM."""
        for sig in (signal.SIGTERM, signal.SIGINT):
            try:
                signal.signal(sig, lambda *_: self.stop())
            except (OSError, ValueError):
                pass  # not the main thread
        asyncio.run(self.run())

    def stop(self) -> None:
        """Signal the worker to stop after the current poll."""
        self._running = False
