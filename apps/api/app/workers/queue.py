"""In-process transcription work queue."""

from __future__ import annotations

import asyncio
from datetime import UTC, datetime, timedelta
import logging
from typing import Protocol

from app.core.logging_safety import safe_log_identifier
from app.repositories.base import RecordStore
from app.schemas.transcription import TranscriptionStatus

logger = logging.getLogger(__name__)


class JobProcessor(Protocol):
    async def process(self, transcription_id: str): ...


class TranscriptionQueue:
    """Fixed pool of worker tasks consuming transcription job ids.

    ``submit`` never blocks and may be called from the event loop thread or
    from a worker thread. Ids submitted before ``start`` are not lost: every
    ``pending`` row is resubmitted when the queue starts, and ``processing``
    rows older than ``stale_after_seconds`` are failed so they can be retried.
    """

    def __init__(
        self,
        processor: JobProcessor,
        store: RecordStore,
        *,
        workers: int = 2,
        stale_after_seconds: float | None = None,
    ) -> None:
        self._processor = processor
        self._store = store
        self._worker_count = workers
        self._stale_after_seconds = stale_after_seconds
        self._queue: asyncio.Queue[str] | None = None
        self._loop: asyncio.AbstractEventLoop | None = None
        self._tasks: list[asyncio.Task] = []

    @property
    def running(self) -> bool:
        return bool(self._tasks)

    async def start(self) -> None:
        if self.running:
            return
        self._loop = asyncio.get_running_loop()
        self._queue = asyncio.Queue()
        self._tasks = [
            asyncio.create_task(self._work(index, self._queue), name=f"transcription-worker-{index}")
            for index in range(self._worker_count)
        ]

        recovered = await asyncio.to_thread(self._fail_stale_jobs)
        pending = await asyncio.to_thread(self._store.list_pending_transcriptions)
        for record in pending:
            self._queue.put_nowait(record.id)
        logger.info(
            "transcription.queue_started workers=%s requeued=%s recovered=%s",
            self._worker_count,
            len(pending),
            recovered,
        )

    def _fail_stale_jobs(self) -> int:
        """Fail ``processing`` rows left behind by a runner that no longer exists.

        A row counts as abandoned once it has been processing for longer than
        the per-job deadline allows.
        """
        if self._stale_after_seconds is None:
            return 0
        cutoff = datetime.now(UTC) - timedelta(seconds=self._stale_after_seconds)
        recovered = 0
        for record in self._store.list_stale_processing_transcriptions(cutoff):
            failed = self._store.transition_transcription(
                record.id,
                from_status=TranscriptionStatus.PROCESSING,
                to_status=TranscriptionStatus.FAILED,
                error_message="Transcription interrupted",
            )
            if failed is not None:
                recovered += 1
                logger.warning(
                    "transcription.recovered_stale job_id=%s",
                    safe_log_identifier(record.id, prefix="job"),
                )
        return recovered

    async def stop(self) -> None:
        tasks, self._tasks = self._tasks, []
        for task in tasks:
            task.cancel()
        await asyncio.gather(*tasks, return_exceptions=True)
        self._queue = None
        self._loop = None
        logger.info("transcription.queue_stopped")

    def submit(self, transcription_id: str) -> bool:
        queue, loop = self._queue, self._loop
        if queue is None or loop is None:
            logger.info(
                "transcription.queue_deferred job_id=%s reason=not_running",
                safe_log_identifier(transcription_id, prefix="job"),
            )
            return False

        try:
            running_loop = asyncio.get_running_loop()
        except RuntimeError:
            running_loop = None
        if running_loop is loop:
            queue.put_nowait(transcription_id)
        else:
            loop.call_soon_threadsafe(queue.put_nowait, transcription_id)
        return True

    async def join(self) -> None:
        """Wait until every submitted job has been processed."""
        if self._queue is not None:
            await self._queue.join()

    async def _work(self, index: int, queue: asyncio.Queue[str]) -> None:
        while True:
            transcription_id = await queue.get()
            try:
                await self._processor.process(transcription_id)
            except Exception:
                logger.exception(
                    "transcription.worker_error worker=%s job_id=%s",
                    index,
                    safe_log_identifier(transcription_id, prefix="job"),
                )
            finally:
                queue.task_done()


__all__ = ["TranscriptionQueue"]
