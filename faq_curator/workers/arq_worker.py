"""Embedded ARQ worker that runs inside the FastAPI lifespan.

Instead of running `arq` as a separate CLI process, the worker runs as an
asyncio.Task managed by FastAPI's startup/shutdown lifecycle and shares the
application's Redis pool, vector index and completion gateway.
"""

import asyncio
import logging
import signal

from arq.connections import ArqRedis
from arq.worker import Worker

from faq_curator.config import Settings
from faq_curator.core.redis import REDIS_ERRORS
from faq_curator.services.protocols import CompletionGateway
from faq_curator.services.vector_index import FAQVectorIndex
from faq_curator.workers.tasks import generate_faqs

logger = logging.getLogger(__name__)


class EmbeddedArqWorker:
    """Wraps an ARQ Worker so it runs as a background task inside FastAPI.

    Differences from the standalone ``arq`` CLI worker:
    * ``handle_signals=False``: uvicorn owns process signals.
    * Uses the **shared** ``redis_pool`` and does not close it on stop.
    * ``stop()`` sets the shutdown event so index retries stop backing off.
    """

    def __init__(
        self,
        redis_pool: ArqRedis,
        settings: Settings,
        vector_index: FAQVectorIndex,
        completion: CompletionGateway,
    ) -> None:
        self._redis_pool = redis_pool
        self._settings = settings
        self._vector_index = vector_index
        self._completion = completion
        self._shutdown_event = asyncio.Event()
        self._task: asyncio.Task | None = None
        self._worker: Worker | None = None

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    async def start(self) -> None:
        """Create the ARQ Worker and launch its poll loop as an asyncio task."""
        self._worker = Worker(
            functions=[generate_faqs],
            redis_pool=self._redis_pool,
            max_jobs=self._settings.arq_max_jobs,
            job_timeout=self._settings.arq_job_timeout,
            health_check_interval=self._settings.arq_health_check_interval,
            handle_signals=False,
            ctx={
                "settings": self._settings,
                "vector_index": self._vector_index,
                "completion": self._completion,
                "shutdown_event": self._shutdown_event,
            },
        )
        self._task = asyncio.create_task(self._run(), name="arq-worker")
        # handle_sig() cancels main_task, which only run()/async_run() would set
        self._worker.main_task = self._task
        logger.info("EmbeddedArqWorker started")

    async def _run(self) -> None:
        try:
            await self._worker.main()
        except asyncio.CancelledError:
            pass
        except Exception:
            logger.exception("EmbeddedArqWorker crashed")

    async def stop(self) -> None:
        """Stop the worker without closing the shared Redis pool.

        ``Worker.close()`` would close the pool shared with the rest of the
        app, so shutdown is triggered by hand and in-flight jobs are awaited.
        """
        if self._worker is None:
            return

        logger.info("EmbeddedArqWorker stopping...")
        self._shutdown_event.set()
        self._worker.handle_sig(signal.SIGUSR1)

        if self._task and not self._task.done():
            try:
                await asyncio.wait_for(self._task, timeout=30)
            except (TimeoutError, asyncio.CancelledError):
                logger.warning("EmbeddedArqWorker did not stop within timeout")

        if self._worker.tasks:
            await asyncio.gather(*self._worker.tasks.values(), return_exceptions=True)

        try:
            await self._redis_pool.delete(self._worker.health_check_key)
        except REDIS_ERRORS as e:
            logger.debug(f"Could not remove worker health key: {e}")

        self._worker = None
        self._task = None
        logger.info("EmbeddedArqWorker stopped")
