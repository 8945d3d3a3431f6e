# scheduler.py
# ------------------------------------------------------------------------------------
#  Bounded-concurrency dispatcher for one batch of image edits.
#  - tick() admits PENDING jobs (oldest first) while fewer than `concurrency_limit`
#    calls are outstanding, and ends the batch once nothing is pending or in flight.
#  - every admitted job runs as its own asyncio task; when the call settles the
#    outcome is applied to the store and tick() runs again.
#  - cancel() is cooperative: outstanding calls keep running, their results are
#    dropped when they come back.
#  Everything here runs on the event loop thread; nothing awaits while holding state.
# ------------------------------------------------------------------------------------

import asyncio
import itertools
import logging
from typing import Awaitable, Callable, Dict, FrozenSet, Optional, Set

from errors import CANCELLED_MESSAGE, MissingInputError
from job_store import JobStore, Status

log = logging.getLogger(__name__)

# generate(image_data, prompt_text) -> result reference (URL)
Generate = Callable[[bytes, str], Awaitable[str]]
ResolveImage = Callable[[int], Optional[bytes]]
ResolveText = Callable[[int], Optional[str]]


class Scheduler:
    def __init__(
        self,
        store: JobStore,
        generate: Generate,
        resolve_image: ResolveImage,
        resolve_text: ResolveText,
        concurrency_limit: int = 2,
    ):
        if concurrency_limit < 1:
            raise ValueError("concurrency_limit must be at least 1")
        self.concurrency_limit = concurrency_limit
        self._store = store
        self._generate = generate
        self._resolve_image = resolve_image
        self._resolve_text = resolve_text
        self._generating = False
        # job id -> token of the dispatch currently allowed to settle it
        self._in_flight: Dict[int, int] = {}
        self._tokens = itertools.count(1)
        self._tasks: Set[asyncio.Task] = set()

    @property
    def is_generating(self) -> bool:
        return self._generating

    @property
    def in_flight(self) -> FrozenSet[int]:
        return frozenset(self._in_flight)

    # ---------- commands ----------

    def start(self):
        self._generating = True
        self.tick()

    def cancel(self):
        """Stop the batch: unfinished jobs become errors, in-flight bookkeeping is dropped."""
        self._generating = False
        cancelled = self._store.fail_unfinished(CANCELLED_MESSAGE)
        self._in_flight.clear()
        if cancelled:
            log.info("cancelled %d job(s): %s", len(cancelled), cancelled)

    def regenerate(self, job_id: int) -> bool:
        """Queue a finished job again. Returns False if the job is not COMPLETE/ERROR."""
        if not self._store.reset(job_id):
            return False
        log.info("job %s queued for regeneration", job_id)
        self._generating = True
        self.tick()
        return True

    async def join(self):
        """Wait until every dispatched call has settled, including discarded ones."""
        while self._tasks:
            await asyncio.gather(*list(self._tasks))

    # ---------- admission ----------

    def tick(self):
        if not self._generating:
            return

        pending = [j for j in self._store.with_status(Status.PENDING) if j.id not in self._in_flight]
        available = self.concurrency_limit - len(self._in_flight)
        admit = pending[:max(available, 0)]

        if not admit and not self._in_flight and not self._store.has_status(Status.PENDING):
            self._generating = False
            log.info("batch finished")
            return

        for job in admit:
            token = next(self._tokens)
            self._in_flight[job.id] = token
            self._store.mark_generating(job.id)
            log.debug("job %s admitted (%d in flight)", job.id, len(self._in_flight))
            task = asyncio.create_task(self._run(job.id, job.source_image_id, job.prompt_id, token))
            self._tasks.add(task)
            task.add_done_callback(self._tasks.discard)

    async def _run(self, job_id: int, image_id: int, prompt_id: int, token: int):
        try:
            image_data = self._resolve_image(image_id)
            prompt_text = self._resolve_text(prompt_id)
            if not image_data or not prompt_text:
                raise MissingInputError()
            result = await self._generate(image_data, prompt_text)
        except Exception as e:
            log.warning("job %s failed: %s", job_id, e)
            self._settle(job_id, token, error=str(e) or e.__class__.__name__)
        else:
            self._settle(job_id, token, result=result)

    def _settle(self, job_id: int, token: int, *, result: Optional[str] = None, error: Optional[str] = None):
        # A cancel (and maybe a regenerate) happened since this call was dispatched
        if self._in_flight.get(job_id) != token:
            log.info("discarding stale result for job %s", job_id)
        else:
            del self._in_flight[job_id]
            if not self._store.settle(job_id, result=result, error=error):
                log.info("job %s is no longer generating; result discarded", job_id)
        self.tick()
