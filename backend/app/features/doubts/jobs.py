"""
Doubts feature: In-flight generation jobs.

Each cache-miss generation runs as an asyncio.Task registered under
(owner, job id) so that a separate "stop" request can cancel it (and with
it the outstanding model call). Job ids come from the client, so two
learners may pick the same one; a learner reusing one of their own running
ids is rejected.
"""

import asyncio
import inspect
import logging
from typing import Awaitable, TypeVar

from app.core.exceptions import DuplicateJobError

logger = logging.getLogger(__name__)

T = TypeVar("T")

JobKey = tuple[str | None, str]


class JobRegistry:
    def __init__(self):
        self._tasks: dict[JobKey, asyncio.Task] = {}
        self._cancelled: set[JobKey] = set()

    async def run(self, job_id: str, coro: Awaitable[T], owner: str | None = None) -> T:
        """Run the coroutine as a registered task and await it.

        Cancelling the awaiting request also cancels the task.

        Raises:
            DuplicateJobError: If this owner already has a running job with this id.
            asyncio.CancelledError: If the job was cancelled via ``cancel``.
        """
        key = (owner, job_id)
        running = self._tasks.get(key)
        if running is not None and not running.done():
            if inspect.iscoroutine(coro):
                coro.close()
            raise DuplicateJobError(job_id)

        task = asyncio.ensure_future(coro)
        self._tasks[key] = task
        try:
            return await task
        finally:
            if self._tasks.get(key) is task:
                del self._tasks[key]

    def cancel(self, job_id: str, owner: str | None = None) -> bool:
        """Cancel a running job. Returns False when nothing matching is running.

        Without an owner every running job with this id is cancelled.
        """
        cancelled = False
        for key in self._matching(self._tasks, job_id, owner):
            task = self._tasks[key]
            if task.done():
                continue
            self._cancelled.add(key)
            task.cancel()
            cancelled = True
            logger.info(f"🛑 Generation job {job_id} cancelled")
        return cancelled

    def consume_cancellation(self, job_id: str, owner: str | None = None) -> bool:
        """True (once) if ``cancel`` was called for this job."""
        keys = self._matching(self._cancelled, job_id, owner)
        for key in keys:
            self._cancelled.discard(key)
        return bool(keys)

    def is_running(self, job_id: str, owner: str | None = None) -> bool:
        return any(
            not self._tasks[key].done() for key in self._matching(self._tasks, job_id, owner)
        )

    @staticmethod
    def _matching(keys, job_id: str, owner: str | None) -> list[JobKey]:
        return [
            key for key in keys
            if key[1] == job_id and (owner is None or key[0] == owner)
        ]
