import asyncio
import logging
from contextlib import asynccontextmanager
from typing import AsyncIterator

logger = logging.getLogger(__name__)


class SubmissionBusy(Exception):
    pass


class SubmissionLocks:
    """
    In-process lease per submission id. The pipeline engine assumes a single
    writer per submission; every caller of advance() goes through here.
    """

    def __init__(self) -> None:
        self._locks: dict[str, asyncio.Lock] = {}
        self._users: dict[str, int] = {}

    def is_held(self, submission_id: str) -> bool:
        lock = self._locks.get(submission_id)
        return lock is not None and lock.locked()

    @asynccontextmanager
    async def hold(self, submission_id: str, wait: bool = False) -> AsyncIterator[None]:
        """Raises SubmissionBusy when the lease is taken and wait is False."""
        if self.is_held(submission_id) and not wait:
            raise SubmissionBusy(f"Submission {submission_id} is already being processed")

        lock = self._locks.setdefault(submission_id, asyncio.Lock())
        self._users[submission_id] = self._users.get(submission_id, 0) + 1
        try:
            async with lock:
                yield
        finally:
            self._users[submission_id] -= 1
            if self._users[submission_id] == 0:
                del self._users[submission_id]
                del self._locks[submission_id]
