from __future__ import annotations

import asyncio
import logging
from typing import Optional

from pipeline.exceptions import ResolutionCancelledError

logger = logging.getLogger(__name__)


class CancellationToken:
    """
    Cooperative cancellation signal shared by one resolution attempt.

    Stages call ``raise_if_cancelled`` at their boundaries; capability
    providers and strategies that perform I/O can await ``wait()`` alongside
    their own work.
    """

    def __init__(self) -> None:
        self._event = asyncio.Event()
        self._reason: Optional[str] = None

    @property
    def cancelled(self) -> bool:
        return self._event.is_set()

    @property
    def reason(self) -> Optional[str]:
        return self._reason

    def cancel(self, reason: str = 'cancelled by caller') -> None:
        if self._event.is_set():
            return
        self._reason = reason
        self._event.set()
        logger.info('Resolution cancellation requested: %s', reason)

    async def wait(self) -> None:
        await self._event.wait()

    def raise_if_cancelled(self, stage: str = 'resolution', path: str = '') -> None:
        if self._event.is_set():
            raise ResolutionCancelledError(
                f'Resolution cancelled: {self._reason}', stage=stage, path=path,
            )
