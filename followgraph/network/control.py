"""Cooperative pause/resume/cancel signal for long-running fetches."""

from __future__ import annotations

import logging
import threading

from followgraph.exceptions import PipelineCancelled

logger = logging.getLogger(__name__)


class PipelineControl:
    """Checked by the fetch loops before each unit of work.

    ``checkpoint()`` blocks while paused and raises PipelineCancelled once
    ``cancel()`` has been called. Work already in flight always finishes.
    """

    def __init__(self) -> None:
        self._condition = threading.Condition()
        self._paused = False
        self._cancelled = False

    @property
    def paused(self) -> bool:
        with self._condition:
            return self._paused

    @property
    def cancelled(self) -> bool:
        with self._condition:
            return self._cancelled

    def pause(self) -> None:
        with self._condition:
            self._paused = True

    def resume(self) -> None:
        with self._condition:
            self._paused = False
            self._condition.notify_all()

    def cancel(self) -> None:
        with self._condition:
            self._cancelled = True
            self._condition.notify_all()

    def checkpoint(self) -> None:
        with self._condition:
            if self._paused and not self._cancelled:
                logger.info("Fetch paused; waiting for resume")
            while self._paused and not self._cancelled:
                self._condition.wait()
            if self._cancelled:
                raise PipelineCancelled("Fetch cancelled")
