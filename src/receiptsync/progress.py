"""Best-effort progress fan-out.

Usually one UI surface is listening, often none. Publishing never blocks
the sync and never fails it: observer errors are logged at debug and
dropped.
"""

from __future__ import annotations

import asyncio
import inspect
from collections.abc import Callable
from typing import Any

from receiptsync.logging_config import get_logger
from receiptsync.models import ProgressSnapshot

logger = get_logger("progress")

# called with the progress message dict; may be a coroutine function
ProgressObserver = Callable[[dict[str, Any]], Any]


def progress_message(snapshot: ProgressSnapshot | None) -> dict[str, Any]:
    """Observer envelope: ``{"type": "progress", "progress": ...}``."""
    return {
        "type": "progress",
        "progress": snapshot.to_wire(exclude_none=True) if snapshot else None,
    }


class ProgressPublisher:
    def __init__(self) -> None:
        self._observers: list[ProgressObserver] = []
        self._tasks: set[asyncio.Task] = set()

    @property
    def observer_count(self) -> int:
        return len(self._observers)

    def subscribe(self, observer: ProgressObserver) -> Callable[[], None]:
        """Add an observer. Returns a callable that removes it again."""
        self._observers.append(observer)

        def unsubscribe() -> None:
            if observer in self._observers:
                self._observers.remove(observer)

        return unsubscribe

    def publish(self, snapshot: ProgressSnapshot | None) -> None:
        message = progress_message(snapshot)
        for observer in list(self._observers):
            try:
                result = observer(message)
                if inspect.isawaitable(result):
                    self._track(result)
            except Exception as e:
                logger.debug("progress observer failed: %s", e)

    def _track(self, awaitable: Any) -> None:
        task = asyncio.ensure_future(awaitable)
        self._tasks.add(task)
        task.add_done_callback(self._on_delivered)

    def _on_delivered(self, task: asyncio.Task) -> None:
        self._tasks.discard(task)
        if task.cancelled():
            return
        if task.exception() is not None:
            logger.debug("progress delivery failed: %s", task.exception())
