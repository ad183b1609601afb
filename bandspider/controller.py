from __future__ import annotations

import logging
from concurrent.futures import Future, ThreadPoolExecutor
from dataclasses import dataclass
from typing import Callable, List, Optional

LOGGER = logging.getLogger(__name__)


@dataclass(frozen=True)
class SlotOutcome:
    worker_id: int
    completed: bool
    error_type: Optional[str] = None
    error: Optional[str] = None


class WorkerPool:
    """Runs N long-lived worker loops on a bounded thread pool.

    A slot that raises is logged and recorded as aborted; the remaining
    slots keep running until their own loops return.
    """

    def __init__(self, workers: int) -> None:
        self._workers = max(1, int(workers))

    @property
    def workers(self) -> int:
        return self._workers

    def run(self, loop: Callable[[int], None]) -> List[SlotOutcome]:
        """Start `loop(worker_id)` once per slot and block until all have returned."""
        with ThreadPoolExecutor(max_workers=self._workers, thread_name_prefix="worker") as executor:
            futures: List[Future] = [
                executor.submit(self._wrap_slot, loop, worker_id) for worker_id in range(self._workers)
            ]
            return [f.result() for f in futures]

    def _wrap_slot(self, loop: Callable[[int], None], worker_id: int) -> SlotOutcome:
        try:
            loop(worker_id)
            LOGGER.info("[%-2d] Worker finished", worker_id)
            return SlotOutcome(worker_id=worker_id, completed=True)
        except Exception as exc:
            LOGGER.exception("[%-2d] Worker aborted: %s", worker_id, exc)
            return SlotOutcome(
                worker_id=worker_id,
                completed=False,
                error_type=type(exc).__name__,
                error=str(exc),
            )
