"""Independent polling of signal adapters.

Each coupling gets its own ``SignalPoller`` task with its own interval and
timeout, so a slow provider never holds up the others. Pollers only append
``FetchOutcome`` records to a ``ReadingCell``; folding outcomes into weights
is left to the single evaluation loop that reads the cell.
"""

import asyncio
import logging
import threading
from collections import deque
from datetime import datetime, timezone
from typing import Callable, Iterable, List, Optional, Tuple

from .base_adapter import AdapterError, BaseAdapter
from .decay import FetchOutcome

logger = logging.getLogger(__name__)

DEFAULT_CELL_HISTORY = 64

WindowFn = Callable[[datetime], Tuple[datetime, datetime]]


class ReadingCell:
    """Append-only, thread-safe log of fetch outcomes for one signal.

    Outcomes carry absolute sequence numbers so each reader can drain exactly
    what it has not seen yet. Only the newest ``max_history`` are retained.
    """

    def __init__(self, max_history: int = DEFAULT_CELL_HISTORY):
        self._lock = threading.Lock()
        self._outcomes: deque = deque(maxlen=max_history)
        self._next_seq = 0

    def append(self, outcome: FetchOutcome) -> int:
        with self._lock:
            seq = self._next_seq
            self._outcomes.append((seq, outcome))
            self._next_seq += 1
            return seq

    def since(self, cursor: int) -> Tuple[List[FetchOutcome], int]:
        """Outcomes with sequence >= cursor, plus the cursor to use next time."""
        with self._lock:
            fresh = [outcome for seq, outcome in self._outcomes if seq >= cursor]
            return fresh, self._next_seq

    def latest(self) -> Optional[FetchOutcome]:
        with self._lock:
            return self._outcomes[-1][1] if self._outcomes else None

    def __len__(self) -> int:
        with self._lock:
            return self._next_seq


class SignalPoller:
    """Polls one adapter on a fixed interval, publishing into a ReadingCell."""

    def __init__(
        self,
        name: str,
        adapter: BaseAdapter,
        cell: ReadingCell,
        interval_seconds: float,
        timeout_seconds: float,
        window: WindowFn,
    ):
        self.name = name
        self.adapter = adapter
        self.cell = cell
        self.interval_seconds = interval_seconds
        self.timeout_seconds = timeout_seconds
        self.window = window

    async def poll_once(self, now: Optional[datetime] = None) -> FetchOutcome:
        """
        Run one fetch in a worker thread under the poller timeout.

        AdapterError and timeouts become failure outcomes. Cancellation
        propagates without appending anything, so the cell keeps its last
        good data.
        """
        now = now or datetime.now(timezone.utc)
        window_start, window_end = self.window(now)

        try:
            signal = await asyncio.wait_for(
                asyncio.to_thread(self.adapter.fetch_signal, window_start, window_end, now),
                timeout=self.timeout_seconds,
            )
            outcome = FetchOutcome(at=now, signal=signal)
        except AdapterError as e:
            outcome = FetchOutcome(at=now, error=str(e))
        except asyncio.TimeoutError:
            outcome = FetchOutcome(
                at=now,
                error=f"{self.adapter.provider}: fetch timed out after {self.timeout_seconds}s",
            )

        self.cell.append(outcome)
        if outcome.ok:
            logger.info(f"{self.name}: fetched {outcome.signal.total_tasks} task(s)")
        else:
            logger.warning(f"{self.name}: fetch failed: {outcome.error}")
        return outcome

    async def run(self) -> None:
        """Poll forever; stops only when the task is cancelled."""
        while True:
            await self.poll_once()
            await asyncio.sleep(self.interval_seconds)


class PollerGroup:
    """Runs each poller as its own asyncio task."""

    def __init__(self, pollers: Iterable[SignalPoller]):
        self.pollers = list(pollers)
        self._tasks: List[asyncio.Task] = []

    @property
    def running(self) -> bool:
        return any(not task.done() for task in self._tasks)

    def start(self) -> None:
        if self.running:
            return
        self._tasks = [
            asyncio.create_task(poller.run(), name=f"poll:{poller.name}")
            for poller in self.pollers
        ]

    async def stop(self) -> None:
        for task in self._tasks:
            task.cancel()
        await asyncio.gather(*self._tasks, return_exceptions=True)
        self._tasks = []
