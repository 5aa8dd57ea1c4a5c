import asyncio
import heapq
import itertools
import logging
import time
from typing import Callable, List, Optional, Set, Tuple

logger = logging.getLogger(__name__)


class ScheduledTask:
    """A one-shot callback owned by a scheduler."""

    __slots__ = ("due", "callback", "name", "cancelled", "handle")

    def __init__(self, due: float, callback: Callable[[], None], name: str = ""):
        self.due = due
        self.callback = callback
        self.name = name
        self.cancelled = False
        self.handle: Optional[asyncio.TimerHandle] = None

    def cancel(self):
        self.cancelled = True
        if self.handle is not None:
            self.handle.cancel()


class Scheduler:
    """
    Owner of the pipeline's delayed work (debounced sends, evictions).
    All tasks can be cancelled as a unit on teardown.
    """

    def now(self) -> float:
        """Current time in milliseconds."""
        raise NotImplementedError

    def schedule(self, delay_ms: float, callback: Callable[[], None], name: str = "") -> ScheduledTask:
        raise NotImplementedError

    def cancel_all(self):
        raise NotImplementedError

    @property
    def pending(self) -> int:
        raise NotImplementedError

    def _run(self, task: ScheduledTask):
        if task.cancelled:
            return
        # One-shot
        task.cancelled = True
        try:
            task.callback()
        except Exception as e:
            logger.error(f"Scheduled task '{task.name}' failed: {e}", exc_info=True)


class ManualScheduler(Scheduler):
    """
    Virtual-clock scheduler. Time only moves through `advance`, which runs
    every task falling due in the window, in due order.
    """

    def __init__(self, start_ms: float = 0.0):
        self._clock = float(start_ms)
        self._queue: List[Tuple[float, int, ScheduledTask]] = []
        self._seq = itertools.count()

    def now(self) -> float:
        return self._clock

    def schedule(self, delay_ms: float, callback: Callable[[], None], name: str = "") -> ScheduledTask:
        task = ScheduledTask(self._clock + max(0.0, float(delay_ms)), callback, name)
        heapq.heappush(self._queue, (task.due, next(self._seq), task))
        return task

    def advance(self, ms: float):
        self.run_until(self._clock + ms)

    def run_until(self, target_ms: float):
        # Tasks scheduled by callbacks inside the window also run
        while self._queue and self._queue[0][0] <= target_ms:
            due, _, task = heapq.heappop(self._queue)
            self._clock = max(self._clock, due)
            self._run(task)
        self._clock = max(self._clock, target_ms)

    def run_all(self):
        """Drain the queue, moving the clock to the last due task."""
        while self._queue:
            self.run_until(self._queue[0][0])

    def cancel_all(self):
        for _, _, task in self._queue:
            task.cancel()
        self._queue.clear()

    @property
    def pending(self) -> int:
        return sum(1 for _, _, task in self._queue if not task.cancelled)


class AsyncioScheduler(Scheduler):
    """
    Event-loop scheduler. `schedule` must be called from the loop thread,
    which keeps task callbacks serialized with event handling.
    """

    def __init__(self, loop: Optional[asyncio.AbstractEventLoop] = None):
        self._loop = loop
        self._tasks: Set[ScheduledTask] = set()

    def now(self) -> float:
        return time.time() * 1000

    def schedule(self, delay_ms: float, callback: Callable[[], None], name: str = "") -> ScheduledTask:
        loop = self._loop or asyncio.get_running_loop()
        delay_ms = max(0.0, float(delay_ms))
        task = ScheduledTask(self.now() + delay_ms, callback, name)
        task.handle = loop.call_later(delay_ms / 1000.0, self._fire, task)
        self._tasks.add(task)
        return task

    def _fire(self, task: ScheduledTask):
        self._tasks.discard(task)
        self._run(task)

    def cancel_all(self):
        for task in list(self._tasks):
            task.cancel()
        self._tasks.clear()

    @property
    def pending(self) -> int:
        return len(self._tasks)
