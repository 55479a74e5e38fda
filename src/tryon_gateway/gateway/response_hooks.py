"""Work scheduled to run after a response has been sent.

A ``PostResponseTasks`` queue is created when a request arrives. Handlers
and dependencies append tasks to it while the request is processed, and
whoever owns the queue calls ``run`` once the response is out, passing the
final status code. Tasks receive a ``ResponseOutcome`` and cannot affect
the response. A failing task is logged and the remaining tasks still run.
"""

import time
from collections.abc import Awaitable, Callable
from dataclasses import dataclass

import structlog

logger = structlog.get_logger(__name__)


@dataclass(frozen=True)
class ResponseOutcome:
    """What a post-response task gets to know about the finished request."""

    status_code: int
    duration_ms: int


PostResponseTask = Callable[[ResponseOutcome], Awaitable[None]]


class PostResponseTasks:
    """Ordered queue of tasks drained once per request."""

    def __init__(self) -> None:
        self._tasks: list[tuple[str, PostResponseTask]] = []
        self._started = time.perf_counter()
        self._drained = False

    def __len__(self) -> int:
        return len(self._tasks)

    @property
    def drained(self) -> bool:
        return self._drained

    def add(self, task: PostResponseTask, name: str | None = None) -> None:
        """Register a task. Tasks added after draining are ignored."""
        if self._drained:
            logger.warning("post_response_task_late", task=name or getattr(task, "__name__", "task"))
            return
        self._tasks.append((name or getattr(task, "__name__", "task"), task))

    def elapsed_ms(self) -> int:
        """Milliseconds since the queue was created."""
        return int((time.perf_counter() - self._started) * 1000)

    async def run(self, status_code: int) -> None:
        """Run every registered task once with the final status code."""
        if self._drained:
            return
        self._drained = True

        outcome = ResponseOutcome(status_code=status_code, duration_ms=self.elapsed_ms())
        tasks, self._tasks = self._tasks, []

        for name, task in tasks:
            try:
                await task(outcome)
            except Exception as e:
                logger.error(
                    "post_response_task_failed",
                    task=name,
                    status_code=status_code,
                    error=str(e),
                    exc_info=True,
                )
