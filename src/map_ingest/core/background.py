"""Background task runner abstraction.

Provides a protocol for submitting and tracking background tasks, with an
in-process asyncio implementation. Ingestion runs are handed to the runner
and the HTTP request returns before they finish.
"""

import asyncio
import enum
import uuid
from collections import OrderedDict
from collections.abc import Coroutine
from typing import Any, Protocol

from loguru import logger


class TaskStatus(enum.StrEnum):
    """Status of a background task."""

    PENDING = "pending"
    RUNNING = "running"
    COMPLETED = "completed"
    FAILED = "failed"


class BackgroundTaskRunner(Protocol):
    """Protocol for background task execution."""

    def submit_task(self, coro: Coroutine[Any, Any, Any], task_id: str | None = None) -> str:
        """Submit an async task for background execution.

        Args:
            coro: The coroutine to execute.
            task_id: Optional identifier to track the task under.

        Returns:
            The task ID string for tracking.
        """
        ...

    def get_status(self, task_id: str) -> TaskStatus:
        """Get the current status of a background task.

        Args:
            task_id: The task ID returned by submit_task.

        Returns:
            The current task status.
        """
        ...


class InProcessTaskRunner:
    """In-process background task runner using asyncio.

    Tasks run in the same event loop as the API server via
    asyncio.create_task(). A strong reference is held until each task
    finishes, and exceptions are logged from a done-callback so a failed
    task never surfaces as an unobserved exception. Statuses are kept for
    the most recent ``max_finished`` finished tasks only.
    """

    def __init__(self, max_finished: int = 1000) -> None:
        self._statuses: dict[str, TaskStatus] = {}
        self._tasks: dict[str, asyncio.Task[Any]] = {}
        self._finished: OrderedDict[str, None] = OrderedDict()
        self._max_finished = max_finished

    def submit_task(self, coro: Coroutine[Any, Any, Any], task_id: str | None = None) -> str:
        """Submit an async task for background execution.

        Args:
            coro: The coroutine to execute.
            task_id: Optional identifier (e.g. the ingestion job ID). A random
                UUID is generated when omitted.

        Returns:
            The task ID string for tracking.
        """
        task_id = task_id or str(uuid.uuid4())
        self._finished.pop(task_id, None)
        self._statuses[task_id] = TaskStatus.PENDING

        async def _run() -> None:
            self._statuses[task_id] = TaskStatus.RUNNING
            await coro

        task = asyncio.create_task(_run(), name=f"background-{task_id}")
        self._tasks[task_id] = task
        task.add_done_callback(lambda t: self._on_done(task_id, t))
        return task_id

    def _on_done(self, task_id: str, task: asyncio.Task[Any]) -> None:
        self._tasks.pop(task_id, None)
        if task.cancelled():
            self._statuses[task_id] = TaskStatus.FAILED
            logger.warning(f"Background task {task_id} was cancelled")
        elif (exc := task.exception()) is not None:
            self._statuses[task_id] = TaskStatus.FAILED
            logger.opt(exception=exc).error(f"Background task {task_id} failed")
        else:
            self._statuses[task_id] = TaskStatus.COMPLETED
        self._remember_finished(task_id)

    def _remember_finished(self, task_id: str) -> None:
        self._finished[task_id] = None
        while len(self._finished) > self._max_finished:
            oldest, _ = self._finished.popitem(last=False)
            if oldest not in self._tasks:
                self._statuses.pop(oldest, None)

    def get_status(self, task_id: str) -> TaskStatus:
        """Get the current status of a background task.

        Args:
            task_id: The task ID returned by submit_task.

        Returns:
            The current task status.

        Raises:
            KeyError: If the task ID is not found.
        """
        return self._statuses[task_id]

    def is_running(self, task_id: str) -> bool:
        """Return True while the task with this ID has not finished."""
        return task_id in self._tasks

    async def wait_all(self) -> None:
        """Wait for every task still in flight (used by the CLI and tests)."""
        while self._tasks:
            await asyncio.gather(*list(self._tasks.values()), return_exceptions=True)


# Singleton instance for the application
task_runner = InProcessTaskRunner()
