"""Run a fixed graph of dependent async tasks with a typed result store."""

import asyncio
import dataclasses
import logging
from collections.abc import Awaitable, Callable, Iterable
from dataclasses import dataclass
from typing import Any

from post_on_slack.models import SentMessage, UploadedFile

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Pipe:
    """Results of completed tasks, one slot per task name.

    A task only ever sees the slots of its declared prerequisites. Skipped
    tasks leave their slot as ``None``.
    """

    check_args: None = None
    groups: list[dict[str, Any]] | None = None
    group_id: str | None = None
    channels: list[dict[str, Any]] | None = None
    channel_id: str | None = None
    send_message: SentMessage | None = None
    pin: bool | None = None
    upload_file: UploadedFile | None = None
    send_file_message: SentMessage | None = None
    send_console_message: int | None = None
    wait_for_text: dict[str, Any] | None = None
    read: None = None

    @property
    def destination(self) -> str | None:
        """The resolved group or channel id, whichever this run targets."""
        return self.group_id or self.channel_id


PIPE_SLOTS = frozenset(field.name for field in dataclasses.fields(Pipe))

TaskFunc = Callable[[Pipe], Awaitable[Any]]


@dataclass(frozen=True)
class Task:
    """A named step, the steps it waits for, and the coroutine that runs it."""

    name: str
    run: TaskFunc
    requires: tuple[str, ...] = ()


def _discard_result(future: "asyncio.Future[Any]") -> None:
    # Results of tasks still running after a failure are dropped unread.
    if not future.cancelled():
        future.exception()


class TaskGraph:
    """A static DAG of tasks executed on the running event loop.

    A task starts once all of its prerequisites have finished; tasks with no
    dependency between them run concurrently. The first task to raise aborts
    the run: nothing new is scheduled and the exception propagates to the
    caller. Tasks already in flight are left alone and their outcome is
    discarded.
    """

    def __init__(self, tasks: Iterable[Task]) -> None:
        self.tasks: dict[str, Task] = {}
        for task in tasks:
            if task.name in self.tasks:
                raise ValueError(f"Duplicate task name: {task.name}")
            if task.name not in PIPE_SLOTS:
                raise ValueError(f"Task {task.name} has no result slot")
            self.tasks[task.name] = task

        for task in self.tasks.values():
            unknown = [dep for dep in task.requires if dep not in self.tasks]
            if unknown:
                raise ValueError(
                    f"Task {task.name} requires unknown tasks: {', '.join(unknown)}"
                )

        self.order = self._topological_order()

    def _topological_order(self) -> list[str]:
        remaining = {name: set(task.requires) for name, task in self.tasks.items()}
        order: list[str] = []
        while remaining:
            ready = sorted(name for name, deps in remaining.items() if not deps)
            if not ready:
                raise ValueError(f"Task graph has a cycle among: {', '.join(sorted(remaining))}")
            for name in ready:
                order.append(name)
                del remaining[name]
            for deps in remaining.values():
                deps.difference_update(ready)
        return order

    def _view(self, task: Task, results: dict[str, Any]) -> Pipe:
        return Pipe(**{dep: results[dep] for dep in task.requires})

    async def run(self) -> Pipe:
        """Run every task and return the full result store.

        Raises:
            Exception: Whatever the first failing task raised.
        """
        results: dict[str, Any] = {}
        waiting = list(self.order)
        running: dict[asyncio.Task[Any], str] = {}

        while waiting or running:
            for name in list(waiting):
                task = self.tasks[name]
                if all(dep in results for dep in task.requires):
                    waiting.remove(name)
                    logger.debug(f"Starting task {name}")
                    future = asyncio.create_task(task.run(self._view(task, results)), name=name)
                    running[future] = name

            done, _ = await asyncio.wait(running, return_when=asyncio.FIRST_COMPLETED)

            for future in done:
                name = running.pop(future)
                error = future.exception()
                if error is not None:
                    logger.debug(f"Task {name} failed: {error!r}")
                    for leftover, leftover_name in running.items():
                        logger.debug(f"Discarding result of running task {leftover_name}")
                        leftover.add_done_callback(_discard_result)
                    raise error
                results[name] = future.result()
                logger.debug(f"Task {name} finished")

        return Pipe(**results)
