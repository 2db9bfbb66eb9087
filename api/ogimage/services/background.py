"""Post-response side effects (usage logs, overage writes, key touch).

Tasks run after the response has been sent. Each one is isolated: an
exception is logged as ``background_task_failed`` and goes no further.
"""

from __future__ import annotations

import inspect
from typing import Any, Awaitable, Callable, List, Union

from fastapi import BackgroundTasks

from ..core.structured_logging import LoggerFactory, log_event, request_id_var

logger = LoggerFactory.get_logger(__name__)

Task = Callable[..., Union[Awaitable[Any], Any]]


async def run_isolated(name: str, request_id: str, func: Task, *args: Any, **kwargs: Any) -> bool:
    """Run one task, swallowing and logging its failure. Returns success."""
    token = request_id_var.set(request_id)
    try:
        result = func(*args, **kwargs)
        if inspect.isawaitable(result):
            await result
        return True
    except Exception as e:
        log_event(logger, "background_task_failed", level="error",
                  task=name, error=f"{type(e).__name__}: {e}")
        return False
    finally:
        request_id_var.reset(token)


class BackgroundDispatcher:
    """Queues named tasks onto FastAPI's ``BackgroundTasks``."""

    def __init__(self, tasks: BackgroundTasks, request_id: str):
        self.tasks = tasks
        self.request_id = request_id
        self.scheduled: List[str] = []

    def schedule(self, name: str, func: Task, *args: Any, **kwargs: Any) -> None:
        self.scheduled.append(name)
        self.tasks.add_task(run_isolated, name, self.request_id, func, *args, **kwargs)
