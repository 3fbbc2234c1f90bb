"""
Bounded-concurrency runner for dashboard sections.

Each `SectionTask` fetches and assembles one part of a snapshot and writes
only the snapshot fields it owns, so tasks never need a lock between them.

Semantics
---------
- At most `limit` tasks run at once (a thread pool sized to the limit).
- The runner waits for every task to finish, even after one has failed:
  siblings are not cancelled (fail-together, not fail-fast).
- If any task failed, a `SectionError` naming the failing section is raised.
  When several fail, the one declared first wins, independent of completion
  order, so the reported error is the same on every run.

Deadlines and cancellation are carried by the client's `CallContext`, which
every outstanding request checks. An interrupt while waiting cancels that
context, so running sections stop at their next request and queued ones are
dropped before the interrupt propagates.
"""

from __future__ import annotations

import logging
from concurrent.futures import Future, ThreadPoolExecutor, wait
from dataclasses import dataclass
from typing import Callable, Optional, Sequence

from asc.pipeline.api.context import CallContext

logger = logging.getLogger(__name__)

DEFAULT_SECTION_CONCURRENCY = 3


@dataclass(frozen=True)
class SectionTask:
    """A named unit of work filling its own part of a snapshot."""

    name: str
    run: Callable[[], None]


class SectionError(RuntimeError):
    """A section could not be built; wraps the underlying failure."""

    def __init__(self, section: str, cause: BaseException) -> None:
        super().__init__(f"{section}: {cause}")
        self.section = section
        self.cause = cause


def _run_one(task: SectionTask) -> None:
    logger.debug("section %s: start", task.name)
    task.run()
    logger.debug("section %s: done", task.name)


def run_sections(
    tasks: Sequence[SectionTask],
    limit: int = DEFAULT_SECTION_CONCURRENCY,
    context: Optional[CallContext] = None,
) -> None:
    """Run all `tasks` with at most `limit` in flight; raise on any failure.

    Raises:
        SectionError: For the earliest-declared task that failed, chained to
            its original exception.
    """
    if not tasks:
        return
    workers = max(1, min(limit, len(tasks)))

    with ThreadPoolExecutor(max_workers=workers, thread_name_prefix="section") as pool:
        futures: list[Future[None]] = [pool.submit(_run_one, task) for task in tasks]
        try:
            wait(futures)
        except KeyboardInterrupt:
            if context is not None:
                context.cancel()
            pool.shutdown(wait=False, cancel_futures=True)
            raise

    for task, future in zip(tasks, futures):
        exc = future.exception()
        if exc is not None:
            logger.debug("section %s failed: %s", task.name, exc)
            raise SectionError(task.name, exc) from exc


__all__ = [
    "DEFAULT_SECTION_CONCURRENCY",
    "SectionTask",
    "SectionError",
    "run_sections",
]
