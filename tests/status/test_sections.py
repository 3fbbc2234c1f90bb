from __future__ import annotations

import threading
import time
from typing import Callable

import pytest

from asc.pipeline.api.context import CallContext
from asc.pipeline.status import sections
from asc.pipeline.status.sections import SectionError, SectionTask, run_sections


def _fail(message: str, delay: float = 0.0) -> Callable[[], None]:
    def _run() -> None:
        time.sleep(delay)
        raise RuntimeError(message)

    return _run


def test_all_tasks_run() -> None:
    done: list[str] = []
    tasks = [SectionTask(n, lambda n=n: done.append(n)) for n in ("a", "b", "c")]

    run_sections(tasks)

    assert sorted(done) == ["a", "b", "c"]


def test_one_failure_raises_named_error_after_siblings_finish() -> None:
    snapshot: dict[str, str] = {}

    def slow_ok() -> None:
        time.sleep(0.05)
        snapshot["appstore"] = "filled"

    tasks = [
        SectionTask("builds/testflight", lambda: snapshot.update(builds="filled")),
        SectionTask("appstore/phased-release", slow_ok),
        SectionTask("submission/review", _fail("HTTP 500")),
    ]

    with pytest.raises(SectionError) as ei:
        run_sections(tasks, limit=3)

    assert ei.value.section == "submission/review"
    assert str(ei.value) == "submission/review: HTTP 500"
    assert isinstance(ei.value.__cause__, RuntimeError)
    # Siblings were not cancelled.
    assert snapshot == {"builds": "filled", "appstore": "filled"}


def test_earliest_declared_failure_wins() -> None:
    tasks = [
        SectionTask("first", _fail("slow failure", delay=0.1)),
        SectionTask("second", _fail("fast failure")),
    ]

    for _ in range(3):
        with pytest.raises(SectionError) as ei:
            run_sections(tasks, limit=2)
        assert ei.value.section == "first"
        assert str(ei.value.cause) == "slow failure"


def test_concurrency_is_bounded() -> None:
    lock = threading.Lock()
    running = 0
    peak = 0

    def work() -> None:
        nonlocal running, peak
        with lock:
            running += 1
            peak = max(peak, running)
        time.sleep(0.02)
        with lock:
            running -= 1

    run_sections([SectionTask(str(i), work) for i in range(8)], limit=2)

    assert 1 <= peak <= 2


def test_limit_below_one_runs_serially() -> None:
    order: list[int] = []
    run_sections([SectionTask(str(i), lambda i=i: order.append(i)) for i in range(3)], 0)
    assert order == [0, 1, 2]


def test_no_tasks_is_a_noop() -> None:
    run_sections([])


def test_interrupt_while_waiting_cancels_context(
    monkeypatch: pytest.MonkeyPatch,
) -> None:
    ctx = CallContext()

    def interrupted(*args: object, **kwargs: object) -> None:
        raise KeyboardInterrupt

    monkeypatch.setattr(sections, "wait", interrupted)

    with pytest.raises(KeyboardInterrupt):
        run_sections([SectionTask("a", lambda: None)], context=ctx)

    assert ctx.cancelled
