import functools
import threading

import pytest

from minirpc.coroutine import Coroutine, CoroutineState, Scheduler, get_scheduler


def _steps(task_id, log):
    for step in range(3):
        log.append((task_id, step))
        yield


def _sleeper(scheduler, log):
    log.append("a1")
    scheduler.block_current()
    yield
    log.append("a2")


def _waker(scheduler, log, ids):
    log.append("b1")
    yield
    scheduler.wake(ids["a"])
    log.append("b2")


def _blocked_forever(scheduler, log):
    scheduler.block_current()
    yield
    log.append("after")


def _endless(scheduler, steps):
    while True:
        steps.append(len(steps))
        if len(steps) == 3:
            scheduler.stop()
        yield


def _two_yields():
    yield
    yield


def test_round_robin_interleaving():
    scheduler = Scheduler()
    log = []
    for task_id in range(3):
        scheduler.add_coroutine(functools.partial(_steps, task_id, log))
    scheduler.run()
    assert log == [(t, s) for s in range(3) for t in range(3)]


def test_hundred_tasks_each_step_three_times():
    scheduler = Scheduler()
    log = []
    for task_id in range(100):
        scheduler.add_coroutine(functools.partial(_steps, task_id, log))
    scheduler.run()
    assert len(log) == 300
    for task_id in range(100):
        assert [s for t, s in log if t == task_id] == [0, 1, 2]


def test_plain_function_runs_once():
    scheduler = Scheduler()
    calls = []
    scheduler.add_coroutine(lambda: calls.append("ran"))
    scheduler.run()
    assert calls == ["ran"]


def test_create_coroutine_returns_sequential_ids():
    scheduler = Scheduler()
    ids = [scheduler.create_coroutine(lambda: None) for _ in range(3)]
    assert ids == [0, 1, 2]


def test_block_and_wake():
    scheduler = Scheduler()
    log = []
    ids = {}
    ids["a"] = scheduler.add_coroutine(functools.partial(_sleeper, scheduler, log))
    waker_id = scheduler.add_coroutine(functools.partial(_waker, scheduler, log, ids))
    assert (ids["a"], waker_id) == (0, 1)
    scheduler.run()
    assert log == ["a1", "b1", "b2", "a2"]


def test_blocked_coroutine_without_wake_never_finishes():
    scheduler = Scheduler()
    log = []
    coroutine_id = scheduler.add_coroutine(
        functools.partial(_blocked_forever, scheduler, log)
    )
    assert coroutine_id == 0
    scheduler.run()
    assert log == []


def test_wake_unknown_id_is_ignored():
    scheduler = Scheduler()
    log = []
    scheduler.wake(42)
    scheduler.add_coroutine(lambda: log.append("x"))
    scheduler.run()
    assert log == ["x"]


def test_stop_ends_run():
    scheduler = Scheduler()
    steps = []
    coroutine_id = scheduler.add_coroutine(functools.partial(_endless, scheduler, steps))
    assert coroutine_id == 0
    scheduler.run()
    assert steps == [0, 1, 2]


def test_exception_propagates_and_finishes():
    coroutine = Coroutine(lambda: 1 / 0)
    with pytest.raises(ZeroDivisionError):
        coroutine.resume()
    assert coroutine.state is CoroutineState.FINISHED


def test_resume_finished_raises():
    coroutine = Coroutine(lambda: None)
    assert coroutine.resume() is CoroutineState.FINISHED
    with pytest.raises(RuntimeError):
        coroutine.resume()


def test_generator_state_transitions():
    coroutine = Coroutine(_two_yields)
    assert coroutine.state is CoroutineState.READY
    assert coroutine.resume() is CoroutineState.READY
    assert coroutine.resume() is CoroutineState.READY
    assert coroutine.resume() is CoroutineState.FINISHED


def test_get_scheduler_is_per_thread():
    mine = get_scheduler()
    assert get_scheduler() is mine
    seen = []
    thread = threading.Thread(target=lambda: seen.append(get_scheduler()))
    thread.start()
    thread.join()
    assert len(seen) == 1
    assert seen[0] is not mine