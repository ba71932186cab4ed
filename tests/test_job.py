import threading
import time

import pytest

from heartjoin.job import Future, Job, JobQueue, JobStack


def test_future_delivers_value():
    fut = Future()
    assert fut.poll() is False
    fut.complete(42, None)
    assert fut.poll() is True
    assert fut.wait() == 42


def test_future_reraises_error():
    fut = Future()
    fut.complete(None, ValueError("boom"))
    with pytest.raises(ValueError, match="boom"):
        fut.wait()


def test_future_complete_twice_raises():
    fut = Future()
    fut.complete(1, None)
    with pytest.raises(RuntimeError):
        fut.complete(2, None)
    assert fut.wait() == 1


def test_future_wait_blocks_until_completed_elsewhere():
    fut = Future()

    def later():
        time.sleep(0.02)
        fut.complete("done", None)

    t = threading.Thread(target=later)
    t.start()
    assert fut.wait() == "done"
    t.join()


def test_job_stack_take_once():
    stack = JobStack(lambda s: s + 1)
    f = stack.take_once()
    assert f(1) == 2
    with pytest.raises(RuntimeError):
        stack.take_once()


def test_job_is_waiting_until_popped():
    queue = JobQueue()
    job = Job(JobStack(lambda s: s))
    queue.push_back(job)
    assert job.is_waiting() is True
    assert job.poll() is False
    popped = queue.pop_front()
    assert popped is job
    assert job.is_waiting() is False
    assert job.poll() is False


def test_job_execute_passes_scope_and_delivers_result():
    queue = JobQueue()
    job = Job(JobStack(lambda scope: ("ran", scope)))
    queue.push_back(job)
    queue.pop_front()
    marker = object()
    job.execute(marker)
    assert job.poll() is True
    assert job.wait() == ("ran", marker)


def test_job_execute_captures_error():
    def fail(_scope):
        raise KeyError("missing")

    queue = JobQueue()
    job = Job(JobStack(fail))
    queue.push_back(job)
    queue.pop_front()
    job.execute(None)
    assert job.poll() is True
    with pytest.raises(KeyError):
        job.wait()


def test_job_execute_before_pop_raises():
    job = Job(JobStack(lambda s: s))
    with pytest.raises(RuntimeError):
        job.execute(None)


def test_job_wait_before_pop_raises():
    job = Job(JobStack(lambda s: s))
    with pytest.raises(RuntimeError):
        job.wait()


def test_discarded_job_cannot_run_and_callable_remains():
    stack = JobStack(lambda s: s * 2)
    queue = JobQueue()
    job = Job(stack)
    queue.push_back(job)
    queue.pop_front()
    job.discard()
    with pytest.raises(RuntimeError):
        job.execute(None)
    assert stack.take_once()(3) == 6


def test_job_runs_on_other_thread():
    queue = JobQueue()
    job = Job(JobStack(lambda _s: threading.get_ident()))
    queue.push_back(job)
    shared = queue.pop_front()
    t = threading.Thread(target=shared.execute, args=(None,))
    t.start()
    result = job.wait()
    t.join()
    assert result == t.ident


def test_queue_order():
    queue = JobQueue()
    jobs = [Job(JobStack(lambda s, i=i: i)) for i in range(3)]
    for job in jobs:
        queue.push_back(job)
    assert len(queue) == 3
    assert queue.pop_back() is jobs[2]
    assert queue.pop_front() is jobs[0]
    assert len(queue) == 1
    assert queue.pop_front() is jobs[1]
    assert len(queue) == 0


def test_queue_empty_pops_return_none():
    queue = JobQueue()
    assert queue.pop_front() is None
    assert queue.pop_back() is None
    assert len(queue) == 0