"""Thread pools and the scopes that run fork-join work on them."""

from __future__ import annotations

import os
import threading
import weakref
from dataclasses import dataclass
from typing import Any, Callable, Optional, Sequence, TypeVar

from heartjoin.context import Context, HeartbeatFlag, execute_heartbeat
from heartjoin.job import Job, JobQueue, JobStack

RA = TypeVar("RA")
RB = TypeVar("RB")

_DEFAULT_HEARTBEAT_EVERY = 64


class Scope:
    """A handle for running fork-join work on a thread pool.

    A scope belongs to the thread that created it and must not be shared
    with other threads.
    """

    def __init__(
        self,
        context: Context,
        job_queue: JobQueue,
        heartbeat: HeartbeatFlag,
        pool: Optional["ThreadPool"] = None,
    ) -> None:
        self._context = context
        self._job_queue = job_queue
        self._heartbeat = heartbeat
        self._join_count = 0
        # Keeps the pool alive for as long as a scope on it is in use.
        self._pool = pool

    @classmethod
    def _from_thread_pool(cls, pool: "ThreadPool") -> "Scope":
        context = pool._context
        with context.lock:
            flag = context.state.new_heartbeat()
            context.scope_created_from_thread_pool.notify()
        return cls(context, JobQueue(), flag, pool)

    @classmethod
    def _from_worker(cls, context: Context) -> "Scope":
        with context.lock:
            flag = context.state.new_heartbeat()
        return cls(context, JobQueue(), flag)

    @staticmethod
    def global_scope() -> "Scope":
        """Return a new scope on the global thread pool."""
        return ThreadPool.global_pool().scope()

    @property
    def _heartbeat_id(self) -> int:
        return id(self._heartbeat)

    def _beat(self) -> None:
        """Share the oldest job in this scope's queue, if none is shared yet."""
        context = self._context
        state = context.state
        with context.lock:
            key = self._heartbeat_id
            if key not in state.shared_jobs:
                job = self._job_queue.pop_front()
                if job is not None:
                    state.shared_jobs[key] = (state.time, job)
                    state.time += 1
                    context.job_is_ready.notify()
            self._heartbeat.is_set = False

    def _take_back_shared(self) -> bool:
        """Withdraw this scope's shared job if no thread has taken it yet."""
        context = self._context
        with context.lock:
            entry = context.state.shared_jobs.pop(self._heartbeat_id, None)
        if entry is None:
            return False
        entry[1].discard()
        return True

    def _wait_for_sent_job(self, job: Job[RA], stack: JobStack[RA]) -> RA:
        if self._take_back_shared():
            return stack.take_once()(self)

        state = self._context.state
        while not job.poll():
            with self._context.lock:
                other = state.pop_earliest_shared_job()
            if other is None:
                break
            other.execute(self)

        return job.wait()

    def _abandon(self, job: Job[Any]) -> None:
        """Settle a job whose sibling raised, so nothing runs it later."""
        if job.is_waiting():
            self._job_queue.pop_back()
            return
        if self._take_back_shared():
            return
        try:
            job.wait()
        except BaseException:
            pass

    def _join_seq(
        self, a: Callable[["Scope"], RA], b: Callable[["Scope"], RB]
    ) -> tuple[RA, RB]:
        rb = b(self)
        ra = a(self)
        return ra, rb

    def _join_heartbeat(
        self, a: Callable[["Scope"], RA], b: Callable[["Scope"], RB]
    ) -> tuple[RA, RB]:
        def checked_a(scope: "Scope") -> RA:
            if scope._heartbeat.is_set:
                scope._beat()
            return a(scope)

        stack: JobStack[RA] = JobStack(checked_a)
        job: Job[RA] = Job(stack)
        self._job_queue.push_back(job)

        try:
            rb = b(self)
        except BaseException:
            self._abandon(job)
            raise

        if job.is_waiting():
            self._job_queue.pop_back()
            return stack.take_once()(self), rb
        return self._wait_for_sent_job(job, stack), rb

    def join(
        self, a: Callable[["Scope"], RA], b: Callable[["Scope"], RB]
    ) -> tuple[RA, RB]:
        """Run ``a`` and ``b``, possibly in parallel, and return both results.

        Each callable receives the scope it runs on. Checks for a heartbeat
        only on every 64th call.
        """
        return self.join_with_heartbeat_every(_DEFAULT_HEARTBEAT_EVERY, a, b)

    def join_with_heartbeat_every(
        self,
        times: int,
        a: Callable[["Scope"], RA],
        b: Callable[["Scope"], RB],
    ) -> tuple[RA, RB]:
        """Like :meth:`join`, checking for a heartbeat once every ``times`` calls.

        ``times`` must lie between 1 and 255.
        """
        if not 1 <= times <= 255:
            raise ValueError("times must be between 1 and 255")
        self._join_count = ((self._join_count + 1) % 256) % times

        if self._join_count == 0 or len(self._job_queue) < 3:
            return self._join_heartbeat(a, b)
        return self._join_seq(a, b)


@dataclass(frozen=True)
class Config:
    """Settings for a :class:`ThreadPool`.

    ``thread_count`` is the total number of threads, the caller's included;
    ``None`` uses the number of CPUs. ``heartbeat_interval`` is in seconds.
    """

    thread_count: Optional[int] = None
    heartbeat_interval: float = 100e-6

    def __post_init__(self) -> None:
        if self.thread_count is not None and self.thread_count < 1:
            raise ValueError("thread_count must be at least 1")
        if self.heartbeat_interval < 0:
            raise ValueError("heartbeat_interval must not be negative")


def _execute_worker(context: Context, barrier: threading.Barrier) -> None:
    scope = Scope._from_worker(context)
    state = context.state
    first_run = True

    while True:
        with context.lock:
            job = state.pop_earliest_shared_job()
        if job is not None:
            job.execute(scope)

        if first_run:
            first_run = False
            barrier.wait()

        with context.lock:
            if state.is_stopping:
                break
            if not state.shared_jobs:
                context.job_is_ready.wait()


def _shutdown(
    context: Context,
    workers: Sequence[threading.Thread],
    heartbeat: threading.Thread,
) -> None:
    with context.lock:
        context.state.is_stopping = True
        context.job_is_ready.notify_all()
        context.scope_created_from_thread_pool.notify_all()

    current = threading.current_thread()
    for thread in (*workers, heartbeat):
        if thread is not current:
            thread.join()


_global_pool: Optional["ThreadPool"] = None
_global_lock = threading.Lock()


class ThreadPool:
    """A pool of worker threads for fork-join workloads."""

    def __init__(self, config: Optional[Config] = None) -> None:
        config = config if config is not None else Config()
        total = config.thread_count
        if total is None:
            total = os.cpu_count()
        worker_count = total - 1 if total else 0

        self._context = Context()
        barrier = threading.Barrier(worker_count + 1)

        self._workers = [
            threading.Thread(
                target=_execute_worker,
                args=(self._context, barrier),
                name=f"heartjoin-worker-{index}",
                daemon=True,
            )
            for index in range(worker_count)
        ]
        for worker in self._workers:
            worker.start()
        barrier.wait()

        self._heartbeat_thread = threading.Thread(
            target=execute_heartbeat,
            args=(self._context, config.heartbeat_interval, worker_count),
            name="heartjoin-heartbeat",
            daemon=True,
        )
        self._heartbeat_thread.start()

        self._finalizer = weakref.finalize(
            self, _shutdown, self._context, self._workers, self._heartbeat_thread
        )

    def set_global(self) -> None:
        """Make this the global pool; raises RuntimeError if one is already set."""
        global _global_pool
        with _global_lock:
            if _global_pool is not None:
                raise RuntimeError("the global thread pool is already set")
            _global_pool = self

    @staticmethod
    def global_pool() -> "ThreadPool":
        """Return the global pool, creating one with default settings if needed."""
        global _global_pool
        with _global_lock:
            if _global_pool is None:
                _global_pool = ThreadPool()
            return _global_pool

    def scope(self) -> Scope:
        """Return a new scope for running fork-join work on this pool."""
        return Scope._from_thread_pool(self)

    def close(self) -> None:
        """Stop the pool's threads and wait for them to finish."""
        self._finalizer()

    def __enter__(self) -> "ThreadPool":
        return self

    def __exit__(self, exc_type: Any, exc: Any, tb: Any) -> None:
        self.close()