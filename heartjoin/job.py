"""Jobs, their futures, and the per-thread queue that holds them."""

from __future__ import annotations

import threading
from collections import deque
from typing import Any, Callable, Generic, Optional, TypeVar

T = TypeVar("T")


class Future(Generic[T]):
    """A one-shot slot that a job's result is delivered into."""

    def __init__(self) -> None:
        self._ready = threading.Event()
        self._lock = threading.Lock()
        self._value: Optional[T] = None
        self._error: Optional[BaseException] = None

    def poll(self) -> bool:
        """Return True once a result has been delivered."""
        return self._ready.is_set()

    def wait(self) -> T:
        """Block until the result arrives, then return it or raise its error."""
        self._ready.wait()
        if self._error is not None:
            raise self._error
        return self._value  # type: ignore[return-value]

    def complete(self, value: Optional[T], error: Optional[BaseException]) -> None:
        """Deliver a value, or an error raised while computing it."""
        with self._lock:
            if self._ready.is_set():
                raise RuntimeError("future has already been completed")
            self._value = value
            self._error = error
            self._ready.set()


class JobStack(Generic[T]):
    """Holds a job's callable until it is taken to be run, exactly once."""

    def __init__(self, f: Callable[[Any], T]) -> None:
        self._f: Optional[Callable[[Any], T]] = f
        self._lock = threading.Lock()

    def take_once(self) -> Callable[[Any], T]:
        """Take the callable out; a second call raises RuntimeError."""
        with self._lock:
            f = self._f
            if f is None:
                raise RuntimeError("job callable has already been taken")
            self._f = None
            return f


class Job(Generic[T]):
    """A unit of work that may be shared with another thread and run there."""

    def __init__(self, stack: JobStack[T]) -> None:
        self._stack = stack
        self._future: Optional[Future[T]] = None
        self._discarded = False

    def _attach_future(self) -> None:
        self._future = Future()

    def is_waiting(self) -> bool:
        """True while the job is still only in its owner's queue."""
        return self._future is None

    def poll(self) -> bool:
        """True once a shared job has finished running."""
        return self._future is not None and self._future.poll()

    def _shared_future(self) -> Future[T]:
        if self._future is None:
            raise RuntimeError("job has not been popped from a queue")
        if self._discarded:
            raise RuntimeError("job has been discarded")
        return self._future

    def wait(self) -> T:
        """Block until a shared job has run; return its result or raise its error."""
        return self._shared_future().wait()

    def execute(self, scope: Any) -> None:
        """Run the job's callable with ``scope`` and deliver the outcome."""
        future = self._shared_future()
        f = self._stack.take_once()
        try:
            value = f(scope)
        except BaseException as error:  # delivered to the waiting thread
            future.complete(None, error)
        else:
            future.complete(value, None)

    def discard(self) -> None:
        """Drop a popped job that will be neither executed nor waited on."""
        self._discarded = True


class JobQueue:
    """A thread's double-ended queue of jobs that may be shared."""

    def __init__(self) -> None:
        self._jobs: deque[Job[Any]] = deque()

    def __len__(self) -> int:
        return len(self._jobs)

    def push_back(self, job: Job[Any]) -> None:
        """Add a job at the back of the queue."""
        self._jobs.append(job)

    def pop_back(self) -> Optional[Job[Any]]:
        """Remove and return the most recently pushed job, if any."""
        return self._jobs.pop() if self._jobs else None

    def pop_front(self) -> Optional[Job[Any]]:
        """Remove the oldest job, give it a future to report into, and return it."""
        if not self._jobs:
            return None
        job = self._jobs.popleft()
        job._attach_future()
        return job