"""State shared between a thread pool's workers, its scopes and its heartbeat."""

from __future__ import annotations

import threading
import time
import weakref
from dataclasses import dataclass, field
from typing import Any, Optional

from heartjoin.job import Job


class HeartbeatFlag:
    """A flag the heartbeat thread raises to tell a scope to share work."""

    __slots__ = ("is_set", "__weakref__")

    def __init__(self, is_set: bool = True) -> None:
        self.is_set = is_set

    def __bool__(self) -> bool:
        return self.is_set


@dataclass
class Heartbeat:
    """The heartbeat thread's record of one scope's flag."""

    flag: "weakref.ReferenceType[HeartbeatFlag]"
    last_heartbeat: float


@dataclass
class LockContext:
    """Everything guarded by a context's lock."""

    time: int = 0
    is_stopping: bool = False
    shared_jobs: dict[int, tuple[int, Job[Any]]] = field(default_factory=dict)
    heartbeats: dict[int, Heartbeat] = field(default_factory=dict)
    heartbeat_index: int = 0

    def new_heartbeat(self) -> HeartbeatFlag:
        """Register a new, already raised heartbeat flag and return it."""
        flag = HeartbeatFlag(True)
        self.heartbeats[self.heartbeat_index] = Heartbeat(
            weakref.ref(flag), time.monotonic()
        )
        self.heartbeat_index += 1
        return flag

    def pop_earliest_shared_job(self) -> Optional[Job[Any]]:
        """Remove and return the shared job with the lowest key, if any."""
        if not self.shared_jobs:
            return None
        key = min(self.shared_jobs)
        _, job = self.shared_jobs.pop(key)
        return job


class Context:
    """A lock over a LockContext, with the conditions that threads wait on."""

    def __init__(self) -> None:
        self.lock = threading.Lock()
        self.state = LockContext()
        self.job_is_ready = threading.Condition(self.lock)
        self.scope_created_from_thread_pool = threading.Condition(self.lock)


def execute_heartbeat(
    context: Context, heartbeat_interval: float, num_workers: int
) -> None:
    """Raise each live scope's flag once per ``heartbeat_interval`` seconds.

    Runs until the context is stopping. Flags whose scopes are gone are
    forgotten. The loop sleeps while only worker scopes are registered.
    """
    state = context.state
    while True:
        with context.lock:
            context.scope_created_from_thread_pool.wait_for(
                lambda: not (
                    len(state.heartbeats) == num_workers and not state.is_stopping
                )
            )
            if state.is_stopping:
                break

            now = time.monotonic()
            for key, heartbeat in list(state.heartbeats.items()):
                flag = heartbeat.flag()
                if flag is None:
                    del state.heartbeats[key]
                elif now - heartbeat.last_heartbeat >= heartbeat_interval:
                    flag.is_set = True
                    heartbeat.last_heartbeat = now

            count = len(state.heartbeats)
            pause = heartbeat_interval / count if count else None

        if pause is not None:
            time.sleep(pause)