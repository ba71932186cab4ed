# heartjoin

Fork-join parallelism for workloads made of many small, recursive tasks.

Each scope has its own queue of pending work. A background heartbeat thread
raises a flag on each live scope at a fixed interval. When a `join` sees that
its scope's flag is raised, it hands the oldest pending job in its queue to the
pool's worker threads. Between heartbeats, `join` costs little more than two
plain function calls. This suits divide-and-conquer code where it is hard to
guess how much work is left on a branch.

The workers are ordinary Python threads (`threading.Thread`).

## Installation

```
pip install heartjoin
```

## Usage

`Scope.join(a, b)` runs two callables, possibly on different threads, and
returns their results as a tuple `(result_a, result_b)`. Each callable receives
the scope it runs on as its only argument and can use that scope to fork
further.

```python
from heartjoin.pool import Scope


class Node:
    def __init__(self, layers):
        self.val = 1
        self.left = Node(layers - 1) if layers != 1 else None
        self.right = Node(layers - 1) if layers != 1 else None


def tree_sum(node, scope):
    left, right = scope.join(
        lambda s: tree_sum(node.left, s) if node.left else 0,
        lambda s: tree_sum(node.right, s) if node.right else 0,
    )
    return node.val + left + right


assert tree_sum(Node(10), Scope.global_scope()) == 1023
```

A scope belongs to the thread that created it. Do not share a scope between
threads. Each thread should call `pool.scope()` to get its own.

### Thread pools

`ThreadPool` owns the worker threads and the heartbeat thread. `close()` stops
them and waits for them to finish. The pool is also a context manager that
calls `close()` on exit:

```python
from heartjoin.pool import Config, ThreadPool

with ThreadPool(Config(thread_count=4, heartbeat_interval=0.0001)) as pool:
    scope = pool.scope()
    a, b = scope.join(lambda _: 1, lambda _: 2)
    assert (a, b) == (1, 2)
```

If a pool is garbage-collected without being closed, its threads are stopped
at that point.

`Config` is a frozen dataclass with these fields:

- `thread_count`: the total number of threads, including the caller's own.
  The pool starts `thread_count - 1` workers. If it is `None` (the default),
  the value of `os.cpu_count()` is used. A value below 1 raises `ValueError`.
- `heartbeat_interval`: the time in seconds between heartbeats on any one
  scope. The default is `100e-6` (100 microseconds). A negative value raises
  `ValueError`.

`ThreadPool()` with no argument uses `Config()`.

### Global pool

`ThreadPool.global_pool()` returns a pool that is shared by the whole process.
It is created with the default `Config` the first time it is needed.
`Scope.global_scope()` returns a new scope on that pool.

To configure the global pool yourself, call `set_global()` on your own pool
before anything uses the global pool. Once a global pool has been set or
created, `set_global()` raises `RuntimeError`.

### Tuning

`join` is the same as `join_with_heartbeat_every(64, a, b)`. A scope counts
its joins. It checks its heartbeat flag on every `times`-th call, and also on
every call while its local queue holds fewer than three jobs. On all other
calls it runs `b` and then `a` on the current thread, with no further
bookkeeping. `times` must be between 1 and 255, or `ValueError` is raised. For
example, `times=1` checks the flag on every call.

### Exceptions

If a callable raises an exception, `join` raises that same exception, even
when the callable ran on a worker thread. If `b` raises, the job for `a` is
taken back when no worker has started it yet. If a worker has already started
it, `join` waits for it to finish before raising the exception from `b`.

### Modules

- `heartjoin.pool`: `Scope`, `Config` and `ThreadPool`, the public interface.
- `heartjoin.job`: `Future`, `JobStack`, `Job` and `JobQueue`, the building
  blocks for jobs that can be handed to other threads.
- `heartjoin.context`: the state that a pool's threads share and the
  heartbeat loop, `execute_heartbeat`.