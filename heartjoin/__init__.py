"""Low-overhead fork-join parallelism with heartbeat-driven work sharing."""

__version__ = "0.2.1"
__all__ = ["job", "context", "pool"]