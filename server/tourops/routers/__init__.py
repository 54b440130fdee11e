"""RPC-style API routers."""

from . import booking, health, metrics, schedule, tour

__all__ = ["booking", "health", "metrics", "schedule", "tour"]
