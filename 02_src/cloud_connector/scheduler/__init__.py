"""Scheduler module."""

from .scheduler import PublishScheduler, publish_interval_ms, select_top_n_scalars

__all__ = ["PublishScheduler", "publish_interval_ms", "select_top_n_scalars"]
