"""Delivery workers and their retry policy."""

from .consumer import DeliveryWorker, WorkerState
from .retry import RetryPolicy

__all__ = ["DeliveryWorker", "RetryPolicy", "WorkerState"]
