"""In-memory queue primitives for the delivery pipelines."""

from .dead_letter import DeadLetter, DeadLetterSink, MemoryDeadLetterSink
from .memory import DEFAULT_CAPACITY, BoundedQueue

__all__ = ["BoundedQueue", "DEFAULT_CAPACITY", "DeadLetter", "DeadLetterSink", "MemoryDeadLetterSink"]
