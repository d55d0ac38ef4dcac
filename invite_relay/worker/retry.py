from __future__ import annotations

import random
from dataclasses import dataclass, field

__all__: list[str] = ["RetryPolicy"]


@dataclass(frozen=True, slots=True, kw_only=True)
class RetryPolicy:
    """
    How often and how soon a failed delivery goes back on its queue.

    Delays grow exponentially from ``base_delay`` and are capped at
    ``max_delay``. With ``jitter`` the actual delay is drawn uniformly from
    ``[0, delay]`` ("full jitter") so a burst of failures does not retry in
    lockstep.

    :param max_attempts: total delivery attempts per item before it is
        dead-lettered; ``0`` retries forever
    :param base_delay: delay in seconds after the first failure
    :param max_delay: upper bound for any single delay
    :param jitter: randomize each delay
    """

    max_attempts: int = 5
    base_delay: float = 1.0
    max_delay: float = 60.0
    jitter: bool = True
    rng: random.Random = field(default_factory=random.Random, compare=False, repr=False)

    def __post_init__(self) -> None:
        if self.max_attempts < 0:
            raise ValueError("max_attempts must be non-negative")
        if self.base_delay < 0 or self.max_delay < 0:
            raise ValueError("Retry delays must be non-negative")

    @classmethod
    def unbounded(cls) -> RetryPolicy:
        """Retry forever, immediately, with no jitter."""
        return cls(max_attempts=0, base_delay=0.0, max_delay=0.0, jitter=False)

    @property
    def bounded(self) -> bool:
        return self.max_attempts > 0

    def should_retry(self, attempts: int) -> bool:
        """Whether an item that has failed ``attempts`` times gets another try."""
        if not self.bounded:
            return True
        return attempts < self.max_attempts

    def delay(self, attempts: int) -> float:
        """Seconds to wait before the attempt that follows failure number ``attempts``."""
        if attempts < 1 or self.base_delay == 0:
            return 0.0
        # Cap the exponent; 2**64 seconds is already far past any max_delay.
        exponent = min(attempts - 1, 64)
        delay = min(self.max_delay, self.base_delay * (2**exponent))
        if self.jitter:
            return self.rng.uniform(0, delay)
        return delay
