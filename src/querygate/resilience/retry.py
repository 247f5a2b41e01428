"""
Retry policy for database query execution.

The policy only answers two questions: how many attempts a call may make,
and how long to wait before the next one. Whether a failure is worth
retrying at all is decided by the error classifier, not here.

Delays grow exponentially with the attempt number:

    delay(n) = base_delay * exponential_base ** n     (capped at max_delay)

With the defaults this sleeps 2, 4, 8, 16 and 32 seconds between the six
attempts of a call. Setting ``jitter`` spreads the delay with equal jitter
(half fixed, half random) so concurrent callers do not retry in lockstep.
"""

import random
from dataclasses import dataclass

from querygate.types import ErrorCategory


def _as_bool(value) -> bool:
    # bool('false') would be True
    if isinstance(value, str):
        return value.strip().lower() in ("1", "true", "yes", "on")
    return bool(value)


@dataclass(frozen=True)
class RetryPolicy:
    """
    Immutable retry configuration.

    Attributes:
        max_retries: Retries after the first attempt (total attempts is
            max_retries + 1)
        base_delay: Delay multiplier in seconds
        exponential_base: Growth factor per attempt
        max_delay: Upper bound for any single delay in seconds
        jitter: Apply equal jitter to each delay
    """

    max_retries: int = 5
    base_delay: float = 1.0
    exponential_base: float = 2.0
    max_delay: float = 60.0
    jitter: bool = False

    def __post_init__(self):
        """Ensure proper types from YAML/env vars."""
        object.__setattr__(self, "max_retries", int(self.max_retries))
        object.__setattr__(self, "base_delay", float(self.base_delay))
        object.__setattr__(self, "exponential_base", float(self.exponential_base))
        object.__setattr__(self, "max_delay", float(self.max_delay))
        object.__setattr__(self, "jitter", _as_bool(self.jitter))

        if self.max_retries < 0:
            raise ValueError(f"max_retries must be >= 0, got {self.max_retries}")
        if self.base_delay < 0 or self.max_delay < 0:
            raise ValueError("base_delay and max_delay must be >= 0")
        if self.exponential_base < 1:
            raise ValueError(
                f"exponential_base must be >= 1, got {self.exponential_base}"
            )

    @property
    def max_attempts(self) -> int:
        return self.max_retries + 1

    def get_delay(self, attempt: int) -> float:
        """
        Calculate the wait before the attempt following ``attempt``.

        Args:
            attempt: 1-indexed number of the attempt that just failed

        Returns:
            Delay in seconds
        """
        delay = min(self.base_delay * (self.exponential_base**attempt), self.max_delay)
        if self.jitter:
            delay = (delay / 2) + random.uniform(0, delay / 2)
        return delay

    def should_retry(self, category: ErrorCategory, attempt: int) -> bool:
        """
        Decide whether another attempt follows.

        Args:
            category: Classification of the failure
            attempt: 1-indexed number of the attempt that just failed
        """
        return category == ErrorCategory.TRANSIENT and attempt < self.max_attempts

    @classmethod
    def from_dict(cls, data: dict | None) -> "RetryPolicy":
        """Build a policy from a config mapping, ignoring unknown keys."""
        data = data or {}
        known = {"max_retries", "base_delay", "exponential_base", "max_delay", "jitter"}
        return cls(**{k: v for k, v in data.items() if k in known and v is not None})


DEFAULT_RETRY_POLICY = RetryPolicy()


__all__ = [
    "DEFAULT_RETRY_POLICY",
    "RetryPolicy",
]
