"""Reconnect backoff policy.

Decorrelated jitter: each delay is drawn between the base and three times the
previous delay, then clamped to ``[base, cap]``. Independent clients drift
apart instead of retrying in lockstep after a shared outage.
"""

from __future__ import annotations

import math
import random

from socketflow.const import MIN_RECONNECT_DELAY_MS


class DecorrelatedJitterBackoff:
    """Decorrelated-jitter backoff with a persistent magnitude.

    The magnitude carries over between attempts within one outage and only
    returns to ``base_ms`` through ``reset()`` (called on a successful open
    and on stop).
    """

    def __init__(
        self,
        base_ms: float = 1000.0,
        cap_ms: float = 30000.0,
        rng: random.Random | None = None,
    ):
        """Initialize backoff policy.

        Args:
            base_ms: Lower bound of every magnitude (default: 1000ms)
            cap_ms: Upper bound of every magnitude and delay (default: 30000ms)
            rng: Random source; pass a seeded ``random.Random`` for
                 deterministic delays
        """
        self.base_ms = base_ms
        self.cap_ms = cap_ms
        self._rng = rng or random.Random()
        self.current_ms: float = base_ms

    def next_magnitude(self) -> float:
        """Draw the next magnitude and store it.

        Formula: clamp(floor(uniform(base, min(cap, 3 * current))), base, cap)
        """
        upper = min(self.cap_ms, self.current_ms * 3)
        drawn = math.floor(self._rng.random() * (upper - self.base_ms) + self.base_ms)
        self.current_ms = min(self.cap_ms, max(self.base_ms, drawn))
        return self.current_ms

    def next_delay(self, force: bool = False) -> float:
        """Delay in milliseconds before the next reconnect attempt.

        Forced reconnects (liveness timeout) return 0 and leave the
        magnitude untouched. Otherwise the delay is never below 250ms.
        """
        if force:
            return 0.0
        return max(float(MIN_RECONNECT_DELAY_MS), min(self.next_magnitude(), self.cap_ms))

    def reset(self) -> None:
        self.current_ms = self.base_ms

    def __repr__(self) -> str:
        return (
            f"DecorrelatedJitterBackoff(base={self.base_ms}ms, "
            f"cap={self.cap_ms}ms, current={self.current_ms}ms)"
        )
