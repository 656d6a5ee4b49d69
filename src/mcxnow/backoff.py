"""Reconnect delay policy."""

from __future__ import annotations

from dataclasses import dataclass, field


@dataclass
class BackoffPolicy:
    """Doubling reconnect delay clamped to ``[initial, maximum]``.

    ``next_delay()`` hands out the current delay and doubles it for the next
    consecutive failure. Only ``reset()`` brings it back to ``initial``.
    """

    initial: float = 2.0
    maximum: float = 30.0
    current: float = field(init=False)

    def __post_init__(self) -> None:
        if self.initial <= 0:
            raise ValueError("initial backoff must be greater than 0")
        if self.maximum < self.initial:
            raise ValueError("maximum backoff must not be lower than initial")
        self.current = self.initial

    def next_delay(self) -> float:
        delay = self.current
        self.current = min(self.maximum, max(self.initial, self.current * 2))
        return delay

    def reset(self) -> None:
        self.current = self.initial
