#!/usr/bin/env python3
"""
Block clock

Timestamp source for the pool. Time only moves when the simulation (or a
test) advances it, which keeps interest accrual deterministic.
"""


class BlockClock:
    """Manually advanced unix timestamp"""

    def __init__(self, start: int = 0):
        self.timestamp = start

    def __call__(self) -> int:
        return self.timestamp

    def advance(self, seconds: int) -> int:
        if seconds < 0:
            raise ValueError("Time cannot move backwards")
        self.timestamp += seconds
        return self.timestamp

    def set(self, timestamp: int) -> None:
        if timestamp < self.timestamp:
            raise ValueError("Time cannot move backwards")
        self.timestamp = timestamp
