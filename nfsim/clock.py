# File location: nfsim/clock.py
# Simulated Time
# All delays are expressed in simulated seconds and scaled to wall-clock time

import asyncio
import time
from datetime import datetime, timedelta, timezone


class SimulationClock:
    """
    Scaled clock shared by every simulator component.

    A time_scale of 1.0 runs in real time; 0.001 runs a 5 second
    stabilization in 5 milliseconds while timestamps still advance by
    the full simulated amount.
    """

    def __init__(self, time_scale: float = 1.0):
        if time_scale <= 0:
            raise ValueError("time_scale must be positive")
        self.time_scale = time_scale
        self._origin_wall = datetime.now(timezone.utc)
        self._origin_mono = time.monotonic()

    def now(self) -> datetime:
        """Current simulated time"""
        elapsed = (time.monotonic() - self._origin_mono) / self.time_scale
        return self._origin_wall + timedelta(seconds=elapsed)

    def to_real(self, simulated_seconds: float) -> float:
        return max(0.0, simulated_seconds) * self.time_scale

    async def sleep(self, simulated_seconds: float):
        """Await a simulated delay"""
        await asyncio.sleep(self.to_real(simulated_seconds))
