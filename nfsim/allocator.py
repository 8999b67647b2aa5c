# File location: nfsim/allocator.py
# Address/Port Allocator
# Picks unused IPv4 addresses and ports from priority-ordered pools

from typing import Iterable, Optional
import logging
import random

from .config.addressing import (
    SUBNET_POOLS,
    HOST_RANGE,
    PORT_RANGE,
    FALLBACK_SUBNET_RANGE,
    FALLBACK_HOST_RANGE,
    FALLBACK_PORT_RANGE,
)
from .errors import AllocationExhaustedError

logger = logging.getLogger(__name__)


def next_address(used_ips: Iterable[str], rng: Optional[random.Random] = None) -> str:
    """
    First free address across SUBNET_POOLS, host octets HOST_RANGE.

    Never reserves anything: calling twice with the same in-use set
    returns the same value. Once the pools are exhausted an address from
    the degraded range is returned and a warning is logged.
    """
    used = set(used_ips)
    for subnet in SUBNET_POOLS:
        for host in range(HOST_RANGE[0], HOST_RANGE[1] + 1):
            candidate = f"{subnet}.{host}"
            if candidate not in used:
                return candidate

    rng = rng or random
    candidate = (
        f"192.168.{rng.randint(*FALLBACK_SUBNET_RANGE)}.{rng.randint(*FALLBACK_HOST_RANGE)}"
    )
    if candidate not in used:
        logger.warning(f"Address pools exhausted, degraded allocation: {candidate}")
        return candidate

    for third in range(FALLBACK_SUBNET_RANGE[0], FALLBACK_SUBNET_RANGE[1] + 1):
        for host in range(FALLBACK_HOST_RANGE[0], FALLBACK_HOST_RANGE[1] + 1):
            candidate = f"192.168.{third}.{host}"
            if candidate not in used:
                logger.warning(f"Address pools exhausted, degraded allocation: {candidate}")
                return candidate

    raise AllocationExhaustedError("No IPv4 address left in any pool")


def next_port(used_ports: Iterable[int], rng: Optional[random.Random] = None) -> int:
    """First free port in PORT_RANGE, ascending; degraded range on exhaustion."""
    used = set(used_ports)
    for port in range(PORT_RANGE[0], PORT_RANGE[1] + 1):
        if port not in used:
            return port

    rng = rng or random
    candidate = rng.randint(*FALLBACK_PORT_RANGE)
    if candidate not in used:
        logger.warning(f"Port range exhausted, degraded allocation: {candidate}")
        return candidate

    for port in range(FALLBACK_PORT_RANGE[0], FALLBACK_PORT_RANGE[1] + 1):
        if port not in used:
            logger.warning(f"Port range exhausted, degraded allocation: {port}")
            return port

    raise AllocationExhaustedError("No port left in any range")


class AddressAllocator:
    """Allocator bound to a topology store's current in-use sets"""

    def __init__(self, store, rng: Optional[random.Random] = None):
        self.store = store
        self.rng = rng or random.Random()

    def next_address(self) -> str:
        return next_address(self.store.used_ips(), self.rng)

    def next_port(self) -> int:
        return next_port(self.store.used_ports(), self.rng)
