# File location: nfsim/simulation.py
# Simulation Container
# Builds and wires every simulator component from one SimulationSettings

import logging
import random
from typing import Optional

from .allocator import AddressAllocator
from .clock import SimulationClock
from .config.settings import SimulationSettings
from .events import EventLog
from .fixtures import TopologyFixtureLoader
from .lifecycle import LifecycleController
from .orchestrator import OrchestrationSimulator
from .reachability import ReachabilitySimulator
from .registry import NFManager
from .store import TopologyStore
from .terminal import TerminalSession
from .wiring import AutoWiringPolicy

logger = logging.getLogger(__name__)


class Simulation:
    """
    One complete simulated 5G core environment.

    Components share a single store, clock, event log and random source,
    so a seeded Simulation replays the same delays and ping outcomes.
    """

    def __init__(self, settings: Optional[SimulationSettings] = None):
        self.settings = settings or SimulationSettings()
        s = self.settings

        self.rng = random.Random(s.random_seed)
        self.clock = SimulationClock(s.time_scale)
        self.event_log = EventLog(self.clock, limit=s.event_log_limit)
        self.store = TopologyStore()
        self.allocator = AddressAllocator(self.store, self.rng)
        self.fixture_loader = TopologyFixtureLoader(s.fixture_source, timeout=s.fixture_timeout)
        self.lifecycle = LifecycleController(
            self.store, self.clock, self.event_log, stabilization_delay=s.stabilization_delay
        )
        self.registry = NFManager(
            self.store,
            self.allocator,
            self.clock,
            self.event_log,
            self.lifecycle,
            http_protocol=s.http_protocol,
        )
        self.wiring = AutoWiringPolicy(
            self.store, self.registry, self.clock, self.event_log, self.fixture_loader
        )
        self.registry.wiring = self.wiring
        self.lifecycle.add_stable_listener(self.wiring.on_nf_stable)

        self.orchestrator = OrchestrationSimulator(
            self.store,
            self.registry,
            self.lifecycle,
            self.wiring,
            self.fixture_loader,
            self.clock,
            self.event_log,
            rng=self.rng,
        )
        self.reachability = ReachabilitySimulator(
            self.store,
            self.clock,
            self.event_log,
            rng=self.rng,
            packet_count=s.ping_count,
            packet_interval=s.ping_interval,
            history_limit=s.ping_history_limit,
        )
        logger.info(
            f"Simulation ready (stabilization {s.stabilization_delay}s, time scale {s.time_scale}, "
            f"fixture {s.fixture_source})"
        )

    def terminal(self, nf_id: Optional[str] = None) -> TerminalSession:
        """New terminal session, optionally bound to one NF"""
        return TerminalSession(self, nf_id=nf_id)

    async def settle(self):
        """Wait for every pending stabilization (and the wiring it triggers)"""
        await self.lifecycle.wait_idle()

    async def shutdown(self):
        await self.lifecycle.shutdown()
