# File location: nfsim/orchestrator.py
# Orchestration Simulator
# Compose-style bring-up / tear-down / start / stop against the live topology

import asyncio
import json
import logging
import random
from contextlib import asynccontextmanager
from datetime import datetime
from typing import Dict, List, Optional

from opentelemetry import trace

from .clock import SimulationClock
from .config.addressing import SUBNET_POOLS
from .config.services import (
    COMPOSE_NETWORK_NAME,
    CONTAINER_PORTS,
    EXPECTED_CORE_TYPES,
    ComposeService,
    image_for,
    resolve_service,
    service_name_for,
)
from .errors import ConflictError, ExternalResourceError, NotFoundError, StateError
from .events import EventLog, LineCallback, Transcript
from .fixtures import TopologyFixtureLoader
from .lifecycle import LifecycleController
from .models import (
    CommandResult,
    LineKind,
    NetworkFunction,
    NFStatus,
    NFType,
    TopologyFixture,
)
from .registry import NFManager
from .store import TopologyStore
from .wiring import AutoWiringPolicy

logger = logging.getLogger(__name__)
tracer = trace.get_tracer(__name__)

# Simulated per-entity delays (simulated seconds)
NETWORK_CREATE_DELAY = 0.2
IMPORT_DELAY = (0.3, 0.8)
START_DELAY = (0.8, 2.3)
TEARDOWN_ALL_DELAY = (0.8, 2.3)
TEARDOWN_ONE_DELAY = (0.3, 0.8)

# Built-in docker networks always listed by `network ls`
STATIC_NETWORKS = [
    ("df33e4a6502d", "bridge", "bridge", "172.17.0.0/16", "172.17.0.1"),
    ("902c1fcc4369", "host", "host", None, None),
    ("0c712814bbb0", "none", "null", None, None),
]


class OrchestrationSimulator:
    """
    Interprets compose-style commands against the topology store.

    Mutating commands run one at a time: a command issued while another
    is still in flight is rejected with StateError. Inside a command,
    each entity's simulated delay completes before the next entity is
    touched.
    """

    def __init__(
        self,
        store: TopologyStore,
        registry: NFManager,
        lifecycle: LifecycleController,
        wiring: AutoWiringPolicy,
        fixture_loader: TopologyFixtureLoader,
        clock: SimulationClock,
        event_log: EventLog,
        rng: Optional[random.Random] = None,
    ):
        self.store = store
        self.registry = registry
        self.lifecycle = lifecycle
        self.wiring = wiring
        self.fixture_loader = fixture_loader
        self.clock = clock
        self.event_log = event_log
        self.rng = rng or random.Random()

        self.network_exists = False
        self.network_created_at: Optional[datetime] = None
        self.network_id = self._hex_id(12)

        self._command_lock = asyncio.Lock()

    # =========================================================================
    # Helpers
    # =========================================================================

    @property
    def busy(self) -> bool:
        return self._command_lock.locked()

    @asynccontextmanager
    async def _exclusive(self, command: str, out: Optional[Transcript], on_line: Optional[LineCallback]):
        if self._command_lock.locked():
            raise StateError("Another orchestration command is in progress")
        async with self._command_lock:
            with tracer.start_as_current_span(f"orchestrator.{command}") as span:
                span.set_attribute("nfsim.command", command)
                yield out or Transcript(command, on_line)

    def _delay(self, bounds) -> float:
        return round(self.rng.uniform(*bounds), 1)

    def _hex_id(self, length: int) -> str:
        return "".join(self.rng.choice("0123456789abcdef") for _ in range(length))

    def _resolve(self, service_name: str) -> ComposeService:
        service = resolve_service(service_name or "")
        if service is None:
            raise NotFoundError(f"No such service: {service_name}")
        return service

    async def _load_fixture(self) -> Optional[TopologyFixture]:
        try:
            return await self.fixture_loader.load_filtered()
        except ExternalResourceError as e:
            logger.warning(f"Topology fixture unavailable: {e.message}")
            return None

    async def _create_network(self, out: Transcript):
        out.success(f" ✔ Network {COMPOSE_NETWORK_NAME} Created{' ' * 20}{NETWORK_CREATE_DELAY}s")
        self.network_exists = True
        self.network_created_at = self.clock.now()
        await self.clock.sleep(NETWORK_CREATE_DELAY)

    async def _start_entity(self, nf_id: str, bounds, out: Transcript) -> Optional[NetworkFunction]:
        """Report the container start, await its delay, then arm stabilization"""
        nf = self.store.nfs.get(nf_id)
        if nf is None:
            return None
        delay = self._delay(bounds)
        out.success(f" ✔ Container {service_name_for(nf.type):<16} Started{' ' * 20}{delay}s")
        await self.clock.sleep(delay)

        nf = self.store.nfs.get(nf_id)
        if nf is None:
            logger.info(f"{nf_id} removed during start-up, not arming stabilization")
            return None
        self.event_log.info(nf.id, f"{nf.name} starting via docker compose", {
            "ipAddress": nf.config.ipAddress,
            "port": nf.config.port,
            "protocol": nf.config.httpProtocol.value,
            "status": nf.status.value,
            "source": "docker-compose",
        })
        self.lifecycle.schedule_stabilization(nf.id)
        return nf

    # =========================================================================
    # bring-up-all
    # =========================================================================

    async def bring_up_all(self, out: Optional[Transcript] = None,
                           on_line: Optional[LineCallback] = None) -> CommandResult:
        """Import the topology fixture, or create only the missing core NFs"""
        async with self._exclusive("bring_up_all", out, on_line) as out:
            if self.store.is_empty():
                await self._import_fixture(out)
                return out.result

            missing = [t for t in EXPECTED_CORE_TYPES if self.store.find_nf_by_type(t) is None]
            if not missing:
                self.network_exists = True
                if self.network_created_at is None:
                    self.network_created_at = self.clock.now()
                out.success("✅ All Network Functions are already running!")
                out.blank()
                out.info("Running services:")
                for nf in self.store.nfs.get_all():
                    health = "(healthy)" if nf.status == NFStatus.STABLE else f"({nf.status.value})"
                    out.success(f"  - {service_name_for(nf.type):<16} {health}")
                out.result.data["created"] = 0
                return out.result

            await self._create_missing(missing, out)
            return out.result

    async def _import_fixture(self, out: Transcript):
        try:
            fixture = await self.fixture_loader.load_filtered()
        except ExternalResourceError as e:
            logger.warning(f"Topology fixture load failed, creating defaults: {e.message}")
            self.event_log.warning(None, "Topology fixture unavailable, using default NFs", {"error": e.message})
            out.line(f"❌ Failed to load topology: {e.message}", LineKind.ERROR)
            out.warning("Falling back to default NF creation...")
            out.blank()
            await self._create_missing(list(EXPECTED_CORE_TYPES), out, fixture=None, load_fixture=False)
            return

        imported = self._import_entities(fixture)

        total = len(imported) + 1
        out.info(f"[+] Running {total}/{total}")
        await self._create_network(out)

        started = 0
        for nf_id in imported:
            if await self._start_entity(nf_id, IMPORT_DELAY, out) is not None:
                started += 1

        out.blank()
        out.success(f"✅ Started {started} Network Function(s)")
        out.result.data["created"] = len(imported)
        logger.info(f"Imported topology fixture: {len(imported)} NFs")

    def _import_entities(self, fixture: TopologyFixture) -> List[str]:
        """Copy fixture NFs (in starting), buses and links into the store"""
        id_map: Dict[str, str] = {}
        imported: List[str] = []

        for fixture_nf in fixture.nfs:
            cfg = fixture_nf.config
            ip, port = self.registry.resolve_address(
                fixture_nf.type,
                cfg.ipAddress if cfg is not None else None,
                cfg.port if cfg is not None else None,
            )
            nf_id = fixture_nf.id if fixture_nf.id and not self.store.nfs.contains(fixture_nf.id) else None
            nf = self.registry.create_network_function(
                fixture_nf.type,
                ip,
                port,
                name=fixture_nf.name,
                position=fixture_nf.resolved_position(),
                status=NFStatus.STARTING,
                nf_id=nf_id,
                color=fixture_nf.color,
                icon=fixture_nf.icon,
            )
            if fixture_nf.id:
                id_map[fixture_nf.id] = nf.id
            imported.append(nf.id)
            self.event_log.info(nf.id, f"{nf.name} imported from topology fixture")

        for fixture_bus in fixture.buses:
            if self.store.buses.contains(fixture_bus.id):
                continue
            bus = fixture_bus.model_copy(deep=True)
            bus.connections = [id_map[n] for n in fixture_bus.connections if n in id_map]
            self.store.buses.add(bus)

        for conn in fixture.connections:
            source, target = id_map.get(conn.sourceId), id_map.get(conn.targetId)
            if source is None or target is None:
                continue
            self.wiring.connect(source, target, conn.interfaceName, is_manual=conn.isManual)

        for bus_conn in fixture.busConnections:
            nf_id = id_map.get(bus_conn.nfId)
            bus = self.store.buses.get(bus_conn.busId)
            nf = self.store.nfs.get(nf_id) if nf_id else None
            if nf is None or bus is None:
                continue
            self.wiring.connect_nf_to_bus(nf, bus, bus_conn.interfaceName, bus_conn.id)

        return imported

    async def _create_missing(self, nf_types: List[NFType], out: Transcript,
                              fixture: Optional[TopologyFixture] = None, load_fixture: bool = True):
        total = len(nf_types) + (0 if self.network_exists else 1)
        out.info(f"[+] Running {total}/{total}")
        if not self.network_exists:
            await self._create_network(out)

        if load_fixture:
            fixture = await self._load_fixture()

        created = 0
        for nf_type in nf_types:
            template = fixture.find_nf_by_type(nf_type) if fixture is not None else None
            ip, port = self.registry.resolve_address(nf_type)

            if template is not None:
                nf_id = template.id if template.id and not self.store.nfs.contains(template.id) else None
                nf = self.registry.create_network_function(
                    nf_type, ip, port,
                    name=template.name,
                    position=template.resolved_position(),
                    nf_id=nf_id,
                    color=template.color,
                    icon=template.icon,
                )
            else:
                nf = self.registry.create_network_function(nf_type, ip, port)

            if fixture is not None:
                self.wiring.ensure_nf_connected_to_bus(nf, fixture)

            await self._start_entity(nf.id, START_DELAY, out)
            created += 1

        out.blank()
        out.success(f"✅ Started {created} new Network Function(s)")
        out.result.data["created"] = created

    # =========================================================================
    # bring-up <service>
    # =========================================================================

    async def bring_up_one(self, service_name: str, out: Optional[Transcript] = None,
                           on_line: Optional[LineCallback] = None) -> CommandResult:
        """Create exactly one NF for a compose service"""
        async with self._exclusive("bring_up_one", out, on_line) as out:
            trace.get_current_span().set_attribute("nfsim.service", service_name)
            service = self._resolve(service_name)
            nf_type = service.nf_type

            if self.store.find_nf_by_type(nf_type) is not None:
                raise ConflictError(f"{nf_type.value} already exists!")

            if self.network_exists:
                out.info("[+] Running 1/1")
            else:
                out.info("[+] Running 2/2")
                await self._create_network(out)

            fixture = await self._load_fixture()
            template = fixture.find_nf_by_type(nf_type) if fixture is not None else None

            if template is not None:
                cfg = template.config
                ip, port = self.registry.resolve_address(
                    nf_type,
                    cfg.ipAddress if cfg is not None else None,
                    cfg.port if cfg is not None else None,
                )
                nf_id = template.id if template.id and not self.store.nfs.contains(template.id) else None
                nf = self.registry.create_network_function(
                    nf_type, ip, port,
                    name=template.name,
                    position=template.resolved_position(),
                    nf_id=nf_id,
                    color=template.color,
                    icon=template.icon,
                )
                self.wiring.rewire_buses_from_fixture(fixture)
            else:
                ip, port = self.registry.resolve_address(nf_type)
                nf = self.registry.create_network_function(nf_type, ip, port)

            await self._start_entity(nf.id, START_DELAY, out)

            out.blank()
            out.success(
                f"✅ {nf_type.value} deployed successfully on network {COMPOSE_NETWORK_NAME} "
                f"({nf.config.ipAddress})"
            )
            out.result.data["nfId"] = nf.id
            return out.result

    # =========================================================================
    # tear-down
    # =========================================================================

    async def tear_down_all(self, out: Optional[Transcript] = None,
                            on_line: Optional[LineCallback] = None) -> CommandResult:
        """Remove every NF, bus and bus link and the compose network"""
        async with self._exclusive("tear_down_all", out, on_line) as out:
            nfs = self.store.nfs.get_all()
            if not nfs:
                out.info("No services to stop.")
                out.result.data["removed"] = 0
                return out.result

            out.info(f"[+] Running {len(nfs) + 1}/{len(nfs) + 1}")
            cancelled = self.lifecycle.cancel_all()
            if cancelled:
                logger.info(f"Tear-down disarmed {cancelled} pending stabilizations")

            removed = 0
            while nfs:
                for nf in nfs:
                    delay = self._delay(TEARDOWN_ALL_DELAY)
                    out.success(f" ✔ Container {service_name_for(nf.type):<16} Removed{' ' * 20}{delay}s")
                    await self.clock.sleep(delay)
                    if self.registry.delete_network_function(nf.id):
                        removed += 1
                # Peers wired in while the command was running
                nfs = self.store.nfs.get_all()

            self.wiring.remove_all_buses()
            for conn in self.store.connections.get_all():
                self.store.connections.remove(conn.id)

            out.success(f" ✔ Network {COMPOSE_NETWORK_NAME} Removed{' ' * 20}{NETWORK_CREATE_DELAY}s")
            self.network_exists = False
            self.network_created_at = None
            out.blank()
            out.result.data["removed"] = removed
            logger.info(f"Tear-down complete: {removed} NFs removed")
            return out.result

    async def tear_down_one(self, service_name: str, out: Optional[Transcript] = None,
                            on_line: Optional[LineCallback] = None) -> CommandResult:
        async with self._exclusive("tear_down_one", out, on_line) as out:
            service = self._resolve(service_name)
            nf = self.store.find_nf_by_type(service.nf_type)
            if nf is None:
                raise NotFoundError(f"No such service: {service_name}")

            out.info("[+] Running 1/1")
            delay = self._delay(TEARDOWN_ONE_DELAY)
            out.success(f" ✔ Container {service.value:<16} Removed{' ' * 20}{delay}s")
            await self.clock.sleep(delay)
            self.registry.delete_network_function(nf.id)

            out.blank()
            out.success(f"✅ Stopped and removed {service.value}")
            out.result.data["removed"] = 1
            return out.result

    # =========================================================================
    # start / stop
    # =========================================================================

    def _find_service_nf(self, service_name: str) -> NetworkFunction:
        service = resolve_service(service_name or "")
        nf = self.store.find_nf_by_type(service.nf_type) if service is not None else None
        if nf is None:
            raise NotFoundError(f"No such service: {service_name}")
        return nf

    async def start_one(self, service_name: str, out: Optional[Transcript] = None,
                        on_line: Optional[LineCallback] = None) -> CommandResult:
        async with self._exclusive("start_one", out, on_line) as out:
            nf = self._find_service_nf(service_name)
            out.info(f"Starting {nf.name}...")
            nf = self.lifecycle.start(nf.id)
            out.success(f"✅ {nf.name} started (status: {nf.status.value})")
            return out.result

    async def stop_one(self, service_name: str, out: Optional[Transcript] = None,
                       on_line: Optional[LineCallback] = None) -> CommandResult:
        async with self._exclusive("stop_one", out, on_line) as out:
            nf = self._find_service_nf(service_name)
            out.info(f"Stopping {nf.name}...")
            self.lifecycle.stop(nf.id)
            out.success(f"✅ {nf.name} stopped")
            return out.result

    # =========================================================================
    # Read-only reports
    # =========================================================================

    def status(self, out: Optional[Transcript] = None) -> CommandResult:
        out = out or Transcript("status")
        nfs = self.store.nfs.get_all()
        out.info("System Status Check:")
        out.blank()
        out.success(f"   Found {len(nfs)} Network Function(s)")
        if nfs:
            out.blank()
            out.info("Network Functions:")
            for nf in nfs:
                kind = {
                    NFStatus.STABLE: LineKind.SUCCESS,
                    NFStatus.STARTING: LineKind.WARNING,
                }.get(nf.status, LineKind.INFO)
                out.line(f"  - {nf.name} ({nf.type.value}): {nf.status.value}", kind)

        counts = {s.value: sum(1 for nf in nfs if nf.status == s) for s in NFStatus}
        out.blank()
        out.info(", ".join(f"{count} {state}" for state, count in counts.items()))
        out.result.data["counts"] = counts
        return out.result

    def _created_ago(self, created_at: datetime) -> str:
        seconds = max(0, int((self.clock.now() - created_at).total_seconds()))
        if seconds < 60:
            return f"{seconds} seconds ago"
        if seconds < 3600:
            return f"{seconds // 60} minutes ago"
        return f"{seconds // 3600} hours ago"

    def ps(self, out: Optional[Transcript] = None) -> CommandResult:
        """Containers view of the live NFs"""
        out = out or Transcript("ps")
        nfs = self.store.nfs.get_all()
        if not nfs:
            out.info("No containers running.")
            return out.result

        out.info(
            f"{'CONTAINER ID':<14} {'IMAGE':<45} {'COMMAND':<18} {'CREATED':<16} "
            f"{'STATUS':<15} {'PORTS':<40} NAMES"
        )
        for nf in nfs:
            service = service_name_for(nf.type)
            status = {
                NFStatus.STABLE: "Up (healthy)",
                NFStatus.STARTING: "Up (starting)",
                NFStatus.STOPPED: "Exited",
            }[nf.status]
            ports = CONTAINER_PORTS.get(nf.type, f"{nf.config.port}/tcp")
            command = f'"{service}"'
            line = (
                f"{self._hex_id(12):<14} {image_for(nf.type):<45} {command:<18} "
                f"{self._created_ago(nf.createdAt):<16} {status:<15} {ports:<40} {service}"
            )
            kind = LineKind.SUCCESS if nf.status == NFStatus.STABLE else LineKind.WARNING
            out.line(line, kind)
        return out.result

    def network_ls(self, out: Optional[Transcript] = None) -> CommandResult:
        out = out or Transcript("network ls")
        out.info(f"{'NETWORK ID':<14} {'NAME':<13} {'DRIVER':<9} SCOPE")
        for net_id, name, driver, _, _ in STATIC_NETWORKS:
            out.info(f"{net_id:<14} {name:<13} {driver:<9} local")
        if self.network_exists or not self.store.is_empty():
            out.success(f"{self.network_id:<14} {COMPOSE_NETWORK_NAME:<13} {'bridge':<9} local")
        return out.result

    def network_inspect(self, name: str, out: Optional[Transcript] = None) -> CommandResult:
        out = out or Transcript(f"network inspect {name}")
        document = self._network_document(name)
        if document is None:
            raise NotFoundError(f"No such network: {name}")
        for text in json.dumps([document], indent=2).splitlines():
            out.info(text)
        out.result.data["network"] = document
        return out.result

    def _network_document(self, name: str) -> Optional[Dict]:
        for net_id, net_name, driver, subnet, gateway in STATIC_NETWORKS:
            if name == net_name:
                return {
                    "Name": net_name,
                    "Id": net_id,
                    "Scope": "local",
                    "Driver": driver,
                    "IPAM": {"Driver": "default", "Config": [{"Subnet": subnet, "Gateway": gateway}] if subnet else None},
                    "Containers": {},
                }

        if name != COMPOSE_NETWORK_NAME or not self.network_exists:
            return None

        containers = {}
        for nf in self.store.nfs.get_all():
            containers[self._hex_id(64)] = {
                "Name": service_name_for(nf.type),
                "IPv4Address": f"{nf.config.ipAddress}/24",
                "IPv6Address": "",
            }
        created = self.network_created_at or self.clock.now()
        return {
            "Name": COMPOSE_NETWORK_NAME,
            "Id": self.network_id,
            "Created": created.isoformat(),
            "Scope": "local",
            "Driver": "bridge",
            "IPAM": {
                "Driver": "default",
                "Config": [{"Subnet": f"{SUBNET_POOLS[0]}.0/24", "Gateway": f"{SUBNET_POOLS[0]}.1"}],
            },
            "Containers": containers,
            "Options": {"com.docker.network.bridge.name": COMPOSE_NETWORK_NAME},
        }
