# File location: nfsim/wiring.py
# Auto-Wiring Policy
# Bus auto-connect for new NFs, UPF peer wiring on stabilization, fixture-driven bus links

import asyncio
import logging
import uuid
from typing import Optional

from .config.services import BUS_AUTOCONNECT_EXCLUDED, SBI_INTERFACE_NAMES
from .errors import ExternalResourceError
from .fixtures import TopologyFixtureLoader
from .models import (
    Bus,
    BusConnection,
    Connection,
    LifecycleEvent,
    NetworkFunction,
    NFStatus,
    NFType,
    TopologyFixture,
)

logger = logging.getLogger(__name__)

PEER_COLORS = {
    NFType.SMF: "#00bcd4",
    NFType.EXT_DN: "#00bcd4",
}


class AutoWiringPolicy:
    """
    Connects NFs to buses and to their designated peers.

    Every rule checks for the link it would create first, so running a
    rule twice leaves the topology as running it once.
    """

    def __init__(self, store, registry, clock, event_log, fixture_loader: Optional[TopologyFixtureLoader] = None):
        self.store = store
        self.registry = registry
        self.clock = clock
        self.event_log = event_log
        self.fixture_loader = fixture_loader
        self._upf_lock = asyncio.Lock()

    # =========================================================================
    # Links
    # =========================================================================

    def find_connection(self, nf_a: str, nf_b: str, interface_name: Optional[str]) -> Optional[Connection]:
        """Existing link between two NFs (either direction) for one interface"""
        for conn in self.store.connections.get_all():
            same_pair = {conn.sourceId, conn.targetId} == {nf_a, nf_b}
            if same_pair and conn.interfaceName == interface_name:
                return conn
        return None

    def connect(self, source_id: str, target_id: str, interface_name: Optional[str],
                is_manual: bool = False) -> Optional[Connection]:
        """Add a connection unless one already exists; returns the new one or None"""
        if self.find_connection(source_id, target_id, interface_name) is not None:
            return None
        conn = Connection(
            id=str(uuid.uuid4()),
            sourceId=source_id,
            targetId=target_id,
            interfaceName=interface_name,
            protocol=self.registry.http_protocol.value,
            status="connected",
            isManual=is_manual,
            createdAt=self.clock.now(),
        )
        self.store.connections.add(conn)
        logger.info(f"Connected {source_id} -> {target_id} ({interface_name})")
        return conn

    def connect_nf_to_bus(self, nf: NetworkFunction, bus: Bus,
                          interface_name: Optional[str] = None,
                          bus_connection_id: Optional[str] = None) -> Optional[BusConnection]:
        if self.store.find_bus_connection(nf.id, bus.id) is not None:
            return None
        if bus_connection_id and self.store.bus_connections.contains(bus_connection_id):
            bus_connection_id = None

        bus_conn = BusConnection(
            id=bus_connection_id or str(uuid.uuid4()),
            nfId=nf.id,
            busId=bus.id,
            interfaceName=interface_name or SBI_INTERFACE_NAMES.get(nf.type),
            protocol=self.registry.http_protocol.value,
            status="connected",
            createdAt=self.clock.now(),
        )
        self.store.bus_connections.add(bus_conn)

        current = self.store.buses.get(bus.id)
        if current is not None and nf.id not in current.connections:
            current.connections.append(nf.id)
            self.store.buses.update(current)
        return bus_conn

    # =========================================================================
    # Bus Auto-Connect
    # =========================================================================

    def auto_connect_to_bus(self, nf: NetworkFunction) -> Optional[BusConnection]:
        """Attach a newly created NF to the first bus, unless its type is excluded"""
        if nf.type in BUS_AUTOCONNECT_EXCLUDED:
            logger.info(f"Skipping bus auto-connect for {nf.name} ({nf.type.value} is excluded)")
            return None

        buses = self.store.buses.get_all()
        if not buses:
            logger.info("No bus lines available for auto-connect")
            return None

        target = buses[0]
        bus_conn = self.connect_nf_to_bus(nf, target)
        if bus_conn is not None:
            logger.info(f"Auto-connected {nf.name} to {target.name}")
            self.event_log.info(nf.id, f"Auto-connected to {target.name} service bus", {
                "busId": target.id,
                "interfaceName": bus_conn.interfaceName,
                "autoConnect": True,
            })
        return bus_conn

    # =========================================================================
    # Fixture-Driven Bus Wiring
    # =========================================================================

    def ensure_nf_connected_to_bus(self, nf: NetworkFunction, fixture: TopologyFixture) -> int:
        """
        Recreate the fixture's bus links for one live NF.

        A fixture bus link applies when its NF id is this NF's id, or when
        the fixture NF it names has this NF's type. Missing buses are copied
        in from the fixture. Returns the number of links created.
        """
        created = 0
        for fixture_conn in fixture.busConnections:
            if fixture_conn.nfId != nf.id:
                fixture_nf = fixture.find_nf_by_id(fixture_conn.nfId)
                if fixture_nf is None or fixture_nf.type != nf.type:
                    continue

            fixture_bus = fixture.find_bus(fixture_conn.busId)
            if fixture_bus is None:
                continue

            bus = self.store.buses.get(fixture_bus.id)
            if bus is None:
                bus = fixture_bus.model_copy(deep=True)
                bus.connections = []
                self.store.buses.add(bus)
                logger.info(f"Added bus {bus.name} from topology fixture")

            if self.connect_nf_to_bus(nf, bus, fixture_conn.interfaceName, fixture_conn.id):
                created += 1
        return created

    def remove_all_buses(self) -> int:
        removed = self.store.bus_connections.clear()
        self.store.buses.clear()
        return removed

    def rewire_buses_from_fixture(self, fixture: TopologyFixture) -> int:
        """Drop every bus and bus link, then rebuild them for all live NFs"""
        self.remove_all_buses()
        created = 0
        for nf in self.store.nfs.get_all():
            created += self.ensure_nf_connected_to_bus(nf, fixture)
        logger.info(f"Rewired {created} bus connections from topology fixture")
        return created

    # =========================================================================
    # UPF Peer Wiring
    # =========================================================================

    async def on_nf_stable(self, event: LifecycleEvent):
        """Stable listener: UPF stabilization pulls in its SMF and ext-dn peers"""
        if event.nfType == NFType.UPF:
            await self.wire_upf_peers(event.nfId)

    async def wire_upf_peers(self, upf_id: str) -> bool:
        """
        Ensure an SMF and an ext-dn exist, plus UPF->SMF (N4) and ext-dn->UPF (N6).

        Serialised by a lock so concurrent triggers create peers once.
        """
        async with self._upf_lock:
            fixture = await self._load_fixture()

            upf = self.store.nfs.get(upf_id)
            if upf is None or upf.type != NFType.UPF:
                logger.info(f"UPF {upf_id} no longer present, skipping peer wiring")
                return False

            smf = self.store.find_nf_by_type(NFType.SMF) or self._create_peer(NFType.SMF, fixture)
            ext_dn = self.store.find_nf_by_type(NFType.EXT_DN) or self._create_peer(NFType.EXT_DN, fixture)

            n4 = self.connect(upf.id, smf.id, "N4")
            n6 = self.connect(ext_dn.id, upf.id, "N6")
            if n4 or n6:
                self.event_log.info(upf.id, f"{upf.name} wired to {smf.name} (N4) and {ext_dn.name} (N6)")
            return True

    async def _load_fixture(self) -> Optional[TopologyFixture]:
        if self.fixture_loader is None:
            return None
        try:
            return await self.fixture_loader.load_filtered()
        except ExternalResourceError as e:
            logger.warning(f"UPF peer wiring without topology fixture: {e.message}")
            return None

    def _create_peer(self, nf_type: NFType, fixture: Optional[TopologyFixture]) -> NetworkFunction:
        template = fixture.find_nf_by_type(nf_type) if fixture is not None else None
        ip, port = self.registry.resolve_address(nf_type)

        nf_id = None
        if template is not None and template.id and not self.store.nfs.contains(template.id):
            nf_id = template.id

        nf = self.registry.create_network_function(
            nf_type,
            ip,
            port,
            name=template.name if template is not None else None,
            position=template.resolved_position() if template is not None else None,
            status=NFStatus.STABLE,
            nf_id=nf_id,
            color=(template.color if template is not None else None) or PEER_COLORS.get(nf_type),
            icon=template.icon if template is not None else None,
        )
        self.event_log.success(nf.id, f"{nf.name} created for UPF peer wiring", {
            "ipAddress": nf.config.ipAddress,
            "port": nf.config.port,
        })
        return nf
