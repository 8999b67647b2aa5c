# File location: nfsim/registry.py
# NF Manager
# Creation, validation, configuration edits and deletion of Network Functions

from typing import Dict, List, Optional, Tuple
import logging
import re
import uuid

from .allocator import AddressAllocator
from .clock import SimulationClock
from .config.addressing import get_default_config, subnet_of
from .errors import ConflictError, NotFoundError, ValidationError
from .events import EventLog
from .lifecycle import LifecycleController
from .models import (
    NetworkFunction,
    NFConfig,
    NFStatus,
    NFType,
    HTTPProtocol,
    Position,
)
from .store import TopologyStore

logger = logging.getLogger(__name__)

IPV4_PATTERN = re.compile(r"^(\d{1,3})\.(\d{1,3})\.(\d{1,3})\.(\d{1,3})$")

# Grid layout for new NFs
NFS_PER_ROW = 6
GRID_START = (120.0, 120.0)
GRID_SPACING = (100.0, 140.0)


def is_valid_ip(ip: str) -> bool:
    """Dotted-quad IPv4 with every octet in 0-255"""
    if not isinstance(ip, str):
        return False
    match = IPV4_PATTERN.match(ip.strip())
    if not match:
        return False
    return all(0 <= int(octet) <= 255 for octet in match.groups())


def validate_port(port) -> int:
    try:
        value = int(port)
    except (TypeError, ValueError):
        raise ValidationError(f"Invalid port: {port!r}")
    if isinstance(port, bool) or not 1 <= value <= 65535:
        raise ValidationError(f"Port must be between 1 and 65535, got {port}")
    return value


class NFManager:
    """
    Owns the rules every NF write goes through: address and port
    uniqueness, naming, the global HTTP protocol and grid placement.
    """

    def __init__(
        self,
        store: TopologyStore,
        allocator: AddressAllocator,
        clock: SimulationClock,
        event_log: EventLog,
        lifecycle: LifecycleController,
        http_protocol: HTTPProtocol = HTTPProtocol.HTTP2,
        wiring=None,
    ):
        self.store = store
        self.allocator = allocator
        self.clock = clock
        self.event_log = event_log
        self.lifecycle = lifecycle
        self.http_protocol = HTTPProtocol(http_protocol)
        # AutoWiringPolicy, attached once it exists
        self.wiring = wiring

        self.nf_counters: Dict[NFType, int] = {}

    # =========================================================================
    # Availability
    # =========================================================================

    def is_ip_available(self, ip: str, exclude_nf_id: Optional[str] = None) -> bool:
        return ip not in self.store.used_ips(exclude_nf_id)

    def is_port_available(self, port: int, exclude_nf_id: Optional[str] = None) -> bool:
        return port not in self.store.used_ports(exclude_nf_id)

    def _owner_of_ip(self, ip: str, exclude_nf_id: Optional[str]) -> Optional[NetworkFunction]:
        for nf in self.store.nfs.get_all():
            if nf.id != exclude_nf_id and nf.config.ipAddress == ip:
                return nf
        return None

    def _owner_of_port(self, port: int, exclude_nf_id: Optional[str]) -> Optional[NetworkFunction]:
        for nf in self.store.nfs.get_all():
            if nf.id != exclude_nf_id and nf.config.port == port:
                return nf
        return None

    def _validate_address(self, ip: str, port, exclude_nf_id: Optional[str] = None) -> int:
        if not ip:
            raise ValidationError("IP address is required")
        if not is_valid_ip(ip):
            raise ValidationError(f"Invalid IP address format: {ip}")
        port = validate_port(port)

        owner = self._owner_of_ip(ip, exclude_nf_id)
        if owner is not None:
            raise ConflictError(f"IP address {ip} is already in use by {owner.name}")
        owner = self._owner_of_port(port, exclude_nf_id)
        if owner is not None:
            raise ConflictError(f"Port {port} is already in use by {owner.name}")
        return port

    def resolve_address(
        self,
        nf_type: NFType,
        ip: Optional[str] = None,
        port: Optional[int] = None,
    ) -> Tuple[str, int]:
        """
        Preferred (ip, port) for a new NF of this type.

        Starts from the given values, falling back to the type's default
        configuration; anything missing or already taken is replaced by the
        allocator and the substitution is logged.
        """
        default_ip, default_port = get_default_config(nf_type)
        wanted_ip = ip or default_ip
        wanted_port = port if port is not None else default_port

        if not is_valid_ip(wanted_ip) or not self.is_ip_available(wanted_ip):
            substitute = self.allocator.next_address()
            logger.info(f"{NFType(nf_type).value}: address {wanted_ip} unavailable, using {substitute}")
            wanted_ip = substitute
        if not 1 <= wanted_port <= 65535 or not self.is_port_available(wanted_port):
            substitute = self.allocator.next_port()
            logger.info(f"{NFType(nf_type).value}: port {wanted_port} unavailable, using {substitute}")
            wanted_port = substitute
        return wanted_ip, wanted_port

    def calculate_position(self, index: Optional[int] = None) -> Position:
        """Grid slot for the index-th NF (defaults to the next free slot)"""
        if index is None:
            index = len(self.store.nfs)
        row, col = divmod(index, NFS_PER_ROW)
        return Position(
            x=GRID_START[0] + col * GRID_SPACING[0],
            y=GRID_START[1] + row * GRID_SPACING[1],
        )

    # =========================================================================
    # Create / Update / Delete
    # =========================================================================

    def create_network_function(
        self,
        nf_type: NFType,
        ip: str,
        port: int,
        name: Optional[str] = None,
        position: Optional[Position] = None,
        status: NFStatus = NFStatus.STARTING,
        nf_id: Optional[str] = None,
        color: Optional[str] = None,
        icon: Optional[str] = None,
    ) -> NetworkFunction:
        """Validate and insert one NF. Does not arm any timer."""
        nf_type = NFType(nf_type)
        port = self._validate_address(ip, port)
        if nf_id is not None and self.store.nfs.contains(nf_id):
            raise ConflictError(f"Network function {nf_id} already exists")

        count = self.nf_counters.get(nf_type, 0) + 1
        self.nf_counters[nf_type] = count

        now = self.clock.now()
        nf = NetworkFunction(
            id=nf_id or str(uuid.uuid4()),
            type=nf_type,
            name=name or f"{nf_type.value}-{count}",
            position=position or self.calculate_position(),
            config=NFConfig(ipAddress=ip, port=port, httpProtocol=self.http_protocol),
            status=status,
            statusTimestamp=now,
            createdAt=now,
            color=color,
            icon=icon,
        )
        self.store.nfs.add(nf)
        logger.info(f"Created {nf.name} ({nf.type.value}) at {ip}:{port} [{status.value}]")
        return nf

    def start_new_network_function(
        self,
        nf_type: NFType,
        ip: Optional[str] = None,
        port: Optional[int] = None,
        name: Optional[str] = None,
        position: Optional[Position] = None,
    ) -> NetworkFunction:
        """New-NF workflow: allocate, create in starting, arm stabilization, auto-connect to a bus"""
        ip = ip or self.allocator.next_address()
        port = port if port is not None else self.allocator.next_port()

        nf = self.create_network_function(nf_type, ip, port, name=name, position=position)
        self.lifecycle.schedule_stabilization(nf.id)

        self.event_log.success(nf.id, f"{nf.name} created successfully", {
            "ipAddress": nf.config.ipAddress,
            "port": nf.config.port,
            "subnet": f"{subnet_of(nf.config.ipAddress)}.0/24",
            "protocol": nf.config.httpProtocol.value,
            "status": nf.status.value,
            "note": f"Service will be stable in {self.lifecycle.stabilization_delay:g} seconds",
        })

        if self.wiring is not None:
            self.wiring.auto_connect_to_bus(nf)

        return self.store.nfs.get(nf.id) or nf

    def update_network_function_config(
        self,
        nf_id: str,
        ip: Optional[str] = None,
        port: Optional[int] = None,
        http_protocol: Optional[HTTPProtocol] = None,
    ) -> NetworkFunction:
        nf = self.get_network_function(nf_id)
        new_ip = ip if ip is not None else nf.config.ipAddress
        new_port = self._validate_address(
            new_ip, port if port is not None else nf.config.port, exclude_nf_id=nf_id
        )

        changes: Dict[str, str] = {}
        if new_ip != nf.config.ipAddress:
            changes["ipAddress"] = f"{nf.config.ipAddress} -> {new_ip}"
        if new_port != nf.config.port:
            changes["port"] = f"{nf.config.port} -> {new_port}"
        if http_protocol is not None and HTTPProtocol(http_protocol) != nf.config.httpProtocol:
            changes["httpProtocol"] = f"{nf.config.httpProtocol.value} -> {HTTPProtocol(http_protocol).value}"
            nf.config.httpProtocol = HTTPProtocol(http_protocol)

        if not changes:
            return nf

        nf.config.ipAddress = new_ip
        nf.config.port = new_port
        self.store.nfs.update(nf)

        logger.info(f"Updated {nf.name}: {changes}")
        self.event_log.info(nf.id, "Configuration updated", {"changes": changes})
        return nf

    def delete_network_function(self, nf_id: str) -> bool:
        """Remove an NF and every link touching it; False if it does not exist"""
        nf = self.store.nfs.get(nf_id)
        if nf is None:
            return False

        self.lifecycle.cancel(nf_id)

        for conn in self.store.connections_for(nf_id):
            self.store.connections.remove(conn.id)

        for bus_conn in self.store.bus_connections_for(nf_id):
            self.store.bus_connections.remove(bus_conn.id)

        for bus in self.store.buses.get_all():
            if nf_id in bus.connections:
                bus.connections = [c for c in bus.connections if c != nf_id]
                self.store.buses.update(bus)

        self.store.nfs.remove(nf_id)
        logger.info(f"Deleted {nf.name} ({nf.type.value})")
        self.event_log.info(nf_id, f"{nf.name} removed")
        return True

    def update_global_protocol(self, protocol: HTTPProtocol) -> int:
        """Apply one HTTP protocol to every NF and to future creations"""
        protocol = HTTPProtocol(protocol)
        self.http_protocol = protocol

        updated = 0
        for nf in self.store.nfs.get_all():
            if nf.config.httpProtocol != protocol:
                nf.config.httpProtocol = protocol
                self.store.nfs.update(nf)
                updated += 1

        logger.info(f"Global HTTP protocol set to {protocol.value} ({updated} NFs updated)")
        self.event_log.info(None, f"Global HTTP protocol set to {protocol.value}", {"updated": updated})
        return updated

    # =========================================================================
    # Queries
    # =========================================================================

    def get_network_function(self, nf_id: str) -> NetworkFunction:
        nf = self.store.nfs.get(nf_id)
        if nf is None:
            raise NotFoundError(f"Network function {nf_id} not found")
        return nf

    def list_network_functions(self) -> List[NetworkFunction]:
        return self.store.nfs.get_all()
