# File location: nfsim/models.py
# Data models for the NF orchestration and reachability simulator
# Field names follow the topology fixture JSON (camelCase) so fixtures load without mapping

from pydantic import BaseModel, Field
from typing import Dict, List, Optional, Any
from enum import Enum
from datetime import datetime


# =============================================================================
# Enums
# =============================================================================

class NFType(str, Enum):
    """Network Function types known to the simulator"""
    NRF = "NRF"
    AMF = "AMF"
    SMF = "SMF"
    UPF = "UPF"
    AUSF = "AUSF"
    UDM = "UDM"
    UDR = "UDR"
    PCF = "PCF"
    NSSF = "NSSF"
    GNB = "gNB"
    UE = "UE"
    MYSQL = "MySQL"
    EXT_DN = "ext-dn"


class NFStatus(str, Enum):
    """NF lifecycle states"""
    STARTING = "starting"
    STABLE = "stable"
    STOPPED = "stopped"


class HTTPProtocol(str, Enum):
    """Service-based interface protocol, applied to every NF"""
    HTTP1 = "HTTP/1"
    HTTP2 = "HTTP/2"


class LogLevel(str, Enum):
    INFO = "INFO"
    SUCCESS = "SUCCESS"
    WARNING = "WARNING"
    ERROR = "ERROR"


class LineKind(str, Enum):
    """Terminal line styles"""
    COMMAND = "command"
    INFO = "info"
    SUCCESS = "success"
    WARNING = "warning"
    ERROR = "error"
    BLANK = "blank"


# Radio-access types never brought up by compose commands
RADIO_ACCESS_TYPES = frozenset({NFType.GNB, NFType.UE})


# =============================================================================
# Topology Entities
# =============================================================================

class Position(BaseModel):
    """Canvas position (presentation only)"""
    x: float = Field(100.0, description="Horizontal coordinate")
    y: float = Field(100.0, description="Vertical coordinate")


class NFConfig(BaseModel):
    """NF network configuration"""
    ipAddress: str = Field(..., description="IPv4 address")
    port: int = Field(..., ge=1, le=65535, description="Service port")
    httpProtocol: HTTPProtocol = Field(HTTPProtocol.HTTP2, description="SBI protocol")
    capacity: int = Field(1000, description="Nominal capacity")
    load: int = Field(0, description="Current load")


class NetworkFunction(BaseModel):
    """A simulated Network Function instance"""
    id: str = Field(..., description="Unique NF identifier")
    type: NFType = Field(..., description="NF type")
    name: str = Field(..., description="Human-readable label")
    position: Position = Field(default_factory=Position)
    config: NFConfig = Field(..., description="Network configuration")
    status: NFStatus = Field(NFStatus.STARTING, description="Lifecycle status")
    statusTimestamp: datetime = Field(..., description="When status last changed")
    createdAt: datetime = Field(..., description="Creation time")
    color: Optional[str] = Field(None, description="Display color")
    icon: Optional[str] = Field(None, description="Icon path")


class Connection(BaseModel):
    """Directed logical link between two NFs"""
    id: str = Field(..., description="Connection ID")
    sourceId: str = Field(..., description="Source NF ID")
    targetId: str = Field(..., description="Target NF ID")
    interfaceName: Optional[str] = Field(None, description="Reference point / interface (N4, N6, ...)")
    protocol: str = Field("HTTP/2", description="Transport protocol")
    status: str = Field("connected", description="Link status")
    isManual: bool = Field(False, description="Drawn by a user rather than auto-wired")
    createdAt: Optional[datetime] = Field(None, description="Creation time")


class Bus(BaseModel):
    """Shared service bus"""
    id: str = Field(..., description="Bus ID")
    name: str = Field(..., description="Bus name")
    position: Position = Field(default_factory=Position)
    orientation: str = Field("horizontal", description="horizontal | vertical")
    length: float = Field(600.0, description="Rendered length")
    connections: List[str] = Field(default_factory=list, description="NF IDs drawn on the bus")


class BusConnection(BaseModel):
    """Link between one NF and one Bus"""
    id: str = Field(..., description="Bus connection ID")
    nfId: str = Field(..., description="NF ID")
    busId: str = Field(..., description="Bus ID")
    interfaceName: Optional[str] = Field(None, description="Service interface carried on the bus")
    protocol: str = Field("HTTP/2", description="Transport protocol")
    status: str = Field("connected", description="Link status")
    createdAt: Optional[datetime] = Field(None, description="Creation time")


# =============================================================================
# Topology Fixture
# =============================================================================

class FixtureNFConfig(BaseModel):
    ipAddress: Optional[str] = None
    port: Optional[int] = None
    httpProtocol: Optional[HTTPProtocol] = None
    capacity: Optional[int] = None
    load: Optional[int] = None


class FixtureNF(BaseModel):
    """NF definition inside a topology fixture"""
    id: Optional[str] = None
    type: NFType
    name: Optional[str] = None
    position: Optional[Position] = None
    x: Optional[float] = None
    y: Optional[float] = None
    config: Optional[FixtureNFConfig] = None
    color: Optional[str] = None
    icon: Optional[str] = None

    def resolved_position(self) -> Position:
        if self.position is not None:
            return self.position.model_copy()
        return Position(x=self.x if self.x is not None else 100.0,
                        y=self.y if self.y is not None else 100.0)


class TopologyFixture(BaseModel):
    """Declarative topology: NFs, connections, buses and bus links"""
    nfs: List[FixtureNF] = Field(default_factory=list)
    connections: List[Connection] = Field(default_factory=list)
    buses: List[Bus] = Field(default_factory=list)
    busConnections: List[BusConnection] = Field(default_factory=list)

    def find_nf_by_type(self, nf_type: NFType) -> Optional[FixtureNF]:
        for nf in self.nfs:
            if nf.type == nf_type:
                return nf
        return None

    def find_nf_by_id(self, nf_id: str) -> Optional[FixtureNF]:
        for nf in self.nfs:
            if nf.id == nf_id:
                return nf
        return None

    def find_bus(self, bus_id: str) -> Optional[Bus]:
        for bus in self.buses:
            if bus.id == bus_id:
                return bus
        return None


# =============================================================================
# Events and Logs
# =============================================================================

class LifecycleEvent(BaseModel):
    """Emitted when an NF changes lifecycle status"""
    nfId: str
    nfType: NFType
    nfName: str
    previousStatus: NFStatus
    newStatus: NFStatus
    timestamp: datetime


class EventLogEntry(BaseModel):
    """Structured per-NF log record"""
    nfId: Optional[str] = Field(None, description="Related NF, None for system events")
    level: LogLevel = Field(LogLevel.INFO)
    message: str
    details: Dict[str, Any] = Field(default_factory=dict)
    timestamp: datetime


# =============================================================================
# Reachability
# =============================================================================

class PingReply(BaseModel):
    """Outcome of one simulated ICMP echo"""
    sequence: int
    success: bool
    time: Optional[int] = Field(None, description="Round-trip time in ms")
    ttl: Optional[int] = None


class PingStatistics(BaseModel):
    sent: int
    received: int
    lost: int
    lossPercentage: int
    minimum: Optional[int] = None
    maximum: Optional[int] = None
    average: Optional[int] = None


class PingSession(BaseModel):
    """A completed ping run from one NF to one address"""
    sourceId: str
    targetIp: str
    replies: List[PingReply] = Field(default_factory=list)
    statistics: PingStatistics
    crossSubnetBlocked: bool = Field(False, description="Rejected by the subnet restriction, no packets sent")
    timestamp: datetime


# =============================================================================
# Terminal Output
# =============================================================================

class TerminalLine(BaseModel):
    text: str = ""
    kind: LineKind = LineKind.INFO


class CommandResult(BaseModel):
    """Lines produced by one terminal command"""
    command: str
    ok: bool = True
    lines: List[TerminalLine] = Field(default_factory=list)
    data: Dict[str, Any] = Field(default_factory=dict)

    def text(self) -> str:
        return "\n".join(line.text for line in self.lines)


# =============================================================================
# API Requests
# =============================================================================

class NFCreateRequest(BaseModel):
    """Body of POST /nfs"""
    type: NFType = Field(..., description="NF type")
    ipAddress: Optional[str] = Field(None, description="Address, allocated when omitted")
    port: Optional[int] = Field(None, description="Port, allocated when omitted")
    name: Optional[str] = Field(None, description="Label, defaults to {type}-{n}")


class NFConfigUpdate(BaseModel):
    """Body of PATCH /nfs/{nf_id}"""
    ipAddress: Optional[str] = None
    port: Optional[int] = None
    httpProtocol: Optional[HTTPProtocol] = None


class ProtocolUpdate(BaseModel):
    httpProtocol: HTTPProtocol


class PingRequest(BaseModel):
    targetIp: str = Field(..., description="Address to ping")


class TerminalCommand(BaseModel):
    command: str = Field(..., description="Command line to execute")
