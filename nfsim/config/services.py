# File location: nfsim/config/services.py
# Compose Service Names <-> NF Types
# One static table, read in both directions

from enum import Enum
from typing import Dict, List, Optional

from ..models import NFType


class ComposeService(str, Enum):
    """Service names understood by compose-style commands"""
    NRF = "oai-nrf"
    AMF = "oai-amf"
    SMF = "oai-smf"
    UPF = "oai-upf"
    AUSF = "oai-ausf"
    UDM = "oai-udm"
    UDR = "oai-udr"
    PCF = "oai-pcf"
    NSSF = "oai-nssf"
    MYSQL = "mysql"
    GNB = "oai-gnb"
    UE = "oai-ue"
    EXT_DN = "oai-ext-dn"

    @property
    def nf_type(self) -> NFType:
        return NFType[self.name]

    @classmethod
    def for_type(cls, nf_type: NFType) -> "ComposeService":
        return cls[NFType(nf_type).name]


# Extra spellings accepted on the command line
SERVICE_ALIASES: Dict[str, ComposeService] = {
    "ext-dn": ComposeService.EXT_DN,
}

# Container images reported by `ps`
SERVICE_IMAGES: Dict[ComposeService, str] = {
    ComposeService.NRF: "ghcr.io/openairinterface/oai-nrf:develop",
    ComposeService.AMF: "ghcr.io/openairinterface/oai-amf:develop",
    ComposeService.SMF: "ghcr.io/openairinterface/oai-smf:develop",
    ComposeService.UPF: "ghcr.io/openairinterface/oai-upf:develop",
    ComposeService.AUSF: "ghcr.io/openairinterface/oai-ausf:develop",
    ComposeService.UDM: "ghcr.io/openairinterface/oai-udm:develop",
    ComposeService.UDR: "ghcr.io/openairinterface/oai-udr:develop",
    ComposeService.PCF: "ghcr.io/openairinterface/oai-pcf:develop",
    ComposeService.NSSF: "ghcr.io/openairinterface/oai-nssf:develop",
    ComposeService.MYSQL: "ghcr.io/openairinterface/mysql:8.0",
    ComposeService.GNB: "ghcr.io/openairinterface/oai-gnb:develop",
    ComposeService.UE: "ghcr.io/openairinterface/oai-ue:develop",
    ComposeService.EXT_DN: "ghcr.io/openairinterface/trf-gen-cn5g:latest",
}

# Published ports reported by `ps`; other types show their configured port
CONTAINER_PORTS: Dict[NFType, str] = {
    NFType.AMF: "80/tcp, 8080/tcp, 9090/tcp, 38412/sctp",
    NFType.SMF: "80/tcp, 8080/tcp, 8805/udp",
    NFType.UPF: "2152/udp, 8805/udp",
    NFType.AUSF: "80/tcp, 8080/tcp",
    NFType.UDM: "80/tcp, 8080/tcp",
    NFType.UDR: "80/tcp, 8080/tcp",
    NFType.NRF: "80/tcp, 8080/tcp, 9090/tcp",
    NFType.PCF: "80/tcp, 8080/tcp",
    NFType.NSSF: "80/tcp, 8080/tcp",
    NFType.MYSQL: "3306/tcp, 33060/tcp",
    NFType.GNB: "2152/udp, 38412/sctp",
    NFType.UE: "2152/udp",
}

# Core set that bring-up-all must leave running
EXPECTED_CORE_TYPES: List[NFType] = [
    NFType.NRF,
    NFType.AMF,
    NFType.SMF,
    NFType.UPF,
    NFType.AUSF,
    NFType.UDM,
    NFType.UDR,
    NFType.PCF,
    NFType.NSSF,
    NFType.MYSQL,
]

# Types never attached to a bus by the new-NF workflow
BUS_AUTOCONNECT_EXCLUDED = frozenset({NFType.UPF, NFType.GNB, NFType.UE})

# SBI interfaces carried by the service bus; direct links duplicating them are dropped on import
BUS_SBI_INTERFACES = [
    "Nnrf_NFManagement",
    "Nnrf_NFDiscovery",
    "Nnrf",
    "Namf",
    "Nsmf",
    "Nausf",
    "Nudm",
    "Npcf",
    "Nnssf",
    "Nudr",
]

# Service interface each type exposes on a bus
SBI_INTERFACE_NAMES: Dict[NFType, str] = {
    NFType.NRF: "Nnrf",
    NFType.AMF: "Namf",
    NFType.SMF: "Nsmf",
    NFType.AUSF: "Nausf",
    NFType.UDM: "Nudm",
    NFType.UDR: "Nudr",
    NFType.PCF: "Npcf",
    NFType.NSSF: "Nnssf",
}

COMPOSE_NETWORK_NAME = "oaiworkshop"


def resolve_service(service_name: str) -> Optional[ComposeService]:
    """Map a compose service name (or alias) to its ComposeService, None if unknown."""
    name = service_name.strip().lower()
    if name in SERVICE_ALIASES:
        return SERVICE_ALIASES[name]
    try:
        return ComposeService(name)
    except ValueError:
        return None


def service_name_for(nf_type: NFType) -> str:
    return ComposeService.for_type(nf_type).value


def image_for(nf_type: NFType) -> str:
    return SERVICE_IMAGES[ComposeService.for_type(nf_type)]
