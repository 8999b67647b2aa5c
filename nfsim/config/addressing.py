# File location: nfsim/config/addressing.py
# Address and Port Pools, Default NF Configurations
# Centralized so the allocator and the orchestrator agree on the same tables

from typing import Dict, Tuple

# /24 prefixes in priority order
SUBNET_POOLS = [
    "192.168.1",
    "192.168.2",
    "192.168.3",
    "192.168.4",
]

# Usable host octets inside each pool (inclusive)
HOST_RANGE = (10, 254)

# Degraded address range used once every pool is exhausted:
# 192.168.<5..254>.<10..253>
FALLBACK_SUBNET_RANGE = (5, 254)
FALLBACK_HOST_RANGE = (10, 253)

# Service ports, scanned ascending
PORT_RANGE = (8080, 9999)

# Degraded port range once PORT_RANGE is exhausted
FALLBACK_PORT_RANGE = (10000, 10999)

SUBNET_MASK = "255.255.255.0"

# Default configuration per NF type value: (ip, port)
DEFAULT_NF_CONFIGS: Dict[str, Tuple[str, int]] = {
    "NRF": ("192.168.1.10", 8080),
    "AMF": ("192.168.1.20", 8081),
    "SMF": ("192.168.1.30", 8082),
    "UPF": ("192.168.1.40", 8083),
    "AUSF": ("192.168.1.50", 8084),
    "UDM": ("192.168.1.60", 8085),
    "UDR": ("192.168.1.70", 8086),
    "PCF": ("192.168.1.80", 8087),
    "NSSF": ("192.168.1.90", 8088),
    "MySQL": ("192.168.1.100", 3306),
    "gNB": ("192.168.1.21", 8089),
    "UE": ("192.168.1.22", 8090),
    "ext-dn": ("192.168.1.15", 80),
}


def get_default_config(nf_type: str) -> Tuple[str, int]:
    """Get the default (ip, port) for an NF type."""
    key = getattr(nf_type, "value", nf_type)
    if key not in DEFAULT_NF_CONFIGS:
        raise KeyError(f"No default configuration for NF type: {key}")
    return DEFAULT_NF_CONFIGS[key]


def subnet_of(ip: str) -> str:
    """First three octets of a dotted IPv4 address."""
    return ".".join(ip.split(".")[:3])


def gateway_of(ip: str) -> str:
    return f"{subnet_of(ip)}.1"
