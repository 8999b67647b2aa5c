# File location: nfsim/config/__init__.py
# Static policy tables and runtime settings

from .addressing import (
    SUBNET_POOLS,
    HOST_RANGE,
    PORT_RANGE,
    FALLBACK_PORT_RANGE,
    DEFAULT_NF_CONFIGS,
    get_default_config,
    subnet_of,
)
from .services import (
    ComposeService,
    EXPECTED_CORE_TYPES,
    resolve_service,
    service_name_for,
)
from .settings import SimulationSettings

__all__ = [
    "SUBNET_POOLS",
    "HOST_RANGE",
    "PORT_RANGE",
    "FALLBACK_PORT_RANGE",
    "DEFAULT_NF_CONFIGS",
    "get_default_config",
    "subnet_of",
    "ComposeService",
    "EXPECTED_CORE_TYPES",
    "resolve_service",
    "service_name_for",
    "SimulationSettings",
]
