# File location: nfsim/__init__.py
# NF Orchestration & Reachability Simulator
# Simulated 5G core bring-up, lifecycle, auto-wiring and ping

from .config.settings import SimulationSettings
from .errors import (
    SimulationError,
    ValidationError,
    ConflictError,
    NotFoundError,
    StateError,
    ExternalResourceError,
    AllocationExhaustedError,
)
from .models import NFType, NFStatus, HTTPProtocol, NetworkFunction, CommandResult, PingSession
from .simulation import Simulation
from .terminal import TerminalSession

__version__ = "1.0.0"

__all__ = [
    "Simulation",
    "SimulationSettings",
    "TerminalSession",
    "SimulationError",
    "ValidationError",
    "ConflictError",
    "NotFoundError",
    "StateError",
    "ExternalResourceError",
    "AllocationExhaustedError",
    "NFType",
    "NFStatus",
    "HTTPProtocol",
    "NetworkFunction",
    "CommandResult",
    "PingSession",
]
