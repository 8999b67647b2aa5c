# File location: nfsim/config/settings.py
# Simulation Settings
# Defaults can be overridden through NFSIM_* environment variables

import os
import logging
from pathlib import Path
from typing import Optional

from pydantic import BaseModel, Field

from ..models import HTTPProtocol

logger = logging.getLogger(__name__)

BUNDLED_FIXTURE = str(Path(__file__).resolve().parent.parent / "data" / "one-click.json")


class SimulationSettings(BaseModel):
    """Tunables for timing, fixtures and reporting"""
    stabilization_delay: float = Field(5.0, ge=0, description="Simulated seconds from starting to stable")
    time_scale: float = Field(1.0, gt=0, description="Real seconds per simulated second")
    fixture_source: str = Field(BUNDLED_FIXTURE, description="Topology fixture path or http(s) URL")
    fixture_timeout: float = Field(5.0, gt=0, description="Fixture fetch timeout in real seconds")
    http_protocol: HTTPProtocol = Field(HTTPProtocol.HTTP2, description="Initial global SBI protocol")
    random_seed: Optional[int] = Field(None, description="Seed for reproducible runs")
    ping_count: int = Field(4, ge=1, description="Packets per ping")
    ping_interval: float = Field(0.5, ge=0, description="Simulated seconds between packets")
    ping_history_limit: int = Field(50, ge=1)
    event_log_limit: int = Field(1000, ge=1)

    @classmethod
    def from_env(cls, **overrides) -> "SimulationSettings":
        """Build settings from NFSIM_* environment variables, explicit overrides win."""
        values = {}
        env_map = {
            "NFSIM_STABILIZATION_DELAY": ("stabilization_delay", float),
            "NFSIM_TIME_SCALE": ("time_scale", float),
            "NFSIM_FIXTURE_SOURCE": ("fixture_source", str),
            "NFSIM_HTTP_PROTOCOL": ("http_protocol", HTTPProtocol),
            "NFSIM_RANDOM_SEED": ("random_seed", int),
        }
        for env_name, (field_name, cast) in env_map.items():
            raw = os.environ.get(env_name)
            if raw is None or raw == "":
                continue
            try:
                values[field_name] = cast(raw)
            except ValueError:
                logger.warning(f"Ignoring invalid {env_name}={raw!r}")
        values.update(overrides)
        return cls(**values)
