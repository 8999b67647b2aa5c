# File location: nfsim/fixtures.py
# Topology Fixture Loader
# Fetches the declarative one-click topology and filters it for compose bring-up

import json
import logging
from pathlib import Path
from typing import Any, Dict, Set

import httpx
from pydantic import ValidationError as SchemaError

from .config.services import BUS_SBI_INTERFACES
from .errors import ExternalResourceError
from .models import RADIO_ACCESS_TYPES, TopologyFixture

logger = logging.getLogger(__name__)


class TopologyFixtureLoader:
    """
    Loads a topology fixture from a local JSON file or an http(s) URL.

    Every failure (missing file, HTTP error, bad JSON, schema mismatch)
    surfaces as ExternalResourceError so callers have one thing to catch.
    """

    def __init__(self, source: str, timeout: float = 5.0):
        self.source = source
        self.timeout = timeout

    @property
    def is_remote(self) -> bool:
        return self.source.startswith(("http://", "https://"))

    async def fetch(self) -> Dict[str, Any]:
        """Raw fixture document"""
        if self.is_remote:
            try:
                async with httpx.AsyncClient(timeout=self.timeout) as client:
                    response = await client.get(self.source)
                    response.raise_for_status()
                    return response.json()
            except httpx.HTTPError as e:
                raise ExternalResourceError(f"Failed to load topology from {self.source}: {e}")
            except ValueError as e:
                raise ExternalResourceError(f"Topology at {self.source} is not valid JSON: {e}")

        try:
            return json.loads(Path(self.source).read_text(encoding="utf-8"))
        except OSError as e:
            raise ExternalResourceError(f"Failed to load topology from {self.source}: {e}")
        except ValueError as e:
            raise ExternalResourceError(f"Topology at {self.source} is not valid JSON: {e}")

    async def load(self) -> TopologyFixture:
        data = await self.fetch()
        try:
            fixture = TopologyFixture.model_validate(data)
        except SchemaError as e:
            raise ExternalResourceError(f"Topology at {self.source} does not match the fixture schema: {e}")
        logger.info(
            f"Loaded topology fixture: {len(fixture.nfs)} NFs, {len(fixture.connections)} connections, "
            f"{len(fixture.buses)} buses"
        )
        return fixture

    async def load_filtered(self) -> TopologyFixture:
        return filter_topology(await self.load())


def filter_topology(fixture: TopologyFixture) -> TopologyFixture:
    """
    Strip radio-access NFs (gNB, UE) and what only they used.

    Drops connections touching an excluded NF, connections between two
    bus-attached NFs that duplicate an SBI interface the bus already
    carries, and bus links of excluded NFs. Returns a new fixture; the
    argument is left untouched.
    """
    filtered = fixture.model_copy(deep=True)

    excluded_ids: Set[str] = {
        nf.id for nf in fixture.nfs if nf.type in RADIO_ACCESS_TYPES and nf.id is not None
    }
    filtered.nfs = [nf for nf in filtered.nfs if nf.type not in RADIO_ACCESS_TYPES]

    on_bus: Set[str] = set()
    for bus in filtered.buses:
        on_bus.update(bus.connections)
    for bus_conn in filtered.busConnections:
        on_bus.add(bus_conn.nfId)

    def keep(conn) -> bool:
        if conn.sourceId in excluded_ids or conn.targetId in excluded_ids:
            return False
        if conn.sourceId in on_bus and conn.targetId in on_bus:
            interface = conn.interfaceName or ""
            if any(sbi in interface for sbi in BUS_SBI_INTERFACES):
                return False
        return True

    filtered.connections = [c for c in filtered.connections if keep(c)]
    filtered.busConnections = [bc for bc in filtered.busConnections if bc.nfId not in excluded_ids]
    for bus in filtered.buses:
        bus.connections = [nf_id for nf_id in bus.connections if nf_id not in excluded_ids]

    dropped = len(fixture.connections) - len(filtered.connections)
    logger.debug(f"Filtered topology: removed {len(excluded_ids)} radio NFs, {dropped} connections")
    return filtered
