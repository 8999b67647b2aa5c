# File location: tests/test_wiring.py
# Bus auto-connect and UPF peer wiring

import asyncio
import pytest

from nfsim.models import Bus, NFStatus, NFType


def add_bus(sim, bus_id="bus-1", name="SBI Bus"):
    return sim.store.buses.add(Bus(id=bus_id, name=name))


class TestBusAutoConnect:

    @pytest.mark.asyncio
    async def test_core_nf_joins_first_bus(self, sim):
        bus = add_bus(sim)
        nf = sim.registry.start_new_network_function(NFType.AMF)
        links = sim.store.bus_connections_for(nf.id)
        assert len(links) == 1
        assert links[0].busId == bus.id
        assert links[0].interfaceName == "Namf"
        assert nf.id in sim.store.buses.get(bus.id).connections
        await sim.shutdown()

    @pytest.mark.asyncio
    @pytest.mark.parametrize("nf_type", [NFType.UPF, NFType.GNB, NFType.UE])
    async def test_excluded_types_stay_off_bus(self, sim, nf_type):
        add_bus(sim)
        nf = sim.registry.start_new_network_function(nf_type)
        assert sim.store.bus_connections_for(nf.id) == []
        await sim.shutdown()

    @pytest.mark.asyncio
    async def test_no_bus_no_link(self, sim):
        nf = sim.registry.start_new_network_function(NFType.AMF)
        assert sim.store.bus_connections_for(nf.id) == []
        await sim.shutdown()

    def test_connect_to_bus_is_idempotent(self, sim):
        bus = add_bus(sim)
        nf = sim.registry.create_network_function(NFType.NRF, "192.168.1.10", 8080)
        assert sim.wiring.connect_nf_to_bus(nf, bus) is not None
        assert sim.wiring.connect_nf_to_bus(nf, bus) is None
        assert len(sim.store.bus_connections) == 1
        assert sim.store.buses.get(bus.id).connections == [nf.id]


class TestConnections:

    def test_duplicate_connection_either_direction(self, sim):
        a = sim.registry.create_network_function(NFType.UPF, "192.168.1.40", 8083)
        b = sim.registry.create_network_function(NFType.SMF, "192.168.1.30", 8082)
        assert sim.wiring.connect(a.id, b.id, "N4") is not None
        assert sim.wiring.connect(b.id, a.id, "N4") is None
        assert sim.wiring.connect(a.id, b.id, "N9") is not None
        assert len(sim.store.connections) == 2


class TestUPFPeerWiring:

    @pytest.mark.asyncio
    async def test_stable_upf_pulls_in_peers(self, sim):
        upf = sim.registry.start_new_network_function(NFType.UPF)
        await sim.settle()

        smf = sim.store.find_nf_by_type(NFType.SMF)
        ext_dn = sim.store.find_nf_by_type(NFType.EXT_DN)
        assert smf is not None and ext_dn is not None
        assert smf.status == NFStatus.STABLE
        assert sim.wiring.find_connection(upf.id, smf.id, "N4") is not None
        n6 = sim.wiring.find_connection(ext_dn.id, upf.id, "N6")
        assert (n6.sourceId, n6.targetId) == (ext_dn.id, upf.id)

    @pytest.mark.asyncio
    async def test_uses_fixture_template_for_peers(self, sim):
        sim.registry.start_new_network_function(NFType.UPF)
        await sim.settle()
        smf = sim.store.find_nf_by_type(NFType.SMF)
        assert smf.id == "nf-smf"
        assert smf.name == "SMF-1"

    @pytest.mark.asyncio
    async def test_reuses_existing_peers(self, sim):
        smf = sim.registry.create_network_function(NFType.SMF, "192.168.1.30", 8082, status=NFStatus.STABLE)
        upf = sim.registry.start_new_network_function(NFType.UPF)
        await sim.settle()
        assert len(sim.store.find_nfs_by_type(NFType.SMF)) == 1
        assert sim.wiring.find_connection(upf.id, smf.id, "N4") is not None

    @pytest.mark.asyncio
    async def test_concurrent_triggers_wire_once(self, sim):
        upf = sim.registry.create_network_function(NFType.UPF, "192.168.1.40", 8083, status=NFStatus.STABLE)
        results = await asyncio.gather(
            sim.wiring.wire_upf_peers(upf.id),
            sim.wiring.wire_upf_peers(upf.id),
        )
        assert results == [True, True]
        assert len(sim.store.find_nfs_by_type(NFType.SMF)) == 1
        assert len(sim.store.find_nfs_by_type(NFType.EXT_DN)) == 1
        assert len(sim.store.connections) == 2

    @pytest.mark.asyncio
    async def test_without_fixture_uses_defaults(self, offline_sim):
        upf = offline_sim.registry.create_network_function(NFType.UPF, "192.168.1.40", 8083)
        assert await offline_sim.wiring.wire_upf_peers(upf.id)
        ext_dn = offline_sim.store.find_nf_by_type(NFType.EXT_DN)
        assert ext_dn.config.ipAddress == "192.168.1.15"
        assert ext_dn.config.port == 80

    @pytest.mark.asyncio
    async def test_removed_upf_is_skipped(self, sim):
        assert not await sim.wiring.wire_upf_peers("gone")
        assert len(sim.store.nfs) == 0

    @pytest.mark.asyncio
    async def test_other_types_do_not_trigger(self, sim):
        sim.registry.start_new_network_function(NFType.AMF)
        await sim.settle()
        assert sim.store.find_nf_by_type(NFType.SMF) is None
