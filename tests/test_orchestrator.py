# File location: tests/test_orchestrator.py
# Compose-style bring-up, tear-down and reports

import asyncio
import pytest

from nfsim.config.services import EXPECTED_CORE_TYPES
from nfsim.errors import ConflictError, NotFoundError, StateError
from nfsim.models import NFStatus, NFType


def core_types_present(sim):
    return {nf.type for nf in sim.store.nfs.get_all()}


class TestBringUpAll:

    @pytest.mark.asyncio
    @pytest.mark.integration
    async def test_imports_fixture_into_empty_topology(self, sim):
        result = await sim.orchestrator.bring_up_all()
        await sim.settle()

        assert result.ok
        assert set(EXPECTED_CORE_TYPES) <= core_types_present(sim)
        assert NFType.EXT_DN in core_types_present(sim)
        assert NFType.GNB not in core_types_present(sim)
        assert NFType.UE not in core_types_present(sim)
        assert all(nf.status == NFStatus.STABLE for nf in sim.store.nfs.get_all())
        assert len(sim.store.buses) == 1
        assert len(sim.store.bus_connections) == 8
        assert {c.interfaceName for c in sim.store.connections.get_all()} == {"N4", "N6", "SQL"}
        assert sim.orchestrator.network_exists
        assert "oaiworkshop Created" in result.text()

    @pytest.mark.asyncio
    @pytest.mark.integration
    async def test_second_run_is_a_no_op(self, sim):
        await sim.orchestrator.bring_up_all()
        await sim.settle()
        before = {nf.id for nf in sim.store.nfs.get_all()}

        result = await sim.orchestrator.bring_up_all()
        assert result.data["created"] == 0
        assert "All Network Functions are already running!" in result.text()
        assert {nf.id for nf in sim.store.nfs.get_all()} == before

    @pytest.mark.asyncio
    async def test_creates_only_missing_types(self, sim):
        sim.registry.create_network_function(NFType.NRF, "192.168.1.10", 8080, status=NFStatus.STABLE)
        sim.registry.create_network_function(NFType.AMF, "192.168.1.20", 8081, status=NFStatus.STABLE)

        result = await sim.orchestrator.bring_up_all()
        await sim.settle()

        assert result.data["created"] == len(EXPECTED_CORE_TYPES) - 2
        for nf_type in EXPECTED_CORE_TYPES:
            assert len(sim.store.find_nfs_by_type(nf_type)) == 1

    @pytest.mark.asyncio
    async def test_fixture_failure_falls_back_to_defaults(self, offline_sim):
        result = await offline_sim.orchestrator.bring_up_all()
        await offline_sim.settle()

        assert "Falling back to default NF creation..." in result.text()
        assert result.data["created"] == len(EXPECTED_CORE_TYPES)
        nrf = offline_sim.store.find_nf_by_type(NFType.NRF)
        assert (nrf.config.ipAddress, nrf.config.port) == ("192.168.1.10", 8080)
        mysql = offline_sim.store.find_nf_by_type(NFType.MYSQL)
        assert mysql.config.port == 3306

    @pytest.mark.asyncio
    async def test_addresses_and_ports_unique(self, sim):
        await sim.orchestrator.bring_up_all()
        await sim.settle()
        nfs = sim.store.nfs.get_all()
        assert len({nf.config.ipAddress for nf in nfs}) == len(nfs)
        assert len({nf.config.port for nf in nfs}) == len(nfs)

    @pytest.mark.asyncio
    async def test_streams_lines(self, sim):
        lines = []
        await sim.orchestrator.bring_up_all(on_line=lines.append)
        await sim.shutdown()
        assert lines
        assert lines[0].text.startswith("[+] Running")

    @pytest.mark.asyncio
    async def test_concurrent_command_rejected(self, sim):
        first = asyncio.create_task(sim.orchestrator.bring_up_all())
        await asyncio.sleep(0)
        assert sim.orchestrator.busy
        with pytest.raises(StateError):
            await sim.orchestrator.tear_down_all()
        await first
        await sim.shutdown()


class TestBringUpOne:

    @pytest.mark.asyncio
    async def test_creates_one_nf(self, sim):
        result = await sim.orchestrator.bring_up_one("oai-amf")
        await sim.settle()
        amf = sim.store.nfs.get(result.data["nfId"])
        assert amf.type == NFType.AMF
        assert amf.status == NFStatus.STABLE
        assert f"✅ AMF deployed successfully on network oaiworkshop ({amf.config.ipAddress})" in result.text()
        assert sim.store.bus_connections_for(amf.id)

    @pytest.mark.asyncio
    async def test_existing_type_conflicts(self, sim):
        await sim.orchestrator.bring_up_one("oai-nrf")
        with pytest.raises(ConflictError) as exc:
            await sim.orchestrator.bring_up_one("oai-nrf")
        assert exc.value.message == "NRF already exists!"
        assert len(sim.store.find_nfs_by_type(NFType.NRF)) == 1
        await sim.shutdown()

    @pytest.mark.asyncio
    async def test_unknown_service(self, sim):
        with pytest.raises(NotFoundError):
            await sim.orchestrator.bring_up_one("oai-foo")
        assert not sim.orchestrator.busy

    @pytest.mark.asyncio
    async def test_alias_and_case(self, sim):
        result = await sim.orchestrator.bring_up_one("EXT-DN")
        nf = sim.store.nfs.get(result.data["nfId"])
        assert nf.type == NFType.EXT_DN
        await sim.shutdown()

    @pytest.mark.asyncio
    async def test_without_fixture(self, offline_sim):
        result = await offline_sim.orchestrator.bring_up_one("mysql")
        nf = offline_sim.store.nfs.get(result.data["nfId"])
        assert (nf.config.ipAddress, nf.config.port) == ("192.168.1.100", 3306)
        await offline_sim.shutdown()


class TestTearDown:

    @pytest.mark.asyncio
    async def test_tear_down_all(self, sim):
        await sim.orchestrator.bring_up_all()
        await sim.settle()
        result = await sim.orchestrator.tear_down_all()
        await sim.settle()

        assert result.data["removed"] > 0
        assert sim.store.is_empty()
        assert len(sim.store.connections) == 0
        assert len(sim.store.buses) == 0
        assert len(sim.store.bus_connections) == 0
        assert not sim.orchestrator.network_exists

    @pytest.mark.asyncio
    async def test_tear_down_all_empty(self, sim):
        result = await sim.orchestrator.tear_down_all()
        assert result.data["removed"] == 0
        assert "No services to stop." in result.text()

    @pytest.mark.asyncio
    async def test_tear_down_one(self, sim):
        await sim.orchestrator.bring_up_one("oai-smf")
        result = await sim.orchestrator.tear_down_one("oai-smf")
        await sim.settle()
        assert result.data["removed"] == 1
        assert sim.store.find_nf_by_type(NFType.SMF) is None

    @pytest.mark.asyncio
    async def test_tear_down_missing_service(self, sim):
        with pytest.raises(NotFoundError) as exc:
            await sim.orchestrator.tear_down_one("oai-smf")
        assert exc.value.message == "No such service: oai-smf"

    def add_stable_core(self, sim, nf_types):
        for nf_type in nf_types:
            ip, port = sim.registry.resolve_address(nf_type)
            sim.registry.create_network_function(nf_type, ip, port, status=NFStatus.STABLE)

    @pytest.mark.asyncio
    async def test_upf_stabilizing_mid_tear_down_leaves_nothing(self, sim):
        self.add_stable_core(sim, [
            NFType.SMF, NFType.NRF, NFType.AMF, NFType.AUSF,
            NFType.UDM, NFType.UDR, NFType.PCF, NFType.NSSF,
        ])
        upf = sim.registry.start_new_network_function(NFType.UPF)
        assert sim.lifecycle.has_pending(upf.id)

        await sim.orchestrator.tear_down_all()
        await sim.settle()

        assert sim.store.nfs.get_all() == []
        assert len(sim.store.connections) == 0
        assert sim.lifecycle.pending_count == 0
        assert not sim.orchestrator.network_exists

    @pytest.mark.asyncio
    async def test_peers_wired_mid_tear_down_are_removed(self, sim):
        self.add_stable_core(sim, [NFType.SMF, NFType.NRF, NFType.AMF, NFType.AUSF, NFType.UPF])
        upf = sim.store.find_nf_by_type(NFType.UPF)

        command = asyncio.create_task(sim.orchestrator.tear_down_all())
        while sim.store.find_nf_by_type(NFType.SMF) is not None:
            await asyncio.sleep(0.0001)
        assert await sim.wiring.wire_upf_peers(upf.id)
        assert sim.store.find_nf_by_type(NFType.EXT_DN) is not None

        result = await command
        assert sim.store.is_empty()
        assert result.data["removed"] == 7


class TestStartStop:

    @pytest.mark.asyncio
    async def test_stop_then_start(self, sim):
        await sim.orchestrator.bring_up_one("oai-amf")
        await sim.settle()

        await sim.orchestrator.stop_one("oai-amf")
        assert sim.store.find_nf_by_type(NFType.AMF).status == NFStatus.STOPPED

        await sim.orchestrator.start_one("oai-amf")
        assert sim.store.find_nf_by_type(NFType.AMF).status == NFStatus.STARTING
        await sim.settle()
        assert sim.store.find_nf_by_type(NFType.AMF).status == NFStatus.STABLE

    @pytest.mark.asyncio
    async def test_start_unknown(self, sim):
        with pytest.raises(NotFoundError):
            await sim.orchestrator.start_one("oai-amf")


class TestReports:

    @pytest.mark.asyncio
    async def test_status_counts(self, sim):
        await sim.orchestrator.bring_up_one("oai-amf")
        result = sim.orchestrator.status()
        assert result.data["counts"]["starting"] == 1
        await sim.settle()
        result = sim.orchestrator.status()
        assert result.data["counts"] == {"starting": 0, "stable": 1, "stopped": 0}

    @pytest.mark.asyncio
    async def test_ps(self, sim):
        assert "No containers running." in sim.orchestrator.ps().text()
        await sim.orchestrator.bring_up_one("oai-amf")
        await sim.settle()
        text = sim.orchestrator.ps().text()
        assert "oai-amf" in text
        assert "Up (healthy)" in text

    @pytest.mark.asyncio
    async def test_network_ls_and_inspect(self, sim):
        assert "oaiworkshop" not in sim.orchestrator.network_ls().text()
        with pytest.raises(NotFoundError):
            sim.orchestrator.network_inspect("oaiworkshop")

        await sim.orchestrator.bring_up_one("oai-amf")
        assert "oaiworkshop" in sim.orchestrator.network_ls().text()
        document = sim.orchestrator.network_inspect("oaiworkshop").data["network"]
        assert document["Name"] == "oaiworkshop"
        addresses = [c["IPv4Address"] for c in document["Containers"].values()]
        assert addresses == [f"{sim.store.find_nf_by_type(NFType.AMF).config.ipAddress}/24"]
        await sim.shutdown()

    def test_inspect_builtin_network(self, sim):
        assert sim.orchestrator.network_inspect("bridge").data["network"]["Driver"] == "bridge"
