# File location: tests/test_fixtures.py
# Topology fixture loading and radio-access filtering

import pytest

from nfsim.errors import ExternalResourceError
from nfsim.fixtures import TopologyFixtureLoader, filter_topology
from nfsim.models import NFType, TopologyFixture


class TestLoader:

    @pytest.mark.asyncio
    async def test_loads_bundled_fixture(self, settings):
        fixture = await TopologyFixtureLoader(settings.fixture_source).load()
        types = {nf.type for nf in fixture.nfs}
        assert NFType.GNB in types
        assert NFType.MYSQL in types
        assert len(fixture.buses) == 1

    @pytest.mark.asyncio
    async def test_missing_file(self, missing_fixture_path):
        with pytest.raises(ExternalResourceError):
            await TopologyFixtureLoader(missing_fixture_path).load()

    @pytest.mark.asyncio
    async def test_invalid_json(self, fixture_file):
        path = fixture_file("{not json")
        with pytest.raises(ExternalResourceError):
            await TopologyFixtureLoader(path).load()

    @pytest.mark.asyncio
    async def test_schema_mismatch(self, fixture_file):
        path = fixture_file({"nfs": [{"type": "NOT-A-TYPE"}]})
        with pytest.raises(ExternalResourceError):
            await TopologyFixtureLoader(path).load()

    @pytest.mark.asyncio
    async def test_unreachable_url(self):
        loader = TopologyFixtureLoader("http://127.0.0.1:9/one-click.json", timeout=0.5)
        assert loader.is_remote
        with pytest.raises(ExternalResourceError):
            await loader.load()

    @pytest.mark.asyncio
    async def test_flat_positions(self, fixture_file):
        path = fixture_file({"nfs": [{"id": "a", "type": "AMF", "x": 10, "y": 20}]})
        fixture = await TopologyFixtureLoader(path).load()
        position = fixture.nfs[0].resolved_position()
        assert (position.x, position.y) == (10, 20)


class TestFilterTopology:

    def test_drops_radio_access(self, bundled_fixture_data):
        fixture = TopologyFixture.model_validate(bundled_fixture_data)
        filtered = filter_topology(fixture)

        assert all(nf.type not in (NFType.GNB, NFType.UE) for nf in filtered.nfs)
        excluded = {nf.id for nf in fixture.nfs if nf.type in (NFType.GNB, NFType.UE)}
        for conn in filtered.connections:
            assert conn.sourceId not in excluded
            assert conn.targetId not in excluded

    def test_drops_sbi_duplicates_of_bus(self, bundled_fixture_data):
        filtered = filter_topology(TopologyFixture.model_validate(bundled_fixture_data))
        interfaces = {conn.interfaceName for conn in filtered.connections}
        assert interfaces == {"N4", "N6", "SQL"}

    def test_argument_untouched(self, bundled_fixture_data):
        fixture = TopologyFixture.model_validate(bundled_fixture_data)
        before = len(fixture.nfs)
        filter_topology(fixture)
        assert len(fixture.nfs) == before

    def test_prunes_bus_members_and_links(self):
        fixture = TopologyFixture.model_validate({
            "nfs": [
                {"id": "amf", "type": "AMF"},
                {"id": "gnb", "type": "gNB"},
            ],
            "buses": [{"id": "bus", "name": "SBI", "connections": ["amf", "gnb"]}],
            "busConnections": [
                {"id": "bc1", "nfId": "amf", "busId": "bus"},
                {"id": "bc2", "nfId": "gnb", "busId": "bus"},
            ],
        })
        filtered = filter_topology(fixture)
        assert filtered.buses[0].connections == ["amf"]
        assert [bc.id for bc in filtered.busConnections] == ["bc1"]

    def test_keeps_non_sbi_links_between_bus_members(self):
        fixture = TopologyFixture.model_validate({
            "nfs": [{"id": "smf", "type": "SMF"}, {"id": "amf", "type": "AMF"}],
            "buses": [{"id": "bus", "name": "SBI", "connections": ["smf", "amf"]}],
            "connections": [
                {"id": "c1", "sourceId": "amf", "targetId": "smf", "interfaceName": "N11"},
                {"id": "c2", "sourceId": "amf", "targetId": "smf", "interfaceName": "Nsmf_PDUSession"},
            ],
        })
        filtered = filter_topology(fixture)
        assert [c.id for c in filtered.connections] == ["c1"]
