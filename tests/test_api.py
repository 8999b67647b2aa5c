# File location: tests/test_api.py
# HTTP API over a fast simulation

import pytest
from fastapi.testclient import TestClient

from nfsim.api import create_app


@pytest.fixture
def client(sim):
    with TestClient(create_app(sim)) as client:
        yield client


def create_nf(client, nf_type="AMF", **body):
    response = client.post("/nfs", json={"type": nf_type, **body})
    assert response.status_code == 201, response.text
    return response.json()


class TestHealthAndMetrics:

    def test_health(self, client):
        response = client.get("/health")
        assert response.status_code == 200
        data = response.json()
        assert data["status"] == "healthy"
        assert data["service"] == "nfsim"
        assert data["nfs"]["total"] == 0

    def test_metrics(self, client):
        create_nf(client)
        response = client.get("/metrics")
        assert response.status_code == 200
        assert 'nfsim_nfs{status="starting"} 1' in response.text
        assert "nfsim_ping_sessions_total 0" in response.text


class TestNetworkFunctions:

    def test_create_and_get(self, client):
        nf = create_nf(client, name="amf-primary")
        assert nf["status"] == "starting"
        assert nf["name"] == "amf-primary"
        assert nf["config"]["httpProtocol"] == "HTTP/2"

        response = client.get(f"/nfs/{nf['id']}")
        assert response.status_code == 200
        assert response.json()["id"] == nf["id"]
        assert len(client.get("/nfs").json()) == 1

    def test_unknown_nf(self, client):
        assert client.get("/nfs/missing").status_code == 404

    def test_duplicate_address(self, client):
        create_nf(client, ipAddress="192.168.1.50", port=9000)
        response = client.post("/nfs", json={"type": "SMF", "ipAddress": "192.168.1.50", "port": 9001})
        assert response.status_code == 409
        assert "already in use" in response.json()["detail"]

    def test_invalid_type(self, client):
        assert client.post("/nfs", json={"type": "XYZ"}).status_code == 422

    def test_patch(self, client):
        nf = create_nf(client)
        response = client.patch(f"/nfs/{nf['id']}", json={"port": 9500, "httpProtocol": "HTTP/1"})
        assert response.status_code == 200
        assert response.json()["config"]["port"] == 9500
        assert response.json()["config"]["httpProtocol"] == "HTTP/1"

    def test_patch_invalid_ip(self, client):
        nf = create_nf(client)
        response = client.patch(f"/nfs/{nf['id']}", json={"ipAddress": "300.1.1.1"})
        assert response.status_code == 400

    def test_delete(self, client):
        nf = create_nf(client)
        assert client.delete(f"/nfs/{nf['id']}").status_code == 204
        assert client.delete(f"/nfs/{nf['id']}").status_code == 404

    def test_global_protocol(self, client):
        create_nf(client)
        create_nf(client, "SMF")
        response = client.put("/settings/http-protocol", json={"httpProtocol": "HTTP/1"})
        assert response.json() == {"httpProtocol": "HTTP/1", "updated": 2}
        assert {nf["config"]["httpProtocol"] for nf in client.get("/nfs").json()} == {"HTTP/1"}


class TestPing:

    def test_ping(self, client):
        source = create_nf(client, ipAddress="192.168.1.20", port=8081)
        create_nf(client, "SMF", ipAddress="192.168.1.30", port=8082)

        response = client.post(f"/nfs/{source['id']}/ping", json={"targetIp": "192.168.1.30"})
        assert response.status_code == 200
        assert response.json()["statistics"]["sent"] == 4

        history = client.get(f"/nfs/{source['id']}/ping-history").json()
        assert len(history) == 1

    def test_ping_unknown_source(self, client):
        response = client.post("/nfs/missing/ping", json={"targetIp": "192.168.1.30"})
        assert response.status_code == 404

    def test_ping_invalid_target(self, client):
        source = create_nf(client)
        response = client.post(f"/nfs/{source['id']}/ping", json={"targetIp": "nowhere"})
        assert response.status_code == 400


class TestTerminal:

    def test_help(self, client):
        response = client.post("/terminal", json={"command": "help"})
        assert response.status_code == 200
        assert response.json()["ok"] is True

    def test_bring_up_all(self, client):
        response = client.post("/terminal", json={"command": "bring-up-all"})
        assert response.json()["ok"] is True
        assert len(client.get("/buses").json()) == 1
        assert len(client.get("/bus-connections").json()) == 8
        assert client.get("/health").json()["networkExists"] is True

    def test_error_rendered_as_line(self, client):
        response = client.post("/terminal", json={"command": "tear-down oai-nrf"})
        body = response.json()
        assert body["ok"] is False
        assert body["lines"][-1] == {"text": "Error: No such service: oai-nrf", "kind": "error"}

    def test_nf_terminal(self, client):
        nf = create_nf(client, ipAddress="192.168.3.20", port=8081)
        response = client.post(f"/nfs/{nf['id']}/terminal", json={"command": "ipconfig"})
        assert response.json()["data"]["gateway"] == "192.168.3.1"

    def test_nf_terminal_unknown(self, client):
        assert client.post("/nfs/missing/terminal", json={"command": "ipconfig"}).status_code == 404

    def test_events(self, client):
        nf = create_nf(client)
        events = client.get("/events", params={"nf_id": nf["id"]}).json()
        assert events[0]["message"] == f"{nf['name']} created successfully"
