import base64
import json
import threading
import urllib.error
import urllib.request

import pytest

from wgpanel.activation import ACTIVE_SLOT_NAME, ActivationOrchestrator
from wgpanel.catalog import ConfigCatalog
from wgpanel.history import HistoryStore, JsonFileStore
from wgpanel.panel import Panel
from wgpanel.server import create_server
from wgpanel.settings import Settings


def start_panel(settings, panel):
    server = create_server(settings, panel)
    thread = threading.Thread(target=server.serve_forever, daemon=True)
    thread.start()
    return server, thread


@pytest.fixture
def locations_file(tmp_path, location_table):
    path = tmp_path / "locations.json"
    path.write_text(json.dumps(location_table))
    return path


@pytest.fixture
def make_client(tmp_path, wg_dir, locations_file):
    servers = []

    def factory(wireguard_dir=wg_dir, restarter=None, dependents=(), **overrides):
        settings = Settings(host="127.0.0.1", port=0, locations_file=locations_file, **overrides)
        panel = Panel(
            catalog=ConfigCatalog(wireguard_dir),
            orchestrator=ActivationOrchestrator(wireguard_dir, restarter, list(dependents)),
            history=HistoryStore(JsonFileStore(tmp_path / "history")),
            locations_file=locations_file,
        )
        server, thread = start_panel(settings, panel)
        servers.append((server, thread))
        return Client(f"http://127.0.0.1:{server.server_address[1]}")

    yield factory
    for server, thread in servers:
        server.shutdown()
        server.server_close()
        thread.join(timeout=5)


class Client:
    def __init__(self, base_url):
        self.base_url = base_url
        self.headers = {}
        self.opener = urllib.request.build_opener(urllib.request.ProxyHandler({}))

    def request(self, method, path, payload=None):
        data = json.dumps(payload).encode("utf-8") if payload is not None else None
        req = urllib.request.Request(self.base_url + path, data=data, method=method)
        req.add_header("Content-Type", "application/json")
        for key, value in self.headers.items():
            req.add_header(key, value)
        try:
            with self.opener.open(req, timeout=10) as resp:
                return resp.status, json.loads(resp.read().decode("utf-8"))
        except urllib.error.HTTPError as exc:
            body = exc.read().decode("utf-8")
            try:
                return exc.code, json.loads(body)
            except ValueError:
                return exc.code, body

    def get(self, path):
        return self.request("GET", path)

    def post(self, path, payload):
        return self.request("POST", path, payload)

    def delete(self, path):
        return self.request("DELETE", path)


def test_health(make_client):
    status, body = make_client().get("/api/health")
    assert status == 200
    assert body["success"] is True


def test_wireguard_files(make_client, wg_dir):
    status, body = make_client().get("/api/wireguard-files")
    assert status == 200
    assert [f["name"] for f in body["files"]] == ["backup.conf", "fr-paris-01.conf", "us-newyork-01.conf"]
    assert body["files"][0]["fullPath"] == str(wg_dir / "backup.conf")


def test_config_error_without_directory(make_client):
    client = make_client(wireguard_dir=None)
    status, body = client.get("/api/wireguard-files")
    assert status == 500
    assert body["success"] is False
    assert body["reason"] == "config_error"
    assert "WIREGUARD_DIR" in body["error"]

    status, body = client.get("/api/current-config-info")
    assert status == 500
    assert body["reason"] == "config_error"


def test_locations_are_enriched(make_client):
    status, body = make_client().get("/api/locations")
    assert status == 200
    by_name = {loc["fileName"]: loc for loc in body["locations"]}
    assert by_name["us-newyork-01.conf"]["location"] == "USA, New York"
    assert by_name["missing-01.conf"]["isAvailable"] is False


def test_activation_flow(make_client, wg_dir, fake_restarter):
    restarter = fake_restarter(failures={"b": "no such container"})
    client = make_client(restarter=restarter, dependents=["a", "b"])

    status, body = client.get("/api/current-config-info")
    assert status == 200
    assert body == {"success": False, "reason": "not_found"}

    source = wg_dir / "fr-paris-01.conf"
    status, body = client.post("/api/activate-config", {"sourcePath": str(source)})
    assert status == 200
    assert body["success"] is True
    assert 'The container "a" was restarted.' in body["message"]
    assert 'could not restart container "b"' in body["message"]
    assert (wg_dir / ACTIVE_SLOT_NAME).read_bytes() == source.read_bytes()

    status, body = client.get("/api/current-config-info")
    assert status == 200
    assert body["success"] is True
    assert body["name"] == "fr-paris-01.conf"
    assert body["size"] == source.stat().st_size


def test_activation_missing_source_path(make_client, wg_dir):
    status, body = make_client().post("/api/activate-config", {})
    assert status == 400
    assert body["success"] is False
    assert not (wg_dir / ACTIVE_SLOT_NAME).exists()


def test_activation_unknown_source(make_client, wg_dir):
    status, body = make_client().post("/api/activate-config", {"sourcePath": str(wg_dir / "nope.conf")})
    assert status == 404
    assert body["error"].startswith("Activation error:")


def test_history_round_trip(make_client):
    client = make_client()
    status, body = client.get("/api/operation-history")
    assert (status, body) == (200, [])

    history = [
        {"type": "success", "message": "activated", "timestamp": "2026-01-02T10:00:00.000Z"},
        {"type": "error", "message": "failed", "timestamp": "2026-01-01T10:00:00.000Z"},
    ]
    status, body = client.post("/api/operation-history", {"history": history})
    assert (status, body) == (200, {"success": True})

    status, body = client.get("/api/operation-history")
    assert [entry["message"] for entry in body] == ["activated", "failed"]

    assert client.delete("/api/operation-history") == (200, {"success": True})
    assert client.delete("/api/operation-history") == (200, {"success": True})
    assert client.get("/api/operation-history") == (200, [])


def test_history_rejects_invalid_payload(make_client):
    status, body = make_client().post("/api/operation-history", {"history": "nope"})
    assert status == 400
    assert body["success"] is False


def test_unknown_endpoint(make_client):
    status, body = make_client().get("/api/nothing-here")
    assert status == 404
    assert body["success"] is False


def test_basic_auth(make_client):
    client = make_client(auth_username="admin", auth_password="s3cret")
    status, _ = client.get("/api/health")
    assert status == 401

    client.headers["Authorization"] = "Basic " + base64.b64encode(b"admin:wrong").decode()
    assert client.get("/api/health")[0] == 401

    client.headers["Authorization"] = "Basic " + base64.b64encode(b"admin:s3cret").decode()
    assert client.get("/api/health")[0] == 200


def test_activation_rejects_nul_in_path(make_client, wg_dir):
    status, body = make_client().post("/api/activate-config", {"sourcePath": "/etc/x\u0000y"})
    assert status == 400
    assert body["success"] is False
    assert body["reason"] == "invalid_request"
    assert not (wg_dir / ACTIVE_SLOT_NAME).exists()


def test_activation_is_recorded_in_history(make_client, wg_dir):
    client = make_client()
    status, _ = client.post("/api/activate-config", {"sourcePath": str(wg_dir / "fr-paris-01.conf")})
    assert status == 200
    client.post("/api/activate-config", {"sourcePath": str(wg_dir / "nope.conf")})

    status, body = client.get("/api/operation-history")
    assert status == 200
    assert [entry["type"] for entry in body] == ["error", "success"]
    assert body[0]["message"].startswith("Activation error:")
    assert '"fr-paris-01.conf" was copied' in body[1]["message"]
