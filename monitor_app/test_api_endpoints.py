import pytest
from fastapi.testclient import TestClient

from config.config_loader import MonitorSettings
from connection.gateway import Credentials
from connection.mock_gateway import MockGateway, MockNode, primary_node, replica_node
from connection.node_address import NodeAddress
from monitor_app.main import create_app

P = NodeAddress("10.0.0.1")
A = NodeAddress("10.0.0.2")
B = NodeAddress("10.0.0.3")
GALERA = NodeAddress("10.0.1.1")


@pytest.fixture
def gateway():
    return MockGateway([
        primary_node("10.0.0.1", "0-1-1057"),
        replica_node("10.0.0.2", P, "0-1-1057"),
        replica_node("10.0.0.3", P, "0-1-1057", seconds_behind=7),
        MockNode(GALERA, variables={"READ_ONLY": "OFF"}, status={"WSREP_LOCAL_STATE": "4"}),
    ])


@pytest.fixture
def client(gateway, tmp_path):
    settings = MonitorSettings(
        primary=P,
        credentials=Credentials("monitor", "pw"),
        replication_credentials=Credentials("repl", "secret"),
        replicas=(A, B),
        discovery="static",
        journal_path=str(tmp_path / "journal.json"),
    )
    return TestClient(create_app(settings, gateway=gateway))


def test_topology(client):
    # refreshing is the dispatcher's job, done by hand when it is not running
    client.app.state.monitor.refresh()
    response = client.get("/topology")
    assert response.status_code == 200

    body = response.json()
    assert body["primary"] == "10.0.0.1:3306"
    assert [r["health"] for r in body["replicas"]] == ["Running OK", "Running LATE: 7 sec"]
    assert body["alerts"] == {"10.0.0.3:3306": "Running LATE: 7 sec"}


def test_topology_before_first_probe(client, gateway):
    response = client.get("/topology")
    assert response.status_code == 200

    body = response.json()
    assert body["replicas"] == []
    assert body["warnings"] == ["not probed yet"]
    assert gateway.connections == 0


def test_replica_health(client):
    ok = client.get("/health/replica", params={"node": "10.0.0.2:3306"})
    assert ok.status_code == 200
    assert ok.text == "200 Health OK"

    late = client.get("/health/replica", params={"node": "10.0.0.3"})
    assert late.status_code == 503
    assert late.text == "503 Delayed Replication (7)"

    assert client.get("/health/replica", params={"node": "db:port"}).status_code == 400


def test_galera_health(client):
    response = client.get("/health/galera", params={"node": "10.0.1.1:3306"})
    assert response.status_code == 200
    assert response.text == "MariaDB Cluster Node is synced."


def test_switchover(client, gateway):
    response = client.post("/switchover", json={"expected_primary": "10.0.0.1:3306"})
    assert response.status_code == 200
    body = response.json()
    assert body["stage"] == "complete"
    assert body["new_primary"] == "10.0.0.2:3306"

    assert gateway.count(P, "release_read_lock") == 1
    assert client.get("/topology").json()["primary"] == "10.0.0.2:3306"


def test_switchover_for_wrong_primary(client, gateway):
    response = client.post("/switchover", json={"expected_primary": "10.0.0.9"})
    assert response.status_code == 409
    assert gateway.calls == []


def test_aborted_switchover(client, gateway):
    gateway.nodes[P].long_writes = 3
    response = client.post("/switchover")
    assert response.status_code == 409
    assert response.json()["aborted_at"] == "precheck"


def test_partial_failure_and_journal(client, gateway):
    gateway.fail_command(B, "change_source")
    response = client.post("/switchover")
    assert response.status_code == 207
    assert response.json()["partial_failure"] is True

    journal = client.get("/journal").json()
    assert len(journal["runs"]) == 1
    assert [o["address"] for o in journal["follow_ups"]] == ["10.0.0.3:3306"]
    retry = journal["retry"]
    assert [r["node"] for r in retry] == ["10.0.0.3:3306"]
    assert retry[0]["command"] == {"type": "change_source", "host": "10.0.0.2", "port": 3306,
                                   "user": "repl", "use_gtid": "current_pos"}
    assert retry[0]["statement"].startswith("CHANGE MASTER TO")
    assert "secret" not in str(journal)

    ack = client.post("/journal/acknowledge").json()
    assert ack == {"status": "acknowledged", "follow_ups": 1}
    assert client.get("/journal").json()["follow_ups"] == []


def test_dispatcher_runs_with_the_app(gateway, tmp_path):
    settings = MonitorSettings(
        primary=P,
        credentials=Credentials("monitor"),
        replication_credentials=Credentials("repl"),
        replicas=(A, B),
        discovery="static",
        refresh_interval=0.05,
        journal_path=str(tmp_path / "journal.json"),
    )
    app = create_app(settings, gateway=gateway)
    with TestClient(app) as client:
        assert app.state.dispatcher.running
        response = client.post("/switchover")
        assert response.status_code == 200
    assert not app.state.dispatcher.running
