from dataclasses import replace

from connection.mock_gateway import MockGateway, primary_node, replica_node
from connection.node_address import NodeAddress
from monitoring.health_checker import GONE, UNKNOWN, ReplicationHealthChecker
from monitoring.observer import Observer
from monitoring.prober import TopologyProber

P = NodeAddress("10.0.0.1")
A = NodeAddress("10.0.0.2")
B = NodeAddress("10.0.0.3")


class RecordingObserver(Observer):
    def __init__(self):
        self.events = []

    def update(self, event: dict):
        self.events.append(event)


def setup():
    gateway = MockGateway([
        primary_node("10.0.0.1", "0-1-5"),
        replica_node("10.0.0.2", P, "0-1-5"),
        replica_node("10.0.0.3", P, "0-1-5", seconds_behind=4),
    ])
    prober = TopologyProber(gateway, discovery="static", replicas=[A, B])
    checker = ReplicationHealthChecker()
    observer = RecordingObserver()
    checker.add_observer(observer)
    return gateway, prober, checker, observer


def test_first_snapshot_reports_every_replica():
    _, prober, checker, observer = setup()
    checker.observe(prober.probe(P))

    assert observer.events == [
        {"node": "10.0.0.2:3306", "status": "Running OK", "previous": UNKNOWN, "ok": True},
        {"node": "10.0.0.3:3306", "status": "Running LATE: 4 sec", "previous": UNKNOWN, "ok": False},
    ]


def test_only_changes_are_reported():
    gateway, prober, checker, observer = setup()
    checker.observe(prober.probe(P))
    observer.events.clear()

    checker.observe(prober.probe(P))
    assert observer.events == []

    gateway.nodes[A].reachable = False
    checker.observe(prober.probe(P))
    assert observer.events == [
        {"node": "10.0.0.2:3306", "status": "UNREACHABLE", "previous": "Running OK", "ok": False},
    ]


def test_removed_replica_is_reported_gone():
    gateway, _, checker, observer = setup()
    checker.observe(TopologyProber(gateway, discovery="static", replicas=[A, B]).probe(P))
    observer.events.clear()

    checker.observe(TopologyProber(gateway, discovery="static", replicas=[A]).probe(P))
    assert observer.events == [
        {"node": "10.0.0.3:3306", "status": GONE, "previous": "Running LATE: 4 sec", "ok": False},
    ]
    assert "10.0.0.3:3306" not in checker.last_status


def test_removed_observer_gets_nothing():
    _, prober, checker, observer = setup()
    checker.remove_observer(observer)
    checker.observe(prober.probe(P))
    assert observer.events == []


def test_changing_lag_is_not_a_change():
    gateway, prober, checker, observer = setup()
    checker.observe(prober.probe(P))
    observer.events.clear()

    gateway.nodes[B].state = replace(gateway.nodes[B].state, seconds_behind=5)
    checker.observe(prober.probe(P))
    assert observer.events == []
    assert checker.last_status["10.0.0.3:3306"] == "Running LATE: 5 sec"

    gateway.nodes[B].state = replace(gateway.nodes[B].state, seconds_behind=0)
    checker.observe(prober.probe(P))
    assert observer.events == [
        {"node": "10.0.0.3:3306", "status": "Running OK", "previous": "Running LATE: 5 sec", "ok": True},
    ]
