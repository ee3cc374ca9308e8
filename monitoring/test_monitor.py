from connection.gateway import Credentials
from connection.mock_gateway import MockGateway, primary_node, replica_node
from connection.node_address import NodeAddress
from monitoring.health_checker import ReplicationHealthChecker
from monitoring.monitor import NOT_PROBED, ReplicationMonitor
from monitoring.prober import TopologyProber
from replication.elector import CandidateElector
from replication.switchover import SwitchoverOrchestrator, SwitchoverSettings

P = NodeAddress("10.0.0.1")
A = NodeAddress("10.0.0.2")
B = NodeAddress("10.0.0.3")


def build(replica_gtid="0-1-1057"):
    gateway = MockGateway([
        primary_node("10.0.0.1", "0-1-1057"),
        replica_node("10.0.0.2", P, replica_gtid),
        replica_node("10.0.0.3", P, replica_gtid),
    ])
    prober = TopologyProber(gateway, discovery="static", replicas=[A, B])
    orchestrator = SwitchoverOrchestrator(
        gateway, CandidateElector(gateway), SwitchoverSettings(Credentials("repl", "secret"))
    )
    return gateway, ReplicationMonitor(P, prober, orchestrator, ReplicationHealthChecker())


def test_current_snapshot_never_probes():
    gateway, monitor = build()
    empty = monitor.current_snapshot()

    assert empty.is_empty
    assert empty.primary == P
    assert empty.warnings == (NOT_PROBED,)
    assert gateway.connections == 0

    first = monitor.refresh()
    connections = gateway.connections
    assert monitor.current_snapshot() is first
    assert gateway.connections == connections


def test_refresh_feeds_health_checker():
    _, monitor = build()
    monitor.refresh()
    assert monitor.health_checker.last_status == {
        "10.0.0.2:3306": "Running OK",
        "10.0.0.3:3306": "Running OK",
    }


def test_monitor_follows_new_primary():
    _, monitor = build()
    result = monitor.request_switchover()

    assert result.promoted
    assert monitor.primary == A
    assert monitor.current_snapshot().primary == A


def test_aborted_switchover_keeps_primary():
    gateway, monitor = build(replica_gtid="0-1-1000")
    result = monitor.request_switchover()

    assert result.aborted
    assert monitor.primary == P
    assert gateway.mutations == []


def test_back_to_back_switchovers_in_static_mode():
    gateway, monitor = build()
    first = monitor.request_switchover()
    assert first.new_primary == A

    snapshot = monitor.current_snapshot()
    assert snapshot.primary == A
    assert snapshot.replicas == (P, B)
    assert [e.role for e in snapshot.entries] == ["replica", "replica"]
    assert all(e.attached_to(A) for e in snapshot.entries)

    second = monitor.request_switchover()
    assert second.stage.value == "complete"
    assert not second.partial_failure
    assert second.new_primary == P
    assert monitor.primary == P

    # each node was re-pointed once per run, never twice in the same run
    assert gateway.count(A, "change_source") == 1
    assert gateway.count(B, "change_source") == 2
    assert gateway.nodes[P].state is None
    for address in (A, B):
        state = gateway.nodes[address].state
        assert (state.source_host, state.source_port) == (P.host, P.port)
    assert monitor.current_snapshot().replicas == (A, B)
