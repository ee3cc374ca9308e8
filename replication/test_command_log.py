import json

from connection.gateway import Credentials
from connection.mock_gateway import MockGateway, primary_node, replica_node
from connection.node_address import NodeAddress
from monitoring.prober import TopologyProber
from replication.command_log import SwitchoverJournal
from replication.commands import ChangeSource
from replication.elector import CandidateElector
from replication.switchover import SwitchoverOrchestrator, SwitchoverSettings

P = NodeAddress("10.0.0.1")
A = NodeAddress("10.0.0.2")
B = NodeAddress("10.0.0.3")


def run_switchover(journal, fail=None):
    gateway = MockGateway([
        primary_node("10.0.0.1", "0-1-9"),
        replica_node("10.0.0.2", P, "0-1-9"),
        replica_node("10.0.0.3", P, "0-1-9"),
    ])
    if fail:
        gateway.fail_command(*fail)
    topology = TopologyProber(gateway, discovery="static", replicas=[A, B]).probe(P)
    orchestrator = SwitchoverOrchestrator(
        gateway, CandidateElector(gateway), SwitchoverSettings(Credentials("repl", "secret")), journal=journal
    )
    return orchestrator.run(topology)


def test_every_run_is_recorded(tmp_path):
    path = tmp_path / "journal.json"
    journal = SwitchoverJournal(str(path))
    run_switchover(journal)

    stored = json.loads(path.read_text())
    assert len(stored) == 1
    assert stored[0]["stage"] == "complete"
    assert stored[0]["acknowledged"] is False
    assert journal.last()["new_primary"] == "10.0.0.2:3306"
    assert journal.follow_ups() == []
    assert "secret" not in path.read_text()


def test_follow_ups_survive_restart(tmp_path):
    path = str(tmp_path / "journal.json")
    run_switchover(SwitchoverJournal(path), fail=(B, "change_source"))

    reloaded = SwitchoverJournal(path)
    follow_ups = reloaded.follow_ups()
    assert [o["address"] for o in follow_ups] == ["10.0.0.3:3306"]
    assert reloaded.failed_commands() == [(B, ChangeSource(A.host, A.port, "repl"))]


def test_acknowledge_clears_follow_ups(tmp_path):
    path = str(tmp_path / "journal.json")
    journal = SwitchoverJournal(path)
    run_switchover(journal, fail=(B, "start_replica"))
    assert journal.follow_ups()

    journal.acknowledge()
    assert journal.follow_ups() == []
    assert SwitchoverJournal(path).follow_ups() == []


def test_aborted_runs_are_recorded(tmp_path):
    journal = SwitchoverJournal(str(tmp_path / "journal.json"))
    gateway = MockGateway([primary_node("10.0.0.1", "0-1-9")])
    orchestrator = SwitchoverOrchestrator(
        gateway, CandidateElector(gateway), SwitchoverSettings(Credentials("repl")), journal=journal
    )
    aborted = orchestrator.run(TopologyProber(gateway, discovery="static", replicas=[A]).probe(P))

    assert aborted.aborted
    assert journal.last()["aborted"] is True
    assert journal.last()["aborted_at"] == "elect"
