import pytest

from connection.mock_gateway import MockGateway, MockNode
from connection.node_address import NodeAddress
from monitoring.galera_check import GaleraHealthCheck

NODE = NodeAddress("10.0.1.1")


def galera(state, read_only="OFF"):
    node = MockNode(NODE, variables={"READ_ONLY": read_only}, status={"WSREP_LOCAL_STATE": state})
    return MockGateway([node])


@pytest.mark.parametrize("state, donor_ok, up", [
    ("4", False, True),
    ("2", False, False),
    ("2", True, True),
    ("1", True, False),
])
def test_wsrep_state(state, donor_ok, up):
    verdict = GaleraHealthCheck(galera(state), available_when_donor=donor_ok).check(NODE)
    assert verdict.up is up
    assert verdict.message == ("MariaDB Cluster Node is synced." if up else "MariaDB Cluster Node is not synced.")


def test_read_only_node_is_taken_out():
    gateway = galera("4", read_only="ON")
    assert GaleraHealthCheck(gateway).check(NODE).up
    assert not GaleraHealthCheck(gateway, disable_when_read_only=True).check(NODE).up


def test_unreadable_state():
    verdict = GaleraHealthCheck(galera("")).check(NODE)
    assert verdict.status_code == 503
    assert verdict.message.startswith("Cannot check cluster state")

    gateway = galera("4")
    gateway.fail_query(NODE, "status")
    assert GaleraHealthCheck(gateway).check(NODE).message.startswith("Cannot check cluster state")


def test_unreachable_node():
    gateway = galera("4")
    gateway.nodes[NODE].reachable = False
    assert GaleraHealthCheck(gateway).check(NODE).message == "Cannot check cluster state: no connection"


def test_allowed_donor_stays_in_even_when_read_only():
    gateway = galera("2", read_only="ON")
    check = GaleraHealthCheck(gateway, available_when_donor=True, disable_when_read_only=True)
    assert check.check(NODE).up


def test_read_only_must_be_explicitly_off():
    node = MockNode(NODE, variables={}, status={"WSREP_LOCAL_STATE": "4"})
    check = GaleraHealthCheck(MockGateway([node]), disable_when_read_only=True)
    verdict = check.check(NODE)
    assert not verdict.up
    assert verdict.message == "MariaDB Cluster Node is not synced."

    assert GaleraHealthCheck(galera("4", read_only="OFF"), disable_when_read_only=True).check(NODE).up
