import pytest

from connection.node_address import DEFAULT_PORT, NodeAddress


def test_parse_host_only_uses_default_port():
    assert NodeAddress.parse("db1") == NodeAddress("db1", DEFAULT_PORT)
    assert NodeAddress.parse("db1", 3307) == NodeAddress("db1", 3307)


def test_parse_host_and_port():
    address = NodeAddress.parse(" 10.0.0.2:3310 ")
    assert address.host == "10.0.0.2"
    assert address.port == 3310
    assert str(address) == "10.0.0.2:3310"


@pytest.mark.parametrize("value", ["", "   ", ":3306", "db1:abc", "db1:0", "db1:70000"])
def test_parse_rejects_bad_addresses(value):
    with pytest.raises(ValueError):
        NodeAddress.parse(value)


def test_addresses_are_hashable_values():
    nodes = {NodeAddress("db1"), NodeAddress.parse("db1:3306")}
    assert len(nodes) == 1
