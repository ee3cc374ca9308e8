'''
In-memory gateway simulating a replication topology. Records every
administrative command it receives and can be told to fail a given
command on a given node. Used by the tests and for dry runs.
'''

from dataclasses import dataclass, field, replace
from typing import Dict, List, Optional, Set, Tuple

from connection.gateway import (
    AdminExecError,
    GatewayConnectionError,
    GatewayError,
    INodeGateway,
    NotAReplicaError,
)
from connection.node_address import NodeAddress
from monitoring.node_state import ReplicationState
from replication.commands import AdminResultError


@dataclass
class MockNode:
    address: NodeAddress
    state: Optional[ReplicationState] = None
    variables: Dict[str, str] = field(default_factory=dict)
    status: Dict[str, str] = field(default_factory=dict)
    consumers: List[str] = field(default_factory=list)
    long_writes: int = 0
    reachable: bool = True
    ping_ok: bool = True
    locked: bool = False


def primary_node(host: str, gtid: str, port: int = 3306, consumers=(), read_only: bool = False) -> MockNode:
    return MockNode(
        address=NodeAddress(host, port),
        variables={
            "GTID_BINLOG_POS": gtid,
            "GTID_CURRENT_POS": gtid,
            "GTID_STRICT_MODE": "ON",
            "LOG_BIN": "ON",
            "READ_ONLY": "ON" if read_only else "OFF",
        },
        consumers=list(consumers),
    )


def replica_node(host: str, source: NodeAddress, gtid: str, port: int = 3306, seconds_behind: Optional[int] = 0,
                 io_running: bool = True, sql_running: bool = True, log_bin: bool = True) -> MockNode:
    return MockNode(
        address=NodeAddress(host, port),
        state=ReplicationState(
            io_running=io_running,
            sql_running=sql_running,
            seconds_behind=seconds_behind,
            gtid=gtid,
            source_host=source.host,
            source_port=source.port,
            using_gtid="Current_Pos",
            log_bin=log_bin,
        ),
        variables={
            "GTID_BINLOG_POS": gtid,
            "GTID_CURRENT_POS": gtid,
            "GTID_STRICT_MODE": "ON",
            "LOG_BIN": "ON" if log_bin else "OFF",
            "READ_ONLY": "ON",
        },
    )


class MockHandle:
    def __init__(self, address: NodeAddress):
        self.address = address
        self.closed = False

    def __repr__(self):
        return f"<MockHandle {self.address}>"


class MockGateway(INodeGateway):
    def __init__(self, nodes=()):
        self.nodes: Dict[NodeAddress, MockNode] = {}
        for node in nodes:
            self.add_node(node)
        self.calls: List[Tuple[NodeAddress, object]] = []
        self.failures: Set[Tuple[NodeAddress, str]] = set()
        self.failing_queries: Set[Tuple[NodeAddress, str]] = set()
        self.connections = 0

    # ----------------------
    # Test helpers
    # ----------------------
    def add_node(self, node: MockNode):
        self.nodes[node.address] = node

    def fail_command(self, address: NodeAddress, command_type: str):
        self.failures.add((address, command_type))

    def fail_query(self, address: NodeAddress, query: str):
        self.failing_queries.add((address, query))

    @property
    def mutations(self):
        return [(address, cmd) for address, cmd in self.calls if cmd.mutating]

    def commands_for(self, address: NodeAddress) -> List[object]:
        return [cmd for a, cmd in self.calls if a == address]

    def count(self, address: NodeAddress, command_type: str, **attrs) -> int:
        return sum(
            1 for cmd in self.commands_for(address)
            if cmd.name == command_type and all(getattr(cmd, k) == v for k, v in attrs.items())
        )

    def _node(self, handle: MockHandle) -> MockNode:
        return self.nodes[handle.address]

    def _check_query(self, handle: MockHandle, query: str):
        if (handle.address, query) in self.failing_queries:
            raise GatewayError(handle.address, f"{query} failed")

    # ----------------------
    # Gateway surface
    # ----------------------
    def connect(self, address: NodeAddress) -> MockHandle:
        node = self.nodes.get(address)
        if node is None or not node.reachable:
            raise GatewayConnectionError(address, "connection refused")
        self.connections += 1
        return MockHandle(address)

    def close(self, handle: MockHandle):
        handle.closed = True

    def ping(self, handle: MockHandle) -> bool:
        return self._node(handle).ping_ok

    def read_replication_state(self, handle: MockHandle) -> ReplicationState:
        self._check_query(handle, "replication_state")
        node = self._node(handle)
        if node.state is None:
            raise NotAReplicaError(handle.address, "server is not a replica")
        return replace(
            node.state,
            gtid=node.variables.get("GTID_CURRENT_POS", node.state.gtid),
            log_bin=node.variables.get("LOG_BIN", "ON") != "OFF",
        )

    def read_variable(self, handle: MockHandle, name: str) -> str:
        self._check_query(handle, "variables")
        return self._node(handle).variables.get(name.upper(), "")

    def read_all_variables(self, handle: MockHandle) -> Dict[str, str]:
        self._check_query(handle, "variables")
        return dict(self._node(handle).variables)

    def read_status(self, handle: MockHandle, name: str) -> str:
        self._check_query(handle, "status")
        return self._node(handle).status.get(name.upper(), "")

    def count_long_running_writes(self, handle: MockHandle, age_threshold_seconds: int) -> int:
        self._check_query(handle, "long_writes")
        return self._node(handle).long_writes

    def list_replication_consumers(self, handle: MockHandle) -> List[str]:
        self._check_query(handle, "consumers")
        return list(self._node(handle).consumers)

    def exec_admin(self, handle: MockHandle, command) -> None:
        self.calls.append((handle.address, command))
        if (handle.address, command.name) in self.failures:
            raise AdminExecError(handle.address, command, "injected failure")
        try:
            self._apply(self._node(handle), command)
        except AdminResultError as e:
            raise AdminExecError(handle.address, command, str(e))

    def _apply(self, node: MockNode, command):
        kind = command.name
        if kind == "acquire_read_lock":
            node.locked = True
        elif kind == "release_read_lock":
            node.locked = False
        elif kind == "set_read_only":
            node.variables["READ_ONLY"] = "ON" if command.read_only else "OFF"
        elif kind == "stop_replica" and node.state is not None:
            node.state = replace(node.state, io_running=False, sql_running=False, seconds_behind=None)
        elif kind == "start_replica" and node.state is not None:
            node.state = replace(node.state, io_running=True, sql_running=True, seconds_behind=0)
        elif kind == "reset_replica":
            node.state = None
        elif kind == "change_source":
            base = node.state or ReplicationState(
                io_running=False, sql_running=False, seconds_behind=None,
                gtid=node.variables.get("GTID_CURRENT_POS", ""), source_host="",
            )
            node.state = replace(base, source_host=command.host, source_port=command.port,
                                 using_gtid=command.use_gtid)
        elif kind == "wait_for_gtid":
            applied = node.variables.get("GTID_CURRENT_POS", "")
            command.check_result(0 if applied == command.gtid else -1)
