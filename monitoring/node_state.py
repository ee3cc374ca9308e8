'''
Raw per-node facts as read from a database node. Nothing here is derived:
health classification lives in monitoring.health, roles in monitoring.topology.
'''

from dataclasses import dataclass
from typing import Optional

from connection.node_address import NodeAddress


@dataclass(frozen=True)
class ReplicationState:
    io_running: bool
    sql_running: bool
    seconds_behind: Optional[int]   # None when replication is broken or stopped
    gtid: str                       # gtid_current_pos of the replica
    source_host: str
    source_port: Optional[int] = None
    using_gtid: str = ""
    log_bin: bool = True

    def __post_init__(self):
        if self.seconds_behind is not None and self.seconds_behind < 0:
            raise ValueError("seconds_behind must be non-negative")


@dataclass(frozen=True)
class Unreachable:
    """Marker returned instead of a ReplicationState when the node could not be queried."""
    reason: str


@dataclass(frozen=True)
class NotAReplica:
    """Marker for a reachable node that has no replication configured."""
    reason: str = "replication not configured"


def replicates_from(state: ReplicationState, primary: NodeAddress) -> bool:
    if state.source_host != primary.host:
        return False
    return state.source_port is None or state.source_port == primary.port
