'''
TopologySnapshot is the immutable picture of one probe cycle: the declared
primary plus every replica found attached to it. Each cycle builds a new
snapshot; nothing ever patches an existing one.
'''

from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Dict, Optional, Tuple

from connection.node_address import NodeAddress
from monitoring.health import HealthStatus
from monitoring.node_state import ReplicationState, replicates_from


@dataclass(frozen=True)
class NodeEntry:
    address: NodeAddress
    state: Optional[ReplicationState] = None
    health: Optional[HealthStatus] = None
    warnings: Tuple[str, ...] = ()
    role: str = "replica"  # replica | unreachable | not_replica

    @property
    def reachable(self) -> bool:
        return self.role != "unreachable"

    def attached_to(self, primary: NodeAddress) -> bool:
        """
        False when the node is known to replicate from somewhere else, or not at
        all. An unreachable node gives no evidence either way and counts as attached.
        """
        if self.address == primary or self.role == "not_replica":
            return False
        if self.state is None:
            return True
        return replicates_from(self.state, primary)

    def to_dict(self) -> Dict:
        state = self.state
        return {
            "address": str(self.address),
            "role": self.role,
            "health": self.health.label if self.health else None,
            "io_running": state.io_running if state else None,
            "sql_running": state.sql_running if state else None,
            "seconds_behind": state.seconds_behind if state else None,
            "gtid": state.gtid if state else None,
            "source": (
                f"{state.source_host}:{state.source_port}" if state and state.source_port
                else (state.source_host if state else None)
            ),
            "using_gtid": state.using_gtid if state else None,
            "log_bin": state.log_bin if state else None,
            "warnings": list(self.warnings),
        }


@dataclass(frozen=True)
class TopologySnapshot:
    primary: NodeAddress
    entries: Tuple[NodeEntry, ...] = ()
    primary_gtid: str = ""
    gtid_strict_mode: str = ""
    warnings: Tuple[str, ...] = ()
    taken_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))

    @property
    def replicas(self) -> Tuple[NodeAddress, ...]:
        return tuple(entry.address for entry in self.entries)

    @property
    def is_empty(self) -> bool:
        return not self.entries

    def entry(self, address: NodeAddress) -> Optional[NodeEntry]:
        return next((e for e in self.entries if e.address == address), None)

    def to_dict(self) -> Dict:
        return {
            "primary": str(self.primary),
            "gtid_binlog_pos": self.primary_gtid,
            "gtid_strict_mode": self.gtid_strict_mode,
            "taken_at": self.taken_at.isoformat(),
            "warnings": list(self.warnings),
            "replicas": [entry.to_dict() for entry in self.entries],
        }
