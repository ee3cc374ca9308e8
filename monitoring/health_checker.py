'''
ReplicationHealthChecker is the subject fed with every new topology snapshot.
It compares each replica's health class with the one seen in the previous
snapshot and, if there is a difference, notifies all observers. A changing
lag inside LATE is not a change. Replicas that disappear from the topology
are reported as GONE.
'''

from typing import Dict

from monitoring.observer import HealthEvent
from monitoring.subject import Subject
from monitoring.topology import NodeEntry, TopologySnapshot

UNKNOWN = "UNKNOWN"
GONE = "GONE"


def status_of(entry: NodeEntry) -> str:
    if entry.health is not None:
        return entry.health.label
    if entry.role == "not_replica":
        return "NOT A REPLICA"
    return "UNREACHABLE"


def _kind_of(entry: NodeEntry) -> str:
    if entry.health is not None:
        return entry.health.kind.value
    return entry.role


class ReplicationHealthChecker(Subject):
    def __init__(self):
        super().__init__()
        # display label per node, as last reported
        self.last_status: Dict[str, str] = {}
        self._last_kind: Dict[str, str] = {}

    def observe(self, snapshot: TopologySnapshot):
        """
        designed to be called with every probe cycle's snapshot
        """
        seen = set()
        for entry in snapshot.entries:
            name = str(entry.address)
            seen.add(name)
            kind = _kind_of(entry)
            if kind != self._last_kind.get(name):
                self.notify(HealthEvent(
                    node=name,
                    status=status_of(entry),
                    previous=self.last_status.get(name, UNKNOWN),
                    ok=entry.health is not None and entry.health.is_ok,
                ))
            self._last_kind[name] = kind
            self.last_status[name] = status_of(entry)

        for name in [n for n in self.last_status if n not in seen]:
            self.notify(HealthEvent(node=name, status=GONE, previous=self.last_status[name], ok=False))
            del self.last_status[name]
            del self._last_kind[name]
