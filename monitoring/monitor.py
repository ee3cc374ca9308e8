'''
ReplicationMonitor ties the prober and the orchestrator to one declared
primary. It keeps the latest snapshot for the display layer and, after a
successful promotion, follows the new primary.
refresh() and request_switchover() are only called from the single dispatch
loop (MonitorDispatcher), so they never interleave. current_snapshot() is
read-only and safe to call from request handlers.
'''

import logging
from typing import Optional

from connection.node_address import NodeAddress
from monitoring.health_checker import ReplicationHealthChecker
from monitoring.prober import TopologyProber
from monitoring.topology import TopologySnapshot
from replication.switchover import SwitchoverOrchestrator, SwitchoverResult

logger = logging.getLogger(__name__)

NOT_PROBED = "not probed yet"


class ReplicationMonitor:
    def __init__(self, primary: NodeAddress, prober: TopologyProber, orchestrator: SwitchoverOrchestrator,
                 health_checker: Optional[ReplicationHealthChecker] = None):
        self.primary = primary
        self.prober = prober
        self.orchestrator = orchestrator
        self.health_checker = health_checker
        self._snapshot: Optional[TopologySnapshot] = None

    def refresh(self) -> TopologySnapshot:
        snapshot = self.prober.probe(self.primary)
        self._snapshot = snapshot
        if self.health_checker is not None:
            self.health_checker.observe(snapshot)
        return snapshot

    def current_snapshot(self) -> TopologySnapshot:
        """
        Latest probed snapshot. Never touches a node: before the first refresh
        an empty snapshot flagged "not probed yet" is returned.
        """
        if self._snapshot is None:
            return TopologySnapshot(primary=self.primary, warnings=(NOT_PROBED,))
        return self._snapshot

    def request_switchover(self) -> SwitchoverResult:
        # the plan is frozen from a fresh probe, not from the displayed snapshot
        snapshot = self.refresh()
        result = self.orchestrator.run(snapshot)
        if result.promoted and result.new_primary != self.primary:
            logger.info("[Monitor] Now following new primary %s", result.new_primary)
            self.prober.follow(self.primary, result.new_primary)
            self.primary = result.new_primary
            self.refresh()
        return result
