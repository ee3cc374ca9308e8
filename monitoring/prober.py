'''
TopologyProber finds the replicas attached to a primary and reads the raw
replication facts of each one. A node that cannot be queried is reported
as Unreachable and probing goes on with the rest of the topology.
'''

import logging
from typing import List, Sequence, Union

from connection.gateway import GatewayConnectionError, GatewayError, INodeGateway, NotAReplicaError
from connection.node_address import DEFAULT_PORT, NodeAddress
from monitoring.health import classify
from monitoring.node_state import NotAReplica, ReplicationState, Unreachable, replicates_from
from monitoring.topology import NodeEntry, TopologySnapshot

logger = logging.getLogger(__name__)

DISCOVERY_MODES = ("processlist", "static")

ProbeResult = Union[ReplicationState, Unreachable, NotAReplica]


class TopologyProber:
    def __init__(self, gateway: INodeGateway, discovery: str = "processlist",
                 replicas: Sequence[NodeAddress] = (), replica_port: int = DEFAULT_PORT):
        if discovery not in DISCOVERY_MODES:
            raise ValueError(f"Unknown discovery mode '{discovery}'")
        self.gateway = gateway
        self.discovery = discovery
        self.replicas = tuple(replicas)
        self.replica_port = replica_port

    def follow(self, old_primary: NodeAddress, new_primary: NodeAddress):
        """
        Swaps roles in the static replica list after a promotion: the new primary
        leaves the list and the demoted one takes its place.
        """
        if self.discovery != "static":
            return
        replicas = []
        for address in self.replicas:
            address = old_primary if address == new_primary else address
            if address not in replicas:
                replicas.append(address)
        if old_primary not in replicas:
            replicas.append(old_primary)
        self.replicas = tuple(replicas)
        logger.info("[Prober] Replica list is now %s", ", ".join(str(a) for a in self.replicas))

    def discover(self, primary: NodeAddress) -> List[NodeAddress]:
        """
        Addresses of the replicas attached to `primary`. Never raises: an empty
        list means no topology is known.
        """
        if self.discovery == "static":
            return list(self.replicas)

        try:
            handle = self.gateway.connect(primary)
        except GatewayConnectionError as e:
            logger.warning("[Prober] Cannot reach primary %s for discovery: %s", primary, e.message)
            return []
        try:
            hosts = self.gateway.list_replication_consumers(handle)
        except GatewayError as e:
            logger.warning("[Prober] Discovery query failed on %s: %s", primary, e.message)
            return []
        finally:
            self.gateway.close(handle)

        found = []
        for entry in hosts:
            # the process list gives the replica's client port, not its server port
            host = entry.rpartition(":")[0] if ":" in entry else entry
            address = NodeAddress(host, self.replica_port)
            if address not in found:
                found.append(address)
        if not found:
            logger.warning("[Prober] No replicas found attached to %s", primary)
        return found

    def snapshot(self, node: NodeAddress) -> ProbeResult:
        try:
            handle = self.gateway.connect(node)
        except GatewayConnectionError as e:
            logger.warning("[Prober] Replica %s is unreachable: %s", node, e.message)
            return Unreachable(e.message)
        try:
            return self.gateway.read_replication_state(handle)
        except NotAReplicaError as e:
            logger.warning("[Prober] %s is not a replica", node)
            return NotAReplica(e.message)
        except GatewayError as e:
            logger.warning("[Prober] Cannot read replication state of %s: %s", node, e.message)
            return Unreachable(e.message)
        finally:
            self.gateway.close(handle)

    def probe(self, primary: NodeAddress) -> TopologySnapshot:
        warnings = []
        primary_gtid = ""
        strict_mode = ""
        try:
            handle = self.gateway.connect(primary)
            try:
                variables = self.gateway.read_all_variables(handle)
                primary_gtid = variables.get("GTID_BINLOG_POS", "")
                strict_mode = variables.get("GTID_STRICT_MODE", "")
            finally:
                self.gateway.close(handle)
        except GatewayError as e:
            logger.warning("[Prober] Cannot read primary %s: %s", primary, e.message)
            warnings.append(f"primary unreachable: {e.message}")

        entries = []
        for address in self.discover(primary):
            entries.append(self._entry(address, primary, self.snapshot(address)))

        if not entries:
            warnings.append("no replicas known")
        return TopologySnapshot(
            primary=primary,
            entries=tuple(entries),
            primary_gtid=primary_gtid,
            gtid_strict_mode=strict_mode,
            warnings=tuple(warnings),
        )

    def _entry(self, address: NodeAddress, primary: NodeAddress, result: ProbeResult) -> NodeEntry:
        if isinstance(result, Unreachable):
            return NodeEntry(address, warnings=(f"unreachable: {result.reason}",), role="unreachable")
        if isinstance(result, NotAReplica):
            return NodeEntry(address, warnings=(f"not a replica: {result.reason}",), role="not_replica")

        warnings = []
        if not replicates_from(result, primary):
            warnings.append(f"replicating from {result.source_host}, not from {primary}")
        if not result.log_bin:
            warnings.append("binary log disabled")
        return NodeEntry(address, state=result, health=classify(result), warnings=tuple(warnings))
