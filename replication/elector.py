'''
CandidateElector picks the replica to promote. Every replica goes through
the eligibility gates in a fixed order and the first failing gate is
recorded as the reason. Among the eligible replicas the one with the
highest GTID sequence wins; equal sequences are settled by the configured
tie-break policy.
'''

import logging
from dataclasses import dataclass
from typing import List, Optional, Sequence, Tuple, Union

from connection.gateway import GatewayConnectionError, GatewayError, INodeGateway, NotAReplicaError
from connection.node_address import NodeAddress
from monitoring.node_state import replicates_from
from monitoring.topology import TopologySnapshot
from replication.gtid import Gtid, GtidParseError

logger = logging.getLogger(__name__)

TIE_BREAK_POLICIES = ("first", "last")


@dataclass(frozen=True)
class Candidate:
    address: NodeAddress
    eligible: bool
    reason: Optional[str] = None
    sequence: Optional[int] = None
    gtid: str = ""

    def to_dict(self):
        return {
            "address": str(self.address),
            "eligible": self.eligible,
            "reason": self.reason,
            "sequence": self.sequence,
            "gtid": self.gtid,
        }


@dataclass(frozen=True)
class NoneEligible:
    verdicts: Tuple[Candidate, ...] = ()

    @property
    def reason(self) -> str:
        if not self.verdicts:
            return "no replicas known"
        return "; ".join(f"{v.address}: {v.reason}" for v in self.verdicts)


def _ineligible(address: NodeAddress, reason: str, gtid: str = "") -> Candidate:
    logger.warning("[Elector] %s cannot be a candidate: %s", address, reason)
    return Candidate(address, eligible=False, reason=reason, gtid=gtid)


class CandidateElector:
    def __init__(self, gateway: INodeGateway, tie_break: str = "first"):
        if tie_break not in TIE_BREAK_POLICIES:
            raise ValueError(f"Unknown tie-break policy '{tie_break}'")
        self.gateway = gateway
        self.tie_break = tie_break

    def elect(self, topology: TopologySnapshot, primary_handle) -> Union[Candidate, NoneEligible]:
        return self.pick(self.evaluate(topology, primary_handle))

    def evaluate(self, topology: TopologySnapshot, primary_handle) -> List[Candidate]:
        """Runs the eligibility gates on every replica of the snapshot, in enumeration order."""
        try:
            primary_gtid = self.gateway.read_variable(primary_handle, "GTID_BINLOG_POS")
        except GatewayError as e:
            logger.error("[Elector] Cannot read GTID position of primary %s: %s", topology.primary, e.message)
            return [_ineligible(a, "primary GTID position unavailable") for a in topology.replicas]

        logger.info("[Elector] Processing %d candidates against primary GTID %s",
                    len(topology.replicas), primary_gtid)
        return [self._check(address, topology.primary, primary_gtid) for address in topology.replicas]

    def _check(self, address: NodeAddress, primary: NodeAddress, primary_gtid: str) -> Candidate:
        try:
            handle = self.gateway.connect(address)
        except GatewayConnectionError as e:
            return _ineligible(address, f"unreachable: {e.message}")

        try:
            if not self.gateway.ping(handle):
                return _ineligible(address, "unreachable: ping failed")

            if self.gateway.read_variable(handle, "LOG_BIN").upper() == "OFF":
                return _ineligible(address, "binary log disabled")

            try:
                state = self.gateway.read_replication_state(handle)
            except NotAReplicaError:
                return _ineligible(address, "not a replica")
            if not replicates_from(state, primary):
                return _ineligible(address, f"replicates from {state.source_host}, not from {primary}")

            gtid = self.gateway.read_variable(handle, "GTID_CURRENT_POS")
            if gtid != primary_gtid:
                return _ineligible(address, f"not in sync (replica {gtid or '-'}, primary {primary_gtid or '-'})", gtid)
        except GatewayError as e:
            return _ineligible(address, f"query failed: {e.message}")
        finally:
            self.gateway.close(handle)

        try:
            parsed = Gtid.parse(gtid)
            if not parsed.same_domain(Gtid.parse(primary_gtid)):
                return _ineligible(address, f"GTID domain {parsed.domain} differs from primary", gtid)
        except GtidParseError as e:
            return _ineligible(address, f"malformed GTID: {e}", gtid)

        logger.info("[Elector] %s is eligible at sequence %d", address, parsed.sequence)
        return Candidate(address, eligible=True, sequence=parsed.sequence, gtid=gtid)

    def pick(self, verdicts: Sequence[Candidate]) -> Union[Candidate, NoneEligible]:
        best = None
        for verdict in verdicts:
            if not verdict.eligible:
                continue
            if best is None or verdict.sequence > best.sequence:
                best = verdict
            elif verdict.sequence == best.sequence and self.tie_break == "last":
                best = verdict

        if best is None:
            logger.error("[Elector] No suitable candidates found")
            return NoneEligible(tuple(verdicts))
        logger.info("[Elector] %s elected at sequence %d", best.address, best.sequence)
        return best
