'''
SwitchoverOrchestrator performs a planned primary handover.

Stages run strictly forward:
    PRECHECK -> ELECT -> QUIESCE -> PROMOTE -> REWIRE -> RESUME -> COMPLETE
ABORTED can only be reached from PRECHECK or ELECT, before any node has been
changed. Once the read lock has been requested on the primary, the unlock in
RESUME runs on every exit path. Failures after QUIESCE are never rolled back:
they are recorded per node and flagged for the operator.
'''

import logging
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import List, Optional, Tuple

from connection.gateway import AdminExecError, Credentials, GatewayConnectionError, GatewayError, INodeGateway
from connection.node_address import NodeAddress
from monitoring.topology import TopologySnapshot
from replication.commands import (
    AcquireReadLock,
    ChangeSource,
    FlushNoLog,
    ReleaseReadLock,
    ResetReplica,
    SetReadOnly,
    StartReplica,
    StopReplica,
    WaitForGtid,
)
from replication.elector import Candidate, CandidateElector, NoneEligible

logger = logging.getLogger(__name__)


class Stage(Enum):
    PRECHECK = "precheck"
    ELECT = "elect"
    QUIESCE = "quiesce"
    PROMOTE = "promote"
    REWIRE = "rewire"
    RESUME = "resume"
    COMPLETE = "complete"
    ABORTED = "aborted"


@dataclass(frozen=True)
class SwitchoverSettings:
    replication_credentials: Credentials
    long_write_threshold: int = 10
    gtid_wait_timeout: float = 30.0
    demote_old_primary: bool = True


@dataclass(frozen=True)
class SwitchoverPlan:
    """
    Replica set frozen when the run starts; nodes attached later are ignored.
    `stale` lists the nodes of the snapshot that do not replicate from the
    old primary. They are left untouched and reported for follow-up.
    """
    candidate: Candidate
    replicas: Tuple[NodeAddress, ...]
    stale: Tuple[NodeAddress, ...] = ()

    @property
    def others(self) -> Tuple[NodeAddress, ...]:
        return tuple(a for a in self.replicas if a != self.candidate.address and a not in self.stale)


@dataclass
class NodeOutcome:
    address: NodeAddress
    role: str  # old_primary | candidate | replica
    ok: bool = True
    commands: List[dict] = field(default_factory=list)
    failed_command: Optional[dict] = None
    error: Optional[str] = None
    follow_up: bool = False

    def fail(self, error: str, command=None):
        self.ok = False
        self.follow_up = True
        self.error = error
        if command is not None:
            self.failed_command = command.serialize()

    def to_dict(self):
        return {
            "address": str(self.address),
            "role": self.role,
            "ok": self.ok,
            "commands": list(self.commands),
            "failed_command": self.failed_command,
            "error": self.error,
            "follow_up": self.follow_up,
        }


@dataclass
class SwitchoverResult:
    old_primary: NodeAddress
    stage: Stage = Stage.PRECHECK
    aborted_at: Optional[Stage] = None
    reason: Optional[str] = None
    candidate: Optional[Candidate] = None
    promoted: bool = False
    verdicts: List[Candidate] = field(default_factory=list)
    outcomes: List[NodeOutcome] = field(default_factory=list)
    failed_stages: List[Stage] = field(default_factory=list)
    started_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))
    finished_at: Optional[datetime] = None

    @property
    def aborted(self) -> bool:
        return self.stage == Stage.ABORTED

    @property
    def partial_failure(self) -> bool:
        return not self.aborted and (bool(self.failed_stages) or any(not o.ok for o in self.outcomes))

    @property
    def new_primary(self) -> NodeAddress:
        if self.promoted and self.candidate is not None:
            return self.candidate.address
        return self.old_primary

    @property
    def follow_ups(self) -> List[NodeOutcome]:
        return [o for o in self.outcomes if o.follow_up]

    def outcome_for(self, address: NodeAddress, role: str) -> NodeOutcome:
        for outcome in self.outcomes:
            if outcome.address == address:
                return outcome
        outcome = NodeOutcome(address, role)
        self.outcomes.append(outcome)
        return outcome

    def mark_failed(self, stage: Stage):
        if stage not in self.failed_stages:
            self.failed_stages.append(stage)

    def to_dict(self):
        return {
            "old_primary": str(self.old_primary),
            "new_primary": str(self.new_primary),
            "stage": self.stage.value,
            "aborted": self.aborted,
            "aborted_at": self.aborted_at.value if self.aborted_at else None,
            "reason": self.reason,
            "partial_failure": self.partial_failure,
            "candidate": self.candidate.to_dict() if self.candidate else None,
            "verdicts": [v.to_dict() for v in self.verdicts],
            "outcomes": [o.to_dict() for o in self.outcomes],
            "failed_stages": [s.value for s in self.failed_stages],
            "started_at": self.started_at.isoformat(),
            "finished_at": self.finished_at.isoformat() if self.finished_at else None,
        }


class SwitchoverOrchestrator:
    def __init__(self, gateway: INodeGateway, elector: CandidateElector,
                 settings: SwitchoverSettings, journal=None):
        self.gateway = gateway
        self.elector = elector
        self.settings = settings
        self.journal = journal

    def run(self, topology: TopologySnapshot) -> SwitchoverResult:
        result = SwitchoverResult(old_primary=topology.primary)
        logger.info("[Switchover] Starting switchover of primary %s", topology.primary)
        try:
            self._run(topology, result)
        finally:
            result.finished_at = datetime.now(timezone.utc)
            if self.journal is not None:
                self.journal.record(result)
        return result

    def _run(self, topology: TopologySnapshot, result: SwitchoverResult):
        self._enter(result, Stage.PRECHECK)
        try:
            handle = self.gateway.connect(topology.primary)
        except GatewayConnectionError as e:
            self._abort(result, f"primary unreachable: {e.message}")
            return

        try:
            if not self._precheck(handle, topology, result):
                return
            plan = self._elect(handle, topology, result)
            if plan is None:
                return
            self._handover(handle, plan, result)
        finally:
            self.gateway.close(handle)

    # ----------------------
    # Safe stages, nothing changed yet
    # ----------------------
    def _precheck(self, handle, topology: TopologySnapshot, result: SwitchoverResult) -> bool:
        if topology.is_empty:
            self._abort(result, "no replicas known for this primary")
            return False

        primary = result.outcome_for(topology.primary, "old_primary")
        logger.info("[Switchover] Flushing tables on primary")
        if not self._exec(handle, FlushNoLog(), primary, fatal=False):
            logger.warning("[Switchover] Could not flush tables on primary %s", topology.primary)

        logger.info("[Switchover] Checking long running writes on primary")
        threshold = self.settings.long_write_threshold
        try:
            writes = self.gateway.count_long_running_writes(handle, threshold)
        except GatewayError as e:
            self._abort(result, f"cannot check long running writes: {e.message}")
            return False
        if writes > 0:
            self._abort(result, f"{writes} write(s) running for more than {threshold}s on primary")
            return False
        return True

    def _elect(self, handle, topology: TopologySnapshot, result: SwitchoverResult) -> Optional[SwitchoverPlan]:
        self._enter(result, Stage.ELECT)
        result.verdicts = self.elector.evaluate(topology, handle)
        choice = self.elector.pick(result.verdicts)
        if isinstance(choice, NoneEligible):
            self._abort(result, f"no eligible candidate ({choice.reason})")
            return None
        result.candidate = choice
        logger.info("[Switchover] Replica %s has been elected as the new primary", choice.address)
        replicas = tuple(a for a in topology.replicas if a != topology.primary)
        stale = tuple(
            e.address for e in topology.entries
            if e.address in replicas and e.address != choice.address and not e.attached_to(topology.primary)
        )
        return SwitchoverPlan(candidate=choice, replicas=replicas, stale=stale)

    # ----------------------
    # Forward-only stages
    # ----------------------
    def _handover(self, handle, plan: SwitchoverPlan, result: SwitchoverResult):
        primary = result.outcome_for(result.old_primary, "old_primary")
        self._enter(result, Stage.QUIESCE)
        logger.info("[Switchover] Rejecting writes on primary %s", result.old_primary)
        try:
            if self._exec(handle, AcquireReadLock(), primary):
                self._enter(result, Stage.PROMOTE)
                result.promoted = self._promote(handle, plan, result)
                if not result.promoted:
                    result.mark_failed(Stage.PROMOTE)

                self._enter(result, Stage.REWIRE)
                if result.promoted:
                    self._rewire(handle, plan, result)
                else:
                    # the old primary must stay writable when nobody else was promoted
                    logger.error("[Switchover] Promotion of %s failed, %s keeps the primary role",
                                 plan.candidate.address, result.old_primary)
            else:
                result.mark_failed(Stage.QUIESCE)
                logger.error("[Switchover] Read lock not acquired, skipping promotion and rewiring")
        finally:
            self._enter(result, Stage.RESUME)
            logger.info("[Switchover] Releasing read lock on %s", result.old_primary)
            if not self._exec(handle, ReleaseReadLock(), primary):
                result.mark_failed(Stage.RESUME)
        self._enter(result, Stage.COMPLETE)
        if result.partial_failure:
            logger.error("[Switchover] Completed with failures, follow-up needed on: %s",
                         ", ".join(str(o.address) for o in result.follow_ups))
        else:
            logger.info("[Switchover] Switchover complete, new primary is %s", result.new_primary)

    def _promote(self, primary_handle, plan: SwitchoverPlan, result: SwitchoverResult) -> bool:
        address = plan.candidate.address
        outcome = result.outcome_for(address, "candidate")
        try:
            target = self.gateway.read_variable(primary_handle, "GTID_BINLOG_POS")
        except GatewayError as e:
            outcome.fail(f"cannot read primary GTID position: {e.message}")
            return False

        try:
            candidate = self.gateway.connect(address)
        except GatewayConnectionError as e:
            outcome.fail(f"unreachable: {e.message}")
            logger.error("[Switchover] Cannot connect to candidate %s: %s", address, e.message)
            return False

        try:
            logger.info("[Switchover] Waiting for %s to apply %s", address, target)
            steps = (
                WaitForGtid(target, self.settings.gtid_wait_timeout),
                StopReplica(),
                ResetReplica(),
                SetReadOnly(False),
            )
            return all(self._exec(candidate, command, outcome) for command in steps)
        finally:
            self.gateway.close(candidate)

    def _rewire(self, primary_handle, plan: SwitchoverPlan, result: SwitchoverResult):
        new_primary = plan.candidate.address
        credentials = self.settings.replication_credentials
        change_source = ChangeSource(new_primary.host, new_primary.port, credentials.user, credentials.password)

        logger.info("[Switchover] Switching old primary %s to replicate from %s", result.old_primary, new_primary)
        steps = [change_source, StartReplica()]
        if self.settings.demote_old_primary:
            steps.insert(0, SetReadOnly(True))
        old_primary = result.outcome_for(result.old_primary, "old_primary")
        if not all(self._exec(primary_handle, command, old_primary) for command in steps):
            result.mark_failed(Stage.REWIRE)

        for address in plan.stale:
            logger.error("[Switchover] %s does not replicate from %s, leaving it untouched", address, result.old_primary)
            result.outcome_for(address, "replica").fail(f"not replicating from {result.old_primary}, not rewired")
            result.mark_failed(Stage.REWIRE)

        for address in plan.others:
            outcome = result.outcome_for(address, "replica")
            try:
                handle = self.gateway.connect(address)
            except GatewayConnectionError as e:
                logger.error("[Switchover] Could not connect to replica %s: %s", address, e.message)
                outcome.fail(f"unreachable: {e.message}")
                result.mark_failed(Stage.REWIRE)
                continue
            try:
                logger.info("[Switchover] Changing source on replica %s", address)
                steps = (StopReplica(), change_source, StartReplica())
                if not all(self._exec(handle, command, outcome) for command in steps):
                    result.mark_failed(Stage.REWIRE)
            finally:
                self.gateway.close(handle)

    # ----------------------
    # Helpers
    # ----------------------
    def _exec(self, handle, command, outcome: NodeOutcome, fatal: bool = True) -> bool:
        outcome.commands.append(command.serialize())
        try:
            self.gateway.exec_admin(handle, command)
            return True
        except AdminExecError as e:
            if fatal:
                logger.error("[Switchover] %s", e)
                outcome.fail(e.message, command)
            return False

    def _enter(self, result: SwitchoverResult, stage: Stage):
        result.stage = stage
        logger.info("[Switchover] Stage %s", stage.name)

    def _abort(self, result: SwitchoverResult, reason: str):
        result.aborted_at = result.stage
        result.stage = Stage.ABORTED
        result.reason = reason
        logger.error("[Switchover] Aborted during %s: %s", result.aborted_at.name, reason)
