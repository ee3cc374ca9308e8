'''
Replica health responder for load balancers: a node stays in rotation while
its replication runs and lags no more than max_delay seconds. Stateless,
every check reads the node again.
'''

import logging
from dataclasses import dataclass

from connection.gateway import GatewayConnectionError, GatewayError, INodeGateway, NotAReplicaError
from connection.node_address import NodeAddress

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class CheckVerdict:
    up: bool
    message: str

    @property
    def status_code(self) -> int:
        return 200 if self.up else 503


class ReplicaHealthCheck:
    def __init__(self, gateway: INodeGateway, max_delay: int = 5):
        self.gateway = gateway
        self.max_delay = max_delay

    def check(self, address: NodeAddress) -> CheckVerdict:
        try:
            handle = self.gateway.connect(address)
        except GatewayConnectionError as e:
            logger.warning("[ReplicaCheck] Can't connect to %s: %s", address, e.message)
            return CheckVerdict(False, "503 No connection")

        try:
            state = self.gateway.read_replication_state(handle)
        except (NotAReplicaError, GatewayError) as e:
            logger.warning("[ReplicaCheck] Couldn't get replication status of %s: %s", address, e.message)
            return CheckVerdict(False, "503 No Replication")
        finally:
            self.gateway.close(handle)

        if state.seconds_behind is None:
            # replication is broken or stopped
            return CheckVerdict(False, "503 Broken Replication")
        if state.seconds_behind > self.max_delay:
            return CheckVerdict(False, f"503 Delayed Replication ({state.seconds_behind})")
        return CheckVerdict(True, "200 Health OK")
