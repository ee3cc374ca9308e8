'''
Galera node responder: a node is in rotation when wsrep_local_state says
Synced (4), or Donor (2) when donors are allowed. With disable_when_read_only
a synced node stays in only while read_only is OFF, so it can be taken out
without desync. Allowed donors stay in whatever their read_only flag.
'''

import logging

from connection.gateway import GatewayConnectionError, GatewayError, INodeGateway
from connection.node_address import NodeAddress
from monitoring.replica_check import CheckVerdict

logger = logging.getLogger(__name__)

WSREP_DONOR = 2
WSREP_SYNCED = 4


class GaleraHealthCheck:
    def __init__(self, gateway: INodeGateway, available_when_donor: bool = False,
                 disable_when_read_only: bool = False):
        self.gateway = gateway
        self.available_when_donor = available_when_donor
        self.disable_when_read_only = disable_when_read_only

    def check(self, address: NodeAddress) -> CheckVerdict:
        try:
            handle = self.gateway.connect(address)
        except GatewayConnectionError as e:
            logger.warning("[GaleraCheck] Can't connect to %s: %s", address, e.message)
            return CheckVerdict(False, "Cannot check cluster state: no connection")

        try:
            read_only = ""
            if self.disable_when_read_only:
                read_only = self.gateway.read_variable(handle, "READ_ONLY").upper()
            raw_state = self.gateway.read_status(handle, "WSREP_LOCAL_STATE")
            state = int(raw_state)
        except GatewayError as e:
            return CheckVerdict(False, f"Cannot check cluster state: {e.message}")
        except ValueError:
            return CheckVerdict(False, f"Cannot check cluster state: unexpected value '{raw_state}'")
        finally:
            self.gateway.close(handle)

        synced = (
            (not self.disable_when_read_only and state == WSREP_SYNCED)
            or (self.available_when_donor and state == WSREP_DONOR)
            # only an explicit OFF keeps a read_only-aware node in rotation
            or (self.disable_when_read_only and read_only == "OFF" and state == WSREP_SYNCED)
        )
        if synced:
            return CheckVerdict(True, "MariaDB Cluster Node is synced.")
        return CheckVerdict(False, "MariaDB Cluster Node is not synced.")
