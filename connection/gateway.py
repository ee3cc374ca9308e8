'''
Node gateway: the only way the monitor talks to a database node.
The monitor core treats a handle as opaque and never builds SQL itself;
administrative actions travel as AdminCommand values.
'''

from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Dict, List

from connection.node_address import NodeAddress
from monitoring.node_state import ReplicationState


class GatewayError(Exception):
    def __init__(self, address, message: str):
        super().__init__(f"{address}: {message}")
        self.address = address
        self.message = message


class GatewayConnectionError(GatewayError):
    pass


class NotAReplicaError(GatewayError):
    pass


class AdminExecError(GatewayError):
    def __init__(self, address, command, message: str):
        super().__init__(address, f"{command.name} failed: {message}")
        self.command = command


@dataclass(frozen=True)
class Credentials:
    user: str
    password: str = ""

    def __repr__(self):
        return f"Credentials(user={self.user!r}, password='***')"


class INodeGateway(ABC):
    @abstractmethod
    def connect(self, address: NodeAddress):
        """Open a session on the node. Raises GatewayConnectionError."""
        pass

    @abstractmethod
    def close(self, handle):
        pass

    @abstractmethod
    def ping(self, handle) -> bool:
        pass

    @abstractmethod
    def read_replication_state(self, handle) -> ReplicationState:
        """Raises NotAReplicaError when the node has no replication configured."""
        pass

    @abstractmethod
    def read_variable(self, handle, name: str) -> str:
        pass

    @abstractmethod
    def read_all_variables(self, handle) -> Dict[str, str]:
        pass

    @abstractmethod
    def read_status(self, handle, name: str) -> str:
        pass

    @abstractmethod
    def exec_admin(self, handle, command) -> None:
        """Raises AdminExecError."""
        pass

    @abstractmethod
    def count_long_running_writes(self, handle, age_threshold_seconds: int) -> int:
        pass

    @abstractmethod
    def list_replication_consumers(self, handle) -> List[str]:
        """Hosts of the connections currently dumping the binary log."""
        pass
