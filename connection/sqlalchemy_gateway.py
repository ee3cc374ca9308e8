import logging
from typing import Any, Dict, List, Mapping, Optional

from sqlalchemy import text
from sqlalchemy.engine import Connection
from sqlalchemy.exc import SQLAlchemyError

from connection.engine_factory import EngineFactory
from connection.gateway import (
    AdminExecError,
    GatewayConnectionError,
    GatewayError,
    INodeGateway,
    NotAReplicaError,
)
from connection.node_address import NodeAddress
from monitoring.node_state import ReplicationState
from replication.commands import AdminResultError

logger = logging.getLogger(__name__)

VARIABLES_QUERY = (
    "SELECT variable_name, variable_value "
    "FROM information_schema.global_variables"
)
VARIABLE_QUERY = (
    "SELECT variable_value FROM information_schema.global_variables "
    "WHERE variable_name = :name"
)
STATUS_QUERY = (
    "SELECT variable_value FROM information_schema.global_status "
    "WHERE variable_name = :name"
)
LONG_WRITES_QUERY = (
    "SELECT COUNT(*) FROM information_schema.processlist "
    "WHERE command = 'Query' AND time >= :threshold AND info NOT LIKE 'select%'"
)
CONSUMERS_QUERY = (
    "SELECT host FROM information_schema.processlist "
    "WHERE command LIKE 'Binlog Dump%'"
)


class NodeHandle:
    """
    One open session on one node. Session scoped state (the global read
    lock taken by FLUSH TABLES WITH READ LOCK) lives as long as the handle.
    """
    def __init__(self, address: NodeAddress, connection: Connection):
        self.address = address
        self.connection = connection

    def __repr__(self):
        return f"<NodeHandle {self.address}>"


def _yes(value) -> bool:
    if isinstance(value, bytes):
        value = value.decode()
    return str(value or "").strip().lower() == "yes"


def _optional_int(value) -> Optional[int]:
    if value is None or value == "":
        return None
    return int(value)


def replication_state_from_row(row: Mapping[str, Any], variables: Mapping[str, str]) -> ReplicationState:
    """
    Maps a SHOW SLAVE STATUS row plus the node's global variables onto a
    ReplicationState. Variable names are expected upper-cased.
    """
    gtid = variables.get("GTID_CURRENT_POS") or row.get("Gtid_IO_Pos") or ""
    return ReplicationState(
        io_running=_yes(row.get("Slave_IO_Running")),
        sql_running=_yes(row.get("Slave_SQL_Running")),
        seconds_behind=_optional_int(row.get("Seconds_Behind_Master")),
        gtid=str(gtid),
        source_host=str(row.get("Master_Host") or ""),
        source_port=_optional_int(row.get("Master_Port")),
        using_gtid=str(row.get("Using_Gtid") or ""),
        log_bin=str(variables.get("LOG_BIN", "ON")).upper() != "OFF",
    )


class SQLAlchemyNodeGateway(INodeGateway):
    def __init__(self, engine_factory: EngineFactory):
        self.engine_factory = engine_factory

    def connect(self, address: NodeAddress) -> NodeHandle:
        try:
            connection = self.engine_factory.engine_for(address).connect()
        except SQLAlchemyError as e:
            raise GatewayConnectionError(address, str(e.__cause__ or e))
        return NodeHandle(address, connection)

    def close(self, handle: NodeHandle):
        try:
            handle.connection.close()
        except SQLAlchemyError as e:
            logger.warning("[Gateway] Error closing session on %s: %s", handle.address, e)

    def ping(self, handle: NodeHandle) -> bool:
        try:
            handle.connection.exec_driver_sql("SELECT 1")
            return True
        except SQLAlchemyError:
            return False

    def _scalar(self, handle: NodeHandle, sql: str, params: Dict[str, Any]):
        try:
            return handle.connection.execute(text(sql), params).scalar()
        except SQLAlchemyError as e:
            raise GatewayError(handle.address, str(e.__cause__ or e))

    def read_all_variables(self, handle: NodeHandle) -> Dict[str, str]:
        try:
            rows = handle.connection.execute(text(VARIABLES_QUERY)).all()
        except SQLAlchemyError as e:
            raise GatewayError(handle.address, str(e.__cause__ or e))
        return {str(name).upper(): value for name, value in rows}

    def read_variable(self, handle: NodeHandle, name: str) -> str:
        value = self._scalar(handle, VARIABLE_QUERY, {"name": name.upper()})
        return "" if value is None else str(value)

    def read_status(self, handle: NodeHandle, name: str) -> str:
        value = self._scalar(handle, STATUS_QUERY, {"name": name.upper()})
        return "" if value is None else str(value)

    def read_replication_state(self, handle: NodeHandle) -> ReplicationState:
        try:
            row = handle.connection.exec_driver_sql("SHOW SLAVE STATUS").mappings().first()
        except SQLAlchemyError as e:
            raise GatewayError(handle.address, str(e.__cause__ or e))
        if row is None:
            raise NotAReplicaError(handle.address, "server is not a replica")
        return replication_state_from_row(row, self.read_all_variables(handle))

    def exec_admin(self, handle: NodeHandle, command) -> None:
        sql, params = command.statement()
        logger.debug("[Gateway] %s on %s", command.name, handle.address)
        try:
            result = handle.connection.execute(text(sql), params)
            if result.returns_rows:
                command.check_result(result.scalar())
        except SQLAlchemyError as e:
            raise AdminExecError(handle.address, command, str(e.__cause__ or e))
        except AdminResultError as e:
            raise AdminExecError(handle.address, command, str(e))

    def count_long_running_writes(self, handle: NodeHandle, age_threshold_seconds: int) -> int:
        return int(self._scalar(handle, LONG_WRITES_QUERY, {"threshold": age_threshold_seconds}) or 0)

    def list_replication_consumers(self, handle: NodeHandle) -> List[str]:
        try:
            rows = handle.connection.execute(text(CONSUMERS_QUERY)).all()
        except SQLAlchemyError as e:
            raise GatewayError(handle.address, str(e.__cause__ or e))
        return [str(row[0]) for row in rows]
