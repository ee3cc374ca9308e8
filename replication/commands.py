'''
Administrative commands used by the switchover: flush, lock/unlock,
replica thread control, replica reset, read_only flag, source change and
GTID catch-up wait.
'''
from replication.command import AdminCommand

GTID_MODES = ("current_pos", "slave_pos", "no")


class AdminResultError(Exception):
    pass


class FlushNoLog(AdminCommand):
    mutating = False

    def statement(self):
        return "FLUSH NO_WRITE_TO_BINLOG TABLES", {}

    def serialize(self):
        return {"type": "flush_no_log"}

    @staticmethod
    def deserialize(data):
        return FlushNoLog()


class AcquireReadLock(AdminCommand):
    def statement(self):
        return "FLUSH TABLES WITH READ LOCK", {}

    def serialize(self):
        return {"type": "acquire_read_lock"}

    @staticmethod
    def deserialize(data):
        return AcquireReadLock()


class ReleaseReadLock(AdminCommand):
    def statement(self):
        return "UNLOCK TABLES", {}

    def serialize(self):
        return {"type": "release_read_lock"}

    @staticmethod
    def deserialize(data):
        return ReleaseReadLock()


class StopReplica(AdminCommand):
    def statement(self):
        return "STOP SLAVE", {}

    def serialize(self):
        return {"type": "stop_replica"}

    @staticmethod
    def deserialize(data):
        return StopReplica()


class StartReplica(AdminCommand):
    def statement(self):
        return "START SLAVE", {}

    def serialize(self):
        return {"type": "start_replica"}

    @staticmethod
    def deserialize(data):
        return StartReplica()


class ResetReplica(AdminCommand):
    """Drops the whole replication configuration of the node."""

    def statement(self):
        return "RESET SLAVE ALL", {}

    def serialize(self):
        return {"type": "reset_replica"}

    @staticmethod
    def deserialize(data):
        return ResetReplica()


class SetReadOnly(AdminCommand):
    def __init__(self, read_only: bool):
        self.read_only = bool(read_only)

    @property
    def write_enabled(self) -> bool:
        return not self.read_only

    def statement(self):
        return "SET GLOBAL read_only = :flag", {"flag": 1 if self.read_only else 0}

    def serialize(self):
        return {"type": "set_read_only", "read_only": self.read_only}

    @staticmethod
    def deserialize(data):
        return SetReadOnly(data["read_only"])


class ChangeSource(AdminCommand):
    """
    Points a node's replication at a new source and resumes from the
    GTID position it already has.
    """
    def __init__(self, host: str, port: int, user: str, password: str = "", use_gtid: str = "current_pos"):
        if use_gtid not in GTID_MODES:
            raise ValueError(f"Unknown GTID mode '{use_gtid}'")
        self.host = host
        self.port = int(port)
        self.user = user
        self.password = password
        self.use_gtid = use_gtid

    def statement(self):
        # master_use_gtid takes a keyword, not a string literal
        sql = (
            "CHANGE MASTER TO master_host = :host, master_port = :port, "
            "master_user = :user, master_password = :password, "
            f"master_use_gtid = {self.use_gtid}"
        )
        return sql, {"host": self.host, "port": self.port, "user": self.user, "password": self.password}

    def serialize(self):
        # the password never goes to the journal
        return {
            "type": "change_source",
            "host": self.host,
            "port": self.port,
            "user": self.user,
            "use_gtid": self.use_gtid,
        }

    @staticmethod
    def deserialize(data):
        return ChangeSource(data["host"], data["port"], data["user"], "", data.get("use_gtid", "current_pos"))


class WaitForGtid(AdminCommand):
    """Blocks until the node has applied `gtid`, or the timeout expires."""
    mutating = False

    def __init__(self, gtid: str, timeout: float):
        self.gtid = gtid
        self.timeout = float(timeout)

    def statement(self):
        return "SELECT MASTER_GTID_WAIT(:gtid, :timeout)", {"gtid": self.gtid, "timeout": self.timeout}

    def check_result(self, value):
        if value is None:
            raise AdminResultError(f"MASTER_GTID_WAIT returned NULL for {self.gtid}")
        if int(value) != 0:
            raise AdminResultError(f"Timed out after {self.timeout}s waiting for GTID {self.gtid}")

    def serialize(self):
        return {"type": "wait_for_gtid", "gtid": self.gtid, "timeout": self.timeout}

    @staticmethod
    def deserialize(data):
        return WaitForGtid(data["gtid"], data["timeout"])


COMMAND_TYPES = {
    "flush_no_log": FlushNoLog,
    "acquire_read_lock": AcquireReadLock,
    "release_read_lock": ReleaseReadLock,
    "stop_replica": StopReplica,
    "start_replica": StartReplica,
    "reset_replica": ResetReplica,
    "set_read_only": SetReadOnly,
    "change_source": ChangeSource,
    "wait_for_gtid": WaitForGtid,
}


def deserialize_command(data: dict) -> AdminCommand:
    cls = COMMAND_TYPES.get(data.get("type"))
    if cls is None:
        raise ValueError("Unknown command type")
    return cls.deserialize(data)
