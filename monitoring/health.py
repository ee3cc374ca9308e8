'''
Health evaluation of a single replica. classify() is a pure function of the
ReplicationState: no I/O, same input -> same output.
'''

from dataclasses import dataclass
from enum import Enum
from typing import Optional

from monitoring.node_state import ReplicationState


class HealthClass(Enum):
    OK = "ok"
    LATE = "late"
    IO_STOPPED = "io_stopped"
    SQL_STOPPED = "sql_stopped"
    ALL_STOPPED = "all_stopped"


@dataclass(frozen=True)
class HealthStatus:
    kind: HealthClass
    delay: Optional[int] = None  # only set for LATE

    @property
    def is_ok(self) -> bool:
        return self.kind == HealthClass.OK

    @property
    def label(self) -> str:
        if self.kind == HealthClass.OK:
            return "Running OK"
        if self.kind == HealthClass.LATE:
            return f"Running LATE: {self.delay} sec"
        if self.kind == HealthClass.IO_STOPPED:
            return "NOT OK, IO Stopped"
        if self.kind == HealthClass.SQL_STOPPED:
            return "NOT OK, SQL Stopped"
        return "NOT OK, ALL Stopped"

    def __str__(self):
        return self.label


def classify(state: ReplicationState) -> HealthStatus:
    if state.seconds_behind is None:
        if state.sql_running and not state.io_running:
            return HealthStatus(HealthClass.IO_STOPPED)
        if state.io_running and not state.sql_running:
            return HealthStatus(HealthClass.SQL_STOPPED)
        # a null delay with both threads running is reported as stopped too
        return HealthStatus(HealthClass.ALL_STOPPED)

    if state.seconds_behind > 0:
        return HealthStatus(HealthClass.LATE, state.seconds_behind)

    return HealthStatus(HealthClass.OK)
