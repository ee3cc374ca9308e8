import pytest

from monitoring.health import HealthClass, HealthStatus, classify
from monitoring.node_state import ReplicationState


def state(io=True, sql=True, delay=0):
    return ReplicationState(io_running=io, sql_running=sql, seconds_behind=delay,
                            gtid="0-1-10", source_host="db0")


@pytest.mark.parametrize("replica, expected, label", [
    (state(delay=0), HealthStatus(HealthClass.OK), "Running OK"),
    (state(delay=2), HealthStatus(HealthClass.LATE, 2), "Running LATE: 2 sec"),
    (state(io=False, sql=True, delay=None), HealthStatus(HealthClass.IO_STOPPED), "NOT OK, IO Stopped"),
    (state(io=True, sql=False, delay=None), HealthStatus(HealthClass.SQL_STOPPED), "NOT OK, SQL Stopped"),
    (state(io=False, sql=False, delay=None), HealthStatus(HealthClass.ALL_STOPPED), "NOT OK, ALL Stopped"),
    # a missing delay with both threads running still counts as stopped
    (state(io=True, sql=True, delay=None), HealthStatus(HealthClass.ALL_STOPPED), "NOT OK, ALL Stopped"),
])
def test_classify(replica, expected, label):
    status = classify(replica)
    assert status == expected
    assert status.label == label


def test_delay_wins_over_thread_flags():
    # a reported delay means replication is applying, whatever the flags say
    assert classify(state(io=False, sql=True, delay=0)).kind == HealthClass.OK


def test_only_ok_is_ok():
    assert classify(state(delay=0)).is_ok
    assert not classify(state(delay=1)).is_ok


def test_negative_delay_is_rejected():
    with pytest.raises(ValueError):
        state(delay=-1)
