"""
FastAPI endpoints for the replication monitor.

- GET /topology -> latest snapshot of the primary and its replicas, plus active alerts
- POST /switchover -> planned handover of the primary role to the best replica
- GET /health/replica?node=host:port -> load balancer check for a replica
- GET /health/galera?node=host:port -> load balancer check for a Galera node
- GET /journal -> recorded switchover runs, nodes still needing follow-up and the commands to re-run
- POST /journal/acknowledge -> mark recorded follow-ups as handled
"""

import asyncio
from typing import Optional

from fastapi import APIRouter, HTTPException, Request
from fastapi.responses import JSONResponse, PlainTextResponse
from pydantic import BaseModel

from connection.node_address import NodeAddress

router = APIRouter()


class SwitchoverRequest(BaseModel):
    # refuse the run when the monitor follows a different primary than the caller expects
    expected_primary: Optional[str] = None


def _get_app_state(request: Request):
    return request.app.state


def _node(value: str) -> NodeAddress:
    try:
        return NodeAddress.parse(value)
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))


@router.get("/topology")
def topology(request: Request):
    state = _get_app_state(request)
    snapshot = state.monitor.current_snapshot()
    body = snapshot.to_dict()
    body["alerts"] = dict(state.alerts.active)
    return body


@router.post("/switchover")
async def switchover(request: Request, payload: Optional[SwitchoverRequest] = None):
    state = _get_app_state(request)
    monitor = state.monitor

    if payload is not None and payload.expected_primary:
        expected = _node(payload.expected_primary)
        if expected != monitor.primary:
            raise HTTPException(
                status_code=409,
                detail=f"Current primary is {monitor.primary}, not {expected}",
            )

    dispatcher = state.dispatcher
    if dispatcher.running:
        result = await dispatcher.request_switchover()
    else:
        result = await asyncio.to_thread(monitor.request_switchover)

    if result.aborted:
        status_code = 409
    elif result.partial_failure:
        status_code = 207
    else:
        status_code = 200
    return JSONResponse(status_code=status_code, content=result.to_dict())


@router.get("/health/replica")
def replica_health(node: str, request: Request):
    verdict = _get_app_state(request).replica_check.check(_node(node))
    return PlainTextResponse(verdict.message, status_code=verdict.status_code)


@router.get("/health/galera")
def galera_health(node: str, request: Request):
    verdict = _get_app_state(request).galera_check.check(_node(node))
    return PlainTextResponse(verdict.message, status_code=verdict.status_code)


@router.get("/journal")
def journal(request: Request):
    journal = _get_app_state(request).journal
    # the command each follow-up node failed on, for the operator to re-run
    retry = [
        {"node": str(address), "command": command.serialize(), "statement": command.statement()[0]}
        for address, command in journal.failed_commands()
    ]
    return {"runs": journal.entries, "follow_ups": journal.follow_ups(), "retry": retry}


@router.post("/journal/acknowledge")
def acknowledge_journal(request: Request):
    journal = _get_app_state(request).journal
    pending = len(journal.follow_ups())
    journal.acknowledge()
    return {"status": "acknowledged", "follow_ups": pending}
