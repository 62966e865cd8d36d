"""
State-change event intake router for the JobWatch alert service.

The job-management layer POSTs every monitored job's state change here;
the response is the dispatch report for that event.
"""

from __future__ import annotations

from fastapi import APIRouter, Depends, HTTPException, Request

from jw_common.models import StateChangeEvent

from .dispatcher import AlertDispatcher
from .errors import MalformedEventError
from .report import DispatchReport

router = APIRouter(tags=["events"])


def get_dispatcher(request: Request) -> AlertDispatcher:
    """Return the dispatcher built during startup."""
    return request.app.state.dispatcher


@router.post("/events", response_model=DispatchReport)
async def submit_event(
    event: StateChangeEvent,
    dispatcher: AlertDispatcher = Depends(get_dispatcher),
) -> DispatchReport:
    """Dispatch one state-change event and return its delivery report.

    A malformed event (no start time, or an end before the start) is
    answered with 422 and nothing is sent.
    """
    try:
        return await dispatcher.dispatch(event)
    except MalformedEventError as exc:
        raise HTTPException(status_code=422, detail=exc.reason) from exc
