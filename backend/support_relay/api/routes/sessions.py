"""
Session management API routes.
"""
import logging
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException

from ..dependencies import get_agent
from ...agents import CustomerSupportAgent
from ...models.schemas import (
    DeleteSessionResponse,
    EscalateRequest,
    EscalateResponse,
    EscalationStatus,
    NewSessionResponse,
    SessionDetail,
    SessionDetailResponse,
    SessionListResponse,
    SessionSummary
)

logger = logging.getLogger(__name__)

router = APIRouter()


def _not_found(session_id: str) -> HTTPException:
    return HTTPException(status_code=404, detail=f"Session not found: {session_id}")


@router.post("/session/new", response_model=NewSessionResponse)
async def create_session(agent: CustomerSupportAgent = Depends(get_agent)):
    """Create a new session with a generated id."""
    session = await agent.new_session()
    return NewSessionResponse(session_id=session.session_id)


@router.get("/session/{session_id}", response_model=SessionDetailResponse)
async def get_session(
    session_id: str,
    agent: CustomerSupportAgent = Depends(get_agent)
):
    """
    Get session metadata and full conversation.

    Raises:
        HTTPException: 404 if the session is unknown
    """
    detail = await agent.get_session_detail(session_id)
    if detail is None:
        raise _not_found(session_id)

    return SessionDetailResponse(session=SessionDetail.from_active(detail))


@router.delete("/session/{session_id}", response_model=DeleteSessionResponse)
async def end_session(
    session_id: str,
    agent: CustomerSupportAgent = Depends(get_agent)
):
    """
    End a session and delete its history.

    Raises:
        HTTPException: 404 if the session is unknown
    """
    if not await agent.end_session(session_id):
        raise _not_found(session_id)

    logger.info(f"Session {session_id} ended", extra={"session_id": session_id})
    return DeleteSessionResponse()


@router.post("/session/{session_id}/escalate", response_model=EscalateResponse)
async def escalate_session(
    session_id: str,
    request: Optional[EscalateRequest] = None,
    agent: CustomerSupportAgent = Depends(get_agent)
):
    """
    Escalate a session to a human agent.

    Escalating twice is not an error; the response reports
    ``already_escalated`` and keeps the original reason.

    Raises:
        HTTPException: 404 if the session is unknown
    """
    reason = request.reason if request else None
    outcome = await agent.escalate_session(session_id, reason)
    if outcome is None:
        raise _not_found(session_id)

    session = outcome.session
    return EscalateResponse(
        message=(
            "Session already escalated" if outcome.already_escalated
            else "Session escalated successfully"
        ),
        already_escalated=outcome.already_escalated,
        session=EscalationStatus(
            session_id=session.session_id,
            escalated=session.escalated,
            escalation_reason=session.escalation_reason,
            escalation_time=session.escalation_time
        ),
        summary=await agent.handoff_summary(session_id)
    )


@router.get("/sessions", response_model=SessionListResponse)
async def list_sessions(agent: CustomerSupportAgent = Depends(get_agent)):
    """List registered sessions with message counts."""
    sessions = await agent.list_sessions()
    return SessionListResponse(
        sessions=[SessionSummary.from_active(s) for s in sessions],
        total=len(sessions)
    )
