"""
Chat API routes for message handling.
"""
import logging

from fastapi import APIRouter, Depends

from ..dependencies import get_agent, get_request_id
from ...agents import CustomerSupportAgent
from ...models.schemas import ChatRequest, ChatResponse

logger = logging.getLogger(__name__)

router = APIRouter()


@router.post("/chat", response_model=ChatResponse)
async def chat(
    request: ChatRequest,
    agent: CustomerSupportAgent = Depends(get_agent),
    request_id: str = Depends(get_request_id)
):
    """
    Send a message and receive a response.

    The session is registered on first contact. Both the user message and
    the reply are recorded in the session history.

    Returns:
        Resolution with escalation status
    """
    turn = await agent.process_message(
        session_id=request.session_id,
        message=request.message,
        request_id=request_id
    )
    resolution = turn.resolution

    if turn.escalated:
        logger.info(
            f"Session {turn.session_id} auto-escalated",
            extra={"session_id": turn.session_id, "request_id": request_id}
        )

    return ChatResponse(
        response=resolution.response_text,
        source=resolution.source,
        session_id=turn.session_id,
        escalated=turn.escalated,
        needs_escalation=resolution.needs_escalation,
        confidence=resolution.confidence.value,
        faq_matched=resolution.faq_matched,
        faq_id=resolution.matched_faq_id,
        escalation_reason=(
            resolution.escalation_reason.value if resolution.escalation_reason else None
        ),
        processing_time=turn.metadata.get("processing_time")
    )
