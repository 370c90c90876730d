"""
FastAPI dependencies.
Components are built once in the application lifespan and read from
``app.state``.
"""
from fastapi import HTTPException, Request

from ..agents import CustomerSupportAgent
from ..faq import FAQIndex


def get_agent(request: Request) -> CustomerSupportAgent:
    """Get the agent instance from app state."""
    agent = getattr(request.app.state, "agent", None)
    if agent is None:
        raise HTTPException(status_code=503, detail="Agent not initialized")
    return agent


def get_faq_index(request: Request) -> FAQIndex:
    """Get the FAQ index from app state."""
    faq_index = getattr(request.app.state, "faq_index", None)
    if faq_index is None:
        raise HTTPException(status_code=503, detail="FAQ index not loaded")
    return faq_index


def get_request_id(request: Request) -> str:
    return getattr(request.state, "request_id", "unknown")
