"""Shared route dependencies."""

from fastapi import HTTPException, Request

from ..orchestrator import TransferOrchestrator


def get_orchestrator(request: Request) -> TransferOrchestrator:
    """The orchestrator held on the application state."""
    orchestrator = getattr(request.app.state, "orchestrator", None)
    if orchestrator is None:
        raise HTTPException(status_code=503, detail="Transfer engine is not configured")
    return orchestrator
