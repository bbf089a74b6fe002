"""Target database endpoints."""

from fastapi import APIRouter, Depends

from ..dependencies import get_orchestrator
from ..models import TargetTestResponse
from ...errors import ConnectionLost, MissingDependencyError
from ...orchestrator import TransferOrchestrator

router = APIRouter()


@router.post("/test", response_model=TargetTestResponse)
async def test_target(orchestrator: TransferOrchestrator = Depends(get_orchestrator)):
    """Check that the target accepts connections."""
    try:
        tested = await orchestrator.test_target()
    except (ConnectionLost, MissingDependencyError) as e:
        return TargetTestResponse(status="failed", message=str(e))

    if not tested:
        return TargetTestResponse(status="not_tested", message="Dry run: no target is written to")
    return TargetTestResponse(status="connected", message="Target connection OK")
