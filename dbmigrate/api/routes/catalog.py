"""Source catalog endpoints."""

from typing import Optional

from fastapi import APIRouter, Depends, HTTPException

from ..dependencies import get_orchestrator
from ..models import CatalogResponse, DatabaseObjectResponse
from ...errors import MissingDependencyError, SourceUnavailable
from ...models.catalog import ObjectKind
from ...orchestrator import TransferOrchestrator

router = APIRouter()


@router.get("", response_model=CatalogResponse)
def list_objects(
    kind: Optional[ObjectKind] = None,
    orchestrator: TransferOrchestrator = Depends(get_orchestrator),
):
    """List transferable source objects, optionally of one kind."""
    try:
        objects = orchestrator.list_objects()
    except (SourceUnavailable, MissingDependencyError) as e:
        raise HTTPException(status_code=503, detail=str(e))

    if kind is not None:
        objects = [o for o in objects if o.kind == kind]

    return CatalogResponse(
        objects=[DatabaseObjectResponse.from_object(o) for o in objects],
        total=len(objects),
    )
