from fastapi import APIRouter, Depends

from app.dependencies import get_store
from app.schemas import Envelope
from app.services.reconcile import reconcile
from app.store import EntityStore

router = APIRouter(prefix="/api/v1/maintenance", tags=["maintenance"])

@router.post("/reconcile", response_model=Envelope)
async def run_reconcile(store: EntityStore = Depends(get_store)):
    """Repair back-reference drift; returns how many fixes of each kind were applied."""
    report = await reconcile(store)
    return Envelope(
        message=f"Reconciliation finished with {report.total} repair(s)",
        data=report.model_dump(),
    )
