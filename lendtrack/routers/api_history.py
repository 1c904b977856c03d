from __future__ import annotations

from fastapi import APIRouter, Depends, Query, Response, status

from ..deps.auth import require_actor, require_admin
from ..deps.services import get_history_log
from ..schemas.auth import Actor
from ..schemas.rental_history import RentalHistoryRecord
from ..services.history import DEFAULT_RETENTION, RentalHistoryLog

router = APIRouter(prefix="/api/v1/rental-history", tags=["rental-history"])


@router.get("", response_model=list[RentalHistoryRecord])
def api_list(
    limit: int = Query(default=DEFAULT_RETENTION, ge=1, le=1000),
    actor: Actor = Depends(require_actor),
    history: RentalHistoryLog = Depends(get_history_log),
):
    return history.list_recent(limit)


@router.delete("/{record_id}", status_code=status.HTTP_204_NO_CONTENT)
def api_delete(
    record_id: str,
    actor: Actor = Depends(require_admin),
    history: RentalHistoryLog = Depends(get_history_log),
):
    history.delete_record(record_id)
    return Response(status_code=status.HTTP_204_NO_CONTENT)
