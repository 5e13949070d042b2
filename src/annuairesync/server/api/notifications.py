"""Notification API route."""

from __future__ import annotations

from fastapi import APIRouter, Depends, Query

from annuairesync.engine.database import Database
from annuairesync.server.api.deps import get_db, require_admin
from annuairesync.server.schemas import NotificationResponse, notification_to_response

router = APIRouter(
    prefix="/api/notifications",
    tags=["notifications"],
    dependencies=[Depends(require_admin)],
)


@router.get("", response_model=list[NotificationResponse])
def list_notifications(
    type: str | None = None,
    undelivered: bool = False,
    limit: int = Query(100, ge=1, le=500),
    db: Database = Depends(get_db),
) -> list[NotificationResponse]:
    """List notification records, most recent first."""
    records = db.list_notifications(type=type, undelivered_only=undelivered, limit=limit)
    return [notification_to_response(r) for r in records]
