"""Synchronization status API route."""

from __future__ import annotations

from fastapi import APIRouter, Depends

from annuairesync.core.config import SyncConfig
from annuairesync.engine.database import Database
from annuairesync.server.api.deps import get_config, get_db, require_admin
from annuairesync.server.schemas import SyncStatusResponse, report_to_response

router = APIRouter(prefix="/api/sync", tags=["sync"], dependencies=[Depends(require_admin)])


@router.get("/status", response_model=SyncStatusResponse)
def sync_status(
    db: Database = Depends(get_db),
    config: SyncConfig = Depends(get_config),
) -> SyncStatusResponse:
    """Get publication counts and the latest batch and report."""
    last_batch = db.last_batch_file()
    reports = db.list_reports(limit=1)
    return SyncStatusResponse(
        operator_id=config.operator_id,
        immediate_mode=config.immediate_mode,
        counts=db.count_by_status(),
        last_batch_file=last_batch[0] if last_batch else None,
        last_batch_at=last_batch[1].isoformat() if last_batch else None,
        last_report=report_to_response(reports[0]) if reports else None,
    )
