"""Processed report API route."""

from __future__ import annotations

from fastapi import APIRouter, Depends, Query

from annuairesync.engine.database import Database
from annuairesync.server.api.deps import get_db, require_admin
from annuairesync.server.schemas import ReportResponse, report_to_response

router = APIRouter(prefix="/api/reports", tags=["reports"], dependencies=[Depends(require_admin)])


@router.get("", response_model=list[ReportResponse])
def list_reports(
    limit: int = Query(50, ge=1, le=500),
    db: Database = Depends(get_db),
) -> list[ReportResponse]:
    """List processed confirmation reports, most recent first."""
    return [report_to_response(r) for r in db.list_reports(limit=limit)]
