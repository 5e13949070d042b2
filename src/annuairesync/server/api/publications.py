"""Publication API routes."""

from __future__ import annotations

import logging

from fastapi import APIRouter, Depends, HTTPException, Query, status

from annuairesync.core.types import Operation, PublicationStatus
from annuairesync.engine.database import (
    Database,
    PublicationNotFoundError,
    PublicationStateError,
)
from annuairesync.server.api.deps import get_db, require_admin
from annuairesync.server.schemas import (
    BulkRetryError,
    BulkRetryRequest,
    BulkRetryResponse,
    PublicationCreateRequest,
    PublicationListResponse,
    PublicationResponse,
    publication_to_response,
)

logger = logging.getLogger(__name__)

router = APIRouter(
    prefix="/api/publications",
    tags=["publications"],
    dependencies=[Depends(require_admin)],
)


@router.get("", response_model=PublicationListResponse)
def list_publications(
    status_filter: PublicationStatus | None = Query(None, alias="status"),
    operation: Operation | None = None,
    address: str | None = None,
    limit: int = Query(50, ge=1, le=500),
    offset: int = Query(0, ge=0),
    db: Database = Depends(get_db),
) -> PublicationListResponse:
    """List publications, most recent first."""
    publications = db.list_publications(
        status=status_filter, operation=operation, address=address, limit=limit, offset=offset
    )
    total = db.count_publications(status=status_filter, operation=operation, address=address)
    return PublicationListResponse(
        items=[publication_to_response(p) for p in publications],
        total=total,
        limit=limit,
        offset=offset,
    )


@router.post("", response_model=PublicationResponse, status_code=status.HTTP_201_CREATED)
def create_publication(
    request: PublicationCreateRequest,
    db: Database = Depends(get_db),
) -> PublicationResponse:
    """Enqueue a directory change."""
    publication = db.enqueue_publication(request.to_snapshot(), request.operation)
    logger.info(
        "Publication %s enqueued: %s %s", publication.id, request.operation.value, request.address
    )
    return publication_to_response(publication)


@router.post("/bulk-retry", response_model=BulkRetryResponse)
def bulk_retry_publications(
    request: BulkRetryRequest,
    db: Database = Depends(get_db),
) -> BulkRetryResponse:
    """Put several error publications back in the pending queue."""
    retried: list[int] = []
    errors: list[BulkRetryError] = []
    for publication_id in request.publication_ids:
        try:
            db.requeue_publication(publication_id)
        except (PublicationNotFoundError, PublicationStateError) as e:
            errors.append(BulkRetryError(id=publication_id, detail=str(e)))
        else:
            retried.append(publication_id)
    logger.info("Bulk retry: %d requeued, %d refused", len(retried), len(errors))
    return BulkRetryResponse(retried=retried, errors=errors)


@router.get("/{publication_id}", response_model=PublicationResponse)
def get_publication(
    publication_id: int,
    db: Database = Depends(get_db),
) -> PublicationResponse:
    """Get a publication by ID."""
    publication = db.get_publication(publication_id)
    if publication is None:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail=f"Publication not found: {publication_id}",
        )
    return publication_to_response(publication)


@router.post("/{publication_id}/retry", response_model=PublicationResponse)
def retry_publication(
    publication_id: int,
    db: Database = Depends(get_db),
) -> PublicationResponse:
    """Put an error publication back in the pending queue."""
    try:
        publication = db.requeue_publication(publication_id)
    except PublicationNotFoundError as e:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(e)) from e
    except PublicationStateError as e:
        raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail=str(e)) from e
    logger.info("Publication %s requeued", publication_id)
    return publication_to_response(publication)
