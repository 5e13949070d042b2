"""Main API router that includes all sub-routers."""

from __future__ import annotations

from fastapi import APIRouter

from annuairesync.server.api import health, notifications, publications, reports, sync

router = APIRouter()

# Include all API routers
router.include_router(health.router)
router.include_router(publications.router)
router.include_router(sync.router)
router.include_router(reports.router)
router.include_router(notifications.router)
