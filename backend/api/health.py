"""
api/health.py
=============
GET /api/health — liveness check.
GET /api/status — index size, sources, model and generation reachability.
"""

from fastapi import APIRouter, Request

from brain.errors import StorageError

router = APIRouter()


@router.get("/api/health")
async def health_check(request: Request):
    """Return service status and store readiness."""
    service = request.app.state.service
    try:
        doc_count = await service.count()
        store_ready = True
    except StorageError:
        doc_count = 0
        store_ready = False

    return {
        "status":         "ok",
        "store_ready":    store_ready,
        "document_count": doc_count,
        "api_version":    "1.0.0",
    }


@router.get("/api/status")
async def status(request: Request):
    return await request.app.state.service.status()
