"""
api/sources.py
==============
GET    /api/sources            — distinct sources with record counts
POST   /api/sources/documents  — index already-materialised files of a source
DELETE /api/sources/{source}   — remove every record of a source

Fetching repositories and walking directories happens outside this service;
callers post the file contents they collected.
"""

from __future__ import annotations

import logging
from typing import List

from fastapi import APIRouter, HTTPException, Request, status

from backend.schemas.response import DeleteResponse, IngestRequest
from brain.models import IngestionReport, SourceDocument, SourceSummary, source_type_for

logger = logging.getLogger(__name__)

router = APIRouter()


@router.get("/api/sources", response_model=List[SourceSummary])
async def list_sources(request: Request) -> List[SourceSummary]:
    return await request.app.state.service.list_sources()


@router.post("/api/sources/documents", response_model=IngestionReport)
async def add_documents(body: IngestRequest, request: Request) -> IngestionReport:
    try:
        source_type = body.source_type or source_type_for(body.source)
    except ValueError as exc:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(exc))

    documents = [
        SourceDocument(
            source      = body.source,
            source_type = source_type,
            file_path   = doc.file_path,
            text        = doc.text,
            kind        = doc.kind,
        )
        for doc in body.documents
    ]

    service = request.app.state.service
    if body.replace:
        logger.info("Full re-index requested for %s (%d files)", body.source, len(documents))
        return await service.replace_source(
            body.source, documents, source_type=source_type, strict=body.strict,
        )
    return await service.index_documents(
        body.source, documents, source_type=source_type, strict=body.strict,
    )


@router.delete("/api/sources/{source:path}", response_model=DeleteResponse)
async def delete_source(source: str, request: Request) -> DeleteResponse:
    deleted = await request.app.state.service.delete_by_source(source)
    return DeleteResponse(source=source, deleted=deleted)
