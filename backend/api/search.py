"""
api/search.py
=============
POST /api/search — top-k similar chunks for a query.
POST /api/query  — retrieval-augmented answer with citations.
"""

from __future__ import annotations

from fastapi import APIRouter, Request

from backend.schemas.response import QueryRequest, SearchResponse
from brain.models import QueryAnswer

router = APIRouter()


@router.post("/api/search", response_model=SearchResponse)
async def search(body: QueryRequest, request: Request) -> SearchResponse:
    results = await request.app.state.service.search(body.query, body.limit)
    return SearchResponse(query=body.query, results=results)


@router.post("/api/query", response_model=QueryAnswer)
async def query(body: QueryRequest, request: Request) -> QueryAnswer:
    return await request.app.state.service.query(body.query, body.limit)
