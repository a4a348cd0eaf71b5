"""
backend — FastAPI adapter over brain.service.BrainService.

Routers: api/health.py, api/search.py, api/sources.py
Schemas: schemas/response.py
Entry point: main.py → run with `uvicorn backend.main:app --reload` or `brain-serve`
"""
