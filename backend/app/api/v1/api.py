# File: backend/app/api/v1/api.py
# Version: v0.8.0
"""
v1 API aggregator.

Routers included under /api (main.py adds the prefix):
- health                  → /api/health
- primers                 → /api/v1/primers/*
- secondary_structure     → /api/v1/analysis/*
"""
from __future__ import annotations

from fastapi import APIRouter

from . import health as health_router
from . import secondary_structure as stems_router
from .primers import router as primers_router

v1_router = APIRouter(prefix="/v1")
v1_router.include_router(primers_router.router)
v1_router.include_router(stems_router.router)

api_router = APIRouter()
api_router.include_router(health_router.router)
api_router.include_router(v1_router)
