"""
Barcode pool API routes.
"""

from typing import Optional

from fastapi import APIRouter, Query
from fastapi.responses import JSONResponse
import structlog

from config import settings
from exceptions import AppError
from models.barcode import PoolHealth, PoolStatistics
from services.barcode_allocator import BarcodeAllocator
from services.barcode_pool_repository import get_barcode_pool_repository

logger = structlog.get_logger(__name__)

router = APIRouter()


def handle_error(e: Exception) -> JSONResponse:
    """Convert exception to JSON response."""
    if isinstance(e, AppError):
        return JSONResponse(
            status_code=e.status_code,
            content=e.to_dict()
        )
    logger.error("unexpected_error", error=str(e), type=type(e).__name__)
    return JSONResponse(
        status_code=500,
        content={
            "error": {
                "code": "INTERNAL_ERROR",
                "message": "An unexpected error occurred"
            }
        }
    )


def get_allocator(barcode_type: Optional[str] = None) -> BarcodeAllocator:
    return BarcodeAllocator(
        get_barcode_pool_repository(),
        barcode_type or settings.barcode_type,
    )


@router.get("/pool/stats", response_model=PoolStatistics)
async def get_pool_stats(barcode_type: Optional[str] = Query(None, description="Defaults to settings.barcode_type")):
    """Per-status counts for the barcode pool."""
    try:
        return get_allocator(barcode_type).get_pool_statistics()
    except Exception as e:
        return handle_error(e)


@router.get("/pool/health", response_model=PoolHealth)
async def get_pool_health(barcode_type: Optional[str] = Query(None, description="Defaults to settings.barcode_type")):
    """Health verdict: low availability and high assignment rate."""
    try:
        return get_allocator(barcode_type).check_pool_health(
            low_water_mark=settings.barcode_low_water_mark,
            high_assignment_rate=settings.barcode_high_assignment_rate,
        )
    except Exception as e:
        return handle_error(e)
