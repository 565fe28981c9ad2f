"""
Catalog import API routes.

Flow:
    POST /preview              upload + mapping -> dry-run plan, preview_id
    POST /{preview_id}/confirm re-plan and execute
    GET  /{import_id}/progress ordered progress events
"""

import json
import uuid
from io import BytesIO
from pathlib import Path
from typing import Optional

from fastapi import APIRouter, File, Form, Query, UploadFile
from fastapi.responses import JSONResponse
import structlog

from config import settings
from exceptions import AppError, ColumnMappingError, PreviewNotFoundError
from models.catalog_import import ColumnMapping, ImportMode, ImportPlan, MappingRequest
from parsers.catalog_file_parser import parse_catalog_file
from integrations.telegram import TelegramProgressSink
from services import mapping_cache_service, preview_cache_service
from services.import_planner import validate_mapping
from services.import_progress_service import (
    CompositeProgressSink,
    LoggingProgressSink,
    get_progress_tracker,
)
from services.import_service import default_config, get_import_service

logger = structlog.get_logger(__name__)

router = APIRouter()

IMPORT_TYPE = "catalog"


# ===================
# EXCEPTION HANDLER
# ===================

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


def _parse_mapping(raw: Optional[str]) -> Optional[ColumnMapping]:
    if not raw:
        return None
    try:
        mapping = json.loads(raw)
    except json.JSONDecodeError as e:
        raise ColumnMappingError("Mapping is not valid JSON", {"original_error": str(e)})
    if not isinstance(mapping, dict):
        raise ColumnMappingError("Mapping must be an object of field -> column index")
    return mapping


def _save_upload(content: bytes, filename: str) -> str:
    upload_dir = Path(settings.upload_dir)
    upload_dir.mkdir(parents=True, exist_ok=True)
    path = upload_dir / f"{uuid.uuid4()}{Path(filename).suffix.lower()}"
    path.write_bytes(content)
    return str(path)


def _plan_rows(plan: ImportPlan) -> list[dict]:
    return [
        {
            "row_number": r.row_number,
            "sku": r.candidate.sku,
            "parent": str(r.parent_key),
            "action": r.result.action.value,
            "reason": r.result.reason,
            "needs_barcode": r.needs_barcode,
        }
        for r in plan.rows
    ]


# ===================
# PREVIEW / CONFIRM
# ===================

@router.post("/preview")
def preview_import(
    file: UploadFile = File(..., description="Catalog CSV or Excel file"),
    mapping: Optional[str] = Form(None, description="JSON object: field -> column index"),
    mode: Optional[ImportMode] = Form(None),
    auto_generate_parents: Optional[bool] = Form(None),
    assign_barcodes: Optional[bool] = Form(None),
    user_id: str = Form("default"),
):
    """
    Decode an upload and return the dry-run plan.

    Nothing is written to the catalog until /confirm is called. Without
    an explicit mapping the last saved one is used, then a guess from
    the header names.
    """
    try:
        content = file.file.read()
        catalog_file = parse_catalog_file(
            BytesIO(content),
            file.filename,
            max_rows=settings.max_import_rows,
        )

        column_mapping = (
            _parse_mapping(mapping)
            or mapping_cache_service.retrieve_mapping(user_id, IMPORT_TYPE)
            or mapping_cache_service.suggest_mapping(catalog_file.headers)
        )
        config = default_config(
            mode=mode,
            auto_generate_parents=auto_generate_parents,
            assign_barcodes=assign_barcodes,
        )

        plan = get_import_service().dry_run(
            catalog_file.rows,
            column_mapping,
            config,
            column_count=catalog_file.column_count,
        )
        mapping_cache_service.store_mapping(user_id, IMPORT_TYPE, column_mapping)

        preview_id = preview_cache_service.store_preview(preview_cache_service.ImportPreview(
            filename=catalog_file.filename,
            headers=catalog_file.headers,
            rows=catalog_file.rows,
            mapping=column_mapping,
            config=config,
            counts=plan.counts,
            upload_path=_save_upload(content, catalog_file.filename),
        ))

        logger.info(
            "import_preview_created",
            preview_id=preview_id,
            filename=catalog_file.filename,
            rows=len(catalog_file.rows)
        )

        return {
            "preview_id": preview_id,
            "filename": catalog_file.filename,
            "headers": catalog_file.headers,
            "mapping": column_mapping,
            "config": config.model_dump(mode="json"),
            "plan": plan.summary(),
            "rows": _plan_rows(plan),
            "expires_in_minutes": settings.preview_ttl_minutes,
        }

    except Exception as e:
        return handle_error(e)


@router.post("/{preview_id}/confirm")
def confirm_import(preview_id: str):
    """
    Execute a previewed import.

    The plan is rebuilt against the live catalog; plan_drift is true
    when its counts differ from what the preview showed.
    """
    try:
        preview = preview_cache_service.retrieve_preview(preview_id)
        if preview is None:
            raise PreviewNotFoundError(preview_id)
        preview_cache_service.delete_preview(preview_id)

        import_id = str(uuid.uuid4())
        sink = CompositeProgressSink([
            get_progress_tracker().sink_for(import_id),
            LoggingProgressSink(import_id),
            TelegramProgressSink(import_id, filename=preview.filename),
        ])

        result = get_import_service().run(
            preview.rows,
            preview.mapping,
            preview.config,
            import_id=import_id,
            source_file=preview.upload_path,
            progress_sink=sink,
            column_count=len(preview.headers),
        )

        plan_drift = result.planned is not None and result.planned != preview.counts
        if plan_drift:
            logger.warning(
                "import_plan_drift",
                import_id=import_id,
                previewed=preview.counts.model_dump(),
                executed=result.planned.model_dump()
            )

        return {
            **result.model_dump(mode="json"),
            "success": result.success,
            "failed_units": [u.model_dump(mode="json") for u in result.failed_units],
            "plan_drift": plan_drift,
        }

    except Exception as e:
        return handle_error(e)


@router.get("/{import_id}/progress")
async def get_import_progress(import_id: str):
    """Progress events for one import, oldest first."""
    try:
        events = get_progress_tracker().get_events(import_id)
        return {
            "import_id": import_id,
            "status": events[-1].status.value if events else None,
            "events": [e.model_dump(mode="json") for e in events],
        }
    except Exception as e:
        return handle_error(e)


# ===================
# MAPPING CACHE
# ===================

@router.get("/mapping/{import_type}")
async def get_mapping(import_type: str, user_id: str = Query("default")):
    """Last saved column mapping for this import type."""
    return {
        "import_type": import_type,
        "mapping": mapping_cache_service.retrieve_mapping(user_id, import_type),
    }


@router.put("/mapping/{import_type}")
async def save_mapping(import_type: str, request: MappingRequest):
    """Save a column mapping for reuse on the next upload."""
    try:
        validate_mapping(request.mapping)
        mapping_cache_service.store_mapping(request.user_id, import_type, request.mapping)
        logger.info("column_mapping_saved", import_type=import_type, user_id=request.user_id)
        return {"import_type": import_type, "mapping": request.mapping}
    except Exception as e:
        return handle_error(e)
