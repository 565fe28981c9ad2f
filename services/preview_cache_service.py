"""
Temporary storage for import previews.
Holds decoded rows and the dry-run counts between preview and confirm.
In-memory with TTL expiration; single-server only.
"""
import uuid
from datetime import datetime, timedelta
from pathlib import Path
from typing import Optional

import structlog
from pydantic import BaseModel, Field

from config import settings
from models.catalog_import import ColumnMapping, ImportConfig, PlanCounts

logger = structlog.get_logger(__name__)


class ImportPreview(BaseModel):
    """Everything confirm needs to re-plan and run."""
    filename: str
    headers: list[str] = Field(default_factory=list)
    rows: list[list[str]] = Field(default_factory=list)
    mapping: ColumnMapping
    config: ImportConfig
    counts: PlanCounts
    upload_path: Optional[str] = None


_cache: dict[str, tuple[datetime, ImportPreview]] = {}


def store_preview(data: ImportPreview, ttl_minutes: Optional[int] = None) -> str:
    """Store a preview, return preview_id."""
    preview_id = str(uuid.uuid4())
    ttl = ttl_minutes if ttl_minutes is not None else settings.preview_ttl_minutes
    expires_at = datetime.now() + timedelta(minutes=ttl)
    _cache[preview_id] = (expires_at, data)
    _cleanup_expired()
    return preview_id


def retrieve_preview(preview_id: str) -> Optional[ImportPreview]:
    """Retrieve a preview by preview_id. Returns None if expired/not found."""
    entry = _cache.get(preview_id)
    if entry is None:
        return None
    expires_at, data = entry
    if datetime.now() > expires_at:
        _drop(preview_id)
        return None
    return data


def delete_preview(preview_id: str) -> None:
    """Remove preview after confirm or cancel. The upload file is left to the run."""
    _cache.pop(preview_id, None)


def _drop(preview_id: str) -> None:
    """Forget an expired preview and its upload."""
    entry = _cache.pop(preview_id, None)
    if entry is None:
        return
    upload_path = entry[1].upload_path
    if upload_path:
        Path(upload_path).unlink(missing_ok=True)
        logger.debug("expired_preview_upload_removed", preview_id=preview_id)


def _cleanup_expired() -> None:
    """Remove all expired entries."""
    now = datetime.now()
    expired = [k for k, (exp, _) in _cache.items() if now > exp]
    for k in expired:
        _drop(k)
