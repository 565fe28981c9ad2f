"""
Remembered column mappings.
Keeps the last mapping a user confirmed per import type so the next
upload of the same layout is pre-filled. In-memory; single-server only.
"""
from datetime import datetime
from typing import Optional

from models.catalog_import import IMPORT_FIELDS, ColumnMapping

_cache: dict[tuple[str, str], tuple[datetime, ColumnMapping]] = {}

HEADER_ALIASES: dict[str, str] = {
    "name": "product_name",
    "product": "product_name",
    "title": "product_name",
    "product name": "product_name",
    "product_name": "product_name",
    "sku": "variant_sku",
    "variant sku": "variant_sku",
    "variant_sku": "variant_sku",
    "product_sku": "variant_sku",
    "item_sku": "variant_sku",
    "color": "variant_color",
    "colour": "variant_color",
    "variant_color": "variant_color",
    "size": "variant_size",
    "variant_size": "variant_size",
    "barcode": "barcode",
    "ean": "barcode",
    "upc": "barcode",
    "gtin": "barcode",
    "price": "retail_price",
    "retail price": "retail_price",
    "retail_price": "retail_price",
    "selling_price": "retail_price",
    "is parent": "is_parent",
    "is_parent": "is_parent",
    "parent": "is_parent",
    "description": "description",
    "desc": "description",
    "product_description": "description",
}


def store_mapping(user_id: str, import_type: str, mapping: ColumnMapping) -> None:
    """Remember a mapping for (user, import type)."""
    _cache[(user_id, import_type)] = (datetime.now(), dict(mapping))


def retrieve_mapping(user_id: str, import_type: str) -> Optional[ColumnMapping]:
    """Last stored mapping, or None."""
    entry = _cache.get((user_id, import_type))
    if entry is None:
        return None
    return dict(entry[1])


def delete_mapping(user_id: str, import_type: str) -> None:
    _cache.pop((user_id, import_type), None)


def suggest_mapping(headers: list[str]) -> ColumnMapping:
    """
    Guess a mapping from header names.

    First header wins when two map to the same field. Fields with no
    matching header are left unmapped (None).
    """
    mapping: ColumnMapping = {field: None for field in IMPORT_FIELDS}
    for index, header in enumerate(headers):
        key = " ".join(str(header).strip().lower().replace("-", " ").split())
        field = HEADER_ALIASES.get(key) or HEADER_ALIASES.get(key.replace(" ", "_"))
        if field and mapping.get(field) is None:
            mapping[field] = index
    return mapping
