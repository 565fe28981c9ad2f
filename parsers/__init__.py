"""
Upload file parsers.
"""

from parsers.catalog_file_parser import (
    parse_catalog_file,
    CatalogFile,
)

__all__ = [
    "parse_catalog_file",
    "CatalogFile",
]
