"""
Catalog upload decoder.

Reads CSV or Excel uploads into a header list plus rows of trimmed
string cells. Column meaning is applied later through the column
mapping, so this module knows nothing about products or variants.
"""

from dataclasses import dataclass, field
from io import BytesIO
from pathlib import Path
from typing import Optional, Union

import pandas as pd
import structlog

from exceptions import ImportFileError
from utils.text_utils import clean_cell

logger = structlog.get_logger(__name__)

CSV_EXTENSIONS = {".csv", ".txt"}
EXCEL_EXTENSIONS = {".xlsx", ".xlsm", ".xls"}


@dataclass
class CatalogFile:
    """Decoded upload."""
    filename: str
    headers: list[str] = field(default_factory=list)
    rows: list[list[str]] = field(default_factory=list)
    sheet: Optional[str] = None

    @property
    def column_count(self) -> int:
        return len(self.headers)

    def sample(self, limit: int = 5) -> list[list[str]]:
        """First rows, for mapping previews."""
        return self.rows[:limit]


def _read_frame(file: Union[str, Path, BytesIO], suffix: str, sheet: Optional[str]) -> pd.DataFrame:
    if suffix in CSV_EXTENSIONS:
        return pd.read_csv(
            file,
            dtype=str,
            keep_default_na=False,
            skipinitialspace=True,
            encoding="utf-8-sig",
        )
    return pd.read_excel(
        file,
        sheet_name=sheet if sheet is not None else 0,
        dtype=str,
        keep_default_na=False,
        engine="openpyxl" if suffix != ".xls" else None,
    )


def parse_catalog_file(
    file: Union[str, Path, BytesIO],
    filename: Optional[str] = None,
    sheet: Optional[str] = None,
    max_rows: Optional[int] = None,
) -> CatalogFile:
    """
    Decode a catalog upload.

    Args:
        file: File path (str/Path) or file-like object (BytesIO)
        filename: Original name; its extension picks the reader
        sheet: Excel sheet name (first sheet if omitted)
        max_rows: Reject files with more data rows than this

    Returns:
        CatalogFile with headers and string rows

    Raises:
        ImportFileError: Unsupported type, unreadable file, no header,
            or too many rows
    """
    name = filename or (str(file) if isinstance(file, (str, Path)) else "upload")
    suffix = Path(name).suffix.lower()
    logger.info("parsing_catalog_file", filename=name, sheet=sheet)

    if suffix not in CSV_EXTENSIONS | EXCEL_EXTENSIONS:
        raise ImportFileError(
            f"Unsupported file type: {suffix or 'none'}",
            {"filename": name, "supported": sorted(CSV_EXTENSIONS | EXCEL_EXTENSIONS)}
        )

    try:
        df = _read_frame(file, suffix, sheet)
    except pd.errors.EmptyDataError:
        raise ImportFileError("File is empty", {"filename": name})
    except Exception as e:
        logger.error("catalog_file_read_failed", filename=name, error=str(e))
        raise ImportFileError(
            "Failed to read file",
            {"filename": name, "original_error": str(e)}
        )

    headers = [clean_cell(col) for col in df.columns]
    if not any(headers):
        raise ImportFileError("File has no header row", {"filename": name})

    rows = [[clean_cell(value) for value in record] for record in df.itertuples(index=False, name=None)]

    # Trailing blank rows are spreadsheet noise
    while rows and not any(rows[-1]):
        rows.pop()

    if max_rows is not None and len(rows) > max_rows:
        raise ImportFileError(
            f"File has {len(rows)} rows; the limit is {max_rows}",
            {"filename": name, "rows": len(rows), "max_rows": max_rows}
        )

    logger.info(
        "catalog_file_parsed",
        filename=name,
        columns=len(headers),
        rows=len(rows)
    )
    return CatalogFile(filename=name, headers=headers, rows=rows, sheet=sheet)
