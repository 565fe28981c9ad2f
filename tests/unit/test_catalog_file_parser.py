"""
Unit tests for the catalog upload decoder.

Run: pytest tests/unit/test_catalog_file_parser.py -v
"""

from io import BytesIO

import pandas as pd
import pytest

from exceptions import ImportFileError
from parsers.catalog_file_parser import parse_catalog_file
from tests.factories import CATALOG_HEADERS, CatalogRowFactory


def csv_bytes(text: str) -> BytesIO:
    return BytesIO(text.encode("utf-8"))


def xlsx_bytes(headers: list[str], rows: list[list[str]], sheet: str = "Catalog") -> BytesIO:
    buffer = BytesIO()
    pd.DataFrame(rows, columns=headers).to_excel(buffer, index=False, sheet_name=sheet, engine="openpyxl")
    buffer.seek(0)
    return buffer


class TestParseCsv:
    """Tests for CSV uploads"""

    def test_reads_headers_and_string_cells(self):
        """Barcodes keep leading zeros; every cell is a trimmed string."""
        file = csv_bytes(
            "Product Name,SKU,Barcode,Price\n"
            "Classic Tee Black S, 001-001 ,0590123412345,19.99\n"
        )

        parsed = parse_catalog_file(file, filename="catalog.csv")

        assert parsed.headers == ["Product Name", "SKU", "Barcode", "Price"]
        assert parsed.rows == [["Classic Tee Black S", "001-001", "0590123412345", "19.99"]]
        assert parsed.column_count == 4

    def test_utf8_bom_is_stripped(self):
        file = BytesIO("\ufeffName,SKU\nDécor Lamp,LMP-1\n".encode("utf-8"))

        parsed = parse_catalog_file(file, filename="catalog.csv")

        assert parsed.headers[0] == "Name"
        assert parsed.rows[0][0] == "Décor Lamp"

    def test_trailing_blank_rows_dropped(self):
        file = csv_bytes("Name,SKU\nLamp,LMP-1\n,\n,\n")

        parsed = parse_catalog_file(file, filename="catalog.csv")

        assert parsed.rows == [["Lamp", "LMP-1"]]

    def test_empty_file_rejected(self):
        with pytest.raises(ImportFileError) as exc_info:
            parse_catalog_file(csv_bytes(""), filename="catalog.csv")

        assert exc_info.value.message == "File is empty"

    def test_row_limit_enforced(self):
        file = csv_bytes("Name,SKU\nA,1\nB,2\nC,3\n")

        with pytest.raises(ImportFileError) as exc_info:
            parse_catalog_file(file, filename="catalog.csv", max_rows=2)

        assert exc_info.value.details["rows"] == 3


class TestParseExcel:
    """Tests for Excel uploads"""

    def test_reads_first_sheet(self):
        rows = CatalogRowFactory.create_sized("001", ["S", "M"])
        file = xlsx_bytes(CATALOG_HEADERS, rows)

        parsed = parse_catalog_file(file, filename="catalog.xlsx")

        assert parsed.headers == CATALOG_HEADERS
        assert [r[1] for r in parsed.rows] == ["001-001", "001-002"]
        assert parsed.sample(1) == parsed.rows[:1]

    def test_named_sheet(self):
        file = xlsx_bytes(["Name", "SKU"], [["Lamp", "LMP-1"]], sheet="Products")

        parsed = parse_catalog_file(file, filename="catalog.xlsx", sheet="Products")

        assert parsed.sheet == "Products"
        assert parsed.rows == [["Lamp", "LMP-1"]]

    def test_missing_sheet_rejected(self):
        file = xlsx_bytes(["Name", "SKU"], [["Lamp", "LMP-1"]])

        with pytest.raises(ImportFileError):
            parse_catalog_file(file, filename="catalog.xlsx", sheet="Nope")


class TestFileType:
    """Tests for file type detection"""

    def test_unsupported_extension_rejected(self):
        with pytest.raises(ImportFileError) as exc_info:
            parse_catalog_file(BytesIO(b"%PDF"), filename="catalog.pdf")

        assert ".csv" in exc_info.value.details["supported"]

    def test_extension_from_path(self, tmp_path):
        path = tmp_path / "catalog.csv"
        path.write_text("Name,SKU\nLamp,LMP-1\n", encoding="utf-8")

        parsed = parse_catalog_file(path)

        assert parsed.filename.endswith("catalog.csv")
        assert parsed.rows == [["Lamp", "LMP-1"]]
