# Overview: Spreadsheet parsing for the product import; turns an uploaded sheet into validated rows.

"""
Product spreadsheet parsing

Accepts the stock report exported by the shop's inventory software:
first worksheet of an .xlsx file (or a .csv), header on the first row.

Columns are located by header text (case-insensitive, trimmed), first rule
that matches wins:
- contains "item details"          -> item name        (required)
- equals "bcn"                     -> SKU / barcode    (required)
- contains "p1" or "dsn"           -> design number
- equals "mrp"                     -> MRP              (required)
- contains "sale" and "price"      -> sale price       (required)
- equals "unit"                    -> unit
- contains "cl." and "qty"         -> closing quantity (required)

Parsing never touches the database. Nothing here is persisted.
"""

from __future__ import annotations

import csv
import io
import re
from dataclasses import dataclass, field
from datetime import date, datetime
from decimal import Decimal, InvalidOperation
from typing import Any, Iterable
from zipfile import BadZipFile

from openpyxl import load_workbook
from openpyxl.utils.exceptions import InvalidFileException

from ..money import round_half_up
from ..validation import MAX_AMOUNT, MAX_QUANTITY


MAX_ROWS = 2000
MAX_TEXT_LENGTH = 300
MAX_SKU_LENGTH = 50
MAX_UNIT_LENGTH = 20
MAX_PRICE_PLACES = 2
DEFAULT_UNIT = "Pcs"

# Order matters: earlier keywords win the prefix/substring pass
CATEGORY_KEYWORDS = ("LEHENGA", "RM DRESS", "SAREE", "SUIT")

REQUIRED_COLUMNS = ("itemDetails", "bcn", "mrp", "salePrice", "closingQty")

XLSX_EXTENSIONS = {"xlsx", "xlsm", "xltx", "xltm"}
CSV_EXTENSIONS = {"csv"}


class ImportError(ValueError):
    """Raised when import operations fail."""
    def __init__(self, message: str, details: dict | None = None):
        super().__init__(message)
        self.details = details or {}


class ColumnMappingError(ImportError):
    """A required column could not be located in the header row."""

    title = "Column Mapping Error"


class UnsupportedFileError(ImportError):
    """File type the parser cannot read (.xls and anything not xlsx/csv)."""


class SpreadsheetReadError(ImportError):
    """The file claimed a supported type but could not be read."""


@dataclass
class ParsedProduct:
    row_number: int  # 1-based row in the source sheet
    item_details: str
    sku: str
    design_number: str
    mrp: Decimal | None
    sale_price: Decimal | None
    unit: str
    closing_qty: int | None
    errors: list[str] = field(default_factory=list)
    detected_category: str | None = None

    @property
    def is_valid(self) -> bool:
        return not self.errors

    def to_dict(self) -> dict:
        return {
            "row": self.row_number,
            "item_details": self.item_details,
            "sku": self.sku,
            "design_number": self.design_number,
            "mrp": str(self.mrp) if self.mrp is not None else None,
            "sale_price": str(self.sale_price) if self.sale_price is not None else None,
            "unit": self.unit,
            "closing_qty": self.closing_qty,
            "is_valid": self.is_valid,
            "errors": list(self.errors),
            "detected_category": self.detected_category,
        }


@dataclass
class ParseResult:
    products: list[ParsedProduct]
    data_rows: int  # data rows in the file, before truncation
    max_rows: int = MAX_ROWS

    @property
    def truncated(self) -> bool:
        return self.data_rows > self.max_rows

    @property
    def valid_products(self) -> list[ParsedProduct]:
        return [p for p in self.products if p.is_valid]

    @property
    def warnings(self) -> list[str]:
        if not self.truncated:
            return []
        return [
            f"Only the first {self.max_rows} rows will be processed. "
            f"File has {self.data_rows} data rows."
        ]

    def to_dict(self) -> dict:
        valid = len(self.valid_products)
        return {
            "products": [p.to_dict() for p in self.products],
            "total": len(self.products),
            "valid": valid,
            "invalid": len(self.products) - valid,
            "data_rows": self.data_rows,
            "truncated": self.truncated,
            "warnings": self.warnings,
        }


def detect_category(item_details: str) -> str | None:
    """
    Best-effort category from the item name prefix, e.g. "LEHENGA - Bridal Red" -> "LEHENGA".

    Returns None (unclassified) rather than guessing.
    """
    if not item_details:
        return None

    prefix = item_details.split("-", 1)[0].strip().upper()
    if not prefix:
        return None

    if prefix in CATEGORY_KEYWORDS:
        return prefix

    for category in CATEGORY_KEYWORDS:
        if prefix.startswith(category) or category in prefix:
            return category

    upper = item_details.upper()
    for category in CATEGORY_KEYWORDS:
        if upper.startswith(category + " ") or upper.startswith(category + "-"):
            return category

    return None


def map_columns(header: Iterable[Any]) -> dict[str, int]:
    """Locate the import columns in the header row; raises ColumnMappingError if any required one is missing."""
    column_map: dict[str, int] = {}
    for index, col in enumerate(header):
        col_lower = _cell_text(col).lower().strip()
        if "item details" in col_lower:
            column_map["itemDetails"] = index
        elif col_lower == "bcn":
            column_map["bcn"] = index
        elif "p1" in col_lower or "dsn" in col_lower:
            column_map["designNumber"] = index
        elif col_lower == "mrp":
            column_map["mrp"] = index
        elif "sale" in col_lower and "price" in col_lower:
            column_map["salePrice"] = index
        elif col_lower == "unit":
            column_map["unit"] = index
        elif "cl." in col_lower and "qty" in col_lower:
            column_map["closingQty"] = index

    missing = [c for c in REQUIRED_COLUMNS if c not in column_map]
    if missing:
        raise ColumnMappingError(
            f"Missing required columns: {', '.join(missing)}",
            details={"missing_columns": missing},
        )
    return column_map


def _cell_text(value: Any) -> str:
    if value is None:
        return ""
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, float) and value.is_integer():
        # Barcodes typed as numbers come back from openpyxl as 12345.0
        return str(int(value))
    if isinstance(value, (datetime, date)):
        return value.isoformat()
    return str(value)


def _cell(row: tuple, index: int | None) -> Any:
    if index is None or index >= len(row):
        return None
    return row[index]


def _parse_number(raw: Any) -> Decimal | None:
    """
    Number cells are taken as-is; text cells are trimmed with thousand
    separators removed. Blank means 0. Returns None when not numeric.
    """
    if isinstance(raw, bool):
        return None
    if isinstance(raw, Decimal):
        value = raw
    elif isinstance(raw, (int, float)):
        value = Decimal(str(raw))
    else:
        text = _cell_text(raw).strip().replace(",", "")
        if not text:
            return Decimal("0")
        if "_" in text:
            return None
        try:
            value = Decimal(text)
        except InvalidOperation:
            return None
    if value.is_nan():
        return None
    return value


def _check_amount(value: Decimal | None, label: str, errors: list[str]) -> None:
    if value is None or value < 0:
        errors.append(f"Invalid {label}")
    elif value > MAX_AMOUNT:
        errors.append(f"{label} exceeds maximum ({int(MAX_AMOUNT)})")
    elif value.normalize().as_tuple().exponent < -MAX_PRICE_PLACES:
        # Stored as Numeric(12, 2)
        errors.append(f"{label} has more than {MAX_PRICE_PLACES} decimal places")


def parse_row(row: tuple, column_map: dict[str, int], row_number: int) -> ParsedProduct | None:
    """Validate one data row. Returns None for rows without a SKU (blank/separator rows)."""
    sku_raw = _cell_text(_cell(row, column_map["bcn"])).strip()
    if not sku_raw:
        return None

    errors: list[str] = []

    sku = sku_raw[:MAX_SKU_LENGTH]
    if len(sku_raw) > MAX_SKU_LENGTH:
        errors.append(f"BCN truncated to {MAX_SKU_LENGTH} chars")

    item_details = _cell_text(_cell(row, column_map["itemDetails"])).strip()[:MAX_TEXT_LENGTH]
    design_number = _cell_text(_cell(row, column_map.get("designNumber"))).strip()[:MAX_TEXT_LENGTH]
    unit = _cell_text(_cell(row, column_map.get("unit"))).strip()[:MAX_UNIT_LENGTH] or DEFAULT_UNIT

    if not item_details:
        errors.append("Missing product name")

    mrp = _parse_number(_cell(row, column_map["mrp"]))
    sale_price = _parse_number(_cell(row, column_map["salePrice"]))
    closing_raw = _parse_number(_cell(row, column_map["closingQty"]))

    _check_amount(mrp, "MRP", errors)
    _check_amount(sale_price, "Sale Price", errors)

    closing_qty = None
    if closing_raw is None or closing_raw < 0:
        errors.append("Invalid Quantity")
    elif closing_raw > MAX_QUANTITY:
        errors.append(f"Quantity exceeds maximum ({MAX_QUANTITY})")
    else:
        closing_qty = round_half_up(closing_raw)

    # Sale price becomes the product's discount price, which may not exceed MRP
    if (
        mrp is not None and sale_price is not None
        and 0 <= mrp <= MAX_AMOUNT and 0 <= sale_price <= MAX_AMOUNT
        and sale_price > mrp
    ):
        errors.append("Sale Price exceeds MRP")

    return ParsedProduct(
        row_number=row_number,
        item_details=item_details,
        sku=sku,
        design_number=design_number,
        mrp=mrp,
        sale_price=sale_price,
        unit=unit,
        closing_qty=closing_qty,
        errors=errors,
        detected_category=detect_category(item_details),
    )


def parse_rows(rows: list[tuple], *, max_rows: int = MAX_ROWS) -> ParseResult:
    """Map the header row, then validate at most max_rows data rows."""
    if not rows:
        raise ColumnMappingError(
            f"Missing required columns: {', '.join(REQUIRED_COLUMNS)}",
            details={"missing_columns": list(REQUIRED_COLUMNS)},
        )

    column_map = map_columns(rows[0])

    data = list(rows[1:])
    # Formatting can leave empty rows at the end of a sheet's used range
    while data and all(_cell_text(v).strip() == "" for v in data[-1]):
        data.pop()

    products = []
    for offset, row in enumerate(data[:max_rows]):
        if not row:
            continue
        parsed = parse_row(tuple(row), column_map, row_number=offset + 2)
        if parsed is not None:
            products.append(parsed)

    return ParseResult(products=products, data_rows=len(data), max_rows=max_rows)


def file_extension(filename: str) -> str:
    if not filename or "." not in filename:
        return ""
    return filename.rsplit(".", 1)[-1].lower()


def read_sheet_rows(content: bytes, filename: str) -> list[tuple]:
    """Read every row of the first worksheet (xlsx) or the whole file (csv) as tuples."""
    ext = file_extension(filename)

    if ext in XLSX_EXTENSIONS:
        try:
            wb = load_workbook(io.BytesIO(content), read_only=True, data_only=True)
        except (InvalidFileException, BadZipFile, KeyError, OSError, ValueError) as exc:
            raise SpreadsheetReadError(
                "Failed to parse the Excel file. Please check the format.",
                details={"file_name": filename},
            ) from exc
        try:
            sheet = wb.worksheets[0]
            return [tuple(r) for r in sheet.iter_rows(values_only=True)]
        finally:
            wb.close()

    if ext in CSV_EXTENSIONS:
        try:
            text = content.decode("utf-8-sig")
        except UnicodeDecodeError as exc:
            raise SpreadsheetReadError(
                "CSV files must be UTF-8 encoded",
                details={"file_name": filename},
            ) from exc
        return [tuple(r) for r in csv.reader(io.StringIO(text))]

    raise UnsupportedFileError(
        "Unsupported file format. Upload an .xlsx or .csv file.",
        details={"file_name": filename, "extension": ext},
    )


def parse_file(content: bytes, filename: str, *, max_rows: int = MAX_ROWS) -> ParseResult:
    return parse_rows(read_sheet_rows(content, filename), max_rows=max_rows)


_SLUG_RE = re.compile(r"[^a-z0-9]+")


def product_slug(name: str, sku: str) -> str:
    # "Bridal Lehenga (Red)", "BCN01" -> "bridal-lehenga-red-bcn01"
    base = _SLUG_RE.sub("-", name.lower()).strip("-")
    return f"{base}-{sku.lower()}"
