# Overview: Product import commit; upserts parsed spreadsheet rows into the catalog and inventory ledger.

from __future__ import annotations

import logging
import math
import time
from dataclasses import dataclass, field
from typing import Callable, Iterable

from ..extensions import db
from ..models import Category, Product, ProductImport
from .concurrency import run_with_retry
from .import_parser import (
    ImportError,
    ParsedProduct,
    ParseResult,
    parse_file,
    product_slug,
)
from .inventory_service import record_initial_stock, set_stock

"""
Commit rules

- Only valid rows are committed, in batches of BATCH_SIZE_DEFAULT.
- The category name -> id map is reloaded once per batch.
- Rows are keyed on SKU: an existing SKU is updated (stock set absolutely,
  history only if the count changed), an unknown SKU is inserted with an
  opening-stock history entry.
- Each row is its own transaction. A failing row is rolled back, recorded
  as {row, sku, error} and the import carries on with the next row.
- One ProductImport record summarises the run.
"""

logger = logging.getLogger(__name__)

BATCH_SIZE_DEFAULT = 10
HISTORY_LIMIT_DEFAULT = 50

# Listings a client should refetch after a commit
INVALIDATED_QUERIES = ["products"]


@dataclass
class ImportResult:
    file_name: str
    total_rows: int
    created: int = 0
    updated: int = 0
    errors: list[dict] = field(default_factory=list)
    import_id: int | None = None
    elapsed_ms: int = 0

    def to_dict(self) -> dict:
        return {
            "import_id": self.import_id,
            "file_name": self.file_name,
            "total_rows": self.total_rows,
            "created": self.created,
            "updated": self.updated,
            "errors": list(self.errors),
            "error_count": len(self.errors),
            "elapsed_ms": self.elapsed_ms,
            "invalidated_queries": list(INVALIDATED_QUERIES),
        }


def _category_map() -> dict[str, int]:
    return {name.upper(): cid for cid, name in db.session.query(Category.id, Category.name).all()}


def _discount_price(parsed: ParsedProduct):
    # Sale price equal to MRP means "no discount"
    return parsed.sale_price if parsed.sale_price != parsed.mrp else None


def _upsert_row(
    parsed: ParsedProduct,
    *,
    category_id: int | None,
    file_name: str,
    imported_by: str | None,
) -> str:
    """Apply one parsed row. Returns "created" or "updated". Flushes, does not commit."""
    existing = db.session.query(Product).filter_by(sku=parsed.sku).first()

    if existing is not None:
        existing.name = parsed.item_details
        existing.design_number = parsed.design_number
        existing.unit = parsed.unit
        existing.price = parsed.mrp
        existing.discount_price = _discount_price(parsed)
        existing.category_id = category_id
        set_stock(
            existing.id,
            parsed.closing_qty,
            change_type="file_upload",
            notes=f"Synced from file: {file_name}",
            created_by=imported_by,
        )
        db.session.flush()
        return "updated"

    product = Product(
        name=parsed.item_details,
        slug=product_slug(parsed.item_details, parsed.sku),
        sku=parsed.sku,
        design_number=parsed.design_number,
        unit=parsed.unit,
        price=parsed.mrp,
        discount_price=_discount_price(parsed),
        stock_quantity=parsed.closing_qty,
        category_id=category_id,
        is_active=True,
        is_featured=False,
    )
    db.session.add(product)
    db.session.flush()
    record_initial_stock(
        product,
        change_type="file_upload",
        notes=f"Initial stock from file: {file_name}",
        created_by=imported_by,
    )
    db.session.flush()
    return "created"


def _error_message(exc: Exception) -> str:
    orig = getattr(exc, "orig", None)
    if orig is not None:
        return str(orig)
    return str(exc) or exc.__class__.__name__


def _batches(rows: list[ParsedProduct], size: int) -> Iterable[list[ParsedProduct]]:
    for start in range(0, len(rows), size):
        yield rows[start:start + size]


def commit_import(
    products: list[ParsedProduct],
    *,
    file_name: str,
    imported_by: str | None = None,
    batch_size: int = BATCH_SIZE_DEFAULT,
    progress: Callable[[int], None] | None = None,
) -> ImportResult:
    """
    Upsert the valid rows of a parsed sheet and record the import.

    progress, when given, is called after each batch with
    round(batches_done / total_batches * 100).
    """
    valid = [p for p in products if p.is_valid]
    if not valid:
        raise ImportError("There are no valid products to import.")
    if batch_size < 1:
        raise ImportError("batch_size must be >= 1")

    started = time.monotonic()
    result = ImportResult(file_name=file_name or "unknown", total_rows=len(valid))
    total_batches = math.ceil(len(valid) / batch_size)

    logger.info("Import of %s started: %s valid rows in %s batches", result.file_name, len(valid), total_batches)

    for batch_index, batch in enumerate(_batches(valid, batch_size)):
        category_map = _category_map()

        for parsed in batch:
            category_id = category_map.get(parsed.detected_category) if parsed.detected_category else None
            try:
                outcome = _upsert_row(
                    parsed,
                    category_id=category_id,
                    file_name=result.file_name,
                    imported_by=imported_by,
                )
                db.session.commit()
            except Exception as exc:
                db.session.rollback()
                message = _error_message(exc)
                logger.warning("Import row %s (SKU %s) failed: %s", parsed.row_number, parsed.sku, message)
                result.errors.append({"row": parsed.row_number, "sku": parsed.sku, "error": message})
                continue

            if outcome == "created":
                result.created += 1
            else:
                result.updated += 1

        if progress is not None:
            progress(round((batch_index + 1) / total_batches * 100))

    def _write_history() -> ProductImport:
        record = ProductImport(
            file_name=result.file_name,
            total_rows=result.total_rows,
            products_created=result.created,
            products_updated=result.updated,
            errors=len(result.errors),
            error_details=list(result.errors),
            imported_by=imported_by,
        )
        db.session.add(record)
        db.session.commit()
        return record

    record = run_with_retry(_write_history)
    result.import_id = record.id
    result.elapsed_ms = int((time.monotonic() - started) * 1000)

    logger.info(
        "Import of %s finished: created=%s updated=%s errors=%s (%sms)",
        result.file_name, result.created, result.updated, len(result.errors), result.elapsed_ms,
    )
    return result


def preview_import(content: bytes, file_name: str, *, max_rows: int | None = None) -> ParseResult:
    """Parse and validate without writing anything."""
    if max_rows is None:
        return parse_file(content, file_name)
    return parse_file(content, file_name, max_rows=max_rows)


def run_import(
    content: bytes,
    file_name: str,
    *,
    imported_by: str | None = None,
    batch_size: int = BATCH_SIZE_DEFAULT,
    max_rows: int | None = None,
    progress: Callable[[int], None] | None = None,
) -> tuple[ParseResult, ImportResult]:
    """Parse a sheet and commit its valid rows (upload endpoint and `flask imports run`)."""
    parsed = preview_import(content, file_name, max_rows=max_rows)
    result = commit_import(
        parsed.products,
        file_name=file_name,
        imported_by=imported_by,
        batch_size=batch_size,
        progress=progress,
    )
    return parsed, result


def list_imports(limit: int = HISTORY_LIMIT_DEFAULT) -> list[ProductImport]:
    return (
        db.session.query(ProductImport)
        .order_by(ProductImport.created_at.desc(), ProductImport.id.desc())
        .limit(limit)
        .all()
    )
