from __future__ import annotations

from ..extensions import db
from noor_pos.time_utils import to_utc_z


class ProductImport(db.Model):
    """
    One row per committed spreadsheet import.

    total_rows counts the valid rows that were attempted, not the raw sheet rows.
    error_details is a list of {"row", "sku", "error"} dicts.
    """
    __tablename__ = "product_imports"
    __table_args__ = {"sqlite_autoincrement": True}

    id = db.Column(db.Integer, primary_key=True)
    file_name = db.Column(db.String(255), nullable=False)
    total_rows = db.Column(db.Integer, nullable=False, default=0)
    products_created = db.Column(db.Integer, nullable=False, default=0)
    products_updated = db.Column(db.Integer, nullable=False, default=0)
    errors = db.Column(db.Integer, nullable=False, default=0)
    error_details = db.Column(db.JSON, nullable=True)
    imported_by = db.Column(db.String(64), nullable=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now(), index=True)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "file_name": self.file_name,
            "total_rows": self.total_rows,
            "products_created": self.products_created,
            "products_updated": self.products_updated,
            "errors": self.errors,
            "error_details": list(self.error_details or []),
            "imported_by": self.imported_by,
            "created_at": to_utc_z(self.created_at),
        }
