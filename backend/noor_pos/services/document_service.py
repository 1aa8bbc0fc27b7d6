# Overview: Server-side document numbering (invoice numbers).

from __future__ import annotations

from sqlalchemy import update
from sqlalchemy.exc import IntegrityError

from ..extensions import db
from ..models import DocumentSequence


INVOICE = "INVOICE"

PREFIXES = {
    INVOICE: "INV",
}


class DocumentSequenceError(Exception):
    """Raised when a document number cannot be allocated."""
    def __init__(self, message: str, details: dict | None = None):
        super().__init__(message)
        self.details = details or {}


def _current_number(document_type: str) -> int:
    return (
        db.session.query(DocumentSequence.next_number)
        .filter_by(document_type=document_type)
        .scalar()
    )


def next_document_number(document_type: str, *, pad: int = 6) -> str:
    """
    Allocate the next number for document_type inside the caller's transaction.

    The increment is a single UPDATE, so two transactions can never read the
    same value. Runs without committing: if the caller rolls back, the number
    is released with it. A concurrent first allocation for a type surfaces as
    DocumentSequenceError and aborts the caller's transaction.
    """
    prefix = PREFIXES.get(document_type)
    if not prefix:
        raise DocumentSequenceError(f"Unknown document type: {document_type}")

    stmt = (
        update(DocumentSequence)
        .where(DocumentSequence.document_type == document_type)
        .values(next_number=DocumentSequence.next_number + 1)
    )
    result = db.session.execute(stmt)
    if result.rowcount:
        next_num = _current_number(document_type) - 1
    else:
        seq = DocumentSequence(document_type=document_type, next_number=2)
        db.session.add(seq)
        try:
            db.session.flush()
        except IntegrityError as exc:
            raise DocumentSequenceError(
                "Could not allocate document number",
                details={"document_type": document_type},
            ) from exc
        next_num = 1

    if next_num is None or next_num < 1:
        raise DocumentSequenceError(
            "Could not allocate document number",
            details={"document_type": document_type},
        )
    return f"{prefix}-{next_num:0{pad}d}"


def ensure_sequence(document_type: str) -> DocumentSequence:
    """Create the sequence row if missing (used by `flask system init`)."""
    seq = db.session.query(DocumentSequence).filter_by(document_type=document_type).first()
    if seq is None:
        seq = DocumentSequence(document_type=document_type, next_number=1)
        db.session.add(seq)
        db.session.flush()
    return seq
