"""
Sequential document numbers: quotes TKL-2026-0001, orders SIP-2026-0001,
dealers BAY-001.

Each (kind, year) scope has one row in ``document_sequences``. The row is
read with SELECT ... FOR UPDATE, so two transactions allocating in the same
scope serialize on it and never hand out the same number.
"""
import logging
from datetime import datetime, timezone
from enum import Enum
from typing import Optional

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from app.models.orm_models import DocumentSequence

logger = logging.getLogger("bayedi-numbering")


class DocumentKind(str, Enum):
    QUOTE = "QUOTE"
    ORDER = "ORDER"
    DEALER = "DEALER"


PREFIXES = {
    DocumentKind.QUOTE: "TKL",
    DocumentKind.ORDER: "SIP",
    DocumentKind.DEALER: "BAY",
}


# Dealer codes are not reset per year
YEARLY_KINDS = {DocumentKind.QUOTE, DocumentKind.ORDER}


def _scope_year(kind: DocumentKind, year: Optional[int]) -> int:
    if kind not in YEARLY_KINDS:
        return 0
    return year or datetime.now(timezone.utc).year


def format_document_number(kind, sequence: int, year: Optional[int] = None) -> str:
    kind = DocumentKind(kind)
    if sequence < 1:
        raise ValueError(f"sequence must be >= 1 (got {sequence})")
    prefix = PREFIXES[kind]
    if kind in YEARLY_KINDS:
        return f"{prefix}-{_scope_year(kind, year)}-{sequence:04d}"
    return f"{prefix}-{sequence:03d}"


async def _locked_sequence(db: AsyncSession, kind: DocumentKind, year: int) -> Optional[DocumentSequence]:
    result = await db.execute(
        select(DocumentSequence)
        .where(DocumentSequence.kind == kind.value, DocumentSequence.year == year)
        .with_for_update()
    )
    return result.scalar_one_or_none()


async def next_number(db: AsyncSession, kind, year: Optional[int] = None) -> str:
    """Allocate and return the next document number for the scope."""
    kind = DocumentKind(kind)
    scope_year = _scope_year(kind, year)

    row = await _locked_sequence(db, kind, scope_year)
    if row is None:
        try:
            async with db.begin_nested():
                db.add(DocumentSequence(kind=kind.value, year=scope_year, last_value=0))
        except IntegrityError:
            # Another transaction created the scope row first
            logger.debug(f"Sequence row {kind.value}/{scope_year} created concurrently")
        row = await _locked_sequence(db, kind, scope_year)

    row.last_value = (row.last_value or 0) + 1
    await db.flush()
    number = format_document_number(kind, row.last_value, scope_year or None)
    logger.info(f"Allocated {number}")
    return number
