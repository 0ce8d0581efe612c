"""
test_document_numbering.py — Document number formatting and allocation.

Allocation runs against a minimal in-memory session that mimics the calls
next_number makes (execute / begin_nested / add / flush).
"""

import asyncio

import pytest
from sqlalchemy.exc import IntegrityError

from app.models.orm_models import DocumentSequence
from app.services.document_numbering import (
    DocumentKind, format_document_number, next_number,
)


class _Result:
    def __init__(self, row):
        self._row = row

    def scalar_one_or_none(self):
        return self._row


class _Savepoint:
    def __init__(self, session):
        self.session = session

    async def __aenter__(self):
        return self

    async def __aexit__(self, exc_type, exc, tb):
        if self.session.conflict_row is not None:
            # Another transaction inserted the scope row first
            self.session.row = self.session.conflict_row
            raise IntegrityError("INSERT INTO document_sequences", {}, Exception("duplicate key"))
        return False


class _FakeSession:
    def __init__(self, row=None, conflict_row=None):
        self.row = row
        self.conflict_row = conflict_row
        self.executed = 0

    async def execute(self, stmt):
        self.executed += 1
        return _Result(self.row)

    def begin_nested(self):
        return _Savepoint(self)

    def add(self, obj):
        if self.conflict_row is None:
            self.row = obj

    async def flush(self):
        pass


class TestFormat:

    def test_quote_and_order_numbers(self):
        assert format_document_number(DocumentKind.QUOTE, 1, 2026) == "TKL-2026-0001"
        assert format_document_number("ORDER", 42, 2026) == "SIP-2026-0042"

    def test_dealer_codes_ignore_year(self):
        assert format_document_number(DocumentKind.DEALER, 7, 2026) == "BAY-007"

    def test_wide_sequence_is_not_truncated(self):
        assert format_document_number(DocumentKind.QUOTE, 12345, 2026) == "TKL-2026-12345"

    def test_sequence_must_be_positive(self):
        with pytest.raises(ValueError):
            format_document_number(DocumentKind.QUOTE, 0, 2026)

    def test_unknown_kind(self):
        with pytest.raises(ValueError):
            format_document_number("INVOICE", 1, 2026)


class TestAllocation:

    def test_first_number_creates_scope(self):
        session = _FakeSession()
        assert asyncio.run(next_number(session, DocumentKind.QUOTE, 2026)) == "TKL-2026-0001"
        assert session.row.kind == "QUOTE"
        assert session.row.year == 2026
        assert session.row.last_value == 1

    def test_numbers_increase(self):
        session = _FakeSession(row=DocumentSequence(kind="ORDER", year=2026, last_value=9))
        first = asyncio.run(next_number(session, DocumentKind.ORDER, 2026))
        second = asyncio.run(next_number(session, DocumentKind.ORDER, 2026))
        assert (first, second) == ("SIP-2026-0010", "SIP-2026-0011")

    def test_dealer_scope_is_global(self):
        session = _FakeSession()
        assert asyncio.run(next_number(session, DocumentKind.DEALER)) == "BAY-001"
        assert session.row.year == 0

    def test_concurrent_scope_creation_rereads_row(self):
        existing = DocumentSequence(kind="QUOTE", year=2026, last_value=3)
        session = _FakeSession(conflict_row=existing)
        assert asyncio.run(next_number(session, DocumentKind.QUOTE, 2026)) == "TKL-2026-0004"
        assert existing.last_value == 4
        assert session.executed == 2
