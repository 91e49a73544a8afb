"""Tests for document number allocation."""

from datetime import datetime, timezone

import pytest

from cleanops.core.exceptions import ValidationError
from cleanops.services.document_sequence_service import (
    DocumentSequenceService,
    format_document_number,
)

DAY = datetime(2026, 10, 17, 12, 0, tzinfo=timezone.utc)


def test_format():
    assert format_document_number("TRF", "wst01", DAY, 7) == "TRF-WST01-20261017-0007"


class TestDocumentSequence:

    async def test_numbers_increment(self, db):
        service = DocumentSequenceService(db)
        assert await service.get_next_number("ORD", "NRB01", DAY) == "ORD-NRB01-20261017-0001"
        assert await service.get_next_number("ORD", "NRB01", DAY) == "ORD-NRB01-20261017-0002"
        assert await service.get_current_number("ORD", "NRB01", DAY) == 2

    async def test_partitions_are_independent(self, db):
        service = DocumentSequenceService(db)
        await service.get_next_number("ORD", "NRB01", DAY)

        assert await service.get_next_number("ORD", "WST01", DAY) == "ORD-WST01-20261017-0001"
        assert await service.get_next_number("PROC", "washing", DAY) == "PROC-WASHING-20261017-0001"
        next_day = datetime(2026, 10, 18, 0, 5, tzinfo=timezone.utc)
        assert await service.get_next_number("ORD", "NRB01", next_day) == "ORD-NRB01-20261018-0001"

    async def test_unused_partition_reads_zero(self, db):
        assert await DocumentSequenceService(db).get_current_number("TRF", "WST01", DAY) == 0

    async def test_unknown_type(self, db):
        with pytest.raises(ValidationError, match="Invalid document type"):
            await DocumentSequenceService(db).get_next_number("INV", "NRB01", DAY)

    async def test_orders_numbered_per_branch(self, main_store, make_order):
        first = await make_order(main_store)
        second = await make_order(main_store)
        assert first.order_number.startswith("ORD-NRB01-")
        assert first.order_number.endswith("-0001")
        assert second.order_number.endswith("-0002")
