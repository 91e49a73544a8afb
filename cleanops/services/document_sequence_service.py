"""
Document Sequence Service for Atomic Number Generation

Numbers are scoped by a partition (branch or stage code plus day) and the
counter is incremented by the database itself in one upsert statement, so
two concurrent callers can never receive the same number.

USAGE:
    service = DocumentSequenceService(db)
    number = await service.get_next_number(DocumentType.ORDER, "NRB01")
    # Returns: ORD-NRB01-20261017-0001
"""

import logging
import uuid
from datetime import datetime
from typing import Optional

from sqlalchemy import select
from sqlalchemy.dialects.postgresql import insert as pg_insert
from sqlalchemy.dialects.sqlite import insert as sqlite_insert
from sqlalchemy.ext.asyncio import AsyncSession

from cleanops.core.enum_utils import get_enum_value
from cleanops.core.exceptions import ValidationError
from cleanops.core.time_utils import utc_now, day_key
from cleanops.models.document_sequence import DocumentSequence, DocumentType

logger = logging.getLogger(__name__)


DOCUMENT_METADATA = {
    DocumentType.ORDER.value: {"name": "Order", "padding": 4},
    DocumentType.PROCESSING_BATCH.value: {"name": "Processing Batch", "padding": 4},
    DocumentType.TRANSFER_BATCH.value: {"name": "Transfer Batch", "padding": 4},
}


def build_partition_key(document_type: str, scope: str, on: datetime) -> str:
    return f"{document_type}:{scope.upper()}:{day_key(on)}"


def format_document_number(document_type: str, scope: str, on: datetime, number: int) -> str:
    padding = DOCUMENT_METADATA[document_type]["padding"]
    return f"{document_type}-{scope.upper()}-{day_key(on)}-{str(number).zfill(padding)}"


class DocumentSequenceService:
    """Allocates human readable document numbers."""

    def __init__(self, db: AsyncSession):
        self.db = db

    def _insert(self):
        dialect = self.db.bind.dialect.name if self.db.bind is not None else "postgresql"
        return sqlite_insert if dialect == "sqlite" else pg_insert

    async def get_next_number(
        self,
        document_type,
        scope: str,
        on: Optional[datetime] = None,
    ) -> str:
        """
        Get next document number with atomic increment.

        Args:
            document_type: DocumentType or its code (ORD, PROC, TRF)
            scope: Branch code or stage name forming the partition
            on: Day to number against. Defaults to now (UTC).

        Raises:
            ValidationError: If document_type is unknown or scope is empty
        """
        doc_type = get_enum_value(document_type).upper()
        if doc_type not in DOCUMENT_METADATA:
            valid_types = ", ".join(DOCUMENT_METADATA.keys())
            raise ValidationError(f"Invalid document type '{doc_type}'. Valid types: {valid_types}")
        if not scope:
            raise ValidationError("Document number scope is required")

        on = on or utc_now()
        partition_key = build_partition_key(doc_type, scope, on)
        now = utc_now()

        insert = self._insert()
        stmt = insert(DocumentSequence).values(
            id=uuid.uuid4(),
            document_type=doc_type,
            partition_key=partition_key,
            current_number=1,
            padding_length=DOCUMENT_METADATA[doc_type]["padding"],
            created_at=now,
            updated_at=now,
        )
        stmt = stmt.on_conflict_do_update(
            index_elements=[DocumentSequence.partition_key],
            set_={
                "current_number": DocumentSequence.current_number + 1,
                "updated_at": now,
            },
        ).returning(DocumentSequence.current_number)

        result = await self.db.execute(stmt)
        number = result.scalar_one()

        document_number = format_document_number(doc_type, scope, on, number)
        logger.debug(f"Allocated {document_number}")
        return document_number

    async def get_current_number(self, document_type, scope: str, on: Optional[datetime] = None) -> int:
        """Last number allocated in the partition (0 if none yet). Read-only."""
        doc_type = get_enum_value(document_type).upper()
        partition_key = build_partition_key(doc_type, scope, on or utc_now())
        result = await self.db.execute(
            select(DocumentSequence.current_number).where(
                DocumentSequence.partition_key == partition_key
            )
        )
        return result.scalar_one_or_none() or 0
