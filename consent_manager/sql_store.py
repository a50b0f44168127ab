"""Durable consent store backed by SQLAlchemy."""
from __future__ import annotations

import logging
from typing import Any, Iterable, List, Optional

from pydantic import ValidationError as PydanticValidationError
from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from .db_models import ConsentRecord
from .errors import NotFoundError
from .models import ConsentArtifact, index_key
from .store import ConsentStore

logger = logging.getLogger(__name__)


class SQLConsentStore(ConsentStore):
    """
    Persistence for consent artifacts in the ``consents`` table.

    Scans skip rows whose stored document no longer parses as an artifact,
    so one damaged row cannot take down validation of the others.
    """

    def __init__(self, session_maker: async_sessionmaker[AsyncSession]):
        self.session_maker = session_maker

    @staticmethod
    def _to_artifact(record: ConsentRecord) -> ConsentArtifact:
        return ConsentArtifact.model_validate(record.document)

    def _readable(self, records: Iterable[ConsentRecord]) -> List[ConsentArtifact]:
        artifacts = []
        for record in records:
            try:
                artifacts.append(self._to_artifact(record))
            except PydanticValidationError as e:
                logger.warning(
                    "Skipping unreadable consent record: %s (%d validation errors)",
                    record.consent_id,
                    e.error_count(),
                )
        return artifacts

    async def put(self, consent_id: str, artifact: ConsentArtifact) -> None:
        record = ConsentRecord(
            consent_id=consent_id,
            principal_id=index_key(artifact.data_principal.id),
            fiduciary_id=index_key(artifact.data_fiduciary.id),
            status=artifact.status.value,
            granted_at=artifact.granted_at,
            document=artifact.to_document(),
        )
        async with self.session_maker() as session:
            session.add(record)
            await session.commit()

    async def get(self, consent_id: str) -> Optional[ConsentArtifact]:
        async with self.session_maker() as session:
            record = await session.get(ConsentRecord, consent_id)
            return self._to_artifact(record) if record is not None else None

    async def values(self) -> List[ConsentArtifact]:
        stmt = select(ConsentRecord).order_by(ConsentRecord.granted_at, ConsentRecord.consent_id)
        async with self.session_maker() as session:
            result = await session.execute(stmt)
            return self._readable(result.scalars().all())

    async def update(self, consent_id: str, artifact: ConsentArtifact) -> None:
        async with self.session_maker() as session:
            record = await session.get(ConsentRecord, consent_id)
            if record is None:
                raise NotFoundError("not found", {"consent_id": consent_id})
            record.principal_id = index_key(artifact.data_principal.id)
            record.fiduciary_id = index_key(artifact.data_fiduciary.id)
            record.status = artifact.status.value
            record.document = artifact.to_document()
            await session.commit()

    async def candidates(self, principal_id: Any, fiduciary_id: Any) -> List[ConsentArtifact]:
        """Narrow the scan with the (principal_id, fiduciary_id) index."""
        stmt = (
            select(ConsentRecord)
            .where(
                ConsentRecord.principal_id == index_key(principal_id),
                ConsentRecord.fiduciary_id == index_key(fiduciary_id),
            )
            .order_by(ConsentRecord.granted_at, ConsentRecord.consent_id)
        )
        async with self.session_maker() as session:
            result = await session.execute(stmt)
            return self._readable(result.scalars().all())

    async def count(self) -> int:
        """Row count straight from the table; doubles as the readiness probe."""
        async with self.session_maker() as session:
            result = await session.execute(select(func.count()).select_from(ConsentRecord))
            return result.scalar_one()
