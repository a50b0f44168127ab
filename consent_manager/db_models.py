"""SQLAlchemy models for persisted consent artifacts."""
from sqlalchemy import Column, String, JSON, DateTime, Index
from sqlalchemy.sql import func

from .database import Base


class ConsentRecord(Base):
    """One row per consent artifact; ``document`` holds the full signed artifact."""
    __tablename__ = "consents"

    consent_id = Column(String(128), primary_key=True)
    principal_id = Column(String(255), nullable=False)
    fiduciary_id = Column(String(255), nullable=False)
    status = Column(String(16), nullable=False, default="active", index=True)
    granted_at = Column(DateTime(timezone=True), nullable=False)
    document = Column(JSON, nullable=False)
    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now(), nullable=False)

    # Indexes
    __table_args__ = (
        Index("idx_consents_principal_fiduciary", "principal_id", "fiduciary_id"),
    )

    def __repr__(self):
        return f"<ConsentRecord(consent_id={self.consent_id}, status={self.status})>"
