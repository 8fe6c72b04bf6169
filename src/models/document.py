"""
Stored governance documents.

The SQL storage backend keeps every governance document (consent records,
consent history, retention policy, purge history, privacy audit log) as one
JSON row keyed by its fixed document key.

Data Classification: SENSITIVE (consent decisions and their metadata)
"""

from datetime import UTC, datetime

from sqlalchemy import Column, DateTime, String, Text

from src.models.base import Base


class StoredDocument(Base):
    """
    One JSON document of the privacy governance engine.

    Attributes:
        key: Fixed document key (e.g. "consent_records").
        payload: JSON-encoded document body.
        updated_at: Time of the last write.
    """

    __tablename__ = "privacy_documents"

    key = Column(String(64), primary_key=True)
    payload = Column(Text, nullable=False)
    updated_at = Column(
        DateTime(timezone=True),
        nullable=False,
        default=lambda: datetime.now(UTC),
        onupdate=lambda: datetime.now(UTC),
    )

    def __repr__(self) -> str:
        return f"<StoredDocument(key={self.key})>"


__all__ = ["StoredDocument"]
