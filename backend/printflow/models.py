"""SQLAlchemy model for JSON documents grouped in collections."""
from sqlalchemy import JSON, Column, DateTime, Integer, String, UniqueConstraint
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.sql import func

from .database import Base

DocumentData = JSON().with_variant(JSONB(), "postgresql")


class Document(Base):
    """One document of a collection.

    Collections are slash-separated paths, e.g. ``orders``,
    ``orders/<order id>/subitems`` or ``settings``.
    """
    __tablename__ = "documents"

    seq = Column(Integer, primary_key=True, autoincrement=True)
    collection = Column(String(255), nullable=False, index=True)
    doc_id = Column(String(128), nullable=False)
    data = Column(DocumentData, nullable=False, default=dict)
    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now())

    __table_args__ = (
        UniqueConstraint("collection", "doc_id", name="uq_documents_collection_doc_id"),
    )
