"""SQLAlchemy ORM models backing the generic document store."""

from sqlalchemy import ForeignKey, Index, Integer, JSON, String, UniqueConstraint
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.orm import Mapped, mapped_column

from app.infrastructure.database.base import Base

_DocumentJSON = JSON().with_variant(JSONB(), "postgresql")


class DocumentModel(Base):
    """ORM model — one schema-less document in a named collection.

    ``pk`` only fixes store iteration order (insertion order); documents
    are addressed by ``id``.
    """

    __tablename__ = "documents"

    pk: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    id: Mapped[str] = mapped_column(String(36), nullable=False, unique=True)
    collection: Mapped[str] = mapped_column(String(100), nullable=False)
    data: Mapped[dict] = mapped_column(_DocumentJSON, nullable=False, default=dict)

    __table_args__ = (
        Index("ix_documents_collection", "collection", "pk"),
    )

    def __repr__(self) -> str:
        return f"<DocumentModel(id={self.id}, collection='{self.collection}')>"


class DocumentKeyModel(Base):
    """ORM model — claims a unique field value within a collection.

    Written in the same transaction as its document, so two concurrent
    writers of the same value cannot both commit.
    """

    __tablename__ = "document_keys"

    pk: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    collection: Mapped[str] = mapped_column(String(100), nullable=False)
    field: Mapped[str] = mapped_column(String(100), nullable=False)
    value: Mapped[str] = mapped_column(String(512), nullable=False)
    document_id: Mapped[str] = mapped_column(
        String(36), ForeignKey("documents.id", ondelete="CASCADE"), nullable=False
    )

    __table_args__ = (
        UniqueConstraint("collection", "field", "value", name="uq_document_keys_value"),
        Index("ix_document_keys_document", "document_id"),
    )

    def __repr__(self) -> str:
        return (
            f"<DocumentKeyModel(collection='{self.collection}', "
            f"field='{self.field}', value='{self.value}')>"
        )
