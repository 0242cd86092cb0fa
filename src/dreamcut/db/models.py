"""SQLAlchemy ORM models."""

from datetime import datetime
from typing import Any
from uuid import UUID as PyUUID
from uuid import uuid4

from sqlalchemy import BigInteger, DateTime, Float, ForeignKey, Identity, Integer, String, Text
from sqlalchemy.dialects.postgresql import JSONB, UUID
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column, relationship
from sqlalchemy.sql import func


class Base(DeclarativeBase):
    """Base class for all ORM models."""

    pass


class QueryModel(Base):
    """One end-to-end creative request."""

    __tablename__ = "dreamcut_queries"

    id: Mapped[PyUUID] = mapped_column(UUID(as_uuid=True), primary_key=True, default=uuid4)
    user_id: Mapped[str] = mapped_column(String(255), nullable=False, index=True)
    user_prompt: Mapped[str] = mapped_column(Text, nullable=False)
    intent: Mapped[str] = mapped_column(String(20), nullable=False)
    options: Mapped[dict[str, Any] | None] = mapped_column(JSONB, nullable=True)
    status: Mapped[str] = mapped_column(String(20), server_default="processing", index=True)
    stage: Mapped[str] = mapped_column(String(20), server_default="init")
    progress: Mapped[int] = mapped_column(Integer, server_default="0")
    payload: Mapped[dict[str, Any] | None] = mapped_column(JSONB, nullable=True)
    error_message: Mapped[str | None] = mapped_column(Text, nullable=True)
    processing_time_ms: Mapped[int | None] = mapped_column(Integer, nullable=True)
    models_used: Mapped[list[str] | None] = mapped_column(JSONB, nullable=True)
    cost_estimate: Mapped[float | None] = mapped_column(Float, nullable=True)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now(), index=True
    )
    updated_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True), onupdate=func.now()
    )
    completed_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)

    # Relationships
    assets: Mapped[list["AssetModel"]] = relationship(
        "AssetModel",
        back_populates="query",
        cascade="all, delete-orphan",
        order_by="AssetModel.position",
    )
    messages: Mapped[list["MessageModel"]] = relationship(
        "MessageModel",
        back_populates="query",
        cascade="all, delete-orphan",
        order_by="MessageModel.seq",
    )


class AssetModel(Base):
    """One media input of a query and its analysis state."""

    __tablename__ = "dreamcut_assets"

    id: Mapped[PyUUID] = mapped_column(UUID(as_uuid=True), primary_key=True, default=uuid4)
    query_id: Mapped[PyUUID] = mapped_column(
        UUID(as_uuid=True), ForeignKey("dreamcut_queries.id", ondelete="CASCADE"), index=True
    )
    # Order within the request
    position: Mapped[int] = mapped_column(Integer, server_default="0")
    url: Mapped[str] = mapped_column(Text, nullable=False)
    filename: Mapped[str | None] = mapped_column(String(512), nullable=True)
    type: Mapped[str] = mapped_column(String(20), nullable=False)
    user_description: Mapped[str | None] = mapped_column(Text, nullable=True)
    file_size_bytes: Mapped[int | None] = mapped_column(BigInteger, nullable=True)
    metadata_: Mapped[dict[str, Any] | None] = mapped_column("metadata", JSONB, nullable=True)
    status: Mapped[str] = mapped_column(String(20), server_default="pending", index=True)
    progress: Mapped[int] = mapped_column(Integer, server_default="0")
    analysis: Mapped[dict[str, Any] | None] = mapped_column(JSONB, nullable=True)
    worker_id: Mapped[str | None] = mapped_column(String(255), nullable=True)
    model_used: Mapped[str | None] = mapped_column(String(255), nullable=True)
    processing_time_ms: Mapped[int | None] = mapped_column(Integer, nullable=True)
    error_message: Mapped[str | None] = mapped_column(Text, nullable=True)
    quality_score: Mapped[float | None] = mapped_column(Float, nullable=True)
    confidence_score: Mapped[float | None] = mapped_column(Float, nullable=True)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now()
    )
    updated_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True), onupdate=func.now()
    )
    analyzed_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)

    query: Mapped["QueryModel"] = relationship("QueryModel", back_populates="assets")


class MessageModel(Base):
    """Append-only narration event of a query."""

    __tablename__ = "dreamcut_messages"

    id: Mapped[PyUUID] = mapped_column(UUID(as_uuid=True), primary_key=True, default=uuid4)
    # Insertion order; created_at alone can tie within one transaction
    seq: Mapped[int] = mapped_column(BigInteger, Identity(), unique=True)
    query_id: Mapped[PyUUID] = mapped_column(
        UUID(as_uuid=True), ForeignKey("dreamcut_queries.id", ondelete="CASCADE"), index=True
    )
    type: Mapped[str] = mapped_column(String(30), nullable=False)
    content: Mapped[str] = mapped_column(Text, nullable=False)
    emoji: Mapped[str | None] = mapped_column(String(16), nullable=True)
    asset_id: Mapped[PyUUID | None] = mapped_column(
        UUID(as_uuid=True), ForeignKey("dreamcut_assets.id", ondelete="SET NULL"), nullable=True
    )
    data: Mapped[dict[str, Any] | None] = mapped_column(JSONB, nullable=True)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now()
    )

    query: Mapped["QueryModel"] = relationship("QueryModel", back_populates="messages")
