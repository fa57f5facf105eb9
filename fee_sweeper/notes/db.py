"""Database models for fee notes and indexer metadata."""

from datetime import datetime
from decimal import Decimal

from sqlalchemy import BigInteger, DateTime, Numeric, String, Text, func
from sqlalchemy.orm import Mapped, mapped_column

from fee_sweeper.helpers.db import Base


class FeeNoteDB(Base):
    """Fee note database model, one row per on-chain commitment."""

    __tablename__ = "fee_notes"

    commitment: Mapped[str] = mapped_column(String(66), primary_key=True)
    chain_id: Mapped[int] = mapped_column(BigInteger, index=True)
    block_number: Mapped[int] = mapped_column(BigInteger, index=True)
    tx_hash: Mapped[str | None] = mapped_column(String(66), nullable=True)
    ciphertext: Mapped[str] = mapped_column(Text)  # hex
    mint: Mapped[str | None] = mapped_column(String(66), nullable=True, index=True)
    amount: Mapped[Decimal | None] = mapped_column(Numeric, nullable=True)
    blinder: Mapped[Decimal | None] = mapped_column(Numeric, nullable=True)
    receiver_wallet_id: Mapped[str | None] = mapped_column(
        String(66), nullable=True, index=True
    )
    status: Mapped[str] = mapped_column(String(16), index=True)
    failure_reason: Mapped[str | None] = mapped_column(Text, nullable=True)
    redemption_task_id: Mapped[str | None] = mapped_column(String(64), nullable=True)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now()
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now(), onupdate=func.now()
    )


class IndexerMetadataDB(Base):
    """Per-chain key/value metadata; holds the indexing checkpoint."""

    __tablename__ = "indexer_metadata"

    chain_id: Mapped[int] = mapped_column(BigInteger, primary_key=True)
    key: Mapped[str] = mapped_column(String(64), primary_key=True)
    value: Mapped[str] = mapped_column(String(255))
