"""Persistent storage of fee notes and per-chain indexing checkpoints."""

from __future__ import annotations

from contextlib import asynccontextmanager
from typing import TYPE_CHECKING, Any

from sqlalchemy import select, update
from sqlalchemy.exc import SQLAlchemyError

from fee_sweeper.errors import CheckpointRegressionError, StoreError
from fee_sweeper.helpers.constants import DB_BATCH_SIZE, LAST_INDEXED_BLOCK_KEY
from fee_sweeper.helpers.db import upsert_models
from fee_sweeper.helpers.logging import get_logger
from fee_sweeper.notes.db import FeeNoteDB, IndexerMetadataDB
from fee_sweeper.notes.models import FeeNote, NoteStatus


if TYPE_CHECKING:
    from collections.abc import AsyncIterator, Iterable, Sequence

    from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker


logger = get_logger(__name__)

# Columns refreshed when a commitment is observed again. Status, decrypted
# fields and the redemption task id always keep their first-written values.
OBSERVATION_COLUMNS = ("block_number", "tx_hash", "ciphertext")


def _note_to_row(note: FeeNote) -> dict[str, Any]:
    return {
        "commitment": note.commitment,
        "chain_id": note.chain_id,
        "block_number": note.block_number,
        "tx_hash": note.tx_hash,
        "ciphertext": note.ciphertext.hex(),
        "mint": note.mint,
        "amount": note.amount,
        "blinder": note.blinder,
        "receiver_wallet_id": note.receiver_wallet_id,
        "status": note.status.value,
        "failure_reason": note.failure_reason,
        "redemption_task_id": note.redemption_task_id,
    }


def _row_to_note(row: FeeNoteDB) -> FeeNote:
    return FeeNote(
        commitment=row.commitment,
        chain_id=row.chain_id,
        block_number=row.block_number,
        tx_hash=row.tx_hash,
        ciphertext=bytes.fromhex(row.ciphertext),
        mint=row.mint,
        amount=int(row.amount) if row.amount is not None else None,
        blinder=int(row.blinder) if row.blinder is not None else None,
        receiver_wallet_id=row.receiver_wallet_id,
        status=NoteStatus(row.status),
        failure_reason=row.failure_reason,
        redemption_task_id=row.redemption_task_id,
    )


class NoteStore:
    """Owns the ``fee_notes`` and ``indexer_metadata`` tables.

    Every public operation runs in its own transaction obtained from the
    injected session factory; nothing outside this class issues queries
    against these tables. Database failures surface as ``StoreError``.
    """

    def __init__(self, session_factory: async_sessionmaker[AsyncSession]) -> None:
        self._session_factory = session_factory

    # ---------------
    # | Checkpoints |
    # ---------------

    async def get_checkpoint(self, chain_id: int) -> int | None:
        """Return the last fully indexed block for ``chain_id``, if any."""
        async with self._transaction() as session:
            return await self._read_checkpoint(session, chain_id)

    async def advance_checkpoint(self, chain_id: int, block: int) -> None:
        """Set the checkpoint of ``chain_id`` to ``block``.

        Raises:
            CheckpointRegressionError: If ``block`` is below the stored value
        """
        async with self._transaction() as session:
            await self._advance(session, chain_id, block)

    # ---------
    # | Notes |
    # ---------

    async def upsert_batch(self, notes: Sequence[FeeNote]) -> int:
        """Insert notes, refreshing provenance of commitments already stored.

        Returns:
            Number of distinct commitments written
        """
        async with self._transaction() as session:
            written = await self._upsert(session, notes)
        return written

    async def persist_range(
        self, chain_id: int, notes: Sequence[FeeNote], block: int
    ) -> int:
        """Upsert ``notes`` and advance the checkpoint in one transaction.

        Either both the notes and the new checkpoint become visible or
        neither does, so a crash can only cause a rescan.

        Raises:
            CheckpointRegressionError: If ``block`` is below the stored value
        """
        async with self._transaction() as session:
            written = await self._upsert(session, notes)
            await self._advance(session, chain_id, block)
        return written

    async def get_note(self, commitment: str) -> FeeNote | None:
        async with self._transaction() as session:
            row = await session.get(FeeNoteDB, commitment)
            return _row_to_note(row) if row is not None else None

    async def list_redeemable(self, chain_id: int) -> list[FeeNote]:
        """Return ``INDEXED`` notes ordered by ``(block_number, commitment)``."""
        return await self._list_by_status(chain_id, NoteStatus.INDEXED)

    async def list_pending(self, chain_id: int) -> list[FeeNote]:
        """Return ``PENDING`` notes left over from an interrupted run."""
        return await self._list_by_status(chain_id, NoteStatus.PENDING)

    # ---------------
    # | Transitions |
    # ---------------

    async def mark_pending(self, commitment: str, task_id: str | None = None) -> bool:
        """Move a note to ``PENDING``, or record the task id of a pending note.

        Returns:
            True if the note was updated, False if it was not eligible
        """
        values: dict[str, Any] = {"status": NoteStatus.PENDING.value}
        if task_id is not None:
            values["redemption_task_id"] = task_id
        return await self._transition(
            commitment, {NoteStatus.INDEXED, NoteStatus.PENDING}, values
        )

    async def mark_redeemed(self, commitment: str) -> bool:
        """Move a pending note to ``REDEEMED``; a no-op otherwise."""
        return await self._transition(
            commitment,
            {NoteStatus.PENDING},
            {"status": NoteStatus.REDEEMED.value, "failure_reason": None},
        )

    async def mark_failed(self, commitment: str, reason: str) -> bool:
        """Move a pending note to ``FAILED`` with ``reason``; a no-op otherwise."""
        return await self._transition(
            commitment,
            {NoteStatus.PENDING},
            {"status": NoteStatus.FAILED.value, "failure_reason": reason},
        )

    # -----------
    # | Helpers |
    # -----------

    @asynccontextmanager
    async def _transaction(self) -> AsyncIterator[AsyncSession]:
        """Session committed on success and rolled back on any error.

        Raises:
            StoreError: If the database fails
        """
        async with self._session_factory() as session:
            try:
                yield session
                await session.commit()
            except SQLAlchemyError as e:
                await session.rollback()
                msg = f"note store operation failed: {e}"
                raise StoreError(msg) from e
            except Exception:
                await session.rollback()
                raise

    async def _read_checkpoint(self, session: AsyncSession, chain_id: int) -> int | None:
        stmt = (
            select(IndexerMetadataDB.value)
            .where(
                IndexerMetadataDB.chain_id == chain_id,
                IndexerMetadataDB.key == LAST_INDEXED_BLOCK_KEY,
            )
            .with_for_update()
        )
        value = (await session.execute(stmt)).scalar_one_or_none()
        return int(value) if value is not None else None

    async def _advance(self, session: AsyncSession, chain_id: int, block: int) -> None:
        current = await self._read_checkpoint(session, chain_id)
        if current is not None and block < current:
            raise CheckpointRegressionError(chain_id, current, block)

        await upsert_models(
            session,
            IndexerMetadataDB,
            [{"chain_id": chain_id, "key": LAST_INDEXED_BLOCK_KEY, "value": str(block)}],
        )
        logger.debug("Checkpoint for chain %d: %s -> %d", chain_id, current, block)

    async def _upsert(self, session: AsyncSession, notes: Iterable[FeeNote]) -> int:
        # ON CONFLICT cannot touch the same row twice in one statement
        unique = {note.commitment: note for note in notes}
        rows = [_note_to_row(note) for note in unique.values()]

        for i in range(0, len(rows), DB_BATCH_SIZE):
            await upsert_models(
                session,
                FeeNoteDB,
                rows[i : i + DB_BATCH_SIZE],
                update_columns=OBSERVATION_COLUMNS,
            )
        return len(rows)

    async def _list_by_status(self, chain_id: int, status: NoteStatus) -> list[FeeNote]:
        stmt = (
            select(FeeNoteDB)
            .where(FeeNoteDB.chain_id == chain_id, FeeNoteDB.status == status.value)
            .order_by(FeeNoteDB.block_number, FeeNoteDB.commitment)
        )
        async with self._transaction() as session:
            rows = (await session.execute(stmt)).scalars().all()
        return [_row_to_note(row) for row in rows]

    async def _transition(
        self,
        commitment: str,
        allowed_from: set[NoteStatus],
        values: dict[str, Any],
    ) -> bool:
        stmt = (
            update(FeeNoteDB)
            .where(
                FeeNoteDB.commitment == commitment,
                FeeNoteDB.status.in_([status.value for status in allowed_from]),
            )
            .values(**values)
        )
        async with self._transaction() as session:
            result = await session.execute(stmt)

        applied = result.rowcount == 1
        if not applied:
            logger.debug(
                "Skipped transition of %s to %s: note missing or not eligible",
                commitment,
                values["status"],
            )
        return applied


__all__ = ["NoteStore"]
