"""Indexing phase: scan new blocks, decrypt fee notes and persist them."""

from __future__ import annotations

from typing import TYPE_CHECKING

from pydantic import BaseModel

from fee_sweeper.chain.scanner import block_chunks
from fee_sweeper.errors import ChainQueryError
from fee_sweeper.helpers.constants import DEFAULT_BLOCK_RANGE_SIZE, DEFAULT_START_BLOCK
from fee_sweeper.helpers.logging import get_logger
from fee_sweeper.helpers.progress import track_progress
from fee_sweeper.notes.models import DecryptedNote


if TYPE_CHECKING:
    from fee_sweeper.chain.scanner import ChainScanner
    from fee_sweeper.crypto.decryptor import NoteDecryptor
    from fee_sweeper.notes.store import NoteStore


logger = get_logger(__name__)


class IndexResult(BaseModel):
    """Outcome of one indexing pass."""

    chain_head: int
    from_block: int | None = None
    checkpoint: int | None = None
    notes_found: int = 0
    notes_decrypted: int = 0
    error: str | None = None

    @property
    def is_noop(self) -> bool:
        return self.from_block is None


class FeeIndexer:
    """Advances the per-chain checkpoint over newly produced blocks.

    Each chunk of the range ``[checkpoint + 1, chain_head]`` is scanned,
    decrypted and then persisted together with the checkpoint advance in a
    single transaction, so an interrupted pass only ever causes a rescan.

    Args:
        chain_id: Chain being indexed
        scanner: Fetches raw notes from the settlement contract
        decryptor: Classifies raw notes under the operator key
        store: Note and checkpoint persistence
        start_block: First block when the chain has no checkpoint
        block_range_size: Blocks fetched per chain query
        show_progress: Render a progress bar over chunks
    """

    def __init__(
        self,
        chain_id: int,
        scanner: ChainScanner,
        decryptor: NoteDecryptor,
        store: NoteStore,
        start_block: int = DEFAULT_START_BLOCK,
        block_range_size: int = DEFAULT_BLOCK_RANGE_SIZE,
        *,
        show_progress: bool = False,
    ) -> None:
        self.chain_id = chain_id
        self.scanner = scanner
        self.decryptor = decryptor
        self.store = store
        self.start_block = start_block
        self.block_range_size = block_range_size
        self.show_progress = show_progress

    async def index_fees(self) -> IndexResult:
        """Run one indexing pass.

        A failure to read the chain head is fatal and propagates. A failure
        while scanning stops the pass at the last persisted chunk; the rest
        of the range is picked up by the next invocation.

        Raises:
            ChainQueryError: If the chain head cannot be read
            CheckpointRegressionError: If persisted state moved backwards
        """
        checkpoint = await self.store.get_checkpoint(self.chain_id)
        chain_head = await self.scanner.chain_client.current_block()

        from_block = checkpoint + 1 if checkpoint is not None else self.start_block
        if chain_head < from_block:
            logger.info(
                "Chain %d: head %d already indexed (checkpoint %s)",
                self.chain_id,
                chain_head,
                checkpoint,
            )
            return IndexResult(chain_head=chain_head, checkpoint=checkpoint)

        result = IndexResult(
            chain_head=chain_head, from_block=from_block, checkpoint=checkpoint
        )
        chunks = block_chunks(from_block, chain_head, self.block_range_size)
        logger.info(
            "Chain %d: indexing blocks %d-%d in %d chunks",
            self.chain_id,
            from_block,
            chain_head,
            len(chunks),
        )

        with track_progress(
            "Indexing fee notes", total=len(chunks), enabled=self.show_progress
        ) as (progress, task_id):
            for start, end in chunks:
                try:
                    raw_notes = await self.scanner.scan(self.chain_id, start, end)
                except ChainQueryError as e:
                    logger.error(
                        "Chain %d: scan of %d-%d failed, retrying next pass: %s",
                        self.chain_id,
                        start,
                        end,
                        e,
                    )
                    result.error = str(e)
                    break

                classified = self.decryptor.decrypt_all(raw_notes)
                notes = [c.to_fee_note() for c in classified]
                await self.store.persist_range(self.chain_id, notes, end)

                result.checkpoint = end
                result.notes_found += len(notes)
                result.notes_decrypted += sum(
                    isinstance(c, DecryptedNote) for c in classified
                )
                if progress is not None and task_id is not None:
                    progress.update(task_id, advance=1)

        logger.info(
            "Chain %d: checkpoint now %s, %d notes found, %d decrypted",
            self.chain_id,
            result.checkpoint,
            result.notes_found,
            result.notes_decrypted,
        )
        return result


__all__ = ["FeeIndexer", "IndexResult"]
