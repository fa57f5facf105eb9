"""Fetch candidate fee notes from the settlement contract."""

from __future__ import annotations

from typing import TYPE_CHECKING

from eth_abi import decode as abi_decode
from eth_abi.exceptions import DecodingError

from fee_sweeper.helpers.logging import get_logger
from fee_sweeper.helpers.parsers import normalize_hex
from fee_sweeper.notes.models import RawNote


if TYPE_CHECKING:
    from fee_sweeper.chain.client import ChainClient, ChainEvent


logger = get_logger(__name__)


def block_chunks(from_block: int, to_block: int, size: int) -> list[tuple[int, int]]:
    """Split ``[from_block, to_block]`` into inclusive chunks of at most ``size``.

    Example:
        >>> block_chunks(1, 25, 10)
        [(1, 10), (11, 20), (21, 25)]
    """
    if size <= 0:
        msg = "chunk size must be positive"
        raise ValueError(msg)
    return [
        (start, min(start + size - 1, to_block))
        for start in range(from_block, to_block + 1, size)
    ]


class ChainScanner:
    """Turns settlement-contract events into raw fee notes.

    Only events whose topic0 is ``event_topic`` are fee notes. The scan is
    read-only; callers may retry a failed range freely.

    Args:
        chain_client: Source of contract events
        contract: Settlement contract address
        event_topic: topic0 of the fee-note event
    """

    def __init__(self, chain_client: ChainClient, contract: str, event_topic: str) -> None:
        if not event_topic:
            msg = "Fee note event topic cannot be empty"
            raise ValueError(msg)

        self.chain_client = chain_client
        self.contract = contract
        self.event_topic = normalize_hex(event_topic)

    async def scan(self, chain_id: int, from_block: int, to_block: int) -> list[RawNote]:
        """Return the fee notes emitted in ``[from_block, to_block]``.

        Notes are ordered by block number, then log index. Other events of the
        contract, and note events without a commitment or a decodable
        ciphertext, are skipped.

        Raises:
            ChainQueryError: If the chain client fails
        """
        if to_block < from_block:
            return []

        events = await self.chain_client.get_events(self.contract, from_block, to_block)
        notes = [
            note
            for event in events
            if (note := self.to_raw_note(chain_id, event)) is not None
        ]
        notes.sort(key=lambda n: (n.block_number, n.log_index))

        logger.debug(
            "Scanned blocks %d-%d on chain %d: %d events, %d notes",
            from_block,
            to_block,
            chain_id,
            len(events),
            len(notes),
        )
        return notes

    def to_raw_note(self, chain_id: int, event: ChainEvent) -> RawNote | None:
        """Decode a fee-note event; None if the event is not one."""
        if len(event.topics) < 2 or normalize_hex(event.topics[0]) != self.event_topic:
            return None

        try:
            (ciphertext,) = abi_decode(["bytes"], event.data)
        except DecodingError as e:
            logger.warning(
                "Undecodable note event in block %d (%s): %s",
                event.block_number,
                event.tx_hash,
                e,
            )
            return None

        return RawNote(
            commitment=normalize_hex(event.topics[1]),
            chain_id=chain_id,
            block_number=event.block_number,
            tx_hash=event.tx_hash,
            log_index=event.log_index,
            ciphertext=ciphertext,
        )


__all__ = ["ChainScanner", "block_chunks"]
