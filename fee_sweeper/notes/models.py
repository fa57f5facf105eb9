"""Pydantic models for fee notes."""

from enum import StrEnum

from pydantic import BaseModel, ConfigDict, Field


class NoteStatus(StrEnum):
    """Lifecycle of a fee note.

    ``INDEXED -> PENDING -> {REDEEMED, FAILED}``; ``UNDECRYPTABLE`` is
    assigned at indexing time and never left.
    """

    INDEXED = "indexed"
    UNDECRYPTABLE = "undecryptable"
    PENDING = "pending"
    REDEEMED = "redeemed"
    FAILED = "failed"

    @property
    def is_terminal(self) -> bool:
        return self in TERMINAL_STATUSES


TERMINAL_STATUSES = frozenset(
    {NoteStatus.UNDECRYPTABLE, NoteStatus.REDEEMED, NoteStatus.FAILED}
)


class RawNote(BaseModel):
    """A fee note as observed on-chain, before decryption."""

    model_config = ConfigDict(frozen=True)

    commitment: str = Field(..., description="Note commitment, 0x-prefixed hex")
    chain_id: int
    block_number: int
    tx_hash: str | None = None
    log_index: int = 0
    ciphertext: bytes


class NotePlaintext(BaseModel):
    """Plaintext fields recovered from a note ciphertext."""

    mint: str
    amount: int = Field(..., ge=0)
    receiver: str = Field(..., description="Identifier of the receiving wallet")
    blinder: int = 0


class FeeNote(BaseModel):
    """A persisted fee note."""

    commitment: str
    chain_id: int
    block_number: int
    tx_hash: str | None = None
    ciphertext: bytes
    mint: str | None = None
    amount: int | None = None
    blinder: int | None = None
    receiver_wallet_id: str | None = None
    status: NoteStatus = NoteStatus.INDEXED
    failure_reason: str | None = None
    redemption_task_id: str | None = None

    @property
    def plaintext(self) -> NotePlaintext | None:
        """Decrypted fields, or None for a note that never decrypted."""
        if self.mint is None or self.amount is None or self.receiver_wallet_id is None:
            return None
        return NotePlaintext(
            mint=self.mint,
            amount=self.amount,
            receiver=self.receiver_wallet_id,
            blinder=self.blinder or 0,
        )


class DecryptedNote(BaseModel):
    """A raw note that decrypted under the operator key."""

    raw: RawNote
    plaintext: NotePlaintext

    def to_fee_note(self) -> FeeNote:
        return FeeNote(
            commitment=self.raw.commitment,
            chain_id=self.raw.chain_id,
            block_number=self.raw.block_number,
            tx_hash=self.raw.tx_hash,
            ciphertext=self.raw.ciphertext,
            mint=self.plaintext.mint,
            amount=self.plaintext.amount,
            blinder=self.plaintext.blinder,
            receiver_wallet_id=self.plaintext.receiver,
            status=NoteStatus.INDEXED,
        )


class Undecryptable(BaseModel):
    """A raw note that does not belong to this operator."""

    raw: RawNote
    reason: str = "decryption failed"

    def to_fee_note(self) -> FeeNote:
        return FeeNote(
            commitment=self.raw.commitment,
            chain_id=self.raw.chain_id,
            block_number=self.raw.block_number,
            tx_hash=self.raw.tx_hash,
            ciphertext=self.raw.ciphertext,
            status=NoteStatus.UNDECRYPTABLE,
        )


__all__ = [
    "TERMINAL_STATUSES",
    "DecryptedNote",
    "FeeNote",
    "NotePlaintext",
    "NoteStatus",
    "RawNote",
    "Undecryptable",
]
