"""Tests for note decryption and classification."""

from typing import Any

import pytest

from fee_sweeper.crypto.decryptor import NoteDecryptor
from fee_sweeper.notes.models import (
    DecryptedNote,
    NotePlaintext,
    NoteStatus,
    RawNote,
    Undecryptable,
)
from tests.conftest import CHAIN_ID, DECRYPTION_KEY, toy_decrypt


def raw_note(ciphertext: bytes, commitment: str = "0xc1") -> RawNote:
    return RawNote(
        commitment=commitment,
        chain_id=CHAIN_ID,
        block_number=12,
        tx_hash="0xabc",
        ciphertext=ciphertext,
    )


class TestNoteDecryptor:
    """Tests for NoteDecryptor."""

    def test_owned_note_decrypts(self) -> None:
        decryptor = NoteDecryptor(toy_decrypt, DECRYPTION_KEY)

        result = decryptor.decrypt(raw_note(b"ours:0xmint:250:wallet-1"))

        assert isinstance(result, DecryptedNote)
        assert result.plaintext == NotePlaintext(
            mint="0xmint", amount=250, receiver="wallet-1"
        )
        fee_note = result.to_fee_note()
        assert fee_note.status is NoteStatus.INDEXED
        assert fee_note.receiver_wallet_id == "wallet-1"
        assert fee_note.block_number == 12

    def test_foreign_note_is_undecryptable(self) -> None:
        """Test a note for another operator is classified, not raised."""
        decryptor = NoteDecryptor(toy_decrypt, DECRYPTION_KEY)

        result = decryptor.decrypt(raw_note(b"theirs:0xmint:1:wallet-9"))

        assert isinstance(result, Undecryptable)
        fee_note = result.to_fee_note()
        assert fee_note.status is NoteStatus.UNDECRYPTABLE
        assert fee_note.mint is None
        assert fee_note.ciphertext == b"theirs:0xmint:1:wallet-9"

    def test_wrong_key_is_undecryptable(self) -> None:
        decryptor = NoteDecryptor(toy_decrypt, DECRYPTION_KEY)

        result = decryptor.decrypt(raw_note(b"ours:0xmint:1:w"), key="0xother")

        assert isinstance(result, Undecryptable)

    @pytest.mark.parametrize("ciphertext", [b"", b"ours:", b"ours:a:b:c:d:e"])
    def test_malformed_ciphertext_never_raises(self, ciphertext: bytes) -> None:
        """Test primitive exceptions become a classification."""
        decryptor = NoteDecryptor(toy_decrypt, DECRYPTION_KEY)

        result = decryptor.decrypt(raw_note(ciphertext))

        assert isinstance(result, Undecryptable)

    def test_invalid_plaintext_is_undecryptable(self) -> None:
        def negative_amount(ciphertext: bytes, key: str) -> dict[str, Any]:
            return {"mint": "0xmint", "amount": -1, "receiver": "w"}

        result = NoteDecryptor(negative_amount, DECRYPTION_KEY).decrypt(raw_note(b"x"))

        assert isinstance(result, Undecryptable)
        assert result.reason.startswith("invalid plaintext")

    def test_accepts_plaintext_model(self) -> None:
        plaintext = NotePlaintext(mint="0xmint", amount=1, receiver="w", blinder=9)

        result = NoteDecryptor(lambda c, k: plaintext, DECRYPTION_KEY).decrypt(
            raw_note(b"x")
        )

        assert isinstance(result, DecryptedNote)
        assert result.to_fee_note().blinder == 9

    def test_decrypt_all_preserves_order(self) -> None:
        decryptor = NoteDecryptor(toy_decrypt, DECRYPTION_KEY)
        notes = [
            raw_note(b"ours:0xa:1:w", "0xc1"),
            raw_note(b"nope", "0xc2"),
            raw_note(b"ours:0xb:2:w", "0xc3"),
        ]

        results = decryptor.decrypt_all(notes)

        assert [type(r) for r in results] == [DecryptedNote, Undecryptable, DecryptedNote]
        assert [r.raw.commitment for r in results] == ["0xc1", "0xc2", "0xc3"]
