"""Classify raw notes by whether they decrypt under the operator key."""

from __future__ import annotations

from collections.abc import Callable, Mapping
from typing import Any

from pydantic import ValidationError

from fee_sweeper.helpers.logging import get_logger
from fee_sweeper.notes.models import DecryptedNote, NotePlaintext, RawNote, Undecryptable


logger = get_logger(__name__)

type DecryptFn = Callable[[bytes, str], NotePlaintext | Mapping[str, Any] | None]
"""External ElGamal primitive: ``(ciphertext, key) -> plaintext fields | None``."""


class NoteDecryptor:
    """Applies the external decryption primitive to raw notes.

    A note that fails to decrypt is not an error: it belongs to another
    operator and is classified as :class:`Undecryptable`.
    """

    def __init__(self, decrypt_fn: DecryptFn, key: str) -> None:
        self._decrypt_fn = decrypt_fn
        self._key = key

    def decrypt(
        self, raw_note: RawNote, key: str | None = None
    ) -> DecryptedNote | Undecryptable:
        """Attempt decryption with ``key``, defaulting to the operator key."""
        try:
            result = self._decrypt_fn(raw_note.ciphertext, key or self._key)
        except Exception as e:  # malformed ciphertext is a classification
            return Undecryptable(raw=raw_note, reason=f"{type(e).__name__}: {e}")

        if result is None:
            return Undecryptable(raw=raw_note)

        try:
            plaintext = (
                result
                if isinstance(result, NotePlaintext)
                else NotePlaintext.model_validate(result)
            )
        except ValidationError as e:
            return Undecryptable(raw=raw_note, reason=f"invalid plaintext: {e}")

        return DecryptedNote(raw=raw_note, plaintext=plaintext)

    def decrypt_all(
        self, raw_notes: list[RawNote]
    ) -> list[DecryptedNote | Undecryptable]:
        results = [self.decrypt(note) for note in raw_notes]
        owned = sum(isinstance(r, DecryptedNote) for r in results)
        if raw_notes:
            logger.info("Decrypted %d of %d notes", owned, len(raw_notes))
        return results


__all__ = ["DecryptFn", "NoteDecryptor"]
