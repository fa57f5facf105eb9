"""Signed-request headers for authenticated relayer calls.

A request is authenticated by an ECDSA (secp256k1, SHA-256) signature over
the request body followed by the little-endian u64 expiration timestamp. The
signature is sent as 64 raw bytes ``r || s`` in unpadded standard base64.
"""

from __future__ import annotations

import base64
import binascii
import time

from typing import TYPE_CHECKING, NamedTuple

from cryptography.exceptions import InvalidSignature, UnsupportedAlgorithm
from cryptography.hazmat.primitives import hashes
from cryptography.hazmat.primitives.asymmetric import ec
from cryptography.hazmat.primitives.asymmetric.utils import (
    decode_dss_signature,
    encode_dss_signature,
)

from fee_sweeper.errors import AuthSigningError
from fee_sweeper.helpers.constants import (
    AUTH_HEADER_NAME,
    SIG_EXPIRATION_BUFFER_MS,
    SIG_EXPIRATION_HEADER_NAME,
)


if TYPE_CHECKING:
    from collections.abc import Callable


SECP256K1_ORDER = 0xFFFFFFFFFFFFFFFFFFFFFFFFFFFFFFFEBAAEDCE6AF48A03BBFD25E8CD0364141
SCALAR_SIZE = 32

type RootKey = str | bytes | int
"""Root signing key as a hex string, 32 raw bytes or an integer scalar."""


class AuthHeaders(NamedTuple):
    expiration: int
    signature: str

    def as_headers(self) -> dict[str, str]:
        return {
            SIG_EXPIRATION_HEADER_NAME: str(self.expiration),
            AUTH_HEADER_NAME: self.signature,
        }


def current_time_millis() -> int:
    return time.time_ns() // 1_000_000


def signing_payload(body_bytes: bytes, expiration: int) -> bytes:
    """Bytes covered by the signature: body then LE u64 expiration."""
    return body_bytes + expiration.to_bytes(8, "little")


def load_signing_key(root_key: RootKey) -> ec.EllipticCurvePrivateKey:
    """Build a secp256k1 private key from a root key scalar.

    Raises:
        AuthSigningError: If the key is not a valid secp256k1 scalar
    """
    try:
        if isinstance(root_key, int):
            scalar = root_key
        elif isinstance(root_key, bytes):
            scalar = int.from_bytes(root_key, "big")
        else:
            scalar = int(root_key.removeprefix("0x"), 16)
    except ValueError as e:
        msg = "root key is not valid hex"
        raise AuthSigningError(msg) from e

    if not 0 < scalar < SECP256K1_ORDER:
        msg = "root key is out of range for secp256k1"
        raise AuthSigningError(msg)

    return ec.derive_private_key(scalar, ec.SECP256K1())


def _b64_no_pad(data: bytes) -> str:
    return base64.b64encode(data).decode("ascii").rstrip("=")


def _b64_decode_no_pad(data: str) -> bytes:
    return base64.b64decode(data + "=" * (-len(data) % 4), validate=True)


class AuthSigner:
    """Builds the expiration and signature headers for relayer requests.

    Args:
        expiration_buffer_ms: Lifetime granted to each signature
        clock: Millisecond clock, injectable for tests
    """

    def __init__(
        self,
        expiration_buffer_ms: int = SIG_EXPIRATION_BUFFER_MS,
        clock: Callable[[], int] = current_time_millis,
    ) -> None:
        self.expiration_buffer_ms = expiration_buffer_ms
        self._clock = clock

    def sign(
        self,
        root_key: RootKey,
        body_bytes: bytes,
        *,
        expiration: int | None = None,
    ) -> AuthHeaders:
        """Sign ``body_bytes`` for submission before the expiration.

        Args:
            root_key: Wallet root signing key
            body_bytes: Exact request body; empty for GET requests
            expiration: Explicit expiration (ms), defaults to now + buffer

        Returns:
            AuthHeaders with the expiration and the encoded signature

        Raises:
            AuthSigningError: If the key is invalid or signing fails
        """
        if expiration is None:
            expiration = self._clock() + self.expiration_buffer_ms

        key = load_signing_key(root_key)
        payload = signing_payload(body_bytes, expiration)
        try:
            der = key.sign(payload, ec.ECDSA(hashes.SHA256(), deterministic_signing=True))
        except UnsupportedAlgorithm as e:
            msg = f"ECDSA signing unavailable: {e}"
            raise AuthSigningError(msg) from e

        r, s = decode_dss_signature(der)
        # Normalise to low-s
        if s > SECP256K1_ORDER // 2:
            s = SECP256K1_ORDER - s

        raw = r.to_bytes(SCALAR_SIZE, "big") + s.to_bytes(SCALAR_SIZE, "big")
        return AuthHeaders(expiration=expiration, signature=_b64_no_pad(raw))

    def build_headers(self, root_key: RootKey, body_bytes: bytes) -> dict[str, str]:
        return self.sign(root_key, body_bytes).as_headers()


def verify_signature(
    public_key: ec.EllipticCurvePublicKey,
    body_bytes: bytes,
    expiration: int,
    signature: str,
) -> bool:
    """Check a header signature the way the relayer does."""
    try:
        raw = _b64_decode_no_pad(signature)
    except (binascii.Error, ValueError):
        return False
    if len(raw) != 2 * SCALAR_SIZE:
        return False

    r = int.from_bytes(raw[:SCALAR_SIZE], "big")
    s = int.from_bytes(raw[SCALAR_SIZE:], "big")
    try:
        public_key.verify(
            encode_dss_signature(r, s),
            signing_payload(body_bytes, expiration),
            ec.ECDSA(hashes.SHA256()),
        )
    except InvalidSignature:
        return False
    return True


__all__ = [
    "AuthHeaders",
    "AuthSigner",
    "load_signing_key",
    "signing_payload",
    "verify_signature",
]
