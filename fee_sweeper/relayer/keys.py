"""Key-derivation collaborator and scoped access to wallet signing keys."""

from __future__ import annotations

from collections.abc import Iterator, Mapping
from contextlib import contextmanager
from typing import Any, Protocol

from fee_sweeper.errors import AuthSigningError
from fee_sweeper.helpers.logging import get_logger
from fee_sweeper.relayer.models import Keychain, Wallet


logger = get_logger(__name__)


class KeyDerivation(Protocol):
    """Deterministic wallet derivation from an externally-owned account key."""

    def derive_wallet_id(self, eth_key: str) -> str: ...

    def derive_blinder_seed(self, eth_key: str) -> int: ...

    def derive_share_seed(self, eth_key: str) -> int: ...

    def derive_keychain(
        self, eth_key: str, chain_id: int
    ) -> Keychain | Mapping[str, Any]: ...


def derive_keychain(deriver: KeyDerivation, eth_key: str, chain_id: int) -> Keychain:
    """Derive a keychain the caller owns, never the deriver's own instance."""
    keychain = deriver.derive_keychain(eth_key, chain_id)
    if isinstance(keychain, Keychain):
        return keychain.model_copy(deep=True)
    return Keychain.model_validate(keychain)


@contextmanager
def root_signing_key(
    deriver: KeyDerivation, eth_key: str, chain_id: int
) -> Iterator[str]:
    """Derive a wallet's root key for the duration of a ``with`` block.

    The key is derived on entry and the derived keychain is dropped on exit;
    nothing keeps a reference to it afterwards.

    Raises:
        AuthSigningError: If the derived keychain carries no root key
    """
    keychain = derive_keychain(deriver, eth_key, chain_id)
    root_key = keychain.root_key
    if root_key is None:
        msg = "derived keychain has no root signing key"
        raise AuthSigningError(msg)
    try:
        yield root_key
    finally:
        keychain.private_keys.clear()
        del keychain, root_key


def build_new_wallet(deriver: KeyDerivation, eth_key: str, chain_id: int) -> Wallet:
    """Assemble an empty wallet for the create-wallet sequence."""
    keychain = derive_keychain(deriver, eth_key, chain_id)
    return Wallet(
        id=str(deriver.derive_wallet_id(eth_key)),
        key_chain=keychain.model_dump(),
        blinder_seed=str(deriver.derive_blinder_seed(eth_key)),
        share_seed=str(deriver.derive_share_seed(eth_key)),
        orders=[],
        balances=[],
    )


class WalletKeyResolver:
    """Maps receiver wallet ids to the account keys they derive from."""

    def __init__(self, deriver: KeyDerivation, eth_keys: list[str]) -> None:
        self._deriver = deriver
        self._eth_keys = eth_keys
        self._by_wallet: dict[str, str] | None = None

    def eth_key_for(self, wallet_id: str) -> str | None:
        if self._by_wallet is None:
            self._by_wallet = {
                str(self._deriver.derive_wallet_id(key)).lower(): key
                for key in self._eth_keys
            }
            logger.debug("Resolved %d operator wallets", len(self._by_wallet))
        return self._by_wallet.get(wallet_id.lower())


__all__ = [
    "KeyDerivation",
    "WalletKeyResolver",
    "build_new_wallet",
    "derive_keychain",
    "root_signing_key",
]
