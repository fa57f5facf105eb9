"""Tests for scoped key access and wallet derivation."""

from typing import TYPE_CHECKING

import pytest

from fee_sweeper.errors import AuthSigningError
from fee_sweeper.relayer.keys import (
    WalletKeyResolver,
    build_new_wallet,
    derive_keychain,
    root_signing_key,
)
from fee_sweeper.relayer.models import Keychain
from tests.conftest import CHAIN_ID, ETH_KEY_A, ETH_KEY_B


if TYPE_CHECKING:
    from tests.conftest import FakeKeyDerivation


class TestRootSigningKey:
    """Tests for root_signing_key."""

    def test_yields_root_key(self, key_derivation: "FakeKeyDerivation") -> None:
        with root_signing_key(key_derivation, ETH_KEY_A, CHAIN_ID) as root_key:
            assert root_key == ETH_KEY_A

    def test_missing_root_key_raises(self) -> None:
        class NoRoot:
            def derive_keychain(self, eth_key: str, chain_id: int) -> dict[str, object]:
                return {"public_keys": {}, "private_keys": {"sk_match": "0x01"}}

        with pytest.raises(AuthSigningError, match="no root signing key"):
            with root_signing_key(NoRoot(), ETH_KEY_A, CHAIN_ID):  # type: ignore[arg-type]
                pass

    def test_caching_deriver_keeps_its_keychain(self) -> None:
        """Test a deriver handing out one shared keychain still has it after use.

        Only the caller's copy is wiped on exit, including on error.
        """
        keychain = Keychain(private_keys={"sk_root": ETH_KEY_A})

        class Caching:
            def derive_keychain(self, eth_key: str, chain_id: int) -> Keychain:
                return keychain

        deriver = Caching()
        with pytest.raises(RuntimeError):
            with root_signing_key(deriver, ETH_KEY_A, CHAIN_ID):  # type: ignore[arg-type]
                raise RuntimeError("signing failed")

        with root_signing_key(deriver, ETH_KEY_A, CHAIN_ID) as root_key:  # type: ignore[arg-type]
            assert root_key == ETH_KEY_A

        assert keychain.private_keys == {"sk_root": ETH_KEY_A}

    def test_derived_keychain_is_a_copy(self) -> None:
        keychain = Keychain(private_keys={"sk_root": ETH_KEY_A})

        class Caching:
            def derive_keychain(self, eth_key: str, chain_id: int) -> Keychain:
                return keychain

        derived = derive_keychain(Caching(), ETH_KEY_A, CHAIN_ID)  # type: ignore[arg-type]

        assert derived == keychain
        assert derived is not keychain
        assert derived.private_keys is not keychain.private_keys


class TestDerivation:
    """Tests for keychain and wallet derivation helpers."""

    def test_derive_keychain_accepts_mapping(self) -> None:
        class MappingDeriver:
            def derive_keychain(self, eth_key: str, chain_id: int) -> dict[str, object]:
                return {"public_keys": {"pk_root": "0x02"}, "private_keys": {"sk_root": "0x03"}}

        keychain = derive_keychain(MappingDeriver(), ETH_KEY_A, CHAIN_ID)  # type: ignore[arg-type]

        assert isinstance(keychain, Keychain)
        assert keychain.root_key == "0x03"

    def test_build_new_wallet(
        self, key_derivation: "FakeKeyDerivation", wallet_a: str
    ) -> None:
        wallet = build_new_wallet(key_derivation, ETH_KEY_A, CHAIN_ID)
        dumped = wallet.model_dump()

        assert wallet.id == wallet_a
        assert dumped["orders"] == []
        assert dumped["balances"] == []
        assert dumped["blinder_seed"] == str(key_derivation.derive_blinder_seed(ETH_KEY_A))
        assert dumped["key_chain"]["public_keys"] == {"pk_match": f"match-{CHAIN_ID}"}


class TestWalletKeyResolver:
    """Tests for WalletKeyResolver."""

    def test_resolves_configured_wallets(
        self, key_derivation: "FakeKeyDerivation", wallet_a: str, wallet_b: str
    ) -> None:
        resolver = WalletKeyResolver(key_derivation, [ETH_KEY_A, ETH_KEY_B])

        assert resolver.eth_key_for(wallet_a) == ETH_KEY_A
        assert resolver.eth_key_for(wallet_b.upper()) == ETH_KEY_B
        assert resolver.eth_key_for("unknown") is None
