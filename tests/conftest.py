"""Pytest configuration and shared fixtures."""

import uuid

from typing import TYPE_CHECKING, Any

import pytest
import pytest_asyncio

from eth_abi import encode as abi_encode

from fee_sweeper.chain.client import ChainEvent
from fee_sweeper.errors import ChainQueryError
from fee_sweeper.helpers.db import (
    create_engine,
    create_session_factory,
    create_tables,
)
from fee_sweeper.notes.models import FeeNote, NoteStatus
from fee_sweeper.notes.store import NoteStore
from fee_sweeper.relayer.models import Keychain


if TYPE_CHECKING:
    from collections.abc import AsyncGenerator, Callable
    from pathlib import Path


CHAIN_ID = 42161
ETH_KEY_A = "0x" + "a1" * 32
ETH_KEY_B = "0x" + "b2" * 32
DECRYPTION_KEY = "0x" + "0d" * 32
DARKPOOL = "0x" + "11" * 20
EVENT_TOPIC = "0x" + "ee" * 32


def abi_bytes(payload: bytes) -> bytes:
    """ABI-encode ``payload`` as the only dynamic ``bytes`` value."""
    return abi_encode(["bytes"], [payload])


def note_event(
    commitment: str, block_number: int, log_index: int = 0, ciphertext: bytes = b"ct"
) -> ChainEvent:
    return ChainEvent(
        block_number=block_number,
        tx_hash=f"0x{block_number:064x}",
        log_index=log_index,
        topics=[EVENT_TOPIC, commitment],
        data=abi_bytes(ciphertext),
    )


def toy_decrypt(ciphertext: bytes, key: str) -> dict[str, Any] | None:
    """Toy primitive: ``ours:<mint>:<amount>:<receiver>`` opens under DECRYPTION_KEY."""
    if key != DECRYPTION_KEY or not ciphertext.startswith(b"ours:"):
        return None
    _, mint, amount, receiver = ciphertext.split(b":")
    return {"mint": mint.decode(), "amount": int(amount), "receiver": receiver.decode()}


class FakeChainClient:
    """In-memory chain returning preset events."""

    def __init__(self, events: list[ChainEvent], head: int = 100) -> None:
        self.events = events
        self.head = head
        self.queries: list[tuple[str, int, int]] = []
        self.fail_from: int | None = None

    async def get_events(
        self, contract: str, from_block: int, to_block: int
    ) -> list[ChainEvent]:
        self.queries.append((contract, from_block, to_block))
        if self.fail_from is not None and to_block >= self.fail_from:
            msg = f"eth_getLogs {from_block}-{to_block} failed: upstream timeout"
            raise ChainQueryError(msg)
        return [e for e in self.events if from_block <= e.block_number <= to_block]

    async def current_block(self) -> int:
        return self.head


class FakeKeyDerivation:
    """Deterministic stand-in for the wallet key-derivation primitives."""

    def derive_wallet_id(self, eth_key: str) -> str:
        return str(uuid.uuid5(uuid.NAMESPACE_OID, eth_key))

    def derive_blinder_seed(self, eth_key: str) -> int:
        return int(eth_key[-8:], 16) + 1

    def derive_share_seed(self, eth_key: str) -> int:
        return int(eth_key[-8:], 16) + 2

    def derive_keychain(self, eth_key: str, chain_id: int) -> Keychain:
        # Root key is the account key itself; any valid scalar will do
        return Keychain(
            public_keys={"pk_match": f"match-{chain_id}"},
            private_keys={"sk_root": eth_key, "sk_match": "0x01"},
        )


@pytest.fixture
def key_derivation() -> FakeKeyDerivation:
    return FakeKeyDerivation()


@pytest.fixture
def wallet_a(key_derivation: FakeKeyDerivation) -> str:
    return key_derivation.derive_wallet_id(ETH_KEY_A)


@pytest.fixture
def wallet_b(key_derivation: FakeKeyDerivation) -> str:
    return key_derivation.derive_wallet_id(ETH_KEY_B)


@pytest_asyncio.fixture
async def note_store(tmp_path: "Path") -> "AsyncGenerator[NoteStore]":
    """NoteStore on a throwaway SQLite database.

    Yields:
        NoteStore: Store with empty tables
    """
    engine = create_engine(f"sqlite+aiosqlite:///{tmp_path / 'notes.db'}")
    await create_tables(engine)

    yield NoteStore(create_session_factory(engine))

    await engine.dispose()


@pytest.fixture
def make_note() -> "Callable[..., FeeNote]":
    """Factory for fee notes with sensible defaults."""

    def _make(
        commitment: str,
        block_number: int = 1,
        receiver: str | None = "wallet-1",
        status: NoteStatus = NoteStatus.INDEXED,
        **overrides: Any,
    ) -> FeeNote:
        fields: dict[str, Any] = {
            "commitment": commitment,
            "chain_id": CHAIN_ID,
            "block_number": block_number,
            "tx_hash": "0x" + "ab" * 32,
            "ciphertext": b"\x01\x02\x03",
            "status": status,
        }
        if receiver is not None and status is not NoteStatus.UNDECRYPTABLE:
            fields.update(
                mint="0x" + "cc" * 20,
                amount=1_000_000,
                blinder=7,
                receiver_wallet_id=receiver,
            )
        fields.update(overrides)
        return FeeNote(**fields)

    return _make


KEY_DERIVATION = FakeKeyDerivation()
"""Module-level deriver, loadable as ``tests.conftest:KEY_DERIVATION``."""
