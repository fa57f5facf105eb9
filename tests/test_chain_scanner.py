"""Tests for chain event fetching and fee note extraction."""

import json

from typing import TYPE_CHECKING

import httpx
import pytest

from fee_sweeper.chain.client import ChainEvent, RPCChainClient
from fee_sweeper.chain.scanner import ChainScanner, block_chunks
from fee_sweeper.errors import ChainQueryError
from fee_sweeper.helpers.rpc import RPCClient
from tests.conftest import (
    CHAIN_ID,
    DARKPOOL,
    EVENT_TOPIC,
    FakeChainClient,
    abi_bytes,
    note_event,
)


if TYPE_CHECKING:
    from pytest_httpx import HTTPXMock


RPC_URL = "https://rpc.test/"


def rpc_log(block_number: int, commitment: str, ciphertext: bytes) -> dict[str, object]:
    return {
        "address": DARKPOOL,
        "blockNumber": hex(block_number),
        "transactionHash": f"0x{block_number:064x}",
        "logIndex": "0x1",
        "topics": [EVENT_TOPIC, commitment],
        "data": "0x" + abi_bytes(ciphertext).hex(),
    }


class TestBlockChunks:
    """Tests for block_chunks."""

    def test_splits_inclusive_ranges(self) -> None:
        assert block_chunks(1, 25, 10) == [(1, 10), (11, 20), (21, 25)]

    def test_single_block(self) -> None:
        assert block_chunks(5, 5, 10) == [(5, 5)]

    def test_empty_range(self) -> None:
        assert block_chunks(10, 9, 10) == []

    def test_invalid_size_raises(self) -> None:
        with pytest.raises(ValueError, match="positive"):
            block_chunks(1, 10, 0)


class TestChainScanner:
    """Tests for ChainScanner."""

    @pytest.mark.asyncio
    async def test_scan_orders_by_block_and_log_index(self) -> None:
        events = [
            note_event("0x" + "03" * 32, 9, 0),
            note_event("0x" + "02" * 32, 4, 2),
            note_event("0x" + "01" * 32, 4, 1),
        ]
        scanner = ChainScanner(FakeChainClient(events), DARKPOOL, EVENT_TOPIC)

        notes = await scanner.scan(CHAIN_ID, 1, 10)

        assert [(n.block_number, n.log_index) for n in notes] == [(4, 1), (4, 2), (9, 0)]
        assert notes[0].commitment == "0x" + "01" * 32
        assert notes[0].ciphertext == b"ct"
        assert notes[0].chain_id == CHAIN_ID

    @pytest.mark.asyncio
    async def test_commitment_is_normalised(self) -> None:
        chain = FakeChainClient([note_event("0x" + "AB" * 32, 1)])
        scanner = ChainScanner(chain, DARKPOOL, EVENT_TOPIC)

        (note,) = await scanner.scan(CHAIN_ID, 1, 1)

        assert note.commitment == "0x" + "ab" * 32

    @pytest.mark.asyncio
    async def test_skips_non_note_events(self) -> None:
        """Test events without a commitment topic or ciphertext are dropped."""
        events = [
            ChainEvent(block_number=1, topics=[EVENT_TOPIC], data=abi_bytes(b"x")),
            ChainEvent(block_number=2, topics=[EVENT_TOPIC, "0x01"], data=b"\x00" * 8),
            note_event("0x" + "01" * 32, 3),
        ]
        scanner = ChainScanner(FakeChainClient(events), DARKPOOL, EVENT_TOPIC)

        notes = await scanner.scan(CHAIN_ID, 1, 3)

        assert [n.block_number for n in notes] == [3]

    @pytest.mark.asyncio
    async def test_skips_other_contract_events(self) -> None:
        """Test events with a different topic0 are not fee notes.

        A foreign event whose topic1 matches a real commitment must not
        produce a note either.
        """
        commitment = "0x" + "01" * 32
        foreign = ChainEvent(
            block_number=1,
            topics=["0x" + "dd" * 32, commitment],
            data=abi_bytes(b"x"),
        )
        events = [foreign, note_event(commitment, 2)]
        scanner = ChainScanner(FakeChainClient(events), DARKPOOL, EVENT_TOPIC)

        notes = await scanner.scan(CHAIN_ID, 1, 2)

        assert [(n.block_number, n.ciphertext) for n in notes] == [(2, b"ct")]

    @pytest.mark.asyncio
    async def test_event_topic_match_ignores_case(self) -> None:
        scanner = ChainScanner(
            FakeChainClient([note_event("0x" + "01" * 32, 1)]), DARKPOOL, EVENT_TOPIC.upper()
        )

        assert len(await scanner.scan(CHAIN_ID, 1, 1)) == 1

    def test_requires_event_topic(self) -> None:
        with pytest.raises(ValueError, match="event topic"):
            ChainScanner(FakeChainClient([]), DARKPOOL, "")

    @pytest.mark.asyncio
    async def test_inverted_range_queries_nothing(self) -> None:
        chain = FakeChainClient([])
        scanner = ChainScanner(chain, DARKPOOL, EVENT_TOPIC)

        assert await scanner.scan(CHAIN_ID, 10, 9) == []
        assert chain.queries == []

    @pytest.mark.asyncio
    async def test_chain_errors_propagate(self) -> None:
        chain = FakeChainClient([])
        chain.fail_from = 1
        scanner = ChainScanner(chain, DARKPOOL, EVENT_TOPIC)

        with pytest.raises(ChainQueryError, match="upstream timeout"):
            await scanner.scan(CHAIN_ID, 1, 10)


class TestRPCChainClient:
    """Tests for the JSON-RPC backed chain client."""

    @pytest.mark.asyncio
    async def test_get_events(self, httpx_mock: "HTTPXMock") -> None:
        """Test logs are fetched with the topic filter and decoded."""
        commitment = "0x" + "01" * 32
        httpx_mock.add_response(
            url=RPC_URL,
            method="POST",
            json={"jsonrpc": "2.0", "id": 1, "result": [rpc_log(16, commitment, b"ct")]},
        )

        async with httpx.AsyncClient() as http_client:
            chain = RPCChainClient(RPCClient(RPC_URL), http_client, EVENT_TOPIC)
            events = await chain.get_events(DARKPOOL, 16, 31)

        assert len(events) == 1
        assert events[0].block_number == 16
        assert events[0].log_index == 1
        assert events[0].topics[1] == commitment

        request = httpx_mock.get_requests()[0]
        (log_filter,) = json.loads(request.content)["params"]
        assert log_filter["topics"] == [EVENT_TOPIC]
        assert log_filter["fromBlock"] == "0x10"

    @pytest.mark.asyncio
    async def test_malformed_logs_are_skipped(self, httpx_mock: "HTTPXMock") -> None:
        good = rpc_log(5, "0x" + "01" * 32, b"ct")
        pending = {**good, "blockNumber": None}
        bad_data = {**good, "data": "0xnothex"}
        httpx_mock.add_response(url=RPC_URL, json={"result": [pending, bad_data, good]})

        async with httpx.AsyncClient() as http_client:
            chain = RPCChainClient(RPCClient(RPC_URL), http_client)
            events = await chain.get_events(DARKPOOL, 1, 10)

        assert [e.block_number for e in events] == [5]

    @pytest.mark.asyncio
    async def test_rpc_error_becomes_chain_query_error(
        self, httpx_mock: "HTTPXMock"
    ) -> None:
        httpx_mock.add_response(
            url=RPC_URL, json={"error": {"code": -32005, "message": "range too large"}}
        )

        async with httpx.AsyncClient() as http_client:
            chain = RPCChainClient(RPCClient(RPC_URL), http_client)
            with pytest.raises(ChainQueryError, match="range too large"):
                await chain.get_events(DARKPOOL, 1, 10_000)

    @pytest.mark.asyncio
    async def test_http_error_becomes_chain_query_error(
        self, httpx_mock: "HTTPXMock"
    ) -> None:
        httpx_mock.add_response(url=RPC_URL, status_code=503)

        async with httpx.AsyncClient() as http_client:
            chain = RPCChainClient(RPCClient(RPC_URL), http_client)
            with pytest.raises(ChainQueryError, match="eth_blockNumber"):
                await chain.current_block()

    @pytest.mark.asyncio
    async def test_current_block(self, httpx_mock: "HTTPXMock") -> None:
        httpx_mock.add_response(url=RPC_URL, json={"result": "0x64"})

        async with httpx.AsyncClient() as http_client:
            chain = RPCChainClient(RPCClient(RPC_URL), http_client)
            assert await chain.current_block() == 100
