"""Chain client collaborator: contract events and head block over JSON-RPC."""

from __future__ import annotations

from typing import TYPE_CHECKING, Any, Protocol

import httpx
from pydantic import BaseModel, Field, ValidationError

from fee_sweeper.errors import ChainQueryError
from fee_sweeper.helpers.logging import get_logger
from fee_sweeper.helpers.parsers import hex_to_bytes, parse_hex_int
from fee_sweeper.helpers.rpc import RPCClient


if TYPE_CHECKING:
    from collections.abc import Sequence


logger = get_logger(__name__)


class ChainEvent(BaseModel):
    """A contract log as returned by the chain."""

    block_number: int
    tx_hash: str | None = None
    log_index: int = 0
    topics: list[str] = Field(default_factory=list)
    data: bytes = b""

    @classmethod
    def from_rpc_log(cls, log: dict[str, Any]) -> ChainEvent:
        """Build an event from an ``eth_getLogs`` entry.

        Raises:
            ValueError: If a required field is missing or not valid hex
        """
        if log.get("blockNumber") is None:
            msg = "log has no blockNumber (pending log)"
            raise ValueError(msg)
        return cls(
            block_number=parse_hex_int(log["blockNumber"]),
            tx_hash=log.get("transactionHash"),
            log_index=parse_hex_int(log.get("logIndex"), 0),
            topics=list(log.get("topics", [])),
            data=hex_to_bytes(log.get("data", "0x")),
        )


class ChainClient(Protocol):
    """What the scanner needs from the chain."""

    async def get_events(
        self, contract: str, from_block: int, to_block: int
    ) -> Sequence[ChainEvent]: ...

    async def current_block(self) -> int: ...


class RPCChainClient:
    """ChainClient backed by a JSON-RPC node.

    Args:
        rpc_client: JSON-RPC client for the node
        http_client: Shared HTTP client
        event_topic: topic0 restricting logs to the fee-note event
    """

    def __init__(
        self,
        rpc_client: RPCClient,
        http_client: httpx.AsyncClient,
        event_topic: str,
    ) -> None:
        self.rpc_client = rpc_client
        self.http_client = http_client
        self.event_topic = event_topic

    async def get_events(
        self, contract: str, from_block: int, to_block: int
    ) -> list[ChainEvent]:
        """Fetch the contract's logs in ``[from_block, to_block]``.

        Raises:
            ChainQueryError: If the node cannot be queried or answers badly
        """
        topics: list[str | None] = [self.event_topic]
        try:
            logs = await self.rpc_client.get_logs(
                self.http_client, contract, from_block, to_block, topics
            )
        except (httpx.HTTPError, ValueError) as e:
            msg = f"eth_getLogs {from_block}-{to_block} failed: {e}"
            raise ChainQueryError(msg) from e

        events: list[ChainEvent] = []
        for log in logs:
            try:
                events.append(ChainEvent.from_rpc_log(log))
            except (KeyError, ValueError, ValidationError) as e:
                logger.warning("Skipping malformed log %s: %s", log.get("transactionHash"), e)
        return events

    async def current_block(self) -> int:
        """Return the chain head.

        Raises:
            ChainQueryError: If the node cannot report its head block
        """
        try:
            return await self.rpc_client.get_block_number(self.http_client)
        except (httpx.HTTPError, ValueError) as e:
            msg = f"eth_blockNumber failed: {e}"
            raise ChainQueryError(msg) from e


__all__ = ["ChainClient", "ChainEvent", "RPCChainClient"]
