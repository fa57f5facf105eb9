"""Ethereum JSON-RPC client utilities."""

from __future__ import annotations

from typing import TYPE_CHECKING, Any

from fee_sweeper.helpers.parsers import parse_hex_int


if TYPE_CHECKING:
    import httpx


class RPCClient:
    """Ethereum JSON-RPC client."""

    def __init__(self, rpc_url: str, timeout: float = 30.0) -> None:
        """Initialize RPC client.

        Args:
            rpc_url: Ethereum JSON-RPC endpoint URL
            timeout: Default timeout for requests in seconds

        Raises:
            ValueError: If rpc_url is empty or None
        """
        if not rpc_url:
            msg = "RPC URL cannot be empty"
            raise ValueError(msg)

        self.rpc_url = rpc_url
        self.timeout = timeout
        self._request_id = 0

    async def call(
        self,
        client: httpx.AsyncClient,
        method: str,
        params: list[Any] | None = None,
        *,
        timeout: float | None = None,
    ) -> Any:
        """Make a single JSON-RPC call.

        Args:
            client: HTTP client instance
            method: RPC method name (e.g., "eth_blockNumber")
            params: Method parameters list
            timeout: Optional timeout override

        Returns:
            RPC result value

        Raises:
            httpx.HTTPError: If the HTTP request fails
            ValueError: If the RPC response contains an error
        """
        self._request_id += 1
        payload = {
            "jsonrpc": "2.0",
            "method": method,
            "params": params or [],
            "id": self._request_id,
        }

        response = await client.post(
            self.rpc_url, json=payload, timeout=timeout or self.timeout
        )
        response.raise_for_status()
        result = response.json()

        if "error" in result:
            msg = f"RPC error: {result['error']}"
            raise ValueError(msg)

        return result.get("result")

    async def get_block_number(self, client: httpx.AsyncClient) -> int:
        """Get the latest block number.

        Args:
            client: HTTP client instance

        Returns:
            Latest block number

        Raises:
            ValueError: If the node returned no block number
        """
        result = await self.call(client, "eth_blockNumber", [])
        if result is None:
            msg = "eth_blockNumber returned no result"
            raise ValueError(msg)
        return parse_hex_int(result)

    async def get_logs(
        self,
        client: httpx.AsyncClient,
        address: str,
        from_block: int,
        to_block: int,
        topics: list[str | None] | None = None,
    ) -> list[dict[str, Any]]:
        """Fetch contract logs in an inclusive block range.

        Args:
            client: HTTP client instance
            address: Contract address emitting the logs
            from_block: First block (inclusive)
            to_block: Last block (inclusive)
            topics: Optional topic filter

        Returns:
            Raw log objects as returned by the node
        """
        log_filter: dict[str, Any] = {
            "address": address,
            "fromBlock": hex(from_block),
            "toBlock": hex(to_block),
        }
        if topics:
            log_filter["topics"] = topics

        result = await self.call(client, "eth_getLogs", [log_filter])
        return result or []


__all__ = ["RPCClient"]
