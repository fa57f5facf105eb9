"""Authenticated HTTP exchange with a relayer."""

from __future__ import annotations

import json

from typing import TYPE_CHECKING, Any

import httpx
from pydantic import BaseModel

from fee_sweeper.errors import MalformedResponseError, RelayerRejected, TransportError
from fee_sweeper.helpers.constants import DEFAULT_TIMEOUT
from fee_sweeper.helpers.http import create_http_client
from fee_sweeper.helpers.logging import get_logger
from fee_sweeper.relayer.auth import AuthSigner


if TYPE_CHECKING:
    from types import TracebackType

    from fee_sweeper.relayer.auth import RootKey


logger = get_logger(__name__)


def route(template: str, **params: object) -> str:
    """Fill ``:name`` placeholders of a route template.

    Example:
        >>> route("/wallet/:wallet_id", wallet_id="abc")
        '/wallet/abc'
    """
    path = template
    for name, value in params.items():
        path = path.replace(f":{name}", str(value))
    return path


def serialize_body(body: BaseModel | dict[str, Any]) -> bytes:
    """Serialise a request body once; these exact bytes are signed and sent."""
    if isinstance(body, BaseModel):
        return body.model_dump_json().encode()
    return json.dumps(body, separators=(",", ":")).encode()


class RelayerTransport:
    """Sends JSON requests to a relayer, signing them when a key is given.

    Args:
        base_url: Relayer base URL
        signer: Builds auth headers for authenticated requests
        http_client: Optional pre-built client; one is created otherwise
        timeout: Request timeout in seconds for a created client
    """

    def __init__(
        self,
        base_url: str,
        signer: AuthSigner | None = None,
        http_client: httpx.AsyncClient | None = None,
        timeout: float = DEFAULT_TIMEOUT,
    ) -> None:
        if not base_url:
            msg = "Relayer URL cannot be empty"
            raise ValueError(msg)

        self.base_url = base_url.rstrip("/")
        self.signer = signer or AuthSigner()
        self._owns_client = http_client is None
        self.http_client = http_client or create_http_client(timeout=timeout)

    async def get(self, path: str, root_key: RootKey | None = None) -> Any:
        """GET ``path``; an authenticated GET signs an empty body.

        Raises:
            TransportError: If the relayer is unreachable
            MalformedResponseError: If a 2xx reply is not valid JSON
            RelayerRejected: If the relayer replies with a non-2xx status
            AuthSigningError: If the auth headers cannot be built
        """
        headers = (
            self.signer.build_headers(root_key, b"") if root_key is not None else {}
        )
        return await self._send("GET", path, None, headers)

    async def post(
        self,
        path: str,
        body: BaseModel | dict[str, Any],
        root_key: RootKey | None = None,
    ) -> Any:
        """POST a JSON body to ``path``, signing it when ``root_key`` is given.

        Raises:
            TransportError: If the relayer is unreachable
            MalformedResponseError: If a 2xx reply is not valid JSON
            RelayerRejected: If the relayer replies with a non-2xx status
            AuthSigningError: If the auth headers cannot be built
        """
        content = serialize_body(body)
        headers = {"content-type": "application/json"}
        if root_key is not None:
            headers.update(self.signer.build_headers(root_key, content))
        return await self._send("POST", path, content, headers)

    async def _send(
        self,
        method: str,
        path: str,
        content: bytes | None,
        headers: dict[str, str],
    ) -> Any:
        url = f"{self.base_url}{path}"
        try:
            response = await self.http_client.request(
                method, url, content=content, headers=headers
            )
        except httpx.HTTPError as e:
            msg = f"{method} {path} failed: {e}"
            raise TransportError(msg) from e

        if not response.is_success:
            logger.debug("%s %s -> %d", method, path, response.status_code)
            raise RelayerRejected(response.status_code, response.text, path)

        if not response.content:
            return None
        try:
            return response.json()
        except ValueError as e:
            msg = f"{method} {path} returned invalid JSON: {e}"
            raise MalformedResponseError(msg) from e

    async def aclose(self) -> None:
        if self._owns_client:
            await self.http_client.aclose()

    async def __aenter__(self) -> RelayerTransport:
        return self

    async def __aexit__(
        self,
        exc_type: type[BaseException] | None,
        exc: BaseException | None,
        tb: TracebackType | None,
    ) -> None:
        await self.aclose()


__all__ = ["RelayerTransport", "route", "serialize_body"]
