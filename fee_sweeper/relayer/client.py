"""Client code for interacting with a configured relayer."""

from __future__ import annotations

from typing import TYPE_CHECKING

from pydantic import ValidationError

from fee_sweeper.errors import MalformedResponseError, RelayerRejected, TransportError
from fee_sweeper.helpers.constants import (
    CREATE_WALLET_ROUTE,
    FIND_WALLET_ROUTE,
    GET_WALLET_ROUTE,
    PRICE_REPORT_ROUTE,
    REDEEM_NOTE_ROUTE,
)
from fee_sweeper.helpers.logging import get_logger
from fee_sweeper.relayer.keys import build_new_wallet, derive_keychain, root_signing_key
from fee_sweeper.relayer.models import (
    CreateWalletRequest,
    FindWalletRequest,
    GetWalletResponse,
    PriceReportRequest,
    PriceReportResponse,
    RedeemNoteRequest,
    TaskResponse,
    Wallet,
)
from fee_sweeper.relayer.transport import route


if TYPE_CHECKING:
    from fee_sweeper.relayer.auth import RootKey
    from fee_sweeper.relayer.keys import KeyDerivation
    from fee_sweeper.relayer.tasks import TaskOutcome, TaskPoller
    from fee_sweeper.relayer.transport import RelayerTransport


logger = get_logger(__name__)

HTTP_NOT_FOUND = 404
NOMINAL_PRICE_STATE = "Nominal"

WALLET_FETCH_ERRORS = (MalformedResponseError, RelayerRejected, TransportError)


def parse_task_id(response: object, path: str) -> str:
    """Task id from the reply to an accepted request.

    Raises:
        MalformedResponseError: If the reply carries no task id
    """
    try:
        return TaskResponse.model_validate(response).task_id
    except ValidationError as e:
        msg = f"{path} was accepted without a task id: {response!r}"
        raise MalformedResponseError(msg) from e


class RelayerClient:
    """Wallet and note operations against a relayer.

    Operations that start a relayer task wait for it to complete before
    returning.

    Args:
        transport: Authenticated request/response exchange
        poller: Waits on the tasks the relayer hands back
        key_derivation: Derives wallet ids, seeds and keychains
    """

    def __init__(
        self,
        transport: RelayerTransport,
        poller: TaskPoller,
        key_derivation: KeyDerivation,
    ) -> None:
        self.transport = transport
        self.poller = poller
        self.key_derivation = key_derivation

    # ------------------
    # | Wallet Methods |
    # ------------------

    async def get_wallet(self, wallet_id: str, signing_key: RootKey) -> Wallet | None:
        """Fetch a wallet; None if the relayer does not know it.

        Raises:
            TransportError: If the relayer cannot be reached
            RelayerRejected: For error statuses other than 404
            MalformedResponseError: If the reply is not a wallet
        """
        path = route(GET_WALLET_ROUTE, wallet_id=wallet_id)
        try:
            response = await self.transport.get(path, signing_key)
        except RelayerRejected as e:
            if e.status_code == HTTP_NOT_FOUND:
                return None
            raise
        try:
            return GetWalletResponse.model_validate(response).wallet
        except ValidationError as e:
            msg = f"{path} returned no wallet: {e}"
            raise MalformedResponseError(msg) from e

    async def check_wallet_indexed(
        self, wallet_id: str, chain_id: int, eth_key: str
    ) -> None:
        """Make sure the relayer has ``wallet_id``, looking it up if not."""
        with root_signing_key(self.key_derivation, eth_key, chain_id) as root_key:
            try:
                wallet = await self.get_wallet(wallet_id, root_key)
            except WALLET_FETCH_ERRORS as e:
                logger.warning("Wallet %s fetch failed: %s", wallet_id, e)
                wallet = None

        if wallet is not None:
            return

        logger.info("Wallet %s not indexed by relayer, looking it up", wallet_id)
        await self.find_or_create_wallet(eth_key, chain_id)

    async def find_or_create_wallet(self, eth_key: str, chain_id: int) -> None:
        """Have the relayer find the wallet on-chain, creating it if it is new."""
        try:
            await self.lookup_wallet(eth_key, chain_id)
        except RelayerRejected as e:
            if e.status_code != HTTP_NOT_FOUND:
                raise
            logger.info("Wallet not found on-chain, creating it")
            await self.create_wallet(
                build_new_wallet(self.key_derivation, eth_key, chain_id)
            )

    async def lookup_wallet(self, eth_key: str, chain_id: int) -> TaskOutcome:
        """Submit a find-wallet task and wait for it."""
        deriver = self.key_derivation
        keychain = derive_keychain(deriver, eth_key, chain_id)
        body = FindWalletRequest(
            wallet_id=str(deriver.derive_wallet_id(eth_key)),
            secret_share_seed=str(deriver.derive_share_seed(eth_key)),
            blinder_seed=str(deriver.derive_blinder_seed(eth_key)),
            key_chain=keychain.model_dump(),
        )
        del keychain

        with root_signing_key(deriver, eth_key, chain_id) as root_key:
            response = await self.transport.post(FIND_WALLET_ROUTE, body, root_key)
            task_id = parse_task_id(response, FIND_WALLET_ROUTE)
            return await self.poller.await_task(task_id, root_key)

    async def create_wallet(self, wallet: Wallet) -> TaskOutcome:
        """Create a new wallet via the relayer and wait for the task."""
        body = CreateWalletRequest(wallet=wallet.model_dump())
        response = await self.transport.post(CREATE_WALLET_ROUTE, body)
        return await self.poller.await_task(parse_task_id(response, CREATE_WALLET_ROUTE))

    async def submit_redeem_note(
        self, wallet_id: str, request: RedeemNoteRequest, signing_key: RootKey
    ) -> str:
        """Submit a redemption without waiting; returns the task id.

        Raises:
            MalformedResponseError: If the relayer accepted it without a task id
        """
        path = route(REDEEM_NOTE_ROUTE, wallet_id=wallet_id)
        response = await self.transport.post(path, request, signing_key)
        return parse_task_id(response, path)

    async def redeem_note(
        self, wallet_id: str, request: RedeemNoteRequest, signing_key: RootKey
    ) -> TaskOutcome:
        """Redeem a note into a wallet and wait for the task."""
        task_id = await self.submit_redeem_note(wallet_id, request, signing_key)
        return await self.poller.await_task(task_id, signing_key)

    async def await_task(
        self, task_id: str, signing_key: RootKey | None = None
    ) -> TaskOutcome:
        return await self.poller.await_task(task_id, signing_key)

    # ------------------
    # | Market Methods |
    # ------------------

    async def get_price(self, mint: str, quote_mint: str) -> float | None:
        """Price of ``mint`` in units of ``quote_mint``.

        Returns None when the relayer's price report is not nominal.
        """
        if mint.lower() == quote_mint.lower():
            return 1.0

        body = PriceReportRequest(
            base_token={"addr": mint}, quote_token={"addr": quote_mint}
        )
        response = await self.transport.post(PRICE_REPORT_ROUTE, body)
        report = PriceReportResponse.model_validate(response).price_report

        if isinstance(report, dict) and NOMINAL_PRICE_STATE in report:
            return float(report[NOMINAL_PRICE_STATE]["price"])

        logger.warning("Price report state for %s: %s", mint, report)
        return None


__all__ = ["RelayerClient", "parse_task_id"]
