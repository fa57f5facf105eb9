"""Redemption phase: redeem indexed fee notes into their receiver wallets.

Notes are grouped by receiver wallet. Wallets are processed in parallel, up
to a configured limit, while the notes of one wallet are redeemed strictly
one after another: a per-wallet lock is held for the whole
submit-and-wait sequence of each note.
"""

from __future__ import annotations

import asyncio

from collections import defaultdict
from typing import TYPE_CHECKING

from pydantic import BaseModel

from fee_sweeper.errors import (
    AuthSigningError,
    MalformedResponseError,
    RelayerRejected,
    TaskFailedError,
    TaskTimeoutError,
    TransportError,
)
from fee_sweeper.helpers.constants import (
    DEFAULT_MAX_CONCURRENT_WALLETS,
    REDEMPTION_MAX_ATTEMPTS,
    RETRY_BASE_DELAY,
)
from fee_sweeper.helpers.http import log_and_suppress_errors, retry_with_backoff
from fee_sweeper.helpers.logging import get_logger
from fee_sweeper.notes.models import FeeNote, NoteStatus
from fee_sweeper.relayer.keys import root_signing_key
from fee_sweeper.relayer.models import NoteBody, RedeemNoteRequest


if TYPE_CHECKING:
    from fee_sweeper.notes.store import NoteStore
    from fee_sweeper.relayer.auth import RootKey
    from fee_sweeper.relayer.client import RelayerClient
    from fee_sweeper.relayer.keys import WalletKeyResolver


logger = get_logger(__name__)

UNKNOWN_SUBMISSION_PREFIX = "submission outcome unknown"
UNKNOWN_SUBMISSION_REASON = f"{UNKNOWN_SUBMISSION_PREFIX}: no task id was recorded"

WALLET_SETUP_ERRORS = (
    AuthSigningError,
    MalformedResponseError,
    RelayerRejected,
    TaskFailedError,
    TaskTimeoutError,
    TransportError,
)


class RedemptionSummary(BaseModel):
    """Counts of note outcomes for one redemption pass."""

    redeemed: int = 0
    failed: int = 0
    pending: int = 0
    skipped: int = 0

    def record(self, status: NoteStatus | None) -> None:
        match status:
            case NoteStatus.REDEEMED:
                self.redeemed += 1
            case NoteStatus.FAILED:
                self.failed += 1
            case NoteStatus.PENDING:
                self.pending += 1
            case _:
                self.skipped += 1


def build_redeem_request(note: FeeNote, decryption_key: str) -> RedeemNoteRequest:
    """Body of a redeem-note call for a decrypted note.

    Raises:
        ValueError: If the note was never decrypted
    """
    plaintext = note.plaintext
    if plaintext is None:
        msg = f"note {note.commitment} has no decrypted fields"
        raise ValueError(msg)
    return RedeemNoteRequest(
        note=NoteBody(
            mint=plaintext.mint,
            amount=str(plaintext.amount),
            receiver=plaintext.receiver,
            blinder=str(plaintext.blinder),
        ),
        decryption_key=decryption_key,
    )


def group_by_wallet(notes: list[FeeNote]) -> dict[str, list[FeeNote]]:
    """Group notes by receiver wallet, keeping their order within a wallet."""
    groups: dict[str, list[FeeNote]] = defaultdict(list)
    for note in notes:
        if note.receiver_wallet_id is not None:
            groups[note.receiver_wallet_id].append(note)
    return dict(groups)


class FeeRedeemer:
    """Drives pending and indexed notes of one chain through the relayer.

    Args:
        chain_id: Chain whose notes are redeemed
        store: Note persistence
        relayer_client: Relayer operations
        key_resolver: Finds the account key behind a receiver wallet
        decryption_key: Operator fee decryption key, sent with redemptions
        max_attempts: Attempts at a submission before a transport error is final
        max_concurrent_wallets: Wallets processed in parallel
        retry_base_delay: First backoff delay between submission attempts
    """

    def __init__(
        self,
        chain_id: int,
        store: NoteStore,
        relayer_client: RelayerClient,
        key_resolver: WalletKeyResolver,
        decryption_key: str,
        max_attempts: int = REDEMPTION_MAX_ATTEMPTS,
        max_concurrent_wallets: int = DEFAULT_MAX_CONCURRENT_WALLETS,
        retry_base_delay: float = RETRY_BASE_DELAY,
    ) -> None:
        self.chain_id = chain_id
        self.store = store
        self.relayer_client = relayer_client
        self.key_resolver = key_resolver
        self.decryption_key = decryption_key
        self.max_attempts = max_attempts
        self.retry_base_delay = retry_base_delay
        self._wallet_limit = asyncio.Semaphore(max_concurrent_wallets)
        self._wallet_locks: defaultdict[str, asyncio.Lock] = defaultdict(asyncio.Lock)

    async def redeem_fees(self) -> RedemptionSummary:
        """Reconcile interrupted redemptions, then redeem every indexed note."""
        summary = RedemptionSummary()
        await self.reconcile_pending(summary)

        notes = await self.store.list_redeemable(self.chain_id)
        groups = group_by_wallet(notes)
        logger.info(
            "Chain %d: %d redeemable notes across %d wallets",
            self.chain_id,
            len(notes),
            len(groups),
        )

        await asyncio.gather(
            *(
                self._redeem_wallet(wallet_id, wallet_notes, summary)
                for wallet_id, wallet_notes in groups.items()
            )
        )

        logger.info(
            "Chain %d: redeemed %d, failed %d, pending %d, skipped %d",
            self.chain_id,
            summary.redeemed,
            summary.failed,
            summary.pending,
            summary.skipped,
        )
        return summary

    async def reconcile_pending(self, summary: RedemptionSummary) -> None:
        """Settle notes left ``PENDING`` by an earlier, interrupted run.

        Notes with a recorded task id are re-polled, never resubmitted. A note
        that cannot be settled is logged, counted as skipped and stays
        ``PENDING`` for the next run.
        """
        for note in await self.store.list_pending(self.chain_id):
            status: NoteStatus | None = None
            async with log_and_suppress_errors(
                f"reconciliation of note {note.commitment}", log_level="error"
            ):
                status = await self._reconcile_note(note)
            summary.record(status)

    async def _reconcile_note(self, note: FeeNote) -> NoteStatus:
        wallet_id = note.receiver_wallet_id or ""
        async with self._wallet_locks[wallet_id]:
            if note.redemption_task_id is None:
                logger.error(
                    "Note %s was pending without a task id, marking failed",
                    note.commitment,
                )
                return await self._fail(note.commitment, UNKNOWN_SUBMISSION_REASON)

            logger.info(
                "Re-polling task %s for pending note %s",
                note.redemption_task_id,
                note.commitment,
            )
            eth_key = self.key_resolver.eth_key_for(wallet_id)
            if eth_key is None:
                return await self._await_redemption(
                    note.commitment, note.redemption_task_id, None
                )
            with root_signing_key(
                self.relayer_client.key_derivation, eth_key, self.chain_id
            ) as root_key:
                return await self._await_redemption(
                    note.commitment, note.redemption_task_id, root_key
                )

    async def _redeem_wallet(
        self, wallet_id: str, notes: list[FeeNote], summary: RedemptionSummary
    ) -> None:
        async with (
            self._wallet_limit,
            log_and_suppress_errors(
                f"redemption for wallet {wallet_id}", log_level="error"
            ),
        ):
            eth_key = self.key_resolver.eth_key_for(wallet_id)
            if eth_key is None:
                logger.warning(
                    "No key configured for wallet %s, leaving %d notes indexed",
                    wallet_id,
                    len(notes),
                )
                summary.skipped += len(notes)
                return

            try:
                await self.relayer_client.check_wallet_indexed(
                    wallet_id, self.chain_id, eth_key
                )
            except WALLET_SETUP_ERRORS as e:
                logger.warning(
                    "Wallet %s could not be indexed by the relayer, retrying next run: %s",
                    wallet_id,
                    e,
                )
                summary.skipped += len(notes)
                return

            for note in notes:
                summary.record(await self.redeem_note(note, eth_key))

    async def redeem_note(self, note: FeeNote, eth_key: str) -> NoteStatus | None:
        """Redeem one note, holding its wallet's lock throughout.

        Returns:
            The status the note ended in, or None if it was not eligible
        """
        wallet_id = note.receiver_wallet_id or ""
        async with self._wallet_locks[wallet_id]:
            request = build_redeem_request(note, self.decryption_key)
            with root_signing_key(
                self.relayer_client.key_derivation, eth_key, self.chain_id
            ) as root_key:
                if not await self.store.mark_pending(note.commitment):
                    logger.debug("Note %s is no longer redeemable", note.commitment)
                    return None

                try:
                    task_id = await self._submit(wallet_id, request, root_key)
                except TransportError as e:
                    reason = f"transport error after {self.max_attempts} attempts: {e}"
                    return await self._fail(note.commitment, reason)
                except MalformedResponseError as e:
                    reason = f"{UNKNOWN_SUBMISSION_PREFIX}: {e}"
                    return await self._fail(note.commitment, reason)
                except (RelayerRejected, AuthSigningError) as e:
                    return await self._fail(note.commitment, str(e))

                await self.store.mark_pending(note.commitment, task_id)
                logger.info("Note %s submitted as task %s", note.commitment, task_id)
                return await self._await_redemption(note.commitment, task_id, root_key)

    async def _submit(
        self, wallet_id: str, request: RedeemNoteRequest, root_key: RootKey
    ) -> str:
        submit = retry_with_backoff(
            max_retries=self.max_attempts,
            base_delay=self.retry_base_delay,
            retry_on=(TransportError,),
        )(self.relayer_client.submit_redeem_note)
        return await submit(wallet_id, request, root_key)

    async def _await_redemption(
        self, commitment: str, task_id: str, root_key: RootKey | None
    ) -> NoteStatus:
        try:
            await self.relayer_client.await_task(task_id, root_key)
        except TaskTimeoutError as e:
            logger.warning("Note %s left pending: %s", commitment, e)
            return NoteStatus.PENDING
        except (TaskFailedError, RelayerRejected) as e:
            return await self._fail(commitment, str(e))

        await self.store.mark_redeemed(commitment)
        logger.info("Note %s redeemed", commitment)
        return NoteStatus.REDEEMED

    async def _fail(self, commitment: str, reason: str) -> NoteStatus:
        await self.store.mark_failed(commitment, reason)
        logger.error("Note %s failed: %s", commitment, reason)
        return NoteStatus.FAILED


__all__ = [
    "FeeRedeemer",
    "RedemptionSummary",
    "build_redeem_request",
    "group_by_wallet",
]
