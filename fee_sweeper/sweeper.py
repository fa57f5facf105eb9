"""Fee sweeper entry point.

Indexes new fee notes for the configured chain, then redeems every note the
operator owns into its receiver wallet.

Usage:
    python -m fee_sweeper.sweeper
"""

from __future__ import annotations

import asyncio
import sys

from typing import TYPE_CHECKING

from sqlalchemy.exc import SQLAlchemyError

from fee_sweeper.chain.client import RPCChainClient
from fee_sweeper.chain.scanner import ChainScanner
from fee_sweeper.crypto.decryptor import NoteDecryptor
from fee_sweeper.errors import FeeSweeperError
from fee_sweeper.helpers.config import SweeperConfig, load_object
from fee_sweeper.helpers.db import create_engine, create_session_factory, create_tables
from fee_sweeper.helpers.http import create_http_client
from fee_sweeper.helpers.logging import get_logger
from fee_sweeper.helpers.rpc import RPCClient
from fee_sweeper.indexer.index_fees import FeeIndexer
from fee_sweeper.indexer.indexer import Indexer
from fee_sweeper.indexer.redeem_fees import FeeRedeemer
from fee_sweeper.notes.store import NoteStore
from fee_sweeper.relayer.client import RelayerClient
from fee_sweeper.relayer.keys import WalletKeyResolver
from fee_sweeper.relayer.tasks import TaskPoller
from fee_sweeper.relayer.transport import RelayerTransport


if TYPE_CHECKING:
    import httpx

    from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

    from fee_sweeper.chain.client import ChainClient
    from fee_sweeper.crypto.decryptor import DecryptFn
    from fee_sweeper.relayer.keys import KeyDerivation


logger = get_logger(__name__)

EXIT_OK = 0
EXIT_FATAL = 1


def build_indexer(
    config: SweeperConfig,
    *,
    chain_client: ChainClient,
    relayer_transport: RelayerTransport,
    session_factory: async_sessionmaker[AsyncSession],
    decrypt_fn: DecryptFn,
    key_derivation: KeyDerivation,
    show_progress: bool = False,
) -> Indexer:
    """Wire the indexing and redemption components for one chain."""
    store = NoteStore(session_factory)
    fee_indexer = FeeIndexer(
        chain_id=config.chain_id,
        scanner=ChainScanner(
            chain_client, config.darkpool_address, config.fee_note_event_topic
        ),
        decryptor=NoteDecryptor(decrypt_fn, config.decryption_key),
        store=store,
        start_block=config.start_block,
        block_range_size=config.block_range_size,
        show_progress=show_progress,
    )

    poller = TaskPoller(
        relayer_transport,
        poll_interval_ms=config.task_poll_interval_ms,
        max_poll_seconds=config.task_max_poll_seconds,
        completion_check=config.task_completion_check,
    )
    redeemer = FeeRedeemer(
        chain_id=config.chain_id,
        store=store,
        relayer_client=RelayerClient(relayer_transport, poller, key_derivation),
        key_resolver=WalletKeyResolver(key_derivation, config.wallet_eth_keys),
        decryption_key=config.decryption_key,
        max_attempts=config.redemption_max_attempts,
        max_concurrent_wallets=config.max_concurrent_wallets,
    )
    return Indexer(fee_indexer, redeemer)


async def run(config: SweeperConfig) -> int:
    """Run one sweep and return the process exit code."""
    if not config.decrypt_fn or not config.key_derivation:
        logger.error("DECRYPT_FN and KEY_DERIVATION must name the crypto primitives")
        return EXIT_FATAL

    try:
        decrypt_fn = load_object(config.decrypt_fn)
        key_derivation = load_object(config.key_derivation)
    except (ImportError, ValueError):
        logger.exception("Could not load the crypto primitives")
        return EXIT_FATAL

    try:
        engine = create_engine(config.database_url)
    except SQLAlchemyError:
        logger.exception("Invalid database URL")
        return EXIT_FATAL

    try:
        await create_tables(engine)
        async with (
            create_http_client() as http_client,
            RelayerTransport(config.relayer_url) as transport,
        ):
            indexer = build_indexer(
                config,
                chain_client=_rpc_chain_client(config, http_client),
                relayer_transport=transport,
                session_factory=create_session_factory(engine),
                decrypt_fn=decrypt_fn,
                key_derivation=key_derivation,
                show_progress=sys.stdout.isatty(),
            )
            indexing, redemption = await indexer.run()
    except (FeeSweeperError, SQLAlchemyError):
        logger.exception("Fee sweep aborted")
        return EXIT_FATAL
    finally:
        await engine.dispose()

    logger.info(
        "Sweep finished: checkpoint %s, %d redeemed, %d failed",
        indexing.checkpoint,
        redemption.redeemed,
        redemption.failed,
    )
    return EXIT_OK


def _rpc_chain_client(
    config: SweeperConfig, http_client: httpx.AsyncClient
) -> RPCChainClient:
    return RPCChainClient(
        RPCClient(config.rpc_url), http_client, config.fee_note_event_topic
    )


def main() -> None:
    """Console entry point."""
    try:
        config = SweeperConfig.from_env()
    except ValueError:
        logger.exception("Invalid configuration")
        sys.exit(EXIT_FATAL)

    sys.exit(asyncio.run(run(config)))


if __name__ == "__main__":
    main()
