"""Orchestrates the indexing and redemption phases for one chain."""

from __future__ import annotations

from typing import TYPE_CHECKING

from fee_sweeper.helpers.logging import get_logger


if TYPE_CHECKING:
    from fee_sweeper.indexer.index_fees import FeeIndexer, IndexResult
    from fee_sweeper.indexer.redeem_fees import FeeRedeemer, RedemptionSummary


logger = get_logger(__name__)


class Indexer:
    """Runs indexing, then redemption, sequentially for one chain."""

    def __init__(self, fee_indexer: FeeIndexer, redeemer: FeeRedeemer) -> None:
        self.fee_indexer = fee_indexer
        self.redeemer = redeemer

    async def index_fees(self) -> IndexResult:
        return await self.fee_indexer.index_fees()

    async def redeem_fees(self) -> RedemptionSummary:
        return await self.redeemer.redeem_fees()

    async def run(self) -> tuple[IndexResult, RedemptionSummary]:
        """Index new fees, then redeem everything redeemable.

        Raises:
            ChainQueryError: If the chain head cannot be read
            CheckpointRegressionError: If persisted state moved backwards
        """
        indexing = await self.index_fees()
        if indexing.error:
            logger.warning("Indexing stopped early, redeeming what is indexed so far")
        redemption = await self.redeem_fees()
        return indexing, redemption


__all__ = ["Indexer"]
