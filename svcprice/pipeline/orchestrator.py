"""Refresh orchestrator - sequences the CPI/RPP refresh in one transaction.

Stages: IDLE -> FETCHING_CPI -> FETCHING_RPP -> SYNCHRONIZING -> RECOMPUTING
-> COMMITTED | ROLLED_BACK.

Key features:
- Atomic: macro factors, location indices and recomputed pricing commit
  together or not at all
- Guarded: a regional pull that updates too few states fails the run
- Sequential: one external call or statement at a time, no internal retries
- Single-flight is assumed; overlapping runs must be prevented by the caller
"""

from __future__ import annotations

import logging
import time

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from svcprice.config import AppConfig, RefreshConfig, get_config
from svcprice.db.connection import get_session_factory
from svcprice.integration.bea_client import BEAClient
from svcprice.integration.bls_client import BLSClient
from svcprice.pipeline.errors import IncompleteSourceData, PersistenceError
from svcprice.pipeline.location_sync import LocationIndexSynchronizer
from svcprice.pipeline.macro_factors import CPI_FACTOR, MacroFactorStore
from svcprice.pipeline.recompute import PricingRecomputeTrigger, RecomputeFn
from svcprice.pipeline.types import CpiReading, RefreshRun, RefreshStage

logger = logging.getLogger(__name__)


class RefreshOrchestrator:
    """Runs one refresh of CPI and RPP data and the dependent pricing.

    Responsibilities:
    1. Fetch the latest CPI reading, store it, make sure a baseline exists
    2. Resolve the RPP line code and fetch the latest state values
    3. Apply state values to locations and enforce the completeness guard
    4. Recompute location pricing
    5. Commit, or roll everything back and re-raise
    """

    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        bls_client: BLSClient,
        bea_client: BEAClient,
        refresh_config: RefreshConfig | None = None,
        recompute: RecomputeFn | None = None,
    ):
        """Initialize orchestrator.

        Args:
            session_factory: Factory for the run's session; one session is
                opened per run and closed on both success and failure
            bls_client: CPI source adapter
            bea_client: RPP source adapter
            refresh_config: Series, baseline target, line code and threshold
            recompute: Pricing recompute implementation (defaults to the
                database function)
        """
        self.session_factory = session_factory
        self.bls_client = bls_client
        self.bea_client = bea_client
        self.config = refresh_config or RefreshConfig()
        self.recompute = recompute
        self.stage = RefreshStage.IDLE

    async def run(self) -> RefreshRun:
        """Execute a full refresh.

        Returns:
            RefreshRun summary (only when the transaction committed)

        Raises:
            RefreshError: Any pipeline failure, after rollback
        """
        started = time.perf_counter()
        logger.info("Starting pricing data refresh")

        session = self.session_factory()
        try:
            try:
                run = await self._execute(session)
                try:
                    await session.commit()
                except SQLAlchemyError as exc:
                    raise PersistenceError(f"Commit failed: {exc}") from exc
            except Exception as exc:
                failed_stage = self.stage
                await self._rollback(session)
                self._transition(RefreshStage.ROLLED_BACK)
                logger.error(
                    "Refresh rolled back during %s: %s: %s",
                    failed_stage.value,
                    type(exc).__name__,
                    exc,
                )
                raise
        finally:
            await session.close()

        self._transition(RefreshStage.COMMITTED)
        run.duration_seconds = time.perf_counter() - started

        logger.info(
            "Refresh complete: CPI %s, RPP %s for %d states, %d estimates in %.1fs",
            run.cpi.label,
            run.rpp_year,
            run.updated_states,
            run.total_estimates,
            run.duration_seconds,
        )
        return run

    async def _execute(self, session: AsyncSession) -> RefreshRun:
        cfg = self.config

        # 1) CPI latest + baseline
        self._transition(RefreshStage.FETCHING_CPI)
        cpi = await self.bls_client.fetch_latest_cpi(cfg.cpi_series_id)

        store = MacroFactorStore(session)
        await store.upsert_reading(cpi, CPI_FACTOR)
        baseline_row = await store.ensure_baseline(
            CPI_FACTOR, cpi.series_id, cfg.baseline_year, cfg.baseline_period
        )
        baseline = (
            CpiReading(
                series_id=baseline_row.series_id,
                year=baseline_row.year,
                period=baseline_row.period,
                value=baseline_row.value,
            )
            if baseline_row is not None
            else None
        )

        # 2) RPP (states)
        self._transition(RefreshStage.FETCHING_RPP)
        line_code = await self.bea_client.resolve_line_code(cfg.rpp_line_code)
        rpp = await self.bea_client.fetch_state_indices(line_code, cfg.rpp_year_window)

        # 3) Locations + completeness guard
        self._transition(RefreshStage.SYNCHRONIZING)
        sync = await LocationIndexSynchronizer(session).apply_state_indices(
            rpp.rows, rpp.latest_year
        )
        if sync.updated_count < cfg.min_updated_states:
            raise IncompleteSourceData(sync.updated_count, cfg.min_updated_states, sync.unmatched)

        # 4) Recompute estimates
        self._transition(RefreshStage.RECOMPUTING)
        total_estimates = await PricingRecomputeTrigger(session, self.recompute).recompute_all()

        return RefreshRun(
            cpi=cpi,
            baseline=baseline,
            rpp_line_code=rpp.line_code,
            rpp_year=rpp.latest_year,
            rpp_rows_received=len(rpp.rows),
            updated_states=sync.updated_count,
            unmatched=list(sync.unmatched),
            total_estimates=total_estimates,
        )

    async def _rollback(self, session: AsyncSession) -> None:
        try:
            await session.rollback()
        except SQLAlchemyError:
            # Original failure is re-raised by the caller; closing the
            # session still discards the transaction.
            logger.exception("Rollback failed")

    def _transition(self, stage: RefreshStage) -> None:
        logger.debug("Refresh stage %s -> %s", self.stage.value, stage.value)
        self.stage = stage


async def run_refresh(
    config: AppConfig | None = None,
    session_factory: async_sessionmaker[AsyncSession] | None = None,
    recompute: RecomputeFn | None = None,
) -> RefreshRun:
    """Run a refresh with clients built from ambient configuration.

    Args:
        config: Application config (defaults to get_config())
        session_factory: Session factory (defaults to the global one)
        recompute: Pricing recompute implementation override

    Returns:
        RefreshRun summary

    Raises:
        ValueError: If BEA_API_KEY is not configured
        RefreshError: Any pipeline failure, after rollback
    """
    config = config or get_config()
    sources = config.sources

    async with BEAClient(
        api_key=sources.bea_api_key,
        base_url=sources.bea_base_url,
        timeout=sources.http_timeout_seconds,
    ) as bea_client, BLSClient(
        base_url=sources.bls_base_url,
        api_key=sources.bls_api_key,
        timeout=sources.http_timeout_seconds,
    ) as bls_client:
        orchestrator = RefreshOrchestrator(
            session_factory or get_session_factory(),
            bls_client,
            bea_client,
            config.refresh,
            recompute,
        )
        return await orchestrator.run()
