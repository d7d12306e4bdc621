"""Main pipeline orchestrator for Token Scanner.

This module provides the Pipeline class that wires together the gateway,
scoring engine, alert state machine, portfolio aggregator and monitors, and
runs their periodic sweeps until stopped.
"""

from __future__ import annotations

import asyncio
import contextlib
import logging
from collections.abc import Awaitable, Callable
from dataclasses import dataclass, field
from datetime import UTC, datetime, timedelta
from enum import Enum
from typing import TYPE_CHECKING

from redis.asyncio import Redis

from token_scanner.alerter.channels.discord import DiscordChannel
from token_scanner.alerter.channels.telegram import TelegramChannel
from token_scanner.alerter.dispatcher import AlertChannel, AlertDispatcher
from token_scanner.alerter.formatter import AlertFormatter
from token_scanner.alerts.machine import AlertStateMachine
from token_scanner.alerts.state import ActiveAlertSet
from token_scanner.config import Settings, get_settings
from token_scanner.gateway.gateway import DataGateway
from token_scanner.monitor.filters import FilterManager
from token_scanner.monitor.launch import LaunchMonitor, SeenTokenSet
from token_scanner.monitor.recommend import RecommendationEngine
from token_scanner.monitor.scanner import TokenScanner
from token_scanner.monitor.strategy import StrategyAdvisor
from token_scanner.monitor.takeover import CommunityTakeoverScanner
from token_scanner.monitor.trades import TradeMonitor
from token_scanner.monitor.wallets import WalletTracker
from token_scanner.portfolio.aggregator import PortfolioAggregator
from token_scanner.scoring.deployer import DeployerProfiler
from token_scanner.scoring.engine import ScoringEngine
from token_scanner.storage.database import DatabaseManager

if TYPE_CHECKING:
    from typing import Any

logger = logging.getLogger(__name__)

FILTERS_KEY_PREFIX = "filters:"
LAUNCH_DEDUP_KEY_PREFIX = "scanner:launch:"


class PipelineState(str, Enum):
    """Pipeline lifecycle states."""

    STOPPED = "stopped"
    STARTING = "starting"
    RUNNING = "running"
    STOPPING = "stopping"
    ERROR = "error"


@dataclass
class PipelineStats:
    """Statistics for the pipeline."""

    started_at: datetime | None = None
    sweeps_run: dict[str, int] = field(default_factory=dict)
    errors: int = 0
    last_sweep_time: datetime | None = None
    last_error: str | None = None


class Pipeline:
    """Main pipeline orchestrator for Token Scanner.

    Each sweep runs in its own task on its own interval; sweeps are not
    serialized against each other.

    Sweeps:
        launches, alerts, alert expiry, portfolios, trades, takeovers, wallets

    Example:
        ```python
        from token_scanner.config import get_settings
        from token_scanner.pipeline import Pipeline

        settings = get_settings()
        pipeline = Pipeline(settings)

        await pipeline.start()
        # Pipeline runs until stop() is called
        await pipeline.stop()
        ```
    """

    def __init__(
        self,
        settings: Settings | None = None,
        *,
        dry_run: bool | None = None,
    ) -> None:
        """Initialize the pipeline.

        Args:
            settings: Application settings. If not provided, uses get_settings().
            dry_run: If True, log notifications instead of sending them.
                Overrides settings.dry_run.
        """
        self._settings = settings or get_settings()
        self._dry_run = dry_run if dry_run is not None else self._settings.dry_run

        self._state = PipelineState.STOPPED
        self._stats = PipelineStats()

        # Process-scoped state shared by the sweeps
        self._active_alerts = ActiveAlertSet()
        self._seen_tokens = SeenTokenSet()

        # Components (initialized in start())
        self._redis: Redis | None = None
        self._db_manager: DatabaseManager | None = None
        self._gateway: DataGateway | None = None
        self._alert_dispatcher: AlertDispatcher | None = None
        self._profiler: DeployerProfiler | None = None
        self._scoring_engine: ScoringEngine | None = None
        self._token_scanner: TokenScanner | None = None
        self._filter_manager: FilterManager | None = None
        self._alert_machine: AlertStateMachine | None = None
        self._portfolio: PortfolioAggregator | None = None
        self._launch_monitor: LaunchMonitor | None = None
        self._recommendations: RecommendationEngine | None = None
        self._strategy: StrategyAdvisor | None = None
        self._trade_monitor: TradeMonitor | None = None
        self._takeover_scanner: CommunityTakeoverScanner | None = None
        self._wallet_tracker: WalletTracker | None = None

        # Synchronization
        self._stop_event: asyncio.Event | None = None
        self._sweep_tasks: list[asyncio.Task[None]] = []

    @property
    def state(self) -> PipelineState:
        """Current pipeline state."""
        return self._state

    @property
    def stats(self) -> PipelineStats:
        """Current pipeline statistics."""
        return self._stats

    @property
    def is_running(self) -> bool:
        """Check if pipeline is running."""
        return self._state == PipelineState.RUNNING

    @property
    def alerts(self) -> AlertStateMachine | None:
        return self._alert_machine

    @property
    def portfolio(self) -> PortfolioAggregator | None:
        return self._portfolio

    @property
    def recommendations(self) -> RecommendationEngine | None:
        return self._recommendations

    @property
    def strategy(self) -> StrategyAdvisor | None:
        return self._strategy

    @property
    def tokens(self) -> TokenScanner | None:
        return self._token_scanner

    @property
    def wallets(self) -> WalletTracker | None:
        return self._wallet_tracker

    @property
    def filters(self) -> FilterManager | None:
        return self._filter_manager

    async def start(self) -> None:
        """Start the pipeline.

        Connects to Redis and the database, builds every component and
        starts the sweep tasks.

        Raises:
            RuntimeError: If pipeline is already running.
            Exception: If Redis or the database is unreachable, or any
                component fails to initialize.
        """
        if self._state != PipelineState.STOPPED:
            raise RuntimeError(f"Cannot start pipeline in state {self._state}")

        self._state = PipelineState.STARTING
        self._stop_event = asyncio.Event()
        logger.info("Starting pipeline...")

        try:
            await self._initialize_components()
            await self._start_background_services()
            self._stats.started_at = datetime.now(UTC)
            self._state = PipelineState.RUNNING
            logger.info("Pipeline started successfully")
        except Exception as e:
            self._state = PipelineState.ERROR
            self._stats.last_error = str(e)
            logger.error("Failed to start pipeline: %s", e)
            await self._cleanup()
            raise

    async def stop(self) -> None:
        """Stop the pipeline gracefully.

        Stops all sweeps and cleans up resources.
        """
        if self._state == PipelineState.STOPPED:
            return

        self._state = PipelineState.STOPPING
        logger.info("Stopping pipeline...")

        if self._stop_event:
            self._stop_event.set()

        await self._stop_background_services()
        await self._cleanup()

        self._state = PipelineState.STOPPED
        logger.info("Pipeline stopped")

    async def _initialize_components(self) -> None:
        """Initialize all pipeline components."""
        settings = self._settings

        # Redis and the database are required; failures here abort startup.
        logger.debug("Initializing Redis connection...")
        self._redis = Redis.from_url(settings.redis.url)
        await self._redis.ping()

        logger.debug("Initializing database manager...")
        self._db_manager = DatabaseManager(settings.database.url)
        await self._db_manager.check_connection()

        logger.debug("Initializing data gateway...")
        self._gateway = DataGateway.from_settings(self._redis, settings.providers, settings.cache)

        logger.debug("Initializing alert dispatcher...")
        self._alert_dispatcher = AlertDispatcher(
            self._build_alert_channels(),
            formatter=AlertFormatter(),
            dry_run=self._dry_run,
        )

        logger.debug("Initializing scoring engine...")
        self._profiler = DeployerProfiler(self._db_manager, self._gateway)
        self._scoring_engine = ScoringEngine(self._gateway, deployer_lookup=self._profiler.lookup)
        self._token_scanner = TokenScanner(
            self._db_manager, self._gateway, self._scoring_engine, self._profiler
        )
        self._filter_manager = FilterManager(self._redis, key_prefix=FILTERS_KEY_PREFIX)

        sweeps = settings.sweeps
        logger.debug("Initializing alert state machine...")
        self._alert_machine = AlertStateMachine(
            self._db_manager,
            self._gateway,
            self._alert_dispatcher,
            active_set=self._active_alerts,
            epsilon=settings.scoring.alert_epsilon,
            max_concurrency=sweeps.max_concurrency,
            max_age=timedelta(hours=sweeps.alert_max_age_hours),
        )
        try:
            await self._alert_machine.load_active()
        except Exception as e:
            logger.warning("Failed to load active alerts: %s", e)

        logger.debug("Initializing portfolio aggregator...")
        self._portfolio = PortfolioAggregator.from_settings(
            self._db_manager,
            self._gateway,
            settings.portfolio,
            max_concurrency=sweeps.max_concurrency,
        )

        logger.debug("Initializing monitors...")
        self._launch_monitor = LaunchMonitor(
            self._gateway,
            self._token_scanner,
            self._scoring_engine,
            self._alert_dispatcher,
            self._redis,
            seen=self._seen_tokens,
            notable_threshold=settings.scoring.launch_notable_threshold,
            dedup_window_seconds=settings.scoring.launch_dedup_window_seconds,
            key_prefix=LAUNCH_DEDUP_KEY_PREFIX,
            max_concurrency=sweeps.max_concurrency,
        )
        self._recommendations = RecommendationEngine(
            self._db_manager,
            self._scoring_engine,
            filters=self._filter_manager,
            limit=settings.scoring.recommendation_limit,
            min_holders=settings.scoring.recommendation_min_holders,
            lookback_hours=settings.scoring.recommendation_lookback_hours,
            max_concurrency=sweeps.max_concurrency,
        )
        self._strategy = StrategyAdvisor(
            self._scoring_engine,
            self._gateway,
            self._token_scanner,
            buy_threshold=settings.scoring.strategy_buy_threshold,
            sell_threshold=settings.scoring.strategy_sell_threshold,
        )
        self._trade_monitor = TradeMonitor(
            self._gateway,
            self._alert_dispatcher,
            volume_low=settings.trades.volume_low,
            volume_medium=settings.trades.volume_medium,
            volume_high=settings.trades.volume_high,
            price_impact_pct=settings.trades.price_impact_pct,
            liquidity_fraction=settings.trades.liquidity_fraction,
            max_concurrency=sweeps.max_concurrency,
        )
        self._takeover_scanner = CommunityTakeoverScanner(
            self._gateway,
            self._db_manager,
            self._alert_dispatcher,
        )
        self._wallet_tracker = WalletTracker(
            self._db_manager,
            self._gateway,
            max_concurrency=sweeps.max_concurrency,
        )

        logger.info("All components initialized")

    def _build_alert_channels(self) -> list[AlertChannel]:
        """Build list of enabled alert channels."""
        channels: list[AlertChannel] = []
        settings = self._settings

        if settings.discord.enabled and settings.discord.webhook_url:
            webhook_url = settings.discord.webhook_url.get_secret_value()
            channels.append(DiscordChannel(webhook_url))
            logger.info("Discord channel enabled")

        if settings.telegram.enabled:
            bot_token = settings.telegram.bot_token
            chat_id = settings.telegram.chat_id
            if bot_token and chat_id:
                channels.append(
                    TelegramChannel(
                        bot_token.get_secret_value(),
                        chat_id,
                    )
                )
                logger.info("Telegram channel enabled")

        if not channels:
            logger.warning("No alert channels configured")

        return channels

    def _sweep_schedule(self) -> list[tuple[str, float, Callable[[], Awaitable[Any]]]]:
        sweeps = self._settings.sweeps
        schedule: list[tuple[str, float, Callable[[], Awaitable[Any]]]] = []
        if self._launch_monitor:
            schedule.append(("launches", sweeps.launch_interval_seconds, self._launch_monitor.run_once))
        if self._alert_machine:
            schedule.append(("alerts", sweeps.alert_interval_seconds, self._alert_machine.check_alerts))
            schedule.append(
                ("alert-expiry", sweeps.alert_expiry_interval_seconds, self._alert_machine.expire_stale)
            )
        if self._portfolio:
            schedule.append(
                ("portfolios", sweeps.portfolio_interval_seconds, self._portfolio.update_all_portfolios)
            )
        if self._trade_monitor:
            schedule.append(("trades", sweeps.trade_interval_seconds, self._trade_monitor.run_once))
        if self._takeover_scanner:
            schedule.append(("takeovers", sweeps.takeover_interval_seconds, self._takeover_scanner.run_once))
        if self._wallet_tracker:
            schedule.append(
                ("wallets", sweeps.wallet_interval_seconds, self._wallet_tracker.refresh_tracked_wallets)
            )
        return schedule

    async def _start_background_services(self) -> None:
        """Start one task per sweep."""
        for name, interval, sweep in self._sweep_schedule():
            logger.debug("Starting %s sweep every %.1fs...", name, interval)
            self._sweep_tasks.append(
                asyncio.create_task(self._run_sweep_loop(name, interval, sweep), name=f"sweep-{name}")
            )

    async def _run_sweep_loop(
        self,
        name: str,
        interval: float,
        sweep: Callable[[], Awaitable[Any]],
    ) -> None:
        if not self._stop_event:
            return

        while not self._stop_event.is_set():
            try:
                try:
                    await asyncio.wait_for(self._stop_event.wait(), timeout=interval)
                    break
                except TimeoutError:
                    pass

                await sweep()
                self._stats.sweeps_run[name] = self._stats.sweeps_run.get(name, 0) + 1
                self._stats.last_sweep_time = datetime.now(UTC)
            except asyncio.CancelledError:
                break
            except Exception as e:
                self._stats.errors += 1
                self._stats.last_error = f"{name}: {e}"
                logger.warning("%s sweep error: %s", name.capitalize(), e)

    async def _stop_background_services(self) -> None:
        """Cancel the sweep tasks."""
        for task in self._sweep_tasks:
            task.cancel()
        for task in self._sweep_tasks:
            with contextlib.suppress(asyncio.CancelledError):
                await task
        self._sweep_tasks = []

    async def _cleanup(self) -> None:
        """Clean up resources."""
        if self._alert_dispatcher:
            await self._alert_dispatcher.close()
            self._alert_dispatcher = None

        if self._gateway:
            await self._gateway.close()
            self._gateway = None

        # Close database connections
        if self._db_manager:
            await self._db_manager.dispose_async()
            self._db_manager = None

        # Close Redis connection
        if self._redis:
            await self._redis.aclose()
            self._redis = None

        logger.debug("Resources cleaned up")

    async def run(self) -> None:
        """Start the pipeline and run until interrupted.

        This is a convenience method that starts the pipeline and
        blocks until a stop signal is received.

        Example:
            ```python
            pipeline = Pipeline()
            try:
                await pipeline.run()
            except KeyboardInterrupt:
                pass
            ```
        """
        await self.start()

        try:
            if self._stop_event:
                await self._stop_event.wait()
        except asyncio.CancelledError:
            pass
        finally:
            await self.stop()

    async def __aenter__(self) -> Pipeline:
        """Async context manager entry."""
        await self.start()
        return self

    async def __aexit__(self, *args: Any) -> None:
        """Async context manager exit."""
        await self.stop()
