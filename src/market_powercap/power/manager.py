"""This module implements the power manager, the control loop of a compute node.

The `PowerManager` ties the other components together:

- At startup it loads the market data of the day and, on a node seen for the
  first time, records the maximum RAPL power as the node ceiling.
- While running, an APScheduler `AsyncIOScheduler` triggers a power cap
  adjustment every stabilisation interval and a market data refresh on the
  `DATA_REFRESH_CRON` schedule, every day at midnight by default.
- On shutdown, the scheduler is paused and an adjustment already in progress
  is allowed to complete before the scheduler is stopped.

Adjustments and refreshes all run on one asyncio event loop. Their blocking I/O
is sent to the loop's default executor, and a shared lock makes sure an
adjustment never overlaps another adjustment or the moment a refresh replaces
the cached dataset.
"""

import asyncio
from datetime import date, datetime
from enum import Enum
from typing import Callable, Dict, Optional

from apscheduler.schedulers.asyncio import AsyncIOScheduler
from apscheduler.triggers.cron import CronTrigger
from apscheduler.triggers.interval import IntervalTrigger

from market_powercap.config import Config
from market_powercap.datastore.calculator import (
    PowerCalculator,
    create_calculator,
    find_period,
    get_current_period,
)
from market_powercap.datastore.csv_store import CSVDataStore
from market_powercap.node.state import (
    CURRENT_LIMIT_KEY,
    LAST_UPDATE_KEY,
    MARKET_PERIOD_KEY,
    MARKET_PRICE_KEY,
    MARKET_VOLUME_KEY,
    MAX_POWER_KEY,
    PROVIDER_KEY,
    NodeStateSynchronizer,
)
from market_powercap.providers.factory import ProviderFactory
from market_powercap.rapl.manager import RaplManager
from market_powercap.util.exceptions import (
    ConfigError,
    ConflictError,
    DataUnavailableError,
    FetchError,
    NodeStateError,
)
from market_powercap.util.logging import LoggingUtil

logger = LoggingUtil.get_logger(__name__)

ADJUST_JOB_ID = "adjust-power-cap"
REFRESH_JOB_ID = "market-data-refresh"


class ManagerState(str, Enum):
    """Lifecycle states of the power manager."""

    UNINITIALIZED = "uninitialized"
    INITIALIZING = "initializing"
    RUNNING = "running"
    SHUTTING_DOWN = "shutting_down"


def clamp_power(target: int, floor: int, ceiling: int) -> int:
    """Bounds a target power to [floor, ceiling].

    Args:
        target: The calculated power in microwatts.
        floor: The configured minimum power.
        ceiling: The maximum power recorded for the node.

    Returns:
        `ceiling` if the target exceeds it, the target if it is above the floor,
        the floor otherwise.
    """
    if target > ceiling:
        return ceiling
    if target > floor:
        return target
    return floor


class PowerManager:
    """Periodically adjusts the RAPL power cap of the node to the calculated target."""

    def __init__(
        self,
        config: Config,
        rapl_manager: RaplManager,
        data_store: CSVDataStore,
        calculator: PowerCalculator,
        node_state: NodeStateSynchronizer,
        clock: Optional[Callable[[], datetime]] = None,
    ) -> None:
        """Initializes the power manager with its collaborators.

        Args:
            config: The application configuration.
            rapl_manager: The RAPL access layer, domains already discovered.
            data_store: The market data store bound to the configured provider.
            calculator: The power calculation strategy.
            node_state: The synchronizer of the node annotations.
            clock: Returns the current time in the market timezone. Defaults to
                   the wall clock in `config.timezone`.
        """
        self._config = config
        self._rapl = rapl_manager
        self._data_store = data_store
        self._calculator = calculator
        self._node_state = node_state
        self._clock = clock or (lambda: datetime.now(config.timezone))

        self.state = ManagerState.UNINITIALIZED
        self._cycle_lock = asyncio.Lock()
        self._stop_event: Optional[asyncio.Event] = None
        self._scheduler: Optional[AsyncIOScheduler] = None

    @classmethod
    def from_config(cls, config: Config) -> "PowerManager":
        """Builds the power manager and its components from the configuration.

        Raises:
            ConfigError: If the provider configuration or the cluster access is invalid.
            DiscoveryError: If no usable RAPL domain is found.
        """
        rapl_manager = RaplManager(config.rapl_base_path)
        domains = rapl_manager.discover_domains()
        logger.info("Discovered %d RAPL domains", len(domains))

        provider = ProviderFactory().create(config)
        data_store = CSVDataStore(provider, config.data_dir)
        node_state = NodeStateSynchronizer.from_in_cluster(config)

        return cls(
            config,
            rapl_manager,
            data_store,
            create_calculator(config),
            node_state,
        )

    @property
    def scheduler(self) -> Optional[AsyncIOScheduler]:
        return self._scheduler

    def initialize(self) -> None:
        """Loads the market data of the day and initializes the node once.

        A missing dataset is not fatal: the adjustments then apply the floor
        until data becomes available. On a node without the initialization
        marker, the maximum RAPL power is recorded as the node ceiling.

        Raises:
            ConfigError: If the configured floor exceeds the node ceiling.
            MaxPowerNotFoundError: If no RAPL constraint has a valid power value.
            NodeStateError: If the node annotations cannot be read or written.
        """
        self.state = ManagerState.INITIALIZING

        today = self._clock().date()
        try:
            data = self._data_store.load_data(today)
            logger.info(
                "Loaded %d market data points for %s (max volume %.1f)",
                len(data),
                today,
                self._data_store.get_max_volume(),
            )
        except DataUnavailableError as err:
            logger.warning("%s, the minimum power will be applied", err)

        if self._node_state.is_initialized():
            logger.info("Node already initialized, skipping initialization")
            try:
                self._check_floor(self._node_state.get_max_power())
            except NodeStateError as err:
                logger.warning("Cannot verify the node ceiling: %s", err)
            return

        max_power = self._rapl.find_max_power_value()
        self._check_floor(max_power)

        self._node_state.set(
            {
                MAX_POWER_KEY: str(max_power),
                CURRENT_LIMIT_KEY: str(max_power),
                PROVIDER_KEY: self._data_store.provider.get_name(),
            }
        )
        self._node_state.mark_initialized()
        logger.info("Node initialized with max power: %d µW", max_power)

    def adjust_power_cap(self) -> Optional[int]:
        """Runs one adjustment cycle.

        The node ceiling is read first, then the target is calculated, written
        to the RAPL constraints and finally recorded on the node, in that order.

        Returns:
            The applied power in microwatts, or None if the cycle was skipped
            because the node ceiling is unavailable.
        """
        now = self._clock()

        try:
            max_power = self._node_state.get_max_power()
        except NodeStateError as err:
            logger.error("Skipping power cap adjustment: %s", err)
            return None

        data, day_max_volume = self._data_store.get_snapshot()
        current_period = get_current_period(now)
        source_power = self._calculator.calculate_power(
            self._config.max_source, now, data, day_max_volume
        )
        if source_power == 0:
            logger.info(
                "No power target for period %s, using minimum power", current_period
            )
            source_power = self._config.rapl_min_power

        power = clamp_power(source_power, self._config.rapl_min_power, max_power)
        logger.info(
            "Power calculation: period=%s, source=%d µW, max=%d µW, min=%d µW, applied=%d µW",
            current_period,
            source_power,
            max_power,
            self._config.rapl_min_power,
            power,
        )

        errors = self._rapl.apply_power_limits(power)
        if errors:
            logger.error(
                "Errors applying power limits: %s", "; ".join(str(err) for err in errors)
            )

        annotations = self._build_annotations(power, now, current_period, data)
        try:
            self._node_state.set(annotations)
        except ConflictError as err:
            logger.warning("Node update rejected, retrying next cycle: %s", err)
        except NodeStateError as err:
            logger.error("Failed to record power cap on node: %s", err)

        return power

    async def run(self) -> None:
        """Runs the adjustment and refresh schedule until `stop` is called.

        One adjustment runs immediately, the next ones every stabilisation
        interval. The market data is refreshed on the configured crontab
        schedule, evaluated in the configured timezone.
        """
        self._stop_event = asyncio.Event()
        self.state = ManagerState.RUNNING
        logger.info("Starting power management cycle...")

        await self.run_adjustment()

        timezone = self._config.timezone
        scheduler = AsyncIOScheduler(
            timezone=timezone, event_loop=asyncio.get_running_loop()
        )
        scheduler.add_job(
            self.run_adjustment,
            IntervalTrigger(
                seconds=self._config.stabilisation_time.total_seconds(),
                timezone=timezone,
            ),
            id=ADJUST_JOB_ID,
            max_instances=1,
            coalesce=True,
        )
        scheduler.add_job(
            self.refresh_data,
            CronTrigger.from_crontab(self._config.data_refresh_cron, timezone=timezone),
            id=REFRESH_JOB_ID,
            max_instances=1,
            coalesce=True,
            misfire_grace_time=3600,
        )
        scheduler.start()
        self._scheduler = scheduler
        logger.info(
            "Next data refresh scheduled at %s",
            scheduler.get_job(REFRESH_JOB_ID).next_run_time,
        )

        try:
            await self._stop_event.wait()
        finally:
            self.state = ManagerState.SHUTTING_DOWN
            logger.info("Power manager shutting down...")
            # Pause first: shutdown cancels running jobs but not their executor threads
            scheduler.pause()
            async with self._cycle_lock:
                pass
            scheduler.shutdown(wait=False)
            logger.info("Power manager stopped")

    def stop(self) -> None:
        """Requests the end of `run`. No new cycle starts afterwards."""
        if self.state is ManagerState.RUNNING:
            self.state = ManagerState.SHUTTING_DOWN
        if self._stop_event is not None:
            self._stop_event.set()

    async def run_adjustment(self) -> None:
        """Runs `adjust_power_cap` off the event loop, one cycle at a time."""
        if self.state is not ManagerState.RUNNING:
            return

        async with self._cycle_lock:
            # Shutdown may have started while waiting for the lock
            if self.state is not ManagerState.RUNNING:
                return
            loop = asyncio.get_running_loop()
            try:
                await loop.run_in_executor(None, self.adjust_power_cap)
            except Exception as ex:
                logger.error("Failed to adjust power cap: %s", ex, exc_info=True)

    async def refresh_data(self, day: Optional[date] = None) -> bool:
        """Refreshes the market data, by default for the current day.

        The provider is called off the event loop; the new dataset replaces the
        cached one on the loop, between two adjustments. On failure the
        previous dataset stays in place.

        Returns:
            True if the dataset was refreshed.
        """
        day = day or self._clock().date()
        logger.info("Triggering market data refresh for %s", day)

        loop = asyncio.get_running_loop()
        try:
            data = await loop.run_in_executor(None, self._data_store.fetch_data, day)
        except FetchError as err:
            logger.error("Failed to refresh data for %s: %s", day, err)
            return False

        async with self._cycle_lock:
            try:
                self._data_store.save_data(day, data)
            except OSError as err:
                logger.error("Failed to save market data for %s: %s", day, err)
                return False

        logger.info(
            "Data refresh completed successfully (%d points, max volume %.1f)",
            len(data),
            self._data_store.get_max_volume(),
        )
        return True

    def _check_floor(self, max_power: int) -> None:
        if self._config.rapl_min_power > max_power:
            raise ConfigError(
                f"minimum power {self._config.rapl_min_power} µW exceeds "
                f"the node max power {max_power} µW"
            )

    def _build_annotations(
        self, power: int, now: datetime, current_period: str, data
    ) -> Dict[str, str]:
        annotations = {
            CURRENT_LIMIT_KEY: str(power),
            LAST_UPDATE_KEY: now.isoformat(timespec="seconds"),
            PROVIDER_KEY: self._data_store.provider.get_name(),
        }

        point = find_period(data, current_period)
        if point is not None:
            annotations[MARKET_PERIOD_KEY] = point.period
            annotations[MARKET_VOLUME_KEY] = f"{point.volume:.1f}"
            annotations[MARKET_PRICE_KEY] = f"{point.price:.2f}"

        return annotations
