"""This module defines the immutable startup configuration of the power manager.

The configuration is read once from the process environment by
`Config.from_env` and then passed to every component. No other module reads
the environment, so a running controller can only pick up a new setting
through a restart.
"""

import json
import os
from dataclasses import dataclass, field
from datetime import timedelta
from enum import Enum
from pathlib import Path
from typing import Dict, Mapping, Optional
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from apscheduler.triggers.cron import CronTrigger

from market_powercap.util.exceptions import ConfigError

# Environment variable names
ENV_NODE_NAME = "NODE_NAME"
ENV_MAX_SOURCE = "MAX_SOURCE"
ENV_STABILISATION_TIME = "STABILISATION_TIME"
ENV_ALPHA = "ALPHA"
ENV_PHASE_OFFSET = "PHASE_OFFSET"
ENV_RAPL_LIMIT = "RAPL_MIN_POWER"
ENV_POWER_STRATEGY = "POWER_STRATEGY"
ENV_DATA_PROVIDER = "DATA_PROVIDER"
ENV_PROVIDER_URL = "PROVIDER_URL"
ENV_PROVIDER_PARAMS = "PROVIDER_PARAMS"
ENV_DATA_DIR = "DATA_DIR"
ENV_TIMEZONE = "TIMEZONE"
ENV_RAPL_BASE_PATH = "RAPL_BASE_PATH"
ENV_LOG_LEVEL = "LOGLEVEL"
ENV_DATA_REFRESH_CRON = "DATA_REFRESH_CRON"

# Default values
DEFAULT_MAX_SOURCE = "40000000"
DEFAULT_STABILISATION_TIME = "300"
DEFAULT_ALPHA = "4"
DEFAULT_PHASE_OFFSET = "4"
DEFAULT_RAPL_LIMIT = "10000000"
DEFAULT_DATA_PROVIDER = "epex"
DEFAULT_PROVIDER_URL = "https://www.epexspot.com/en/market-results"
DEFAULT_PROVIDER_PARAMS = (
    '{"market_area": "FR", "auction": "IDA1", '
    '"modality": "Auction", "sub_modality": "Intraday"}'
)
DEFAULT_DATA_DIR = "/app/data/market"
DEFAULT_TIMEZONE = "Europe/Paris"
DEFAULT_RAPL_BASE_PATH = "/sys/devices/virtual/powercap/intel-rapl"
DEFAULT_LOG_LEVEL = "INFO"
DEFAULT_DATA_REFRESH_CRON = "0 0 * * *"


class PowerStrategy(str, Enum):
    """Supported power calculation strategies."""

    MARKET = "market"
    TIME_CURVE = "time_curve"


@dataclass(frozen=True)
class Config:
    """Immutable snapshot of the power manager settings.

    Power values are expressed in microwatts, as exposed by the RAPL files.
    """

    node_name: str
    max_source: float = float(DEFAULT_MAX_SOURCE)
    stabilisation_time: timedelta = timedelta(seconds=int(DEFAULT_STABILISATION_TIME))
    alpha: float = float(DEFAULT_ALPHA)
    phase_offset: float = float(DEFAULT_PHASE_OFFSET)
    rapl_min_power: int = int(DEFAULT_RAPL_LIMIT)
    power_strategy: PowerStrategy = PowerStrategy.MARKET
    data_provider: str = DEFAULT_DATA_PROVIDER
    provider_url: str = DEFAULT_PROVIDER_URL
    provider_params: Dict[str, str] = field(
        default_factory=lambda: json.loads(DEFAULT_PROVIDER_PARAMS)
    )
    data_dir: Path = Path(DEFAULT_DATA_DIR)
    timezone: ZoneInfo = ZoneInfo(DEFAULT_TIMEZONE)
    rapl_base_path: Path = Path(DEFAULT_RAPL_BASE_PATH)
    log_level: str = DEFAULT_LOG_LEVEL
    data_refresh_cron: str = DEFAULT_DATA_REFRESH_CRON

    @classmethod
    def from_env(cls, environ: Optional[Mapping[str, str]] = None) -> "Config":
        """Builds and validates the configuration from environment variables.

        Args:
            environ: The mapping to read from. Defaults to `os.environ`.

        Returns:
            A validated `Config` instance.

        Raises:
            ConfigError: If a required variable is missing or a value is invalid.
        """
        env = os.environ if environ is None else environ

        def get(key: str, default: str) -> str:
            value = env.get(key)
            return value if value else default

        node_name = env.get(ENV_NODE_NAME, "")
        if not node_name:
            raise ConfigError(f"{ENV_NODE_NAME} environment variable is not set")

        max_source = _parse_number(ENV_MAX_SOURCE, get(ENV_MAX_SOURCE, DEFAULT_MAX_SOURCE), float)
        alpha = _parse_number(ENV_ALPHA, get(ENV_ALPHA, DEFAULT_ALPHA), float)
        phase_offset = _parse_number(
            ENV_PHASE_OFFSET, get(ENV_PHASE_OFFSET, DEFAULT_PHASE_OFFSET), float
        )
        stabilisation_seconds = _parse_number(
            ENV_STABILISATION_TIME,
            get(ENV_STABILISATION_TIME, DEFAULT_STABILISATION_TIME),
            float,
        )
        rapl_min_power = _parse_number(
            ENV_RAPL_LIMIT, get(ENV_RAPL_LIMIT, DEFAULT_RAPL_LIMIT), int
        )

        if max_source <= 0:
            raise ConfigError(f"{ENV_MAX_SOURCE} must be positive, got {max_source}")
        if alpha <= 0:
            raise ConfigError(f"{ENV_ALPHA} must be positive, got {alpha}")
        if stabilisation_seconds <= 0:
            raise ConfigError(
                f"{ENV_STABILISATION_TIME} must be positive, got {stabilisation_seconds}"
            )
        if rapl_min_power < 0:
            raise ConfigError(f"{ENV_RAPL_LIMIT} must not be negative, got {rapl_min_power}")

        strategy_name = get(ENV_POWER_STRATEGY, PowerStrategy.MARKET.value).lower()
        try:
            power_strategy = PowerStrategy(strategy_name)
        except ValueError:
            supported = ", ".join(s.value for s in PowerStrategy)
            raise ConfigError(
                f"unknown power strategy: {strategy_name}. Supported strategies: {supported}"
            ) from None

        timezone_name = get(ENV_TIMEZONE, DEFAULT_TIMEZONE)
        try:
            timezone = ZoneInfo(timezone_name)
        except (ZoneInfoNotFoundError, ValueError) as err:
            raise ConfigError(f"invalid timezone {timezone_name!r}: {err}") from err

        data_refresh_cron = get(ENV_DATA_REFRESH_CRON, DEFAULT_DATA_REFRESH_CRON)
        try:
            CronTrigger.from_crontab(data_refresh_cron, timezone=timezone)
        except ValueError as err:
            raise ConfigError(
                f"invalid {ENV_DATA_REFRESH_CRON} expression {data_refresh_cron!r}: {err}"
            ) from err

        return cls(
            node_name=node_name,
            max_source=max_source,
            stabilisation_time=timedelta(seconds=stabilisation_seconds),
            alpha=alpha,
            phase_offset=phase_offset,
            rapl_min_power=rapl_min_power,
            power_strategy=power_strategy,
            data_provider=get(ENV_DATA_PROVIDER, DEFAULT_DATA_PROVIDER).lower(),
            provider_url=get(ENV_PROVIDER_URL, DEFAULT_PROVIDER_URL),
            provider_params=parse_provider_params(
                get(ENV_PROVIDER_PARAMS, DEFAULT_PROVIDER_PARAMS)
            ),
            data_dir=Path(get(ENV_DATA_DIR, DEFAULT_DATA_DIR)),
            timezone=timezone,
            rapl_base_path=Path(get(ENV_RAPL_BASE_PATH, DEFAULT_RAPL_BASE_PATH)),
            log_level=get(ENV_LOG_LEVEL, DEFAULT_LOG_LEVEL).upper(),
            data_refresh_cron=data_refresh_cron,
        )


def parse_provider_params(json_str: str) -> Dict[str, str]:
    """Parses the provider parameters from a JSON object string.

    Args:
        json_str: A JSON object, e.g. '{"market_area": "FR"}'.

    Returns:
        The parameters with every value converted to a string.

    Raises:
        ConfigError: If the string is not a JSON object.
    """
    try:
        params = json.loads(json_str)
    except json.JSONDecodeError as err:
        raise ConfigError(f"failed to parse provider params JSON: {err}") from err

    if not isinstance(params, dict):
        raise ConfigError("provider params must be a JSON object")

    return {str(key): str(value) for key, value in params.items()}


def _parse_number(name: str, raw: str, number_type: type):
    try:
        return number_type(raw)
    except ValueError:
        raise ConfigError(f"invalid {name} value: {raw!r}") from None
