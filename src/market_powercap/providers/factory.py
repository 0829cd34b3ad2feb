"""This module selects and builds the market data provider named in the configuration.

The catalogue of supported providers and their requirements lives in
`providers.yaml`, shipped beside this module.
"""

from pathlib import Path
from typing import Any, Dict, List

import yaml

from market_powercap.config import Config
from market_powercap.providers.base import MarketDataProvider
from market_powercap.providers.epex import EPEXProvider
from market_powercap.providers.mock import MockProvider
from market_powercap.providers.static import StaticProvider
from market_powercap.util.exceptions import ConfigError
from market_powercap.util.logging import LoggingUtil

logger = LoggingUtil.get_logger(__name__)

CATALOGUE_PATH = Path(__file__).parent / "providers.yaml"


class ProviderFactory:
    """Creates market data providers based on configuration."""

    def __init__(self, catalogue_path: Path = CATALOGUE_PATH) -> None:
        with open(catalogue_path, "r") as file:
            self._catalogue: Dict[str, Dict[str, Any]] = yaml.safe_load(file)

    def supported_providers(self) -> List[str]:
        """Returns the names accepted for DATA_PROVIDER."""
        return list(self._catalogue)

    def validate(self, config: Config) -> None:
        """Checks that the configured provider exists and has what it needs.

        Args:
            config: The application configuration.

        Raises:
            ConfigError: If the provider is unknown, or lacks its URL or a
                         required parameter.
        """
        provider_type = config.data_provider.lower()
        requirements = self._catalogue.get(provider_type)
        if requirements is None:
            raise ConfigError(
                f"unsupported provider type: {config.data_provider}. "
                f"Supported types: {', '.join(self.supported_providers())}"
            )

        if requirements.get("requires_url") and not config.provider_url:
            raise ConfigError(f"{provider_type} provider requires a valid URL")

        for param in requirements.get("required_params") or []:
            if param not in config.provider_params:
                raise ConfigError(
                    f"{provider_type} provider missing required parameter: {param}"
                )

    def create(self, config: Config) -> MarketDataProvider:
        """Validates the configuration and builds the matching provider.

        Args:
            config: The application configuration.

        Returns:
            The configured provider.

        Raises:
            ConfigError: If the provider configuration is invalid.
        """
        self.validate(config)

        provider_type = config.data_provider.lower()
        if provider_type == "epex":
            provider: MarketDataProvider = EPEXProvider(
                config.provider_url, config.provider_params
            )
        elif provider_type == "mock":
            provider = MockProvider()
        elif provider_type == "static":
            provider = StaticProvider()
        else:
            raise ConfigError(f"no implementation for provider type: {provider_type}")

        logger.info("Configured data provider: %s", provider.get_name())
        return provider
