"""Exception hierarchy of the power manager.

Startup errors (`ConfigError`, `DiscoveryError`) are fatal. All the others are
raised at component seams and handled by the controller, which logs them and
lets the next scheduled cycle act as the retry.
"""


class PowerManagerError(Exception):
    """Base class for every error raised by the power manager."""


class ConfigError(PowerManagerError):
    """Invalid or missing startup configuration."""


class DiscoveryError(PowerManagerError):
    """No usable RAPL domain could be discovered."""


class MaxPowerNotFoundError(PowerManagerError):
    """No discovered constraint holds a valid positive power value."""


class FetchError(PowerManagerError):
    """A market data provider failed to produce data for a day."""


class DataUnavailableError(PowerManagerError):
    """Neither the requested day nor the fallback day has usable market data."""


class NodeStateError(PowerManagerError):
    """Reading or writing the node annotations failed."""


class ConflictError(NodeStateError):
    """The API server rejected a node update because of a concurrent modification."""


class PowerLimitWriteError(PowerManagerError):
    """Writing a power limit to one constraint file failed.

    Attributes:
        path: The constraint file that could not be written.
    """

    def __init__(self, path, cause: Exception) -> None:
        super().__init__(f"{path}: {cause}")
        self.path = path
        self.cause = cause
