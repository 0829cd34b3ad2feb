"""This module implements the access layer to the Intel RAPL power capping interface.

It defines the `RaplManager` class, the only component of the power manager
allowed to write hardware state. It discovers the RAPL domains exposed under the
powercap sysfs tree, determines the highest power value they advertise, and fans
a power limit out to every writable constraint file.
"""

from pathlib import Path
from typing import List, Optional

from market_powercap.rapl.domain import (
    CONSTRAINT_PREFIX,
    DOMAIN_PREFIX,
    MAX_POWER_SUFFIX,
    POWER_LIMIT_SUFFIX,
    PowerConstraint,
    PowerDomain,
)
from market_powercap.util.exceptions import (
    DiscoveryError,
    MaxPowerNotFoundError,
    PowerLimitWriteError,
)
from market_powercap.util.logging import LoggingUtil

logger = LoggingUtil.get_logger(__name__)


class RaplManager:
    """Discovers RAPL domains and reads or writes their power constraints.

    The discovered domains are a snapshot taken once at startup; the values they
    hold are the ones read at discovery time, while `apply_power_limits` writes
    straight to the constraint files.
    """

    def __init__(self, base_path: Path) -> None:
        """Initializes the manager for a powercap tree.

        Args:
            base_path: The RAPL root, usually /sys/devices/virtual/powercap/intel-rapl.
        """
        self._base_path = Path(base_path)
        self._domains: List[PowerDomain] = []

    def discover_domains(self) -> List[PowerDomain]:
        """Finds all RAPL domains and their constraints.

        Only the direct constraint files of each `intel-rapl:*` directory are
        considered. A constraint file that cannot be read is recorded with a
        value of "0" instead of failing the discovery, and domains without any
        constraint are left out.

        Returns:
            The discovered domains, sorted by identifier.

        Raises:
            DiscoveryError: If the base path cannot be listed or no domain with
                            constraints is found.
        """
        logger.info("Discovering RAPL domains in %s", self._base_path)

        try:
            entries = sorted(self._base_path.iterdir())
        except OSError as err:
            raise DiscoveryError(
                f"failed to read RAPL base path {self._base_path}: {err}"
            ) from err

        domains = []
        for entry in entries:
            if not entry.is_dir() or not entry.name.startswith(DOMAIN_PREFIX):
                logger.debug("Skipping non-RAPL entry: %s", entry.name)
                continue

            try:
                domain = self._discover_domain(entry)
            except OSError as err:
                raise DiscoveryError(
                    f"failed to read domain directory {entry}: {err}"
                ) from err

            if domain is None:
                logger.debug("Skipped domain %s (no constraints found)", entry.name)
                continue

            logger.info(
                "Domain %s: %d power constraints, %d max constraints",
                domain.id,
                len(domain.constraints),
                len(domain.max_constraints),
            )
            domains.append(domain)

        if not domains:
            raise DiscoveryError(f"no RAPL domain with constraints in {self._base_path}")

        self._domains = domains
        logger.info("Domain discovery completed: found %d RAPL domains", len(domains))
        return domains

    def get_domains(self) -> List[PowerDomain]:
        """Returns the domains found by the last discovery."""
        return list(self._domains)

    def find_max_power_value(self) -> int:
        """Finds the highest valid power value across all discovered constraints.

        Both current limits and max power capacities are scanned. Values that are
        not integers are ignored.

        Returns:
            The maximum power in microwatts.

        Raises:
            MaxPowerNotFoundError: If no constraint holds a positive integer.
        """
        max_power = 0
        max_power_source = None

        for domain in self._domains:
            for constraint in domain.all_constraints:
                try:
                    value = int(constraint.value)
                except ValueError:
                    logger.warning(
                        "Invalid constraint value '%s' at %s",
                        constraint.value,
                        constraint.path,
                    )
                    continue

                if value > max_power:
                    max_power = value
                    max_power_source = constraint.path

        if max_power <= 0:
            raise MaxPowerNotFoundError("no valid max power values found")

        logger.info(
            "Maximum power value determined: %d µW (%.1f W) from %s",
            max_power,
            max_power / 1_000_000,
            max_power_source,
        )
        return max_power

    def apply_power_limits(self, power: int) -> List[PowerLimitWriteError]:
        """Writes a power limit to every `power_limit_uw` file of every domain.

        A failed write does not stop the remaining ones.

        Args:
            power: The power limit in microwatts.

        Returns:
            One error per constraint file that could not be written.
        """
        errors = []
        for domain in self._domains:
            for constraint in domain.constraints:
                try:
                    constraint.path.write_text(str(int(power)))
                except OSError as err:
                    errors.append(PowerLimitWriteError(constraint.path, err))
        return errors

    def _discover_domain(self, domain_path: Path) -> Optional[PowerDomain]:
        constraints = []
        max_constraints = []

        for entry in sorted(domain_path.iterdir()):
            name = entry.name
            if not name.startswith(CONSTRAINT_PREFIX) or entry.is_dir():
                continue

            if name.endswith(POWER_LIMIT_SUFFIX):
                target = constraints
            elif name.endswith(MAX_POWER_SUFFIX):
                target = max_constraints
            else:
                continue

            try:
                constraint_id = int(name.split("_")[1])
            except (IndexError, ValueError):
                logger.warning("Invalid constraint number in %s", name)
                continue

            target.append(
                PowerConstraint(id=constraint_id, path=entry, value=_read_value(entry))
            )

        if not constraints and not max_constraints:
            return None

        return PowerDomain(
            id=domain_path.name,
            path=domain_path,
            constraints=tuple(constraints),
            max_constraints=tuple(max_constraints),
        )


def _read_value(path: Path) -> str:
    try:
        return path.read_text().strip()
    except OSError as err:
        logger.warning("Failed to read power value at %s: %s", path, err)
        return "0"
