from dataclasses import dataclass, field
from pathlib import Path
from typing import Tuple

POWER_LIMIT_SUFFIX = "_power_limit_uw"
MAX_POWER_SUFFIX = "_max_power_uw"
CONSTRAINT_PREFIX = "constraint_"
DOMAIN_PREFIX = "intel-rapl:"


@dataclass(frozen=True)
class PowerConstraint:
    """A single RAPL power constraint file.

    Attributes:
        id: The constraint number (0, 1, ...) taken from the file name.
        path: Full path to the constraint file.
        value: The raw content read at discovery, "0" when it could not be read.
    """

    id: int
    path: Path
    value: str


@dataclass(frozen=True)
class PowerDomain:
    """A RAPL domain (e.g. "intel-rapl:0") and the constraints it exposes.

    `constraints` holds the writable current limits (`constraint_<n>_power_limit_uw`),
    `max_constraints` the read-only capacities (`constraint_<n>_max_power_uw`).
    """

    id: str
    path: Path
    constraints: Tuple[PowerConstraint, ...] = field(default_factory=tuple)
    max_constraints: Tuple[PowerConstraint, ...] = field(default_factory=tuple)

    @property
    def all_constraints(self) -> Tuple[PowerConstraint, ...]:
        return self.constraints + self.max_constraints
