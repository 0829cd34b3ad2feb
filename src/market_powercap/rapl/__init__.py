"""
The `rapl` module abstracts the Intel Running Average Power Limit (RAPL)
interface exposed by the Linux powercap framework.

- [`domain.py`](src/market_powercap/rapl/domain.py): immutable `PowerDomain`
  and `PowerConstraint` records describing what was discovered.

- [`manager.py`](src/market_powercap/rapl/manager.py): the `RaplManager` class,
  which discovers domains, finds the highest advertised power and applies
  power limits. It is the only writer of hardware state.
"""

from market_powercap.rapl.domain import PowerConstraint, PowerDomain
from market_powercap.rapl.manager import RaplManager

__all__ = ["PowerConstraint", "PowerDomain", "RaplManager"]
