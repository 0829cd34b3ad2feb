"""
The `power` module hosts the control loop of the node.

- [`manager.py`](src/market_powercap/power/manager.py): the `PowerManager`
  class, which initializes the node, schedules the periodic power cap
  adjustments and the daily market data refresh, and shuts them down
  cooperatively.
"""

from market_powercap.power.manager import ManagerState, PowerManager, clamp_power

__all__ = ["ManagerState", "PowerManager", "clamp_power"]
