"""
The `node` module persists the controller state as annotations of the
Kubernetes Node object.

- [`state.py`](src/market_powercap/node/state.py): the `NodeStateSynchronizer`
  class and the annotation keys, split between actuation keys (current limit,
  maximum power, last update, provider, market context) and the lifecycle
  initialization marker.
"""

from market_powercap.node.state import NodeStateSynchronizer

__all__ = ["NodeStateSynchronizer"]
