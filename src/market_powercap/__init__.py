"""
The `market_powercap` package implements a node-resident controller that caps
the power of a compute node according to an external signal, either the
electricity market volume of the current quarter-hour or a deterministic daily
power curve.

On each node, the controller periodically computes a target power, bounds it
between a configured floor and the highest power advertised by the hardware,
writes it to the Intel RAPL power limit files and records the result as
annotations of the Kubernetes Node object. One instance runs per node and
instances do not coordinate with each other.

Sub-packages:
-------------
- `rapl`:
  Discovers the RAPL power domains of the node and reads or writes their
  power constraints. It is the only code that modifies hardware state.

- `providers`:
  Market data providers (EPEX SPOT results, a synthetic profile, a static
  dataset) behind a common interface, and the factory that selects one from
  the configuration.

- `datastore`:
  The CSV-backed cache of the day's market data, with its fallback to the
  previous day, and the power calculation strategies.

- `node`:
  Synchronizes the controller state with the Node annotations through the
  Kubernetes API.

- `power`:
  The `PowerManager` control loop: initialization, periodic adjustments,
  midnight data refresh and cooperative shutdown.

- `util`:
  Centralized logging and the exception hierarchy.
"""
