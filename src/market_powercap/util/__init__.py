"""
The `util` module provides general-purpose helpers shared by every other
sub-package of the power manager.

- [`logging.py`](src/market_powercap/util/logging.py): the `LoggingUtil` class,
  which hands out consistently formatted loggers whose level follows the
  'LOGLEVEL' setting.

- [`exceptions.py`](src/market_powercap/util/exceptions.py): the exception
  hierarchy, split between fatal startup errors and recoverable runtime errors.
"""
