"""This module provides a centralized utility for configuring and managing application logging.

It defines the `LoggingUtil` class, which offers a static method to retrieve
pre-configured logger instances. Every module of the power manager obtains its
logger through it, so that the node-level output of the controller (RAPL
discovery, market data refreshes, power cap adjustments) shares one format
and one level.
"""

import logging
import os


class LoggingUtil:
    """A utility class for configuring and retrieving loggers.

    The log level is read once from the 'LOGLEVEL' environment variable and can
    be overridden at startup with `set_level`, typically with the level held by
    the application configuration.
    """

    _level: str = os.getenv("LOGLEVEL", "INFO").upper()

    @classmethod
    def set_level(cls, level: str) -> None:
        """Sets the level used for every logger created from now on.

        Loggers already handed out are updated as well, so a level chosen by the
        configuration applies to module-level loggers created at import time.

        Args:
            level: A standard logging level name (e.g. "DEBUG", "INFO").
                   Invalid names fall back to INFO.
        """
        level = level.upper()
        if level not in logging._nameToLevel.keys():
            level = "INFO"
        cls._level = level

        for name in list(logging.Logger.manager.loggerDict):
            if name.startswith("market_powercap"):
                logging.getLogger(name).setLevel(level)

    @staticmethod
    def get_logger(logger_name: str) -> logging.Logger:
        """Retrieves a configured logger instance.

        If the configured level is invalid, it defaults to INFO.
        The logger outputs messages to the console with a standardized format.

        Args:
            logger_name: The name of the logger to retrieve (typically `__name__`
                         of the calling module).

        Returns:
            A configured `logging.Logger` instance.
        """
        logger = logging.getLogger(logger_name)
        log_level = LoggingUtil._level

        if log_level not in logging._nameToLevel.keys():
            log_level = logging.INFO

        logger.setLevel(log_level)

        log_formatter = logging.Formatter(
            "%(asctime)s - [%(name)s][%(levelname)s] %(message)s"
        )

        # Ensure that handlers are not duplicated if get_logger is called multiple times
        if not logger.handlers:
            console_handler = logging.StreamHandler()
            console_handler.setFormatter(log_formatter)
            logger.addHandler(console_handler)

        return logger
