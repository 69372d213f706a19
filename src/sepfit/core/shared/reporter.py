"""Progress and status reporting abstraction.

The engine reports what it is doing through the :class:`Reporter` protocol so
that the numerical core never depends on a specific output channel.

Design Pattern: Protocol-based dependency injection
    - Reporter protocol defines the contract
    - NullReporter provides silent operation for tests and batch runs
    - LoggingReporter uses Python's logging module
    - CompositeReporter fans messages out to several reporters
"""

from __future__ import annotations

import logging
from typing import Protocol, runtime_checkable


@runtime_checkable
class Reporter(Protocol):
    """Protocol for progress and status reporting.

    All methods take plain strings to avoid coupling to any output format.
    """

    def action(self, message: str) -> None:
        """Report an action being performed (e.g. 'Multi-start run 2/5')."""
        ...

    def info(self, message: str) -> None:
        """Report an informational message."""
        ...

    def warning(self, message: str) -> None:
        """Report a non-fatal issue, such as a diverged multi-start run."""
        ...

    def error(self, message: str) -> None:
        """Report an error that does not stop execution."""
        ...

    def success(self, message: str) -> None:
        """Report successful completion."""
        ...


class NullReporter:
    """Silent reporter that discards all messages.

    Example:
        >>> reporter = NullReporter()
        >>> reporter.action("Fitting...")  # No output
    """

    def action(self, message: str) -> None:
        pass

    def info(self, message: str) -> None:
        pass

    def warning(self, message: str) -> None:
        pass

    def error(self, message: str) -> None:
        pass

    def success(self, message: str) -> None:
        pass


class LoggingReporter:
    """Reporter that writes to Python logging.

    Maps reporter methods to logging levels.

    Example:
        >>> reporter = LoggingReporter("sepfit.fitting")
        >>> reporter.action("Multi-start run 1/4")  # INFO level
        >>> reporter.warning("Run 3 diverged")  # WARNING level
    """

    def __init__(self, logger_name: str = "sepfit") -> None:
        """Initialize with a logger name.

        Args:
            logger_name: Name for the logger (default: 'sepfit')
        """
        self._logger = logging.getLogger(logger_name)

    def action(self, message: str) -> None:
        """Log action at INFO level with prefix."""
        self._logger.info("[ACTION] %s", message)

    def info(self, message: str) -> None:
        """Log info at INFO level."""
        self._logger.info(message)

    def warning(self, message: str) -> None:
        """Log warning at WARNING level."""
        self._logger.warning(message)

    def error(self, message: str) -> None:
        """Log error at ERROR level."""
        self._logger.error(message)

    def success(self, message: str) -> None:
        """Log success at INFO level with prefix."""
        self._logger.info("[SUCCESS] %s", message)


class CompositeReporter:
    """Reporter that delegates to multiple reporters."""

    def __init__(self, reporters: list[Reporter]) -> None:
        self._reporters = reporters

    def action(self, message: str) -> None:
        for reporter in self._reporters:
            reporter.action(message)

    def info(self, message: str) -> None:
        for reporter in self._reporters:
            reporter.info(message)

    def warning(self, message: str) -> None:
        for reporter in self._reporters:
            reporter.warning(message)

    def error(self, message: str) -> None:
        for reporter in self._reporters:
            reporter.error(message)

    def success(self, message: str) -> None:
        for reporter in self._reporters:
            reporter.success(message)
