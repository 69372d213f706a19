"""Tests for reporter abstraction."""

import logging
from io import StringIO

import pytest

from sepfit.core.shared.reporter import CompositeReporter, LoggingReporter, NullReporter, Reporter


class MockReporter:
    """Test double for capturing reporter calls."""

    def __init__(self) -> None:
        self.messages: list[tuple[str, str]] = []

    def action(self, message: str) -> None:
        self.messages.append(("action", message))

    def info(self, message: str) -> None:
        self.messages.append(("info", message))

    def warning(self, message: str) -> None:
        self.messages.append(("warning", message))

    def error(self, message: str) -> None:
        self.messages.append(("error", message))

    def success(self, message: str) -> None:
        self.messages.append(("success", message))


class TestReporterProtocol:
    """Tests for Reporter protocol compliance."""

    def test_null_reporter_satisfies_protocol(self) -> None:
        """NullReporter should satisfy the Reporter protocol."""
        assert isinstance(NullReporter(), Reporter)

    def test_logging_reporter_satisfies_protocol(self) -> None:
        """LoggingReporter should satisfy the Reporter protocol."""
        assert isinstance(LoggingReporter(), Reporter)

    def test_mock_reporter_satisfies_protocol(self) -> None:
        """MockReporter should satisfy the Reporter protocol."""
        assert isinstance(MockReporter(), Reporter)


class TestNullReporter:
    """Tests for NullReporter."""

    def test_null_reporter_methods_return_none(self) -> None:
        """NullReporter methods should return None."""
        reporter = NullReporter()
        assert reporter.action("test") is None
        assert reporter.info("test") is None
        assert reporter.warning("test") is None
        assert reporter.error("test") is None
        assert reporter.success("test") is None


class TestLoggingReporter:
    """Tests for LoggingReporter."""

    @pytest.fixture
    def log_capture(self):
        """Set up log capture on a dedicated logger."""
        logger = logging.getLogger("test_sepfit")
        logger.setLevel(logging.DEBUG)
        stream = StringIO()
        handler = logging.StreamHandler(stream)
        handler.setFormatter(logging.Formatter("%(levelname)s:%(message)s"))
        logger.addHandler(handler)
        yield stream
        logger.removeHandler(handler)

    def test_logging_reporter_action(self, log_capture: StringIO) -> None:
        """Actions are logged at INFO level with a prefix."""
        LoggingReporter("test_sepfit").action("Multi-start run 1/3")
        assert "INFO:[ACTION] Multi-start run 1/3" in log_capture.getvalue()

    def test_logging_reporter_warning(self, log_capture: StringIO) -> None:
        """Warnings are logged at WARNING level."""
        LoggingReporter("test_sepfit").warning("Run 2 diverged")
        assert "WARNING:Run 2 diverged" in log_capture.getvalue()

    def test_logging_reporter_error(self, log_capture: StringIO) -> None:
        """Errors are logged at ERROR level."""
        LoggingReporter("test_sepfit").error("an error")
        assert "ERROR:an error" in log_capture.getvalue()

    def test_logging_reporter_success(self, log_capture: StringIO) -> None:
        """Success is logged at INFO level with a prefix."""
        LoggingReporter("test_sepfit").success("completed")
        assert "INFO:[SUCCESS] completed" in log_capture.getvalue()

    def test_default_logger_name(self, caplog: pytest.LogCaptureFixture) -> None:
        """The default reporter writes to the 'sepfit' logger."""
        with caplog.at_level(logging.INFO, logger="sepfit"):
            LoggingReporter().info("hello")
        assert [record.name for record in caplog.records] == ["sepfit"]


class TestCompositeReporter:
    """Tests for CompositeReporter."""

    def test_composite_delegates_to_all(self) -> None:
        """CompositeReporter should delegate to all reporters."""
        mock1 = MockReporter()
        mock2 = MockReporter()
        composite = CompositeReporter([mock1, mock2])

        composite.action("test")
        composite.info("info")

        assert mock1.messages == [("action", "test"), ("info", "info")]
        assert mock1.messages == mock2.messages

    def test_composite_with_empty_list(self) -> None:
        """CompositeReporter should work with an empty reporter list."""
        composite = CompositeReporter([])
        composite.action("test")
        composite.warning("test")
        composite.success("test")

    def test_composite_with_mixed_reporters(self) -> None:
        """CompositeReporter should work with mixed reporter types."""
        mock = MockReporter()
        composite = CompositeReporter([mock, NullReporter()])

        composite.warning("warning message")

        assert mock.messages == [("warning", "warning message")]
