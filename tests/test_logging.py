"""Tests for logging setup."""

import logging

import pytest

from deployer.logging import (
    TRACE,
    configure_logging,
    get_logger,
    log_performance,
    resolve_level,
)


@pytest.fixture(autouse=True)
def restore_root_logger():
    root = logging.getLogger()
    handlers, level = list(root.handlers), root.level
    yield
    for handler in list(root.handlers):
        root.removeHandler(handler)
    for handler in handlers:
        root.addHandler(handler)
    root.setLevel(level)


class TestResolveLevel:

    @pytest.mark.parametrize(
        "verbose,expected",
        [(0, logging.WARNING), (1, logging.INFO), (2, logging.DEBUG), (3, TRACE), (9, TRACE)],
    )
    def test_verbosity(self, verbose, expected):
        assert resolve_level(verbose) == expected

    def test_name_wins_over_verbosity(self):
        assert resolve_level(3, "error") == logging.ERROR
        assert resolve_level(0, "TRACE") == TRACE

    def test_unknown_name(self):
        with pytest.raises(ValueError, match="Invalid log level: loud"):
            resolve_level(name="loud")


class TestConfigureLogging:
    """Tests for configure_logging."""

    def test_console_level(self):
        configure_logging(level=logging.INFO)

        assert logging.root.level == logging.INFO
        assert logging.root.handlers[0].level == logging.INFO

    def test_library_loggers(self):
        """Test SSH and HTTP library chatter only shows at TRACE."""
        configure_logging(level=logging.DEBUG)
        assert logging.getLogger("asyncssh").level == logging.WARNING
        assert logging.getLogger("botocore").level == logging.WARNING

        configure_logging(level=TRACE)
        assert logging.getLogger("asyncssh").level == logging.DEBUG

    def test_log_file_keeps_debug(self, tmp_path):
        """Test the file records DEBUG even when the console is quiet."""
        log_file = tmp_path / "logs" / "deployer.log"
        configure_logging(level=logging.WARNING, log_file=log_file)

        logging.getLogger("deployer.test").debug("only in the file")
        for handler in logging.root.handlers:
            handler.flush()

        assert logging.root.level == logging.DEBUG
        assert logging.root.handlers[0].level == logging.WARNING
        assert "only in the file" in log_file.read_text()

    def test_reconfigure_replaces_handlers(self):
        configure_logging()
        configure_logging()
        assert len(logging.root.handlers) == 1


class TestLogPerformance:
    """Tests for log_performance."""

    def test_success(self, caplog):
        caplog.set_level(logging.INFO)

        with log_performance(logging.getLogger("test.perf"), "Playbook server-info", server="web1"):
            pass

        assert "Playbook server-info completed in" in caplog.text
        assert "(server=web1)" in caplog.text

    def test_failure(self, caplog):
        """Test a raising block is logged as failed and the error propagates."""
        caplog.set_level(logging.INFO)

        with pytest.raises(RuntimeError):
            with log_performance(logging.getLogger("test.perf"), "Playbook php-install"):
                raise RuntimeError("boom")

        assert "Playbook php-install failed after" in caplog.text
        assert "completed" not in caplog.text


class TestStructuredLogger:
    """Tests for StructuredLogger."""

    def test_context_appended(self, caplog):
        caplog.set_level(logging.INFO)

        get_logger("test.structured", server="web1").info("Gathering facts", playbook="server-info")

        assert "Gathering facts (server=web1, playbook=server-info)" in caplog.text

    def test_bind_returns_new_logger(self, caplog):
        caplog.set_level(logging.DEBUG)
        base = get_logger("test.structured.bind")
        bound = base.bind(server="web1")

        bound.debug("one")
        base.warning("two")

        messages = [record.getMessage() for record in caplog.records]
        assert messages == ["one (server=web1)", "two"]

    def test_disabled_level(self, caplog):
        caplog.set_level(logging.WARNING)

        get_logger("test.structured.quiet").debug("hidden")

        assert caplog.records == []
