import logging
import pytest
from unittest.mock import MagicMock, patch, call

from rich.rule import Rule

from mini_arch.utils.exceptions import ShellCommandError
from mini_arch.utils.logger import (
    initialize_app_logger,
    AppLogger,
    RichAppLogger,
    ExecuteFilter,
    EXECUTE_LEVEL_NUM,
)

# --- Fixtures for Testing ---

@pytest.fixture(scope="function")
def cleanup_logging_state():
    """Fixture to reset the logging state before and after each test."""
    logging.setLoggerClass(AppLogger)

    for logger_name in list(logging.root.manager.loggerDict.keys()):
        logging.getLogger(logger_name).handlers = []

    yield

    for logger_name in list(logging.root.manager.loggerDict.keys()):
        logger = logging.getLogger(logger_name)
        for handler in logger.handlers:
            handler.close()
        logger.handlers = []


@pytest.fixture(scope="function")
def app_logger(tmp_path, cleanup_logging_state):
    """
    Initializes RichAppLogger with a temporary log directory and
    returns the wrapper instance and directory path.
    """
    log_dir = tmp_path / "logs"

    logger_wrapper = initialize_app_logger(
        app_name="TestApp",
        log_directory=str(log_dir),
        log_file_name="test.log",
        file_log_level=logging.DEBUG
    )

    yield logger_wrapper, log_dir


# --- Helper Functions ---

def get_file_content(log_dir, filename="test.log"):
    """Reads the content of the log file."""
    log_path = log_dir / filename
    if log_path.exists():
        return log_path.read_text(encoding="utf-8")
    return ""


# --- Tests ---

def test_initialization_and_configuration(app_logger):
    logger_wrapper, log_dir = app_logger

    assert isinstance(logger_wrapper, RichAppLogger)
    assert isinstance(logger_wrapper.logger, AppLogger)
    assert log_dir.is_dir()
    assert logger_wrapper.log_path == str(log_dir / "test.log")

    handlers = logger_wrapper.logger.handlers
    assert len(handlers) == 2
    assert any(isinstance(h, logging.FileHandler) for h in handlers)
    assert any("RichHandler" in h.__class__.__name__ for h in handlers)


def test_reinitialization_replaces_handlers(tmp_path, cleanup_logging_state):
    initialize_app_logger(app_name="Twice", log_directory=str(tmp_path))
    wrapper = initialize_app_logger(app_name="Twice", log_directory=str(tmp_path))

    assert len(wrapper.logger.handlers) == 2


def test_standard_logging_to_file(app_logger):
    logger_wrapper, log_dir = app_logger

    logger_wrapper.info("Standard information message.")
    logger_wrapper.error("An application error.")
    logger_wrapper.debug("Debug detail.")

    file_content = get_file_content(log_dir)
    assert "Standard information message." in file_content
    assert "An application error." in file_content
    assert "Debug detail." in file_content


def test_execute_filter_drops_execute_records():
    execute_filter = ExecuteFilter()
    execute_record = logging.LogRecord("x", EXECUTE_LEVEL_NUM, __file__, 1, "[RUNNING] step", None, None)
    info_record = logging.LogRecord("x", logging.INFO, __file__, 1, "hello", None, None)

    assert execute_filter.filter(execute_record) is False
    assert execute_filter.filter(info_record) is True


def test_execution_step_success(app_logger):
    logger_wrapper, log_dir = app_logger
    step_message = "Formatting /dev/sda1 as fat32"

    with patch.object(logger_wrapper.console, 'status') as mock_status, \
         patch.object(logger_wrapper.console, 'print') as mock_console_print:

        mock_status.return_value.__enter__.return_value = MagicMock()

        with logger_wrapper.execution_step(step_message):
            pass

        mock_console_print.assert_any_call(f"[green]✔ [COMPLETED][/green] {step_message}")

    file_content = get_file_content(log_dir)
    assert f"[RUNNING] {step_message}" in file_content
    assert f"[COMPLETED] {step_message}" in file_content
    assert "EXECUTE   - " in file_content
    mock_status.assert_called_once()


def test_execution_step_without_spinner(app_logger):
    logger_wrapper, log_dir = app_logger
    step_message = "Set password for root"

    with patch.object(logger_wrapper.console, 'status') as mock_status, \
         patch.object(logger_wrapper.console, 'print') as mock_console_print:

        with logger_wrapper.execution_step(step_message, spinner=False):
            pass

        mock_status.assert_not_called()
        mock_console_print.assert_any_call(f"[green]✔ [COMPLETED][/green] {step_message}")

    assert f"[COMPLETED] {step_message}" in get_file_content(log_dir)


def test_execution_step_failure(app_logger):
    """An unexpected exception is reported as FAILED with a rich traceback."""
    logger_wrapper, log_dir = app_logger
    step_message = "Running a task that fails"

    with patch.object(logger_wrapper.console, 'status') as mock_status, \
         patch.object(logger_wrapper.console, 'print') as mock_console_print, \
         patch.object(logger_wrapper.console, 'print_exception') as mock_print_exception:

        mock_status.return_value.__enter__.return_value = MagicMock()

        with pytest.raises(ValueError):
            with logger_wrapper.execution_step(step_message):
                raise ValueError("Something went wrong.")

        mock_console_print.assert_has_calls([
            call(f"[bold red]✘ [FAILED][/bold red] {step_message}"),
            call("\n[bold red]Traceback (most recent call last):[/bold red]"),
        ], any_order=True)
        mock_print_exception.assert_called_once_with(show_locals=True)

    file_content = get_file_content(log_dir)
    assert f"[RUNNING] {step_message}" in file_content
    assert f"[FAILED] {step_message}" in file_content
    assert "ValueError: Something went wrong." in file_content


def test_execution_step_command_failure_is_critical(app_logger):
    """A failed command is CRITICAL and does not print a traceback."""
    logger_wrapper, log_dir = app_logger
    step_message = "Wiping signatures on /dev/sda"

    with patch.object(logger_wrapper.console, 'status') as mock_status, \
         patch.object(logger_wrapper.console, 'print') as mock_console_print, \
         patch.object(logger_wrapper.console, 'print_exception') as mock_print_exception:

        mock_status.return_value.__enter__.return_value = MagicMock()

        with pytest.raises(ShellCommandError):
            with logger_wrapper.execution_step(step_message):
                raise ShellCommandError("wipefs -a /dev/sda", exit_code=1)

        mock_console_print.assert_any_call(f"[bold red]✘ [CRITICAL][/bold red] {step_message}")
        mock_print_exception.assert_not_called()

    assert f"[CRITICAL] {step_message}" in get_file_content(log_dir)


def test_exception_method(app_logger):
    logger_wrapper, log_dir = app_logger

    with patch.object(logger_wrapper.console, 'print') as mock_console_print, \
         patch.object(logger_wrapper.console, 'print_exception') as mock_print_exception:

        try:
            raise RuntimeError("External system failure")
        except RuntimeError:
            logger_wrapper.exception("Caught an unhandled error.")

        mock_console_print.assert_any_call("[bold red]FATAL ERROR: Caught an unhandled error.[/bold red]")
        mock_print_exception.assert_called_once_with(show_locals=True)

    file_content = get_file_content(log_dir)
    assert "ERROR" in file_content
    assert "Caught an unhandled error." in file_content


@pytest.fixture(scope="function")
def isolated_rich_logger(tmp_path, cleanup_logging_state):
    """
    Initializes RichAppLogger, but removes the RichHandler
    to ensure only custom TUI prints are captured.
    """
    log_dir = tmp_path / "logs"

    logger_wrapper = initialize_app_logger(
        app_name="IsolatedApp",
        log_directory=str(log_dir),
        log_file_name="isolated.log",
        file_log_level=logging.DEBUG
    )

    for handler in logger_wrapper.logger.handlers[:]:
        if "RichHandler" in handler.__class__.__name__:
            logger_wrapper.logger.removeHandler(handler)
            break

    yield logger_wrapper, log_dir


def test_section_logging(isolated_rich_logger):
    logger_wrapper, log_dir = isolated_rich_logger
    section_message = "[2/13] Partitioning /dev/sda..."

    with patch.object(logger_wrapper.console, 'print') as mock_console_print:
        logger_wrapper.section(section_message)

    file_content = get_file_content(log_dir, filename="isolated.log")
    assert f"SECTION: {section_message}" in file_content

    mock_console_print.assert_called_once()
    header = mock_console_print.call_args[0][0]
    assert isinstance(header, Rule)
    assert header.title == f"SECTION: {section_message}"
