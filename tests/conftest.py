import pytest
from unittest.mock import MagicMock

from mini_arch.config.models import InstallerConfig
from mini_arch.utils.executor import Executor
from mini_arch.utils.logger import RichAppLogger


@pytest.fixture
def mock_rich_logger():
    """Provides a fully-mocked RichAppLogger instance for dependency injection."""
    mock_logger = MagicMock(spec=RichAppLogger)

    # execution_step must behave as a context manager that does not swallow exceptions
    mock_context_manager = MagicMock()
    mock_context_manager.__enter__.return_value = None
    mock_context_manager.__exit__.return_value = None
    mock_logger.execution_step.return_value = mock_context_manager

    mock_logger.console = MagicMock()
    return mock_logger


@pytest.fixture
def executor(mock_rich_logger):
    """Provides an Executor instance with the mocked logger injected."""
    return Executor(logger_instance=mock_rich_logger, default_timeout=5.0)


@pytest.fixture
def recording_executor(mock_rich_logger):
    """
    An Executor whose run() only records the commands it is given.
    Returns (executor, calls) where calls is a list of (command, kwargs).
    """
    exe = Executor(logger_instance=mock_rich_logger, default_timeout=5.0)
    calls = []

    def fake_run(description, command, **kwargs):
        calls.append((exe._prepare_command(command, chroot=kwargs.get("chroot", False)), kwargs))
        return 0, "", ""

    exe.run = MagicMock(side_effect=fake_run)
    return exe, calls


@pytest.fixture
def sda_config():
    return InstallerConfig.model_validate({"storage": {"device": "/dev/sda"}})
