# mini_arch/utils/logger.py
import logging
import os
import sys
from contextlib import contextmanager
from typing import Optional

from rich.console import Console
from rich.logging import RichHandler
from rich.rule import Rule

from mini_arch.utils.exceptions import ShellCommandError

# --- Log levels for installer steps ---
# SECTION marks a numbered installation step, EXECUTE the life cycle of one command.
SECTION_LEVEL_NUM = 25
EXECUTE_LEVEL_NUM = 26
logging.addLevelName(SECTION_LEVEL_NUM, 'SECTION')
logging.addLevelName(EXECUTE_LEVEL_NUM, 'EXECUTE')


class AppLogger(logging.Logger):
    """logging.Logger with section() and execute() shortcuts for the installer levels."""

    def section(self, msg, *args, **kwargs):
        if self.isEnabledFor(SECTION_LEVEL_NUM):
            self._log(SECTION_LEVEL_NUM, msg, args, **kwargs)

    def execute(self, msg, *args, **kwargs):
        if self.isEnabledFor(EXECUTE_LEVEL_NUM):
            self._log(EXECUTE_LEVEL_NUM, msg, args, **kwargs)


logging.setLoggerClass(AppLogger)


class FileFormatter(logging.Formatter):
    """
    Column-aligned records for the installation log, e.g.

        2024-05-01 12:00:00,000 - EXECUTE   - disk.py             :41   - [RUNNING] Wiping signatures on /dev/sda
    """

    FORMAT = '%(asctime)s - %(levelname)-9s - %(filename)-20s:%(lineno)-5d - %(message)s'

    def __init__(self):
        super().__init__(fmt=self.FORMAT)


class ExecuteFilter(logging.Filter):
    """
    Keeps EXECUTE records off the console; execution_step() prints its own
    status lines there.
    """
    def filter(self, record):
        return record.levelno != EXECUTE_LEVEL_NUM


class RichAppLogger:
    """
    Console front-end of the installer: step headers, a spinner per command
    and the final status of every command. Everything is also written to the
    log file through the wrapped AppLogger.
    """

    def __init__(self, console: Console, logger: AppLogger, log_path: Optional[str] = None):
        self.console = console
        self.logger: AppLogger = logger
        self.log_path = log_path

    def section(self, message: str):
        """Prints a step header such as '[2/13] Partitioning /dev/sda...'."""
        self.console.print(Rule(f"SECTION: {message}", style="bold yellow", align="left"))
        self.logger.section(f"SECTION: {message}")

    @contextmanager
    def execution_step(self, message: str, spinner: bool = True):
        """
        Wraps one external command.

        The console shows '[RUNNING]' while the command runs and then
        '✔ [COMPLETED]', '✘ [CRITICAL]' (the command failed) or '✘ [FAILED]'
        (anything else went wrong, printed with a traceback). The exception
        is always re-raised.

        Commands that read from the terminal (cryptsetup, passwd) need
        spinner=False, a live status line would overwrite their prompts.
        """
        if not spinner:
            self.console.print(f"[bold cyan]→ [INTERACTIVE][/bold cyan] {message}")
            with self._track(message):
                yield None
            return

        with self.console.status(f"[bold green]...[/] [RUNNING] {message}", spinner="dots") as status:
            with self._track(message):
                yield status

    @contextmanager
    def _track(self, message: str):
        self.logger.execute(f"[RUNNING] {message}")
        try:
            yield
        except Exception as e:
            command_failed = isinstance(e, ShellCommandError)
            tag = "[CRITICAL]" if command_failed else "[FAILED]"

            self.console.print(f"[bold red]✘ {tag}[/bold red] {message}")
            self.logger.execute(f"{tag} {message}")
            self.logger.exception(f"Step '{message}' did not complete")

            if not command_failed:
                self.console.print("\n[bold red]Traceback (most recent call last):[/bold red]")
                self.console.print_exception(show_locals=True)
            raise

        self.console.print(f"[green]✔ [COMPLETED][/green] {message}")
        self.logger.execute(f"[COMPLETED] {message}")

    def info(self, message, *args, **kwargs):
        self.logger.info(message, *args, **kwargs)

    def warning(self, message, *args, **kwargs):
        self.logger.warning(message, *args, **kwargs)

    def error(self, message, *args, **kwargs):
        self.logger.error(message, *args, **kwargs)

    def debug(self, message, *args, **kwargs):
        self.logger.debug(message, *args, **kwargs)

    def critical(self, message, *args, **kwargs):
        self.logger.critical(message, *args, **kwargs)

    def exception(self, message, *args, **kwargs):
        """Logs the active exception with its traceback and shows it on the console."""
        self.logger.exception(message, *args, **kwargs)
        self.console.print(f"[bold red]FATAL ERROR: {message}[/bold red]")
        self.console.print_exception(show_locals=True)


def initialize_app_logger(
    app_name: str,
    log_directory: str = "logs",
    log_file_name: str = "mini-arch.log",
    file_log_level: int = logging.DEBUG,
    console_log_level: int = logging.INFO,
) -> RichAppLogger:
    """
    Sets up the installer logger: every record (commands included) goes to
    <log_directory>/<log_file_name>, INFO and above also go to stderr through
    rich. Calling it again replaces the handlers of an earlier call.
    """
    logger: AppLogger = logging.getLogger(app_name)
    logger.setLevel(logging.DEBUG)
    logger.propagate = False

    for handler in list(logger.handlers):
        logger.removeHandler(handler)
        handler.close()

    os.makedirs(log_directory, exist_ok=True)
    log_path = os.path.join(log_directory, log_file_name)

    file_handler = logging.FileHandler(log_path, encoding='utf-8')
    file_handler.setLevel(file_log_level)
    file_handler.setFormatter(FileFormatter())
    logger.addHandler(file_handler)

    # stdout stays free for the output of interactive tools
    console = Console(file=sys.stderr, soft_wrap=True)

    console_handler = RichHandler(
        console=console,
        show_time=False,
        show_path=False,
        keywords=[],
        level=console_log_level,
    )
    console_handler.addFilter(ExecuteFilter())
    logger.addHandler(console_handler)

    return RichAppLogger(console, logger, log_path=log_path)
