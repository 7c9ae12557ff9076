# mini_arch/utils/executor.py

import subprocess
import shlex
from typing import Tuple, Optional, Union, List

from mini_arch.utils.logger import RichAppLogger
from mini_arch.utils.exceptions import (
    ShellCommandError, CommandNotFoundError, CommandTimeoutError,
    InvalidCommandError, PermissionDeniedError,
)

# What run() returns for every command while in dry-run mode
DRY_RUN_RESULT = (0, "DRY_RUN_STDOUT", "DRY_RUN_STDERR")


def _to_text(value: Union[str, bytes, None]) -> str:
    if not value:
        return ""
    if isinstance(value, bytes):
        return value.decode(errors="replace")
    return value


def classify_failure(command: str, exit_code: int, stdout: str, stderr: str) -> ShellCommandError:
    """Maps a non-zero exit status to the matching ShellCommandError subclass."""
    lowered = stderr.lower()
    if exit_code == 127 or "command not found" in lowered:
        return CommandNotFoundError(command=command, stdout=stdout, stderr=stderr)
    if exit_code == 126 or "permission denied" in lowered:
        return PermissionDeniedError(command=command, stdout=stdout, stderr=stderr)
    return ShellCommandError(
        command=command,
        exit_code=exit_code,
        stdout=stdout,
        stderr=stderr,
        message=f"Command failed with exit code {exit_code}",
    )


class Executor:
    """
    Runs the external tools of the installation, on the live system or inside
    'arch-chroot <chroot_path>'. Every failure surfaces as a ShellCommandError;
    the RichAppLogger shows progress and records each command in the log file.
    """

    def __init__(self,
                 logger_instance: RichAppLogger,
                 default_timeout: Optional[float] = 30.0,
                 chroot_path: str = "/mnt",
                 dry_run: bool = False):
        """
        Args:
            logger_instance: Console and log file front-end.
            default_timeout: Seconds before a command is killed, unless the call
                             passes its own timeout. None waits forever (pacstrap).
            chroot_path: Mount point of the target root for chroot=True commands.
            dry_run: Log the commands run() would execute instead of running them.
        """
        self.logger = logger_instance

        if default_timeout is not None and default_timeout <= 0:
            self.logger.error("Default timeout must be a positive number or None.")
            raise ValueError("Default timeout must be a positive number or None.")
        if not isinstance(chroot_path, str) or not chroot_path:
            self.logger.error("Chroot path must be a non-empty string.")
            raise ValueError("Chroot path must be a non-empty string.")

        self._default_timeout = default_timeout
        self._chroot_path = chroot_path
        self.dry_run = dry_run
        self.logger.debug(f"Executor ready (timeout={self._default_timeout}, "
                          f"chroot={self._chroot_path}, dry_run={self.dry_run})")

    @property
    def chroot_path(self) -> str:
        return self._chroot_path

    def _prepare_command(self, command: Union[str, list], chroot: bool) -> List[str]:
        """Turns a command string or list into an argv list, prefixed with arch-chroot when asked."""
        if not command:
            self.logger.error("Refusing to run an empty command.")
            raise InvalidCommandError(str(command), "Command cannot be empty.")

        if isinstance(command, str):
            try:
                argv = shlex.split(command)
            except ValueError as e:
                self.logger.error(f"Cannot parse command '{command}': {e}")
                raise InvalidCommandError(command, f"Failed to parse command string: {e}")
        elif isinstance(command, list):
            if not all(isinstance(arg, str) for arg in command):
                raise InvalidCommandError(str(command), "All elements in command list must be strings.")
            argv = list(command)
        else:
            self.logger.error(f"Invalid command type {type(command).__name__}; expected str or list.")
            raise InvalidCommandError(str(command), "Command must be a string or a list of strings.")

        if chroot:
            return ["arch-chroot", self._chroot_path] + argv
        return argv

    def execute_command(self,
                        command: Union[str, list],
                        capture_output: bool = True,
                        timeout: Optional[float] = None,
                        check: bool = True,
                        input: Optional[str] = None
                        ) -> Tuple[int, str, str]:
        """
        Runs one command with subprocess.run and returns (exit_code, stdout, stderr).

        No shell is involved. `input` is written to stdin (passphrases,
        chpasswd lines) and is never logged. With check=True a non-zero exit
        status raises; with check=False it is returned.
        """
        argv = self._prepare_command(command, chroot=False)
        actual_timeout = timeout if timeout is not None else self._default_timeout
        shown = shlex.join(argv)

        self.logger.debug(f"exec: {shown} (timeout={actual_timeout}, capture={capture_output}, "
                          f"check={check}, stdin={'<redacted>' if input is not None else 'inherited'})")

        try:
            process = subprocess.run(
                argv,
                capture_output=capture_output,
                text=True,
                input=input,
                timeout=actual_timeout,
                check=False
            )
        except FileNotFoundError:
            self.logger.error(f"'{argv[0]}' is not installed or not in PATH.")
            raise CommandNotFoundError(command=shown, stdout="", stderr="Command not found. Check PATH.")
        except subprocess.TimeoutExpired as e:
            self.logger.warning(f"'{shown}' was killed after {actual_timeout} seconds.")
            raise CommandTimeoutError(command=shown, timeout=actual_timeout,
                                      stdout=_to_text(e.stdout), stderr=_to_text(e.stderr))
        except PermissionError:
            self.logger.error(f"Permission denied while starting '{shown}'.")
            raise PermissionDeniedError(command=shown)
        except (TypeError, ValueError) as e:
            self.logger.error(f"Invalid arguments for '{shown}': {e}")
            raise InvalidCommandError(shown, f"Argument error in command execution: {e}")

        stdout = _to_text(process.stdout) if capture_output else ""
        stderr = _to_text(process.stderr) if capture_output else ""
        exit_code = process.returncode

        if check and exit_code != 0:
            self.logger.error(f"'{shown}' exited with {exit_code}: {stderr.strip()}")
            raise classify_failure(shown, exit_code, stdout, stderr)

        self.logger.debug(f"exit {exit_code}: {shown}")
        return exit_code, stdout, stderr

    def run(self,
            description: str,
            command: Union[str, list],
            chroot: bool = False,
            interactive: bool = False,
            capture_output: bool = True,
            timeout: Optional[float] = None,
            check: bool = True,
            input: Optional[str] = None
            ) -> Tuple[int, str, str]:
        """
        Runs a command as one visible installation step named `description`.

        interactive=True hands the terminal to the command (cryptsetup and
        passwd prompts): nothing is captured and no spinner is drawn.
        """
        argv = self._prepare_command(command, chroot=chroot)

        if self.dry_run:
            self.logger.info(f"DRY RUN: Execution skipped for: '{description}'")
            self.logger.debug(f"DRY RUN COMMAND (Prepared): {shlex.join(argv)}")
            return DRY_RUN_RESULT

        if interactive:
            capture_output = False

        with self.logger.execution_step(description, spinner=not interactive):
            exit_code, stdout, stderr = self.execute_command(
                command=argv,
                capture_output=capture_output,
                timeout=timeout,
                check=check,
                input=input
            )

        for stream, text in (("stdout", stdout), ("stderr", stderr)):
            if text:
                self.logger.debug(f"{description} {stream}:\n{text.strip()}")
        return exit_code, stdout, stderr
