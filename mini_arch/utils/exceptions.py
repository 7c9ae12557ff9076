# mini_arch/utils/exceptions.py

# --- Shell command errors (raised by the Executor) ---

class ShellCommandError(Exception):
    """Base class for errors related to shell command execution."""

    def __init__(self, command: str, exit_code: int = -1, stdout: str = "", stderr: str = "", message: str = "Command execution failed."):
        self.command = command
        self.exit_code = exit_code
        self.stdout = stdout
        self.stderr = stderr
        self.message = message
        super().__init__(f"{message} (Command: '{command}', Exit Code: {exit_code})")


class CommandNotFoundError(ShellCommandError):
    """Raised when the executable specified in the command cannot be found."""

    def __init__(self, command: str, stdout: str = "", stderr: str = ""):
        super().__init__(command, exit_code=127, stdout=stdout, stderr=stderr, message="Command not found.")


class CommandTimeoutError(ShellCommandError):
    """Raised when the command exceeds the execution timeout."""

    def __init__(self, command: str, timeout: float, stdout: str = "", stderr: str = ""):
        self.timeout = timeout
        super().__init__(command, exit_code=124, stdout=stdout, stderr=stderr, message=f"Command timed out after {timeout} seconds.")


class InvalidCommandError(ShellCommandError):
    """Raised when the command string/list is invalid, empty, or improperly formatted."""

    def __init__(self, command: str, message: str):
        super().__init__(command, exit_code=-2, message=message)


class PermissionDeniedError(ShellCommandError):
    """Raised when command execution fails due to permissions."""

    def __init__(self, command: str, stdout: str = "", stderr: str = ""):
        super().__init__(command, exit_code=126, stdout=stdout, stderr=stderr, message="Permission denied.")


# --- Installer errors ---

class InstallerError(Exception):
    """Base class for installer failures that are not a single failed command."""


class ConfigError(InstallerError):
    """The configuration file could not be read, parsed or validated."""


class DiskSelectionError(InstallerError):
    """No usable target disk was found or the selected path is not a block device."""


class PreflightError(InstallerError):
    """The live environment does not meet the installer's requirements."""


class InstallAborted(InstallerError):
    """The user declined the final confirmation."""
