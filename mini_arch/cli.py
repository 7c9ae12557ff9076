# mini_arch/cli.py
import logging
from pathlib import Path
from typing import Optional

import typer
from rich.table import Table

from mini_arch import core, prompts
from mini_arch.config.models import InstallerConfig, default_config_document
from mini_arch.disk import list_disks
from mini_arch.installer import Installer, resolve_target
from mini_arch.preflight import run_preflight
from mini_arch.utils.exceptions import InstallAborted, InstallerError, ShellCommandError
from mini_arch.utils.executor import Executor
from mini_arch.utils.logger import initialize_app_logger

app = typer.Typer(
    help="Install a minimal Arch Linux system, optionally with an encrypted root.",
    no_args_is_help=True,
    add_completion=False,
)


@app.callback()
def main(
    log_dir: Path = typer.Option(Path("logs"), "--log-dir", help="Directory for the log file."),
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Show debug messages on the console."),
):
    """
    Create global logging
    """
    core.app_logger = initialize_app_logger(
        app_name="mini_arch",
        log_directory=str(log_dir),
        console_log_level=logging.DEBUG if verbose else logging.INFO,
    )


def load_config(config_path: Optional[Path]) -> InstallerConfig:
    if config_path is None:
        return InstallerConfig()
    core.app_logger.info(f"Loading configuration from {config_path}")
    return InstallerConfig.load_config_from_file(config_path)


def _fail(message: str) -> typer.Exit:
    log = core.app_logger
    log.critical(message)
    if log.log_path:
        log.info(f"The full log is in {log.log_path}")
    return typer.Exit(code=1)


@app.command()
def install(
    config_path: Optional[Path] = typer.Option(None, "--config", "-c", help="TOML configuration file."),
    disk: Optional[str] = typer.Option(None, "--disk", "-d", help="Target disk, e.g. /dev/sda."),
    encrypt: Optional[bool] = typer.Option(None, "--encrypt/--no-encrypt", help="Encrypt the root partition (LUKS2)."),
    ssh: Optional[bool] = typer.Option(None, "--ssh/--no-ssh", help="Install and enable SSH."),
    ufw: Optional[bool] = typer.Option(None, "--ufw/--no-ufw", help="Install and enable the UFW firewall."),
    hostname: Optional[str] = typer.Option(None, help="Hostname of the new system."),
    username: Optional[str] = typer.Option(None, help="Name of the user added to wheel."),
    timezone: Optional[str] = typer.Option(None, help="Timezone, e.g. Europe/Berlin."),
    locale: Optional[str] = typer.Option(None, help="Locale, e.g. en_US.UTF-8."),
    keymap: Optional[str] = typer.Option(None, help="Console keyboard layout, e.g. us."),
    yes: bool = typer.Option(False, "--yes", "-y", help="Do not ask questions or for confirmation."),
    dry_run: bool = typer.Option(False, "--dry-run", help="Log every command instead of running it."),
    no_reboot: bool = typer.Option(False, "--no-reboot", help="Do not reboot when the installation is complete."),
    skip_checks: bool = typer.Option(False, "--skip-checks", help="Skip the root/UEFI/tool checks."),
):
    """
    Partition, encrypt, format, bootstrap and configure the target disk.
    """
    log = core.app_logger
    try:
        if not (skip_checks or dry_run):
            run_preflight()

        config = load_config(config_path).merged({
            "storage": {"device": disk},
            "encryption": {"enabled": encrypt},
            "services": {"ssh": ssh, "ufw": ufw},
            "system": {"hostname": hostname, "timezone": timezone, "locale": locale, "keymap": keymap},
            "user": {"username": username},
        })

        executor = Executor(
            logger_instance=log,
            default_timeout=None,
            chroot_path=config.storage.mount_point,
            dry_run=dry_run,
        )
        if dry_run:
            log.warning("Running in DRY-RUN mode. No command will be executed.")

        config = resolve_target(executor, config, interactive=not yes)
        if not yes:
            config = prompts.ask_missing(config, console=log.console)
            prompts.confirm_install(config, console=log.console)

        installer = Installer(executor, config)
        installer.run()

        if config.boot.reboot and not no_reboot:
            installer.reboot()
    except InstallAborted:
        log.warning("Aborted.")
        raise typer.Exit(code=1)
    except ShellCommandError as e:
        raise _fail(f"Setup terminated: command '{e.command}' failed with exit code {e.exit_code}.")
    except InstallerError as e:
        raise _fail(f"Setup terminated: {e}")


@app.command()
def disks():
    """
    List the disks that can be installed to.
    """
    log = core.app_logger
    executor = Executor(logger_instance=log)
    try:
        found = list_disks(executor)
    except (ShellCommandError, InstallerError) as e:
        raise _fail(f"Could not list disks: {e}")

    if not found:
        raise _fail("No valid disks found.")

    table = Table(title="Available Disks")
    table.add_column("Device Name", style="green")
    table.add_column("Size")
    table.add_column("Model")
    for disk in found:
        table.add_row(disk.path, disk.size, disk.model)
    log.console.print(table)


@app.command("init-config")
def init_config(
    path: Path = typer.Argument(Path("config.toml"), help="Where to write the configuration."),
    force: bool = typer.Option(False, "--force", "-f", help="Overwrite an existing file."),
):
    """
    Write a configuration file holding the default values.
    """
    if path.exists() and not force:
        raise _fail(f"{path} already exists; use --force to overwrite it.")
    path.write_text(default_config_document().as_string(), encoding="utf-8")
    core.app_logger.info(f"Wrote default configuration to {path}")


@app.command("show-config")
def show_config(
    config_path: Optional[Path] = typer.Option(None, "--config", "-c", help="TOML configuration file."),
):
    """
    Print the resolved installation summary.
    """
    try:
        config = load_config(config_path)
    except InstallerError as e:
        raise _fail(str(e))
    core.app_logger.console.print(config.display_summary())
