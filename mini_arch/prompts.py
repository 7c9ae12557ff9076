from typing import List, Optional

from rich.console import Console
from rich.markup import escape
from rich.prompt import Confirm, Prompt
from rich.table import Table

from mini_arch.config.models import InstallerConfig
from mini_arch.disk import BlockDevice
from mini_arch.utils.exceptions import ConfigError, DiskSelectionError, InstallAborted

CONFIRMATION_WORD = "YES"


def select_disk(disks: List[BlockDevice], console: Optional[Console] = None) -> str:
    """
    Prompts the user to select a drive from the available block devices.

    Returns:
        str: The full device path (e.g., "/dev/sda").
    """
    console = console or Console()
    if not disks:
        raise DiskSelectionError("No valid disks found.")

    table = Table(title="Available Disks")
    table.add_column("Index", justify="right", style="cyan", no_wrap=True)
    table.add_column("Device Name", style="green")
    table.add_column("Size", style="green")
    table.add_column("Model", style="green")
    for i, disk in enumerate(disks):
        table.add_row(str(i + 1), disk.path, disk.size, disk.model or "[italic]Unknown[/]")
    console.print(table)

    while True:
        selection = Prompt.ask("[yellow]Select a disk[/]", default="1", console=console)
        try:
            index = int(selection) - 1
        except ValueError:
            console.print("[red]Invalid input. Please enter a number.[/red]")
            continue
        if 0 <= index < len(disks):
            console.print(f"You selected: {disks[index].path}")
            return disks[index].path
        console.print("[red]Invalid selection. Please choose a valid disk.[/red]")


def ask_missing(config: InstallerConfig, console: Optional[Console] = None) -> InstallerConfig:
    """
    Asks for every interactive setting, offering the current value as the default.
    Invalid answers are reported and asked again.
    """
    console = console or Console()

    while True:
        overrides = {
            "encryption": {"enabled": Confirm.ask("Encrypt root partition?", default=config.encryption.enabled, console=console)},
            "services": {
                "ssh": Confirm.ask("Install and enable SSH?", default=config.services.ssh, console=console),
                "ufw": Confirm.ask("Install and enable UFW firewall?", default=config.services.ufw, console=console),
            },
            "system": {
                "hostname": Prompt.ask("Enter hostname", default=config.system.hostname, console=console),
                "timezone": Prompt.ask("Enter your timezone", default=config.system.timezone, console=console),
                "locale": Prompt.ask("Enter your locale", default=config.system.locale, console=console),
                "keymap": Prompt.ask("Enter keyboard layout", default=config.system.keymap, console=console),
            },
            "user": {"username": Prompt.ask("Enter username", default=config.user.username, console=console)},
        }
        try:
            return config.merged(overrides)
        except ConfigError as e:
            console.print(f"[red]{escape(str(e))}[/red]")


def confirm_install(config: InstallerConfig, console: Optional[Console] = None):
    """Shows the summary and requires the literal confirmation word; anything else aborts."""
    console = console or Console()
    console.print()
    console.print(config.display_summary())
    answer = Prompt.ask(f"Type {CONFIRMATION_WORD} to continue", default="", show_default=False, console=console)
    if answer != CONFIRMATION_WORD:
        raise InstallAborted("Aborted.")
