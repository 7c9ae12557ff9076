# mini_arch/config/models.py

import re
from pathlib import Path
from typing import Any, Dict, List, Optional

import tomlkit
from tomlkit.exceptions import ParseError
from pydantic import BaseModel, Field, SecretStr, ValidationError, computed_field, field_validator
from rich.table import Table

from mini_arch.utils.exceptions import ConfigError

# Packages every installation gets, in pacstrap order
BASE_PACKAGES: List[str] = ["base", "linux", "linux-firmware", "neovim", "dhcpcd", "grub", "efibootmgr", "sudo"]

HOSTNAME_RE = re.compile(r"^(?!-)[A-Za-z0-9-]{1,63}(?<!-)$")
USERNAME_RE = re.compile(r"^[a-z_][a-z0-9_-]{0,31}$")


def parse_yes_no(value: Any) -> Any:
    """Only 'y' or 'Y' count as yes when an answer is given as text."""
    if isinstance(value, str):
        return re.fullmatch(r"[Yy]", value.strip()) is not None
    return value


# --- 1. Sub-Models ---

class Storage(BaseModel):
    """Target disk and where the new root is assembled."""
    device: Optional[str] = Field(None, description="Whole-disk block device, e.g. /dev/sda or /dev/nvme0n1.")
    mount_point: str = "/mnt"
    efi_size_mib: int = Field(300, ge=100, le=4096)

    @field_validator("device")
    @classmethod
    def check_device(cls, value: Optional[str]) -> Optional[str]:
        if value is not None and not value.startswith("/dev/"):
            raise ValueError(f"device must be a path under /dev, got '{value}'")
        return value

    @field_validator("mount_point")
    @classmethod
    def check_mount_point(cls, value: str) -> str:
        if not value.startswith("/") or value == "/":
            raise ValueError("mount_point must be an absolute path other than '/'")
        return value.rstrip("/")


class Encryption(BaseModel):
    """LUKS2 settings for the root partition."""
    enabled: bool = True
    password: Optional[SecretStr] = None
    mapper_name: str = "cryptroot"

    @field_validator("enabled", mode="before")
    @classmethod
    def parse_enabled(cls, value: Any) -> Any:
        return parse_yes_no(value)


class System(BaseModel):
    """Identity and localisation of the installed system."""
    hostname: str = "arch"
    timezone: str = "Europe/Berlin"
    locale: str = "en_US.UTF-8"
    keymap: str = "us"

    @field_validator("hostname")
    @classmethod
    def check_hostname(cls, value: str) -> str:
        if not HOSTNAME_RE.match(value):
            raise ValueError(f"invalid hostname '{value}'")
        return value

    @field_validator("timezone")
    @classmethod
    def check_timezone(cls, value: str) -> str:
        parts = value.split("/")
        if not value or value.startswith("/") or ".." in parts or any(not p for p in parts):
            raise ValueError(f"invalid timezone '{value}'")
        return value

    @field_validator("locale", "keymap")
    @classmethod
    def check_single_word(cls, value: str) -> str:
        if not value or any(c.isspace() for c in value):
            raise ValueError("value must be a single non-empty word")
        return value


class Account(BaseModel):
    """The regular user (member of wheel) and the root password."""
    username: str = "user"
    password: Optional[SecretStr] = None
    root_password: Optional[SecretStr] = None

    @field_validator("username")
    @classmethod
    def check_username(cls, value: str) -> str:
        if not USERNAME_RE.match(value) or value == "root":
            raise ValueError(f"invalid username '{value}'")
        return value


class Services(BaseModel):
    """Optional services enabled in the installed system."""
    ssh: bool = False
    ufw: bool = False

    @field_validator("ssh", "ufw", mode="before")
    @classmethod
    def parse_services(cls, value: Any) -> Any:
        return parse_yes_no(value)


class Packages(BaseModel):
    extra: List[str] = Field(default_factory=list)


class Boot(BaseModel):
    """Bootloader identity and what happens after the installation."""
    bootloader_id: str = "ArchLinux"
    reboot: bool = True
    reboot_delay: int = Field(10, ge=0)

    @field_validator("reboot", mode="before")
    @classmethod
    def parse_reboot(cls, value: Any) -> Any:
        return parse_yes_no(value)


# --- 2. Top-Level Root Model ---

class InstallerConfig(BaseModel):
    """The top-level configuration model representing the entire config.toml file."""

    storage: Storage = Field(default_factory=Storage)
    encryption: Encryption = Field(default_factory=Encryption)
    system: System = Field(default_factory=System)
    user: Account = Field(default_factory=Account)
    services: Services = Field(default_factory=Services)
    packages: Packages = Field(default_factory=Packages)
    boot: Boot = Field(default_factory=Boot)

    @computed_field
    @property
    def all_packages(self) -> List[str]:
        """Base set, optional service packages and extras; order kept, duplicates dropped."""
        wanted = list(BASE_PACKAGES)
        if self.services.ssh:
            wanted.append("openssh")
        if self.services.ufw:
            wanted.append("ufw")
        wanted.extend(self.packages.extra)
        return list(dict.fromkeys(wanted))

    @computed_field
    @property
    def mkinitcpio_hooks(self) -> List[str]:
        """Initramfs hooks; 'encrypt' must come after 'block' and before 'filesystems'."""
        hooks = ["base", "udev", "autodetect", "modconf", "block"]
        if self.encryption.enabled:
            hooks.append("encrypt")
        hooks.extend(["filesystems", "keyboard", "fsck"])
        return hooks

    @classmethod
    def load_config_from_file(cls, path: Path) -> 'InstallerConfig':
        """Loads and validates a TOML file against the Pydantic schema."""
        try:
            content = Path(path).read_text(encoding="utf-8")
        except OSError as e:
            raise ConfigError(f"Error reading configuration file: {e}") from e

        try:
            data = tomlkit.parse(content).unwrap()
        except ParseError as e:
            raise ConfigError(f"Invalid TOML format in file: {e}") from e

        try:
            return cls.model_validate(data)
        except ValidationError as e:
            raise ConfigError(f"Invalid configuration in {path}:\n{e}") from e

    def merged(self, overrides: Dict[str, Dict[str, Any]]) -> 'InstallerConfig':
        """
        Returns a validated copy with the given per-section overrides applied.
        Values that are None are ignored so unset CLI flags keep the file's value.
        """
        data = self.model_dump(exclude={"all_packages", "mkinitcpio_hooks"})
        for section, values in overrides.items():
            if section not in data:
                raise ConfigError(f"Unknown configuration section '{section}'")
            data[section].update({k: v for k, v in values.items() if v is not None})
        try:
            return InstallerConfig.model_validate(data)
        except ValidationError as e:
            raise ConfigError(f"Invalid configuration value:\n{e}") from e

    @staticmethod
    def _yes(flag: bool) -> str:
        return "[green]yes[/green]" if flag else "[dim]no[/dim]"

    def display_summary(self) -> Table:
        """Builds the pre-installation summary table."""
        table = Table(title="SUMMARY", show_header=False, title_style="bold blue")
        table.add_column("Setting", style="cyan", no_wrap=True)
        table.add_column("Value")

        table.add_row("Disk", self.storage.device or "[red]not selected[/red]")
        table.add_row("Encrypt root", self._yes(self.encryption.enabled))
        table.add_row("SSH enabled", self._yes(self.services.ssh))
        table.add_row("UFW enabled", self._yes(self.services.ufw))
        table.add_row("Hostname", self.system.hostname)
        table.add_row("Username", self.user.username)
        table.add_row("Timezone", self.system.timezone)
        table.add_row("Locale", self.system.locale)
        table.add_row("Keymap", self.system.keymap)
        table.add_row("Packages", " ".join(self.all_packages))
        return table


def default_config_document() -> tomlkit.TOMLDocument:
    """Renders the default configuration as a commented TOML document."""
    defaults = InstallerConfig()
    doc = tomlkit.document()
    doc.add(tomlkit.comment("mini-arch configuration. Values left out fall back to these defaults."))
    doc.add(tomlkit.comment("Passwords may be given as password = \"...\"; when absent the tools prompt."))
    doc.add(tomlkit.nl())

    storage = tomlkit.table()
    storage.add(tomlkit.comment('device = "/dev/sda"   # selected interactively when absent'))
    storage.add("mount_point", defaults.storage.mount_point)
    storage.add("efi_size_mib", defaults.storage.efi_size_mib)
    doc.add("storage", storage)

    encryption = tomlkit.table()
    encryption.add("enabled", defaults.encryption.enabled)
    encryption.add("mapper_name", defaults.encryption.mapper_name)
    doc.add("encryption", encryption)

    system = tomlkit.table()
    for key, value in defaults.system.model_dump().items():
        system.add(key, value)
    doc.add("system", system)

    user = tomlkit.table()
    user.add("username", defaults.user.username)
    doc.add("user", user)

    services = tomlkit.table()
    services.add("ssh", defaults.services.ssh)
    services.add("ufw", defaults.services.ufw)
    doc.add("services", services)

    packages = tomlkit.table()
    packages.add("extra", tomlkit.array())
    doc.add("packages", packages)

    boot = tomlkit.table()
    for key, value in defaults.boot.model_dump().items():
        boot.add(key, value)
    doc.add("boot", boot)

    return doc
