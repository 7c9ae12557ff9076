# mini_arch/executors/system.py
import os
from typing import Callable, Optional, Tuple

from mini_arch.config.models import InstallerConfig
from mini_arch.disk import DiskLayout
from mini_arch.executors.disk import DiskManager
from mini_arch.utils import textedit
from mini_arch.utils.exceptions import InstallerError
from mini_arch.utils.executor import Executor

GRUB_DEFAULTS = "/etc/default/grub"
GRUB_CONFIG = "/boot/grub/grub.cfg"
EFI_DIRECTORY = "/boot"


class SystemConfigurator:
    """
    Finishes the configuration of the freshly bootstrapped system.

    Commands run inside 'arch-chroot <mount_point>' so they use the target's
    own binaries. Configuration files are edited through the mount point.
    """

    def __init__(self, executor: Executor, config: InstallerConfig, layout: DiskLayout):
        self.executor = executor
        self.config = config
        self.layout = layout
        self.logger = executor.logger
        self.root = config.storage.mount_point

    # --- Helpers ---

    def _target(self, path: str) -> str:
        """Maps an absolute path of the installed system to the host's view of it."""
        return os.path.join(self.root, path.lstrip("/"))

    def chroot(self, description: str, command: list, **kwargs) -> Tuple[int, str, str]:
        return self.executor.run(description, command, chroot=True, **kwargs)

    def write_file(self, path: str, content: str):
        """Replaces a file of the installed system."""
        target = self._target(path)
        if self.executor.dry_run:
            self.logger.info(f"DRY RUN: Would write {path}: {content.strip()!r}")
            return
        with open(target, "w", encoding="utf-8") as fh:
            fh.write(content)
        self.logger.debug(f"Wrote {target}")

    def edit_file(self, path: str, transform: Callable[[str], str]):
        """Applies a text transformation to a file of the installed system."""
        target = self._target(path)
        if self.executor.dry_run:
            self.logger.info(f"DRY RUN: Would edit {path}")
            return
        try:
            with open(target, encoding="utf-8") as fh:
                original = fh.read()
        except OSError as e:
            raise InstallerError(f"Cannot read {target}: {e}") from e

        updated = transform(original)
        if updated != original:
            with open(target, "w", encoding="utf-8") as fh:
                fh.write(updated)
        self.logger.debug(f"Edited {target} ({'changed' if updated != original else 'unchanged'})")

    # --- Steps ---

    def configure_time(self):
        """Links the timezone and syncs the hardware clock."""
        timezone = self.config.system.timezone
        zoneinfo = f"/usr/share/zoneinfo/{timezone}"
        if not self.executor.dry_run and not os.path.exists(self._target(zoneinfo)):
            raise InstallerError(f"Unknown timezone '{timezone}': {zoneinfo} is missing in the target system.")

        self.chroot(f"Setting timezone to {timezone}", ["ln", "-sf", zoneinfo, "/etc/localtime"])
        self.chroot("Setting the hardware clock from the system clock", ["hwclock", "--systohc"])

    def configure_locale(self):
        """Enables the locale in locale.gen, generates it and writes locale.conf / vconsole.conf."""
        locale = self.config.system.locale

        def enable(text: str) -> str:
            new_text, count = textedit.uncomment_locale(text, locale)
            if count == 0 and not any(line.split()[:1] == [locale] for line in text.splitlines()):
                raise InstallerError(f"Locale '{locale}' is not listed in /etc/locale.gen.")
            return new_text

        self.edit_file("/etc/locale.gen", enable)
        self.chroot("Generating locales", ["locale-gen"])
        self.write_file("/etc/locale.conf", f"LANG={locale}\n")
        self.write_file("/etc/vconsole.conf", f"KEYMAP={self.config.system.keymap}\n")

    def configure_hostname(self):
        hostname = self.config.system.hostname
        self.write_file("/etc/hostname", f"{hostname}\n")
        self.write_file(
            "/etc/hosts",
            "127.0.0.1\tlocalhost\n"
            "::1\t\tlocalhost\n"
            f"127.0.1.1\t{hostname}.localdomain\t{hostname}\n",
        )

    def configure_initramfs(self):
        """Writes the mkinitcpio hook list (with 'encrypt' when the root is LUKS) and rebuilds all presets."""
        hooks = self.config.mkinitcpio_hooks
        self.edit_file("/etc/mkinitcpio.conf", lambda text: textedit.replace_hooks(text, hooks))
        self.chroot("Building initramfs images", ["mkinitcpio", "-P"])

    def kernel_cmdline(self, root_uuid: str) -> str:
        name = self.layout.mapper_name or self.config.encryption.mapper_name
        return f"cryptdevice=UUID={root_uuid}:{name} root=/dev/mapper/{name}"

    def configure_bootloader(self):
        """Configures /etc/default/grub, installs GRUB for UEFI and generates grub.cfg."""
        encrypted = self.layout.encrypted
        cmdline: Optional[str] = None
        if encrypted:
            uuid = self._root_partition_uuid()
            cmdline = self.kernel_cmdline(uuid)

        def update(text: str) -> str:
            text = textedit.remove_option(text, "GRUB_ENABLE_CRYPTODISK")
            if encrypted:
                text = textedit.set_option(text, "GRUB_ENABLE_CRYPTODISK", "y")
                text = textedit.set_option(text, "GRUB_CMDLINE_LINUX", f'"{cmdline}"')
            return text

        self.edit_file(GRUB_DEFAULTS, update)

        command = [
            "grub-install",
            "--target=x86_64-efi",
            f"--efi-directory={EFI_DIRECTORY}",
            f"--bootloader-id={self.config.boot.bootloader_id}",
        ]
        if encrypted:
            command.append("--modules=luks cryptodisk")
        command.append("--recheck")

        self.chroot("Installing GRUB bootloader", command)
        self.chroot("Generating GRUB configuration", ["grub-mkconfig", "-o", GRUB_CONFIG])

    def _root_partition_uuid(self) -> str:
        uuid = DiskManager(self.executor).partition_uuid(self.layout.root_partition)
        if not uuid:
            raise InstallerError(f"blkid reported no UUID for {self.layout.root_partition}.")
        return uuid

    def configure_network(self):
        self.chroot("Enabling dhcpcd", ["systemctl", "enable", "dhcpcd"])

    def configure_ssh(self):
        self.chroot("Enabling sshd", ["systemctl", "enable", "sshd"])
        self.chroot("Generating SSH host keys", ["ssh-keygen", "-A"])

    def configure_firewall(self):
        """Enables UFW with deny-incoming / allow-outgoing, letting SSH through when it is installed."""
        self.chroot("Enabling ufw", ["systemctl", "enable", "ufw"])
        if self.config.services.ssh:
            self.chroot("Allowing SSH through the firewall", ["ufw", "allow", "ssh"])
        self.chroot("Denying incoming traffic by default", ["ufw", "default", "deny", "incoming"])
        self.chroot("Allowing outgoing traffic by default", ["ufw", "default", "allow", "outgoing"])
        self.chroot("Activating the firewall", ["ufw", "--force", "enable"])

    def set_password(self, account: str, password=None):
        """
        Sets an account password: through chpasswd when a password is configured,
        otherwise passwd prompts on the terminal.
        """
        if password is not None:
            self.chroot(
                f"Setting password for {account}",
                ["chpasswd"],
                input=f"{account}:{password.get_secret_value()}\n",
            )
        else:
            self.chroot(f"Set password for {account}", ["passwd", account], interactive=True)

    def configure_users(self):
        """Root password, the wheel user and its password, then sudo for wheel."""
        user = self.config.user
        self.set_password("root", user.root_password)

        self.chroot(f"Creating user {user.username}", ["useradd", "-mG", "wheel", user.username])
        self.set_password(user.username, user.password)

        def enable(text: str) -> str:
            new_text, count = textedit.enable_wheel_sudo(text)
            if count == 0 and textedit.WHEEL_SUDO_RULE not in text:
                self.logger.warning("No '%wheel ALL=(ALL:ALL) ALL' rule found in /etc/sudoers; sudo left unchanged.")
            return new_text

        self.edit_file("/etc/sudoers", enable)
