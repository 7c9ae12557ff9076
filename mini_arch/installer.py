import os
import time
from typing import Optional

from mini_arch import prompts
from mini_arch.config.models import InstallerConfig
from mini_arch.disk import (
    DiskLayout, cleanup_mounts, encrypt_root, format_and_mount, list_disks,
    partition_disk, prepare_live_environment, validate_block_device,
)
from mini_arch.executors.disk import DiskManager
from mini_arch.executors.system import SystemConfigurator
from mini_arch.system import install_base, write_fstab
from mini_arch.utils.exceptions import InstallerError, ShellCommandError
from mini_arch.utils.executor import Executor

TOTAL_STEPS = 13


def step_title(number: int, message: str) -> str:
    return f"[{number}/{TOTAL_STEPS}] {message}"


def resolve_target(executor: Executor, config: InstallerConfig, interactive: bool = True) -> InstallerConfig:
    """
    Step 1: settles the target disk. A configured device is validated; otherwise
    the candidates are listed and the user picks one.
    """
    executor.logger.section(step_title(1, "Detecting available disks..."))

    device = config.storage.device
    if device is None:
        disks = list_disks(executor)
        if not interactive:
            raise InstallerError("No disk configured and prompting is disabled; pass --disk.")
        device = prompts.select_disk(disks, console=executor.logger.console)

    # /dev/disk/by-id links do not take partition suffixes
    device = os.path.realpath(device)
    if not executor.dry_run:
        validate_block_device(device)
    return config.merged({"storage": {"device": device}})


class Installer:
    """
    Runs the installation steps in order. Every external command is fatal on
    failure; mounts and the LUKS mapping are torn down before the error propagates.
    """

    def __init__(self, executor: Executor, config: InstallerConfig):
        if not config.storage.device:
            raise InstallerError("No target disk selected.")
        self.executor = executor
        self.config = config
        self.logger = executor.logger
        self.disks = DiskManager(executor)
        self.layout: Optional[DiskLayout] = None

    def run(self):
        try:
            self.prepare_storage()
            self.install_system()
            self.configure_system()
        except (ShellCommandError, InstallerError) as e:
            self.logger.critical(f"Installation failed: {e}")
            if self.layout is not None:
                cleanup_mounts(self.executor, self.config, self.layout)
            raise
        except KeyboardInterrupt:
            self.logger.warning("Installation interrupted.")
            if self.layout is not None:
                cleanup_mounts(self.executor, self.config, self.layout)
            raise

        self.cleanup()
        self.report()

    # --- Steps ---

    def prepare_storage(self):
        config = self.config
        self.logger.section(step_title(2, f"Partitioning {config.storage.device}..."))
        prepare_live_environment(self.executor, config)
        self.layout = partition_disk(self.disks, config)

        if config.encryption.enabled:
            self.logger.section(step_title(3, f"Setting up LUKS2 encryption on {self.layout.root_partition}..."))
            encrypt_root(self.disks, config, self.layout)
        else:
            self.logger.section(step_title(3, "Skipping encryption for root..."))

        self.logger.section(step_title(4, "Formatting and mounting..."))
        format_and_mount(self.disks, config, self.layout)

    def install_system(self):
        self.logger.section(step_title(5, "Installing base system..."))
        install_base(self.executor, self.config)

        self.logger.section(step_title(6, "Generating fstab..."))
        write_fstab(self.disks, self.config)

    def configure_system(self):
        self.logger.info("Entering chroot to finalize installation...")
        configurator = SystemConfigurator(self.executor, self.config, self.layout)
        services = self.config.services

        self.logger.section(step_title(7, "Configuring system timezone and locale..."))
        configurator.configure_time()
        configurator.configure_locale()

        self.logger.section(step_title(8, "Setting hostname..."))
        configurator.configure_hostname()

        if self.layout.encrypted:
            self.logger.section(step_title(9, "Configuring initramfs for encryption..."))
        else:
            self.logger.section(step_title(9, "Configuring standard initramfs..."))
        configurator.configure_initramfs()

        self.logger.section(step_title(10, "Installing and configuring GRUB bootloader..."))
        configurator.configure_bootloader()
        configurator.configure_network()

        if services.ssh:
            self.logger.section(step_title(11, "Setting up SSH..."))
            configurator.configure_ssh()

        if services.ufw:
            self.logger.section(step_title(12, "Setting up UFW firewall..."))
            configurator.configure_firewall()

        self.logger.section(step_title(13, "Setting passwords and creating the user..."))
        configurator.configure_users()
        self.logger.info("Configuration inside chroot complete")

    def cleanup(self):
        self.logger.section("Cleaning up...")
        try:
            self.disks.unmount_recursive(self.config.storage.mount_point)
        finally:
            if self.layout.encrypted:
                self.disks.luks_close(self.layout.mapper_name)

    def report(self):
        services = self.config.services
        self.logger.info("=== Installation Complete ===")
        if services.ssh:
            self.logger.info("SSH is enabled by default. You can connect after boot.")
        if services.ufw:
            self.logger.info("UFW firewall is enabled.")
            if services.ssh:
                self.logger.info("SSH is allowed through the firewall.")

    def reboot(self):
        delay = self.config.boot.reboot_delay
        self.logger.info(f"Rebooting in {delay} seconds...")
        if not self.executor.dry_run:
            time.sleep(delay)
        self.executor.run("Rebooting", ["reboot"])
