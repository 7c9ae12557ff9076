import json
import os
import re
import stat
from dataclasses import dataclass
from typing import List, Optional

from mini_arch.config.models import InstallerConfig
from mini_arch.executors.disk import DiskManager
from mini_arch.utils.exceptions import DiskSelectionError, ShellCommandError
from mini_arch.utils.executor import Executor

EFI_LABEL = "EFI"
ROOT_LABEL = "ROOT"
EFI_START_MIB = 1

# Whole disks offered for installation: SATA/SCSI/USB, NVMe, virtio and eMMC/SD
CANDIDATE_DISK_RE = re.compile(r"^(sd[a-z]+|nvme\d+n\d+|vd[a-z]+|mmcblk\d+)$")

# Devices whose partitions are named <disk>p<N>
PARTITION_SEPARATOR_RE = re.compile(r"(nvme|mmcblk|loop)")


@dataclass
class BlockDevice:
    """A whole disk as reported by lsblk."""
    name: str
    size: str = ""
    type: str = "disk"
    model: str = ""

    @property
    def path(self) -> str:
        return f"/dev/{self.name}"


@dataclass
class DiskLayout:
    """Devices produced by partitioning the target disk."""
    disk: str
    efi_partition: str
    root_partition: str
    root_device: str
    encrypted: bool
    mapper_name: Optional[str] = None


def partition_path(disk: str, number: int) -> str:
    """
    Returns the device path of partition `number` on `disk`.

    NVMe, eMMC and loop devices end in a digit, so the kernel inserts a 'p'
    (/dev/nvme0n1p1); other disks simply get the number appended (/dev/sda1).
    """
    if PARTITION_SEPARATOR_RE.search(os.path.basename(disk)):
        return f"{disk}p{number}"
    return f"{disk}{number}"


def parse_lsblk(output: str) -> List[BlockDevice]:
    """Parses `lsblk -J` output into candidate whole disks."""
    try:
        data = json.loads(output)
    except json.JSONDecodeError as e:
        raise DiskSelectionError(f"Could not parse lsblk output: {e}") from e

    disks = []
    for entry in data.get("blockdevices", []):
        name = entry.get("name") or ""
        if entry.get("type") != "disk" or not CANDIDATE_DISK_RE.match(name):
            continue
        disks.append(BlockDevice(
            name=name,
            size=entry.get("size") or "",
            type="disk",
            model=(entry.get("model") or "").strip(),
        ))
    return disks


def list_disks(executor: Executor) -> List[BlockDevice]:
    """
    Lists the disks that can be installed to.

    lsblk only reads, so it runs even in dry-run mode.
    """
    _, stdout, _ = executor.execute_command(["lsblk", "-J", "-d", "-o", "NAME,SIZE,TYPE,MODEL"])
    disks = parse_lsblk(stdout)
    executor.logger.debug(f"Candidate disks: {[d.path for d in disks]}")
    return disks


def validate_block_device(path: str) -> str:
    """Raises DiskSelectionError unless `path` exists and is a block device."""
    try:
        mode = os.stat(path).st_mode
    except FileNotFoundError:
        raise DiskSelectionError(f"Disk {path} does not exist.")
    except OSError as e:
        raise DiskSelectionError(f"Cannot inspect {path}: {e}") from e

    if not stat.S_ISBLK(mode):
        raise DiskSelectionError(f"{path} is not a block device.")
    return path


def prepare_live_environment(executor: Executor, config: InstallerConfig):
    """Sets the console keymap and enables NTP on the live system."""
    executor.run(
        description=f"Loading keymap {config.system.keymap}",
        command=["loadkeys", config.system.keymap],
    )
    executor.run(
        description="Enabling network time synchronization",
        command=["timedatectl", "set-ntp", "true"],
    )


def partition_disk(disks: DiskManager, config: InstallerConfig) -> DiskLayout:
    """
    Wipes the target disk and lays out an EFI System Partition followed by a
    root partition spanning the rest of the disk. Formats the ESP.
    """
    device = config.storage.device
    efi_end = f"{EFI_START_MIB + config.storage.efi_size_mib}MiB"

    disks.wipe_signatures(device)
    disks.create_gpt_label(device)
    disks.create_partition(device, "fat32", f"{EFI_START_MIB}MiB", efi_end)
    disks.set_esp_flag(device, 1)
    disks.create_partition(device, "ext4", efi_end, "100%")

    efi_part = partition_path(device, 1)
    root_part = partition_path(device, 2)

    disks.format_partition(efi_part, "fat32", label=EFI_LABEL)

    return DiskLayout(
        disk=device,
        efi_partition=efi_part,
        root_partition=root_part,
        root_device=root_part,
        encrypted=False,
    )


def encrypt_root(disks: DiskManager, config: InstallerConfig, layout: DiskLayout) -> DiskLayout:
    """Formats the root partition as LUKS2 and opens it; the layout then points at the mapper device."""
    password = config.encryption.password
    passphrase = password.get_secret_value() if password else None
    name = config.encryption.mapper_name

    disks.luks_format(layout.root_partition, passphrase=passphrase)
    disks.luks_open(layout.root_partition, name, passphrase=passphrase)

    layout.root_device = f"/dev/mapper/{name}"
    layout.encrypted = True
    layout.mapper_name = name
    return layout


def format_and_mount(disks: DiskManager, config: InstallerConfig, layout: DiskLayout):
    """Creates the ext4 root filesystem, mounts it by label and mounts the ESP on /boot."""
    mount_point = config.storage.mount_point

    disks.format_partition(layout.root_device, "ext4", label=ROOT_LABEL)
    disks.mount_label(ROOT_LABEL, mount_point)
    disks.mount_partition(layout.efi_partition, os.path.join(mount_point, "boot"))


def cleanup_mounts(executor: Executor, config: InstallerConfig, layout: Optional[DiskLayout] = None):
    """Attempt to unmount and close LUKS devices in case of failure."""
    executor.logger.warning("Attempting emergency cleanup of mounted partitions.")
    disks = DiskManager(executor)
    try:
        disks.unmount_recursive(config.storage.mount_point, check=False)
        encrypted = layout.encrypted if layout is not None else config.encryption.enabled
        if encrypted:
            disks.luks_close(config.encryption.mapper_name, check=False)
    except ShellCommandError as e:
        executor.logger.error(f"Cleanup failed: {e}")
