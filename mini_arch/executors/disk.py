# mini_arch/executors/disk.py
import os
from typing import Optional, Tuple

from mini_arch.utils.executor import Executor

# LUKS2 parameters used for the root partition
LUKS_TYPE = "luks2"
LUKS_CIPHER = "aes-xts-plain64"
LUKS_KEY_SIZE = "512"
LUKS_HASH = "sha512"
LUKS_ITER_TIME_MS = "5000"


class DiskManager:
    """
    Disk and partition management operations on a system being prepared
    for an Arch Linux installation.
    All operations are delegated to the provided Executor instance.
    """

    def __init__(self, executor: Executor):
        """
        Initializes the Disk management class.

        Args:
            executor (Executor): An instance of the Executor class for command execution.
        """
        self.executor = executor
        self.executor.logger.debug("Disk manager initialized.")

    # --- DISK LEVEL OPERATIONS ---

    def wipe_signatures(self, device: str) -> Tuple[int, str, str]:
        """
        Erases all filesystem, RAID and partition-table signatures from a disk with 'wipefs -a'.

        Args:
            device (str): The disk device path (e.g., '/dev/sda').
        """
        return self.executor.run(
            description=f"Wiping signatures on {device}",
            command=["wipefs", "-a", device],
        )

    def create_gpt_label(self, device: str) -> Tuple[int, str, str]:
        """Writes a fresh, empty GPT partition table."""
        return self.executor.run(
            description=f"Creating GPT partition table on {device}",
            command=["parted", "-s", device, "mklabel", "gpt"],
        )

    # --- PARTITION LEVEL OPERATIONS ---

    def create_partition(self, device: str, fs_type: str, start: str, end: str) -> Tuple[int, str, str]:
        """
        Creates a primary GPT partition with parted.

        Args:
            device (str): The disk device path (e.g., '/dev/sda').
            fs_type (str): parted's filesystem hint ('fat32', 'ext4').
            start (str): Start of the partition (e.g., '1MiB').
            end (str): End of the partition (e.g., '301MiB' or '100%').
        """
        return self.executor.run(
            description=f"Creating {fs_type} partition on {device} ({start} - {end})",
            command=["parted", "-s", device, "mkpart", "primary", fs_type, start, end],
        )

    def set_esp_flag(self, device: str, partition_number: int) -> Tuple[int, str, str]:
        """Marks a partition as the EFI System Partition."""
        return self.executor.run(
            description=f"Setting ESP flag on partition {partition_number} of {device}",
            command=["parted", "-s", device, "set", str(partition_number), "esp", "on"],
        )

    def format_partition(self, partition_path: str, filesystem: str, label: Optional[str] = None) -> Tuple[int, str, str]:
        """
        Formats a partition with a specified filesystem.

        Args:
            partition_path (str): The partition or mapper path (e.g., '/dev/sda1').
            filesystem (str): 'fat32' for the EFI system partition or 'ext4'.
            label (Optional[str]): An optional label for the filesystem.
        """
        if filesystem == "ext4":
            fs_cmd = ["mkfs.ext4", "-F"]
            if label:
                fs_cmd.extend(["-L", label])
        elif filesystem == "fat32":
            fs_cmd = ["mkfs.fat", "-F32"]
            if label:
                fs_cmd.extend(["-n", label])
        else:
            raise ValueError(f"Unsupported filesystem: {filesystem}")

        fs_cmd.append(partition_path)

        return self.executor.run(
            description=f"Formatting {partition_path} as {filesystem}",
            command=fs_cmd,
        )

    # --- LUKS OPERATIONS ---

    def luks_format(self, partition_path: str, passphrase: Optional[str] = None) -> Tuple[int, str, str]:
        """
        Encrypts a partition with LUKS2 (cryptsetup luksFormat).

        Without a passphrase cryptsetup asks for confirmation and the passphrase
        on the terminal. With one, the passphrase is fed on stdin in batch mode.
        """
        command = [
            "cryptsetup", "luksFormat",
            "--type", LUKS_TYPE,
            "--cipher", LUKS_CIPHER,
            "--key-size", LUKS_KEY_SIZE,
            "--hash", LUKS_HASH,
            "--iter-time", LUKS_ITER_TIME_MS,
        ]
        description = f"Setting up LUKS2 encryption on {partition_path}"

        if passphrase is None:
            command.append(partition_path)
            return self.executor.run(description, command, interactive=True)

        command.extend(["--batch-mode", "--key-file=-", partition_path])
        return self.executor.run(description, command, input=passphrase)

    def luks_open(self, partition_path: str, name: str, passphrase: Optional[str] = None) -> Tuple[int, str, str]:
        """
        Opens a LUKS encrypted partition as /dev/mapper/<name>.
        """
        command = ["cryptsetup", "open", partition_path, name]
        description = f"Opening LUKS volume {name} from {partition_path}"

        if passphrase is None:
            return self.executor.run(description, command, interactive=True)

        command.append("--key-file=-")
        return self.executor.run(description, command, input=passphrase)

    def luks_close(self, name: str, check: bool = True) -> Tuple[int, str, str]:
        """Closes /dev/mapper/<name>."""
        return self.executor.run(
            description=f"Closing LUKS volume {name}",
            command=["cryptsetup", "close", name],
            check=check,
        )

    # --- MOUNT/UNMOUNT OPERATIONS ---

    def ensure_directory(self, path: str) -> Tuple[int, str, str]:
        """Creates a directory (and parents) with 'mkdir -p'."""
        return self.executor.run(
            description=f"Ensuring directory {path} exists",
            command=["mkdir", "-p", path],
        )

    def mount_partition(self, source: str, target: str, options: Optional[str] = None) -> Tuple[int, str, str]:
        """
        Mounts a filesystem/partition to a target directory.
        Ensures the target directory exists before attempting to mount.

        Args:
            source (str): The device or volume to mount (e.g., '/dev/sda1').
            target (str): The mount point (e.g., '/mnt', '/mnt/boot').
            options (Optional[str]): Optional mount options (e.g., 'defaults,noatime').
        """
        if not os.path.isdir(target):
            self.ensure_directory(target)

        command = ["mount"]
        if options:
            command.extend(["-o", options])
        command.extend([source, target])

        return self.executor.run(
            description=f"Mounting {source} to {target} (Options: {options or 'default'})",
            command=command,
        )

    def mount_label(self, label: str, target: str) -> Tuple[int, str, str]:
        """Mounts the filesystem carrying the given label."""
        if not os.path.isdir(target):
            self.ensure_directory(target)

        return self.executor.run(
            description=f"Mounting filesystem labelled {label} to {target}",
            command=["mount", "-L", label, target],
        )

    def unmount_recursive(self, target: str, check: bool = True) -> Tuple[int, str, str]:
        """Unmounts a mount point and everything below it."""
        return self.executor.run(
            description=f"Unmounting {target} recursively",
            command=["umount", "-R", target],
            check=check,
        )

    # --- QUERIES ---

    def partition_uuid(self, partition_path: str) -> str:
        """Returns the filesystem/LUKS UUID of a partition as reported by blkid."""
        _, stdout, _ = self.executor.run(
            description=f"Reading UUID of {partition_path}",
            command=["blkid", "-s", "UUID", "-o", "value", partition_path],
        )
        return stdout.strip()

    # --- FSTAB GENERATION ---

    def generate_fstab(self, mount_point: str = "/mnt") -> str:
        """
        Generates fstab entries (by UUID) for everything mounted below mount_point
        and appends them to <mount_point>/etc/fstab.

        Returns:
            str: The generated entries.
        """
        _, stdout, _ = self.executor.run(
            description=f"Generating fstab for {mount_point}",
            command=["genfstab", "-U", mount_point],
        )

        fstab_path = os.path.join(mount_point, "etc", "fstab")
        if self.executor.dry_run:
            self.executor.logger.info(f"DRY RUN: Not writing {fstab_path}")
            return stdout

        with open(fstab_path, "a", encoding="utf-8") as fstab:
            fstab.write(stdout)
        self.executor.logger.debug(f"Appended {len(stdout.splitlines())} lines to {fstab_path}")
        return stdout
