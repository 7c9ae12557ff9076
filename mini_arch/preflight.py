import os
import shutil
from typing import Iterable, List

from mini_arch.utils.exceptions import PreflightError

# Executables called on the live system (the rest run inside arch-chroot)
REQUIRED_TOOLS = [
    "lsblk", "loadkeys", "timedatectl", "wipefs", "parted", "mkfs.fat", "mkfs.ext4",
    "cryptsetup", "mount", "umount", "blkid", "pacstrap", "genfstab", "arch-chroot",
]


def check_root():
    """
    Check that the software is running with root privileges.
    """
    if os.geteuid() != 0:
        raise PreflightError("Application must run with root privileges.")


def check_uefi(efi_dir: str = "/sys/firmware/efi"):
    """
    Check that the system is booted in UEFI mode; GRUB is installed for x86_64-efi.
    """
    if not os.path.isdir(efi_dir):
        raise PreflightError("System is NOT booted in UEFI mode (likely BIOS/Legacy mode).")


def missing_tools(names: Iterable[str]) -> List[str]:
    return [name for name in names if shutil.which(name) is None]


def check_tools(names: Iterable[str] = REQUIRED_TOOLS):
    missing = missing_tools(names)
    if missing:
        raise PreflightError(f"Required tools not found in PATH: {', '.join(missing)}")


def run_preflight():
    check_root()
    check_uefi()
    check_tools()
