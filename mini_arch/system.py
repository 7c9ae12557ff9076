from mini_arch.config.models import InstallerConfig
from mini_arch.executors.disk import DiskManager
from mini_arch.utils.executor import Executor


def install_base(executor: Executor, config: InstallerConfig):
    """Bootstraps the package set into the mounted target with pacstrap."""
    packages = config.all_packages
    executor.logger.debug(f"Packages: {' '.join(packages)}")
    executor.run(
        description=f"Installing {len(packages)} packages with pacstrap .... (patience)",
        command=["pacstrap", config.storage.mount_point] + packages,
    )


def write_fstab(disks: DiskManager, config: InstallerConfig) -> str:
    """Appends UUID-based fstab entries for the mounted target to its /etc/fstab."""
    return disks.generate_fstab(config.storage.mount_point)
