"""Data models for the OpenBSD buildlet provisioner."""

from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path
from typing import Optional, Tuple

from buildlet.exceptions import ManagerError


def _names_disk(arg: str, disk: str) -> bool:
    """True if arg is the disk path itself or a -drive spec whose file= is that path."""
    if arg == disk:
        return True
    return any(option == f"file={disk}" for option in arg.split(","))


@dataclass(frozen=True)
class Target:
    """One architecture to install and exercise, read-only once built."""

    arch: str  # arm64
    pkg_arch: str  # aarch64
    go_arch: str  # arm64
    qemu_cmd: Tuple[str, ...]  # qemu-system-aarch64 ...
    sets: Tuple[str, ...]
    install_conf: str
    out_dir: Path
    disk_image: Path
    miniroot: str
    enabled: bool = True

    def __post_init__(self):
        if not any(_names_disk(arg, str(self.disk_image)) for arg in self.qemu_cmd):
            raise ManagerError(
                f"Emulator command for '{self.arch}' does not reference its disk image {self.disk_image}"
            )


@dataclass
class Settings:
    release: str
    smush_ver: str
    dest: Path
    mirror: str
    control_port: int
    session_timeout: int
    install_timeout: int
    disk_size: str
    disk_preallocation: str
    mirror_console: bool
    signify_tool: Optional[str]
    signify_key_dir: Path
    root_password: str
    build_user: str
    source_repo: str
    arches: Tuple[str, ...] = ()
    config_path: Optional[Path] = None

    @property
    def release_dir(self) -> Path:
        return self.dest / self.release
