"""Global constants and path configuration for the OpenBSD buildlet provisioner."""

from __future__ import annotations

import os
import re
from pathlib import Path

DEFAULT_CONFIG_PATH = Path("/config/targets.yaml")
DEFAULT_DEST_DIR = Path("/tmp/openbsd")
DEFAULT_MIRROR = "https://cdn.openbsd.org/pub/OpenBSD"
DEFAULT_SIGNIFY_KEY_DIR = Path("/etc/signify")
TRUTHY = {"1", "true", "yes", "on"}

# BSD in ascii / 26 (the number of years OpenBSD had been around)
CONTROL_PORT = 25706
# Host address as seen from the guest through QEMU user-mode networking
GUEST_GATEWAY = "10.0.2.2"

SESSION_TIMEOUT = 3600
INSTALL_TIMEOUT = 1800
DISK_IMAGE_NAME = "disk.raw"
DISK_SIZE = "10240M"
DISK_PREALLOCATION = "full"
DISK_PREALLOCATION_MODES = {"off", "metadata", "falloc", "full"}

UPLOAD_NAME = "sys.diff.b64"
GUEST_DIFF_PATH = "/tmp/sys.diff.b64"

HOSTNAME = "buildlet"
ROOT_PASSWORD = "root"
BUILD_USER = "gopher"
SOURCE_REPO = "https://github.com/golang/sys"
GUEST_PACKAGES = ("bash", "git", "go")
PKG_MIRROR = "http://cdn.openbsd.org/%m"

DISK_LAYOUT = "/\t5G-*\t95%\nswap\t1G\n"

# Files that make up one architecture's install sets; "%s" is replaced by the
# release with its dot removed (7.4 -> 74).
SET_TEMPLATE = (
    "SHA256.sig",
    "SHA256",
    "bsd",
    "bsd.mp",
    "bsd.rd",
    "index.txt",
    "base%s.tgz",
    "comp%s.tgz",
    "man%s.tgz",
    "xbase%s.tgz",
    "miniroot%s.img",
)
SIGNATURE_FILE = "SHA256.sig"
METADATA_FILES = {"SHA256", "SHA256.sig", "index.txt"}
OPTIONAL_FILES = {"bsd.mp"}
ALWAYS_FETCH = {"SHA256.sig"}

_QEMU_COMMON = (
    "-nographic",
    "-m", "2048",
    "-net", "nic,model=e1000",
    "-net", "user",
    "-drive", "file={disk},format=raw",
)

SUPPORTED_ARCHES = {
    "amd64": {
        "pkg_arch": "amd64",
        "go_arch": "amd64",
        "qemu": ["qemu-system-x86_64", "-smp", "4", *_QEMU_COMMON],
        "root_disk": "wd0",
        "interface": "em0",
        "enabled": True,
    },
    "i386": {
        "pkg_arch": "i386",
        "go_arch": "386",
        "qemu": ["qemu-system-i386", "-smp", "4", *_QEMU_COMMON],
        "root_disk": "wd0",
        "interface": "em0",
        "enabled": True,
    },
    "arm64": {
        "pkg_arch": "aarch64",
        "go_arch": "arm64",
        "qemu": ["qemu-system-aarch64", "-M", "virt", "-cpu", "cortex-a57", "-smp", "4", *_QEMU_COMMON],
        "root_disk": "sd0",
        "interface": "em0",
        "enabled": False,
    },
    "armv7": {
        "pkg_arch": "arm",
        "go_arch": "arm",
        "qemu": ["qemu-system-arm", *_QEMU_COMMON],
        "root_disk": "sd0",
        "interface": "em0",
        "enabled": False,
    },
    "octeon": {
        "pkg_arch": "mips64",
        "go_arch": "mips64",
        "qemu": ["qemu-system-mips64", *_QEMU_COMMON],
        "root_disk": "sd0",
        "interface": "em0",
        "enabled": False,
    },
    "riscv64": {
        "pkg_arch": "riscv64",
        "go_arch": "riscv64",
        "qemu": ["qemu-system-riscv64", *_QEMU_COMMON],
        "root_disk": "sd0",
        "interface": "em0",
        "enabled": False,
    },
}

ARCH_ALIASES = {
    "x86_64": "amd64",
    "aarch64": "arm64",
    "386": "i386",
    "mips64": "octeon",
}

_LOG_VERBOSE = os.environ.get("LOG_VERBOSE", "").lower() in {"1", "true", "yes", "on"}

DISK_SIZE_RE = re.compile(r"^\d+[KMGTkmgt]?$")
RELEASE_RE = re.compile(r"^\d+\.\d+$")

_SENSITIVE_FIELDS = {"root_password"}
