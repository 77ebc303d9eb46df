"""Shared test fixtures."""

from __future__ import annotations

from pathlib import Path

import pytest

from buildlet.config import build_target
from buildlet.models import Settings, Target

FAKE_HASH = "$2b$12$abcdefghijklmnopqrstuuFakeHashForTestsOnly0123456789ab"


@pytest.fixture(autouse=True)
def fast_password_hash(monkeypatch):
    """bcrypt is slow on purpose; rendered install.conf files get a canned hash."""
    monkeypatch.setattr("buildlet.autoinstall.hash_password", lambda password: FAKE_HASH)


@pytest.fixture
def fake_hash() -> str:
    return FAKE_HASH


@pytest.fixture(autouse=True)
def no_default_target_config(monkeypatch, tmp_path):
    monkeypatch.setattr("buildlet.config.DEFAULT_CONFIG_PATH", tmp_path / "no-such-targets.yaml")


@pytest.fixture
def settings(tmp_path) -> Settings:
    """Return Settings for release 7.4 rooted in a temporary directory."""
    return Settings(
        release="7.4",
        smush_ver="74",
        dest=tmp_path / "openbsd",
        mirror="https://mirror.example/pub/OpenBSD",
        control_port=25706,
        session_timeout=3600,
        install_timeout=1800,
        disk_size="10240M",
        disk_preallocation="full",
        mirror_console=False,
        signify_tool="signify",
        signify_key_dir=tmp_path / "keys",
        root_password="root",
        build_user="gopher",
        source_repo="https://github.com/golang/sys",
    )


@pytest.fixture
def arch_table():
    """A small synthetic architecture table."""
    return {
        "amd64": {
            "pkg_arch": "amd64",
            "go_arch": "amd64",
            "qemu": ["qemu-system-x86_64", "-nographic", "-drive", "file={disk},format=raw"],
            "root_disk": "wd0",
        },
        "i386": {
            "pkg_arch": "i386",
            "go_arch": "386",
            "qemu": ["qemu-system-i386", "-nographic", "-drive", "file={disk},format=raw"],
            "root_disk": "wd0",
            "enabled": False,
        },
    }


@pytest.fixture
def target(settings, arch_table) -> Target:
    return build_target("amd64", arch_table["amd64"], settings)


@pytest.fixture
def out_dir(target) -> Path:
    target.out_dir.mkdir(parents=True, exist_ok=True)
    return target.out_dir


# All environment variables that parse_env() reads, used to ensure a clean slate.
_PARSE_ENV_VARS = [
    "DEST_DIR",
    "MIRROR",
    "CONTROL_PORT",
    "SESSION_TIMEOUT",
    "INSTALL_TIMEOUT",
    "DISK_SIZE",
    "DISK_PREALLOCATION",
    "NO_CONSOLE",
    "ARCHES",
    "TARGETS_CONFIG",
    "SIGNIFY",
    "SIGNIFY_KEY_DIR",
    "ROOT_PASSWORD",
    "BUILD_USER",
    "SOURCE_REPO",
]


@pytest.fixture
def clean_env(monkeypatch):
    """Clear all environment variables that parse_env() reads."""
    for key in _PARSE_ENV_VARS:
        monkeypatch.delenv(key, raising=False)
