"""Configuration loading, environment parsing and the target registry."""

from __future__ import annotations

import copy
from collections.abc import Mapping
from pathlib import Path
from types import MappingProxyType
from typing import Dict, Iterator, List, Optional, Sequence

try:
    import yaml  # type: ignore
except ImportError as exc:  # pragma: no cover
    raise SystemExit("PyYAML is required but not installed") from exc

from buildlet.autoinstall import render_install_conf
from buildlet.constants import (
    ARCH_ALIASES,
    BUILD_USER,
    CONTROL_PORT,
    DEFAULT_CONFIG_PATH,
    DEFAULT_DEST_DIR,
    DEFAULT_MIRROR,
    DEFAULT_SIGNIFY_KEY_DIR,
    DISK_IMAGE_NAME,
    DISK_PREALLOCATION,
    DISK_PREALLOCATION_MODES,
    DISK_SIZE,
    INSTALL_TIMEOUT,
    ROOT_PASSWORD,
    SESSION_TIMEOUT,
    SOURCE_REPO,
    SUPPORTED_ARCHES,
)
from buildlet.exceptions import ManagerError
from buildlet.models import Settings, Target
from buildlet.sets import new_set_list
from buildlet.utils import (
    get_env,
    get_env_bool,
    log,
    parse_int_env,
    smush_version,
    validate_disk_size,
    validate_release,
)

_REQUIRED_KEYS = ("pkg_arch", "go_arch", "qemu")


def normalize_arch(raw: str) -> str:
    lowered = raw.strip().lower()
    return ARCH_ALIASES.get(lowered, lowered)


def load_target_table(config_path: Optional[Path] = None) -> Dict[str, Dict]:
    """Merge the optional YAML ``targets:`` mapping over the built-in table."""
    table = copy.deepcopy(SUPPORTED_ARCHES)
    if config_path is None:
        if not DEFAULT_CONFIG_PATH.exists():
            return table
        config_path = DEFAULT_CONFIG_PATH
    if not config_path.exists():
        raise ManagerError(f"Target config missing: {config_path}")
    try:
        data = yaml.safe_load(config_path.read_text()) or {}
    except yaml.YAMLError as exc:
        raise ManagerError(f"Target config {config_path} contains invalid YAML: {exc}")
    overrides = data.get("targets", {}) if isinstance(data, dict) else None
    if not isinstance(overrides, dict):
        raise ManagerError(f"Target config {config_path}: 'targets' must be a mapping")
    for raw_arch, entry in overrides.items():
        if not isinstance(entry, dict):
            raise ManagerError(f"Target config {config_path}: entry '{raw_arch}' is not a mapping")
        arch = normalize_arch(str(raw_arch))
        merged = table.setdefault(arch, {})
        merged.update(entry)
    log("DEBUG", f"Loaded target overrides from {config_path}")
    return table


def build_target(arch: str, info: Mapping, settings: Settings) -> Target:
    missing = [key for key in _REQUIRED_KEYS if key not in info]
    if missing:
        raise ManagerError(f"Target '{arch}' is missing required field(s): {', '.join(missing)}")
    out_dir = settings.release_dir / arch
    disk_image = out_dir / DISK_IMAGE_NAME
    qemu_cmd = tuple(str(arg).format(disk=disk_image) for arg in info["qemu"])
    if not qemu_cmd:
        raise ManagerError(f"Target '{arch}' has an empty emulator command")
    sets = tuple(new_set_list(settings.smush_ver))
    return Target(
        arch=arch,
        pkg_arch=str(info["pkg_arch"]),
        go_arch=str(info["go_arch"]),
        qemu_cmd=qemu_cmd,
        sets=sets,
        install_conf=render_install_conf(arch, info, settings),
        out_dir=out_dir,
        disk_image=disk_image,
        miniroot=f"miniroot{settings.smush_ver}.img",
        enabled=bool(info.get("enabled", True)),
    )


class TargetRegistry(Mapping):
    """Read-only mapping of architecture name to Target, in sorted order."""

    def __init__(self, targets: Sequence[Target]) -> None:
        self._targets = MappingProxyType({t.arch: t for t in sorted(targets, key=lambda t: t.arch)})

    def __getitem__(self, arch: str) -> Target:
        return self._targets[arch]

    def __iter__(self) -> Iterator[str]:
        return iter(self._targets)

    def __len__(self) -> int:
        return len(self._targets)

    def enabled(self) -> List[Target]:
        return [target for target in self._targets.values() if target.enabled]

    def select(self, arches: Sequence[str]) -> List[Target]:
        """Targets to run: the requested arches, or every enabled target."""
        if not arches:
            return self.enabled()
        selected = []
        for raw in arches:
            arch = normalize_arch(raw)
            if arch not in self._targets:
                supported = ", ".join(self._targets)
                raise ManagerError(f"Unsupported ARCH '{raw}'. Supported: {supported}")
            selected.append(self._targets[arch])
        return sorted(selected, key=lambda t: t.arch)


def build_registry(settings: Settings, arch_table: Optional[Mapping[str, Mapping]] = None) -> TargetRegistry:
    if arch_table is None:
        arch_table = load_target_table(settings.config_path)
    return TargetRegistry([build_target(arch, info, settings) for arch, info in arch_table.items()])


def parse_env(
    release: str,
    dest: Optional[Path] = None,
    arches: Sequence[str] = (),
    mirror_console: Optional[bool] = None,
) -> Settings:
    release = validate_release(release)

    if dest is None:
        dest = Path(get_env("DEST_DIR", str(DEFAULT_DEST_DIR)) or str(DEFAULT_DEST_DIR))

    mirror = (get_env("MIRROR") or DEFAULT_MIRROR).strip().rstrip("/")
    if not mirror.startswith(("http://", "https://")):
        raise ManagerError(f"MIRROR must be an http(s) URL (got '{mirror}')")

    control_port = parse_int_env("CONTROL_PORT", str(CONTROL_PORT), min_val=1, max_val=65535)
    session_timeout = parse_int_env("SESSION_TIMEOUT", str(SESSION_TIMEOUT), min_val=60)
    install_timeout = parse_int_env("INSTALL_TIMEOUT", str(INSTALL_TIMEOUT), min_val=60)
    if install_timeout > session_timeout:
        log(
            "WARN",
            f"INSTALL_TIMEOUT={install_timeout} exceeds SESSION_TIMEOUT={session_timeout}; "
            "the session budget wins",
        )

    disk_size = validate_disk_size(get_env("DISK_SIZE", DISK_SIZE) or DISK_SIZE)
    preallocation = (get_env("DISK_PREALLOCATION") or DISK_PREALLOCATION).strip().lower()
    if preallocation not in DISK_PREALLOCATION_MODES:
        supported = ", ".join(sorted(DISK_PREALLOCATION_MODES))
        raise ManagerError(f"Unsupported DISK_PREALLOCATION '{preallocation}'. Supported: {supported}")

    if mirror_console is None:
        mirror_console = not get_env_bool("NO_CONSOLE", False)

    if not arches:
        arches_env = get_env("ARCHES") or ""
        arches = [item.strip() for item in arches_env.split(",") if item.strip()]

    config_env = (get_env("TARGETS_CONFIG") or "").strip()
    config_path = Path(config_env).expanduser() if config_env else None

    signify_tool = (get_env("SIGNIFY") or "").strip() or None

    return Settings(
        release=release,
        smush_ver=smush_version(release),
        dest=dest,
        mirror=mirror,
        control_port=control_port,
        session_timeout=session_timeout,
        install_timeout=install_timeout,
        disk_size=disk_size,
        disk_preallocation=preallocation,
        mirror_console=mirror_console,
        signify_tool=signify_tool,
        signify_key_dir=Path(get_env("SIGNIFY_KEY_DIR", str(DEFAULT_SIGNIFY_KEY_DIR)) or str(DEFAULT_SIGNIFY_KEY_DIR)),
        root_password=get_env("ROOT_PASSWORD", ROOT_PASSWORD) or ROOT_PASSWORD,
        build_user=(get_env("BUILD_USER") or BUILD_USER).strip(),
        source_repo=(get_env("SOURCE_REPO") or SOURCE_REPO).strip(),
        arches=tuple(arches),
        config_path=config_path,
    )
