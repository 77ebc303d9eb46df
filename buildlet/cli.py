"""CLI entry points for the OpenBSD buildlet provisioner."""

from __future__ import annotations

import argparse
import dataclasses
import shutil
from pathlib import Path
from typing import List, Optional

from buildlet.config import TargetRegistry, build_registry, parse_env
from buildlet.constants import _SENSITIVE_FIELDS
from buildlet.exceptions import ManagerError
from buildlet.models import Settings, Target
from buildlet.pipeline import Pipeline
from buildlet.sets import default_signify_tool, release_key
from buildlet.utils import has_controlling_tty, log


def list_targets(registry: TargetRegistry) -> None:
    """Print the known architectures and whether they run by default."""
    if not registry:
        log("WARN", "No targets configured")
        return
    width = max(len(arch) for arch in registry)
    for arch in registry:
        target = registry[arch]
        state = "enabled" if target.enabled else "disabled"
        print(f"  {arch:<{width}}  pkg={target.pkg_arch}  goarch={target.go_arch}  ({state})")


def show_config(settings: Settings) -> None:
    """Print the resolved settings."""
    for field in dataclasses.fields(settings):
        value = getattr(settings, field.name)
        if field.name in _SENSITIVE_FIELDS:
            print(f"  {field.name}: ********")
        else:
            print(f"  {field.name}: {value}")


def check_tools(settings: Settings, targets: List[Target]) -> bool:
    """Log whether every host command the run needs is on PATH."""
    tools = ["qemu-img", "dd", settings.signify_tool or default_signify_tool()]
    tools.extend(target.qemu_cmd[0] for target in targets)
    ok = True
    for tool in dict.fromkeys(tools):
        found = shutil.which(tool)
        if found:
            log("SUCCESS", f"{tool:<20} {found}")
        else:
            log("ERROR", f"{tool:<20} NOT FOUND")
            ok = False
    key = release_key(settings.signify_key_dir, settings.smush_ver)
    if key.exists():
        log("SUCCESS", f"{'release key':<20} {key}")
    else:
        log("WARN", f"{'release key':<20} {key} (missing, verification will fail)")
    return ok


def main(argv: Optional[List[str]] = None) -> int:
    parser = argparse.ArgumentParser(description="Install OpenBSD in QEMU and run the x/sys workload")
    parser.add_argument("release", help="OpenBSD release, e.g. 7.4")
    parser.add_argument(
        "--arch",
        action="append",
        default=[],
        metavar="ARCH",
        help="Architecture to build (repeatable; default: every enabled target)",
    )
    parser.add_argument("--dest", type=Path, default=None, help="Download and work directory root")
    parser.add_argument("--no-console", action="store_true", help="Do not mirror the guest console")
    parser.add_argument("--list-targets", action="store_true", help="List known architectures and exit")
    parser.add_argument("--show-config", action="store_true", help="Show resolved configuration and exit")
    parser.add_argument("--dry-run", action="store_true", help="Validate config and host tools, then exit")
    args = parser.parse_args(argv)

    mirror_console: Optional[bool] = False if args.no_console else None
    if mirror_console is None and not has_controlling_tty():
        log("INFO", "No TTY detected; the guest console will not be mirrored.")
        mirror_console = False

    try:
        settings = parse_env(args.release, dest=args.dest, arches=args.arch, mirror_console=mirror_console)
        registry = build_registry(settings)
        if args.list_targets:
            list_targets(registry)
            return 0
        if args.show_config:
            show_config(settings)
            return 0
        pipeline = Pipeline(settings, registry)
        targets = pipeline.targets()
    except ManagerError as exc:
        log("ERROR", str(exc))
        return 1

    log("INFO", f"OpenBSD {settings.release} -> {settings.release_dir}")
    log("INFO", f"Targets: {', '.join(t.arch for t in targets) or 'none'}")

    if args.dry_run:
        log("INFO", "=== Configuration ===")
        show_config(settings)
        log("INFO", "=== Host tools ===")
        ok = check_tools(settings, targets)
        log("INFO", "=== Dry-run complete (nothing fetched or started) ===")
        return 0 if ok else 1

    try:
        uploads = pipeline.run(targets)
    except ManagerError as exc:
        log("ERROR", str(exc))
        return 1
    except KeyboardInterrupt:
        log("WARN", "Interrupted")
        return 130
    except Exception as exc:
        log("ERROR", f"Unexpected error: {exc}")
        import traceback

        traceback.print_exc()
        return 1

    for upload in uploads:
        log("INFO", f"Result: {upload}")
    return 0
