"""Fetch, verify and build each target in turn."""

from __future__ import annotations

import time
from pathlib import Path
from typing import List, Optional, Sequence

try:
    import requests
except ImportError as exc:  # pragma: no cover
    raise SystemExit("requests is required but not installed") from exc

from buildlet.config import TargetRegistry
from buildlet.dialogue import Dialogue, build_script
from buildlet.disk import provision_disk
from buildlet.emulator import Emulator
from buildlet.exceptions import ManagerError
from buildlet.models import Settings, Target
from buildlet.server import ControlServer
from buildlet.sets import fetch_sets, verify_sets
from buildlet.utils import ensure_directory, log


class Pipeline:
    """Runs Fetch -> Verify -> Build per target, stopping at the first failure."""

    def __init__(
        self,
        settings: Settings,
        registry: TargetRegistry,
        session: Optional[requests.Session] = None,
    ) -> None:
        self.settings = settings
        self.registry = registry
        self.session = session or requests.Session()

    def targets(self) -> List[Target]:
        return self.registry.select(self.settings.arches)

    def run(self, targets: Optional[Sequence[Target]] = None) -> List[Path]:
        if targets is None:
            targets = self.targets()
        if not targets:
            raise ManagerError("No targets selected; enable one in the target config or pass --arch")
        ensure_directory(self.settings.release_dir)
        uploads = []
        for target in targets:
            started = time.monotonic()
            log("INFO", f"Fetching sets for {target.arch}")
            self.fetch(target)
            log("INFO", f"Verifying sets for {target.arch}")
            self.verify(target)
            log("INFO", f"Building {target.arch}")
            uploads.append(self.build(target))
            elapsed = time.monotonic() - started
            log("SUCCESS", f"{target.arch} done in {elapsed / 60:.1f} min")
        return uploads

    def fetch(self, target: Target) -> None:
        fetch_sets(target, self.settings.release, self.settings.mirror, session=self.session)

    def verify(self, target: Target) -> None:
        verify_sets(
            target,
            self.settings.smush_ver,
            tool=self.settings.signify_tool,
            key_dir=self.settings.signify_key_dir,
        )

    def build(self, target: Target) -> Path:
        """Serve the install assets, boot the guest and drive it to the upload.

        The control server is listening before the emulator starts and both
        are torn down before any error leaves this method.
        """
        ensure_directory(target.out_dir)
        with ControlServer(
            target.out_dir,
            target.install_conf,
            port=self.settings.control_port,
        ) as server:
            # a result left by an earlier run must not pass for this one
            server.upload_path.unlink(missing_ok=True)
            provision_disk(
                target.out_dir,
                target.miniroot,
                size=self.settings.disk_size,
                preallocation=self.settings.disk_preallocation,
            )
            emulator = Emulator(
                target.qemu_cmd,
                session_timeout=self.settings.session_timeout,
                mirror_console=self.settings.mirror_console,
            )
            dialogue = Dialogue(build_script(target, self.settings), session_timeout=self.settings.session_timeout)
            with emulator.session() as console:
                dialogue.run(console)

        upload = server.upload_path
        if upload.exists() and upload.stat().st_size > 0:
            log("SUCCESS", f"Result for {target.arch} saved to {upload}")
        else:
            log("WARN", f"No result uploaded for {target.arch} ({upload} missing or empty)")
        return upload
