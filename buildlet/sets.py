"""Install set handling: the per-release file list, download and signify checks."""

from __future__ import annotations

import subprocess
import sys
from pathlib import Path
from typing import List, Optional

try:
    import requests
except ImportError as exc:  # pragma: no cover
    raise SystemExit("requests is required but not installed") from exc

from buildlet.constants import (
    ALWAYS_FETCH,
    METADATA_FILES,
    OPTIONAL_FILES,
    SET_TEMPLATE,
    SIGNATURE_FILE,
)
from buildlet.exceptions import FetchError, VerifyError
from buildlet.models import Target
from buildlet.utils import download_file, ensure_directory, log, run


def new_set_list(smush_ver: str) -> List[str]:
    """Return the install set file names with the version token filled in."""
    return [name % smush_ver if "%s" in name else name for name in SET_TEMPLATE]


def set_url(mirror: str, release: str, arch: str, name: str) -> str:
    return f"{mirror}/{release}/{arch}/{name}"


def fetch_sets(
    target: Target,
    release: str,
    mirror: str,
    session: Optional[requests.Session] = None,
) -> None:
    """Download every missing set file into the target's directory.

    The signature file is always refreshed. A 404 is only acceptable for the
    optional files (bsd.mp is not built on every architecture).
    """
    ensure_directory(target.out_dir)
    http = session or requests.Session()
    for name in target.sets:
        destination = target.out_dir / name
        if destination.exists() and name not in ALWAYS_FETCH:
            log("DEBUG", f"{name} already present for {target.arch}")
            continue
        url = set_url(mirror, release, target.arch, name)
        log("INFO", f"Fetching {name} for {target.arch}")
        try:
            download_file(url, destination, session=http, label=f"Fetching {name}")
        except requests.HTTPError as exc:
            status = exc.response.status_code if exc.response is not None else None
            if status == 404:
                if name in OPTIONAL_FILES:
                    log("INFO", f"Skipping {name} for {target.arch} (not on mirror)")
                    continue
                raise FetchError(f"can't find '{name}' for '{target.arch}' ({url})")
            raise FetchError(f"HTTP error fetching '{name}' for '{target.arch}': {exc}")
        except requests.RequestException as exc:
            raise FetchError(f"Failed to fetch '{name}' for '{target.arch}': {exc}")


def default_signify_tool() -> str:
    # gosignify is a drop-in for signify on hosts that don't ship it
    if sys.platform.startswith("openbsd"):
        return "signify"
    return "gosignify"


def release_key(key_dir: Path, smush_ver: str) -> Path:
    return key_dir / f"openbsd-{smush_ver}-base.pub"


def verify_sets(
    target: Target,
    smush_ver: str,
    tool: Optional[str] = None,
    key_dir: Path = Path("/etc/signify"),
) -> None:
    """Check each downloaded set against SHA256.sig with signify -C."""
    tool = tool or default_signify_tool()
    key = release_key(key_dir, smush_ver)
    for name in target.sets:
        if name in METADATA_FILES:
            continue
        if name in OPTIONAL_FILES and not (target.out_dir / name).exists():
            log("DEBUG", f"Not verifying {name} for {target.arch} (not fetched)")
            continue
        log("INFO", f"Verifying {name} for {target.arch}")
        cmd = [tool, "-C", "-p", str(key), "-x", SIGNATURE_FILE, name]
        try:
            run(cmd, cwd=target.out_dir, capture_output=True)
        except FileNotFoundError:
            raise VerifyError(f"Verification tool '{tool}' not found; install signify or set SIGNIFY")
        except subprocess.CalledProcessError as exc:
            output = "\n".join(part for part in (exc.stdout, exc.stderr) if part)
            raise VerifyError(f"verification of '{name}' for '{target.arch}' failed!\n{output}".rstrip())
