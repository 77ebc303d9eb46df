"""Utility functions for the OpenBSD buildlet provisioner."""

from __future__ import annotations

import os
import subprocess
import sys
import tempfile
import time
from pathlib import Path
from typing import List, Optional

try:
    import bcrypt  # type: ignore
except ImportError as exc:  # pragma: no cover
    raise SystemExit("bcrypt is required but not installed") from exc

try:
    import requests
except ImportError as exc:  # pragma: no cover
    raise SystemExit("requests is required but not installed") from exc

from buildlet.constants import (
    _LOG_VERBOSE,
    DISK_SIZE_RE,
    RELEASE_RE,
    TRUTHY,
)
from buildlet.exceptions import ManagerError

USER_AGENT = "openbsd-buildlet/1.0"
REQUEST_TIMEOUT = 60


def log(level: str, message: str) -> None:
    """Print a colour-tagged log line; DEBUG lines only appear with LOG_VERBOSE set."""
    if level == "DEBUG" and not _LOG_VERBOSE:
        return
    colours = {
        "INFO": "\033[0;34m",
        "WARN": "\033[1;33m",
        "ERROR": "\033[0;31m",
        "SUCCESS": "\033[0;32m",
        "DEBUG": "\033[0;90m",
    }
    colour = colours.get(level, "")
    reset = "\033[0m" if colour else ""
    print(f"{colour}[{level}]{reset} {message}", flush=True)


def get_env(name: str, default: Optional[str] = None) -> Optional[str]:
    return os.environ.get(name, default)


def get_env_bool(name: str, default: bool = False) -> bool:
    raw = os.environ.get(name)
    if raw is None:
        return default
    return raw.lower() in TRUTHY


def parse_int_env(name: str, default: str, min_val: int = 1, max_val: Optional[int] = None) -> int:
    raw = get_env(name, default)
    assert raw is not None
    try:
        value = int(raw)
    except ValueError:
        raise ManagerError(f"{name} must be an integer (got '{raw}')")
    if value < min_val:
        raise ManagerError(f"{name} must be >= {min_val} (got {value})")
    if max_val is not None and value > max_val:
        raise ManagerError(f"{name} must be <= {max_val} (got {value})")
    return value


def validate_disk_size(raw: str) -> str:
    if not DISK_SIZE_RE.match(raw):
        raise ManagerError(
            f"Invalid DISK_SIZE '{raw}'. Use a number with optional suffix: K, M, G, T (e.g. '10240M')"
        )
    return raw


def parse_size_to_bytes(raw: str) -> int:
    """Convert a qemu-img style size ('10240M', '10G', '512') to bytes."""
    validate_disk_size(raw)
    units = {"K": 1024, "M": 1024**2, "G": 1024**3, "T": 1024**4}
    suffix = raw[-1].upper()
    if suffix in units:
        return int(raw[:-1]) * units[suffix]
    return int(raw)


def validate_release(raw: str) -> str:
    release = raw.strip()
    if not RELEASE_RE.match(release):
        raise ManagerError(f"Invalid OpenBSD release '{raw}'. Expected MAJOR.MINOR (e.g. '7.4')")
    return release


def smush_version(release: str) -> str:
    """Return the release without its dot, as used in set and key names (7.4 -> 74)."""
    return release.replace(".", "")


def download_file(
    url: str,
    destination: Path,
    session: Optional[requests.Session] = None,
    label: str = "Downloading",
) -> None:
    """Stream a URL into destination via a temporary file.

    HTTP errors are raised as ``requests.HTTPError`` so callers can decide
    which status codes are acceptable.
    """
    log("DEBUG", f"{label}: {url}")
    http = session or requests.Session()
    show_progress = has_controlling_tty()
    response = http.get(url, headers={"User-Agent": USER_AGENT}, stream=True, timeout=REQUEST_TIMEOUT)
    with response:
        response.raise_for_status()
        total = response.headers.get("Content-Length")
        total_bytes = int(total) if total else None
        downloaded = 0
        start_time = time.time()

        with tempfile.NamedTemporaryFile(delete=False, dir=destination.parent) as tmp:
            tmp_path = Path(tmp.name)
            try:
                for chunk in response.iter_content(chunk_size=1024 * 256):
                    if not chunk:
                        continue
                    tmp.write(chunk)
                    downloaded += len(chunk)
                    if show_progress and total_bytes:
                        pct = downloaded * 100 / total_bytes
                        downloaded_mb = downloaded / (1024 * 1024)
                        total_mb = total_bytes / (1024 * 1024)
                        print(f"\r  {pct:5.1f}% {downloaded_mb:.1f}/{total_mb:.1f} MiB", end="", flush=True)
                if show_progress and total_bytes:
                    print(flush=True)
            except Exception:
                tmp.close()
                tmp_path.unlink(missing_ok=True)
                raise

    tmp_path.replace(destination)
    elapsed = time.time() - start_time
    log("DEBUG", f"Downloaded {downloaded / (1024 * 1024):.1f} MiB in {elapsed:.1f}s")


def has_controlling_tty() -> bool:
    """Return True if both stdin and stdout are attached to a TTY."""
    for stream in (sys.stdin, sys.stdout):
        try:
            if not stream.isatty():
                return False
        except (AttributeError, ValueError):
            return False
    return True


def ensure_directory(path: Path) -> None:
    path.mkdir(parents=True, exist_ok=True)


def hash_password(password: str) -> str:
    """Generate a bcrypt hash accepted by the OpenBSD installer."""
    hashed = bcrypt.hashpw(password.encode("utf-8"), bcrypt.gensalt())
    return hashed.decode("utf-8")


def run(cmd: List[str], check: bool = True, **kwargs) -> subprocess.CompletedProcess:
    """Run a host command (qemu-img, dd, signify) with text output."""
    log("DEBUG", f"Running: {' '.join(cmd)}")
    result = subprocess.run(cmd, check=check, text=True, **kwargs)
    return result
