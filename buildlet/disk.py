"""Boot disk provisioning for the emulated guest."""

from __future__ import annotations

import subprocess
from pathlib import Path

from buildlet.constants import DISK_IMAGE_NAME, DISK_PREALLOCATION, DISK_SIZE
from buildlet.exceptions import ProvisionError
from buildlet.utils import log, run, validate_disk_size


def _output(exc: subprocess.CalledProcessError) -> str:
    return "\n".join(part.strip() for part in (exc.stdout, exc.stderr) if part and part.strip())


def provision_disk(
    out_dir: Path,
    miniroot: str,
    size: str = DISK_SIZE,
    preallocation: str = DISK_PREALLOCATION,
    image_name: str = DISK_IMAGE_NAME,
) -> Path:
    """Create the raw boot disk and write the miniroot onto its first blocks.

    Creating the image is required and raises ProvisionError on failure.
    Writing the miniroot is best effort: a failed dd is logged and the build
    carries on, since a target may boot its installer some other way (for
    example from bsd.rd). A disk without the miniroot will then only show up
    as a dialogue timeout at the boot prompt.
    """
    validate_disk_size(size)
    image = out_dir / image_name
    log("INFO", f"Creating raw disk {image} ({size}, preallocation={preallocation})")
    try:
        run(
            ["qemu-img", "create", "-f", "raw", "-o", f"preallocation={preallocation}", image_name, size],
            cwd=out_dir,
            capture_output=True,
        )
    except FileNotFoundError:
        raise ProvisionError("qemu-img not found; install QEMU tools")
    except subprocess.CalledProcessError as exc:
        raise ProvisionError(f"image creation failed for {image}:\n{_output(exc)}".rstrip())

    try:
        run(
            ["dd", "conv=notrunc", f"if={miniroot}", f"of={image_name}"],
            cwd=out_dir,
            capture_output=True,
        )
    except (FileNotFoundError, subprocess.CalledProcessError) as exc:
        detail = _output(exc) if isinstance(exc, subprocess.CalledProcessError) else str(exc)
        log("WARN", f"Could not write {miniroot} onto {image}; continuing without it: {detail}")
    else:
        log("DEBUG", f"Wrote {miniroot} onto {image}")
    return image
