"""Rendering of the OpenBSD installer response file (install.conf)."""

from __future__ import annotations

from pathlib import Path
from typing import Dict

from buildlet.constants import GUEST_GATEWAY, HOSTNAME
from buildlet.exceptions import ManagerError
from buildlet.models import Settings
from buildlet.utils import hash_password, log


def control_url(settings: Settings, path: str = "") -> str:
    """URL of the control server as reached from inside the guest."""
    return f"http://{GUEST_GATEWAY}:{settings.control_port}/{path.lstrip('/')}"


def render_install_conf(arch: str, arch_info: Dict, settings: Settings) -> str:
    """Return the autoinstall(8) answers for one architecture.

    An ``install_conf`` entry in the architecture table replaces the rendered
    answers with the contents of that file.
    """
    override = arch_info.get("install_conf")
    if override:
        path = Path(override).expanduser()
        try:
            text = path.read_text()
        except OSError as exc:
            raise ManagerError(f"Cannot read install.conf override for '{arch}': {exc}")
        log("INFO", f"Using install.conf override {path} for {arch}")
        return text

    interface = arch_info.get("interface", "em0")
    # Sets were checked with signify on the host, the installer only sees
    # them over plain http.
    answers = [
        ("System hostname", HOSTNAME),
        ("Password for root account", hash_password(settings.root_password)),
        ("Network interfaces", interface),
        (f"IPv4 address for {interface}", "autoconf"),
        (f"IPv6 address for {interface}", "none"),
        ("Start sshd(8) by default", "no"),
        ("Do you expect to run the X Window System", "no"),
        ("Change the default console to com0", "yes"),
        ("Which speed should com0 use", "115200"),
        ("Setup a user", settings.build_user),
        (f"Password for user {settings.build_user}", "*************"),
        ("Allow root ssh login", "no"),
        ("What timezone are you in", "UTC"),
        ("Which disk is the root disk", arch_info.get("root_disk", "sd0")),
        ("Use (W)hole disk MBR, whole disk (G)PT or (E)dit", "whole"),
        ("URL to autopartitioning template for disklabel", control_url(settings, "disklabel")),
        ("Location of sets", "http"),
        ("HTTP proxy URL", "none"),
        ("HTTP Server", f"{GUEST_GATEWAY}:{settings.control_port}"),
        ("Use http instead of https", "yes"),
        ("Server directory", "pub"),
        ("Unable to connect using https. Use http instead", "yes"),
        ("Set name(s)", "-x* done"),
        ("Continue without verification", "yes"),
        ("Directory does not contain SHA256.sig. Continue without verification", "yes"),
        ("Exit to (S)hell, (H)alt or (R)eboot", "R"),
    ]
    return "".join(f"{question} = {answer}\n" for question, answer in answers)
