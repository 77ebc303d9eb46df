"""Scripted console dialogue with the guest.

A dialogue is an ordered tuple of steps. ``Expect`` blocks until its pattern
shows up on the console, ``Send`` writes literal text and moves on. The
``Dialogue`` runner walks the steps strictly in order against anything that
offers pexpect's ``expect(pattern, timeout=...)`` and ``send(text)``, so a
script can be exercised against a canned transcript as well as a live QEMU.

The runner stops at the first pattern that does not appear in time. It never
looks at exit codes inside the guest: a shell prompt coming back is taken to
mean the previous command finished, whether or not it succeeded.
"""

from __future__ import annotations

import time
from dataclasses import dataclass
from pathlib import PurePosixPath
from typing import Callable, Optional, Sequence, Tuple, Union
from urllib.parse import urlsplit

try:
    import pexpect
except ImportError as exc:  # pragma: no cover
    raise SystemExit("pexpect is required but not installed") from exc

from buildlet.autoinstall import control_url
from buildlet.constants import (
    GUEST_DIFF_PATH,
    GUEST_PACKAGES,
    HOSTNAME,
    PKG_MIRROR,
    SESSION_TIMEOUT,
)
from buildlet.exceptions import DialogueError, DialogueTimeout
from buildlet.models import Settings, Target
from buildlet.utils import log


@dataclass(frozen=True)
class Expect:
    pattern: str
    timeout: Optional[float] = None  # None: whatever is left of the session
    phase: Optional[str] = None


@dataclass(frozen=True)
class Send:
    text: str
    phase: Optional[str] = None


Step = Union[Expect, Send]


def _checkout_dir(source_repo: str) -> str:
    name = PurePosixPath(urlsplit(source_repo).path).name
    if name.endswith(".git"):
        name = name[: -len(".git")]
    return f"{name}/unix"


def build_script(
    target: Target,
    settings: Settings,
    guest_diff_path: str = GUEST_DIFF_PATH,
) -> Tuple[Step, ...]:
    """Boot, autoinstall, log in and run the x/sys regeneration workload."""
    root_prompt = f"{HOSTNAME}#"
    user_prompt = rf"{HOSTNAME}\$"
    go_env = f"env GOOS=openbsd GOARCH={target.go_arch}"
    return (
        Expect(r"boot>\s*$", phase="boot"),
        Send("set tty com0\n"),
        Expect("boot>"),
        Send("\n"),
        Expect("utoinstall or"),
        Send("a\n"),
        Expect("Response file", phase="install"),
        Send(control_url(settings, "install.conf") + "\n"),
        Expect("login:", timeout=settings.install_timeout),
        Send("root\n", phase="login"),
        Expect("Password:"),
        Send(settings.root_password + "\n"),
        Expect(root_prompt, phase="workload"),
        Send(f"env PKG_PATH={PKG_MIRROR} pkg_add {' '.join(GUEST_PACKAGES)}\n"),
        Expect(root_prompt),
        Send(f"su - {settings.build_user}\n"),
        Expect(user_prompt),
        Send(f"git clone {settings.source_repo}\n"),
        Expect(user_prompt),
        Send(f"cd {_checkout_dir(settings.source_repo)}\n"),
        Expect(user_prompt),
        Send(f"{go_env} ./mkall.sh\n"),
        Expect(user_prompt),
        Send(f"{go_env} go test ./...\n"),
        Expect(user_prompt),
        Send(f"git diff | openssl enc -base64 >{guest_diff_path}\n"),
        Expect(user_prompt, phase="upload"),
        Send(f"curl -d @{guest_diff_path} {control_url(settings)}\n"),
        Expect(user_prompt),
        Send("\n"),
    )


class Dialogue:
    """Runs a step sequence against a console within one session budget."""

    def __init__(
        self,
        steps: Sequence[Step],
        session_timeout: float = SESSION_TIMEOUT,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self.steps = tuple(steps)
        self.session_timeout = session_timeout
        self._clock = clock

    def run(self, console) -> None:
        deadline = self._clock() + self.session_timeout
        total = len(self.steps)
        phase: Optional[str] = None
        for index, step in enumerate(self.steps, start=1):
            if step.phase and step.phase != phase:
                phase = step.phase
                log("INFO", f"Console dialogue: {phase} phase")

            if isinstance(step, Send):
                log("DEBUG", f"[{index}/{total}] send {step.text!r}")
                console.send(step.text)
                continue

            remaining = deadline - self._clock()
            if remaining <= 0:
                raise DialogueTimeout(
                    f"Session time of {self.session_timeout:.0f}s used up before step {index}/{total} "
                    f"({step.pattern!r})"
                )
            timeout = min(step.timeout, remaining) if step.timeout is not None else remaining
            log("DEBUG", f"[{index}/{total}] expect {step.pattern!r} (timeout {timeout:.0f}s)")
            try:
                console.expect(step.pattern, timeout=timeout)
            except pexpect.TIMEOUT:
                raise DialogueTimeout(
                    f"Timed out after {timeout:.0f}s waiting for {step.pattern!r} (step {index}/{total})"
                )
            except pexpect.EOF:
                raise DialogueError(
                    f"Console closed while waiting for {step.pattern!r} (step {index}/{total})"
                )
        log("SUCCESS", f"Console dialogue finished ({total} steps)")
