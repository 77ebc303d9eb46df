"""Emulator process supervision: spawn QEMU on a pty and own its lifetime."""

from __future__ import annotations

import queue
import sys
import threading
from contextlib import contextmanager
from typing import Iterator, Optional, Sequence, TextIO

try:
    import pexpect
except ImportError as exc:  # pragma: no cover
    raise SystemExit("pexpect is required but not installed") from exc

from buildlet.constants import SESSION_TIMEOUT
from buildlet.exceptions import DialogueError
from buildlet.utils import log


class ConsoleTee:
    """File-like sink for pexpect's logfile_read that never blocks the reader.

    Console text is queued and written to the real stream by a daemon thread,
    so a slow terminal cannot delay pattern matching.
    """

    _STOP = object()

    def __init__(self, stream: Optional[TextIO] = None) -> None:
        self.stream = stream or sys.stdout
        self._queue: "queue.SimpleQueue" = queue.SimpleQueue()
        self._thread = threading.Thread(target=self._drain, name="console-tee", daemon=True)
        self._thread.start()

    def write(self, data: str) -> int:
        self._queue.put(data)
        return len(data)

    def flush(self) -> None:
        pass

    def _drain(self) -> None:
        while True:
            item = self._queue.get()
            if item is self._STOP:
                return
            try:
                self.stream.write(item)
                self.stream.flush()
            except (OSError, ValueError):
                # terminal went away, drop the output
                continue

    def close(self, timeout: float = 5.0) -> None:
        self._queue.put(self._STOP)
        self._thread.join(timeout=timeout)


class Emulator:
    """Owns one emulator child process and its console."""

    def __init__(
        self,
        argv: Sequence[str],
        session_timeout: int = SESSION_TIMEOUT,
        mirror_console: bool = True,
    ) -> None:
        if not argv:
            raise DialogueError("Emulator command is empty")
        self.argv = list(argv)
        self.session_timeout = session_timeout
        self.mirror_console = mirror_console
        self.child: Optional[pexpect.spawn] = None
        self._tee: Optional[ConsoleTee] = None

    def spawn(self) -> pexpect.spawn:
        log("INFO", f"Starting emulator: {' '.join(self.argv)}")
        try:
            child = pexpect.spawn(
                self.argv[0],
                self.argv[1:],
                timeout=self.session_timeout,
                encoding="utf-8",
                codec_errors="replace",
                dimensions=(24, 200),
            )
        except pexpect.ExceptionPexpect as exc:
            raise DialogueError(f"Failed to start {self.argv[0]}: {exc}") from exc
        if self.mirror_console:
            self._tee = ConsoleTee()
            child.logfile_read = self._tee
        self.child = child
        return child

    def close(self) -> None:
        if self.child is not None:
            child, self.child = self.child, None
            try:
                child.close(force=True)
            except pexpect.ExceptionPexpect as exc:
                log("WARN", f"Emulator did not exit cleanly: {exc}")
            else:
                log("DEBUG", f"Emulator exited (status={child.exitstatus}, signal={child.signalstatus})")
        if self._tee is not None:
            self._tee.close()
            self._tee = None

    @contextmanager
    def session(self) -> Iterator[pexpect.spawn]:
        child = self.spawn()
        try:
            yield child
        finally:
            self.close()
