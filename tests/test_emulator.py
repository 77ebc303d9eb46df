"""Tests for buildlet.emulator."""

from __future__ import annotations

import io
from unittest.mock import MagicMock, patch

import pexpect
import pytest

from buildlet.emulator import ConsoleTee, Emulator
from buildlet.exceptions import DialogueError

ARGV = ["qemu-system-x86_64", "-nographic", "-drive", "file=/tmp/disk.raw,format=raw"]


class TestEmulator:
    def test_spawn_arguments(self):
        with patch("buildlet.emulator.pexpect.spawn") as mock_spawn:
            emulator = Emulator(ARGV, session_timeout=900, mirror_console=False)
            child = emulator.spawn()

        assert child is mock_spawn.return_value
        args, kwargs = mock_spawn.call_args
        assert args == ("qemu-system-x86_64", ARGV[1:])
        assert kwargs["timeout"] == 900
        assert kwargs["encoding"] == "utf-8"

    def test_session_closes_child(self):
        with patch("buildlet.emulator.pexpect.spawn") as mock_spawn:
            emulator = Emulator(ARGV, mirror_console=False)
            with emulator.session() as console:
                assert console is mock_spawn.return_value

        mock_spawn.return_value.close.assert_called_once_with(force=True)
        assert emulator.child is None

    def test_session_closes_child_on_error(self):
        with patch("buildlet.emulator.pexpect.spawn") as mock_spawn:
            emulator = Emulator(ARGV, mirror_console=False)
            with pytest.raises(DialogueError):
                with emulator.session():
                    raise DialogueError("boot prompt never appeared")

        mock_spawn.return_value.close.assert_called_once_with(force=True)

    def test_close_is_idempotent(self):
        with patch("buildlet.emulator.pexpect.spawn") as mock_spawn:
            emulator = Emulator(ARGV, mirror_console=False)
            emulator.spawn()
            emulator.close()
            emulator.close()
        assert mock_spawn.return_value.close.call_count == 1

    def test_close_failure_is_logged(self):
        with patch("buildlet.emulator.pexpect.spawn") as mock_spawn, \
                patch("buildlet.emulator.log") as mock_log:
            mock_spawn.return_value.close.side_effect = pexpect.ExceptionPexpect("still alive")
            emulator = Emulator(ARGV, mirror_console=False)
            emulator.spawn()
            emulator.close()
        mock_log.assert_any_call("WARN", "Emulator did not exit cleanly: still alive")

    def test_spawn_failure(self):
        with patch("buildlet.emulator.pexpect.spawn", side_effect=pexpect.ExceptionPexpect("not found")):
            emulator = Emulator(ARGV, mirror_console=False)
            with pytest.raises(DialogueError, match="Failed to start qemu-system-x86_64"):
                emulator.spawn()

    def test_empty_command(self):
        with pytest.raises(DialogueError, match="empty"):
            Emulator([])

    def test_console_mirrored_only_when_enabled(self):
        with patch("buildlet.emulator.pexpect.spawn") as mock_spawn:
            mock_spawn.return_value = MagicMock(logfile_read=None)
            quiet = Emulator(ARGV, mirror_console=False)
            quiet.spawn()
            assert mock_spawn.return_value.logfile_read is None
            quiet.close()

            loud = Emulator(ARGV, mirror_console=True)
            with patch("buildlet.emulator.ConsoleTee") as mock_tee:
                child = loud.spawn()
                assert child.logfile_read is mock_tee.return_value
                loud.close()
            mock_tee.return_value.close.assert_called_once_with()


class TestConsoleTee:
    def test_writes_reach_stream_in_order(self):
        stream = io.StringIO()
        tee = ConsoleTee(stream)
        assert tee.write("boot> ") == 6
        tee.write("set tty com0\r\n")
        tee.flush()
        tee.close()
        assert stream.getvalue() == "boot> set tty com0\r\n"

    def test_closed_stream_does_not_raise(self):
        stream = io.StringIO()
        stream.close()
        tee = ConsoleTee(stream)
        tee.write("lost")
        tee.close()
