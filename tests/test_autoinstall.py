"""Tests for buildlet.autoinstall."""

from __future__ import annotations

import pytest

from buildlet.autoinstall import control_url, render_install_conf
from buildlet.exceptions import ManagerError


def answers(text):
    result = {}
    for line in text.splitlines():
        question, _, answer = line.partition(" = ")
        result[question] = answer
    return result


class TestControlUrl:
    def test_root(self, settings):
        assert control_url(settings) == "http://10.0.2.2:25706/"

    def test_path(self, settings):
        assert control_url(settings, "install.conf") == "http://10.0.2.2:25706/install.conf"
        assert control_url(settings, "/disklabel") == "http://10.0.2.2:25706/disklabel"

    def test_port_follows_settings(self, settings):
        settings.control_port = 8080
        assert control_url(settings, "pub") == "http://10.0.2.2:8080/pub"


class TestRenderInstallConf:
    def test_core_answers(self, settings, arch_table, fake_hash):
        conf = answers(render_install_conf("amd64", arch_table["amd64"], settings))
        assert conf["System hostname"] == "buildlet"
        assert conf["Password for root account"] == fake_hash
        assert conf["Network interfaces"] == "em0"
        assert conf["IPv4 address for em0"] == "autoconf"
        assert conf["Which disk is the root disk"] == "wd0"
        assert conf["Setup a user"] == "gopher"
        assert conf["Change the default console to com0"] == "yes"
        assert conf["Which speed should com0 use"] == "115200"
        assert conf["What timezone are you in"] == "UTC"

    def test_sets_served_by_control_server(self, settings, arch_table):
        conf = answers(render_install_conf("amd64", arch_table["amd64"], settings))
        assert conf["URL to autopartitioning template for disklabel"] == "http://10.0.2.2:25706/disklabel"
        assert conf["Location of sets"] == "http"
        assert conf["HTTP Server"] == "10.0.2.2:25706"
        assert conf["Server directory"] == "pub"
        assert conf["Set name(s)"] == "-x* done"
        assert conf["Continue without verification"] == "yes"

    def test_every_line_is_an_answer(self, settings, arch_table):
        text = render_install_conf("amd64", arch_table["amd64"], settings)
        assert text.endswith("\n")
        lines = text.splitlines()
        assert all(" = " in line for line in lines)
        questions = [line.split(" = ")[0] for line in lines]
        assert len(questions) == len(set(questions))

    def test_root_password_is_hashed(self, settings, arch_table):
        settings.root_password = "s3cret-root"
        text = render_install_conf("amd64", arch_table["amd64"], settings)
        assert "s3cret-root" not in text

    def test_interface_and_disk_from_arch(self, settings):
        info = {"pkg_arch": "aarch64", "go_arch": "arm64", "qemu": [], "interface": "vio0", "root_disk": "sd0"}
        conf = answers(render_install_conf("arm64", info, settings))
        assert conf["Network interfaces"] == "vio0"
        assert conf["IPv6 address for vio0"] == "none"
        assert conf["Which disk is the root disk"] == "sd0"

    def test_override_file_used_verbatim(self, settings, arch_table, tmp_path):
        override = tmp_path / "install.conf"
        override.write_text("System hostname = custom\n")
        info = dict(arch_table["amd64"], install_conf=str(override))
        assert render_install_conf("amd64", info, settings) == "System hostname = custom\n"

    def test_unreadable_override(self, settings, arch_table, tmp_path):
        info = dict(arch_table["amd64"], install_conf=str(tmp_path / "missing.conf"))
        with pytest.raises(ManagerError, match="Cannot read install.conf override for 'amd64'"):
            render_install_conf("amd64", info, settings)
