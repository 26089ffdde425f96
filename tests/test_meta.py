from pathlib import Path
from unittest import mock

import pytest

from iai_runner.meta import Cmd, VersionMismatchError, compare_versions, detect_valgrind


def _which(available):
    def which(name, *args, **kwargs):
        return f"/usr/bin/{name}" if name in available else None

    return which


def test_cmd_to_command():
    cmd = Cmd(Path("/usr/bin/setarch"), ["x86_64", "-R"])
    assert cmd.to_command() == ["/usr/bin/setarch", "x86_64", "-R"]


def test_compare_versions_equal():
    assert compare_versions("0.10.2", "0.10.2") is None


def test_compare_versions_runner_older():
    with pytest.raises(VersionMismatchError) as info:
        compare_versions("0.9.0", "0.10.0")
    assert info.value.comparison == "<"
    assert info.value.runner_version == "0.9.0"
    assert info.value.library_version == "0.10.0"


def test_compare_versions_runner_newer():
    with pytest.raises(VersionMismatchError) as info:
        compare_versions("0.10.1", "0.10.0")
    assert info.value.comparison == ">"


def test_compare_versions_unparseable():
    with pytest.raises(VersionMismatchError) as info:
        compare_versions("0.10.0", "")
    assert info.value.comparison == "!="


def test_detect_valgrind_allow_aslr():
    with mock.patch("shutil.which", side_effect=_which({"valgrind", "setarch"})):
        valgrind, wrapper = detect_valgrind(True, "linux", "x86_64")
    assert valgrind.to_command() == ["/usr/bin/valgrind"]
    assert wrapper is None


def test_detect_valgrind_linux_setarch():
    with mock.patch("shutil.which", side_effect=_which({"valgrind", "setarch"})):
        valgrind, wrapper = detect_valgrind(False, "Linux", "aarch64")
    assert wrapper.to_command() == ["/usr/bin/setarch", "aarch64", "-R", "/usr/bin/valgrind"]
    assert valgrind.bin == Path("/usr/bin/valgrind")


def test_detect_valgrind_linux_without_setarch():
    with mock.patch("shutil.which", side_effect=_which({"valgrind"})):
        _, wrapper = detect_valgrind(False, "linux", "x86_64")
    assert wrapper is None


def test_detect_valgrind_freebsd():
    with mock.patch("shutil.which", side_effect=_which({"valgrind", "proccontrol"})):
        _, wrapper = detect_valgrind(False, "FreeBSD", "amd64")
    assert wrapper.to_command() == [
        "/usr/bin/proccontrol",
        "-m",
        "aslr",
        "-s",
        "disable",
        "/usr/bin/valgrind",
    ]


def test_detect_valgrind_other_system():
    with mock.patch("shutil.which", side_effect=_which({"valgrind", "setarch"})):
        _, wrapper = detect_valgrind(False, "darwin", "x86_64")
    assert wrapper is None


def test_detect_valgrind_missing():
    with mock.patch("shutil.which", side_effect=_which(set())):
        with pytest.raises(FileNotFoundError):
            detect_valgrind(True, "linux", "x86_64")