"""Locating valgrind, disabling ASLR and checking runner/library versions."""

from __future__ import annotations

import logging
import os
import platform
import re
from dataclasses import dataclass, field
from pathlib import Path

from .util import resolve_binary_path

logger = logging.getLogger(__name__)

_VERSION_PART_RE = re.compile(r"\d+|[A-Za-z]+")


@dataclass
class Cmd:
    """An executable together with its leading arguments."""

    bin: Path
    args: list[str] = field(default_factory=list)

    def to_command(self) -> list[str]:
        """The argument list to start this command with."""
        return [os.fspath(self.bin), *self.args]


class VersionMismatchError(Exception):
    """Raised when the runner and the library versions differ."""

    def __init__(self, comparison: str, runner_version: str, library_version: str) -> None:
        self.comparison = comparison
        self.runner_version = runner_version
        self.library_version = library_version
        relation = {"<": "older than", ">": "newer than"}.get(comparison, "different from")
        super().__init__(
            f"iai-callgrind-runner ({runner_version}) is {relation} "
            f"iai-callgrind ({library_version}). Versions must match."
        )


def detect_valgrind(
    allow_aslr: bool, system: str | None = None, arch: str | None = None
) -> tuple[Cmd, Cmd | None]:
    """Find valgrind and, unless ``allow_aslr``, a wrapper that disables ASLR.

    Returns the valgrind command and the wrapper command (or ``None``).
    Raises ``FileNotFoundError`` if valgrind is not installed.
    """
    system = (system or platform.system()).lower()
    arch = arch or platform.machine()
    valgrind_path = resolve_binary_path("valgrind")
    valgrind = Cmd(valgrind_path)

    if allow_aslr:
        logger.debug("Running with ASLR enabled")
        return valgrind, None

    if system == "linux":
        logger.debug("Trying to run with ASLR disabled: Using 'setarch'")
        try:
            setarch = resolve_binary_path("setarch")
        except FileNotFoundError:
            logger.debug(
                "Failed to switch ASLR off: 'setarch' not found. Running with ASLR enabled"
            )
            return valgrind, None
        return valgrind, Cmd(setarch, [arch, "-R", os.fspath(valgrind_path)])

    if system == "freebsd":
        logger.debug("Trying to run with ASLR disabled: Using 'proccontrol'")
        try:
            proccontrol = resolve_binary_path("proccontrol")
        except FileNotFoundError:
            logger.debug(
                "Failed to switch ASLR off: 'proccontrol' not found. Running with ASLR enabled"
            )
            return valgrind, None
        return valgrind, Cmd(
            proccontrol, ["-m", "aslr", "-s", "disable", os.fspath(valgrind_path)]
        )

    logger.debug("Failed to switch ASLR off. No utility available. Running with ASLR enabled")
    return valgrind, None


def _parse_version(version: str) -> list[int | str] | None:
    parts = _VERSION_PART_RE.findall(version.strip())
    if not parts:
        return None
    parsed: list[int | str] = [int(p) if p.isdigit() else p.lower() for p in parts]
    while len(parsed) > 1 and parsed[-1] == 0:
        parsed.pop()
    return parsed


def _compare(left: list[int | str], right: list[int | str]) -> int:
    for a, b in zip(left, right):
        if a == b:
            continue
        if isinstance(a, int) and isinstance(b, int):
            return -1 if a < b else 1
        if isinstance(a, str) and isinstance(b, str):
            return -1 if a < b else 1
        # A number ranks above a textual (pre-release) part
        return 1 if isinstance(a, int) else -1
    if len(left) == len(right):
        return 0
    longer, sign = (left, 1) if len(left) > len(right) else (right, -1)
    extra = longer[min(len(left), len(right))]
    # A trailing text part marks a pre-release, which ranks lower
    return sign if isinstance(extra, int) else -sign


def compare_versions(runner_version: str, library_version: str) -> None:
    """Raise ``VersionMismatchError`` unless both versions are equal."""
    runner = _parse_version(runner_version)
    library = _parse_version(library_version)
    if runner is None or library is None:
        raise VersionMismatchError("!=", runner_version, library_version)
    result = _compare(runner, library)
    if result < 0:
        raise VersionMismatchError("<", runner_version, library_version)
    if result > 0:
        raise VersionMismatchError(">", runner_version, library_version)