"""Common helpers shared by the benchmark runner."""

from __future__ import annotations

import logging
import math
import os
import shutil
import subprocess
import sys
from pathlib import Path
from typing import BinaryIO

logger = logging.getLogger(__name__)

_ASCII_WHITESPACE = b" \t\n\r\x0c"
_YESNO = {"yes": True, "no": False}


def bool_to_yesno(value: bool) -> str:
    """Convert a boolean to ``"yes"`` or ``"no"``."""
    flag = bool(value)
    return next(text for text, meaning in _YESNO.items() if meaning is flag)


def yesno_to_bool(value: str) -> bool | None:
    """Convert ``"yes"``/``"no"`` (surrounding whitespace ignored) to a boolean.

    Returns ``None`` if the string is neither.
    """
    return _YESNO.get(value.strip())


def truncate_str_utf8(string: str, length: int) -> str:
    """Truncate ``string`` to at most ``length`` utf-8 bytes without splitting a character."""
    total = 0
    for index, char in enumerate(string):
        total += len(char.encode("utf-8"))
        if total > length:
            return string[:index]
    return string


def trim(data: bytes) -> bytes:
    """Strip ascii whitespace from both ends of ``data``."""
    return data.strip(_ASCII_WHITESPACE)


def _write_all(stream: BinaryIO, data: bytes) -> None:
    if not data:
        return
    stream.write(data)
    if not data.endswith(b"\n"):
        stream.write(b"\n")
    stream.flush()


def _binary_stream(stream) -> BinaryIO:
    stream.flush()
    return getattr(stream, "buffer", stream)


def write_all_to_stdout(data: bytes) -> None:
    """Dump ``data`` to stdout, ending with a newline."""
    _write_all(_binary_stream(sys.stdout), data)


def write_all_to_stderr(data: bytes) -> None:
    """Dump ``data`` to stderr, ending with a newline."""
    _write_all(_binary_stream(sys.stderr), data)


def copy_directory(source: str | os.PathLike, dest: str | os.PathLike, follow_symlinks: bool) -> None:
    """Copy ``source`` recursively to ``dest`` preserving mode, ownership and timestamps.

    With ``follow_symlinks`` the targets of symlinks are copied instead of the links.

    Raises ``OSError`` if ``cp`` cannot be started and
    ``subprocess.CalledProcessError`` if it fails.
    """
    cp = resolve_binary_path("cp")
    command = [str(cp)]
    if follow_symlinks:
        command += ["-H", "-L"]
    command += ["-v", "-R", "-p", os.fspath(source), os.fspath(dest)]

    try:
        completed = subprocess.run(command, capture_output=True, check=False)
    except OSError as error:
        raise OSError(f"Error launching '{cp}': {error}") from error
    if completed.returncode != 0:
        raise subprocess.CalledProcessError(
            completed.returncode, command, completed.stdout, completed.stderr
        )

    for name, output in (("stdout", completed.stdout), ("stderr", completed.stderr)):
        if output:
            logger.debug("copy fixtures: %s:", name)
            if logger.isEnabledFor(logging.DEBUG):
                write_all_to_stderr(output)


def resolve_binary_path(binary: str | os.PathLike) -> Path:
    """Resolve the absolute path of an executable from the PATH or a relative/absolute path.

    Raises ``FileNotFoundError`` if no such executable exists.
    """
    name = os.fspath(binary)
    found = shutil.which(name)
    if found is None:
        raise FileNotFoundError(
            f"cannot find binary path: '{name}' could not be found. "
            f"Is '{name}' installed, executable and in the PATH?"
        )
    path = Path(found).absolute()
    logger.debug("Found '%s': '%s'", name, path)
    return path


def to_string_signed_short(n: float) -> str:
    """Format a float with a sign and fewer decimals the larger its integer part is."""
    n_abs = abs(n)
    for limit, precision in ((10.0, 5), (100.0, 4), (1000.0, 3), (10000.0, 2), (100_000.0, 1)):
        if n_abs < limit:
            return f"{n:+.{precision}f}"
    return f"{n:+.0f}"


def percentage_diff(new: int, old: int) -> float:
    """Return the difference between ``new`` and ``old`` as a percentage of ``old``."""
    if new == old:
        return 0.0
    if old == 0:
        return math.inf
    return (float(new) - float(old)) / float(old) * 100.0


def factor_diff(new: int, old: int) -> float:
    """Return the difference between ``new`` and ``old`` as a factor.

    A decrease is expressed as a negative factor (``old / new``).
    """
    if new == old:
        return 1.0
    if new > old:
        return math.inf if old == 0 else float(new) / float(old)
    if new == 0:
        return -math.inf
    return -(float(old) / float(new))


def make_relative(base_dir: str | os.PathLike, path: str | os.PathLike) -> Path:
    """Make ``path`` relative to ``base_dir`` if it lies below it, else return it unchanged."""
    path = Path(path)
    try:
        return path.relative_to(Path(base_dir))
    except ValueError:
        return path


def make_absolute(base_dir: str | os.PathLike, path: str | os.PathLike) -> Path:
    """Prefix ``path`` with ``base_dir`` unless it already starts with it."""
    base_dir, path = Path(base_dir), Path(path)
    try:
        path.relative_to(base_dir)
    except ValueError:
        return base_dir / path
    return path