"""Valgrind tools and the layout of their output and log files."""

from __future__ import annotations

import dataclasses
import io
import logging
import os
import re
from collections.abc import Iterable, Iterator
from dataclasses import dataclass
from enum import Enum
from pathlib import Path
from typing import IO, ClassVar

from .baseline import BaselineKind
from .util import truncate_str_utf8

logger = logging.getLogger(__name__)

_ILLEGAL_RE = re.compile(r'[/?<>\\:*|"]')
_CONTROL_RE = re.compile(r"[\x00-\x1f\x80-\x9f]")
_RESERVED_RE = re.compile(r"^\.+\Z")

_MAX_NAME_BYTES = 200


def _sanitize_filename(name: str, replacement: str = "_") -> str:
    name = _ILLEGAL_RE.sub(replacement, name)
    name = _CONTROL_RE.sub(replacement, name)
    return _RESERVED_RE.sub(replacement, name, count=1)


class ValgrindTool(Enum):
    """A valgrind tool; the value is the id used by ``valgrind --tool``."""

    CALLGRIND = "callgrind"
    MEMCHECK = "memcheck"
    HELGRIND = "helgrind"
    DRD = "drd"
    MASSIF = "massif"
    DHAT = "dhat"
    BBV = "exp-bbv"

    @property
    def id(self) -> str:
        """The id used by the ``valgrind --tool`` option."""
        return self.value

    def has_output_file(self) -> bool:
        """True if the tool writes an output file in addition to its log."""
        return self in (
            ValgrindTool.CALLGRIND,
            ValgrindTool.DHAT,
            ValgrindTool.BBV,
            ValgrindTool.MASSIF,
        )

    @classmethod
    def from_id(cls, value: str) -> ValgrindTool:
        """Look up a tool by its id, raising ``ValueError`` for unknown ids."""
        for tool in cls:
            if tool.value == value:
                return tool
        raise ValueError(f"Unknown tool '{value}'")


@dataclass(frozen=True)
class ToolOutputPathKind:
    """The kind of a tool output file, optionally bound to a baseline name."""

    OUT: ClassVar[ToolOutputPathKind]
    OLD_OUT: ClassVar[ToolOutputPathKind]
    LOG: ClassVar[ToolOutputPathKind]
    OLD_LOG: ClassVar[ToolOutputPathKind]

    variant: str
    baseline: str | None = None

    @classmethod
    def base(cls, name: str) -> ToolOutputPathKind:
        """An output file of the named baseline."""
        return cls("base", str(name))

    @classmethod
    def base_log(cls, name: str) -> ToolOutputPathKind:
        """A log file of the named baseline."""
        return cls("base_log", str(name))

    @property
    def is_log(self) -> bool:
        return self.variant in ("log", "old_log", "base_log")

    @property
    def is_old(self) -> bool:
        return self.variant in ("old_out", "old_log")

    @property
    def is_base(self) -> bool:
        return self.variant in ("base", "base_log")


ToolOutputPathKind.OUT = ToolOutputPathKind("out")
ToolOutputPathKind.OLD_OUT = ToolOutputPathKind("old_out")
ToolOutputPathKind.LOG = ToolOutputPathKind("log")
ToolOutputPathKind.OLD_LOG = ToolOutputPathKind("old_log")


def _is_base_suffix(suffix: str) -> bool:
    if "." not in suffix:
        return False
    return suffix.rsplit(".", 1)[1].startswith("base@")


@dataclass(frozen=True)
class ToolOutputPath:
    """Describes where the output or log files of a tool run live."""

    kind: ToolOutputPathKind
    tool: ValgrindTool
    baseline_kind: BaselineKind
    dir: Path
    name: str
    modifiers: tuple[str, ...] = ()

    @classmethod
    def create(
        cls,
        kind: ToolOutputPathKind,
        tool: ValgrindTool,
        baseline_kind: BaselineKind,
        base_dir: str | os.PathLike,
        module: str,
        name: str,
    ) -> ToolOutputPath:
        """Build the path below ``base_dir``/``module``/``name`` with a sanitized name."""
        sanitized = truncate_str_utf8(_sanitize_filename(name), _MAX_NAME_BYTES)
        directory = Path(base_dir).joinpath(*module.split("::"), sanitized)
        return cls(kind, tool, baseline_kind, directory, sanitized)

    @classmethod
    def with_init(
        cls,
        kind: ToolOutputPathKind,
        tool: ValgrindTool,
        baseline_kind: BaselineKind,
        base_dir: str | os.PathLike,
        module: str,
        name: str,
    ) -> ToolOutputPath:
        """Like :meth:`create` but also create the output directory."""
        output = cls.create(kind, tool, baseline_kind, base_dir, module, name)
        output.init()
        return output

    def init(self) -> None:
        """Create the output directory."""
        try:
            self.dir.mkdir(parents=True, exist_ok=True)
        except OSError as error:
            raise OSError(f"Failed to create benchmark directory: '{self.dir}'") from error

    def clear(self) -> None:
        """Remove all files matching this output path."""
        for entry in self.real_paths():
            try:
                entry.unlink()
            except OSError as error:
                raise OSError(f"Failed to remove benchmark file: '{entry}'") from error

    def shift(self) -> None:
        """Move the current files to ``*.old`` or, for a named baseline, remove them."""
        if not self.baseline_kind.is_old():
            self.clear()
            return
        self.to_base_path().clear()
        for entry in self.real_paths():
            new_path = entry.with_name(entry.name + ".old")
            try:
                entry.rename(new_path)
            except OSError as error:
                raise OSError(
                    f"Failed to move benchmark file from '{entry}' to '{new_path}'"
                ) from error

    def exists(self) -> bool:
        """True if at least one matching file exists."""
        try:
            return bool(self.real_paths())
        except OSError:
            return False

    def is_multiple(self) -> bool:
        """True if more than one matching file exists."""
        try:
            return len(self.real_paths()) > 1
        except OSError:
            return False

    def to_base_path(self) -> ToolOutputPath:
        """The path of the baseline files this path is compared against."""
        variant = self.kind.variant
        baseline = self.baseline_kind.name
        kind = self.kind
        if baseline is None:
            if variant == "out":
                kind = ToolOutputPathKind.OLD_OUT
            elif variant == "log":
                kind = ToolOutputPathKind.OLD_LOG
        elif variant in ("out", "base"):
            kind = ToolOutputPathKind.base(str(baseline))
        elif variant in ("log", "base_log"):
            kind = ToolOutputPathKind.base_log(str(baseline))
        return dataclasses.replace(self, kind=kind)

    def to_tool_output(self, tool: ValgrindTool) -> ToolOutputPath:
        """The same path for another tool."""
        return dataclasses.replace(self, tool=tool)

    def to_log_output(self) -> ToolOutputPath:
        """The corresponding log file path."""
        variant = self.kind.variant
        kind = self.kind
        if variant in ("out", "old_out"):
            kind = ToolOutputPathKind.LOG
        elif variant == "base":
            kind = ToolOutputPathKind.base_log(self.kind.baseline)
        return dataclasses.replace(self, kind=kind)

    def open(self) -> IO[str]:
        """Open the file at :meth:`to_path` for reading."""
        path = self.to_path()
        try:
            return path.open(encoding="utf-8", errors="replace")
        except OSError as error:
            raise OSError(f"Error opening {self.tool.id} output file '{path}'") from error

    def lines(self) -> Iterator[str]:
        """Iterate over the lines of the file without line endings."""
        handle = self.open()

        def generate() -> Iterator[str]:
            with handle:
                for line in handle:
                    yield line.removesuffix("\n").removesuffix("\r")

        return generate()

    def dump_log(self, writer: IO) -> None:
        """Copy all matching files to ``writer`` if info logging is enabled."""
        if not logger.isEnabledFor(logging.INFO):
            return
        for path in self.real_paths():
            logger.info("%s log output '%s':", self.tool.id, path)
            try:
                data = path.read_bytes()
            except OSError as error:
                raise OSError(
                    f"Error opening {self.tool.id} output file '{path}'"
                ) from error
            if isinstance(writer, io.TextIOBase):
                writer.write(data.decode("utf-8", errors="replace"))
            else:
                writer.write(data)

    def extension(self) -> str:
        """The file extension including modifiers and baseline suffix."""
        stem = "log" if self.kind.is_log else "out"
        if self.modifiers:
            stem = f"{stem}.{'.'.join(self.modifiers)}"
        if self.kind.is_old:
            return f"{stem}.old"
        if self.kind.is_base:
            return f"{stem}.base@{self.kind.baseline}"
        return stem

    def with_modifiers(self, modifiers: Iterable[str]) -> ToolOutputPath:
        """A copy of this path with the given modifiers replacing the current ones."""
        return dataclasses.replace(self, modifiers=tuple(str(m) for m in modifiers))

    def to_path(self) -> Path:
        """The concrete file path."""
        return self.dir / f"{self.tool.id}.{self.name}.{self.extension()}"

    def real_paths(self) -> list[Path]:
        """All existing files in the directory that match this path's tool, name and kind."""
        prefix = f"{self.tool.id}.{self.name}."
        try:
            entries = list(os.scandir(self.dir))
        except OSError as error:
            raise OSError(f"Failed opening benchmark directory: '{self.dir}'") from error

        stem = "log" if self.kind.is_log else "out"
        paths = []
        for entry in entries:
            if not entry.name.startswith(prefix):
                continue
            suffix = entry.name[len(prefix):]
            if not suffix.startswith(stem):
                continue
            if self.kind.is_old:
                is_match = suffix.endswith(".old")
            elif self.kind.is_base:
                is_match = suffix.endswith(f".base@{self.kind.baseline}")
            else:
                is_match = not (suffix.endswith(".old") or _is_base_suffix(suffix))
            if is_match:
                paths.append(Path(entry.path))
        return sorted(paths)

    def __str__(self) -> str:
        return str(self.to_path())