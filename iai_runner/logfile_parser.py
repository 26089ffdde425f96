"""Parse the log files written by valgrind tools into summaries."""

from __future__ import annotations

import logging
import os
import re
from dataclasses import dataclass, field
from enum import Enum, auto
from pathlib import Path

from .summary import CostsSummary, ErrorSummary, ToolRunSummary
from .tool import ToolOutputPath
from .util import make_relative

logger = logging.getLogger(__name__)

# All patterns allow for the timestamps written with --time-stamp=yes
EXTRACT_FIELDS_RE = re.compile(
    r"^\s*(==|--)([0-9:.]+\s+)?[0-9]+(==|--)\s*(?P<key>.*?)\s*:\s*(?P<value>.*)\s*$"
)
EMPTY_LINE_RE = re.compile(r"^\s*(==|--)([0-9:.]+\s+)?[0-9]+(==|--)\s*$")
STRIP_PREFIX_RE = re.compile(r"^\s*(==|--)([0-9:.]+\s+)?[0-9]+(==|--) (?P<rest>.*)$")
_EXTRACT_PID_RE = re.compile(r"^\s*(==|--)([0-9:.]+\s+)?(?P<pid>[0-9]+)(==|--).*")


class LogfileParseError(ValueError):
    """Raised when a log file cannot be parsed."""

    def __init__(self, path: str | os.PathLike, message: str) -> None:
        super().__init__(f"Error parsing file '{os.fspath(path)}': {message}")
        self.path = Path(path)
        self.message = message


class _State(Enum):
    HEADER = auto()
    HEADER_SPACE = auto()
    BODY = auto()


def extract_pid(line: str) -> int:
    """Extract the pid from the ``==PID==`` prefix of a log line."""
    match = _EXTRACT_PID_RE.match(line.strip())
    if match is None:
        raise ValueError(f"Log output should contain a pid but was: '{line}'")
    return int(match.group("pid"))


@dataclass
class LogfileSummary:
    """What was extracted from a single log file."""

    command: Path
    pid: int
    parent_pid: int | None = None
    fields: list[tuple[str, str]] = field(default_factory=list)
    details: list[str] = field(default_factory=list)
    error_summary: ErrorSummary | None = None
    costs: dict[str, int] | None = None
    log_path: Path = field(default_factory=Path)

    def _raw_into_tool_run(self, **overrides) -> ToolRunSummary:
        summary = ToolRunSummary(
            command=os.fspath(self.command),
            summary=dict(self.fields),
            details="\n".join(self.details) if self.details else None,
            error_summary=self.error_summary,
            log_path=self.log_path,
        )
        for name, value in overrides.items():
            setattr(summary, name, value)
        return summary

    def old_into_tool_run(self) -> ToolRunSummary:
        """Convert to a run summary where this log belongs to the old run."""
        costs_summary = (
            CostsSummary.from_costs({}, self.costs) if self.costs is not None else None
        )
        return self._raw_into_tool_run(
            old_pid=self.pid,
            old_parent_pid=self.parent_pid,
            costs_summary=costs_summary,
        )

    def new_into_tool_run(self) -> ToolRunSummary:
        """Convert to a run summary where this log belongs to the new run."""
        costs_summary = (
            CostsSummary.from_costs(self.costs, None) if self.costs is not None else None
        )
        return self._raw_into_tool_run(
            pid=self.pid,
            parent_pid=self.parent_pid,
            costs_summary=costs_summary,
        )

    def merge(self, old: LogfileSummary) -> ToolRunSummary:
        """Combine this (new) summary with the ``old`` one of the same command."""
        if self.command != old.command:
            raise ValueError(
                f"Cannot merge summaries of different commands: "
                f"'{self.command}' and '{old.command}'"
            )
        costs_summary = None
        if self.costs is not None or old.costs is not None:
            costs_summary = CostsSummary.from_costs(self.costs or {}, old.costs)
        return self._raw_into_tool_run(
            old_pid=old.pid,
            old_parent_pid=old.parent_pid,
            pid=self.pid,
            parent_pid=self.parent_pid,
            costs_summary=costs_summary,
        )

    def has_errors(self) -> bool:
        """True if the error summary reports errors."""
        return self.error_summary is not None and self.error_summary.has_errors()


@dataclass
class ToolLogfileParser:
    """The generic log file parser for valgrind tools."""

    root_dir: Path = field(default_factory=Path)

    def parse_single(self, path: str | os.PathLike) -> LogfileSummary:
        """Parse one log file."""
        path = Path(path)
        try:
            text = path.read_text(encoding="utf-8", errors="replace")
        except OSError as error:
            raise OSError(f"Error opening log file '{path}'") from error

        lines = iter(text.splitlines())
        first = next((line for line in lines if line.strip()), None)
        if first is None:
            raise LogfileParseError(path, "Empty file")
        try:
            pid = extract_pid(first)
        except ValueError as error:
            raise LogfileParseError(path, str(error)) from error

        state = _State.HEADER
        command: Path | None = None
        parent_pid: int | None = None
        details: list[str] = []
        error_summary: ErrorSummary | None = None

        for line in lines:
            if state is _State.HEADER:
                if EMPTY_LINE_RE.match(line):
                    state = _State.HEADER_SPACE
                    continue
                match = EXTRACT_FIELDS_RE.match(line)
                if match is None:
                    continue
                key = match.group("key").lower()
                if key == "command":
                    command = make_relative(self.root_dir, match.group("value"))
                elif key == "parent pid":
                    value = match.group("value").strip()
                    try:
                        parent_pid = int(value)
                    except ValueError as error:
                        raise LogfileParseError(
                            path, f"Invalid parent pid: '{value}'"
                        ) from error
                continue

            if state is _State.HEADER_SPACE:
                if EMPTY_LINE_RE.match(line):
                    continue
                state = _State.BODY

            match = EXTRACT_FIELDS_RE.match(line)
            if match is not None and match.group("key").lower() == "error summary":
                error_summary = ErrorSummary.parse(match.group("value"))
                continue
            stripped = STRIP_PREFIX_RE.match(line)
            details.append(stripped.group("rest") if stripped else line)

        while details and not details[-1].strip():
            details.pop()

        if command is None:
            raise LogfileParseError(path, "A command should be present")

        return LogfileSummary(
            command=command,
            pid=pid,
            parent_pid=parent_pid,
            details=details,
            error_summary=error_summary,
            log_path=make_relative(self.root_dir, path),
        )

    def parse(self, output_path: ToolOutputPath) -> list[LogfileSummary]:
        """Parse all log files belonging to ``output_path``, sorted by pid."""
        log_path = output_path.to_log_output()
        logger.debug("%s: Parsing log file '%s'", output_path.tool.id, log_path)
        try:
            paths = log_path.real_paths()
        except OSError:
            return []
        summaries = [self.parse_single(path) for path in paths]
        summaries.sort(key=lambda summary: summary.pid)
        return summaries

    def merge_logfile_summaries(
        self, old: list[LogfileSummary], new: list[LogfileSummary]
    ) -> list[ToolRunSummary]:
        """Convert the new summaries; this parser does not compare with old ones."""
        return [summary.new_into_tool_run() for summary in new]

    def parse_merge(
        self, output_path: ToolOutputPath, old: list[LogfileSummary]
    ) -> list[ToolRunSummary]:
        """Parse the log files of ``output_path`` and merge them with ``old``."""
        return self.merge_logfile_summaries(old, self.parse(output_path))