"""Summaries of benchmark runs, their costs, regressions and json output."""

from __future__ import annotations

import dataclasses
import json
import math
import os
import re
import shlex
import sys
from collections.abc import Hashable, Iterable, Iterator, Mapping
from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import IO, Any

from .baseline import BaselineKind
from .tool import ToolOutputPath, ValgrindTool
from .util import factor_diff, make_absolute, percentage_diff

SUMMARY_VERSION = "2"

_ERROR_SUMMARY_RE = re.compile(r"^\D*?(\d+)\D+(\d+)\D+(\d+)\D+(\d+)")

_TOOL_NAMES = {
    ValgrindTool.CALLGRIND: "Callgrind",
    ValgrindTool.MEMCHECK: "Memcheck",
    ValgrindTool.HELGRIND: "Helgrind",
    ValgrindTool.DRD: "DRD",
    ValgrindTool.MASSIF: "Massif",
    ValgrindTool.DHAT: "DHAT",
    ValgrindTool.BBV: "BBV",
}


class OutputFormat(Enum):
    """How the benchmark results are shown on the terminal."""

    DEFAULT = "default"
    JSON = "json"
    PRETTY_JSON = "pretty-json"


class RegressionError(Exception):
    """Raised when a performance regression was detected and the run should fail."""

    def __init__(self, fail_fast: bool = True) -> None:
        super().__init__("Performance has regressed.")
        self.fail_fast = fail_fast


class BenchmarkKind(Enum):
    """Library or binary benchmark."""

    LIBRARY_BENCHMARK = "LibraryBenchmark"
    BINARY_BENCHMARK = "BinaryBenchmark"


class SummaryFormat(Enum):
    """The format in which the summary file is saved."""

    JSON = "Json"
    PRETTY_JSON = "PrettyJson"


def _key(value: Any) -> str:
    if isinstance(value, Enum):
        return str(value.value)
    return str(value)


def _serialize(value: Any) -> Any:
    if isinstance(value, CostsSummary):
        return value.to_dict()
    if isinstance(value, BaselineKind):
        return "Old" if value.is_old() else {"Name": str(value.name)}
    if isinstance(value, ValgrindTool):
        return _TOOL_NAMES[value]
    if isinstance(value, Enum):
        return value.value
    if isinstance(value, float):
        return value if math.isfinite(value) else None
    if isinstance(value, os.PathLike):
        return os.fspath(value)
    if dataclasses.is_dataclass(value) and not isinstance(value, type):
        return {f.name: _serialize(getattr(value, f.name)) for f in dataclasses.fields(value)}
    if isinstance(value, Mapping):
        return {_key(k): _serialize(v) for k, v in value.items()}
    if isinstance(value, (list, tuple)):
        return [_serialize(item) for item in value]
    return value


@dataclass
class Baseline:
    """The baseline kind and the file the new output was compared against."""

    kind: BaselineKind
    path: Path


@dataclass
class CostsDiff:
    """The difference between an optional new and an optional old cost."""

    new: int | None = None
    old: int | None = None
    diff_pct: float | None = None
    factor: float | None = None


@dataclass
class CostsSummary:
    """The differences of all costs keyed by event kind, in insertion order."""

    diffs: dict[Hashable, CostsDiff] = field(default_factory=dict)

    @classmethod
    def from_costs(
        cls,
        new_costs: Mapping[Hashable, int],
        old_costs: Mapping[Hashable, int] | None = None,
    ) -> CostsSummary:
        """Calculate the differences between ``new_costs`` and ``old_costs`` (if any)."""
        if old_costs is None:
            return cls({kind: CostsDiff(new=cost) for kind, cost in new_costs.items()})

        kinds = list(new_costs)
        kinds.extend(kind for kind in old_costs if kind not in new_costs)
        diffs: dict[Hashable, CostsDiff] = {}
        for kind in kinds:
            new, old = new_costs.get(kind), old_costs.get(kind)
            if new is not None and old is not None:
                diffs[kind] = CostsDiff(new, old, percentage_diff(new, old), factor_diff(new, old))
            else:
                diffs[kind] = CostsDiff(new=new, old=old)
        return cls(diffs)

    def diff_by_kind(self, kind: Hashable) -> CostsDiff | None:
        """The difference for ``kind`` or ``None``."""
        return self.diffs.get(kind)

    def all_diffs(self) -> Iterator[tuple[Hashable, CostsDiff]]:
        """Iterate over all ``(kind, diff)`` pairs."""
        return iter(self.diffs.items())

    def extract_costs(self) -> tuple[dict[Hashable, int] | None, dict[Hashable, int] | None]:
        """Split into new and old costs; an empty side becomes ``None``."""
        new_costs = {k: d.new for k, d in self.diffs.items() if d.new is not None}
        old_costs = {k: d.old for k, d in self.diffs.items() if d.old is not None}
        if not new_costs and not old_costs:
            raise ValueError("A costs diff must contain new or old values")
        return (new_costs or None, old_costs or None)

    def to_dict(self) -> dict[str, Any]:
        """A json compatible mapping of kind to diff."""
        return {_key(kind): _serialize(diff) for kind, diff in self.diffs.items()}


@dataclass
class ErrorSummary:
    """The numbers of the ``ERROR SUMMARY`` line of Memcheck, DRD and Helgrind."""

    errors: int
    contexts: int
    supp_errors: int
    supp_contexts: int

    @classmethod
    def parse(cls, text: str) -> ErrorSummary:
        """Parse e.g. ``4 errors from 3 contexts (suppressed: 2 from 1)``."""
        match = _ERROR_SUMMARY_RE.match(text)
        if match is None:
            raise ValueError("Failed to extract error summary from string")
        return cls(*(int(group) for group in match.groups()))

    def has_errors(self) -> bool:
        """True if any (unsuppressed) errors were reported."""
        return self.errors > 0


@dataclass
class FlamegraphSummary:
    """The paths of the flamegraphs created for one event kind."""

    event_kind: Hashable
    regular_path: Path | None = None
    base_path: Path | None = None
    diff_path: Path | None = None


@dataclass
class SummaryOutput:
    """The destination file and format of the summary."""

    format: SummaryFormat
    path: Path

    @classmethod
    def in_dir(cls, summary_format: SummaryFormat, directory: str | os.PathLike) -> SummaryOutput:
        """A ``summary.json`` in ``directory``."""
        return cls(summary_format, Path(directory) / "summary.json")

    def init(self) -> None:
        """Remove old summary files of any extension."""
        pattern = f"{self.path.stem}.*"
        if not self.path.parent.is_dir():
            return
        for entry in self.path.parent.glob(pattern):
            try:
                entry.unlink()
            except OSError as error:
                raise OSError(f"Failed removing summary file '{entry}'") from error

    def create(self) -> IO[str]:
        """Create (truncate) the summary file and return it opened for writing."""
        try:
            return self.path.open("w", encoding="utf-8")
        except OSError as error:
            raise OSError("Failed to create json summary file") from error


@dataclass
class ToolRunSummary:
    """Everything known about a single process of a tool run."""

    command: str
    old_pid: int | None = None
    old_parent_pid: int | None = None
    pid: int | None = None
    parent_pid: int | None = None
    summary: dict[str, str] = field(default_factory=dict)
    details: str | None = None
    error_summary: ErrorSummary | None = None
    costs_summary: CostsSummary | None = None
    log_path: Path = field(default_factory=Path)

    def has_errors(self) -> bool:
        """True if the error summary reports errors."""
        return self.error_summary is not None and self.error_summary.has_errors()


@dataclass
class ToolSummary:
    """The summary of all processes of one valgrind tool run."""

    tool: ValgrindTool
    log_paths: list[Path] = field(default_factory=list)
    out_paths: list[Path] = field(default_factory=list)
    summaries: list[ToolRunSummary] = field(default_factory=list)


@dataclass
class CallgrindRegressionSummary:
    """A single event based performance regression."""

    event_kind: Hashable
    new: int
    old: int
    diff_pct: float
    limit: float


@dataclass
class CallgrindRunSummary:
    """The recorded events and regressions of one callgrind run."""

    command: str
    baseline: Baseline | None
    events: CostsSummary
    regressions: list[CallgrindRegressionSummary] = field(default_factory=list)


@dataclass
class CallgrindSummary:
    """The summary of all callgrind runs of a benchmark."""

    log_paths: list[Path] = field(default_factory=list)
    out_paths: list[Path] = field(default_factory=list)
    flamegraphs: list[FlamegraphSummary] = field(default_factory=list)
    summaries: list[CallgrindRunSummary] = field(default_factory=list)

    def is_regressed(self) -> bool:
        """True if any run recorded a regression."""
        return any(summary.regressions for summary in self.summaries)

    def add_summary(
        self,
        bench_bin: str | os.PathLike,
        bench_args: Iterable[str | bytes | os.PathLike],
        old_path: ToolOutputPath,
        events: CostsSummary,
        regressions: Iterable[CallgrindRegressionSummary],
    ) -> None:
        """Record a callgrind run."""
        args = shlex.join(os.fsdecode(arg) for arg in bench_args)
        baseline = (
            Baseline(kind=old_path.baseline_kind, path=old_path.to_path())
            if old_path.exists()
            else None
        )
        self.summaries.append(
            CallgrindRunSummary(
                command=f"{os.fspath(bench_bin)} {args}",
                baseline=baseline,
                events=events,
                regressions=list(regressions),
            )
        )


@dataclass
class BenchmarkSummary:
    """All information about a single benchmark run."""

    version: str
    kind: BenchmarkKind
    summary_output: SummaryOutput | None
    project_root: Path
    package_dir: Path
    benchmark_file: Path
    benchmark_exe: Path
    function_name: str
    module_path: str
    id: str | None = None
    details: str | None = None
    callgrind_summary: CallgrindSummary | None = None
    tool_summaries: list[ToolSummary] = field(default_factory=list)

    @classmethod
    def create(
        cls,
        kind: BenchmarkKind,
        project_root: str | os.PathLike,
        package_dir: str | os.PathLike,
        benchmark_file: str | os.PathLike,
        benchmark_exe: str | os.PathLike,
        segments: Iterable[str],
        id: str | None = None,
        details: str | None = None,
        output: SummaryOutput | None = None,
    ) -> BenchmarkSummary:
        """Create a summary; relative paths are made absolute below ``project_root``."""
        segments = list(segments)
        if not segments:
            raise ValueError("At least one module path segment is required")
        project_root = Path(project_root)
        return cls(
            version=SUMMARY_VERSION,
            kind=kind,
            summary_output=output,
            project_root=project_root,
            package_dir=Path(package_dir),
            benchmark_file=make_absolute(project_root, benchmark_file),
            benchmark_exe=make_absolute(project_root, benchmark_exe),
            function_name=segments[-1],
            module_path="::".join(segments),
            id=id,
            details=details,
        )

    def to_dict(self) -> dict[str, Any]:
        """A json compatible representation of this summary."""
        return _serialize(self)

    def print_and_save(self, output_format: OutputFormat) -> None:
        """Print the summary as json if requested and write the summary file if configured."""
        if output_format is OutputFormat.DEFAULT and self.summary_output is None:
            return
        value = self.to_dict()

        if output_format is OutputFormat.JSON:
            sys.stdout.write(json.dumps(value, separators=(",", ":")) + "\n")
        elif output_format is OutputFormat.PRETTY_JSON:
            sys.stdout.write(json.dumps(value, indent=2) + "\n")

        if self.summary_output is not None:
            output = self.summary_output
            with output.create() as handle:
                try:
                    if output.format is SummaryFormat.PRETTY_JSON:
                        json.dump(value, handle, indent=2)
                    else:
                        json.dump(value, handle, separators=(",", ":"))
                except OSError as error:
                    raise OSError(
                        f"Failed to write summary to file: {output.path}"
                    ) from error

    def check_regression(self, fail_fast: bool) -> bool:
        """Return True if regressed; raise ``RegressionError`` instead when ``fail_fast``."""
        if self.callgrind_summary is None:
            return False
        regressed = self.callgrind_summary.is_regressed()
        if regressed and fail_fast:
            raise RegressionError(True)
        return regressed