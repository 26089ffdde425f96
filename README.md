# iai_runner

A library for running programs under valgrind tools: memcheck, helgrind, DRD, massif, DHAT and exp-bbv. It keeps the output and log files of each run in a fixed layout and parses the tool log files. The results become structured summaries that can be written as JSON.

## Install

```
pip install .
pip install ".[test]"   # with the test dependencies
```

The package has no runtime dependencies. Running a tool needs `valgrind` on the `PATH`. On Linux, `setarch` is used when it is present so that ASLR is turned off. On FreeBSD, `proccontrol` is used for the same purpose.

## Modules

- `iai_runner.util` holds small helpers:
  - `bool_to_yesno` and `yesno_to_bool` convert between booleans and "yes"/"no".
  - `truncate_str_utf8` truncates a string to a UTF-8 byte length.
  - `trim` strips whitespace from bytes.
  - `percentage_diff` and `factor_diff` compare two costs.
  - `to_string_signed_short` formats a signed number in short form.
  - `make_relative`, `make_absolute`, `resolve_binary_path` and `copy_directory` handle paths and copying (through `cp`).
- `iai_runner.baseline` provides `BaselineName` and `BaselineKind`. A baseline is either the `*.old` files (`BaselineKind.old()`) or a named baseline (`BaselineKind.named("name")`). Named baseline files end in `base@<name>`.
- `iai_runner.tool` provides `ValgrindTool`, `ToolOutputPathKind` and `ToolOutputPath`. `ToolOutputPath` names the `<tool>.<name>.<ext>` files in a benchmark directory. It finds them (`real_paths`), clears them (`clear`), and moves them to `*.old` (`shift`). It also derives the log path (`to_log_output`) and the baseline path (`to_base_path`).
- `iai_runner.tool_args` provides `ToolArgs`. It filters the raw arguments given for a tool:
  - It drops output, log, xml, help and quiet options, since the library manages those itself.
  - It picks up `--error-exitcode` and `--verbose`.
  - It adds the output and log file options.
  - It builds the final argument list (`to_list`).
- `iai_runner.summary` holds the data model of a benchmark summary:
  - `CostsSummary`, `ErrorSummary`, `ToolRunSummary` and `ToolSummary`.
  - `CallgrindSummary` and `BenchmarkSummary`.
  - `BenchmarkSummary.print_and_save` writes the summary as compact or pretty JSON, to stdout and/or a `summary.json` file.
  - `BenchmarkSummary.check_regression` reports recorded regressions. With `fail_fast` it raises `RegressionError` instead.
- `iai_runner.logfile_parser` provides `ToolLogfileParser`. It reads valgrind log files into `LogfileSummary` objects, which hold the command, pid, parent pid, details and error summary. It turns these into `ToolRunSummary` objects.
- `iai_runner.meta` provides the following:
  - `detect_valgrind` finds valgrind and an ASLR-disabling wrapper (`Cmd`).
  - `compare_versions` raises `VersionMismatchError` unless two version strings are equal.
- `iai_runner.runner` provides `ToolConfig`, `ToolConfigs`, `ToolCommand`, `RunOptions`, `ExitWith` and `check_exit`. `ToolConfigs.run` runs a program under each enabled tool. It checks the exit status against `ExitWith` and raises `ProcessError` on a mismatch. It returns one `ToolSummary` per tool.

## Examples

Output file layout:

```python
from pathlib import Path

from iai_runner.baseline import BaselineKind
from iai_runner.tool import ToolOutputPath, ToolOutputPathKind, ValgrindTool

out = ToolOutputPath.with_init(
    ToolOutputPathKind.OUT,
    ValgrindTool.DHAT,
    BaselineKind.old(),
    Path("target/iai"),
    "my_bench::group",
    "bench_one",
)
print(out.to_path())                  # target/iai/my_bench/group/bench_one/dhat.bench_one.out
print(out.to_log_output().to_path())  # .../dhat.bench_one.log
print(out.to_base_path().to_path())   # .../dhat.bench_one.out.old
```

Comparing costs and reading an error summary:

```python
from iai_runner.summary import CostsSummary, ErrorSummary

diff = CostsSummary.from_costs({"Ir": 10}, {"Ir": 20}).diff_by_kind("Ir")
print(diff.diff_pct, diff.factor)     # -50.0 -2.0

errors = ErrorSummary.parse("4 errors from 3 contexts (suppressed: 2 from 1)")
print(errors.errors, errors.has_errors())  # 4 True
```

Running tools:

```python
from pathlib import Path

from iai_runner.baseline import BaselineKind
from iai_runner.meta import detect_valgrind
from iai_runner.runner import RunOptions, ToolConfig, ToolConfigs
from iai_runner.tool import ToolOutputPath, ToolOutputPathKind, ValgrindTool

valgrind, wrapper = detect_valgrind(allow_aslr=False)
output = ToolOutputPath.with_init(
    ToolOutputPathKind.OUT, ValgrindTool.MEMCHECK, BaselineKind.old(),
    Path("target/iai"), "bench", "ls",
)
configs = ToolConfigs([ToolConfig.from_raw(ValgrindTool.MEMCHECK, ["--leak-check=full"])])
summaries = configs.run(wrapper or valgrind, Path.cwd(), "ls", ["-l"], RunOptions(), output)
```

## What it does not do

- There is no command-line program. The package is a library only.
- It does not run callgrind, and it does not parse callgrind output files. `ToolArgs.set_output_arg` refuses callgrind. `CallgrindSummary` only records runs and costs that it is given.
- It does not compute regressions or draw flamegraphs. `FlamegraphSummary` and `CallgrindRegressionSummary` are plain records.
- It has no DHAT-specific log parsing. All tools go through `ToolLogfileParser`, which does not compare new runs against old ones.

## Tests

```
pytest
```