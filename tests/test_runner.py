import json
import subprocess
import sys
from pathlib import Path

import pytest

from iai_runner.baseline import BaselineKind
from iai_runner.meta import Cmd
from iai_runner.runner import (
    ExitWith,
    ProcessError,
    RunOptions,
    ToolCommand,
    ToolConfig,
    ToolConfigs,
    check_exit,
)
from iai_runner.tool import ToolOutputPath, ToolOutputPathKind, ValgrindTool

FAKE_VALGRIND = """#!@PYTHON@
import json, os, sys
args = sys.argv[1:]
log = next(a.split("=", 1)[1] for a in args if a.startswith("--log-file="))
rest = [a for a in args if not a.startswith("--")]
with open(log, "w") as handle:
    handle.write("==123== Memcheck, a memory error detector\\n")
    handle.write("==123== Command: " + " ".join(rest) + "\\n")
    handle.write("==123== Parent PID: 99\\n")
    handle.write("==123==\\n")
    handle.write("==123== HEAP SUMMARY:\\n")
    handle.write("==123== ERROR SUMMARY: 0 errors from 0 contexts (suppressed: 0 from 0)\\n")
with open(@RECORD@, "w") as handle:
    json.dump({"argv": args, "foo": os.environ.get("FOO"), "cwd": os.getcwd()}, handle)
sys.exit(@STATUS@)
"""


def make_fake_valgrind(tmp_path, status=0):
    record = tmp_path / "record.json"
    script = tmp_path / "fake-valgrind"
    script.write_text(
        FAKE_VALGRIND.replace("@PYTHON@", sys.executable)
        .replace("@RECORD@", repr(str(record)))
        .replace("@STATUS@", str(status))
    )
    script.chmod(0o755)
    return Cmd(script), record


def make_output_path(tmp_path):
    return ToolOutputPath.with_init(
        ToolOutputPathKind.OUT,
        ValgrindTool.CALLGRIND,
        BaselineKind.old(),
        tmp_path / "out",
        "bench::group",
        "bench",
    )


def completed(status):
    return subprocess.CompletedProcess(["x"], status, b"", b"")


@pytest.mark.parametrize(
    "status, exit_with",
    [
        (0, None),
        (0, ExitWith.success()),
        (1, ExitWith.failure()),
        (3, ExitWith.failure()),
    ],
)
def test_check_exit_accepts(tmp_path, status, exit_with):
    output = make_output_path(tmp_path)
    proc = completed(status)
    assert check_exit(ValgrindTool.MEMCHECK, "exe", proc, output, exit_with) is proc


@pytest.mark.parametrize(
    "status, exit_with",
    [
        (0, ExitWith.failure()),
        (1, ExitWith.success()),
        (1, None),
        (-9, None),
        (-9, ExitWith.failure()),
    ],
)
def test_check_exit_rejects(tmp_path, status, exit_with):
    output = make_output_path(tmp_path)
    with pytest.raises(ProcessError) as info:
        check_exit(ValgrindTool.MEMCHECK, "exe", completed(status), output, exit_with)
    assert info.value.tool_id == "memcheck"
    assert info.value.completed.returncode == status


def test_exit_with_constructors():
    assert ExitWith.success() == ExitWith.success()
    assert ExitWith.failure().kind == "failure"
    assert ExitWith.success() != ExitWith.failure()


def test_tool_config_from_raw_defaults():
    config = ToolConfig.from_raw(ValgrindTool.MEMCHECK, ["--verbose", "--leak-check=full"])
    assert config.is_enabled is True
    assert config.args.verbose is True
    assert config.args.error_exitcode == "201"
    assert config.args.other == ["--leak-check=full"]
    disabled = ToolConfig.from_raw(ValgrindTool.DHAT, [], enable=False, outfile_modifier="%p")
    assert disabled.is_enabled is False
    assert disabled.outfile_modifier == "%p"


def test_tool_configs_enabled_and_output_paths(tmp_path):
    output = make_output_path(tmp_path)
    configs = ToolConfigs(
        [
            ToolConfig.from_raw(ValgrindTool.DHAT, [], enable=False),
            ToolConfig.from_raw(ValgrindTool.MASSIF, []),
        ]
    )
    assert configs.has_tools_enabled()
    paths = configs.output_paths(output)
    assert [p.tool for p in paths] == [ValgrindTool.MASSIF]
    assert paths[0].dir == output.dir
    assert not ToolConfigs([ToolConfig.from_raw(ValgrindTool.DRD, [], enable=False)]).has_tools_enabled()


def test_env_clear_keeps_required_variables(monkeypatch):
    monkeypatch.setenv("LD_LIBRARY_PATH", "/opt/lib")
    monkeypatch.setenv("HOME", "/home/someone")
    monkeypatch.setenv("SOME_OTHER_VAR", "1")

    memcheck = ToolCommand(ValgrindTool.MEMCHECK, Cmd(Path("valgrind"))).env_clear()
    assert memcheck.env["LD_LIBRARY_PATH"] == "/opt/lib"
    assert memcheck.env["HOME"] == "/home/someone"
    assert "SOME_OTHER_VAR" not in memcheck.env

    callgrind = ToolCommand(ValgrindTool.CALLGRIND, Cmd(Path("valgrind"))).env_clear()
    assert "HOME" not in callgrind.env
    assert callgrind.env["LD_LIBRARY_PATH"] == "/opt/lib"


def test_tool_command_run_passes_arguments(tmp_path):
    valgrind, record = make_fake_valgrind(tmp_path)
    output = make_output_path(tmp_path).to_tool_output(ValgrindTool.MEMCHECK)
    config = ToolConfig.from_raw(ValgrindTool.MEMCHECK, ["--leak-check=full"])
    workdir = tmp_path / "work"
    workdir.mkdir()
    options = RunOptions(current_dir=workdir, envs=[("FOO", "BAR")])

    proc = ToolCommand(ValgrindTool.MEMCHECK, valgrind).run(
        config, sys.executable, ["arg"], options, output
    )

    assert proc.returncode == 0
    data = json.loads(record.read_text())
    assert data["argv"][0] == "--tool=memcheck"
    assert data["argv"][1] == "--error-exitcode=201"
    assert "--leak-check=full" in data["argv"]
    assert f"--log-file={output.to_log_output().to_path()}" in data["argv"]
    assert data["argv"][-1] == "arg"
    assert data["foo"] == "BAR"
    assert Path(data["cwd"]).resolve() == workdir.resolve()
    # The config itself is not changed by the run
    assert config.args.log_path is None


def test_tool_configs_run_produces_summary(tmp_path):
    valgrind, _ = make_fake_valgrind(tmp_path)
    output = make_output_path(tmp_path)
    configs = ToolConfigs([ToolConfig.from_raw(ValgrindTool.MEMCHECK, [])])

    summaries = configs.run(
        valgrind, tmp_path, sys.executable, ["arg"], RunOptions(), output, False
    )

    assert len(summaries) == 1
    summary = summaries[0]
    assert summary.tool is ValgrindTool.MEMCHECK
    assert summary.out_paths == []
    assert summary.log_paths == [
        output.to_tool_output(ValgrindTool.MEMCHECK).to_log_output().to_path()
    ]
    run = summary.summaries[0]
    assert run.command == f"{sys.executable} arg"
    assert run.pid == 123
    assert run.parent_pid == 99
    assert run.error_summary is not None
    assert run.has_errors() is False


def test_tool_configs_run_unexpected_exit_raises(tmp_path):
    valgrind, _ = make_fake_valgrind(tmp_path, status=3)
    output = make_output_path(tmp_path)
    configs = ToolConfigs([ToolConfig.from_raw(ValgrindTool.MEMCHECK, [])])

    with pytest.raises(ProcessError) as info:
        configs.run(valgrind, tmp_path, sys.executable, [], RunOptions(), output, False)
    assert info.value.completed.returncode == 3

    summaries = configs.run(
        valgrind,
        tmp_path,
        sys.executable,
        [],
        RunOptions(exit_with=ExitWith.failure()),
        output,
        True,
    )
    assert len(summaries[0].summaries) == 1


def test_tool_configs_run_skips_disabled(tmp_path):
    valgrind, record = make_fake_valgrind(tmp_path)
    output = make_output_path(tmp_path)
    configs = ToolConfigs([ToolConfig.from_raw(ValgrindTool.MEMCHECK, [], enable=False)])
    result = configs.run(valgrind, tmp_path, sys.executable, [], RunOptions(), output, False)
    assert result == []
    assert not record.exists()