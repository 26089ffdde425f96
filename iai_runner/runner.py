"""Running valgrind tools on a benchmarked executable and summarizing their output."""

from __future__ import annotations

import copy
import logging
import os
import subprocess
import sys
from collections.abc import Iterable, Sequence
from dataclasses import dataclass, field
from pathlib import Path

from .logfile_parser import LogfileSummary, ToolLogfileParser
from .meta import Cmd
from .summary import ToolSummary
from .tool import ToolOutputPath, ValgrindTool
from .tool_args import ToolArgs
from .util import resolve_binary_path, write_all_to_stderr

logger = logging.getLogger(__name__)

_ALWAYS_KEPT_ENVS = frozenset({"LD_PRELOAD", "LD_LIBRARY_PATH"})
_MEMCHECK_KEPT_ENVS = frozenset({"DEBUGINFOD_URLS", "PATH", "HOME"})


class ProcessError(Exception):
    """Raised when a tool process did not terminate as expected."""

    def __init__(
        self,
        tool_id: str,
        completed: subprocess.CompletedProcess,
        output_path: ToolOutputPath | None = None,
    ) -> None:
        self.tool_id = tool_id
        self.completed = completed
        self.output_path = output_path
        returncode = completed.returncode
        status = (
            f"terminated by signal {-returncode}" if returncode < 0 else f"exit code {returncode}"
        )
        message = f"Error in subprocess '{tool_id}': {status}"
        if output_path is not None:
            message += f". See log file '{output_path}'"
        super().__init__(message)


@dataclass(frozen=True)
class ExitWith:
    """The expected exit status of a benchmarked executable."""

    kind: str
    value: int | None = None

    @classmethod
    def success(cls) -> ExitWith:
        """Expect the executable to succeed."""
        return cls("success")

    @classmethod
    def failure(cls) -> ExitWith:
        """Expect the executable to fail with any non-zero exit code."""
        return cls("failure")

    @classmethod
    def code(cls, value: int) -> ExitWith:
        """Expect exactly the exit code ``value``."""
        return cls("code", int(value))


@dataclass
class RunOptions:
    """Options for the process started by a tool run."""

    env_clear: bool = False
    current_dir: Path | None = None
    entry_point: str | None = None
    exit_with: ExitWith | None = None
    envs: list[tuple[str, str]] = field(default_factory=list)


def check_exit(
    tool: ValgrindTool,
    executable: str | os.PathLike,
    completed: subprocess.CompletedProcess,
    output_path: ToolOutputPath,
    exit_with: ExitWith | None,
) -> subprocess.CompletedProcess:
    """Return ``completed`` if its exit status is the expected one, else raise ``ProcessError``."""
    code = completed.returncode
    executable = os.fspath(executable)

    def fail() -> ProcessError:
        return ProcessError(tool.id, completed, output_path)

    if code < 0:
        raise fail()

    kind = exit_with.kind if exit_with is not None else None
    expected = exit_with.value if exit_with is not None else None

    if code == 0:
        if kind in (None, "success") or (kind == "code" and expected == 0):
            return completed
        if kind == "code":
            logger.error(
                "%s: Expected '%s' to exit with '%s' but it succeeded",
                tool.id,
                executable,
                expected,
            )
        else:
            logger.error("%s: Expected '%s' to fail but it succeeded", tool.id, executable)
        raise fail()

    if kind == "failure":
        return completed
    if kind == "success":
        logger.error(
            "%s: Expected '%s' to succeed but it terminated with '%s'",
            tool.id,
            executable,
            code,
        )
        raise fail()
    if kind == "code":
        if code == expected:
            return completed
        logger.error(
            "%s: Expected '%s' to exit with '%s' but it terminated with '%s'",
            tool.id,
            executable,
            expected,
            code,
        )
    raise fail()


def _dump_output(tool: ValgrindTool, completed: subprocess.CompletedProcess) -> None:
    if not logger.isEnabledFor(logging.INFO):
        return
    for name, data in (("stdout", completed.stdout), ("stderr", completed.stderr)):
        if data:
            logger.info("%s output on %s:", tool.id, name)
            write_all_to_stderr(data)


class ToolCommand:
    """The valgrind command line and environment for one tool."""

    def __init__(self, tool: ValgrindTool, valgrind: Cmd) -> None:
        self.tool = tool
        self.command = valgrind.to_command()
        self.env: dict[str, str] = dict(os.environ)
        self.cwd: Path | None = None

    def env_clear(self) -> ToolCommand:
        """Remove all inherited environment variables except the few the tools need."""
        logger.debug("%s: Clearing environment variables", self.tool.id)
        kept = set(_ALWAYS_KEPT_ENVS)
        if self.tool is ValgrindTool.MEMCHECK:
            kept |= _MEMCHECK_KEPT_ENVS
        for key in list(self.env):
            if key in kept:
                logger.debug(
                    "%s: Clearing environment variables: Skipping %s", self.tool.id, key
                )
            else:
                del self.env[key]
        return self

    def run(
        self,
        config: ToolConfig,
        executable: str | os.PathLike,
        executable_args: Iterable[str | os.PathLike],
        options: RunOptions,
        output_path: ToolOutputPath,
    ) -> subprocess.CompletedProcess:
        """Run the tool on ``executable`` and check its exit status."""
        logger.debug("%s: Running with executable '%s'", self.tool.id, os.fspath(executable))

        if options.env_clear:
            self.env_clear()
        if options.current_dir is not None:
            logger.debug(
                "%s: Setting current directory to '%s'", self.tool.id, options.current_dir
            )
            self.cwd = Path(options.current_dir)

        tool_args = copy.deepcopy(config.args)
        tool_args.set_output_arg(output_path, config.outfile_modifier)
        tool_args.set_log_arg(output_path, config.outfile_modifier)

        resolved = resolve_binary_path(executable)
        env = dict(self.env)
        env.update((str(key), str(value)) for key, value in options.envs)
        argv = [
            *self.command,
            *tool_args.to_list(),
            os.fspath(resolved),
            *(os.fspath(arg) for arg in executable_args),
        ]
        try:
            completed = subprocess.run(
                argv, env=env, cwd=self.cwd, capture_output=True, check=False
            )
        except OSError as error:
            raise OSError(f"Error launching 'valgrind': {error}") from error

        return check_exit(
            self.tool, resolved, completed, output_path.to_log_output(), options.exit_with
        )


@dataclass
class ToolConfig:
    """The configuration of one valgrind tool."""

    tool: ValgrindTool
    is_enabled: bool
    args: ToolArgs
    outfile_modifier: str | None = None

    @classmethod
    def from_raw(
        cls,
        tool: ValgrindTool,
        raw_args: Iterable[str] = (),
        enable: bool | None = None,
        outfile_modifier: str | None = None,
    ) -> ToolConfig:
        """Build a configuration from user supplied arguments; enabled unless told otherwise."""
        return cls(
            tool=tool,
            is_enabled=True if enable is None else enable,
            args=ToolArgs.from_raw_args(tool, raw_args),
            outfile_modifier=outfile_modifier,
        )


@dataclass
class ToolConfigs:
    """All tools that run in addition to callgrind."""

    configs: list[ToolConfig] = field(default_factory=list)

    def _enabled(self) -> list[ToolConfig]:
        return [config for config in self.configs if config.is_enabled]

    def has_tools_enabled(self) -> bool:
        """True if at least one tool is enabled."""
        return bool(self._enabled())

    def output_paths(self, output_path: ToolOutputPath) -> list[ToolOutputPath]:
        """The output paths of all enabled tools."""
        return [output_path.to_tool_output(config.tool) for config in self._enabled()]

    def parse(
        self,
        tool_config: ToolConfig,
        root_dir: str | os.PathLike,
        log_path: ToolOutputPath,
        out_path: ToolOutputPath | None,
        old_summaries: Sequence[LogfileSummary],
    ) -> ToolSummary:
        """Parse the log files of a tool run and merge them with ``old_summaries``."""
        parser = ToolLogfileParser(Path(root_dir))
        summaries = parser.parse_merge(log_path, list(old_summaries))
        return ToolSummary(
            tool=tool_config.tool,
            log_paths=log_path.real_paths(),
            out_paths=out_path.real_paths() if out_path is not None else [],
            summaries=summaries,
        )

    def run(
        self,
        valgrind: Cmd,
        root_dir: str | os.PathLike,
        executable: str | os.PathLike,
        executable_args: Sequence[str | os.PathLike],
        options: RunOptions,
        output_path: ToolOutputPath,
        save_baseline: bool,
    ) -> list[ToolSummary]:
        """Run every enabled tool and return their summaries."""
        tool_summaries = []
        for tool_config in self._enabled():
            tool = tool_config.tool
            command = ToolCommand(tool, valgrind)
            tool_output = output_path.to_tool_output(tool)
            log_path = tool_output.to_log_output()

            parser = ToolLogfileParser(Path(root_dir))
            old_summaries = parser.parse(log_path.to_base_path())

            if save_baseline:
                tool_output.clear()
                log_path.clear()

            completed = command.run(
                tool_config,
                executable,
                executable_args,
                copy.deepcopy(options),
                tool_output,
            )

            tool_summary = self.parse(
                tool_config,
                root_dir,
                log_path,
                tool_output if tool.has_output_file() else None,
                old_summaries,
            )

            _dump_output(tool, completed)
            log_path.dump_log(sys.stderr)
            tool_summaries.append(tool_summary)
        return tool_summaries