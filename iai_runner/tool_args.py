"""Command-line arguments passed to a valgrind tool."""

from __future__ import annotations

import logging
import os
from collections.abc import Iterable
from dataclasses import dataclass, field

from .tool import ToolOutputPath, ValgrindTool

logger = logging.getLogger(__name__)

_IGNORED_OUTPUT_KEYS = frozenset(
    {
        "--dhat-out-file",
        "--massif-out-file",
        "--bb-out-file",
        "--pc-out-file",
        "--log-file",
        "--log-fd",
        "--log-socket",
        "--xml",
        "--xml-file",
        "--xml-fd",
        "--xml-socket",
        "--xml-user-comment",
    }
)

_IGNORED_FLAGS = frozenset(
    {"-h", "--help", "--help-dyn-options", "--help-debug", "--version", "-q", "--quiet"}
)


def _default_error_exitcode(tool: ValgrindTool) -> str:
    if tool in (ValgrindTool.MEMCHECK, ValgrindTool.HELGRIND, ValgrindTool.DRD):
        return "201"
    return "0"


@dataclass
class ToolArgs:
    """The arguments for one valgrind tool run."""

    tool: ValgrindTool
    output_paths: list[str] = field(default_factory=list)
    log_path: str | None = None
    error_exitcode: str = "0"
    verbose: bool = False
    other: list[str] = field(default_factory=list)

    @classmethod
    def from_raw_args(cls, tool: ValgrindTool, raw_args: Iterable[str]) -> ToolArgs:
        """Sort user supplied arguments, dropping those the runner manages itself."""
        tool_args = cls(tool=tool, error_exitcode=_default_error_exitcode(tool))
        for arg in raw_args:
            stripped = arg.strip()
            if "=" in stripped:
                key, value = (part.strip() for part in stripped.split("=", 1))
                if key == "--tool":
                    logger.warning("Ignoring %s argument '%s'", tool.id, arg)
                elif key in _IGNORED_OUTPUT_KEYS:
                    logger.warning(
                        "Ignoring %s argument '%s': Output/Log files of tools are managed "
                        "by iai-callgrind",
                        tool.id,
                        arg,
                    )
                elif key == "--error-exitcode":
                    tool_args.error_exitcode = value
                else:
                    tool_args.other.append(arg)
            elif arg in _IGNORED_FLAGS:
                logger.warning("Ignoring %s argument '%s'", tool.id, arg)
            elif arg == "--verbose":
                tool_args.verbose = True
            else:
                tool_args.other.append(arg)
        return tool_args

    def set_output_arg(self, output_path: ToolOutputPath, modifier: str | None) -> None:
        """Add the output file arguments of tools that write output files."""
        if not self.tool.has_output_file():
            return

        if self.tool is ValgrindTool.CALLGRIND:
            raise ValueError("Callgrind is not managed here")

        if self.tool in (ValgrindTool.MASSIF, ValgrindTool.DHAT):
            flag = "--massif-out-file=" if self.tool is ValgrindTool.MASSIF else "--dhat-out-file="
            path = output_path.with_modifiers([modifier]) if modifier is not None else output_path
            self.output_paths.append(flag + os.fspath(path.to_path()))
        elif self.tool is ValgrindTool.BBV:
            extra = [modifier] if modifier is not None else []
            bb_out = output_path.with_modifiers(["bb", *extra])
            pc_out = output_path.with_modifiers(["pc", *extra])
            self.output_paths.append("--bb-out-file=" + os.fspath(bb_out.to_path()))
            self.output_paths.append("--pc-out-file=" + os.fspath(pc_out.to_path()))

    def set_log_arg(self, output_path: ToolOutputPath, modifier: str | None) -> None:
        """Set the ``--log-file`` argument."""
        log_output = output_path.to_log_output()
        if modifier is not None:
            log_output = log_output.with_modifiers([modifier])
        self.log_path = "--log-file=" + os.fspath(log_output.to_path())

    def to_list(self) -> list[str]:
        """All arguments in the order valgrind receives them."""
        args = [f"--tool={self.tool.id}", f"--error-exitcode={self.error_exitcode}"]
        args.extend(self.other)
        args.extend(self.output_paths)
        if self.log_path is not None:
            args.append(self.log_path)
        return args