"""Run programs under valgrind tools, manage their output files and summarize the results."""

__version__ = "0.1.0"

__all__ = [
    "baseline",
    "logfile_parser",
    "meta",
    "runner",
    "summary",
    "tool",
    "tool_args",
    "util",
]