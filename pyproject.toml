[build-system]
requires = ["hatchling"]
build-backend = "hatchling.build"

[project]
name = "iai_runner"
version = "0.1.0"
description = "Run programs under valgrind tools, manage their output and log files and summarize the results"
requires-python = ">=3.10"
dependencies = []
keywords = ["valgrind", "benchmark", "profiling", "dhat", "memcheck", "massif"]
classifiers = [
    "Development Status :: 3 - Alpha",
    "Intended Audience :: Developers",
    "Operating System :: POSIX",
    "Programming Language :: Python :: 3",
    "Programming Language :: Python :: 3 :: Only",
    "Programming Language :: Python :: 3.10",
    "Programming Language :: Python :: 3.11",
    "Programming Language :: Python :: 3.12",
    "Programming Language :: Python :: 3.13",
    "Topic :: Software Development :: Testing",
    "Topic :: System :: Benchmark",
]

[project.optional-dependencies]
test = ["pytest"]

[tool.hatch.build.targets.wheel]
packages = ["iai_runner"]

[tool.pytest.ini_options]
addopts = "-ra"
