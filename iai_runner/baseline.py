"""Baseline names and kinds used to compare new output against older runs."""

from __future__ import annotations

from dataclasses import dataclass


@dataclass(frozen=True)
class BaselineName:
    """A validated baseline name of ascii alphanumerics and ``_``."""

    value: str

    def __post_init__(self) -> None:
        for char in self.value:
            if not (char.isascii() and (char.isalnum() or char == "_")):
                raise ValueError(
                    "A baseline name can only consist of ascii characters which are "
                    f"alphanumeric or '_' but found: '{char}'"
                )

    @classmethod
    def parse(cls, value: str) -> BaselineName:
        """Parse and validate a baseline name, raising ``ValueError`` if invalid."""
        return cls(value)

    def __str__(self) -> str:
        return self.value


@dataclass(frozen=True)
class BaselineKind:
    """Either the ``*.old`` baseline (``name`` is None) or a named baseline."""

    name: BaselineName | None = None

    @classmethod
    def old(cls) -> BaselineKind:
        """The baseline of ``*.old`` files."""
        return cls(None)

    @classmethod
    def named(cls, name: BaselineName | str) -> BaselineKind:
        """A named baseline; a plain string is validated first."""
        if not isinstance(name, BaselineName):
            name = BaselineName.parse(name)
        return cls(name)

    def is_old(self) -> bool:
        """True for the ``*.old`` baseline."""
        return self.name is None