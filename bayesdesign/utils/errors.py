"""Exception types raised by bayesdesign.

Every error is raised where it is detected; callers should treat it as fatal
to the current data-preparation call.
"""

from __future__ import annotations

from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from collections.abc import Iterable

__all__ = [
    "FeatureTypeError",
    "FormulaSyntaxError",
    "ReconstructionError",
    "SchemaError",
]


class SchemaError(KeyError):
    """A required column is absent from the observation table."""

    def __init__(self, missing: Iterable[str], *, context: str = "data") -> None:
        self.missing = list(dict.fromkeys(str(m) for m in missing))
        self.context = context
        super().__init__(self.missing)

    def __str__(self) -> str:
        cols = ", ".join(f"'{m}'" for m in self.missing)
        return f"Column(s) not found in {self.context}: {cols}."


class FeatureTypeError(TypeError):
    """A feature has the wrong type for the requested derivation."""

    def __init__(self, column: str, msg: str) -> None:
        self.column = column
        super().__init__(msg)


class ReconstructionError(RuntimeError):
    """The reconstruction index does not reproduce the full design matrix."""


class FormulaSyntaxError(ValueError):
    """A random-effect or random-walk term could not be parsed."""
