# bayesdesign/utils/__init__.py
"""Utility functions module."""
from .errors import FeatureTypeError, FormulaSyntaxError, ReconstructionError, SchemaError
from .helpers import GROUP_COLUMN, coerce_frame, group_keys, require_columns

__all__ = [
    "GROUP_COLUMN",
    "FeatureTypeError",
    "FormulaSyntaxError",
    "ReconstructionError",
    "SchemaError",
    "coerce_frame",
    "group_keys",
    "require_columns",
]
