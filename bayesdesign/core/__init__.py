# bayesdesign/core/__init__.py
"""Core modules: design matrices, effects, encodings, formulas, priors and payloads."""
from . import data_list, design, effects, encoding, formula, priors

__all__ = ["data_list", "design", "effects", "encoding", "formula", "priors"]
