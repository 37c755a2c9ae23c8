from __future__ import annotations

import sys
from pathlib import Path

import pandas as pd
import pytest


def pytest_configure() -> None:
    """Ensure the repository root is on sys.path.

    The tests live inside the package, so when pytest is run from within
    `bayesdesign/` without an installed copy, importing the top-level
    package fails unless the parent directory is on `sys.path`.
    """

    repo_root = Path(__file__).resolve().parents[2]
    repo_root_str = str(repo_root)
    if repo_root_str not in sys.path:
        sys.path.insert(0, repo_root_str)


@pytest.fixture
def obs() -> pd.DataFrame:
    return pd.DataFrame(
        {
            "g": ["a", "b", "a", "b", "c"],
            "x": [1.0, 1.0, 1.0, 2.0, 1.0],
            "week": [1, 2, 3, 1, 2],
        },
    )
