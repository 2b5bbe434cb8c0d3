from __future__ import annotations

import pytest

from calcmass.mass import MassCalculator
from calcmass.tables import TableSet, load_tables


@pytest.fixture(scope="session")
def tables() -> TableSet:
    return load_tables()


@pytest.fixture(scope="session")
def calculator(tables: TableSet) -> MassCalculator:
    return MassCalculator(tables)


@pytest.fixture
def toy_weights() -> dict[str, float]:
    return {"H": 1.0, "C": 12.0, "N": 14.0, "O": 16.0, "Y": 89.0}
