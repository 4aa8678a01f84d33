from __future__ import annotations

from copy import deepcopy

import pytest

from deal_engine.defaults import DEFAULTS
from deal_engine.schema import migrate_records


@pytest.fixture
def base_records() -> dict:
    records, _, _ = migrate_records(deepcopy(DEFAULTS))
    return records


@pytest.fixture
def base_financials(base_records) -> dict:
    return base_records["financials"]


@pytest.fixture
def base_deal_inputs(base_records) -> dict:
    return base_records["deal_inputs"]


@pytest.fixture
def base_projection(base_records) -> dict:
    return base_records["projection"]
