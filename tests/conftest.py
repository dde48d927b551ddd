"""
Pytest configuration and fixtures.
"""

import pytest

from fakes import FakeExchange, RecordingGateway, make_filters
from ocobot.core.models import SymbolFilters


@pytest.fixture
def filters() -> SymbolFilters:
    return make_filters()


@pytest.fixture
def gateway() -> RecordingGateway:
    return RecordingGateway()


@pytest.fixture
def exchange() -> FakeExchange:
    return FakeExchange()
