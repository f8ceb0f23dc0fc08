from __future__ import annotations

import pytest

from app.context import ServiceContext
from tests.provider_fakes import FakeProvider, make_context


@pytest.fixture
def provider() -> FakeProvider:
    return FakeProvider()


@pytest.fixture
def ctx(provider: FakeProvider) -> ServiceContext:
    return make_context(provider)
