import pytest
from fakes import FakeClock

from conduit import CONDUIT


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture(autouse=True)
def reset_global_config():
    CONDUIT.reset()
    yield
    CONDUIT.reset()
