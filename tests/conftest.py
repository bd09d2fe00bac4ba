import pytest

from fakes import FakeSlack


@pytest.fixture
def slack() -> FakeSlack:
    return FakeSlack()
