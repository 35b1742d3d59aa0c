import pytest

from tests.fake.fake_store import FakeIndexStore


@pytest.fixture
def store():
    return FakeIndexStore()


@pytest.fixture
def sharded_store():
    return FakeIndexStore(scripting=True, cross_key_atomicity=False)


@pytest.fixture
def scriptless_store():
    return FakeIndexStore(scripting=False, cross_key_atomicity=True)
