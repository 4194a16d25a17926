import pytest

from relata.model import Model
from __tests__.model.utils import FakeClient


@pytest.fixture()
def client():
    """Recording client used by every model that has no transaction attached."""
    fake = FakeClient()
    Model.use_client(fake)
    yield fake
    Model.use_client(None)
