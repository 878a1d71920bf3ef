"""
Pytest fixtures for the activity history tests. All RPC access goes through
an in-memory fake client.
"""

import pytest

from factories import FakeRpcClient


@pytest.fixture
def fake_client():
    return FakeRpcClient()
