"""
StubDriver pytest plugin

Fixtures:
- stub_server_session: one running StubServer for the whole session
- stub_server: the session server, reset before each test and verified
  after it, so any unfulfilled expectation or unexpected request fails
  the test
"""

import pytest

from .mock import StubConfig, StubServer


@pytest.fixture(scope="session")
def stub_server_config() -> StubConfig:
    """Override in a conftest.py to customise the session server."""
    return StubConfig.from_env()


@pytest.fixture(scope="session")
def stub_server_session(stub_server_config):
    server = StubServer(config=stub_server_config)
    server.start()
    yield server
    server.shutdown()


@pytest.fixture
def stub_server(stub_server_session):
    stub_server_session.reset()
    yield stub_server_session
    try:
        stub_server_session.verify()
    finally:
        stub_server_session.reset()
