"""Shared pytest configuration for the StubDriver test suite."""

# Fixtures are also registered through the pytest11 entry point once the
# package is installed; importing them here keeps the suite runnable from a
# plain checkout.
from stubdriver.pytest_plugin import stub_server, stub_server_config, stub_server_session  # noqa: F401
