"""
Shared pytest fixtures for the Astro gateway test suite.
"""

import pytest

from astro_core.registry import EndpointRegistry
from fakes import FakeNode, make_sessions


@pytest.fixture
def registry():
    """Registry with three bitshares endpoints and one testnet endpoint."""
    return EndpointRegistry({
        "bitshares": ["wss://x", "wss://y", "wss://z"],
        "bitshares_testnet": ["wss://t1"],
    })


@pytest.fixture
def node():
    """Fake node answering get_objects for the dynamic global properties."""
    return FakeNode()


@pytest.fixture
def sessions(node):
    """Session manager whose three endpoints all reach ``node``."""
    manager, _connector = make_sessions(node)
    return manager


@pytest.fixture
def connector(sessions):
    return sessions._connector
