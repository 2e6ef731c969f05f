"""
conftest.py - Shared pytest fixtures for stream tests

Provides common fixtures used across unit, functional and conformance tests:
- Protocol parameters and term sheets
- Pure stream snapshots at creation
- Funded in-memory custody
- Factory-created streams (plain, with threshold, verbose)
"""

import pytest

from streamledger import FixedPoint

from tests.stream_builders import (
    make_custody,
    make_params,
    make_terms,
    open_state,
    open_stream,
)


@pytest.fixture
def params():
    """1% exit fee, fee collector 'treasury', admin 'admin'."""
    return make_params()


@pytest.fixture
def terms():
    return make_terms()


@pytest.fixture
def state():
    """Pure snapshot of the standard stream, WAITING at creation time."""
    return open_state()


@pytest.fixture
def custody():
    return make_custody()


@pytest.fixture
def stream():
    """Factory-created stream without a threshold."""
    _, stream = open_stream()
    return stream


@pytest.fixture
def threshold_stream():
    """Factory-created stream that needs 1_000_000 in asset spent to succeed."""
    _, stream = open_stream(threshold=1_000_000)
    return stream


@pytest.fixture
def half():
    return FixedPoint.from_ratio(1, 2)
