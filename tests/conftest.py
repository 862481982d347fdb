"""
Pytest configuration and shared fixtures for offloading tests.
"""
import pytest
import simpy
from test_utils import create_test_resource, create_test_topology


@pytest.fixture
def env():
    """A fresh simpy environment."""
    return simpy.Environment()


@pytest.fixture
def single_slot():
    """Environment plus a FIFO resource of capacity 1."""
    return create_test_resource(1)


@pytest.fixture
def line_topology():
    """Three fogs of capacity 4 on a line, one device 0.1 away from fog 0, one far cloud."""
    return create_test_topology()


@pytest.fixture
def tiny_fogs():
    """Three fogs of capacity 2 (one task each), so a second concurrent task must queue."""
    return create_test_topology(fog_capacities=(2, 2, 2))
