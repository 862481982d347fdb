"""
Tests for topology entities, the link latency model and topology ingestion.
"""
import json

import pytest
from test_utils import *

from topology import (Link, LinkTable, Node, generate_topology, link_latency, load_topology,
                      topology_from_dict)


def test_link_latency_below_bandwidth_is_distance():
    assert link_latency(5, 2.0, 10) == 2.0
    assert link_latency(10, 2.0, 10) == 2.0, "At exactly the bandwidth the delay is unscaled"


def test_overloaded_link_scales_by_load_over_bandwidth():
    """Two nodes with bandwidth 10 and 15 units in flight: latency is base * 15 / 10."""
    a = Node(0, 0.0, 0.0, 4)
    b = Node(1, 3.0, 4.0, 4)
    link = Link(a, b, bandwidth=10)
    base = link.latency()
    assert base == pytest.approx(5.0)

    for _ in range(15):
        link.add_load(1)
    loaded = link.latency()
    assert loaded > base, "Overloaded link should be slower than the unloaded base delay"
    assert loaded == pytest.approx(base * 15 / 10)

    for _ in range(15):
        link.remove_load(1)
    assert link.latency() == pytest.approx(base)


def test_link_load_cannot_go_negative():
    link = Link(Node(0, 0, 0, 1), Node(1, 1, 0, 1))
    with pytest.raises(ValueError):
        link.remove_load(1)


def test_link_table_single_link_per_pair():
    nodes = [Node(i, float(i), 0.0, 2) for i in range(4)]
    table = LinkTable.full_mesh(nodes)
    assert len(table) == 6
    assert table.get(nodes[0], nodes[3]) is table.get(nodes[3], nodes[0]), "Links are undirected"
    with pytest.raises(ValueError):
        table.add(Link(nodes[1], nodes[0]))
    assert table.find(nodes[0], nodes[0]) is None


def test_topology_cloud_is_last_listed(line_topology):
    assert line_topology.cloud.is_cloud
    assert line_topology.cloud is line_topology.clouds[-1]
    assert len(line_topology.nodes) == 4


def test_node_bind_restores_nominal_capacity(env, line_topology):
    node = line_topology.fogs[0]
    node.bind(env)
    node.resource.set_capacity(0)
    node.bind(env)
    assert node.capacity == node.nominal_capacity
    assert node.resource.available == node.nominal_capacity


def test_generate_topology_is_seeded():
    a = generate_topology(num_fogs=5, num_devices=8, seed=1)
    b = generate_topology(num_fogs=5, num_devices=8, seed=1)
    assert [(f.longitude, f.capacity) for f in a.fogs] == [(f.longitude, f.capacity) for f in b.fogs]
    assert len(a.links) == 10
    assert len(a.devices) == 8
    assert all(4 <= f.capacity <= 16 for f in a.fogs)
    assert a.cloud.capacity == 100
    for device in a.devices:
        assert device.latency == pytest.approx(min(device.distance_to(f) for f in a.fogs))


def test_load_topology_from_json(tmp_path):
    doc = {
        "fogs": [
            {"id": 0, "longitude": 0.0, "latitude": 0.0, "capacity": 4},
            {"id": 1, "longitude": 1.0, "latitude": 0.0, "capacity": 6},
        ],
        "clouds": [{"id": 9, "longitude": 5.0, "latitude": 5.0}],
        "devices": [{"id": 0, "longitude": 0.0, "latitude": 0.5}],
        "bandwidth": 50,
    }
    path = tmp_path / "net.json"
    path.write_text(json.dumps(doc))
    topo = load_topology(str(path))
    assert [f.capacity for f in topo.fogs] == [4, 6]
    assert topo.cloud.capacity == 100
    assert topo.devices[0].latency == pytest.approx(0.5)
    assert topo.links.get(topo.fogs[0], topo.fogs[1]).bandwidth == 50


def test_explicit_links_are_used():
    doc = {
        "fogs": [{"id": i, "longitude": float(i), "latitude": 0.0, "capacity": 2} for i in range(3)],
        "devices": [{"id": 0, "longitude": 0.0, "latitude": 0.0, "latency": 0.2}],
        "links": [{"a": 0, "b": 1, "bandwidth": 5}],
    }
    topo = topology_from_dict(doc)
    assert len(topo.links) == 1
    assert topo.links.find(topo.fogs[0], topo.fogs[2]) is None
    assert topo.devices[0].latency == 0.2
