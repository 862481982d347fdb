"""
Device / fog / cloud topology and the link latency model.

A topology consists of:
- Devices: fixed location and a baseline latency to the nearest node
- Fog nodes: limited capacity, one Resource each, linked pairwise
- Cloud nodes: large capacity, reached directly from the device

Links are undirected: exactly one Link exists per unordered node pair.
Latency is the Euclidean distance between the endpoints, scaled by
load / bandwidth once the in-flight load exceeds the bandwidth.

The ingestion helpers at the bottom build topologies either synthetically
(seeded, for experiments and tests) or from a JSON document.
"""
import json
import math

import numpy as np

from queueing import Discipline, Resource

FOG = "fog"
CLOUD = "cloud"

CLOUD_CAPACITY = 100
DEFAULT_BANDWIDTH = 1000.0


def distance(lng_a, lat_a, lng_b, lat_b):
    return math.sqrt((lng_a - lng_b) ** 2 + (lat_a - lat_b) ** 2)


def link_latency(load, dist, bandwidth):
    """Base delay is the distance; past the bandwidth it scales with load / bandwidth."""
    if load <= bandwidth:
        return dist
    return load / bandwidth * dist


class Device:
    __slots__ = ("device_id", "longitude", "latitude", "latency")

    def __init__(self, device_id, longitude, latitude, latency):
        self.device_id = device_id
        self.longitude = longitude
        self.latitude = latitude
        self.latency = latency

    def distance_to(self, node):
        return distance(self.longitude, self.latitude, node.longitude, node.latitude)

    def __repr__(self):
        return f"Device({self.device_id})"


class Node:
    def __init__(self, node_id, longitude, latitude, capacity, tier=FOG,
                 discipline=Discipline.FIFO, alpha=1.0):
        self.node_id = node_id
        self.longitude = longitude
        self.latitude = latitude
        self.tier = tier
        self.nominal_capacity = capacity
        self.resource = Resource(capacity, name=f"{tier}-{node_id}", discipline=discipline, alpha=alpha)
        self.utilization = []  # (time, busy fraction, running utilization) samples

    @property
    def is_cloud(self):
        return self.tier == CLOUD

    @property
    def capacity(self):
        return self.resource.capacity

    def bind(self, env):
        """Attach the node to a new run: nominal capacity, empty queues, no samples."""
        self.resource.capacity = self.nominal_capacity
        self.resource.bind(env)
        self.utilization = []

    def record_utilization(self, now):
        res = self.resource
        if res.capacity == 0:
            return
        busy = (res.capacity - res.available) / res.capacity
        running = res.utilization() if res.stats else busy
        self.utilization.append((now, busy, running))

    def mean_utilization(self):
        if not self.utilization:
            return 0.0
        return float(np.mean([u[1] for u in self.utilization]))

    def __repr__(self):
        return f"Node({self.tier}-{self.node_id}, capacity={self.capacity})"


class Link:
    def __init__(self, a, b, bandwidth=DEFAULT_BANDWIDTH):
        if a is b:
            raise ValueError("a link needs two distinct nodes")
        self.a = a
        self.b = b
        self.bandwidth = bandwidth
        self.load = 0.0

    def endpoints(self):
        return frozenset((self.a.node_id, self.b.node_id))

    def connects(self, x, y):
        return {x.node_id, y.node_id} == {self.a.node_id, self.b.node_id}

    def add_load(self, amount):
        self.load += amount
        return self.load

    def remove_load(self, amount):
        if amount > self.load:
            raise ValueError(f"link {self.a.node_id}-{self.b.node_id} load would go negative")
        self.load -= amount
        return self.load

    def distance(self):
        return distance(self.a.longitude, self.a.latitude, self.b.longitude, self.b.latitude)

    def latency(self):
        return link_latency(self.load, self.distance(), self.bandwidth)

    def __repr__(self):
        return f"Link({self.a.node_id}<->{self.b.node_id}, load={self.load}, bw={self.bandwidth})"


class LinkTable:
    """Constant-time lookup of the single link joining two nodes."""

    def __init__(self, links=()):
        self._links = {}
        for link in links:
            self.add(link)

    @classmethod
    def full_mesh(cls, nodes, bandwidth=DEFAULT_BANDWIDTH):
        table = cls()
        for i in range(len(nodes) - 1):
            for j in range(i + 1, len(nodes)):
                table.add(Link(nodes[i], nodes[j], bandwidth))
        return table

    def add(self, link):
        key = link.endpoints()
        if key in self._links:
            raise ValueError(f"duplicate link between {link.a.node_id} and {link.b.node_id}")
        self._links[key] = link

    def get(self, x, y):
        link = self._links.get(frozenset((x.node_id, y.node_id)))
        if link is None:
            raise ValueError(f"no link between {x.node_id} and {y.node_id}")
        return link

    def find(self, x, y):
        return self._links.get(frozenset((x.node_id, y.node_id)))

    def reset(self):
        for link in self._links.values():
            link.load = 0.0

    def __iter__(self):
        return iter(self._links.values())

    def __len__(self):
        return len(self._links)


class Topology:
    def __init__(self, devices, fogs, clouds, links=None):
        self.devices = list(devices)
        self.fogs = list(fogs)
        self.clouds = list(clouds)
        self.links = links if links is not None else LinkTable.full_mesh(self.fogs)

    @property
    def nodes(self):
        return self.fogs + self.clouds

    @property
    def cloud(self):
        """The last-resort cloud node (the last one listed)."""
        if not self.clouds:
            raise ValueError("topology has no cloud node")
        return self.clouds[-1]

    def bind(self, env):
        for node in self.nodes:
            node.bind(env)
        self.links.reset()

    def configure(self, alpha=None, discipline=None):
        for node in self.nodes:
            if alpha is not None:
                node.resource.set_alpha(alpha)
            if discipline is not None:
                node.resource.discipline = discipline


def nearest_fog_distance(lng, lat, fogs):
    return min(distance(lng, lat, f.longitude, f.latitude) for f in fogs)


def generate_topology(num_fogs=10, num_clouds=1, num_devices=20, fog_capacity=(4, 16),
                      cloud_capacity=CLOUD_CAPACITY, bandwidth=DEFAULT_BANDWIDTH,
                      area=(0.0, 1.0), seed=42):
    """
    Build a synthetic topology with a seeded generator.

    Coordinates are uniform in the square `area`; fog capacities uniform in
    `fog_capacity` (inclusive); each device's baseline latency is its
    distance to the nearest fog.
    """
    if num_fogs < 2:
        raise ValueError("need at least two fog nodes")
    rng = np.random.default_rng(seed)
    low, high = area

    fogs = []
    for i in range(num_fogs):
        lng, lat = rng.uniform(low, high, size=2)
        capacity = int(rng.integers(fog_capacity[0], fog_capacity[1] + 1))
        fogs.append(Node(i, float(lng), float(lat), capacity, tier=FOG))

    clouds = []
    for i in range(num_clouds):
        lng, lat = rng.uniform(low, high, size=2)
        clouds.append(Node(num_fogs + i, float(lng), float(lat), cloud_capacity, tier=CLOUD))

    devices = []
    for i in range(num_devices):
        lng, lat = (float(v) for v in rng.uniform(low, high, size=2))
        devices.append(Device(i, lng, lat, nearest_fog_distance(lng, lat, fogs)))

    return Topology(devices, fogs, clouds, LinkTable.full_mesh(fogs, bandwidth))


def topology_from_dict(data):
    fogs = [Node(f["id"], f["longitude"], f["latitude"], int(f["capacity"]), tier=FOG)
            for f in data["fogs"]]
    clouds = [Node(c["id"], c["longitude"], c["latitude"], int(c.get("capacity", CLOUD_CAPACITY)),
                   tier=CLOUD)
              for c in data.get("clouds", [])]

    devices = []
    for d in data["devices"]:
        latency = d.get("latency")
        if latency is None:
            latency = nearest_fog_distance(d["longitude"], d["latitude"], fogs)
        devices.append(Device(d["id"], d["longitude"], d["latitude"], float(latency)))

    if "links" in data:
        by_id = {n.node_id: n for n in fogs + clouds}
        links = LinkTable(Link(by_id[l["a"]], by_id[l["b"]], l.get("bandwidth", DEFAULT_BANDWIDTH))
                          for l in data["links"])
    else:
        links = LinkTable.full_mesh(fogs, data.get("bandwidth", DEFAULT_BANDWIDTH))
    return Topology(devices, fogs, clouds, links)


def load_topology(path):
    """Read a topology document: {"devices": [...], "fogs": [...], "clouds": [...], "links": [...]}."""
    with open(path, "r") as f:
        return topology_from_dict(json.load(f))
