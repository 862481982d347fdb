"""
Dispatch mechanics shared by every offloading policy.

A probe is one request of a task to one node, modelled as a simpy process:
uplink delay, admission on the node's Resource, service, release, downlink
delay. Its latency is measured from the task's arrival, so probes issued
later in a race carry the time they waited before being issued.

Hedged probes carry the task id so the node's dedup ledger tracks them.
Once a race is decided, probes still outstanding are demoted to DUMMY:
queued ones are retired on admission without consuming capacity, and their
would-be latency is read back from the ledger.
"""
from enum import Enum

from queueing import FAULT_PENALTY, RETIRED, QueueClass, Role


class Tier(Enum):
    HOME = "home"
    POOL = "pool"
    CLOUD = "cloud"


class ProbeResult:
    def __init__(self, node, tier, latency, served=False, retired=False, faulted=False, entry=None):
        self.node = node
        self.tier = tier
        self.latency = latency
        self.served = served
        self.retired = retired
        self.faulted = faulted
        self.entry = entry

    def __repr__(self):
        state = "faulted" if self.faulted else "retired" if self.retired else "served"
        return f"ProbeResult({self.tier.value}, node={self.node.node_id}, latency={self.latency:.4f}, {state})"


class Outcome:
    """What a policy reports for one task: the chosen latency and where it came from."""

    def __init__(self, latency, tier, node, probes=None):
        self.latency = latency
        self.tier = tier
        self.node = node
        self.probes = probes or []

    def __repr__(self):
        return f"Outcome({self.tier.value}, latency={self.latency:.4f})"


class RaceState:
    def __init__(self, task):
        self.task = task
        self.decided = False


# ----------------------------------------------------------------------
# Node selection
# ----------------------------------------------------------------------
def select_home(device, nodes):
    """Nearest node to the device; ties go to the first in roster order."""
    candidates = [n for n in nodes if n is not None]
    if not candidates:
        raise ValueError("no candidate node for the home selection")
    return min(candidates, key=device.distance_to)


def rank_pool(sim, device, home, k, candidates=None):
    """The k nodes closest to `home` over their links, excluding home itself."""
    links = sim.topology.links
    if candidates is None:
        candidates = sim.topology.fogs
    scored = []
    for node in candidates:
        if node is home:
            continue
        link = links.find(home, node)
        if link is None:
            continue
        scored.append((device.latency + link.latency(), node))
    scored.sort(key=lambda s: s[0])
    return [node for _, node in scored[:k]]


def sorted_neighbors(sim, device, home, domain):
    """Rank `domain` by link latency from home plus the neighbour's estimated wait."""
    links = sim.topology.links
    scored = []
    for node in domain:
        link = links.find(home, node)
        if link is None:
            continue
        scored.append((device.latency + link.latency() + node.resource.waiting_time, node))
    scored.sort(key=lambda s: s[0])
    return [node for _, node in scored]


def network_latency(sim, device, source, destination):
    if source is destination:
        return device.latency + device.distance_to(destination)
    return device.latency + sim.topology.links.get(source, destination).latency()


# ----------------------------------------------------------------------
# Probes
# ----------------------------------------------------------------------
def probe(sim, task, source, destination, tier, queue=QueueClass.LOCAL, race=None):
    """
    Process generator: send `task` to `destination` and return a ProbeResult.

    With a `race`, the request is tracked in the ledger under the task id and
    is issued as DUMMY if the race was already decided before it got there.
    """
    env = sim.env
    cfg = sim.config
    res = destination.resource
    if res.capacity == 0:
        sim.log(f"task {task.task_id}: {tier.value} node {destination.node_id} is down")
        return ProbeResult(destination, tier, FAULT_PENALTY, faulted=True)

    link = None if source is destination else sim.topology.links.get(source, destination)
    if link is not None:
        link.add_load(cfg.link_load_per_request)
    try:
        yield env.timeout(network_latency(sim, task.device, source, destination))

        task_id = None
        role = None
        if race is not None:
            task_id = task.task_id
            role = Role.DUMMY if race.decided else Role.REAL
        cost = yield res.request(task.units, queue, role, task_id, task.service_time, task.arrival_time)

        if cost is RETIRED:
            entry = res.ledger.consume(task.task_id)
            latency = entry.dummy + network_latency(sim, task.device, source, destination)
            sim.log(f"task {task.task_id}: {tier.value} probe on node {destination.node_id} retired")
            return ProbeResult(destination, tier, latency, retired=True, entry=entry)
        if cost == FAULT_PENALTY:
            return ProbeResult(destination, tier, FAULT_PENALTY, faulted=True)

        yield env.timeout(task.service_time)
        cost += res.release(task.units)
        yield env.timeout(network_latency(sim, task.device, source, destination))
    finally:
        if link is not None:
            link.remove_load(cfg.link_load_per_request)

    entry = res.ledger.consume(task.task_id) if race is not None else None
    # A release that hit the fault penalty is not a usable answer
    return ProbeResult(destination, tier, env.now - task.arrival_time + cost, served=True,
                       faulted=cost >= FAULT_PENALTY, entry=entry)


def issue(sim, task, source, destination, tier, queue=QueueClass.LOCAL, race=None):
    """Start a probe as its own process so several can run concurrently."""
    proc = sim.env.process(probe(sim, task, source, destination, tier, queue, race))
    sim.log(f"task {task.task_id}: {tier.value} probe issued to node {destination.node_id}")
    return proc


def answered(procs):
    """Probes that completed with a usable (non-faulted) answer."""
    return [p for p in procs if p.triggered and not p.value.faulted]


def wait_for_answer(sim, procs, deadline):
    """
    Process generator: wait until one of `procs` answers or `deadline` passes.

    Returns True if an answer arrived by the deadline.
    """
    env = sim.env
    while True:
        if answered(procs):
            return True
        pending = [p for p in procs if not p.triggered]
        if not pending or env.now >= deadline:
            return False
        yield env.any_of(pending + [env.timeout(deadline - env.now)])


def settle_race(sim, race, probes):
    """
    Process generator: pick the first probe to answer and demote the rest.

    `probes` maps each probe process to its destination node. Waits for
    every probe to resolve and returns their results in issue order.
    """
    env = sim.env
    procs = list(probes)
    winner = None
    while winner is None:
        usable = answered(procs)
        if usable:
            winner = min(usable, key=lambda p: p.value.latency)
            break
        pending = [p for p in procs if not p.triggered]
        if not pending:
            break
        yield env.any_of(pending)

    if winner is not None:
        race.decided = True
        for proc, node in probes.items():
            if proc is not winner and not proc.triggered:
                node.resource.demote(race.task.task_id)

    yield env.all_of(procs)
    return [p.value for p in procs]


def best(results):
    """Plain minimum over the probe results."""
    return min(results, key=lambda r: r.latency)
