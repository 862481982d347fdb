from dispatch import Outcome, Tier, probe, rank_pool
from .base import OffloadPolicy


class PowerOfTwo(OffloadPolicy):
    """
    Power-of-two-choices.

    Samples two distinct fog nodes uniformly, sends the task to the one with
    the shorter local queue. Ties are broken uniformly at random.
    """

    name = "po2"

    def candidates(self, sim, device, home):
        return sim.topology.fogs

    def choose(self, sim, candidates):
        if len(candidates) == 1:
            return candidates[0]
        i, j = sim.rng.choice(len(candidates), size=2, replace=False)
        first, second = candidates[int(i)], candidates[int(j)]
        len_first = len(first.resource.local_queue)
        len_second = len(second.resource.local_queue)
        if len_first < len_second:
            return first
        if len_second < len_first:
            return second
        return first if sim.rng.random() < 0.5 else second

    def dispatch(self, sim, app, task):
        home = self.home(sim, task.device)
        node = self.choose(sim, self.candidates(sim, task.device, home))
        tier = Tier.HOME if node is home else Tier.POOL
        sim.log(f"task {task.task_id}: {self.name} picked node {node.node_id} ({tier.value})")
        # The device talks to the chosen node directly
        result = yield from probe(sim, task, node, node, tier)
        return Outcome(result.latency, tier, node, [result])


class ModPO2(PowerOfTwo):
    """PO2 restricted to the zone of fogs nearest the home fog (home excluded)."""

    name = "modpo2"

    def __init__(self, zone_size=None):
        super().__init__()
        self.zone_size = zone_size

    def candidates(self, sim, device, home):
        zone = rank_pool(sim, device, home, self.zone_size or sim.config.zone_size)
        return zone or [home]
