from dispatch import Outcome, Tier, probe, rank_pool, sorted_neighbors
from queueing import QueueClass
from .base import OffloadPolicy


class MinDelay(OffloadPolicy):
    """
    Threshold cascade.

    The home fog serves the task when its estimated waiting time is under the
    threshold. Otherwise the home fog forwards it to the first neighbour,
    in order of link latency plus waiting time, that is under the threshold.
    When no neighbour qualifies the task goes to the cloud.
    """

    name = "mindelay"

    def __init__(self, threshold=None, pool_size=None):
        super().__init__()
        self.threshold = threshold
        self.pool_size = pool_size

    def fallback(self, sim, home, neighbors):
        return sim.topology.cloud, Tier.CLOUD

    def dispatch(self, sim, app, task):
        threshold = sim.config.wait_threshold if self.threshold is None else self.threshold
        k = self.pool_size or sim.config.mindelay_pool_size
        device = task.device
        home = self.home(sim, device)

        if home.resource.waiting_time < threshold:
            result = yield from probe(sim, task, home, home, Tier.HOME)
            return Outcome(result.latency, Tier.HOME, home, [result])

        neighbors = sorted_neighbors(sim, device, home, rank_pool(sim, device, home, k))
        for node in neighbors:
            if node.resource.waiting_time < threshold:
                sim.log(f"task {task.task_id}: home busy, forwarded to node {node.node_id}")
                result = yield from probe(sim, task, home, node, Tier.POOL, QueueClass.REMOTE)
                return Outcome(result.latency, Tier.POOL, node, [result])

        node, tier = self.fallback(sim, home, neighbors)
        sim.log(f"task {task.task_id}: no neighbour under threshold, falling back to {tier.value}")
        if tier is Tier.CLOUD:
            result = yield from probe(sim, task, node, node, tier)
        elif node is home:
            result = yield from probe(sim, task, home, home, tier)
        else:
            result = yield from probe(sim, task, home, node, tier, QueueClass.REMOTE)
        return Outcome(result.latency, tier, node, [result])


class WithoutCloudMinDelay(MinDelay):
    """MinDelay that never leaves the fog layer: the last-ranked neighbour takes the overflow."""

    name = "without-cloud-mindelay"

    def fallback(self, sim, home, neighbors):
        if not neighbors:
            return home, Tier.HOME
        return neighbors[-1], Tier.POOL
