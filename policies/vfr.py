from collections import deque

from dispatch import (Outcome, RaceState, Tier, best, issue, rank_pool, settle_race,
                      wait_for_answer)
from queueing import QueueClass
from .base import OffloadPolicy


class VFR(OffloadPolicy):
    """
    Hedged multi-tier race.

    A task is first sent to its home fog. If home has not answered within
    `pool_probe_delay` of the task's arrival, the same task is also sent to a
    pool fog (in its remote queue). If neither has answered within
    `cloud_probe_delay` of arrival, it is sent to the cloud as well. The first
    probe to complete wins; every probe still outstanding is demoted to DUMMY
    so its reservation is retired on admission instead of being served.

    Thresholds adapt after every task:
    - pool not needed: pool_probe_delay *= decay
    - pool probed: pool_probe_delay = |pool - home| * pool_probes ** order
    - cloud probed: cloud_probe_delay = |cloud - min(home, pool)| * cloud_probes ** order
    - pool probed but cloud not needed: cloud_probe_delay *= decay

    The pool fog for a home node is chosen once per run, the first time it is
    needed, as the pool member with the lowest link latency plus waiting time.

    `history` keeps the last `history_limit` threshold pairs.
    """

    name = "vfr"
    use_cloud = True

    def __init__(self, decay=None, order=None, pool_size=None, history_limit=1000):
        super().__init__()
        self.history_limit = history_limit
        self._params = (decay, order, pool_size)
        self.decay = decay
        self.order = order
        self.pool_size = pool_size
        self.pool_probe_delay = 0.0
        self.cloud_probe_delay = 0.0
        self.pool_probes = 0
        self.cloud_probes = 0
        self.pool_choice = {}
        self.history = deque(maxlen=history_limit)  # (pool_probe_delay, cloud_probe_delay) after each task

    def reset(self, sim):
        super().reset(sim)
        decay, order, pool_size = self._params
        cfg = sim.config
        self.decay = cfg.decay if decay is None else decay
        self.order = cfg.order if order is None else order
        self.pool_size = pool_size or cfg.pool_size
        self.pool_probe_delay = 0.0
        self.cloud_probe_delay = 0.0
        self.pool_probes = 0
        self.cloud_probes = 0
        self.pool_choice = {}
        self.history = deque(maxlen=self.history_limit)

    def pool_node(self, sim, device, home):
        node = self.pool_choice.get(home.node_id)
        if node is None:
            links = sim.topology.links
            pool = rank_pool(sim, device, home, self.pool_size)
            if not pool:
                return None
            node = min(pool, key=lambda n: links.get(home, n).latency() + n.resource.waiting_time)
            self.pool_choice[home.node_id] = node
            sim.log(f"home {home.node_id}: pool fog is node {node.node_id}")
        return node

    def dispatch(self, sim, app, task):
        env = sim.env
        t0 = task.arrival_time
        home = self.home(sim, task.device)
        race = RaceState(task)
        probes = {issue(sim, task, home, home, Tier.HOME, race=race): home}

        pool_stage = cloud_stage = False
        answered = yield from wait_for_answer(sim, list(probes), t0 + self.pool_probe_delay)
        if not answered:
            pool_stage = True
            node = self.pool_node(sim, task.device, home)
            if node is not None:
                probes[issue(sim, task, home, node, Tier.POOL, QueueClass.REMOTE, race)] = node
            if self.use_cloud:
                deadline = max(env.now, t0 + self.cloud_probe_delay)
                answered = yield from wait_for_answer(sim, list(probes), deadline)
                if not answered:
                    cloud_stage = True
                    cloud = sim.topology.cloud
                    probes[issue(sim, task, cloud, cloud, Tier.CLOUD, race=race)] = cloud

        results = yield from settle_race(sim, race, probes)
        self.update_thresholds(results, pool_stage, cloud_stage)
        chosen = best(results)
        sim.log(f"task {task.task_id}: race won by {chosen.tier.value} node {chosen.node.node_id} "
                f"({chosen.latency:.4f}), next delays pool={self.pool_probe_delay:.4f} "
                f"cloud={self.cloud_probe_delay:.4f}")
        return Outcome(chosen.latency, chosen.tier, chosen.node, results)

    def update_thresholds(self, results, pool_stage, cloud_stage):
        by_tier = {r.tier: r.latency for r in results}
        home_lat = by_tier[Tier.HOME]
        pool_lat = by_tier.get(Tier.POOL, home_lat)

        if not pool_stage:
            self.pool_probe_delay *= self.decay
        else:
            self.pool_probes += 1
            self.pool_probe_delay = abs(pool_lat - home_lat) * self.pool_probes ** self.order
            if cloud_stage:
                self.cloud_probes += 1
                relative = min(home_lat, pool_lat)
                self.cloud_probe_delay = abs(by_tier[Tier.CLOUD] - relative) * self.cloud_probes ** self.order
            elif self.use_cloud:
                self.cloud_probe_delay *= self.decay
        self.history.append((self.pool_probe_delay, self.cloud_probe_delay))


class VFog(VFR):
    """VFR confined to the fog layer: home and pool race, the cloud is never probed."""

    name = "vfog"
    use_cloud = False
