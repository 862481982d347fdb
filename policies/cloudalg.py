from dispatch import Outcome, Tier, best, issue, rank_pool
from queueing import QueueClass
from stats import Tally
from .base import OffloadPolicy


class CloudAlg(OffloadPolicy):
    """
    Adaptive probe-based cloud offload.

    Home and the nearest pool fog are always probed concurrently. The cloud
    is probed on top of them according to a probability that adapts to how
    the fog layer is doing:

    - Tmin / Tmax are the average / max of past fog-layer responses
      (min of home and pool), unless fixed thresholds are given
    - when both fog probes exceed Tmin, the probability grows by a fixed
      increment (capped) and a Bernoulli draw decides on a cloud probe
    - when both exceed Tmax, the cloud probe is forced
    - a cloud probe sets a sticky flag: following tasks probe the cloud
      together with home and pool until the cloud stops paying off, at
      which point the probability decays and the flag is dropped with
      probability 1 - p

    The reported response is the minimum over every probe of the task.
    """

    name = "cloudalg"

    def __init__(self, tmin=0.0, tmax=0.0, adaptive_thresholds=True, probe_prob=None,
                 probe_inc=None, probe_cap=None, decay=None):
        super().__init__()
        self.initial_tmin = tmin
        self.initial_tmax = tmax
        self.adaptive_thresholds = adaptive_thresholds
        self._params = dict(probe_prob=probe_prob, probe_inc=probe_inc,
                            probe_cap=probe_cap, decay=decay)
        self._reset_state(None)

    def _reset_state(self, config):
        def pick(key, fallback):
            value = self._params[key]
            if value is not None:
                return value
            return getattr(config, fallback) if config is not None else None

        self.tmin = self.initial_tmin
        self.tmax = self.initial_tmax
        self.history = Tally("fog layer response")
        self.probe_cloud = False
        self.cloud_probe_prob = pick("probe_prob", "cloud_probe_prob")
        self.probe_inc = pick("probe_inc", "cloud_probe_inc")
        self.probe_cap = pick("probe_cap", "cloud_probe_cap")
        self.cloud_decay = pick("decay", "cloud_decay")
        self.cloud_probes = 0

    def reset(self, sim):
        super().reset(sim)
        self._reset_state(sim.config)

    def thresholds(self):
        if self.adaptive_thresholds and self.history.number_obs():
            self.tmin = self.history.average()
            self.tmax = self.history.max()
        return self.tmin, self.tmax

    def should_probe_cloud(self, sim, home_lat, pool_lat):
        tmin, tmax = self.thresholds()
        if home_lat <= tmin or pool_lat <= tmin:
            return False
        self.cloud_probe_prob = min(self.cloud_probe_prob + self.probe_inc, self.probe_cap)
        if home_lat > tmax and pool_lat > tmax:
            return True
        return sim.rng.random() < self.cloud_probe_prob

    def dispatch(self, sim, app, task):
        env = sim.env
        device = task.device
        home = self.home(sim, device)
        pool = rank_pool(sim, device, home, sim.config.pool_size)
        cloud = sim.topology.cloud

        procs = [issue(sim, task, home, home, Tier.HOME)]
        if pool:
            procs.append(issue(sim, task, home, pool[0], Tier.POOL, QueueClass.REMOTE))
        cloud_proc = None
        if self.probe_cloud:
            cloud_proc = issue(sim, task, cloud, cloud, Tier.CLOUD)
            procs.append(cloud_proc)
        yield env.all_of(procs)

        results = [p.value for p in procs]
        fog_results = [r for r in results if r.tier is not Tier.CLOUD]
        home_lat = fog_results[0].latency
        pool_lat = fog_results[1].latency if len(fog_results) > 1 else home_lat
        fog_best = min(home_lat, pool_lat)
        if any(not r.faulted for r in fog_results):
            self.history.add(min(r.latency for r in fog_results if not r.faulted))

        if cloud_proc is None:
            if self.should_probe_cloud(sim, home_lat, pool_lat):
                self.probe_cloud = True
                sim.log(f"task {task.task_id}: fog layer slow (p={self.cloud_probe_prob:.3f}), probing cloud")
                cloud_result = yield from self._probe_cloud(sim, task, cloud)
                results.append(cloud_result)
        else:
            self.cloud_probes += 1
            cloud_lat = cloud_proc.value.latency
            if cloud_lat >= fog_best:
                self.cloud_probe_prob *= self.cloud_decay
                if sim.rng.random() < 1 - self.cloud_probe_prob:
                    self.probe_cloud = False
                    sim.log(f"task {task.task_id}: cloud did not pay off, stop probing it")

        chosen = best(results)
        return Outcome(chosen.latency, chosen.tier, chosen.node, results)

    def _probe_cloud(self, sim, task, cloud):
        self.cloud_probes += 1
        result = yield issue(sim, task, cloud, cloud, Tier.CLOUD)
        return result
