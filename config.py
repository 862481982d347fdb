"""
Run configuration for offloading experiments.

Defaults reproduce the reference experiment: 2000 tasks per application,
100 warm-up tasks, a fault window over task indices [500, 800), two units
held per task, and pools of 3 (hedged policies), 4 (MinDelay) and 5 (ModPO2).
"""
from queueing import Discipline


class RunConfig:
    def __init__(
        self,
        total_requests=2000,        # tasks issued by each application
        warmup=100,                 # tasks per application excluded from statistics
        fault_start=500,            # first task index of the outage window
        fault_end=800,              # first task index after the outage
        num_failed_nodes=0,         # fog nodes forced to capacity 0 in the window
        alpha=1.0,                  # local/remote admission mixing
        decay=0.5,                  # geometric decay of probe thresholds
        order=1.0,                  # growth exponent on the probe count
        num_apps=1,                 # applications per device
        start_offset_step=0.1,
        start_offset_cycle=6,
        units_per_request=2,
        link_load_per_request=1,
        pool_size=3,
        mindelay_pool_size=4,
        zone_size=5,
        wait_threshold=0.05,
        cloud_probe_prob=0.5,
        cloud_probe_inc=0.1,
        cloud_probe_cap=0.8,
        cloud_decay=0.5,
        discipline=Discipline.FIFO,
        seed=None,
        horizon=None,
    ):
        self.total_requests = total_requests
        self.warmup = warmup
        self.fault_start = fault_start
        self.fault_end = fault_end
        self.num_failed_nodes = num_failed_nodes
        self.alpha = alpha
        self.decay = decay
        self.order = order
        self.num_apps = num_apps
        self.start_offset_step = start_offset_step
        self.start_offset_cycle = start_offset_cycle
        self.units_per_request = units_per_request
        self.link_load_per_request = link_load_per_request
        self.pool_size = pool_size
        self.mindelay_pool_size = mindelay_pool_size
        self.zone_size = zone_size
        self.wait_threshold = wait_threshold
        self.cloud_probe_prob = cloud_probe_prob
        self.cloud_probe_inc = cloud_probe_inc
        self.cloud_probe_cap = cloud_probe_cap
        self.cloud_decay = cloud_decay
        self.discipline = discipline
        self.seed = seed
        self.horizon = horizon

    def validate(self):
        if self.total_requests <= 0:
            raise ValueError("total_requests must be positive")
        if self.warmup < 0:
            raise ValueError("warmup cannot be negative")
        if self.fault_start < 0 or self.fault_end < self.fault_start:
            raise ValueError("fault window must satisfy 0 <= fault_start <= fault_end")
        if self.num_failed_nodes < 0:
            raise ValueError("num_failed_nodes cannot be negative")
        if not 0 < self.alpha <= 1:
            raise ValueError("alpha must be in (0, 1]")
        if not 0 < self.decay <= 1:
            raise ValueError("decay must be in (0, 1]")
        if self.num_apps <= 0:
            raise ValueError("num_apps must be positive")
        if self.units_per_request <= 0:
            raise ValueError("units_per_request must be positive")
        for name in ("pool_size", "mindelay_pool_size", "zone_size"):
            if getattr(self, name) < 1:
                raise ValueError(f"{name} must be at least 1")
        if not 0 <= self.cloud_probe_prob <= 1 or not 0 <= self.cloud_probe_cap <= 1:
            raise ValueError("cloud probe probabilities must be in [0, 1]")
        return self

    def start_offset(self, app_index):
        return (app_index % self.start_offset_cycle) * self.start_offset_step

    def copy(self, **overrides):
        params = dict(self.__dict__)
        params.update(overrides)
        return RunConfig(**params)

    def to_dict(self):
        d = dict(self.__dict__)
        d["discipline"] = self.discipline.name
        return d
