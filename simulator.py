"""
Discrete-event simulation kernel for task offloading.

Implements process-based simulation on a simpy environment with:
- A global virtual clock shared by every application
- Application task generators started at their configured offsets
- Suspension on resource admission (processes resume exactly when admitted)
- Warm-up gating, fault injection and termination once every quota is met

Events at the same virtual instant run in the order they were scheduled.
"""
import numpy as np
import simpy

from config import RunConfig
from stats import Tally
from workload import FaultInjector, create_applications


class Simulator:
    def __init__(self, topology, policy, sampler, config=None, debug=False, rng=None):
        self.topology = topology
        self.policy = policy
        self.sampler = sampler
        self.config = (config or RunConfig()).validate()
        self.debug = debug
        self.rng = rng if rng is not None else np.random.default_rng(self.config.seed)
        self.env = None
        self.applications = []
        self.response = Tally("Mean Response Time")
        self.faults = None
        self.completed = False

    @property
    def time(self):
        return self.env.now if self.env is not None else 0.0

    def log(self, msg):
        if self.debug:
            print(f"[t={self.time:.2f}] {msg}")

    def reset(self):
        """Fresh environment, nominal capacities, empty queues, new applications."""
        self.env = simpy.Environment()
        self.topology.configure(alpha=self.config.alpha, discipline=self.config.discipline)
        self.topology.bind(self.env)
        for node in self.topology.nodes:
            node.resource.set_stat_collecting(True)

        self.response = Tally("Mean Response Time")
        self.completed = False
        self.applications = create_applications(self.topology.devices, self.config)
        self.faults = FaultInjector(self.topology.fogs, self.config.fault_start,
                                    self.config.fault_end, self.config.num_failed_nodes,
                                    [app.app_id for app in self.applications])
        self.policy.reset(self)
        self.log(f"{len(self.applications)} applications, {len(self.topology.fogs)} fogs, "
                 f"{len(self.topology.clouds)} clouds, policy={self.policy.name}")

    def run(self):
        # Reset on every run so results never leak between runs
        self.reset()
        done = self.env.all_of([self.env.process(app.run(self)) for app in self.applications])
        if self.config.horizon is None:
            self.env.run(until=done)
        else:
            self.env.run(until=self.env.any_of([done, self.env.timeout(self.config.horizon)]))
        self.completed = done.triggered
        self.log(f"run finished, {self.response.number_obs()} responses recorded")
        return self.applications
