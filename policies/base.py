"""
Abstract base class for task offloading policies.

Every policy implements the dispatch of one task as a simpy process:
1. dispatch: choose destination node(s), probe them, return an Outcome
2. on_task_complete: update adaptive state once the task's outcome is known
3. reset: drop all per-run state before a new run starts

Subclasses implement concrete algorithms (HomeFog, PO2, MinDelay, CloudAlg, VFR).
"""
from abc import ABC, abstractmethod

from dispatch import Tier, select_home


class OffloadPolicy(ABC):
    name = "base"

    def __init__(self):
        self.counts = {tier: 0 for tier in Tier}
        self._homes = {}

    def reset(self, sim):
        """
        Clear per-run state.

        Args:
            sim: Simulator instance about to run
        """
        self.counts = {tier: 0 for tier in Tier}
        self._homes = {}

    def home(self, sim, device):
        """Nearest fog to `device`, computed once per run."""
        node = self._homes.get(device.device_id)
        if node is None:
            node = self._homes[device.device_id] = select_home(device, sim.topology.fogs)
        return node

    @abstractmethod
    def dispatch(self, sim, app, task):
        """
        Process generator that serves `task` and returns an Outcome.

        Args:
            sim: Simulator instance (provides env, topology, config, rng)
            app: Application issuing the task
            task: TaskRequest with its arrival time and sampled service time
        """
        pass

    def on_task_complete(self, sim, app, task, outcome):
        self.counts[outcome.tier] += 1

    def __repr__(self):
        return f"{type(self).__name__}()"
