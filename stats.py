"""
Statistical accumulators for the simulation.

Two kinds of collectors are used throughout the engine:
- Tally: count-weighted observations (wait, service, sojourn, response times)
- Accumulate: time-weighted level of a piecewise-constant quantity
  (busy units, capacity, queue size), integrated over virtual time

Both are cheap to update and are summarised with numpy when read.
"""
import numpy as np


class Tally:
    def __init__(self, name=""):
        self.name = name
        self.values = []

    def init(self):
        self.values = []

    def add(self, x):
        self.values.append(float(x))

    def number_obs(self):
        return len(self.values)

    def sum(self):
        return float(np.sum(self.values)) if self.values else 0.0

    def average(self):
        """Mean of the observations, 0.0 when nothing was observed."""
        if not self.values:
            return 0.0
        return float(np.mean(self.values))

    def min(self):
        return float(np.min(self.values)) if self.values else 0.0

    def max(self):
        return float(np.max(self.values)) if self.values else 0.0

    def standard_deviation(self):
        if len(self.values) < 2:
            return 0.0
        return float(np.std(self.values, ddof=1))

    def percentile(self, q):
        if not self.values:
            return 0.0
        return float(np.percentile(self.values, q))

    def __repr__(self):
        return f"Tally({self.name!r}, n={self.number_obs()}, avg={self.average():.4f})"


class Accumulate:
    """
    Time-weighted average of a level that changes at discrete instants.

    The level holds its last value until the next update, so the integral
    is a sum of rectangles. `env` is anything exposing a `now` attribute.
    """

    def __init__(self, env, name=""):
        self.env = env
        self.name = name
        self.init()

    def init(self, value=None):
        self.start_time = self.env.now
        self.last_time = self.env.now
        self.area = 0.0
        self.last_value = 0.0 if value is None else float(value)
        self.min_value = self.last_value
        self.max_value = self.last_value

    def update(self, value):
        now = self.env.now
        self.area += self.last_value * (now - self.last_time)
        self.last_time = now
        self.last_value = float(value)
        self.min_value = min(self.min_value, self.last_value)
        self.max_value = max(self.max_value, self.last_value)

    def average(self):
        now = self.env.now
        elapsed = now - self.start_time
        if elapsed <= 0:
            return self.last_value
        area = self.area + self.last_value * (now - self.last_time)
        return area / elapsed

    def min(self):
        return self.min_value

    def max(self):
        return self.max_value

    def __repr__(self):
        return f"Accumulate({self.name!r}, avg={self.average():.4f})"
