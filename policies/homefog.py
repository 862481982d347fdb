from dispatch import Outcome, Tier, probe
from .base import OffloadPolicy


class HomeFog(OffloadPolicy):
    """
    Home-fog policy.

    Every task goes to the fog nearest its device. No adaptivity and no
    alternates: a faulted home node simply reports the fault penalty.
    """

    name = "homefog"

    def dispatch(self, sim, app, task):
        home = self.home(sim, task.device)
        result = yield from probe(sim, task, home, home, Tier.HOME)
        return Outcome(result.latency, Tier.HOME, home, [result])
