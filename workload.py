"""
Task generation for offloading experiments.

Each device runs one or more Applications. An application starts at its
configured offset and then loops until its quota is reached: sample a
service time, let the active policy dispatch the task, record the outcome
in the home/pool/cloud bucket it came from, and move on to the next task.

The FaultInjector forces a set of fog nodes to capacity 0 while any
application is inside a window of task indices and restores their
capacities once every application has left it.
"""
from dispatch import Tier
from stats import Tally


class TaskRequest:
    __slots__ = ("task_id", "device", "index", "service_time", "arrival_time", "units")

    def __init__(self, task_id, device, index, service_time, arrival_time, units):
        self.task_id = task_id
        self.device = device
        self.index = index
        self.service_time = service_time
        self.arrival_time = arrival_time
        self.units = units

    def __repr__(self):
        return f"TaskRequest({self.task_id}, service={self.service_time:.4f}, arrival={self.arrival_time:.4f})"


class Application:
    def __init__(self, app_id, device, start_offset=0.0):
        self.app_id = app_id
        self.device = device
        self.start_offset = start_offset
        self.seq = 0
        self.completed = 0
        label = str(device.device_id)
        self.response = Tally(label)
        self.home_response = Tally(label + " home")
        self.pool_response = Tally(label + " pool")
        self.cloud_response = Tally(label + " cloud")
        self.outcomes = []

    def next_task_id(self):
        """Composite key: device, application and a local sequence number."""
        task_id = (self.device.device_id, self.app_id, self.seq)
        self.seq += 1
        return task_id

    def bucket(self, tier):
        if tier is Tier.HOME:
            return self.home_response
        elif tier is Tier.POOL:
            return self.pool_response
        return self.cloud_response

    def run(self, sim):
        env = sim.env
        cfg = sim.config
        yield env.timeout(self.start_offset)
        while self.completed < cfg.total_requests:
            arrival = env.now
            service_time = sim.sampler.next_double()
            sim.faults.apply(sim, self.app_id, self.completed)
            task = TaskRequest(self.next_task_id(), self.device, self.completed, service_time,
                               arrival, cfg.units_per_request)
            outcome = yield env.process(sim.policy.dispatch(sim, self, task))
            self.record(sim, task, outcome)
            self.completed += 1
        sim.log(f"application {self.app_id} (device {self.device.device_id}) done")

    def record(self, sim, task, outcome):
        sim.policy.on_task_complete(sim, self, task, outcome)
        if task.index < sim.config.warmup:
            return
        self.outcomes.append(outcome)
        self.response.add(outcome.latency)
        self.bucket(outcome.tier).add(outcome.latency)
        sim.response.add(outcome.latency)
        if outcome.node is not None:
            outcome.node.record_utilization(sim.env.now)


class FaultInjector:
    """
    Outage window over task indices, shared by every application.

    Each application reports its current task index on arrival. The
    targets are held at capacity 0 while any application is inside
    [start, end) and get their saved capacities back once every
    application has reached `end`.
    """

    PENDING, FAULTED, RESTORED = "pending", "faulted", "restored"

    def __init__(self, nodes, start, end, num_failed, app_ids=()):
        self.start = start
        self.end = end
        self.targets = list(nodes[:num_failed])
        self.saved = [n.resource.capacity for n in self.targets]
        # -1: not started yet
        self.positions = {app_id: -1 for app_id in app_ids}
        self.state = self.PENDING

    def in_window(self, task_index):
        return self.start <= task_index < self.end

    def apply(self, sim, app_id, task_index):
        if not self.targets:
            return
        self.positions[app_id] = task_index
        if any(self.in_window(i) for i in self.positions.values()):
            if self.state != self.FAULTED:
                for node in self.targets:
                    node.resource.set_capacity(0)
                self.state = self.FAULTED
                sim.log(f"fault: nodes {[n.node_id for n in self.targets]} down at task {task_index}")
        elif self.state == self.FAULTED and all(i >= self.end for i in self.positions.values()):
            for node, capacity in zip(self.targets, self.saved):
                node.resource.set_capacity(capacity)
            self.state = self.RESTORED
            sim.log(f"fault: nodes {[n.node_id for n in self.targets]} restored at task {task_index}")


def create_applications(devices, config):
    apps = []
    app_id = 0
    for device in devices:
        for i in range(config.num_apps):
            apps.append(Application(app_id, device, config.start_offset(i)))
            app_id += 1
    return apps
