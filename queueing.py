"""
Capacity-bounded resource with local and remote admission queues.

One Resource is owned by every fog or cloud node. It implements:
- Immediate admission when enough units are free, otherwise queueing in the
  local or remote wait queue under a FIFO or LIFO discipline
- An admission pass on every release that mixes local and remote requests
  according to the alpha knob: floor((1 - alpha) / alpha) local admissions
  for every remote admission while both queues are populated
- Fault modelling: a node at capacity 0 answers every request and release
  with FAULT_PENALTY instead of queueing
- A per-resource dedup ledger for hedged (REAL/DUMMY) dispatch of the same task
- Optional statistics (utilization, queue sizes, wait, service, sojourn)

Waiting callers are parked on a simpy event that the admission pass triggers,
so a process resumes exactly at the virtual time its request is admitted.
"""
import math
from collections import deque
from enum import Enum

from stats import Accumulate, Tally

FAULT_PENALTY = 12000.0


class Discipline(Enum):
    FIFO = 1
    LIFO = 2


class QueueClass(Enum):
    LOCAL = 1
    REMOTE = 2


class Role(Enum):
    REAL = 1
    DUMMY = 2


class _Retired:
    def __repr__(self):
        return "RETIRED"


# Value delivered to the waiter of a DUMMY request that was retired instead of served
RETIRED = _Retired()


class ResourceUsageError(RuntimeError):
    pass


class QueueRecord:
    def __init__(self, units, owner, request_time, event, queue=QueueClass.LOCAL,
                 role=None, task_id=None, service_time=0.0, arrival_time=None):
        self.units = units
        self.owner = owner
        self.request_time = request_time
        self.event = event
        self.queue = queue
        self.role = role
        self.task_id = task_id
        self.service_time = service_time
        self.arrival_time = request_time if arrival_time is None else arrival_time
        self.admit_time = None

    def completion_offset(self, now):
        """Delay between the task's arrival and the end of its service if admitted at `now`."""
        return now + self.service_time - self.arrival_time

    def __repr__(self):
        return (f"QueueRecord(task={self.task_id}, units={self.units}, "
                f"queue={self.queue.name}, role={self.role.name if self.role else None})")


class LedgerEntry:
    def __init__(self):
        self.real = None
        self.dummy = None
        self.first = None  # Role that posted first

    def get(self, role):
        return self.real if role is Role.REAL else self.dummy

    def is_set(self, role):
        return self.get(role) is not None


class DedupLedger:
    """
    Per-resource map from task id to its (real, dummy) completion delays.

    Each slot is written at most once; the entry is removed when the policy
    layer consumes it. Unset slots read as None.
    """

    def __init__(self):
        self.entries = {}
        self.real_offsets = Tally("real completion offsets")
        self.dummy_offsets = Tally("dummy completion offsets")

    def post(self, task_id, role, value):
        """Record `value` in the slot for `role`. Returns False if the slot was already set."""
        entry = self.entries.get(task_id)
        if entry is None:
            entry = self.entries[task_id] = LedgerEntry()
        if entry.is_set(role):
            return False
        if role is Role.REAL:
            entry.real = value
            self.real_offsets.add(value)
        else:
            entry.dummy = value
            self.dummy_offsets.add(value)
        if entry.first is None:
            entry.first = role
        return True

    def peek(self, task_id):
        return self.entries.get(task_id)

    def consume(self, task_id):
        return self.entries.pop(task_id, None)

    def clear(self):
        self.entries.clear()
        self.real_offsets.init()
        self.dummy_offsets.init()

    def __contains__(self, task_id):
        return task_id in self.entries

    def __len__(self):
        return len(self.entries)


class Resource:
    def __init__(self, capacity, name="", env=None, discipline=Discipline.FIFO, alpha=1.0):
        if capacity < 0:
            raise ValueError("capacity cannot be negative")
        self.name = name
        self.capacity = capacity
        self.available = capacity
        self.discipline = discipline
        self.env = env
        self.set_alpha(alpha)

        self.local_queue = deque()
        self.remote_queue = deque()
        self.service_list = []
        self.ledger = DedupLedger()

        self.held = 0
        self.waiting_time = 0.0
        self.remote_admissions = 0
        self._local_run = 0

        self.stats = False
        self.init_stat_time = 0.0
        self._stat_util = None
        self._stat_capacity = None
        self._stat_sojourn = None
        self._stat_service = None
        self._stat_local_wait = None
        self._stat_remote_wait = None
        self._stat_local_size = None
        self._stat_remote_size = None

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------
    def bind(self, env):
        """Attach to a fresh environment; statistics collection is switched off."""
        self.env = env
        self.stats = False
        self._stat_util = None
        self.init()

    def init(self):
        self.local_queue.clear()
        self.remote_queue.clear()
        self.service_list = []
        self.ledger.clear()
        self.held = 0
        self.available = self.capacity
        self.waiting_time = 0.0
        self.remote_admissions = 0
        self._local_run = 0
        if self.stats:
            self.init_stat()

    def set_alpha(self, alpha):
        if not 0 < alpha <= 1:
            raise ValueError(f"alpha must be in (0, 1], got {alpha}")
        self.alpha = alpha

    def mixing_run_length(self):
        """Number of local admissions granted per remote admission when both queues wait."""
        return int(math.floor((1 - self.alpha) / self.alpha + 1e-9))

    def set_policy_fifo(self):
        self.discipline = Discipline.FIFO

    def set_policy_lifo(self):
        self.discipline = Discipline.LIFO

    # ------------------------------------------------------------------
    # Capacity
    # ------------------------------------------------------------------
    def set_capacity(self, new_capacity):
        if new_capacity < 0:
            raise ValueError("capacity cannot be negative")
        self.change_capacity(new_capacity - self.capacity)

    def change_capacity(self, diff):
        """
        Grow or shrink the capacity by `diff` units.

        Shrinking below the units currently held is allowed: available clamps
        to 0 and the node drains as in-service requests release.
        """
        if self.capacity + diff < 0:
            raise ValueError("capacity cannot be negative")
        self.capacity += diff
        self._refresh_available()
        if self.capacity == 0:
            self._flush_queues()
        if self.stats:
            self._stat_capacity.update(self.capacity)
            self._stat_util.update(self.capacity - self.available)
        if diff > 0:
            self._admit()

    def _flush_queues(self):
        """A node going down answers everything still waiting with the fault penalty."""
        for queue in (self.local_queue, self.remote_queue):
            while queue:
                queue.popleft().event.succeed(FAULT_PENALTY)
        self.waiting_time = 0.0
        self._update_queue_stats()

    def is_faulted(self):
        return self.capacity == 0

    def _refresh_available(self):
        self.available = max(0, self.capacity - self.held)

    # ------------------------------------------------------------------
    # Request / release
    # ------------------------------------------------------------------
    def request(self, units, queue=QueueClass.LOCAL, role=None, task_id=None,
                service_time=0.0, arrival_time=None, owner=None):
        """
        Ask for `units` slots. Returns a simpy event to yield on.

        The event value is the immediate extra cost: 0.0 once admitted,
        FAULT_PENALTY if the node is faulted, RETIRED for a DUMMY request
        that was retired instead of served.
        """
        if units <= 0:
            raise ValueError("units must be positive")
        event = self.env.event()
        if self.capacity == 0:
            event.succeed(FAULT_PENALTY)
            return event

        if owner is None:
            owner = self.env.active_process
        record = QueueRecord(units, owner, self.env.now, event, queue, role, task_id,
                             service_time, arrival_time)
        if units <= self.available:
            if role is Role.DUMMY:
                self._retire(record)
            else:
                self._start(record)
        else:
            self._enqueue(record)
        return event

    def release(self, units=None, owner=None):
        """
        Give back `units` held by `owner` (default: the active process).

        Releasing more than is held is a usage error. Returns the extra cost:
        0.0 normally, FAULT_PENALTY while the node is faulted.
        """
        if owner is None:
            owner = self.env.active_process
        held = self.held_by(owner)

        if self.capacity == 0:
            # The node is down: drop what the caller held, nothing returns to the pool
            if held:
                self._take_from_service(owner, held if units is None else min(units, held), sample=False)
            return FAULT_PENALTY

        if units is None:
            units = held
        if units <= 0 or held < units:
            raise ResourceUsageError(
                f"{self.name}: trying to release {units} units but the process holds {held}")

        self._take_from_service(owner, units, sample=self.stats)
        if self.stats:
            self._stat_util.update(self.capacity - self.available)
        self._admit()
        return 0.0

    def held_by(self, owner):
        return sum(r.units for r in self.service_list if r.owner is owner)

    def demote(self, task_id):
        """
        Tag every REAL record of `task_id` still on this resource as DUMMY.

        A queued record will be retired when it reaches admission; an
        in-service record finishes but leaves no sojourn sample.
        """
        demoted = 0
        for queue in (self.local_queue, self.remote_queue):
            for record in queue:
                if record.task_id == task_id and record.role is not Role.DUMMY:
                    record.role = Role.DUMMY
                    self.waiting_time = max(0.0, self.waiting_time - record.service_time)
                    demoted += 1
        for record in self.service_list:
            if record.task_id == task_id and record.role is not Role.DUMMY:
                record.role = Role.DUMMY
                demoted += 1
        if demoted:
            # A demoted head may be retirable right away
            self._admit()
        return demoted

    def _take_from_service(self, owner, units, sample):
        remaining = units
        now = self.env.now
        for record in list(self.service_list):
            if remaining == 0:
                break
            if record.owner is not owner:
                continue
            if record.units <= remaining:
                self.service_list.remove(record)
                remaining -= record.units
                if sample:
                    self._stat_service.add(now - record.admit_time)
                    if record.role is not Role.DUMMY:
                        self._stat_sojourn.add(now - record.request_time)
            else:
                record.units -= remaining
                remaining = 0
        self.held -= units
        self._refresh_available()

    # ------------------------------------------------------------------
    # Queueing and admission
    # ------------------------------------------------------------------
    def _queue_for(self, queue_class):
        return self.local_queue if queue_class is QueueClass.LOCAL else self.remote_queue

    def _enqueue(self, record):
        queue = self._queue_for(record.queue)
        if self.discipline is Discipline.FIFO:
            queue.append(record)
        else:
            queue.appendleft(record)
        if record.role is not Role.DUMMY:
            self.waiting_time += record.service_time
        self._update_queue_stats()

    def _start(self, record, queued=False):
        now = self.env.now
        record.admit_time = now
        self.held += record.units
        self._refresh_available()
        self.service_list.append(record)
        if queued:
            self.waiting_time = max(0.0, self.waiting_time - record.service_time)
        if record.queue is QueueClass.REMOTE:
            self.remote_admissions += 1
        if record.task_id is not None:
            self.ledger.post(record.task_id, Role.REAL, record.completion_offset(now))
        if self.stats:
            wait = now - record.request_time
            if record.queue is QueueClass.LOCAL:
                self._stat_local_wait.add(wait)
            else:
                self._stat_remote_wait.add(wait)
            self._stat_util.update(self.capacity - self.available)
        record.event.succeed(0.0)

    def _retire(self, record):
        if record.task_id is not None:
            self.ledger.post(record.task_id, Role.DUMMY, record.completion_offset(self.env.now))
        record.event.succeed(RETIRED)

    def _retire_dummy_heads(self):
        for queue in (self.local_queue, self.remote_queue):
            while queue and queue[0].role is Role.DUMMY and queue[0].units <= self.available:
                self._retire(queue.popleft())

    def _pick_queue(self):
        if self.local_queue and self.remote_queue:
            if self._local_run < self.mixing_run_length():
                return QueueClass.LOCAL
            return QueueClass.REMOTE
        return QueueClass.LOCAL if self.local_queue else QueueClass.REMOTE

    def _admit(self):
        """Admission pass: admit queued requests while units are available."""
        changed = False
        while True:
            self._retire_dummy_heads()
            if not self.local_queue and not self.remote_queue:
                break
            if self.available <= 0:
                break
            contested = bool(self.local_queue and self.remote_queue)
            queue_class = self._pick_queue()
            queue = self._queue_for(queue_class)
            record = queue[0]
            if record.units > self.available:
                break
            queue.popleft()
            changed = True
            if contested:
                if queue_class is QueueClass.LOCAL:
                    self._local_run += 1
                else:
                    self._local_run = 0
            self._start(record, queued=True)
        if changed:
            self._update_queue_stats()

    # ------------------------------------------------------------------
    # Statistics
    # ------------------------------------------------------------------
    def set_stat_collecting(self, b):
        if b:
            if self.stats:
                raise ResourceUsageError(f"Already collecting statistics for {self.name}")
            self.stats = True
            if self._stat_util is not None:
                self.init_stat()
            else:
                self._stat_util = Accumulate(self.env, "StatOnUtil")
                self._stat_capacity = Accumulate(self.env, "StatOnCapacity")
                self._stat_local_size = Accumulate(self.env, "Local queue size")
                self._stat_remote_size = Accumulate(self.env, "Remote queue size")
                self._stat_sojourn = Tally("StatOnSojourn")
                self._stat_service = Tally("Service")
                self._stat_local_wait = Tally("Local wait")
                self._stat_remote_wait = Tally("Remote wait")
                self.init_stat()
        else:
            if not self.stats:
                raise ResourceUsageError(f"Not collecting statistics for {self.name}")
            self.stats = False

    def init_stat(self):
        if not self.stats:
            raise ResourceUsageError(f"Not collecting statistics for {self.name}")
        self._stat_util.init(self.capacity - self.available)
        self._stat_capacity.init(self.capacity)
        self._stat_local_size.init(len(self.local_queue))
        self._stat_remote_size.init(len(self.remote_queue))
        self._stat_sojourn.init()
        self._stat_service.init()
        self._stat_local_wait.init()
        self._stat_remote_wait.init()
        self.init_stat_time = self.env.now

    def _update_queue_stats(self):
        if self.stats:
            self._stat_local_size.update(len(self.local_queue))
            self._stat_remote_size.update(len(self.remote_queue))

    def _require_stats(self):
        if self._stat_util is None:
            raise ResourceUsageError(
                f"Statistics requested for {self.name} before set_stat_collecting(True)")

    def stat_on_util(self):
        self._require_stats()
        return self._stat_util

    def stat_on_capacity(self):
        self._require_stats()
        return self._stat_capacity

    def stat_on_sojourn(self):
        self._require_stats()
        return self._stat_sojourn

    def stat_on_service(self):
        self._require_stats()
        return self._stat_service

    def stat_on_local_wait(self):
        self._require_stats()
        return self._stat_local_wait

    def stat_on_remote_wait(self):
        self._require_stats()
        return self._stat_remote_wait

    def stat_on_local_size(self):
        self._require_stats()
        return self._stat_local_size

    def stat_on_remote_size(self):
        self._require_stats()
        return self._stat_remote_size

    def utilization(self):
        """Average busy units over the peak busy units seen, in [0, 1]."""
        util = self.stat_on_util()
        if util.max() <= 0:
            return 0.0
        return util.average() / util.max()

    def report(self):
        self._require_stats()
        util = self._stat_util
        cap = self._stat_capacity
        lines = [
            f"REPORT ON RESOURCE : {self.name}",
            f"   From time : {self.init_stat_time:7.2f}   to time : {self.env.now:10.2f}",
            "                    min        max     average  standard dev.  nb. obs.",
            f"   Capacity    {int(cap.min() + 0.5):8d}{int(cap.max() + 0.5):11d}{cap.average():12.3f}",
            f"   Utilization {int(util.min() + 0.5):8d}{int(util.max() + 0.5):11d}{util.average():12.3f}",
        ]
        lines.append(self._size_line("Local Queue Size", self._stat_local_size))
        lines.append(self._tally_line("Local Wait", self._stat_local_wait))
        if self._stat_remote_wait.number_obs():
            lines.append(self._size_line("Remote Queue Size", self._stat_remote_size))
            lines.append(self._tally_line("Remote Wait", self._stat_remote_wait))
        lines.append(self._tally_line("Service", self._stat_service))
        lines.append(self._tally_line("Sojourn", self._stat_sojourn))
        return "\n".join(lines) + "\n"

    @staticmethod
    def _size_line(label, acc):
        return f"   {label:<17}{int(acc.min() + 0.5):8d}{int(acc.max() + 0.5):11d}{acc.average():12.3f}"

    @staticmethod
    def _tally_line(label, tally):
        return (f"   {label:<12}{tally.min():12.3f} {tally.max():10.3f} {tally.average():11.3f} "
                f"{tally.standard_deviation():10.3f}{tally.number_obs():10d}")

    def __repr__(self):
        return (f"Resource({self.name!r}, capacity={self.capacity}, available={self.available}, "
                f"local={len(self.local_queue)}, remote={len(self.remote_queue)})")
