"""
Tests for the capacity-bounded Resource and its dedup ledger.
"""
import numpy as np
import pytest
from test_utils import *

from queueing import (FAULT_PENALTY, RETIRED, DedupLedger, Discipline, QueueClass,
                      ResourceUsageError, Role)


def test_immediate_admission():
    """A request that fits is admitted at once with zero cost."""
    env, res = create_test_resource(3)
    event = res.request(2, owner="p")
    assert event.triggered, "Request within capacity should be admitted immediately"
    assert event.value == 0.0
    assert res.available == 1
    assert res.held_by("p") == 2


def test_fifo_second_request_waits_full_service():
    """Two back-to-back requests on capacity 1: the second waits the first's service time."""
    env, res = create_test_resource(1)
    log = []
    env.process(hold(env, res, 1, 5.0, log, "first"))
    env.process(hold(env, res, 1, 5.0, log, "second"))
    env.run()

    admits = {label: (t, wait) for label, kind, t, wait, _ in log if kind == "admit"}
    assert admits["first"] == (0.0, 0.0)
    assert admits["second"][1] == pytest.approx(5.0), "Second request should wait the full service time"


def test_lifo_admits_latest_first():
    """LIFO: with A in service and B, C queued in that order, C is admitted before B."""
    env, res = create_test_resource(1, discipline=Discipline.LIFO)
    log = []

    def arrive(label, delay):
        yield env.timeout(delay)
        yield env.process(hold(env, res, 1, 3.0, log, label))

    env.process(arrive("A", 0.0))
    env.process(arrive("B", 1.0))
    env.process(arrive("C", 2.0))
    env.run()

    order = [label for label, kind, *_ in log if kind == "admit"]
    assert order == ["A", "C", "B"], f"LIFO should admit C before B, got {order}"


def test_fifo_same_instant_keeps_submission_order():
    """Requests submitted at the same instant are admitted in submission order."""
    env, res = create_test_resource(1)
    log = []
    for label in ("a", "b", "c", "d"):
        env.process(hold(env, res, 1, 1.0, log, label))
    env.run()
    order = [label for label, kind, *_ in log if kind == "admit"]
    assert order == ["a", "b", "c", "d"]


def test_release_twice_is_usage_error():
    """Releasing the exact units once frees them; a second release is an error."""
    env, res = create_test_resource(2)
    res.request(2, owner="p")
    assert res.release(2, owner="p") == 0.0
    assert res.available == 2
    assert res.service_list == [], "The queue record should be removed by the release"
    with pytest.raises(ResourceUsageError):
        res.release(2, owner="p")


def test_release_more_than_held_is_usage_error():
    env, res = create_test_resource(4)
    res.request(1, owner="p")
    with pytest.raises(ResourceUsageError):
        res.release(2, owner="p")


def test_usage_error_propagates_out_of_run():
    """A process releasing what it does not hold aborts the run."""
    env, res = create_test_resource(1)

    def bad():
        yield env.timeout(1.0)
        res.release(1)

    env.process(bad())
    with pytest.raises(ResourceUsageError):
        env.run()


def test_negative_capacity_rejected():
    env, res = create_test_resource(2)
    with pytest.raises(ValueError):
        res.set_capacity(-1)
    with pytest.raises(ValueError):
        res.change_capacity(-3)


def test_capacity_reduction_below_held_clamps_available():
    """Shrinking below the held units keeps available at 0 until releases drain the node."""
    env, res = create_test_resource(4)
    res.request(3, owner="p")
    res.set_capacity(2)
    assert res.available == 0
    res.release(3, owner="p")
    assert res.available == 2


def test_capacity_increase_admits_waiters():
    env, res = create_test_resource(1)
    res.request(1, owner="a")
    waiting = res.request(1, owner="b")
    assert not waiting.triggered
    res.change_capacity(1)
    assert waiting.triggered, "Growing capacity should run an admission pass"
    assert res.available == 0


def _admission_sequence(alpha, n_local, n_remote, admissions):
    env, res = create_test_resource(1, alpha=alpha)
    res.request(1, owner="holder")
    for i in range(n_local):
        res.request(1, QueueClass.LOCAL, owner=f"l{i}")
    for i in range(n_remote):
        res.request(1, QueueClass.REMOTE, owner=f"r{i}")

    sequence = []
    owner = "holder"
    for _ in range(admissions):
        res.release(1, owner=owner)
        record = res.service_list[0]
        sequence.append(record.queue)
        owner = record.owner
    return res, sequence


def test_alpha_mixing_run_length():
    env, res = create_test_resource(1, alpha=0.25)
    assert res.mixing_run_length() == 3
    res.set_alpha(0.5)
    assert res.mixing_run_length() == 1
    res.set_alpha(1.0)
    assert res.mixing_run_length() == 0


def test_alpha_mixing_pattern():
    """alpha=0.25: three local admissions, then one remote, while both queues wait."""
    L, R = QueueClass.LOCAL, QueueClass.REMOTE
    res, sequence = _admission_sequence(0.25, 8, 4, 8)
    assert sequence == [L, L, L, R, L, L, L, R]
    assert res.remote_admissions == 2


def test_alpha_one_prefers_remote():
    """With a run length of 0 the remote queue wins whenever both are populated."""
    L, R = QueueClass.LOCAL, QueueClass.REMOTE
    res, sequence = _admission_sequence(1.0, 2, 2, 4)
    assert sequence == [R, R, L, L]


@pytest.mark.parametrize("alpha", [0.1, 0.2, 0.25, 1 / 3, 0.5, 1.0])
def test_alpha_window_has_exactly_one_remote(alpha):
    """Any window of L + 1 consecutive contested admissions holds exactly one remote admission."""
    rng = np.random.default_rng(11)
    env, res = create_test_resource(1, alpha=alpha)
    window = res.mixing_run_length() + 1
    n_local = int(rng.integers(4 * window, 6 * window))
    n_remote = int(rng.integers(4, 8))
    res, sequence = _admission_sequence(alpha, n_local, n_remote, n_remote * window)
    for start in range(len(sequence) - window + 1):
        chunk = sequence[start:start + window]
        assert chunk.count(QueueClass.REMOTE) == 1, f"window {start}: {chunk}"


def test_faulted_node_returns_penalty_without_queueing():
    """At capacity 0 a request is answered with the penalty and available is untouched."""
    env, res = create_test_resource(2)
    res.set_capacity(0)
    event = res.request(1, owner="p")
    assert event.value == FAULT_PENALTY
    assert res.available == 0
    assert not res.local_queue
    res.set_capacity(2)
    assert res.available == 2, "Restoring capacity should resume normal admission"
    assert res.request(1, owner="q").value == 0.0


def test_fault_flushes_waiters_and_penalizes_release():
    env, res = create_test_resource(1)
    res.request(1, owner="holder")
    waiting = res.request(1, owner="waiter")
    res.set_capacity(0)
    assert waiting.value == FAULT_PENALTY, "Queued requests resolve with the penalty when the node goes down"
    assert res.release(1, owner="holder") == FAULT_PENALTY
    assert res.held == 0
    res.set_capacity(1)
    assert res.available == 1


def test_dummy_request_is_retired_not_served():
    """A DUMMY that could be admitted posts its ledger slot and consumes no capacity."""
    env, res = create_test_resource(2)
    event = res.request(1, role=Role.DUMMY, task_id="t", service_time=0.5, arrival_time=0.0)
    assert event.value is RETIRED
    assert res.available == 2
    entry = res.ledger.peek("t")
    assert entry.dummy == pytest.approx(0.5)
    assert entry.real is None


def test_demoted_waiter_is_retired_on_admission():
    env, res = create_test_resource(1)
    res.request(1, owner="holder")
    waiting = res.request(1, role=Role.REAL, task_id="t", service_time=2.0, arrival_time=0.0, owner="w")
    assert res.waiting_time == pytest.approx(2.0)

    assert res.demote("t") == 1
    assert res.waiting_time == pytest.approx(0.0), "Demoted records leave the wait estimate"
    res.release(1, owner="holder")

    assert waiting.value is RETIRED
    assert res.available == 1, "A retired DUMMY should not hold capacity"
    assert res.ledger.peek("t").dummy == pytest.approx(2.0)


def test_real_admission_posts_completion_offset():
    env, res = create_test_resource(1)

    def late():
        yield env.timeout(3.0)
        yield res.request(1, role=Role.REAL, task_id="t", service_time=1.5, arrival_time=1.0)

    env.process(late())
    env.run()
    assert res.ledger.consume("t").real == pytest.approx(3.0 + 1.5 - 1.0)
    assert "t" not in res.ledger


def test_ledger_slots_are_write_once():
    ledger = DedupLedger()
    assert ledger.post("t", Role.REAL, 1.0)
    assert not ledger.post("t", Role.REAL, 2.0), "Second post to the same slot should be refused"
    assert ledger.post("t", Role.DUMMY, 3.0)
    entry = ledger.peek("t")
    assert entry.real == 1.0
    assert entry.dummy == 3.0
    assert entry.first is Role.REAL
    assert ledger.consume("t") is entry
    assert len(ledger) == 0


def test_stats_before_enabling_is_usage_error():
    env, res = create_test_resource(1)
    with pytest.raises(ResourceUsageError):
        res.stat_on_util()
    with pytest.raises(ResourceUsageError):
        res.set_stat_collecting(False)
    res.set_stat_collecting(True)
    with pytest.raises(ResourceUsageError):
        res.set_stat_collecting(True)


def test_utilization_and_sojourn_statistics():
    env, res = create_test_resource(2, stats=True)
    log = []
    env.process(hold(env, res, 2, 5.0, log, "a"))
    env.process(hold(env, res, 2, 5.0, log, "b"))
    env.run(until=20.0)

    assert res.stat_on_util().max() == 2
    assert res.utilization() == pytest.approx(0.5), "Busy 10 of 20 time units at full load"
    assert res.stat_on_sojourn().number_obs() == 2
    assert res.stat_on_sojourn().max() == pytest.approx(10.0)
    assert res.stat_on_local_wait().average() == pytest.approx(2.5)
    assert "REPORT ON RESOURCE" in res.report()


def test_available_stays_within_bounds_under_churn():
    """Random holds and capacity changes never push available outside [0, capacity]."""
    rng = np.random.default_rng(3)
    env, res = create_test_resource(3)
    violations = []

    def check():
        if not 0 <= res.available <= res.capacity:
            violations.append((env.now, res.available, res.capacity))

    def worker():
        for _ in range(15):
            yield env.timeout(float(rng.exponential(0.5)))
            units = int(rng.integers(1, 3))
            cost = yield res.request(units, service_time=0.3)
            check()
            yield env.timeout(float(rng.exponential(0.3)))
            if cost == 0.0 and res.held_by(env.active_process):
                res.release()
            check()

    def chaos():
        for cap in (1, 4, 0, 2, 3):
            yield env.timeout(2.0)
            res.set_capacity(cap)
            check()

    for _ in range(4):
        env.process(worker())
    env.process(chaos())
    env.run()
    assert not violations, f"available left its bounds: {violations[:3]}"
