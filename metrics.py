"""
Performance metrics for offloading policy evaluation.

Implements the measures reported after a run:
1. Response time: mean and tail (P95, P99) over all recorded tasks (lower is better)
2. Tier shares: fraction of tasks answered by the home fog, a pool fog, or the cloud
3. Node utilization: time-weighted busy units over peak busy units, per node (0-1)
4. Wait / service / sojourn: count-weighted means over the node resources
5. Throughput: recorded tasks per unit of virtual time
"""
import numpy as np

from dispatch import Tier


def _responses(apps):
    values = []
    for app in apps:
        values.extend(app.response.values)
    return values


def mean_response(apps):
    values = _responses(apps)
    if not values:
        return 0.0
    return float(np.mean(values))


def p95_response(apps):
    """
    95th percentile of response time across every recorded task.

    More stable than P99 for short runs.
    """
    values = _responses(apps)
    if not values:
        return 0.0
    return float(np.percentile(values, 95))


def p99_response(apps):
    values = _responses(apps)
    if not values:
        return 0.0
    return float(np.percentile(values, 99))


def tier_shares(apps):
    """
    Fraction of recorded tasks answered by each tier.

    Returns:
        dict mapping "home", "pool", "cloud" to a share in [0, 1]
    """
    counts = {tier: 0 for tier in Tier}
    for app in apps:
        counts[Tier.HOME] += app.home_response.number_obs()
        counts[Tier.POOL] += app.pool_response.number_obs()
        counts[Tier.CLOUD] += app.cloud_response.number_obs()
    total = sum(counts.values())
    if total == 0:
        return {tier.value: 0.0 for tier in Tier}
    return {tier.value: counts[tier] / total for tier in Tier}


def node_utilization(nodes):
    """Per-node utilization from the resources' time-weighted statistics."""
    result = {}
    for node in nodes:
        res = node.resource
        result[node.node_id] = res.utilization() if res.stats else 0.0
    return result


def _tally_mean(nodes, getter):
    values = []
    for node in nodes:
        if node.resource.stats:
            values.extend(getter(node.resource).values)
    if not values:
        return 0.0
    return float(np.mean(values))


def mean_wait(nodes):
    """Mean admission wait over local and remote queues of every node."""
    values = []
    for node in nodes:
        if node.resource.stats:
            values.extend(node.resource.stat_on_local_wait().values)
            values.extend(node.resource.stat_on_remote_wait().values)
    if not values:
        return 0.0
    return float(np.mean(values))


def mean_service(nodes):
    return _tally_mean(nodes, lambda r: r.stat_on_service())


def mean_sojourn(nodes):
    return _tally_mean(nodes, lambda r: r.stat_on_sojourn())


def throughput(apps, duration):
    """Recorded tasks per unit of virtual time."""
    if duration <= 0:
        return 0.0
    return sum(app.response.number_obs() for app in apps) / duration


def summarize(sim):
    """One flat dict of every metric for a finished run."""
    apps = sim.applications
    nodes = sim.topology.nodes
    shares = tier_shares(apps)
    utils = node_utilization(sim.topology.fogs)
    return {
        "policy": sim.policy.name,
        "tasks": sum(app.response.number_obs() for app in apps),
        "mean_response": mean_response(apps),
        "p95_response": p95_response(apps),
        "p99_response": p99_response(apps),
        "home_share": shares["home"],
        "pool_share": shares["pool"],
        "cloud_share": shares["cloud"],
        "fog_utilization": float(np.mean(list(utils.values()))) if utils else 0.0,
        "mean_wait": mean_wait(nodes),
        "mean_service": mean_service(nodes),
        "mean_sojourn": mean_sojourn(nodes),
        "throughput": throughput(apps, sim.time),
        "sim_time": sim.time,
    }
