"""
Offloading policy comparison.

Uses Common Random Numbers (CRN) across policies: for every seed the same
topology, the same service-time stream and the same dispatch random stream
are given to each policy, so differences come from the policies alone.

Usage:
    python run_experiment.py                                 # All policies, 5 seeds
    python run_experiment.py --policies vfr cloudalg         # A subset
    python run_experiment.py --topology net.json --seeds 10  # Load a topology document
    python run_experiment.py --failed-nodes 2 --json out.json --csv out.csv
    python run_experiment.py --help                          # Show options
"""

import argparse
import csv
import json
from datetime import datetime

import numpy as np

import metrics
from config import RunConfig
from distributions import DISTRIBUTIONS, create_sampler
from policies import POLICIES, create_policy
from queueing import Discipline
from simulator import Simulator
from topology import generate_topology, load_topology

DEBUG = False

METRIC_COLUMNS = ["mean_response", "p95_response", "p99_response",
                  "home_share", "pool_share", "cloud_share", "fog_utilization"]


def dist_param(text):
    """Parse one KEY=VALUE sampler parameter."""
    key, sep, value = text.partition('=')
    try:
        if not sep or not key:
            raise ValueError
        return key, float(value)
    except ValueError:
        raise argparse.ArgumentTypeError(f"expected KEY=VALUE with a numeric value, got {text!r}") from None


def parse_args(argv=None):
    """Parse command-line arguments."""
    parser = argparse.ArgumentParser(
        description="Compare task offloading policies on a device/fog/cloud topology with CRN",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  python run_experiment.py --seeds 10 --base-seed 42   # Reproducible: seeds 42-51
  python run_experiment.py --alpha 0.25 --lifo         # Remote-friendly mixing, LIFO queues
        """
    )
    parser.add_argument('--policies', nargs='+', default=list(POLICIES),
                        choices=sorted(POLICIES), help='Policies to compare (default: all)')
    parser.add_argument('--seeds', type=int, default=5,
                        help='Number of seeds to run (default: 5)')
    parser.add_argument('--base-seed', type=int, default=None,
                        help='Base seed for reproducibility (default: random)')
    parser.add_argument('--topology', default=None,
                        help='JSON topology document (default: synthetic, one per seed)')
    parser.add_argument('--fogs', type=int, default=10, help='Synthetic fog nodes (default: 10)')
    parser.add_argument('--devices', type=int, default=20, help='Synthetic devices (default: 20)')
    parser.add_argument('--clouds', type=int, default=1, help='Synthetic cloud nodes (default: 1)')
    parser.add_argument('--requests', type=int, default=2000, help='Tasks per application (default: 2000)')
    parser.add_argument('--warmup', type=int, default=100, help='Warm-up tasks per application (default: 100)')
    parser.add_argument('--apps', type=int, default=1, help='Applications per device (default: 1)')
    parser.add_argument('--failed-nodes', type=int, default=0, help='Fogs faulted in the window (default: 0)')
    parser.add_argument('--fault-start', type=int, default=500)
    parser.add_argument('--fault-end', type=int, default=800)
    parser.add_argument('--alpha', type=float, default=1.0, help='Local/remote admission mixing in (0, 1]')
    parser.add_argument('--decay', type=float, default=0.5, help='Probe threshold decay (default: 0.5)')
    parser.add_argument('--order', type=float, default=1.0, help='Probe growth exponent (default: 1.0)')
    parser.add_argument('--lifo', action='store_true', help='LIFO wait queues instead of FIFO')
    parser.add_argument('--distribution', default='weibull', choices=DISTRIBUTIONS,
                        help='Service time distribution (default: weibull)')
    parser.add_argument('--dist-param', dest='dist_params', action='append', default=[],
                        type=dist_param, metavar='KEY=VALUE',
                        help='Sampler parameter, repeatable (e.g. --dist-param gamma=0.5)')
    parser.add_argument('--json', dest='json_path', default=None, help='Write per-seed results as JSON')
    parser.add_argument('--csv', dest='csv_path', default=None, help='Write summary statistics as CSV')
    parser.add_argument('--debug', action='store_true', help='Print simulation trace')
    return parser.parse_args(argv)


def build_config(args, seed):
    return RunConfig(
        total_requests=args.requests,
        warmup=args.warmup,
        fault_start=args.fault_start,
        fault_end=args.fault_end,
        num_failed_nodes=args.failed_nodes,
        alpha=args.alpha,
        decay=args.decay,
        order=args.order,
        num_apps=args.apps,
        discipline=Discipline.LIFO if args.lifo else Discipline.FIFO,
        seed=seed,
    ).validate()


def build_topology(args, seed):
    if args.topology:
        return load_topology(args.topology)
    return generate_topology(num_fogs=args.fogs, num_clouds=args.clouds,
                             num_devices=args.devices, seed=seed)


def run_single_trial(args, seed, debug=DEBUG):
    """Run every selected policy on the same topology and random streams (CRN)."""
    results = {}
    topology = build_topology(args, seed)
    for name in args.policies:
        config = build_config(args, seed)
        # Separate streams for service times and dispatch decisions, identical per policy
        service_rng, dispatch_rng = (np.random.default_rng(s) for s in np.random.SeedSequence(seed).spawn(2))
        sampler = create_sampler(args.distribution, service_rng, **dict(args.dist_params))
        sim = Simulator(topology, create_policy(name), sampler, config, debug=debug, rng=dispatch_rng)
        sim.run()
        results[name] = metrics.summarize(sim)
    return results


def summary_rows(all_results, policies):
    rows = []
    for name in policies:
        for metric in METRIC_COLUMNS:
            values = np.array([trial[name][metric] for trial in all_results])
            mean = float(np.mean(values))
            std_err = float(np.std(values, ddof=1) / np.sqrt(len(values))) if len(values) > 1 else 0.0
            rows.append({
                'policy': name,
                'metric': metric,
                'mean': mean,
                'std_err': std_err,
                'ci_lower': mean - 1.96 * std_err,
                'ci_upper': mean + 1.96 * std_err,
                'median': float(np.median(values)),
            })
    return rows


def print_summary(rows, policies, n_seeds):
    print("-" * 110)
    print(f"Summary ({n_seeds} seeds, CRN): mean ± 95% CI")
    print("-" * 110)
    header = f"{'Policy':<24}" + "".join(f"{m:>12}" for m in ("Mean resp", "P95 resp", "P99 resp",
                                                               "Home", "Pool", "Cloud", "Fog util"))
    print(header)
    print("-" * 110)
    by_policy = {}
    for row in rows:
        by_policy.setdefault(row['policy'], {})[row['metric']] = row
    for name in policies:
        cells = by_policy[name]
        line = f"{name:<24}"
        for metric in METRIC_COLUMNS:
            line += f"{cells[metric]['mean']:>12.4f}"
        print(line)


def main(argv=None):
    args = parse_args(argv)
    base_seed = args.base_seed if args.base_seed is not None else int(np.random.randint(0, 2**31))

    print("=" * 110)
    print("Task Offloading Policy Comparison with Common Random Numbers (CRN)")
    print("=" * 110)
    print(f"  Policies: {', '.join(args.policies)}")
    print(f"  Seeds: {args.seeds} (base seed {base_seed})")
    print(f"  Topology: {args.topology or f'synthetic ({args.fogs} fogs, {args.devices} devices)'}")
    print(f"  Timestamp: {datetime.now().isoformat()}")
    print()

    all_results = []
    for seed_idx in range(args.seeds):
        seed = base_seed + seed_idx
        trial = run_single_trial(args, seed, debug=args.debug)
        all_results.append(trial)
        line = f"{seed_idx + 1:>4}  "
        for name in args.policies:
            line += f"{name}={trial[name]['mean_response']:.4f}  "
        print(line)

    rows = summary_rows(all_results, args.policies)
    print_summary(rows, args.policies, args.seeds)

    if args.json_path:
        with open(args.json_path, 'w') as f:
            json.dump({'base_seed': base_seed, 'seeds': args.seeds, 'trials': all_results}, f, indent=2)
        print(f"\n✓ Results saved to {args.json_path}")

    if args.csv_path:
        with open(args.csv_path, 'w', newline='') as f:
            writer = csv.writer(f)
            writer.writerow(['Policy', 'Metric', 'Mean', 'StdErr', 'CILower', 'CIUpper', 'Median'])
            for row in rows:
                writer.writerow([
                    row['policy'], row['metric'],
                    f"{row['mean']:.6f}",
                    f"{row['std_err']:.6f}",
                    f"{row['ci_lower']:.6f}",
                    f"{row['ci_upper']:.6f}",
                    f"{row['median']:.6f}",
                ])
        print(f"✓ Summary statistics saved to {args.csv_path}")

    return all_results


if __name__ == "__main__":
    main()
