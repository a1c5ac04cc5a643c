#!/usr/bin/env python3
import argparse

from resampling.orchestrator import run_once


def main():
    parser = argparse.ArgumentParser(description="Distance & similarity based resampling of geolocated records")
    parser.add_argument("--config", required=True, help="Path to YAML config")
    # distance
    parser.add_argument("--dist-threshold", dest="dist_threshold", type=float, help="Neighbor distance threshold (map units, or km with --longlat)")
    parser.add_argument("--longlat", dest="longlat", action="store_true", help="Coordinates are lon/lat degrees; use great-circle distance")
    parser.add_argument("--planar", dest="longlat", action="store_false", help="Coordinates are projected; use euclidean distance")
    # similarity
    parser.add_argument("--metric", dest="metric", choices=["simpson", "sorensen", "jaccard", "bray"], help="Compositional similarity metric")
    parser.add_argument("--sim-threshold", dest="sim_threshold", type=float, help="Similarity threshold (0-1); pairs above it conflict")
    # removal
    parser.add_argument(
        "--policy",
        dest="policy",
        choices=["random", "less_diverse", "more_diverse", "lower_value", "higher_value"],
        help="Which record of a conflicting pair is removed",
    )
    parser.add_argument("--ranking-attribute", dest="ranking_attribute", type=str, help="Numeric column used by lower_value/higher_value")
    parser.add_argument("--strata", dest="strata", type=str, help="Only compare records sharing this column's value ('' disables)")
    parser.add_argument("--seed", dest="seed", type=int, help="Random seed for the priority order")
    parser.add_argument("--n-jobs", dest="n_jobs", type=int, help="Worker processes for per-group work (-1 = all cores)")
    parser.add_argument("--progress", dest="progress", action="store_true", help="Show a progress bar over groups")
    parser.add_argument("--no-progress", dest="progress", action="store_false", help="Hide the progress bar")
    parser.set_defaults(longlat=None, progress=None)
    args = parser.parse_args()

    overrides = {
        "dist_threshold": args.dist_threshold,
        "longlat": args.longlat,
        "metric": args.metric,
        "sim_threshold": args.sim_threshold,
        "policy": args.policy,
        "ranking_attribute": args.ranking_attribute,
        "strata": args.strata,
        "seed": args.seed,
        "n_jobs": args.n_jobs,
        "progress": args.progress,
    }

    run_once(args.config, overrides=overrides)


if __name__ == "__main__":
    main()
