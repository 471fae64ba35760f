import argparse
import json
import logging
import sys
from pathlib import Path
from typing import Any
from typing import Dict
from typing import Optional
from typing import Sequence

from cluster_balancer.balancer import Balancer
from cluster_balancer.budget import parse_budget
from cluster_balancer.cost import HasClusterCost
from cluster_balancer.cost import HasMoveCost
from cluster_balancer.cost.cluster import ReplicaLeaderCost
from cluster_balancer.cost.cluster import ReplicaNumberCost
from cluster_balancer.cost.cluster import ReplicaSizeCost
from cluster_balancer.cost.move import ReplicaMigrationCost
from cluster_balancer.cost.move import ReplicaSizeMoveCost
from cluster_balancer.generator import ShufflePlanGenerator
from cluster_balancer.interface import ClusterInfo
from cluster_balancer.interface import SearchResult

cluster_costs: Dict[str, type[HasClusterCost]] = {
    "leader": ReplicaLeaderCost,
    "replica": ReplicaNumberCost,
    "size": ReplicaSizeCost,
}

move_costs: Dict[str, type[HasMoveCost]] = {
    "migration": ReplicaMigrationCost,
    "size": ReplicaSizeMoveCost,
}


def load_cluster(path: Path) -> ClusterInfo:
    with open(path, "rt", encoding="utf-8") as fd:
        return ClusterInfo.model_validate_json(fd.read())


def report(cluster: ClusterInfo, result: SearchResult) -> Dict[str, Any]:
    output: Dict[str, Any] = {
        "state": str(result.state),
        "baseline_cost": result.baseline_cost.value,
        "evaluated": result.evaluated,
        "discarded": result.discarded,
        "elapsed_seconds": round(result.elapsed_seconds, 3),
    }
    if result.plan is not None:
        diff = ClusterInfo.diff(cluster, result.plan.rebalance_plan)
        output["cost"] = result.plan.cost
        if result.plan.move_cost is not None:
            output["move_cost"] = result.plan.move_cost.model_dump(mode="json")
        output["changes"] = [str(replica) for replica in diff.added]
        output["info"] = list(result.plan.proposal.info)
        output["rebalance_plan"] = result.plan.rebalance_plan.model_dump(mode="json")
    return output


def main(args: Any) -> int:
    cluster = load_cluster(args.cluster)
    topics = set(args.topic or ())

    config: Dict[str, Any] = {
        "plan_generator": ShufflePlanGenerator(
            args.min_shuffle, args.max_shuffle, seed=args.seed
        ),
        "cluster_cost": cluster_costs[args.cost](),
        "budget": args.budget,
        "greedy": args.greedy,
    }
    if args.move_cost is not None:
        config["move_cost"] = move_costs[args.move_cost]()
    if args.max_move_cost is not None:
        limit = args.max_move_cost
        config["movement_constraint"] = lambda move_cost: move_cost.value <= limit

    result = Balancer.of(**config).search(
        cluster, topic_filter=(lambda t: t in topics) if topics else None
    )
    if result.plan is None:
        print(
            f"No plan improves on the current cost of {result.baseline_cost.value}",
            file=sys.stderr,
        )

    serialized = json.dumps(report(cluster, result), indent=2)
    if args.output_path is not None:
        with open(args.output_path, "wt", encoding="utf-8") as fd:
            fd.write(serialized)
            fd.write("\n")
    else:
        print(serialized)
    return 0


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="balance-plan",
        description=(
            "Search for a cheaper replica placement of the cluster described by "
            "a ClusterInfo JSON file"
        ),
        formatter_class=argparse.ArgumentDefaultsHelpFormatter,
    )
    parser.add_argument("cluster", type=Path, help="ClusterInfo JSON file")
    parser.add_argument("--cost", choices=sorted(cluster_costs), default="leader")
    parser.add_argument(
        "--budget",
        type=parse_budget,
        default=parse_budget("PT10S"),
        help="ISO-8601 duration such as PT10S, or a number of candidates",
    )
    parser.add_argument(
        "--greedy",
        action="store_true",
        help="Stop at the first plan cheaper than the current cluster",
    )
    parser.add_argument(
        "--topic",
        action="append",
        help="Only move replicas of this topic, may be repeated",
    )
    parser.add_argument("--min-shuffle", type=int, default=1)
    parser.add_argument("--max-shuffle", type=int, default=10)
    parser.add_argument("--seed", type=int, default=None)
    parser.add_argument("--move-cost", choices=sorted(move_costs), default=None)
    parser.add_argument(
        "--max-move-cost",
        type=float,
        default=None,
        help="Reject plans whose move cost exceeds this value",
    )
    parser.add_argument(
        "--output-path",
        type=Path,
        help="Write the report to this file instead of stdout",
    )
    parser.add_argument("--debug", action="store_true", help="Show verbose output")
    return parser


def cli(argv: Optional[Sequence[str]] = None):
    args = build_parser().parse_args(argv)
    if args.max_move_cost is not None and args.move_cost is None:
        print("--max-move-cost needs --move-cost", file=sys.stderr)
        sys.exit(1)
    logging.basicConfig(level=logging.DEBUG if args.debug else logging.INFO)
    sys.exit(main(args))


if __name__ == "__main__":
    cli()
