import argparse
import logging
import sys
from pathlib import Path
from typing import Any
from typing import Optional
from typing import Sequence

from cluster_balancer.scenario import build_cluster
from cluster_balancer.scenario import Scenario

logger = logging.getLogger(__name__)


def main(args: Any) -> int:
    scenario = Scenario(
        topic_name=args.topic,
        number_of_partitions=args.partitions,
        number_of_replicas=args.replicas,
        binomial_probability=args.probability,
        max_partition_size=args.max_partition_size,
        seed=args.seed,
    )
    cluster = build_cluster(
        [scenario], broker_count=args.brokers, folders_per_broker=args.folders
    )
    logger.info(
        "Generated %d replicas of topic %s on %d brokers",
        len(cluster.replicas),
        args.topic,
        len(cluster.brokers),
    )

    serialized = cluster.model_dump_json(indent=2)
    if args.output_path is not None:
        with open(args.output_path, "wt", encoding="utf-8") as fd:
            fd.write(serialized)
            fd.write("\n")
    else:
        print(serialized)
    return 0


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="generate-scenario",
        description="Write a synthetic ClusterInfo JSON file for balance-plan",
        formatter_class=argparse.ArgumentDefaultsHelpFormatter,
    )
    parser.add_argument("--brokers", type=int, default=3)
    parser.add_argument("--folders", type=int, default=1, help="Folders per broker")
    parser.add_argument("--topic", default="scenario")
    parser.add_argument("--partitions", type=int, default=100)
    parser.add_argument("--replicas", type=int, default=1)
    parser.add_argument(
        "--probability",
        type=float,
        default=0.1,
        help="Binomial probability spreading leaders, low values skew them",
    )
    parser.add_argument("--max-partition-size", type=int, default=0)
    parser.add_argument("--seed", type=int, default=0xCAFE)
    parser.add_argument(
        "--output-path",
        type=Path,
        help="Write the cluster to this file instead of stdout",
    )
    return parser


def cli(argv: Optional[Sequence[str]] = None):
    args = build_parser().parse_args(argv)
    logging.basicConfig(level=logging.INFO)
    sys.exit(main(args))


if __name__ == "__main__":
    cli()
