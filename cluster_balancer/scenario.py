"""Synthetic clusters for exercising the balancer

A Scenario places the replicas of one new topic on an existing cluster.
Leaders are spread over the brokers following a binomial distribution, so
a low probability piles most leaders onto the first brokers and leaves the
cluster unbalanced, which is what a balancer should fix.
"""
from typing import List
from typing import Optional
from typing import Sequence

import numpy as np
from pydantic import BaseModel
from pydantic import ConfigDict
from pydantic import Field
from scipy.stats import binom

from cluster_balancer.interface import Broker
from cluster_balancer.interface import ClusterInfo
from cluster_balancer.interface import Replica


def empty_cluster(
    broker_count: int = 3,
    folders_per_broker: int = 1,
    first_broker_id: int = 1,
) -> ClusterInfo:
    if broker_count < 1 or folders_per_broker < 1:
        raise ValueError("A cluster needs at least one broker with one folder")
    return ClusterInfo(
        brokers=tuple(
            Broker(
                id=first_broker_id + i,
                host=f"broker-{first_broker_id + i}",
                data_folders=tuple(
                    f"/tmp/log-folder-{f}" for f in range(folders_per_broker)
                ),
            )
            for i in range(broker_count)
        )
    )


class Scenario(BaseModel):
    topic_name: str = "scenario"
    number_of_partitions: int = Field(default=100, gt=0)
    number_of_replicas: int = Field(default=1, gt=0)
    binomial_probability: float = Field(default=0.1, ge=0, le=1)
    # Partition sizes are drawn uniformly from [0, max_partition_size]
    max_partition_size: int = Field(default=0, ge=0)
    seed: int = 0xCAFE

    model_config = ConfigDict(frozen=True)

    def apply(self, cluster: ClusterInfo) -> ClusterInfo:
        if self.topic_name in cluster.topics:
            raise ValueError(f"Topic {self.topic_name} already exists")
        broker_ids = cluster.broker_ids
        if self.number_of_replicas > len(broker_ids):
            raise ValueError(
                f"Cannot place {self.number_of_replicas} replicas on "
                f"{len(broker_ids)} brokers"
            )

        rng = np.random.default_rng(seed=self.seed)
        folders = {b: sorted(f) for b, f in cluster.broker_folders().items()}
        leaders = binom(len(broker_ids) - 1, self.binomial_probability).rvs(
            size=self.number_of_partitions, random_state=rng
        )
        sizes = rng.integers(
            0, self.max_partition_size, size=self.number_of_partitions, endpoint=True
        )

        replicas: List[Replica] = []
        for partition in range(self.number_of_partitions):
            first = int(leaders[partition])
            for offset in range(self.number_of_replicas):
                broker_id = broker_ids[(first + offset) % len(broker_ids)]
                if not folders[broker_id]:
                    raise ValueError(f"Broker {broker_id} has no data folder")
                replicas.append(
                    Replica(
                        topic=self.topic_name,
                        partition=partition,
                        broker_id=broker_id,
                        data_folder=folders[broker_id][
                            int(rng.integers(len(folders[broker_id])))
                        ],
                        is_leader=offset == 0,
                        size=int(sizes[partition]),
                    )
                )
        return cluster.with_replicas(list(cluster.replicas) + replicas)


def build_cluster(
    scenarios: Sequence[Scenario],
    broker_count: int = 3,
    folders_per_broker: int = 1,
    cluster: Optional[ClusterInfo] = None,
) -> ClusterInfo:
    cluster = cluster or empty_cluster(broker_count, folders_per_broker)
    for scenario in scenarios:
        cluster = scenario.apply(cluster)
    return cluster


def leader_skewed_cluster(
    number_of_partitions: int = 100,
    broker_count: int = 4,
    folders_per_broker: int = 1,
    topic_name: str = "skewed",
) -> ClusterInfo:
    """One broker leads every single-replica partition, the others idle"""
    cluster = empty_cluster(broker_count, folders_per_broker)
    leader = cluster.brokers[0]
    return cluster.with_replicas(
        Replica(
            topic=topic_name,
            partition=partition,
            broker_id=leader.id,
            data_folder=leader.data_folders[0],
            is_leader=True,
        )
        for partition in range(number_of_partitions)
    )
