from typing import Dict

import numpy as np
from scipy.stats import variation

from cluster_balancer.cost import HasClusterCost
from cluster_balancer.interface import ClusterBean
from cluster_balancer.interface import ClusterCost
from cluster_balancer.interface import ClusterInfo


def _variance(per_broker: Dict[int, float]) -> float:
    if not per_broker:
        return 0.0
    return float(np.var(np.fromiter(per_broker.values(), dtype=np.float64)))


def _coefficient_of_variation(per_broker: Dict[int, float]) -> float:
    values = np.fromiter(per_broker.values(), dtype=np.float64)
    # An empty or all zero cluster is perfectly balanced, scipy would
    # report it as undefined
    if values.size == 0 or not values.any():
        return 0.0
    return float(variation(values))


class ReplicaLeaderCost(HasClusterCost):
    """Variance of the number of partition leaders hosted by each broker

    Brokers hosting no leader count as zero so a cluster where one broker
    leads everything scores worst.
    """

    def cluster_cost(
        self, cluster_info: ClusterInfo, cluster_bean: ClusterBean
    ) -> ClusterCost:
        counts = cluster_info.leader_counts()
        return ClusterCost(
            value=_variance(counts),
            description=f"leader count variance over {len(counts)} brokers",
        )


class ReplicaNumberCost(HasClusterCost):
    """Variance of the number of replicas hosted by each broker"""

    def cluster_cost(
        self, cluster_info: ClusterInfo, cluster_bean: ClusterBean
    ) -> ClusterCost:
        counts = cluster_info.replica_counts()
        return ClusterCost(
            value=_variance(counts),
            description=f"replica count variance over {len(counts)} brokers",
        )


class ReplicaSizeCost(HasClusterCost):
    """Coefficient of variation of the bytes stored on each broker"""

    def cluster_cost(
        self, cluster_info: ClusterInfo, cluster_bean: ClusterBean
    ) -> ClusterCost:
        return ClusterCost(
            value=_coefficient_of_variation(cluster_info.size_by_broker()),
            description="coefficient of variation of bytes per broker",
        )


class NodeLoadCost(HasClusterCost):
    """Coefficient of variation of a partition metric summed per broker

    The metric (e.g. bytes in per second) comes from the ClusterBean and
    is charged to every broker hosting a replica of the partition, leaders
    are charged leader_weight times as much since they serve clients.
    """

    def __init__(self, metric: str = "bytes_in_per_sec", leader_weight: float = 1.0):
        if leader_weight < 0:
            raise ValueError(f"leader_weight must be non-negative, got {leader_weight}")
        self.metric = metric
        self.leader_weight = leader_weight

    def broker_load(
        self, cluster_info: ClusterInfo, cluster_bean: ClusterBean
    ) -> Dict[int, float]:
        load = {broker_id: 0.0 for broker_id in cluster_info.broker_ids}
        for replica in cluster_info.replicas:
            value = cluster_bean.partition_metric(replica.topic_partition, self.metric)
            if replica.is_leader:
                value *= self.leader_weight
            load[replica.broker_id] += value
        return load

    def cluster_cost(
        self, cluster_info: ClusterInfo, cluster_bean: ClusterBean
    ) -> ClusterCost:
        return ClusterCost(
            value=_coefficient_of_variation(
                self.broker_load(cluster_info, cluster_bean)
            ),
            description=f"coefficient of variation of {self.metric} per broker",
        )
