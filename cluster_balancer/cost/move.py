from typing import Set
from typing import Tuple

from cluster_balancer.cost import HasMoveCost
from cluster_balancer.interface import ClusterBean
from cluster_balancer.interface import ClusterInfo
from cluster_balancer.interface import MoveCost


class ReplicaMigrationCost(HasMoveCost):
    """Number of replicas that end up on a new (broker, folder)

    Leadership changes are free, they do not copy any data.
    """

    def move_cost(
        self, before: ClusterInfo, after: ClusterInfo, cluster_bean: ClusterBean
    ) -> MoveCost:
        placed: Set[Tuple[str, int, int, str]] = {
            (r.topic, r.partition, r.broker_id, r.data_folder) for r in before.replicas
        }
        moved = sum(
            1
            for r in after.replicas
            if (r.topic, r.partition, r.broker_id, r.data_folder) not in placed
        )
        return MoveCost(value=moved, unit="replicas", description="replicas migrated")


class ReplicaSizeMoveCost(HasMoveCost):
    """Bytes that have to be copied to brokers that did not host the
    partition before; folder changes within a broker are not counted
    """

    def move_cost(
        self, before: ClusterInfo, after: ClusterInfo, cluster_bean: ClusterBean
    ) -> MoveCost:
        hosted: Set[Tuple[str, int, int]] = {
            (r.topic, r.partition, r.broker_id) for r in before.replicas
        }
        copied = sum(
            r.size
            for r in after.replicas
            if (r.topic, r.partition, r.broker_id) not in hosted
        )
        return MoveCost(value=copied, unit="bytes", description="bytes copied")
