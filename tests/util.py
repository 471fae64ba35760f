import threading
from typing import Callable
from typing import Iterator
from typing import List
from typing import Optional

from cluster_balancer.constraint import PlacementConstraint
from cluster_balancer.cost import HasClusterCost
from cluster_balancer.generator import RebalancePlanGenerator
from cluster_balancer.interface import Broker
from cluster_balancer.interface import ClusterBean
from cluster_balancer.interface import ClusterCost
from cluster_balancer.interface import ClusterInfo
from cluster_balancer.interface import RebalancePlanProposal
from cluster_balancer.interface import Replica


def replica(
    topic: str,
    partition: int,
    broker_id: int,
    folder: str = "/tmp/log-folder-0",
    leader: bool = False,
    size: int = 0,
) -> Replica:
    return Replica(
        topic=topic,
        partition=partition,
        broker_id=broker_id,
        data_folder=folder,
        is_leader=leader,
        size=size,
    )


def cluster(*replicas: Replica, broker_count: int = 3, folders: int = 1) -> ClusterInfo:
    return ClusterInfo(
        brokers=tuple(
            Broker(
                id=b,
                data_folders=tuple(f"/tmp/log-folder-{f}" for f in range(folders)),
            )
            for b in range(1, broker_count + 1)
        ),
        replicas=replicas,
    )


class CountingCost(HasClusterCost):
    """Wraps another cost and records how often it is called"""

    def __init__(self, cost: HasClusterCost):
        self.cost = cost
        self.calls = 0
        self._lock = threading.Lock()

    def cluster_cost(
        self, cluster_info: ClusterInfo, cluster_bean: ClusterBean
    ) -> ClusterCost:
        with self._lock:
            self.calls += 1
        return self.cost.cluster_cost(cluster_info, cluster_bean)


class ConstantCost(HasClusterCost):
    def __init__(self, value: float):
        self.value = value

    def cluster_cost(
        self, cluster_info: ClusterInfo, cluster_bean: ClusterBean
    ) -> ClusterCost:
        return ClusterCost(value=self.value)


class ScriptedCost(HasClusterCost):
    """Scores the base cluster with baseline and every candidate with the
    next value of costs, repeating the last one
    """

    def __init__(self, base: ClusterInfo, baseline: float, costs: List[float]):
        self.base = base
        self.baseline = baseline
        self.costs = costs
        self.scored: List[float] = []

    def cluster_cost(
        self, cluster_info: ClusterInfo, cluster_bean: ClusterBean
    ) -> ClusterCost:
        if cluster_info == self.base:
            return ClusterCost(value=self.baseline)
        index = min(len(self.scored), len(self.costs) - 1)
        self.scored.append(self.costs[index])
        return ClusterCost(value=self.costs[index])


class ListPlanGenerator(RebalancePlanGenerator):
    """Replays a fixed list of allocations and records how many were pulled"""

    def __init__(
        self,
        candidates: List[ClusterInfo],
        on_pull: Optional[Callable[[int], None]] = None,
    ):
        self.candidates = candidates
        self.on_pull = on_pull
        self.pulled = 0
        self.closed = False

    def generate(
        self, base: ClusterInfo, constraint: PlacementConstraint
    ) -> Iterator[RebalancePlanProposal]:
        try:
            for candidate in self.candidates:
                self.pulled += 1
                if self.on_pull is not None:
                    self.on_pull(self.pulled)
                yield RebalancePlanProposal(rebalance_plan=candidate)
        finally:
            self.closed = True
