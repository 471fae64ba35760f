import math
from typing import Callable
from typing import Sequence
from typing import Tuple
from typing import Union

from cluster_balancer.interface import ClusterBean
from cluster_balancer.interface import ClusterCost
from cluster_balancer.interface import ClusterInfo
from cluster_balancer.interface import MoveCost


class HasClusterCost:
    """Stateless interface for scoring a cluster allocation

    Implement `cluster_cost` as a pure function: it is called once per
    candidate, possibly from a worker thread, and must not mutate its
    inputs. Lower values are better. Implementations are expected to
    return in bounded time since the balancer only checks its budget and
    cancellation between two calls.
    """

    def cluster_cost(
        self, cluster_info: ClusterInfo, cluster_bean: ClusterBean
    ) -> ClusterCost:
        # quiet pylint
        (_, _) = (cluster_info, cluster_bean)
        raise NotImplementedError

    def __call__(
        self, cluster_info: ClusterInfo, cluster_bean: ClusterBean
    ) -> ClusterCost:
        return self.cluster_cost(cluster_info, cluster_bean)


class HasMoveCost:
    """Stateless interface for pricing the migration between two
    allocations, e.g. how many bytes have to be copied
    """

    def move_cost(
        self, before: ClusterInfo, after: ClusterInfo, cluster_bean: ClusterBean
    ) -> MoveCost:
        (_, _, _) = (before, after, cluster_bean)
        raise NotImplementedError


CostFunction = Callable[[ClusterInfo, ClusterBean], Union[ClusterCost, float]]


class FunctionClusterCost(HasClusterCost):
    def __init__(self, function: CostFunction):
        self._function = function

    def cluster_cost(
        self, cluster_info: ClusterInfo, cluster_bean: ClusterBean
    ) -> ClusterCost:
        result = self._function(cluster_info, cluster_bean)
        if isinstance(result, ClusterCost):
            return result
        return ClusterCost(value=float(result))

    def __repr__(self):
        return f"FunctionClusterCost({self._function!r})"


def cluster_cost_of(cost: Union[HasClusterCost, CostFunction]) -> HasClusterCost:
    """Adapt any callable taking (cluster_info, cluster_bean) to HasClusterCost"""
    if isinstance(cost, HasClusterCost):
        return cost
    if not callable(cost):
        raise ValueError(f"{cost!r} is neither a HasClusterCost nor a callable")
    return FunctionClusterCost(cost)


class WeightedClusterCost(HasClusterCost):
    """Weighted sum of other cluster costs

    An undefined (NaN) component makes the whole cost undefined.
    """

    def __init__(self, weighted_costs: Sequence[Tuple[HasClusterCost, float]]):
        if not weighted_costs:
            raise ValueError("WeightedClusterCost needs at least one cost")
        for _, weight in weighted_costs:
            if weight < 0 or math.isnan(weight):
                raise ValueError(f"Cost weights must be non-negative, got {weight}")
        self._weighted_costs = [(cluster_cost_of(c), w) for c, w in weighted_costs]

    def cluster_cost(
        self, cluster_info: ClusterInfo, cluster_bean: ClusterBean
    ) -> ClusterCost:
        total = 0.0
        parts = []
        for cost, weight in self._weighted_costs:
            component = cost.cluster_cost(cluster_info, cluster_bean)
            total += component.value * weight
            parts.append(f"{weight} * {component.value:.6g}")
        return ClusterCost(value=total, description=" + ".join(parts))
