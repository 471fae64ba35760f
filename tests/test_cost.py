import math

import pytest
from pytest import approx

from cluster_balancer.cost import cluster_cost_of
from cluster_balancer.cost import HasClusterCost
from cluster_balancer.cost import WeightedClusterCost
from cluster_balancer.cost.cluster import NodeLoadCost
from cluster_balancer.cost.cluster import ReplicaLeaderCost
from cluster_balancer.cost.cluster import ReplicaNumberCost
from cluster_balancer.cost.cluster import ReplicaSizeCost
from cluster_balancer.cost.move import ReplicaMigrationCost
from cluster_balancer.cost.move import ReplicaSizeMoveCost
from cluster_balancer.interface import ClusterBean
from cluster_balancer.interface import ClusterCost
from tests.util import cluster
from tests.util import ConstantCost
from tests.util import replica

bean = ClusterBean()


def test_leader_cost_counts_idle_brokers(skewed_cluster):
    # 50 leaders on one of four brokers: counts (50, 0, 0, 0)
    cost = ReplicaLeaderCost().cluster_cost(skewed_cluster, bean)
    assert cost.value == approx(468.75)

    balanced = cluster(
        replica("a", 0, 1, leader=True),
        replica("a", 1, 2, leader=True),
        replica("a", 2, 3, leader=True),
    )
    assert ReplicaLeaderCost().cluster_cost(balanced, bean).value == 0


def test_replica_number_cost():
    info = cluster(replica("a", 0, 1), replica("a", 1, 1), replica("a", 2, 2))
    # counts (2, 1, 0)
    assert ReplicaNumberCost().cluster_cost(info, bean).value == approx(2 / 3)


def test_size_cost():
    assert ReplicaSizeCost().cluster_cost(cluster(), bean).value == 0
    even = cluster(
        replica("a", 0, 1, size=10),
        replica("a", 1, 2, size=10),
        replica("a", 2, 3, size=10),
    )
    assert ReplicaSizeCost().cluster_cost(even, bean).value == approx(0)
    uneven = cluster(replica("a", 0, 1, size=30))
    assert ReplicaSizeCost().cluster_cost(uneven, bean).value == approx(math.sqrt(2))


def test_node_load_cost_uses_metrics():
    info = cluster(replica("a", 0, 1, leader=True), replica("a", 1, 2, leader=True))
    metrics = ClusterBean(
        partitions={"a-0": {"bytes_in_per_sec": 100}, "a-1": {"bytes_in_per_sec": 100}}
    )
    cost = NodeLoadCost()
    assert cost.broker_load(info, metrics) == {1: 100.0, 2: 100.0, 3: 0.0}
    assert cost.cluster_cost(info, metrics).value > 0
    # No metrics means no load anywhere
    assert cost.cluster_cost(info, bean).value == 0

    with pytest.raises(ValueError):
        NodeLoadCost(leader_weight=-1)


def test_callables_are_adapted():
    adapted = cluster_cost_of(lambda info, b: len(info.replicas))
    assert isinstance(adapted, HasClusterCost)
    assert adapted.cluster_cost(cluster(replica("a", 0, 1)), bean) == ClusterCost(
        value=1.0
    )
    constant = ConstantCost(2)
    assert cluster_cost_of(constant) is constant
    with pytest.raises(ValueError):
        cluster_cost_of(42)


def test_weighted_cost():
    weighted = WeightedClusterCost([(ConstantCost(2), 0.5), (ConstantCost(4), 2)])
    assert weighted.cluster_cost(cluster(), bean).value == approx(9)

    nan = WeightedClusterCost([(ConstantCost(float("nan")), 1), (ConstantCost(1), 1)])
    assert nan.cluster_cost(cluster(), bean).is_nan

    with pytest.raises(ValueError):
        WeightedClusterCost([])
    with pytest.raises(ValueError):
        WeightedClusterCost([(ConstantCost(1), -1)])


def test_move_costs():
    before = cluster(
        replica("a", 0, 1, leader=True, size=100), replica("a", 0, 2, size=100)
    )
    # Leadership swap plus one replica moved from broker 2 to 3
    after = cluster(
        replica("a", 0, 1, size=100), replica("a", 0, 3, leader=True, size=100)
    )

    migration = ReplicaMigrationCost().move_cost(before, after, bean)
    assert migration.value == 1
    assert migration.unit == "replicas"

    copied = ReplicaSizeMoveCost().move_cost(before, after, bean)
    assert copied.value == 100
    assert copied.unit == "bytes"

    assert ReplicaMigrationCost().move_cost(before, before, bean).value == 0
