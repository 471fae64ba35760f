import pytest
from pydantic import ValidationError

from cluster_balancer.interface import Broker
from cluster_balancer.interface import ClusterBean
from cluster_balancer.interface import ClusterCost
from cluster_balancer.interface import ClusterInfo
from cluster_balancer.interface import SearchState
from cluster_balancer.interface import TopicPartition
from tests.util import cluster
from tests.util import replica


def test_topic_partition_name():
    tp = TopicPartition("my-topic", 3)
    assert str(tp) == "my-topic-3"
    assert TopicPartition.of("my-topic-3") == tp


def test_unknown_broker_rejected():
    with pytest.raises(ValidationError, match="unknown broker"):
        cluster(replica("a", 0, 7), broker_count=3)


def test_duplicate_broker_rejected():
    with pytest.raises(ValidationError, match="unique"):
        ClusterInfo(brokers=(Broker(id=1), Broker(id=1)))


def test_two_replicas_on_one_broker_rejected():
    with pytest.raises(ValidationError, match="more than one replica"):
        cluster(replica("a", 0, 1), replica("a", 0, 1, folder="/other"))


def test_two_leaders_rejected():
    with pytest.raises(ValidationError, match="more than one leader"):
        cluster(replica("a", 0, 1, leader=True), replica("a", 0, 2, leader=True))


def test_counts_include_idle_brokers():
    info = cluster(
        replica("a", 0, 1, leader=True, size=10),
        replica("a", 0, 2, size=10),
        replica("a", 1, 1, leader=True, size=5),
    )
    assert info.leader_counts() == {1: 2, 2: 0, 3: 0}
    assert info.replica_counts() == {1: 2, 2: 1, 3: 0}
    assert info.size_by_broker() == {1: 15, 2: 10, 3: 0}
    assert info.topics == {"a"}
    assert info.topic_partitions() == [TopicPartition("a", 0), TopicPartition("a", 1)]
    assert len(info.replicas_of(TopicPartition("a", 0))) == 2


def test_broker_folders_fall_back_to_folders_in_use():
    info = ClusterInfo(
        brokers=(Broker(id=1), Broker(id=2, data_folders=("/d1", "/d2"))),
        replicas=(replica("a", 0, 1, folder="/used"),),
    )
    assert info.broker_folders() == {
        1: frozenset({"/used"}),
        2: frozenset({"/d1", "/d2"}),
    }


def test_diff_reports_moves_and_role_changes():
    before = cluster(replica("a", 0, 1, leader=True), replica("a", 0, 2))
    after = cluster(replica("a", 0, 2, leader=True), replica("a", 0, 3))

    diff = ClusterInfo.diff(before, after)
    assert set(diff.removed) == set(before.replicas)
    assert set(diff.added) == set(after.replicas)
    assert diff.topics == {"a"}
    assert ClusterInfo.diff(before, before).is_empty


def test_diff_ignores_replica_order():
    leader = replica("a", 0, 1, leader=True)
    follower = replica("a", 0, 2)
    assert ClusterInfo.diff(
        cluster(leader, follower), cluster(follower, leader)
    ).is_empty


def test_update_overlays_partitions():
    base = cluster(replica("a", 0, 1, leader=True), replica("b", 0, 1, leader=True))
    allocation = cluster(replica("a", 0, 3, leader=True))

    updated = base.update(allocation)
    assert replica("a", 0, 3, leader=True) in updated.replicas
    assert replica("b", 0, 1, leader=True) in updated.replicas
    assert len(updated.replicas) == 2
    # The base cluster is untouched
    assert replica("a", 0, 1, leader=True) in base.replicas


def test_cluster_round_trips_through_json(two_topic_cluster):
    loaded = ClusterInfo.model_validate_json(two_topic_cluster.model_dump_json())
    assert loaded == two_topic_cluster


def test_cluster_bean_defaults():
    bean = ClusterBean(
        brokers={1: {"cpu": 0.5}}, partitions={"a-0": {"bytes_in_per_sec": 10}}
    )
    assert bean.broker_metric(1, "cpu") == 0.5
    assert bean.broker_metric(2, "cpu") == 0.0
    assert bean.partition_metric(TopicPartition("a", 0), "bytes_in_per_sec") == 10
    assert bean.partition_metric(TopicPartition("a", 1), "missing", 1.0) == 1.0


def test_nan_cost():
    assert ClusterCost(value=float("nan")).is_nan
    assert not ClusterCost(value=0).is_nan


def test_search_state_names():
    assert str(SearchState.not_found) == "not-found"
    assert SearchState("cancelled") == SearchState.cancelled
