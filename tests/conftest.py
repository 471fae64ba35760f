import pytest

from cluster_balancer.scenario import build_cluster
from cluster_balancer.scenario import leader_skewed_cluster
from cluster_balancer.scenario import Scenario
from tests.util import cluster
from tests.util import replica


@pytest.fixture
def skewed_cluster():
    """Four brokers, the first one leads all 50 partitions"""
    return leader_skewed_cluster(number_of_partitions=50, broker_count=4)


@pytest.fixture
def two_topic_cluster():
    """Two replicated topics on three brokers with two folders each

    Broker 1 leads every partition of both topics.
    """
    replicas = []
    for topic in ("orders", "payments"):
        for partition in range(6):
            replicas.append(replica(topic, partition, 1, leader=True, size=100))
            replicas.append(replica(topic, partition, 2 + partition % 2, size=100))
    return cluster(*replicas, broker_count=3, folders=2)


@pytest.fixture
def scenario_cluster():
    return build_cluster(
        [
            Scenario(
                topic_name="events",
                number_of_partitions=30,
                number_of_replicas=2,
                binomial_probability=0.1,
                max_partition_size=1000,
            )
        ],
        broker_count=5,
        folders_per_broker=3,
    )
