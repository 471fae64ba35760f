import logging
from collections import Counter
from typing import Callable
from typing import Dict
from typing import FrozenSet
from typing import Iterable
from typing import List
from typing import Mapping
from typing import Optional
from typing import Tuple

from pydantic import BaseModel
from pydantic import ConfigDict
from pydantic import field_validator

from cluster_balancer.interface import AllocationDiff
from cluster_balancer.interface import ClusterInfo
from cluster_balancer.interface import Replica

logger = logging.getLogger(__name__)


def accept_all_topics(_: str) -> bool:
    return True


class PlacementConstraint(BaseModel):
    """Which replicas may move and where they may land

    A candidate allocation is legal iff every replica that changed belongs
    to a topic accepted by topic_filter and sits on a (broker, folder) pair
    present in broker_folders, and every partition keeps as many replicas
    and leaders as it had.
    """

    topic_filter: Callable[[str], bool] = accept_all_topics
    broker_folders: Dict[int, FrozenSet[str]]

    model_config = ConfigDict(frozen=True)

    @field_validator("broker_folders", mode="before")
    @classmethod
    def _freeze_folders(cls, value: Mapping[int, Iterable[str]]):
        if value is None:
            raise ValueError("broker_folders is required")
        return {int(b): frozenset(folders) for b, folders in value.items()}

    @staticmethod
    def of(
        cluster_info: ClusterInfo,
        topic_filter: Optional[Callable[[str], bool]] = None,
        broker_folders: Optional[Mapping[int, Iterable[str]]] = None,
    ) -> "PlacementConstraint":
        if broker_folders is None:
            broker_folders = cluster_info.broker_folders()
        return PlacementConstraint(
            topic_filter=topic_filter or accept_all_topics,
            broker_folders=broker_folders,
        )

    def eligible_topic(self, topic: str) -> bool:
        return bool(self.topic_filter(topic))

    def allows_placement(self, broker_id: int, data_folder: str) -> bool:
        return data_folder in self.broker_folders.get(broker_id, frozenset())

    def allows(self, replica: Replica) -> bool:
        return self.eligible_topic(replica.topic) and self.allows_placement(
            replica.broker_id, replica.data_folder
        )

    def destinations(self) -> List[Tuple[int, str]]:
        return [
            (broker_id, folder)
            for broker_id in sorted(self.broker_folders)
            for folder in sorted(self.broker_folders[broker_id])
        ]

    def is_legal(self, base: ClusterInfo, candidate: ClusterInfo) -> bool:
        return self.admits(ClusterInfo.diff(base, candidate))

    def admits(self, diff: AllocationDiff) -> bool:
        for replica in diff.removed:
            if not self.eligible_topic(replica.topic):
                logger.debug("Replica %s of a filtered topic was changed", replica)
                return False
        for replica in diff.added:
            if not self.allows(replica):
                logger.debug("Replica %s landed on a forbidden placement", replica)
                return False
        # Unchanged replicas are in neither side, so equal counts on both
        # sides mean every partition keeps its replicas and its leader
        if _replica_counts(diff.removed) != _replica_counts(diff.added):
            logger.debug("A candidate changed the replication factor of a partition")
            return False
        if _leader_counts(diff.removed) != _leader_counts(diff.added):
            logger.debug("A candidate changed the leadership count of a partition")
            return False
        return True


def _replica_counts(replicas: Iterable[Replica]) -> Counter:
    return Counter(replica.topic_partition for replica in replicas)


def _leader_counts(replicas: Iterable[Replica]) -> Counter:
    return Counter(replica.topic_partition for replica in replicas if replica.is_leader)
