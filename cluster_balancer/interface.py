from __future__ import annotations

import math
from enum import Enum
from typing import Annotated
from typing import Dict
from typing import FrozenSet
from typing import Iterable
from typing import List
from typing import Literal
from typing import NamedTuple
from typing import Optional
from typing import Set
from typing import Tuple
from typing import Union

from pydantic import BaseModel
from pydantic import ConfigDict
from pydantic import Field
from pydantic import model_validator


class ExcludeUnsetModel(BaseModel):
    def model_dump(self, *args, **kwargs):
        if "exclude_unset" not in kwargs:
            kwargs["exclude_unset"] = True
        return super().model_dump(*args, **kwargs)

    def model_dump_json(self, *args, **kwargs):
        if "exclude_unset" not in kwargs:
            kwargs["exclude_unset"] = True
        return super().model_dump_json(*args, **kwargs)


###############################################################################
#              Models (structs) for how we describe a cluster                 #
###############################################################################


class TopicPartition(NamedTuple):
    topic: str
    partition: int

    def __str__(self):
        return f"{self.topic}-{self.partition}"

    @staticmethod
    def of(name: str) -> TopicPartition:
        topic, partition = name.rsplit("-", 1)
        return TopicPartition(topic, int(partition))


class Broker(ExcludeUnsetModel):
    """Represents a node of the log cluster and the storage folders
    (log directories) it can place replicas on
    """

    id: int
    host: str = "localhost"
    port: int = 9092
    data_folders: Tuple[str, ...] = ()

    model_config = ConfigDict(frozen=True)


class Replica(ExcludeUnsetModel):
    """One copy of a partition's log hosted on a broker's data folder"""

    topic: str
    partition: int = Field(ge=0)
    broker_id: int
    data_folder: str
    is_leader: bool = False
    # Bytes on disk, used by size aware costs
    size: int = Field(default=0, ge=0)

    model_config = ConfigDict(frozen=True)

    @property
    def topic_partition(self) -> TopicPartition:
        return TopicPartition(self.topic, self.partition)

    @property
    def placement(self) -> Tuple[int, str]:
        return (self.broker_id, self.data_folder)

    def moved_to(self, broker_id: int, data_folder: str) -> Replica:
        return self.model_copy(
            update={"broker_id": broker_id, "data_folder": data_folder}
        )

    def with_leadership(self, is_leader: bool) -> Replica:
        return self.model_copy(update={"is_leader": is_leader})

    def __str__(self):
        role = "leader" if self.is_leader else "follower"
        return (
            f"{self.topic}-{self.partition}@{self.broker_id}:{self.data_folder}"
            f"({role})"
        )


class AllocationDiff(ExcludeUnsetModel):
    """The replicas whose placement differs between two cluster states

    removed holds the replicas as they were before, added holds the same
    replicas at their new placement (or with their new role).
    """

    removed: Tuple[Replica, ...] = ()
    added: Tuple[Replica, ...] = ()

    model_config = ConfigDict(frozen=True)

    @property
    def is_empty(self) -> bool:
        return not self.removed and not self.added

    @property
    def topics(self) -> Set[str]:
        return {r.topic for r in self.removed} | {r.topic for r in self.added}

    @property
    def topic_partitions(self) -> Set[TopicPartition]:
        return {r.topic_partition for r in self.removed} | {
            r.topic_partition for r in self.added
        }


class ClusterInfo(ExcludeUnsetModel):
    """An immutable snapshot of where every replica of the cluster lives

    Replicas of a partition keep their relative order, the leader is
    usually listed first.
    """

    brokers: Tuple[Broker, ...] = ()
    replicas: Tuple[Replica, ...] = ()

    model_config = ConfigDict(frozen=True)

    @model_validator(mode="after")
    def _check_placements(self) -> ClusterInfo:
        broker_ids = {broker.id for broker in self.brokers}
        if len(broker_ids) != len(self.brokers):
            raise ValueError("Broker ids must be unique")

        hosted: Set[Tuple[str, int, int]] = set()
        leaders: Set[TopicPartition] = set()
        for replica in self.replicas:
            if replica.broker_id not in broker_ids:
                raise ValueError(
                    f"Replica {replica} is placed on unknown broker "
                    f"{replica.broker_id}. Try {sorted(broker_ids)}"
                )
            key = (replica.topic, replica.partition, replica.broker_id)
            if key in hosted:
                raise ValueError(
                    f"Partition {replica.topic_partition} has more than one "
                    f"replica on broker {replica.broker_id}"
                )
            hosted.add(key)
            if replica.is_leader:
                if replica.topic_partition in leaders:
                    raise ValueError(
                        f"Partition {replica.topic_partition} has more than one leader"
                    )
                leaders.add(replica.topic_partition)
        return self

    @property
    def broker_ids(self) -> List[int]:
        return sorted(broker.id for broker in self.brokers)

    @property
    def topics(self) -> Set[str]:
        return {replica.topic for replica in self.replicas}

    def topic_partitions(self) -> List[TopicPartition]:
        return sorted({replica.topic_partition for replica in self.replicas})

    def partition_replicas(self) -> Dict[TopicPartition, List[Replica]]:
        result: Dict[TopicPartition, List[Replica]] = {}
        for replica in self.replicas:
            result.setdefault(replica.topic_partition, []).append(replica)
        return result

    def replicas_of(self, topic_partition: TopicPartition) -> List[Replica]:
        return [r for r in self.replicas if r.topic_partition == topic_partition]

    def broker_folders(self) -> Dict[int, FrozenSet[str]]:
        """Folders each broker can host replicas on

        Brokers that do not declare their folders are assumed to offer the
        folders their replicas currently use.
        """
        in_use: Dict[int, Set[str]] = {}
        for replica in self.replicas:
            in_use.setdefault(replica.broker_id, set()).add(replica.data_folder)

        return {
            broker.id: frozenset(broker.data_folders or in_use.get(broker.id, ()))
            for broker in self.brokers
        }

    def leader_counts(self) -> Dict[int, int]:
        counts = {broker_id: 0 for broker_id in self.broker_ids}
        for replica in self.replicas:
            if replica.is_leader:
                counts[replica.broker_id] += 1
        return counts

    def replica_counts(self) -> Dict[int, int]:
        counts = {broker_id: 0 for broker_id in self.broker_ids}
        for replica in self.replicas:
            counts[replica.broker_id] += 1
        return counts

    def size_by_broker(self) -> Dict[int, int]:
        sizes = {broker_id: 0 for broker_id in self.broker_ids}
        for replica in self.replicas:
            sizes[replica.broker_id] += replica.size
        return sizes

    def with_replicas(self, replicas: Iterable[Replica]) -> ClusterInfo:
        return ClusterInfo(brokers=self.brokers, replicas=tuple(replicas))

    def update(self, allocation: ClusterInfo) -> ClusterInfo:
        """Overlay the placements of the partitions in allocation onto
        this cluster, partitions absent from allocation are left untouched
        """
        moved = {replica.topic_partition for replica in allocation.replicas}
        kept = [r for r in self.replicas if r.topic_partition not in moved]
        return self.with_replicas(kept + list(allocation.replicas))

    @staticmethod
    def diff(before: ClusterInfo, after: ClusterInfo) -> AllocationDiff:
        before_replicas = set(before.replicas)
        after_replicas = set(after.replicas)
        return AllocationDiff(
            removed=tuple(r for r in before.replicas if r not in after_replicas),
            added=tuple(r for r in after.replicas if r not in before_replicas),
        )


class ClusterBean(ExcludeUnsetModel):
    """Read-only auxiliary metrics handed to cost functions

    brokers: broker id -> metric name -> value
    partitions: "topic-partition" -> metric name -> value
    """

    brokers: Dict[int, Dict[str, float]] = {}
    partitions: Dict[str, Dict[str, float]] = {}

    model_config = ConfigDict(frozen=True)

    def broker_metric(self, broker_id: int, name: str, default: float = 0.0) -> float:
        return self.brokers.get(broker_id, {}).get(name, default)

    def partition_metric(
        self, topic_partition: TopicPartition, name: str, default: float = 0.0
    ) -> float:
        return self.partitions.get(str(topic_partition), {}).get(name, default)


###############################################################################
#              Models (structs) for how we describe costs and plans           #
###############################################################################


class ClusterCost(ExcludeUnsetModel):
    # Lower is better
    value: float
    description: str = ""

    model_config = ConfigDict(frozen=True)

    @property
    def is_nan(self) -> bool:
        return math.isnan(self.value)


class MoveCost(ExcludeUnsetModel):
    """How expensive it is to go from one allocation to another"""

    value: float
    unit: str = ""
    description: str = ""

    model_config = ConfigDict(frozen=True)


class RebalancePlanProposal(ExcludeUnsetModel):
    """A candidate allocation produced by a plan generator"""

    rebalance_plan: ClusterInfo
    info: Tuple[str, ...] = ()
    warnings: Tuple[str, ...] = ()

    model_config = ConfigDict(frozen=True)


class Plan(ExcludeUnsetModel):
    """A scored proposal, what the balancer hands back to its caller"""

    proposal: RebalancePlanProposal
    cluster_cost: ClusterCost
    move_cost: Optional[MoveCost] = None

    model_config = ConfigDict(frozen=True)

    @property
    def cost(self) -> float:
        return self.cluster_cost.value

    @property
    def rebalance_plan(self) -> ClusterInfo:
        return self.proposal.rebalance_plan


###############################################################################
#              Models (structs) for how long a search may run                 #
###############################################################################


class DurationBudget(BaseModel):
    """Stop searching once this much wall clock time has elapsed"""

    kind: Literal["duration"] = "duration"
    seconds: float = Field(gt=0, allow_inf_nan=False)

    model_config = ConfigDict(frozen=True)

    def exhausted(self, elapsed_seconds: float, evaluated: int) -> bool:
        return elapsed_seconds >= self.seconds

    def __str__(self):
        return f"{self.seconds}s"


class IterationBudget(BaseModel):
    """Stop searching once this many candidates have been pulled"""

    kind: Literal["iterations"] = "iterations"
    max_candidates: int = Field(gt=0)

    model_config = ConfigDict(frozen=True)

    def exhausted(self, elapsed_seconds: float, evaluated: int) -> bool:
        return evaluated >= self.max_candidates

    def __str__(self):
        return f"{self.max_candidates} candidates"


SearchBudget = Annotated[
    Union[DurationBudget, IterationBudget], Field(discriminator="kind")
]


class SearchState(str, Enum):
    """How a search ended, a search is idle before and searching during
    the balancer call so only terminal states are ever reported
    """

    def __str__(self):
        return str(self.value)

    found = "found"
    not_found = "not-found"
    cancelled = "cancelled"


class SearchResult(BaseModel):
    state: SearchState
    baseline_cost: ClusterCost
    plan: Optional[Plan] = None
    # Candidates pulled from the generator, including discarded ones
    evaluated: int = 0
    # Candidates rejected by constraints or with an undefined cost
    discarded: int = 0
    elapsed_seconds: float = 0

    @property
    def found(self) -> bool:
        return self.plan is not None
