import logging
from enum import Enum
from typing import Callable
from typing import Dict
from typing import FrozenSet
from typing import Iterable
from typing import Iterator
from typing import List
from typing import NamedTuple
from typing import Optional
from typing import Sequence
from typing import Tuple
from typing import Union

import numpy as np

from cluster_balancer.constraint import PlacementConstraint
from cluster_balancer.interface import ClusterInfo
from cluster_balancer.interface import RebalancePlanProposal
from cluster_balancer.interface import Replica
from cluster_balancer.interface import TopicPartition

logger = logging.getLogger(__name__)


class RebalancePlanGenerator:
    """Stateless interface for producing candidate allocations

    `generate` returns a lazy, possibly infinite, iterator. The balancer
    pulls one proposal at a time and stops pulling whenever its budget is
    spent, so implementations must never precompute the candidate space.
    Every proposal must differ from the base allocation and only touch
    replicas the constraint allows to move. Each call starts a new
    sequence; pulling the next proposal is expected to take bounded time.
    """

    def generate(
        self, base: ClusterInfo, constraint: PlacementConstraint
    ) -> Iterator[RebalancePlanProposal]:
        (_, _) = (base, constraint)
        raise NotImplementedError


GeneratorFunction = Callable[
    [ClusterInfo, PlacementConstraint],
    Iterable[Union[RebalancePlanProposal, ClusterInfo]],
]


class FunctionPlanGenerator(RebalancePlanGenerator):
    def __init__(self, function: GeneratorFunction):
        self._function = function

    def generate(
        self, base: ClusterInfo, constraint: PlacementConstraint
    ) -> Iterator[RebalancePlanProposal]:
        for candidate in self._function(base, constraint):
            if isinstance(candidate, ClusterInfo):
                yield RebalancePlanProposal(rebalance_plan=candidate)
            else:
                yield candidate

    def __repr__(self):
        return f"FunctionPlanGenerator({self._function!r})"


def plan_generator_of(
    generator: Union[RebalancePlanGenerator, GeneratorFunction],
) -> RebalancePlanGenerator:
    """Adapt a callable taking (base, constraint) and returning an iterable
    of proposals (or bare allocations) to RebalancePlanGenerator
    """
    if isinstance(generator, RebalancePlanGenerator):
        return generator
    if not callable(generator):
        raise ValueError(
            f"{generator!r} is neither a RebalancePlanGenerator nor a callable"
        )
    return FunctionPlanGenerator(generator)


class ShuffleKind(str, Enum):
    def __str__(self):
        return str(self.value)

    # Promote a follower to leader of its partition
    leadership = "leadership"
    # Move a replica to another (broker, folder)
    migration = "migration"


class LeadershipShuffle(NamedTuple):
    """Promote the follower at index follower, demote the leader"""

    leader: int
    follower: int

    def apply(self, replicas: Sequence[Replica]) -> Tuple[List[Replica], str]:
        demoted = replicas[self.leader]
        promoted = replicas[self.follower]
        reordered = [promoted.with_leadership(True)]
        for index, other in enumerate(replicas):
            if index == self.follower:
                continue
            reordered.append(
                other.with_leadership(False) if index == self.leader else other
            )
        return reordered, (
            f"leadership of {demoted.topic_partition} moved from broker "
            f"{demoted.broker_id} to broker {promoted.broker_id}"
        )


class MigrationShuffle(NamedTuple):
    """Move the replica at index to (broker_id, data_folder)"""

    index: int
    broker_id: int
    data_folder: str

    def apply(self, replicas: Sequence[Replica]) -> Tuple[List[Replica], str]:
        replica = replicas[self.index]
        moved = list(replicas)
        moved[self.index] = replica.moved_to(self.broker_id, self.data_folder)
        return moved, (
            f"replica of {replica.topic_partition} moved from "
            f"{replica.broker_id}:{replica.data_folder} to "
            f"{self.broker_id}:{self.data_folder}"
        )


Shuffle = Union[LeadershipShuffle, MigrationShuffle]


def _leader_index(replicas: Sequence[Replica]) -> Optional[int]:
    for index, replica in enumerate(replicas):
        if replica.is_leader:
            return index
    return None


def _leadership_shuffles(
    replicas: Sequence[Replica], constraint: PlacementConstraint
) -> List[Shuffle]:
    leader = _leader_index(replicas)
    if leader is None or len(replicas) < 2:
        return []
    if not constraint.allows_placement(*replicas[leader].placement):
        return []
    return [
        LeadershipShuffle(leader, index)
        for index, replica in enumerate(replicas)
        if index != leader and constraint.allows_placement(*replica.placement)
    ]


def _migration_shuffles(
    replicas: Sequence[Replica], destinations: Sequence[Tuple[int, str]]
) -> List[Shuffle]:
    hosting = {replica.broker_id for replica in replicas}
    result: List[Shuffle] = []
    for index, replica in enumerate(replicas):
        for broker_id, folder in destinations:
            if (broker_id, folder) == replica.placement:
                continue
            # Another replica of this partition already lives there
            if broker_id != replica.broker_id and broker_id in hosting:
                continue
            result.append(MigrationShuffle(index, broker_id, folder))
    return result


class ShufflePlanGenerator(RebalancePlanGenerator):
    """Derives candidates by applying a random number of shuffles, between
    min_shuffle and max_shuffle inclusive, to the base allocation

    A shuffle either hands the leadership of a partition to one of its
    followers or migrates one replica to another allowed folder. A shuffle
    never undoes the previous shuffle of the same partition. Passing a
    seed makes every call to generate produce the same sequence.

    Shuffles can still cancel out over longer cycles, those candidates
    are skipped. After max_empty_candidates skipped candidates in a row the
    iterator ends, as the cluster then offers nothing to shuffle.
    """

    def __init__(
        self,
        min_shuffle: int = 1,
        max_shuffle: int = 10,
        seed: Optional[int] = None,
        max_empty_candidates: int = 100,
    ):
        if min_shuffle < 1:
            raise ValueError(f"min_shuffle must be at least 1, got {min_shuffle}")
        if max_shuffle < min_shuffle:
            raise ValueError(
                f"max_shuffle ({max_shuffle}) must not be smaller than "
                f"min_shuffle ({min_shuffle})"
            )
        if max_empty_candidates < 1:
            raise ValueError(
                f"max_empty_candidates must be at least 1, got {max_empty_candidates}"
            )
        self.min_shuffle = min_shuffle
        self.max_shuffle = max_shuffle
        self.seed = seed
        self.max_empty_candidates = max_empty_candidates

    def __repr__(self):
        return (
            f"ShufflePlanGenerator(min_shuffle={self.min_shuffle}, "
            f"max_shuffle={self.max_shuffle}, seed={self.seed})"
        )

    def shuffles(
        self,
        replicas: Sequence[Replica],
        constraint: PlacementConstraint,
        destinations: Sequence[Tuple[int, str]],
    ) -> Dict[ShuffleKind, List[Shuffle]]:
        options = {
            ShuffleKind.leadership: _leadership_shuffles(replicas, constraint),
            ShuffleKind.migration: _migration_shuffles(replicas, destinations),
        }
        return {kind: found for kind, found in options.items() if found}

    def generate(
        self, base: ClusterInfo, constraint: PlacementConstraint
    ) -> Iterator[RebalancePlanProposal]:
        rng = np.random.default_rng(self.seed)
        destinations = constraint.destinations()
        partitions = base.partition_replicas()

        eligible = [tp for tp in partitions if constraint.eligible_topic(tp.topic)]
        warnings = tuple(
            f"replica {replica} is on a folder that is not an allowed destination"
            for tp in eligible
            for replica in partitions[tp]
            if not constraint.allows_placement(*replica.placement)
        )
        for warning in warnings:
            logger.warning("Shuffling %s", warning)

        movable: List[TopicPartition] = [
            tp
            for tp in eligible
            if self.shuffles(partitions[tp], constraint, destinations)
        ]
        if not movable:
            logger.info(
                "None of the %d eligible partitions can be shuffled", len(eligible)
            )
            return

        empty = 0
        while True:
            current = dict(partitions)
            # Replicas of a partition before its latest shuffle
            previous: Dict[TopicPartition, FrozenSet[Replica]] = {}
            shuffle_count = int(
                rng.integers(self.min_shuffle, self.max_shuffle, endpoint=True)
            )
            info = [f"{shuffle_count} shuffles"]
            for _ in range(shuffle_count):
                tp = movable[int(rng.integers(len(movable)))]
                shuffled = _pick_shuffle(
                    rng,
                    self.shuffles(current[tp], constraint, destinations),
                    current[tp],
                    previous.get(tp),
                )
                if shuffled is None:
                    continue
                previous[tp] = frozenset(current[tp])
                current[tp], description = shuffled
                info.append(description)

            candidate = base.with_replicas(
                replica for replicas in current.values() for replica in replicas
            )
            if ClusterInfo.diff(base, candidate).is_empty:
                empty += 1
                if empty >= self.max_empty_candidates:
                    logger.info(
                        "%d candidates in a row left the %d movable partitions "
                        "unchanged, giving up",
                        empty,
                        len(movable),
                    )
                    return
                continue
            empty = 0

            yield RebalancePlanProposal(
                rebalance_plan=candidate, info=tuple(info), warnings=warnings
            )


def _pick_shuffle(
    rng: np.random.Generator,
    options: Dict[ShuffleKind, List[Shuffle]],
    replicas: List[Replica],
    undone: Optional[FrozenSet[Replica]],
) -> Optional[Tuple[List[Replica], str]]:
    """Apply a random shuffle among options, skipping those that restore
    the undone replicas. None when every option would
    """
    remaining = {kind: list(found) for kind, found in options.items()}
    while remaining:
        kinds = sorted(remaining)
        kind = kinds[int(rng.integers(len(kinds)))]
        candidates = remaining[kind]
        shuffle = candidates.pop(int(rng.integers(len(candidates))))
        if not candidates:
            del remaining[kind]
        shuffled, description = shuffle.apply(replicas)
        if undone is None or frozenset(shuffled) != undone:
            return shuffled, description
    return None
