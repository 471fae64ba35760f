import logging
import threading
import time
from datetime import timedelta
from typing import Any
from typing import Callable
from typing import Iterable
from typing import Mapping
from typing import Optional

from pydantic import BaseModel
from pydantic import ConfigDict
from pydantic import field_validator

from cluster_balancer.budget import duration_budget
from cluster_balancer.budget import iteration_budget
from cluster_balancer.budget import parse_budget
from cluster_balancer.constraint import PlacementConstraint
from cluster_balancer.cost import cluster_cost_of
from cluster_balancer.cost import HasClusterCost
from cluster_balancer.cost import HasMoveCost
from cluster_balancer.generator import plan_generator_of
from cluster_balancer.generator import RebalancePlanGenerator
from cluster_balancer.interface import ClusterBean
from cluster_balancer.interface import ClusterCost
from cluster_balancer.interface import ClusterInfo
from cluster_balancer.interface import MoveCost
from cluster_balancer.interface import Plan
from cluster_balancer.interface import SearchBudget
from cluster_balancer.interface import SearchResult
from cluster_balancer.interface import SearchState

logger = logging.getLogger(__name__)


def _accept_cluster_cost(baseline: ClusterCost, candidate: ClusterCost) -> bool:
    return True


def _accept_movement(move_cost: MoveCost) -> bool:
    return True


class BalancerConfig(BaseModel):
    """Everything a Balancer needs, validated once at construction

    plan_generator: where candidate allocations come from
    cluster_cost: how a candidate is scored, lower is better
    budget: how long to search, a DurationBudget or an IterationBudget.
        A timedelta, a number of candidates or a string accepted by
        parse_budget ("PT10S", "500") are converted
    greedy: True stops at the first candidate beating the current cluster,
        False keeps the best candidate found until the budget runs out
    move_cost: optional price of migrating to a candidate
    cluster_constraint: extra gate on (baseline cost, candidate cost), a
        candidate must always be strictly cheaper than the baseline
    movement_constraint: rejects candidates whose move cost is too high
    metric_source: supplies the ClusterBean when a search is not handed one
    """

    plan_generator: RebalancePlanGenerator
    cluster_cost: HasClusterCost
    budget: SearchBudget
    greedy: bool = False
    move_cost: Optional[HasMoveCost] = None
    cluster_constraint: Callable[[ClusterCost, ClusterCost], bool] = (
        _accept_cluster_cost
    )
    movement_constraint: Callable[[MoveCost], bool] = _accept_movement
    metric_source: Optional[Callable[[], ClusterBean]] = None

    model_config = ConfigDict(frozen=True, arbitrary_types_allowed=True)

    @field_validator("plan_generator", mode="before")
    @classmethod
    def _adapt_generator(cls, value: Any):
        if value is None:
            raise ValueError("A plan generator is required")
        return plan_generator_of(value)

    @field_validator("cluster_cost", mode="before")
    @classmethod
    def _adapt_cost(cls, value: Any):
        if value is None:
            raise ValueError("A cluster cost is required")
        return cluster_cost_of(value)

    @field_validator("budget", mode="before")
    @classmethod
    def _adapt_budget(cls, value: Any):
        if value is None:
            raise ValueError("A search budget is required")
        if isinstance(value, timedelta):
            return duration_budget(value)
        if isinstance(value, bool):
            raise ValueError(f"{value!r} is not a search budget")
        if isinstance(value, int):
            return iteration_budget(value)
        if isinstance(value, str):
            return parse_budget(value)
        return value


class Balancer:
    """Searches for an allocation that is cheaper than the current one

    The balancer is immutable and keeps no state between searches, so one
    instance may serve concurrent searches from several threads as long as
    its cost functions and generator are pure. A search is sequential: it
    pulls one candidate, checks it against the constraint, scores it and
    compares it with the best so far, checking its budget and the cancel
    event between two candidates. A slow cost function or generator can
    therefore delay cancellation by one call.
    """

    def __init__(self, config: BalancerConfig):
        self.config = config

    @staticmethod
    def of(**kwargs) -> "Balancer":
        return Balancer(BalancerConfig(**kwargs))

    def offer(  # pylint: disable=too-many-positional-arguments
        self,
        cluster_info: ClusterInfo,
        topic_filter: Optional[Callable[[str], bool]] = None,
        broker_folders: Optional[Mapping[int, Iterable[str]]] = None,
        cluster_bean: Optional[ClusterBean] = None,
        cancel_event: Optional[threading.Event] = None,
    ) -> Optional[Plan]:
        """Best plan strictly cheaper than cluster_info, or None

        None is a legitimate answer: no candidate improved on the current
        allocation within the budget, or the search was cancelled before
        one did.
        """
        return self.search(
            cluster_info,
            topic_filter=topic_filter,
            broker_folders=broker_folders,
            cluster_bean=cluster_bean,
            cancel_event=cancel_event,
        ).plan

    def search(  # pylint: disable=too-many-positional-arguments
        self,
        cluster_info: ClusterInfo,
        topic_filter: Optional[Callable[[str], bool]] = None,
        broker_folders: Optional[Mapping[int, Iterable[str]]] = None,
        cluster_bean: Optional[ClusterBean] = None,
        cancel_event: Optional[threading.Event] = None,
    ) -> SearchResult:
        if not isinstance(cluster_info, ClusterInfo):
            raise ValueError(
                f"Expected a ClusterInfo to balance, got {type(cluster_info).__name__}"
            )
        constraint = PlacementConstraint.of(
            cluster_info, topic_filter=topic_filter, broker_folders=broker_folders
        )
        if cluster_bean is None:
            cluster_bean = (
                self.config.metric_source()
                if self.config.metric_source is not None
                else ClusterBean()
            )

        baseline = self.config.cluster_cost.cluster_cost(cluster_info, cluster_bean)
        if baseline.is_nan:
            raise ValueError(
                f"{self.config.cluster_cost!r} returned an undefined cost for the "
                "current cluster, nothing can be compared against it"
            )
        return self._search(
            cluster_info, constraint, cluster_bean, baseline, cancel_event
        )

    # pylint: disable=too-many-locals,too-many-branches
    def _search(  # pylint: disable=too-many-positional-arguments
        self,
        cluster_info: ClusterInfo,
        constraint: PlacementConstraint,
        cluster_bean: ClusterBean,
        baseline: ClusterCost,
        cancel_event: Optional[threading.Event],
    ) -> SearchResult:
        config = self.config
        best: Optional[Plan] = None
        best_value = baseline.value
        evaluated, discarded = 0, 0
        cancelled = False

        logger.debug(
            "Searching %s with %r, baseline cost %s, greedy=%s",
            config.budget,
            config.plan_generator,
            baseline.value,
            config.greedy,
        )
        candidates = iter(config.plan_generator.generate(cluster_info, constraint))
        started = time.monotonic()
        try:
            while True:
                if cancel_event is not None and cancel_event.is_set():
                    cancelled = True
                    break
                if config.budget.exhausted(time.monotonic() - started, evaluated):
                    break
                try:
                    proposal = next(candidates)
                except StopIteration:
                    logger.info("%r has no more candidates", config.plan_generator)
                    break
                evaluated += 1

                candidate = proposal.rebalance_plan
                diff = ClusterInfo.diff(cluster_info, candidate)
                if diff.is_empty or not constraint.admits(diff):
                    discarded += 1
                    continue

                cost = config.cluster_cost.cluster_cost(candidate, cluster_bean)
                if cost.is_nan:
                    logger.warning(
                        "%r returned an undefined cost, discarding candidate %d",
                        config.cluster_cost,
                        evaluated,
                    )
                    discarded += 1
                    continue
                # Ties keep the candidate found first
                if not cost.value < best_value:
                    continue
                if not config.cluster_constraint(baseline, cost):
                    discarded += 1
                    continue

                move_cost = None
                if config.move_cost is not None:
                    move_cost = config.move_cost.move_cost(
                        cluster_info, candidate, cluster_bean
                    )
                    if not config.movement_constraint(move_cost):
                        discarded += 1
                        continue

                best = Plan(proposal=proposal, cluster_cost=cost, move_cost=move_cost)
                best_value = cost.value
                logger.debug(
                    "Candidate %d improves cost to %s (%d replicas changed)",
                    evaluated,
                    cost.value,
                    len(diff.added),
                )
                if config.greedy:
                    break
        finally:
            close = getattr(candidates, "close", None)
            if close is not None:
                close()

        elapsed = time.monotonic() - started
        if cancelled:
            state = SearchState.cancelled
        elif best is not None:
            state = SearchState.found
        else:
            state = SearchState.not_found
        logger.info(
            "Search %s after %d candidates (%d discarded) in %.3fs: "
            "baseline cost %s, best cost %s",
            state,
            evaluated,
            discarded,
            elapsed,
            baseline.value,
            best_value,
        )
        return SearchResult(
            state=state,
            plan=best,
            baseline_cost=baseline,
            evaluated=evaluated,
            discarded=discarded,
            elapsed_seconds=elapsed,
        )
