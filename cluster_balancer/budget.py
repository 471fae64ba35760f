from datetime import timedelta
from typing import Optional
from typing import Union

import isodate  # type: ignore
from pydantic import TypeAdapter

from cluster_balancer.interface import DurationBudget
from cluster_balancer.interface import IterationBudget
from cluster_balancer.interface import SearchBudget

_budget_adapter: TypeAdapter = TypeAdapter(SearchBudget)


def duration_budget(duration: Union[timedelta, float, str]) -> DurationBudget:
    """Build a wall clock budget from a timedelta, seconds or ISO-8601 string

    >>> duration_budget("PT3S").seconds
    3.0
    """
    if isinstance(duration, timedelta):
        return DurationBudget(seconds=duration.total_seconds())
    if isinstance(duration, str):
        parsed = isodate.parse_duration(duration)
        # isodate returns a Duration when years or months are involved and
        # those have no fixed length, a search that long is a mistake anyway
        if isinstance(parsed, isodate.Duration):
            raise ValueError(
                f"Search duration {duration} must not use years or months"
            )
        return DurationBudget(seconds=parsed.total_seconds())
    return DurationBudget(seconds=duration)


def iteration_budget(max_candidates: int) -> IterationBudget:
    return IterationBudget(max_candidates=max_candidates)


def budget_of(
    duration: Optional[Union[timedelta, float, str]] = None,
    max_candidates: Optional[int] = None,
) -> Union[DurationBudget, IterationBudget]:
    """Exactly one of duration or max_candidates must be given"""
    if duration is not None and max_candidates is not None:
        raise ValueError(
            "A search budget is either a duration or a candidate count, not both"
        )
    if duration is not None:
        return duration_budget(duration)
    if max_candidates is not None:
        return iteration_budget(max_candidates)
    raise ValueError("A search budget needs a duration or a candidate count")


def parse_budget(text: str) -> Union[DurationBudget, IterationBudget]:
    """Parse a command line budget: "500" is a candidate count while
    "PT10S" (ISO-8601) is a duration
    """
    text = text.strip()
    if text.isdigit():
        return iteration_budget(int(text))
    try:
        return duration_budget(text)
    except isodate.ISO8601Error as exp:
        raise ValueError(
            f"Budget {text!r} is neither a candidate count nor an ISO-8601 duration"
        ) from exp


def load_budget(raw: dict) -> Union[DurationBudget, IterationBudget]:
    """Validate a serialized budget, e.g. {"kind": "duration", "seconds": 3}"""
    return _budget_adapter.validate_python(raw)
