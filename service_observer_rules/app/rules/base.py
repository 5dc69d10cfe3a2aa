"""
Rule contracts.

Every rule exposes both phases of the filtering pipeline: a query-level
contribution (``apply_to_query``) and an in-memory pass
(``apply_to_objects``). Rules that cannot express themselves in the query
keep the no-op default. Stateful rules additionally own the shape of the
``_state`` sub-object the engine persists on their behalf.
"""

import math
import time
from abc import ABC, abstractmethod
from typing import Any, Callable, Dict, List, Optional

from ..models import GeoObject
from .models import DEFAULT_PRIORITY, RuleConfig


# Predicate that makes the composed query return nothing
ALWAYS_FALSE = "1 = 0"

Clock = Callable[[], float]


class BaseObserverRule(ABC):
    """Stateless rule: a named, prioritised filter over geo-objects."""

    def __init__(self, clock: Optional[Clock] = None):
        self._clock = clock or time.time

    @property
    def name(self) -> str:
        return type(self).__name__

    @property
    def priority(self) -> int:
        return DEFAULT_PRIORITY

    @property
    def is_stateful(self) -> bool:
        return False

    @classmethod
    def config_schema(cls) -> Dict[str, Any]:
        """JSON schema of this rule's configuration slice."""
        return {}

    def apply_to_query(self, query, config: RuleConfig):
        return query

    def apply_to_objects(self, geo_objects: List[GeoObject], config: RuleConfig) -> List[GeoObject]:
        return geo_objects

    def now(self) -> int:
        """Current Unix time in whole seconds."""
        return int(self._clock())

    def __repr__(self) -> str:
        return f"<{type(self).__name__} name={self.name!r} priority={self.priority}>"


class StatefulObserverRule(BaseObserverRule):
    """Rule whose decision depends on state carried across invocations."""

    @property
    def is_stateful(self) -> bool:
        return True

    @abstractmethod
    def initialize_state(self, config: RuleConfig) -> Dict[str, Any]:
        """Build the first state for a config that has none."""

    @abstractmethod
    def update_state(self, config: RuleConfig) -> Dict[str, Any]:
        """Return the state to persist after this call; never mutate ``config``."""


def positive_ids(values: Any) -> List[int]:
    """Keep the entries that read as positive integers, deduplicated in order.

    Numeric strings and integral floats are accepted; everything else is
    dropped.
    """
    if not isinstance(values, (list, tuple)):
        return []

    ids: List[int] = []
    seen = set()
    for value in values:
        candidate = _as_int(value)
        if candidate is None or candidate <= 0 or candidate in seen:
            continue
        seen.add(candidate)
        ids.append(candidate)
    return ids


def _as_int(value: Any) -> Optional[int]:
    if isinstance(value, bool):
        return None
    if isinstance(value, int):
        return value
    if isinstance(value, float):
        if math.isfinite(value) and value.is_integer():
            return int(value)
        return None
    if isinstance(value, str):
        text = value.strip()
        if text.isdigit():
            return int(text)
    return None
