"""
Rule data models for the Observer Rules service.
"""

import copy
import re
from dataclasses import dataclass, field, replace
from typing import Any, Dict, Optional, TYPE_CHECKING

if TYPE_CHECKING:
    from .base import BaseObserverRule


STATE_KEY = "_state"
DEFAULT_PRIORITY = 100
RULE_NAME_PATTERN = re.compile(r"^[A-Za-z][A-Za-z0-9_]*$")


@dataclass(frozen=True)
class RuleConfig:
    """One rule's slice of an observer configuration.

    ``parameters`` is what the user authored (a mapping, or a list for the
    allow-list rules). ``state`` is written only by the engine on behalf
    of stateful rules and is opaque to everything else; ``None`` means the
    slice carries no state yet.
    """
    parameters: Any = field(default_factory=dict)
    state: Optional[Dict[str, Any]] = None

    @classmethod
    def from_raw(cls, raw: Any) -> "RuleConfig":
        """Split a wire-format slice into parameters and state."""
        if isinstance(raw, dict):
            parameters = {key: value for key, value in raw.items() if key != STATE_KEY}
            return cls(parameters=parameters, state=raw.get(STATE_KEY))
        return cls(parameters=raw)

    def to_raw(self) -> Any:
        """Rebuild the wire-format slice."""
        parameters = copy.deepcopy(self.parameters)
        if self.state is None:
            return parameters
        if not isinstance(parameters, dict):
            raise TypeError("State can only be attached to object-shaped rule configurations")
        parameters[STATE_KEY] = copy.deepcopy(self.state)
        return parameters

    def with_state(self, state: Optional[Dict[str, Any]]) -> "RuleConfig":
        return replace(self, state=state)

    def get(self, key: str, default: Any = None) -> Any:
        if isinstance(self.parameters, dict):
            return self.parameters.get(key, default)
        return default

    @property
    def has_state(self) -> bool:
        return self.state is not None


@dataclass(frozen=True)
class RuleApplicationUnit:
    """A resolved rule paired with the config it runs with for one call."""
    rule: "BaseObserverRule"
    config: RuleConfig
    name: str
    priority: int = DEFAULT_PRIORITY
