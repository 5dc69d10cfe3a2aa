"""
Budget rules: access that runs out after a duration or a number of requests.

Both keep their bookkeeping in the ``_state`` sub-object, written back by
the engine after every call. The engine hands ``apply_to_*`` the state as
it was *before* ``update_state`` ran for the current call.
"""

from typing import Any, Dict, List

from ..models import GeoObject
from .base import ALWAYS_FALSE, StatefulObserverRule
from .models import RuleConfig


class TimeLimitRule(StatefulObserverRule):
    """Allow access for ``duration_seconds`` after first use."""

    # Used only when a config reaches the rule without a duration
    DEFAULT_DURATION_SECONDS = 300

    @property
    def name(self) -> str:
        return "time_limit"

    @property
    def priority(self) -> int:
        return 20

    @classmethod
    def config_schema(cls) -> Dict[str, Any]:
        return {
            "type": "object",
            "properties": {
                "duration_seconds": {
                    "type": "integer",
                    "minimum": 1,
                    "description": "Duration in seconds for which access is allowed"
                },
                "_state": {
                    "type": "object",
                    "properties": {
                        "first_used_at": {
                            "type": "integer",
                            "description": "Timestamp when rule was first used"
                        },
                        "expires_at": {
                            "type": "integer",
                            "description": "Timestamp when rule expires"
                        },
                        "last_used_at": {
                            "type": "integer",
                            "description": "Timestamp of last request"
                        }
                    },
                    "required": ["first_used_at", "expires_at"],
                    "additionalProperties": False
                }
            },
            "required": ["duration_seconds"],
            "additionalProperties": False
        }

    def apply_to_query(self, query, config: RuleConfig):
        if self.is_expired(config):
            query.and_where(ALWAYS_FALSE)
        return query

    def apply_to_objects(self, geo_objects: List[GeoObject], config: RuleConfig) -> List[GeoObject]:
        if self.is_expired(config):
            return []
        return geo_objects

    def initialize_state(self, config: RuleConfig) -> Dict[str, Any]:
        now = self.now()
        duration = int(config.get("duration_seconds", self.DEFAULT_DURATION_SECONDS))
        return {
            "first_used_at": now,
            "expires_at": now + duration,
            "last_used_at": None
        }

    def update_state(self, config: RuleConfig) -> Dict[str, Any]:
        state = dict(config.state) if config.has_state else self.initialize_state(config)
        # The expiry is fixed at initialization; only the usage stamp moves
        state["last_used_at"] = self.now()
        return state

    def is_expired(self, config: RuleConfig) -> bool:
        if not config.has_state or config.state.get("expires_at") is None:
            return False
        return self.now() > int(config.state["expires_at"])


class RequestLimitRule(StatefulObserverRule):
    """Allow ``limit`` requests, counting down one per call."""

    DEFAULT_LIMIT = 10

    @property
    def name(self) -> str:
        return "request_limit"

    @property
    def priority(self) -> int:
        return 30

    @classmethod
    def config_schema(cls) -> Dict[str, Any]:
        return {
            "type": "object",
            "properties": {
                "limit": {
                    "type": "integer",
                    "minimum": 1,
                    "description": "Maximum number of requests allowed"
                },
                "_state": {
                    "type": "object",
                    "properties": {
                        "remaining": {
                            "type": "integer",
                            "minimum": 0,
                            "description": "Number of requests remaining"
                        },
                        "initialized_at": {
                            "type": "integer",
                            "description": "Timestamp when rule was initialized"
                        },
                        "last_used_at": {
                            "type": "integer",
                            "description": "Timestamp of last request"
                        }
                    },
                    "required": ["remaining", "initialized_at"],
                    "additionalProperties": False
                }
            },
            "required": ["limit"],
            "additionalProperties": False
        }

    def apply_to_query(self, query, config: RuleConfig):
        if self.remaining(config) <= 0:
            query.and_where(ALWAYS_FALSE)
        return query

    def apply_to_objects(self, geo_objects: List[GeoObject], config: RuleConfig) -> List[GeoObject]:
        if self.remaining(config) <= 0:
            return []
        return geo_objects

    def initialize_state(self, config: RuleConfig) -> Dict[str, Any]:
        return {
            "remaining": int(config.get("limit", self.DEFAULT_LIMIT)),
            "initialized_at": self.now(),
            "last_used_at": None
        }

    def update_state(self, config: RuleConfig) -> Dict[str, Any]:
        state = dict(config.state) if config.has_state else self.initialize_state(config)
        state["remaining"] = max(int(state.get("remaining", 0)) - 1, 0)
        state["last_used_at"] = self.now()
        return state

    def remaining(self, config: RuleConfig) -> int:
        """Requests left when this call started."""
        if not config.has_state:
            return int(config.get("limit", self.DEFAULT_LIMIT))
        return int(config.state.get("remaining", 0))
