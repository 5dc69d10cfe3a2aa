"""
Allow-list rules: restrict an observer to chosen objects or sides.
"""

from typing import Any, Dict, List

from ..models import GeoObject
from .base import BaseObserverRule, positive_ids
from .models import RuleConfig


def _id_list_schema(max_items: int) -> Dict[str, Any]:
    return {
        "type": "array",
        "items": {
            "type": "integer",
            "minimum": 1
        },
        "minItems": 1,
        "maxItems": max_items,
        "uniqueItems": True
    }


class ObjectIdRule(BaseObserverRule):
    """Show only the listed object ids."""

    @property
    def priority(self) -> int:
        # Cheap and highly selective, so it runs early
        return 50

    @classmethod
    def config_schema(cls) -> Dict[str, Any]:
        return _id_list_schema(max_items=100)

    def apply_to_query(self, query, config: RuleConfig):
        allowed_ids = positive_ids(config.parameters)
        if not allowed_ids:
            return query

        return (
            query
            .and_where("g.id = ANY(:allowed_ids)")
            .set_parameter("allowed_ids", allowed_ids)
        )

    def apply_to_objects(self, geo_objects: List[GeoObject], config: RuleConfig) -> List[GeoObject]:
        allowed_ids = set(positive_ids(config.parameters))
        if not allowed_ids:
            return geo_objects
        return [obj for obj in geo_objects if obj.id in allowed_ids]


class SideIdRule(BaseObserverRule):
    """Show only objects owned by the listed sides."""

    @property
    def priority(self) -> int:
        return 75

    @classmethod
    def config_schema(cls) -> Dict[str, Any]:
        return _id_list_schema(max_items=50)

    def apply_to_query(self, query, config: RuleConfig):
        allowed_side_ids = positive_ids(config.parameters)
        if not allowed_side_ids:
            return query

        return (
            query
            .left_join("sides", "s", "s.id = g.side_id")
            .and_where("s.id = ANY(:allowed_side_ids)")
            .set_parameter("allowed_side_ids", allowed_side_ids)
        )

    def apply_to_objects(self, geo_objects: List[GeoObject], config: RuleConfig) -> List[GeoObject]:
        allowed_side_ids = set(positive_ids(config.parameters))
        if not allowed_side_ids:
            return geo_objects
        return [obj for obj in geo_objects if obj.side_id in allowed_side_ids]
