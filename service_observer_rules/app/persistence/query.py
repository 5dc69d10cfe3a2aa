"""
Composable geo-object query used by the query phase of the rule pipeline.

Predicates are written against the ``g`` alias with ``:name`` placeholders
and bound with ``set_parameter``; ``to_sql`` renders them for asyncpg's
positional ``$n`` parameters.
"""

import re
from typing import Any, Awaitable, Callable, Dict, List, Tuple

from shared.errors import QueryBuildError

from ..models import GeoObject

GEO_OBJECT_COLUMNS = (
    "id", "map_id", "side_id", "name", "description", "ttl",
    "geometry_type", "geometry", "created_at", "updated_at",
)

# Objects with no TTL, or whose TTL has not run out since creation or last update
ACTIVE_PREDICATE = (
    "(g.ttl IS NULL OR g.ttl = 0"
    " OR (g.ttl > 0 AND g.created_at + make_interval(secs => g.ttl) > :now)"
    " OR (g.updated_at IS NOT NULL AND g.ttl > 0"
    " AND g.updated_at + make_interval(secs => g.ttl) > :now))"
)

# ``:name`` but not the second colon of a ``::type`` cast
_PLACEHOLDER_RE = re.compile(r"(?<![:\w]):([A-Za-z_][A-Za-z0-9_]*)")

Executor = Callable[[str, List[Any]], Awaitable[List[GeoObject]]]


class GeoObjectQueryBuilder:
    """Chainable, conjunctive query over the geo-objects table."""

    def __init__(self, executor: Executor, table: str = "geo_objects", alias: str = "g"):
        self._executor = executor
        self.table = table
        self.alias = alias
        self._joins: List[Tuple[str, str, str]] = []
        self._conditions: List[str] = []
        self._parameters: Dict[str, Any] = {}

    def where(self, predicate: str) -> "GeoObjectQueryBuilder":
        """Replace all predicates with ``predicate``."""
        self._conditions = [predicate]
        return self

    def and_where(self, predicate: str) -> "GeoObjectQueryBuilder":
        self._conditions.append(predicate)
        return self

    def left_join(self, table: str, alias: str, condition: str) -> "GeoObjectQueryBuilder":
        if all(existing_alias != alias for _, existing_alias, _ in self._joins):
            self._joins.append((table, alias, condition))
        return self

    def set_parameter(self, name: str, value: Any) -> "GeoObjectQueryBuilder":
        self._parameters[name] = value
        return self

    def get_parameter(self, name: str) -> Any:
        return self._parameters.get(name)

    @property
    def conditions(self) -> List[str]:
        return list(self._conditions)

    @property
    def parameters(self) -> Dict[str, Any]:
        return dict(self._parameters)

    def to_sql(self) -> Tuple[str, List[Any]]:
        """Render the query and its positional arguments."""
        columns = ", ".join(f"{self.alias}.{column}" for column in GEO_OBJECT_COLUMNS)
        sql = f"SELECT {columns} FROM {self.table} {self.alias}"

        for table, alias, condition in self._joins:
            sql += f" LEFT JOIN {table} {alias} ON {condition}"

        if self._conditions:
            sql += " WHERE " + " AND ".join(f"({c})" for c in self._conditions)

        sql += f" ORDER BY {self.alias}.id"

        positions: Dict[str, int] = {}
        args: List[Any] = []

        def _bind(match: "re.Match[str]") -> str:
            name = match.group(1)
            if name not in self._parameters:
                raise QueryBuildError(f"Unbound query parameter: {name}", {"parameter": name})
            if name not in positions:
                args.append(self._parameters[name])
                positions[name] = len(args)
            return f"${positions[name]}"

        return _PLACEHOLDER_RE.sub(_bind, sql), args

    async def execute(self) -> List[GeoObject]:
        sql, args = self.to_sql()
        return await self._executor(sql, args)
