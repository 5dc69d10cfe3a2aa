"""
Unit tests for GeoObjectQueryBuilder.
"""

import pytest
from datetime import datetime, timezone
from unittest.mock import AsyncMock, MagicMock

from shared.errors import QueryBuildError
from service_observer_rules.app.models import GeoObject
from service_observer_rules.app.persistence.postgres import GeoObjectRepository
from service_observer_rules.app.persistence.query import ACTIVE_PREDICATE, GeoObjectQueryBuilder


class TestGeoObjectQueryBuilder:
    """Test cases for GeoObjectQueryBuilder."""

    @pytest.fixture
    def executor(self):
        return AsyncMock(return_value=[GeoObject(id=1, map_id=7)])

    @pytest.fixture
    def builder(self, executor):
        return GeoObjectQueryBuilder(executor)

    def test_renders_positional_parameters(self, builder):
        sql, args = (
            builder
            .where("g.map_id = :map")
            .and_where("g.id = ANY(:ids)")
            .set_parameter("map", 7)
            .set_parameter("ids", [1, 2])
            .to_sql()
        )

        assert sql.startswith("SELECT g.id, g.map_id, g.side_id")
        assert "FROM geo_objects g WHERE (g.map_id = $1) AND (g.id = ANY($2)) ORDER BY g.id" in sql
        assert args == [7, [1, 2]]

    def test_repeated_parameter_reuses_position(self, builder):
        sql, args = (
            builder
            .where("g.created_at < :now")
            .and_where("g.updated_at < :now")
            .set_parameter("now", 5)
            .to_sql()
        )

        assert sql.count("$1") == 2
        assert args == [5]

    def test_unbound_parameter_raises(self, builder):
        builder.where("g.map_id = :map")

        with pytest.raises(QueryBuildError) as exc_info:
            builder.to_sql()

        assert exc_info.value.details == {"parameter": "map"}

    def test_type_casts_are_not_parameters(self, builder):
        sql, args = builder.where("g.geometry::text <> ''").to_sql()

        assert "g.geometry::text" in sql
        assert args == []

    def test_where_replaces_conditions(self, builder):
        builder.where("a = 1").and_where("b = 2").where("c = 3")

        assert builder.conditions == ["c = 3"]

    def test_left_join_is_added_once_per_alias(self, builder):
        builder.left_join("sides", "s", "s.id = g.side_id").left_join("sides", "s", "s.id = g.side_id")

        sql, _ = builder.to_sql()

        assert sql.count("LEFT JOIN sides s") == 1

    def test_parameters_are_copies(self, builder):
        builder.set_parameter("map", 1)
        builder.parameters["map"] = 2

        assert builder.get_parameter("map") == 1

    @pytest.mark.asyncio
    async def test_execute_passes_rendered_query(self, builder, executor):
        result = await builder.where("g.map_id = :map").set_parameter("map", 7).execute()

        assert result == [GeoObject(id=1, map_id=7)]
        sql, args = executor.await_args.args
        assert "(g.map_id = $1)" in sql
        assert args == [7]


class TestGeoObjectRepository:
    """Test cases for the geo-object query entry points."""

    @pytest.fixture
    def persistence(self):
        persistence = MagicMock()
        persistence.fetch_geo_objects = AsyncMock(return_value=[])
        return persistence

    def test_active_on_map(self, persistence):
        now = datetime(2024, 1, 1, tzinfo=timezone.utc)

        query = GeoObjectRepository(persistence).active_on_map(7, now=now)
        sql, args = query.to_sql()

        assert query.conditions == ["g.map_id = :map", ACTIVE_PREDICATE]
        assert args == [7, now]
        assert "make_interval(secs => g.ttl) > $2" in sql

    @pytest.mark.asyncio
    async def test_find_active_by_map(self, persistence):
        await GeoObjectRepository(persistence).find_active_by_map(7)

        sql, args = persistence.fetch_geo_objects.await_args.args
        assert args[0] == 7
        assert "(g.map_id = $1)" in sql
