"""
Observer Rules service: wires configuration, storage, rules and the engine.
"""

from typing import List, Optional

from prometheus_client import CollectorRegistry

from shared.config import ServiceConfig, get_config
from shared.errors import ObserverNotFoundError
from shared.logging import configure_logging, get_logger, set_request_id
from shared.metrics import get_metrics_collector

from .models import GeoObject, Observer
from .persistence.postgres import GeoObjectRepository, ObserverRepository, PostgreSQLPersistence
from .rules.engine import ObserverRuleEngine
from .rules.factory import build_rule_factory
from .validation.validator import RuleConfigValidator

SERVICE_NAME = "observer_rules"


class ObserverRulesService:
    """Observer Rules service implementation."""

    def __init__(self, config: Optional[ServiceConfig] = None, configure_logs: bool = True):
        self.config = config or get_config(SERVICE_NAME)

        if configure_logs:
            configure_logging(SERVICE_NAME, self.config.log_level)
        self.logger = get_logger(f"{SERVICE_NAME}.service")

        self.metrics = get_metrics_collector(SERVICE_NAME, CollectorRegistry())

        # Initialize components
        self.persistence = PostgreSQLPersistence(
            self.config.postgres_dsn,
            min_size=self.config.postgres_min_pool_size,
            max_size=self.config.postgres_max_pool_size,
            command_timeout=self.config.postgres_command_timeout
        )
        self.geo_objects = GeoObjectRepository(self.persistence)
        self.observers = ObserverRepository(self.persistence)

        self.validator = RuleConfigValidator()
        self.rule_factory = build_rule_factory(self.validator)
        self.rule_engine = ObserverRuleEngine(
            self.geo_objects,
            self.rule_factory,
            self.validator,
            self.observers,
            metrics=self.metrics
        )

    async def start(self):
        """Open the connection pool and, if enabled, the metrics endpoint."""
        await self.persistence.start()

        if self.config.enable_metrics_server:
            self.metrics.start_metrics_server(self.config.metrics_port)

        self.logger.info(
            "Observer rules service started",
            env=self.config.env,
            rules=self.rule_factory.rule_names()
        )

    async def stop(self):
        await self.persistence.stop()
        self.logger.info("Observer rules service stopped")

    async def get_filtered_geo_objects(self, observer: Observer) -> List[GeoObject]:
        set_request_id()
        return await self.rule_engine.get_filtered_geo_objects(observer)

    async def get_filtered_geo_objects_for_token(self, access_token: str) -> List[GeoObject]:
        """Resolve an observer by its access token and filter its map."""
        observer = await self.observers.find_by_access_token(access_token)
        if observer is None:
            self.metrics.record_error("observer_not_found")
            raise ObserverNotFoundError("Observer not found for access token")

        return await self.get_filtered_geo_objects(observer)
