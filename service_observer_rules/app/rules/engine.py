"""
Rule evaluation engine for the Observer Rules service.

One call to ``get_filtered_geo_objects`` walks a fixed sequence:

1. no rules configured -> default active objects of the map;
2. whole-configuration check fails -> log and fall back to the default;
3. resolve each configured rule inside its own failure boundary, advancing
   the state of stateful rules;
4. persist changed state (refresh, write, commit; rollback and raise on
   failure);
5. query phase: fold every rule's predicate into one query;
6. memory phase: execute it and fold every rule's in-memory filter.
"""

from typing import Any, Dict, List, Optional, Tuple

from shared.errors import InvalidRuleConfiguration, StatePersistenceError
from shared.logging import get_logger, observer_log_context
from shared.metrics import MetricsCollector, get_metrics_collector

from ..models import GeoObject, Observer
from ..validation.validator import CONFIGURATION_ENVELOPE_SCHEMA, RuleConfigValidator
from .base import StatefulObserverRule
from .factory import RuleFactory
from .models import RuleApplicationUnit, RuleConfig


class ObserverRuleEngine:
    """Applies an observer's configured rules to the objects of its map."""

    def __init__(
        self,
        geo_objects,
        rule_factory: RuleFactory,
        validator: RuleConfigValidator,
        observers,
        metrics: Optional[MetricsCollector] = None,
    ):
        self.geo_objects = geo_objects
        self.rule_factory = rule_factory
        self.validator = validator
        self.observers = observers
        self.metrics = metrics or get_metrics_collector("observer_rules")
        self.logger = get_logger("observer_rules.engine")

    async def get_filtered_geo_objects(self, observer: Observer) -> List[GeoObject]:
        """Geo-objects the observer may see right now."""
        rules_config = observer.rules

        # No rules configured, use default behavior
        if not rules_config:
            self.metrics.increment_counter("observer_filter_requests_total", outcome="no_rules")
            return await self._get_default_geo_objects(observer)

        with observer_log_context(observer.id, observer.map_id):
            with self.metrics.time_operation("observer_filter_duration_seconds"):
                return await self._filter_with_rules(observer, rules_config)

    async def _filter_with_rules(self, observer: Observer, rules_config: Any) -> List[GeoObject]:
        try:
            units, updated_config, state_changed = self._prepare_units(observer, rules_config)
        except InvalidRuleConfiguration as e:
            self._log_validation_error(observer, e)
            self.metrics.increment_counter("observer_filter_requests_total", outcome="invalid_config")
            return await self._get_default_geo_objects(observer)

        if state_changed:
            await self._persist_rules(observer, updated_config)

        geo_objects = await self._apply_units(observer, units)

        self.metrics.increment_counter("observer_filter_requests_total", outcome="filtered")
        return geo_objects

    async def _get_default_geo_objects(self, observer: Observer) -> List[GeoObject]:
        return await self.geo_objects.find_active_by_map(observer.map_id)

    def _prepare_units(
        self, observer: Observer, rules_config: Any
    ) -> Tuple[List[RuleApplicationUnit], Dict[str, Any], bool]:
        """Resolve configured rules and advance the state of stateful ones.

        Returns the units ordered by priority, the configuration to persist
        and whether any rule state changed.

        Raises:
            InvalidRuleConfiguration: when the configuration as a whole is
                malformed (not an object, empty, bad rule names).
        """
        errors = self.validator.validate(rules_config, CONFIGURATION_ENVELOPE_SCHEMA)
        if errors:
            raise InvalidRuleConfiguration(errors)

        units: List[RuleApplicationUnit] = []
        updated_config = dict(rules_config)
        state_changed = False

        for rule_name, raw_config in rules_config.items():
            try:
                resolved = self._prepare_unit(observer, rule_name, raw_config)
            except Exception as e:
                self.logger.error(
                    "Failed to process rule, skipping it",
                    observer_id=observer.id,
                    observer=observer.name,
                    rule_name=rule_name,
                    error=str(e),
                    error_type=type(e).__name__
                )
                self.metrics.increment_counter("rule_processing_failures_total", rule=rule_name)
                continue

            if resolved is None:
                continue

            unit, persisted_slice = resolved
            units.append(unit)
            if persisted_slice is not None:
                updated_config[rule_name] = persisted_slice
                state_changed = True

        units.sort(key=lambda u: u.priority)

        self.logger.debug(
            "Rules prepared",
            observer_id=observer.id,
            observer=observer.name,
            rules_count=len(units),
            rule_names=[u.name for u in units],
            state_changed=state_changed
        )

        return units, updated_config, state_changed

    def _prepare_unit(
        self, observer: Observer, rule_name: str, raw_config: Any
    ) -> Optional[Tuple[RuleApplicationUnit, Optional[Any]]]:
        """Build one unit; the second item is the slice to persist, if any."""
        rule = self.rule_factory.get_rule(rule_name)
        if rule is None:
            self.logger.warning(
                "Configured rule is not registered, skipping it",
                observer_id=observer.id,
                observer=observer.name,
                rule_name=rule_name
            )
            return None

        # Stored state must satisfy the schema before it is trusted or advanced
        self._validate_rule_config(rule_name, raw_config)

        config = RuleConfig.from_raw(raw_config)
        persisted_slice = None

        if isinstance(rule, StatefulObserverRule):
            changed = False
            if not config.has_state:
                config = config.with_state(rule.initialize_state(config))
                changed = True
                self.logger.info(
                    "Rule state initialized",
                    observer_id=observer.id,
                    rule_name=rule_name
                )

            next_state = rule.update_state(config)
            if next_state != config.state:
                changed = True

            if changed:
                persisted_slice = config.with_state(next_state).to_raw()
                self._validate_rule_config(rule_name, persisted_slice)

        # Filtering sees the state as it was when this call started
        unit = RuleApplicationUnit(rule=rule, config=config, name=rule_name, priority=rule.priority)
        return unit, persisted_slice

    def _validate_rule_config(self, rule_name: str, raw_config: Any) -> None:
        schema = self.rule_factory.build_schema([rule_name])
        errors = self.validator.validate_against_schema({rule_name: raw_config}, schema)
        if errors:
            raise InvalidRuleConfiguration(errors, f"Invalid configuration for rule {rule_name}")

    async def _persist_rules(self, observer: Observer, updated_config: Dict[str, Any]) -> None:
        """Write updated rule state back onto the observer.

        Raises:
            StatePersistenceError: after rolling back, when any step fails.
        """
        transaction = None
        try:
            transaction = await self.observers.begin_transaction()
            await transaction.refresh(observer)
            observer.rules = updated_config
            await transaction.flush(observer)
            await transaction.commit()
        except Exception as e:
            if transaction is not None:
                await transaction.rollback()
            self.logger.error(
                "Failed to persist rule state",
                observer_id=observer.id,
                observer=observer.name,
                error=str(e),
                error_type=type(e).__name__
            )
            self.metrics.increment_counter("rule_state_persist_total", status="failed")
            raise StatePersistenceError(
                "Failed to persist rule state",
                {"observer_id": observer.id, "error": str(e)}
            ) from e

        self.metrics.increment_counter("rule_state_persist_total", status="committed")
        self.logger.debug("Rule state persisted", observer_id=observer.id, observer=observer.name)

    async def _apply_units(self, observer: Observer, units: List[RuleApplicationUnit]) -> List[GeoObject]:
        # Query phase
        query = self.geo_objects.active_on_map(observer.map_id)
        for unit in units:
            query = unit.rule.apply_to_query(query, unit.config)

        geo_objects = await query.execute()

        self.logger.debug(
            "SQL phase completed",
            observer_id=observer.id,
            observer=observer.name,
            objects_after_sql=len(geo_objects),
            applied_rules=len(units)
        )

        # Memory phase
        for unit in units:
            geo_objects = unit.rule.apply_to_objects(geo_objects, unit.config)

        self.logger.info(
            "Rules applied successfully",
            observer_id=observer.id,
            observer=observer.name,
            final_objects_count=len(geo_objects),
            rules_applied=len(units)
        )

        return geo_objects

    def _log_validation_error(self, observer: Observer, exception: InvalidRuleConfiguration) -> None:
        self.logger.error(
            "Invalid rule configuration, using default behavior",
            observer_id=observer.id,
            observer=observer.name,
            validation_errors=exception.validation_errors
        )

    def get_engine_stats(self) -> Dict[str, Any]:
        """Get engine statistics."""
        rules = self.rule_factory.get_all_rules()
        return {
            "total_rules": len(rules),
            "stateful_rules": [r.name for r in rules if r.is_stateful],
            "rules_by_priority": [(r.name, r.priority) for r in rules],
        }
