"""
Rule factory: the process-wide registry of rule implementations.

Built once at startup from the known rules, indexed by name and ordered
by priority. Turns raw observer configuration into prioritised
``RuleApplicationUnit`` lists.
"""

import re
from typing import Any, Dict, Iterable, List, Optional

from shared.errors import InvalidRuleConfiguration, RuleRegistrationError
from shared.logging import get_logger

from ..validation.validator import RuleConfigValidator
from .allow_list import ObjectIdRule, SideIdRule
from .base import BaseObserverRule, Clock
from .budget import RequestLimitRule, TimeLimitRule
from .models import RULE_NAME_PATTERN, RuleApplicationUnit, RuleConfig
from .time_window import TimeRangeRule

_UNSAFE_NAME_CHARS = re.compile(r"[^A-Za-z0-9_]")


class RuleFactory:
    """Registry of rule singletons plus config-to-rule materialisation."""

    def __init__(self, rules: Iterable[BaseObserverRule], validator: RuleConfigValidator, logger=None):
        self.validator = validator
        self.logger = logger or get_logger("observer_rules.rule_factory")
        self._rules: Dict[str, BaseObserverRule] = {}
        self._schema: Optional[Dict[str, Any]] = None
        self._index_rules(rules)

    def _index_rules(self, rules: Iterable[BaseObserverRule]) -> None:
        indexed: Dict[str, BaseObserverRule] = {}
        for rule in rules:
            name = rule.name
            if not isinstance(name, str) or not RULE_NAME_PATTERN.match(name):
                raise RuleRegistrationError(
                    f"Invalid rule name: {name!r}",
                    {"rule": type(rule).__name__}
                )
            if name in indexed:
                raise RuleRegistrationError(
                    f"Duplicate rule name: {name}",
                    {"rule": type(rule).__name__}
                )
            indexed[name] = rule

        # Stable sort keeps registration order among equal priorities
        self._rules = dict(sorted(indexed.items(), key=lambda item: item[1].priority))

        self.logger.info("Rules indexed", count=len(self._rules), rules=list(self._rules))

    def get_rule(self, rule_name: str) -> Optional[BaseObserverRule]:
        """Look up a rule by name; ``None`` (and a warning) when unknown."""
        sanitized = self._sanitize_rule_name(rule_name)

        rule = self._rules.get(sanitized)
        if rule is None:
            self.logger.warning(
                "Rule not found",
                requested=rule_name,
                sanitized=sanitized,
                available=list(self._rules)
            )
        return rule

    def has_rule(self, rule_name: str) -> bool:
        try:
            sanitized = self._sanitize_rule_name(rule_name)
        except ValueError:
            return False
        return sanitized in self._rules

    def get_all_rules(self) -> List[BaseObserverRule]:
        """All registered rules, lowest priority value first."""
        return list(self._rules.values())

    def rule_names(self) -> List[str]:
        return list(self._rules)

    def build_schema(self, names: Optional[Iterable[str]] = None) -> Dict[str, Any]:
        """Aggregate schema with one property per rule.

        With ``names`` the schema covers only those rules (and requires
        them); the full schema is built once and cached.
        """
        if names is None:
            if self._schema is None:
                self._schema = self._aggregate_schema(self._rules)
                self.logger.debug(
                    "Built schema from available rules",
                    rules_count=len(self._rules),
                    rule_names=list(self._rules)
                )
            return self._schema

        selected = {name: self._rules[name] for name in names if name in self._rules}
        schema = self._aggregate_schema(selected)
        schema["required"] = list(selected)
        return schema

    def create_from_config(self, config: Dict[str, Any]) -> List[RuleApplicationUnit]:
        """Validate ``config`` and resolve it into units ordered by priority.

        This is the strict check: the aggregate schema forbids additional
        properties, so an unregistered rule name is an error here. The engine
        is lenient and skips such names instead.

        Raises:
            InvalidRuleConfiguration: with every validation message when the
                configuration does not satisfy the aggregate schema.
        """
        errors = self.validator.validate(config, self.build_schema())
        if errors:
            raise InvalidRuleConfiguration(errors)

        units = []
        for rule_name, raw_config in config.items():
            rule = self._rules[rule_name]
            units.append(RuleApplicationUnit(
                rule=rule,
                config=RuleConfig.from_raw(raw_config),
                name=rule_name,
                priority=rule.priority
            ))

        units.sort(key=lambda unit: unit.priority)

        self.logger.info(
            "Rules created from configuration",
            rules_count=len(units),
            rule_names=[unit.name for unit in units]
        )
        return units

    @staticmethod
    def _aggregate_schema(rules: Dict[str, BaseObserverRule]) -> Dict[str, Any]:
        return {
            "type": "object",
            "properties": {name: rule.config_schema() for name, rule in rules.items()},
            "additionalProperties": False,
            "minProperties": 1
        }

    @staticmethod
    def _sanitize_rule_name(rule_name: str) -> str:
        sanitized = _UNSAFE_NAME_CHARS.sub("", str(rule_name))

        if not sanitized:
            raise ValueError(f"Invalid rule name after sanitization: {rule_name}")

        if not sanitized[0].isalpha():
            raise ValueError(f"Rule name must start with a letter: {sanitized}")

        return sanitized


def default_rules(clock: Optional[Clock] = None) -> List[BaseObserverRule]:
    """One instance of every built-in rule."""
    return [
        TimeRangeRule(clock),
        TimeLimitRule(clock),
        RequestLimitRule(clock),
        ObjectIdRule(clock),
        SideIdRule(clock),
    ]


def build_rule_factory(validator: Optional[RuleConfigValidator] = None, clock: Optional[Clock] = None) -> RuleFactory:
    """Wire the built-in rules into a factory."""
    return RuleFactory(default_rules(clock), validator or RuleConfigValidator())
