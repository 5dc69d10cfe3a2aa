"""
Rule configuration validator.

Checks a raw observer configuration in two passes that always both run:
a structural pass over the rule names and a JSON-schema pass over the
whole document. Every violation is reported; nothing is raised.
"""

import copy
import re
from typing import Any, Dict, List, Optional

from jsonschema import Draft7Validator

from shared.logging import get_logger

from ..rules.models import RULE_NAME_PATTERN


# Whole-configuration shape the engine checks before resolving rules
CONFIGURATION_ENVELOPE_SCHEMA: Dict[str, Any] = {
    "type": "object",
    "minProperties": 1
}

_INTEGER_RE = re.compile(r"^\s*[-+]?\d+\s*$")
_NUMBER_RE = re.compile(r"^\s*[-+]?(\d+(\.\d*)?|\.\d+)([eE][-+]?\d+)?\s*$")


class RuleConfigValidator:
    """Validates rule configurations against a schema supplied by the caller."""

    def __init__(self):
        self.logger = get_logger("observer_rules.validation")

    def validate(self, config: Any, schema: Dict[str, Any]) -> List[str]:
        """Return every violation found in ``config`` (empty when valid)."""
        structural_errors = self.validate_structure(config)
        if structural_errors:
            self._log_validation_failure(
                "Basic rule configuration validation failed", structural_errors, config
            )

        schema_errors: List[str] = []
        if isinstance(config, dict):
            schema_errors = self.validate_against_schema(config, schema)
            if schema_errors:
                self._log_validation_failure("JSON schema validation failed", schema_errors, config)

        return structural_errors + schema_errors

    def validate_structure(self, config: Any) -> List[str]:
        """Check the configuration is a non-empty mapping of valid rule names."""
        if not isinstance(config, dict):
            return ["Configuration must be an object"]

        if not config:
            return ["Configuration cannot be empty"]

        errors = []
        for rule_name in config:
            if not isinstance(rule_name, str) or not rule_name:
                errors.append("Rule name must be a non-empty string")
                continue

            if not RULE_NAME_PATTERN.match(rule_name):
                errors.append(f"Invalid rule name format: {rule_name}")

        return errors

    def validate_against_schema(self, config: Dict[str, Any], schema: Dict[str, Any]) -> List[str]:
        """Validate a coerced copy of ``config``; one message per violation."""
        instance = coerce_types(copy.deepcopy(config), schema)
        validator = Draft7Validator(schema)

        errors = []
        for error in sorted(validator.iter_errors(instance), key=lambda e: list(map(str, e.absolute_path))):
            path = list(error.absolute_path)
            if error.validator == "additionalProperties" and isinstance(error.instance, dict):
                for extra in _unexpected_properties(error.instance, error.schema):
                    errors.append(
                        f"[{format_path(path + [extra])}] Additional property '{extra}' is not allowed"
                    )
                continue
            errors.append(f"[{format_path(path)}] {error.message}")

        return errors

    def _log_validation_failure(self, message: str, errors: List[str], config: Any) -> None:
        self.logger.warning(message, errors=errors, config=config)


def format_path(path: List[Any]) -> str:
    """Render a JSON path as ``$.rule[0].field``."""
    rendered = "$"
    for part in path:
        if isinstance(part, int):
            rendered += f"[{part}]"
        else:
            rendered += f".{part}"
    return rendered


def coerce_types(instance: Any, schema: Optional[Dict[str, Any]]) -> Any:
    """Coerce primitive mismatches the way a lenient validator would.

    Numeric strings become integers or numbers and ``"true"``/``"false"``
    become booleans where the schema asks for them. Anything else is left
    for the validator to report.
    """
    if not isinstance(schema, dict):
        return instance

    expected = schema.get("type")
    expected_types = expected if isinstance(expected, list) else [expected]

    if isinstance(instance, str):
        if "integer" in expected_types and _INTEGER_RE.match(instance):
            return int(instance)
        if "number" in expected_types and _NUMBER_RE.match(instance):
            number = float(instance)
            return int(number) if number.is_integer() and "." not in instance else number
        if "boolean" in expected_types and instance in ("true", "false"):
            return instance == "true"
        return instance

    if isinstance(instance, dict):
        properties = schema.get("properties") or {}
        for key, value in instance.items():
            if key in properties:
                instance[key] = coerce_types(value, properties[key])
        return instance

    if isinstance(instance, list):
        items = schema.get("items")
        if isinstance(items, dict):
            return [coerce_types(item, items) for item in instance]
        return instance

    return instance


def _unexpected_properties(instance: Dict[str, Any], schema: Dict[str, Any]) -> List[str]:
    properties = schema.get("properties") or {}
    patterns = [re.compile(p) for p in (schema.get("patternProperties") or {})]
    return [
        key for key in instance
        if key not in properties and not any(p.search(key) for p in patterns)
    ]
