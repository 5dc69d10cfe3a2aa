"""
Configuration validation for observer rule sets.

- validator: Structural checks on rule names plus JSON-schema validation
  (with lenient numeric coercion) reporting every violation found.
"""

from .validator import CONFIGURATION_ENVELOPE_SCHEMA, RuleConfigValidator

__all__ = ["CONFIGURATION_ENVELOPE_SCHEMA", "RuleConfigValidator"]
