"""
Unit tests for RuleConfigValidator.
"""

import pytest
from structlog.testing import capture_logs

from service_observer_rules.app.rules.factory import build_rule_factory
from service_observer_rules.app.validation.validator import (
    CONFIGURATION_ENVELOPE_SCHEMA,
    RuleConfigValidator,
    coerce_types,
    format_path,
)


class TestRuleConfigValidator:
    """Test cases for RuleConfigValidator."""

    @pytest.fixture
    def validator(self):
        return RuleConfigValidator()

    @pytest.fixture
    def schema(self, validator):
        return build_rule_factory(validator).build_schema()

    def test_valid_configuration(self, validator, schema):
        config = {
            "time_range": {"start_time": "22:00", "end_time": "06:00", "timezone": "Europe/Paris"},
            "request_limit": {"limit": 5},
            "ObjectIdRule": [1, 2, 3],
            "SideIdRule": [4],
            "time_limit": {"duration_seconds": 600}
        }

        assert validator.validate(config, schema) == []

    def test_persisted_state_is_valid(self, validator, schema):
        config = {
            "request_limit": {
                "limit": 5,
                "_state": {"remaining": 4, "initialized_at": 1000, "last_used_at": 1001}
            }
        }

        assert validator.validate(config, schema) == []

    def test_non_object_configuration(self, validator, schema):
        assert validator.validate(["time_range"], schema) == ["Configuration must be an object"]

    def test_empty_configuration(self, validator, schema):
        errors = validator.validate({}, schema)

        assert errors[0] == "Configuration cannot be empty"
        # The schema pass still runs and reports minProperties
        assert len(errors) == 2
        assert errors[1].startswith("[$]")

    def test_one_error_per_malformed_rule_name(self, validator):
        errors = validator.validate({"1st_rule": {}, "bad-name": {}}, CONFIGURATION_ENVELOPE_SCHEMA)

        assert errors == [
            "Invalid rule name format: 1st_rule",
            "Invalid rule name format: bad-name"
        ]

    def test_empty_rule_name(self, validator):
        errors = validator.validate_structure({"": {}})

        assert errors == ["Rule name must be a non-empty string"]

    def test_schema_error_names_the_rule(self, validator, schema):
        errors = validator.validate({"request_limit": {"limit": 0}}, schema)

        assert len(errors) == 1
        assert errors[0].startswith("[$.request_limit.limit] ")

    def test_every_violation_is_reported(self, validator, schema):
        config = {
            "request_limit": {"limit": 0},
            "time_range": {"start_time": "9am", "end_time": "17:00"}
        }

        errors = validator.validate(config, schema)

        assert len(errors) == 2
        assert errors[0].startswith("[$.request_limit.limit]")
        assert errors[1].startswith("[$.time_range.start_time]")

    def test_missing_required_parameter(self, validator, schema):
        errors = validator.validate({"time_limit": {}}, schema)

        assert len(errors) == 1
        assert errors[0].startswith("[$.time_limit]")
        assert "duration_seconds" in errors[0]

    def test_additional_property_per_key(self, validator, schema):
        config = {"time_range": {"start_time": "09:00", "end_time": "17:00", "colour": "red", "size": 1}}

        errors = validator.validate(config, schema)

        assert errors == [
            "[$.time_range.colour] Additional property 'colour' is not allowed",
            "[$.time_range.size] Additional property 'size' is not allowed"
        ]

    def test_unknown_rule_is_additional_property(self, validator, schema):
        errors = validator.validate({"teleport": {}}, schema)

        assert errors == ["[$.teleport] Additional property 'teleport' is not allowed"]

    def test_unknown_rule_passes_envelope(self, validator):
        assert validator.validate({"teleport": {}}, CONFIGURATION_ENVELOPE_SCHEMA) == []

    def test_numeric_strings_are_coerced(self, validator, schema):
        config = {"request_limit": {"limit": "5"}, "ObjectIdRule": ["1", "2"]}

        assert validator.validate(config, schema) == []
        # Coercion works on a copy
        assert config["request_limit"]["limit"] == "5"

    def test_duplicate_ids_rejected(self, validator, schema):
        errors = validator.validate({"ObjectIdRule": [1, 1]}, schema)

        assert len(errors) == 1
        assert errors[0].startswith("[$.ObjectIdRule] ")

    def test_too_many_ids_rejected(self, validator, schema):
        errors = validator.validate({"SideIdRule": list(range(1, 52))}, schema)

        assert len(errors) == 1
        assert errors[0].startswith("[$.SideIdRule] ")

    def test_item_path_uses_index(self, validator, schema):
        errors = validator.validate({"ObjectIdRule": [1, -2]}, schema)

        assert len(errors) == 1
        assert errors[0].startswith("[$.ObjectIdRule[1]] ")

    def test_invalid_timezone(self, validator, schema):
        config = {"time_range": {"start_time": "09:00", "end_time": "17:00", "timezone": "Mars/Base"}}

        errors = validator.validate(config, schema)

        assert len(errors) == 1
        assert errors[0].startswith("[$.time_range.timezone]")

    def test_failures_are_logged(self, validator, schema):
        with capture_logs() as logs:
            validator.validate({"1bad": {}}, schema)

        events = [entry["event"] for entry in logs]
        assert "Basic rule configuration validation failed" in events
        assert "JSON schema validation failed" in events
        assert all(entry["log_level"] == "warning" for entry in logs)
        assert logs[0]["errors"] == ["Invalid rule name format: 1bad"]
        assert logs[0]["config"] == {"1bad": {}}

    def test_valid_configuration_is_not_logged(self, validator, schema):
        with capture_logs() as logs:
            validator.validate({"ObjectIdRule": [1]}, schema)

        assert logs == []


class TestHelpers:
    """Test cases for validator helpers."""

    def test_format_path(self):
        assert format_path([]) == "$"
        assert format_path(["ObjectIdRule", 0]) == "$.ObjectIdRule[0]"
        assert format_path(["request_limit", "_state", "remaining"]) == "$.request_limit._state.remaining"

    def test_coerce_types(self):
        schema = {
            "type": "object",
            "properties": {
                "count": {"type": "integer"},
                "ratio": {"type": "number"},
                "enabled": {"type": "boolean"},
                "label": {"type": "string"}
            }
        }
        instance = {"count": "3", "ratio": "0.5", "enabled": "true", "label": "7", "extra": "1"}

        assert coerce_types(instance, schema) == {
            "count": 3, "ratio": 0.5, "enabled": True, "label": "7", "extra": "1"
        }

    def test_coerce_types_leaves_garbage(self):
        assert coerce_types("abc", {"type": "integer"}) == "abc"
