"""Unit tests for schema-driven reference resolution."""

from __future__ import annotations

import json

import pytest

from connector_bridge.configuration.mapping_table import MappingTable
from connector_bridge.configuration.references import (
    ArgumentReference,
    ArrayReference,
    Direction,
    ExpressionReference,
    NestedReference,
    SimpleReference,
    TypedTargetReference,
    resolve_references,
)
from connector_bridge.resources import EntityType


@pytest.fixture
def table() -> MappingTable:
    """Table with a few entries per type."""
    table = MappingTable()
    table[EntityType.SOURCE].add(4, "petstore-api")
    table[EntityType.MAPPING].add(3, "pet-mapping")
    table[EntityType.MAPPING].add(8, "address-mapping")
    table[EntityType.RULE].add(5, "rule-a")
    table[EntityType.RULE].add(7, "rule-b")
    table[EntityType.REGISTER].add(12, "reg-a")
    table[EntityType.SCHEMA].add(34, "sch-b")
    table[EntityType.SYNCHRONIZATION].add(2, "pet-sync")
    table[EntityType.ENDPOINT].add(6, "pets-endpoint")
    table[EntityType.JOB].add(9, "nightly-job")
    return table


class TestSimpleReference:
    """Tests for SimpleReference."""

    @pytest.mark.unit
    def test_round_trip(self, table: MappingTable) -> None:
        """An id should become a slug on export and come back on import."""
        ref = SimpleReference("inputMapping", EntityType.MAPPING)
        record = {"inputMapping": "3"}

        ref.apply(record, table, Direction.EXPORT)
        assert record["inputMapping"] == "pet-mapping"

        ref.apply(record, table, Direction.IMPORT)
        assert record["inputMapping"] == 3

    @pytest.mark.unit
    def test_unresolved_is_unchanged(self, table: MappingTable) -> None:
        """A reference with no table entry should be left as it is."""
        ref = SimpleReference("inputMapping", EntityType.MAPPING)
        record = {"inputMapping": "42"}
        ref.apply(record, table, Direction.EXPORT)
        assert record == {"inputMapping": "42"}

    @pytest.mark.unit
    def test_missing_field_is_not_added(self, table: MappingTable) -> None:
        """Absent or empty fields should stay absent or empty."""
        ref = SimpleReference("outputMapping", EntityType.MAPPING)
        record: dict = {"outputMapping": None}
        ref.apply(record, table, Direction.EXPORT)
        assert record == {"outputMapping": None}

        empty: dict = {}
        ref.apply(empty, table, Direction.EXPORT)
        assert empty == {}


class TestTypedTargetReference:
    """Tests for TypedTargetReference."""

    @pytest.fixture
    def ref(self) -> TypedTargetReference:
        return TypedTargetReference("targetId", "targetType")

    @pytest.mark.unit
    def test_composite_split_and_join(self, ref: TypedTargetReference, table: MappingTable) -> None:
        """register/schema ids should be translated half by half."""
        record = {"targetType": "register/schema", "targetId": "12/34"}

        ref.apply(record, table, Direction.EXPORT)
        assert record["targetId"] == "reg-a/sch-b"

        ref.apply(record, table, Direction.IMPORT)
        assert record["targetId"] == "12/34"

    @pytest.mark.unit
    def test_composite_partial_resolution(
        self, ref: TypedTargetReference, table: MappingTable
    ) -> None:
        """An unknown half should be kept while the other is translated."""
        record = {"targetType": "register/schema", "targetId": "12/99"}
        ref.apply(record, table, Direction.EXPORT)
        assert record["targetId"] == "reg-a/99"

    @pytest.mark.unit
    def test_malformed_composite_passes_through(
        self, ref: TypedTargetReference, table: MappingTable
    ) -> None:
        """A register/schema value without a slash should not be touched."""
        record = {"targetType": "register/schema", "targetId": "12"}
        ref.apply(record, table, Direction.EXPORT)
        assert record["targetId"] == "12"

    @pytest.mark.unit
    @pytest.mark.parametrize("target_type", ["api", "database"])
    def test_source_targets(
        self, ref: TypedTargetReference, table: MappingTable, target_type: str
    ) -> None:
        """api and database targets should resolve through sources."""
        record = {"targetType": target_type, "targetId": "4"}
        ref.apply(record, table, Direction.EXPORT)
        assert record["targetId"] == "petstore-api"

    @pytest.mark.unit
    def test_other_target_types_pass_through(
        self, ref: TypedTargetReference, table: MappingTable
    ) -> None:
        """Target types without a rule should be left alone."""
        record = {"targetType": "synchronization", "targetId": "4"}
        ref.apply(record, table, Direction.EXPORT)
        assert record["targetId"] == "4"


class TestArrayReference:
    """Tests for ArrayReference."""

    @pytest.mark.unit
    def test_rule_lists_drop_unresolved(self, table: MappingTable) -> None:
        """Endpoint rule lists should drop entries without a table entry."""
        ref = ArrayReference("rules", EntityType.RULE, drop_unresolved=True)
        record = {"rules": [5, 7, 99]}

        ref.apply(record, table, Direction.EXPORT)
        assert record["rules"] == ["rule-a", "rule-b"]

        record["rules"].append("missing-rule")
        ref.apply(record, table, Direction.IMPORT)
        assert record["rules"] == [5, 7]

    @pytest.mark.unit
    def test_identifier_lists_pass_through_other_entries(self, table: MappingTable) -> None:
        """Non-identifier entries should survive export unchanged."""
        ref = ArrayReference("actions", EntityType.RULE, identifiers_only=True)
        record = {"actions": [5, "custom-action", "99"]}

        ref.apply(record, table, Direction.EXPORT)
        assert record["actions"] == ["rule-a", "custom-action", "99"]

        ref.apply(record, table, Direction.IMPORT)
        assert record["actions"] == [5, "custom-action", "99"]

    @pytest.mark.unit
    def test_non_list_values_are_ignored(self, table: MappingTable) -> None:
        """Dict-shaped values such as JSON logic conditions should not change."""
        ref = ArrayReference("conditions", EntityType.RULE, identifiers_only=True)
        record = {"conditions": {"==": [1, 1]}}
        ref.apply(record, table, Direction.EXPORT)
        assert record["conditions"] == {"==": [1, 1]}


class TestNestedReference:
    """Tests for NestedReference."""

    @pytest.mark.unit
    def test_keys_by_convention(self, table: MappingTable) -> None:
        """Type-named keys and <type>Id keys should be resolved at any depth."""
        ref = NestedReference("configuration")
        record = {
            "configuration": {
                "mapping": 3,
                "source": 4,
                "mappingId": 8,
                "deep": {"list": [{"endpointId": 6}], "jobId": 9},
                "schema": "34",
                "other": 4,
                "SourceId": 4,
            }
        }

        discovered = ref.apply(record, table, Direction.EXPORT)

        assert record["configuration"] == {
            "mapping": "pet-mapping",
            "source": "petstore-api",
            "mappingId": "address-mapping",
            "deep": {"list": [{"endpointId": "pets-endpoint"}], "jobId": "nightly-job"},
            "schema": "sch-b",
            "other": 4,
            "SourceId": 4,
        }
        assert discovered == [3, 8]

    @pytest.mark.unit
    def test_import_reverses_and_reports_nothing(self, table: MappingTable) -> None:
        """Import should restore ids without reporting discoveries."""
        ref = NestedReference("configuration")
        record = {"configuration": {"mapping": "pet-mapping", "sourceId": "unknown"}}

        discovered = ref.apply(record, table, Direction.IMPORT)

        assert record["configuration"] == {"mapping": 3, "sourceId": "unknown"}
        assert discovered == []

    @pytest.mark.unit
    def test_unresolved_mapping_is_not_discovered(self, table: MappingTable) -> None:
        """Only resolved mapping references should be reported."""
        ref = NestedReference("configuration")
        record = {"configuration": {"mapping": 404}}
        assert ref.apply(record, table, Direction.EXPORT) == []
        assert record["configuration"] == {"mapping": 404}

    @pytest.mark.unit
    @pytest.mark.parametrize(
        ("direction", "before", "after"),
        [
            (
                Direction.EXPORT,
                {"mapping": 3, "jobId": 9},
                {"mapping": "pet-mapping", "jobId": "nightly-job"},
            ),
            (
                Direction.IMPORT,
                {"mapping": "pet-mapping", "jobId": "nightly-job"},
                {"mapping": 3, "jobId": 9},
            ),
        ],
    )
    def test_scalar_and_mixed_lists(
        self, table: MappingTable, direction: Direction, before: dict, after: dict
    ) -> None:
        """Plain list entries should pass through while keyed entries resolve."""
        ref = NestedReference("configuration")
        record = {
            "configuration": {
                "mapping": before["mapping"],
                "fields": ["name", "id", 3],
                "steps": ["start", {"jobId": before["jobId"]}, 4, None, [5, "x"]],
            }
        }

        ref.apply(record, table, direction)

        assert record["configuration"] == {
            "mapping": after["mapping"],
            "fields": ["name", "id", 3],
            "steps": ["start", {"jobId": after["jobId"]}, 4, None, [5, "x"]],
        }

    @pytest.mark.unit
    def test_top_level_list(self, table: MappingTable) -> None:
        ref = NestedReference("configuration")
        record = {"configuration": ["a", {"sourceId": 4}]}

        ref.apply(record, table, Direction.EXPORT)

        assert record["configuration"] == ["a", {"sourceId": "petstore-api"}]


class TestArgumentReference:
    """Tests for ArgumentReference."""

    @pytest.mark.unit
    def test_dict_arguments(self, table: MappingTable) -> None:
        """Known argument keys should be translated, others kept."""
        ref = ArgumentReference("arguments")
        record = {"arguments": {"synchronizationId": 2, "endpointId": 6, "sourceId": 4, "x": 1}}

        ref.apply(record, table, Direction.EXPORT)

        assert record["arguments"] == {
            "synchronizationId": "pet-sync",
            "endpointId": "pets-endpoint",
            "sourceId": "petstore-api",
            "x": 1,
        }

    @pytest.mark.unit
    def test_json_string_arguments(self, table: MappingTable) -> None:
        """JSON string arguments should stay JSON strings."""
        ref = ArgumentReference("arguments")
        record = {"arguments": json.dumps({"synchronizationId": "pet-sync"})}

        ref.apply(record, table, Direction.IMPORT)

        assert isinstance(record["arguments"], str)
        assert json.loads(record["arguments"]) == {"synchronizationId": 2}

    @pytest.mark.unit
    def test_invalid_json_is_left_alone(self, table: MappingTable) -> None:
        """Unparseable argument strings should not raise."""
        ref = ArgumentReference("arguments")
        record = {"arguments": "not json"}
        ref.apply(record, table, Direction.EXPORT)
        assert record["arguments"] == "not json"


class TestExpressionReference:
    """Tests for ExpressionReference."""

    @pytest.mark.unit
    def test_calls_are_discovered_not_rewritten(self, table: MappingTable) -> None:
        """By default calls are reported but the body stays as it is."""
        ref = ExpressionReference("mapping")
        body = {"a": "{{ executeMapping(8, x) }}", "b": "{{ executeMapping('pet-mapping') }}"}
        record = {"mapping": dict(body)}

        discovered = ref.apply(record, table, Direction.EXPORT)

        assert discovered == [8, 3]
        assert record["mapping"] == body

    @pytest.mark.unit
    def test_rewrite_round_trip(self, table: MappingTable) -> None:
        """With rewriting enabled ids become slugs and come back."""
        ref = ExpressionReference("mapping", rewrite=True)
        record = {"mapping": {"a": "{{ executeMapping(8, x) }}"}}

        ref.apply(record, table, Direction.EXPORT)
        assert record["mapping"] == {"a": '{{ executeMapping("address-mapping", x) }}'}

        ref.apply(record, table, Direction.IMPORT)
        assert record["mapping"] == {"a": "{{ executeMapping(8, x) }}"}


class TestResolveReferences:
    """Tests for resolve_references."""

    @pytest.mark.unit
    def test_discoveries_are_deduplicated(self, table: MappingTable) -> None:
        """Mapping ids reported by several fields should appear once."""
        schema = [NestedReference("configuration"), ExpressionReference("body")]
        record = {
            "configuration": {"mapping": 8},
            "body": {"x": "{{ executeMapping(8) }}", "y": "{{ executeMapping(3) }}"},
        }

        assert resolve_references(record, schema, table, Direction.EXPORT) == [8, 3]
