"""
Tests for template graph descriptors: legacy positions, type normalization and
structural warnings.
"""

import pytest
from pydantic import ValidationError

from schemas.process_flow import (
    StepDescriptor,
    ConnectionDescriptor,
    TemplateData,
    StepType,
    ConnectionType,
    validate_template_graph,
)


class TestStepDescriptor:
    def test_reads_position_object(self):
        step = StepDescriptor.model_validate({"id": "s1", "name": "A", "type": "TASK", "position": {"x": 10, "y": 20}})
        assert (step.position.x, step.position.y) == (10, 20)

    def test_falls_back_to_legacy_position_fields(self):
        step = StepDescriptor.model_validate({"id": "s1", "name": "A", "type": "TASK", "positionX": 350, "positionY": 75})
        assert (step.position.x, step.position.y) == (350, 75)

    def test_position_object_wins_over_legacy_fields(self):
        step = StepDescriptor.model_validate({
            "id": "s1", "name": "A", "type": "TASK",
            "position": {"x": 1, "y": 2}, "positionX": 100, "positionY": 200,
        })
        assert (step.position.x, step.position.y) == (1, 2)

    def test_missing_coordinates_default_to_zero(self):
        step = StepDescriptor.model_validate({"id": "s1", "name": "A", "type": "TASK", "position": {"x": 40}})
        assert (step.position.x, step.position.y) == (40, 0)

    def test_no_position_at_all(self):
        step = StepDescriptor.model_validate({"id": "s1", "name": "A"})
        assert (step.position.x, step.position.y) == (0, 0)
        assert step.type == StepType.TASK

    def test_type_is_case_insensitive(self):
        step = StepDescriptor.model_validate({"id": "s1", "name": "A", "type": "parallel_gateway"})
        assert step.type == StepType.PARALLEL_GATEWAY

    def test_unknown_type_is_rejected(self):
        with pytest.raises(ValidationError):
            StepDescriptor.model_validate({"id": "s1", "name": "A", "type": "SWIMLANE"})

    def test_null_description_and_metadata(self):
        step = StepDescriptor.model_validate({"id": "s1", "name": "A", "description": None, "metadata": None})
        assert step.description == ""
        assert step.metadata == {}


class TestConnectionDescriptor:
    def test_camel_case_keys(self):
        conn = ConnectionDescriptor.model_validate({"sourceStepId": "a", "targetStepId": "b", "label": "Yes", "type": "conditional"})
        assert (conn.source_step_id, conn.target_step_id) == ("a", "b")
        assert conn.type == ConnectionType.CONDITIONAL

    def test_snake_case_keys(self):
        conn = ConnectionDescriptor.model_validate({"source_step_id": "a", "target_step_id": "b"})
        assert (conn.source_step_id, conn.target_step_id) == ("a", "b")

    def test_missing_type_defaults(self):
        conn = ConnectionDescriptor.model_validate({"sourceStepId": "a", "targetStepId": "b", "type": None})
        assert conn.type == ConnectionType.DEFAULT


def test_storage_format_uses_camel_case():
    data = TemplateData.model_validate({
        "steps": [{"id": "s1", "name": "A", "positionX": 5, "positionY": 6}],
        "connections": [{"sourceStepId": "s1", "targetStepId": "s1"}],
    })
    stored = data.to_storage()

    assert stored["steps"][0]["position"] == {"x": 5, "y": 6}
    assert "positionX" not in stored["steps"][0]
    assert stored["connections"][0]["sourceStepId"] == "s1"
    assert stored["connections"][0]["type"] == "DEFAULT"


class TestValidateTemplateGraph:
    def test_clean_graph_has_no_warnings(self):
        data = TemplateData.model_validate({
            "steps": [{"id": "s1", "name": "A"}, {"id": "s2", "name": "B"}],
            "connections": [{"sourceStepId": "s1", "targetStepId": "s2"}],
        })
        assert validate_template_graph(data) == []

    def test_reports_dangling_connections(self):
        data = TemplateData.model_validate({
            "steps": [{"id": "s1", "name": "A"}, {"id": "s2", "name": "B"}],
            "connections": [{"sourceStepId": "s2", "targetStepId": "s9"}, {"sourceStepId": "s0", "targetStepId": "s1"}],
        })
        warnings = validate_template_graph(data)
        assert "Connection target 's9' not found" in warnings
        assert "Connection source 's0' not found" in warnings

    def test_reports_duplicate_step_ids(self):
        data = TemplateData.model_validate({
            "steps": [{"id": "s1", "name": "A"}, {"id": "s1", "name": "B"}],
        })
        assert validate_template_graph(data) == ["Step id 's1' at index 1 duplicates index 0"]
