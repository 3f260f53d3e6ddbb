"""Tests for adapting runbooks into grouped steps."""

import json

from nl_to_runbook.adapter import convert_step, find_step, group_steps, to_response
from nl_to_runbook.definitions import LocalMessageAction, StepDefinition
from nl_to_runbook.types import StepMethod, StepStage


class TestConvertStep:
    """Tests for convert_step function."""

    def test_local_message_fills_all_fields(self):
        """Test local message fills all fields."""
        step = StepDefinition(step_number=1, action=LocalMessageAction(message='Processing case {case_id}'))
        converted = convert_step(step, {'case_id': 'X1'})
        assert converted.description == 'Processing case X1'
        assert converted.request_body == 'Processing case X1'
        assert converted.expected_response == 'Processing case X1'
        assert converted.auto_executable is True
        assert converted.method == StepMethod.LOCAL_MESSAGE

    def test_header_check(self, cancel_case):
        """Test header check steps expose the header name and expected value."""
        converted = convert_step(cancel_case.step(1), {})
        assert converted.path == 'Role-Name'
        assert converted.expected_response == 'Production Support'
        assert converted.description == 'Verify Role-Name header'
        assert converted.auto_executable is True
        assert converted.step_type == 'prechecks'

    def test_entity_validation(self, update_status):
        """Test entity validation steps expose the entity name."""
        converted = convert_step(update_status.step(1), {'status': 'pending'})
        assert converted.path == 'status'
        assert converted.description == 'Validate status'

    def test_http_step_resolves_entities(self, cancel_case):
        """Test http step resolves entities."""
        converted = convert_step(cancel_case.step(2), {'case_id': '2025123P6732', 'reason': 'duplicate'})
        assert converted.path == '/api/cases/2025123P6732/cancel'
        assert converted.description == 'Cancel case 2025123P6732'
        body = json.loads(converted.request_body)
        assert body == {'reason': 'duplicate', 'requestedBy': '{api_user}'}

    def test_missing_entity_left_unresolved(self, cancel_case):
        """Test missing entity left unresolved."""
        converted = convert_step(cancel_case.step(2), {})
        assert converted.path == '/api/cases/{case_id}/cancel'

    def test_verification_fields_carried(self, cancel_case):
        """Test verification fields carried."""
        converted = convert_step(cancel_case.step(3), {'case_id': 'X1'})
        assert converted.verification_expected_fields == {'status': 'cancelled'}
        assert converted.verification_required_fields == []
        assert converted.step_response_message == 'Case {case_id} is {status}'

    def test_get_step_has_no_body(self, cancel_case):
        """Test get step has no body."""
        assert convert_step(cancel_case.step(3), {'case_id': 'X1'}).request_body is None


class TestGroupSteps:
    """Tests for group_steps and to_response."""

    def test_groups_by_stage(self, cancel_case):
        """Test steps are grouped by stage in step order."""
        groups = group_steps(cancel_case.steps, {'case_id': 'X1'})
        assert [s.step_number for s in groups.prechecks] == [1]
        assert [s.step_number for s in groups.procedure] == [2]
        assert [s.step_number for s in groups.postchecks] == [3, 4]
        assert [s.step_number for s in groups.rollback] == [5]
        assert [s.step_number for s in groups] == [1, 2, 3, 4, 5]
        assert groups.group(StepStage.ROLLBACK)[0].path == '/api/cases/X1/restore'

    def test_to_response(self, cancel_case):
        """Test building an operational response from a definition."""
        response = to_response(cancel_case, {'case_id': 'X1'})
        assert response.task_id == 'CANCEL_CASE'
        assert response.task_name == 'Cancel Case'
        assert response.downstream_service == 'ap-services'
        assert response.extracted_entities == {'case_id': 'X1'}
        assert response.warnings == ['Cancellation cannot be undone']

    def test_default_downstream_service(self, update_status):
        """Test the default downstream service is used when none is declared."""
        response = to_response(update_status, {}, default_downstream_service='lab-services')
        assert response.downstream_service == 'lab-services'

    def test_find_step(self, cancel_case):
        """Test looking up a converted step by number."""
        assert find_step(cancel_case, {'case_id': 'X1'}, 4).description == 'Notify the lab about X1'
        assert find_step(cancel_case, {}, 99) is None
