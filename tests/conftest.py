"""Shared fixtures for runbook tests."""

import copy

import pytest

from nl_to_runbook.definitions import parse_use_case
from nl_to_runbook.registry import RunbookRegistry


CANCEL_CASE_DOCUMENT = {
    'useCase': {
        'id': 'CANCEL_CASE',
        'name': 'Cancel Case',
        'description': 'Handle case cancellation requests',
        'downstreamService': 'ap-services',
        'exampleQuery': 'cancel case 2025123P6732',
    },
    'classification': {
        'keywords': ['cancel', 'cancellation'],
        'synonyms': {'cancel': ['abort', 'terminate']},
        'requiredEntities': ['case_id'],
    },
    'extraction': {
        'entities': {
            'case_id': {
                'required': True,
                'transform': 'uppercase',
                'patterns': [r'\b(\d{4,}[A-Za-z]?\d+)\b'],
            },
            'reason': {
                'patterns': [r'because\s+(.+)$'],
            },
        },
    },
    'execution': {
        'steps': [
            {
                'stepNumber': 1,
                'stepType': 'prechecks',
                'method': 'HEADER_CHECK',
                'path': 'Role-Name',
                'expectedResponse': 'Production Support',
            },
            {
                'stepNumber': 2,
                'stepType': 'procedure',
                'method': 'POST',
                'path': '/api/cases/{case_id}/cancel',
                'description': 'Cancel case {case_id}',
                'body': {'reason': '{reason}', 'requestedBy': '{api_user}'},
                'stepResponseMessage': 'Case {case_id} cancelled',
                'stepResponseErrorMessage': 'Could not cancel case {case_id}',
            },
            {
                'stepNumber': 3,
                'stepType': 'postcheck',
                'method': 'GET',
                'path': '/api/cases/{case_id}',
                'verification': {'expectedFields': {'status': 'cancelled'}},
                'stepResponseMessage': 'Case {case_id} is {status}',
                'stepResponseErrorMessage': 'Case {case_id} is still {status}',
            },
            {
                'stepNumber': 4,
                'stepType': 'postchecks',
                'method': 'LOCAL_MESSAGE',
                'localMessage': 'Notify the lab about {case_id}',
            },
        ],
    },
    'rollback': {
        'steps': [
            {'stepNumber': 5, 'method': 'PUT', 'path': '/api/cases/{case_id}/restore'},
        ],
    },
    'warnings': ['Cancellation cannot be undone'],
}

UPDATE_STATUS_DOCUMENT = {
    'useCase': {
        'id': 'UPDATE_CASE_STATUS',
        'name': 'Update Case Status',
        'description': 'Move a case to another status',
    },
    'classification': {
        'keywords': ['update status', 'status to'],
        'requiredEntities': ['case_id', 'status'],
    },
    'extraction': {
        'entities': {
            'case_id': {
                'required': True,
                'patterns': [r'\b(\d{4,}[A-Za-z]?\d+)\b'],
            },
            'status': {
                'required': True,
                'transform': 'lowercase',
                'patterns': [r'status\s+to\s+(\w+)'],
                'validation': {'enumValues': ['pending', 'completed', 'on_hold']},
            },
        },
    },
    'execution': {
        'steps': [
            {
                'stepNumber': 1,
                'stepType': 'prechecks',
                'method': 'ENTITY_VALIDATION',
                'path': 'status',
            },
            {
                'stepNumber': 2,
                'stepType': 'procedure',
                'method': 'PATCH',
                'path': '/api/cases/{case_id}/status',
                'body': {'status': '{status}'},
            },
        ],
    },
}


@pytest.fixture
def cancel_case_document():
    return copy.deepcopy(CANCEL_CASE_DOCUMENT)


@pytest.fixture
def update_status_document():
    return copy.deepcopy(UPDATE_STATUS_DOCUMENT)


@pytest.fixture
def cancel_case(cancel_case_document):
    result = parse_use_case(cancel_case_document, source='cancel_case.yaml')
    assert result.ok, result.errors
    return result.definition


@pytest.fixture
def update_status(update_status_document):
    result = parse_use_case(update_status_document, source='update_status.yaml')
    assert result.ok, result.errors
    return result.definition


@pytest.fixture
def registry(cancel_case, update_status):
    return RunbookRegistry.from_definitions([cancel_case, update_status])
