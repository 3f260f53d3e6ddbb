"""
Verification of downstream responses and step response messages.
"""

import json
import logging
from dataclasses import dataclass, field
from typing import Any, Dict, Mapping, Optional, Sequence, Tuple

from .templates import resolve_placeholders
from .types import RunbookStep

logger = logging.getLogger(__name__)


@dataclass
class VerificationOutcome:
    """Whether a response passed verification, and its values for templates."""
    passed: bool
    fields: Dict[str, str] = field(default_factory=dict)


def stringify(value: Any) -> Optional[str]:
    """Text form of a JSON scalar, None for objects, arrays and null."""
    if isinstance(value, bool):
        return 'true' if value else 'false'
    if isinstance(value, (int, float, str)):
        return str(value)
    return None


def values_match(actual: Any, expected: Any) -> bool:
    """Case-insensitive comparison of two scalar values."""
    actual_text = stringify(actual)
    if actual_text is None or expected is None:
        return False
    return actual_text.lower() == str(expected).lower()


def _parse_body(body: str) -> Tuple[Optional[str], Any]:
    """
    Classify a response body.

    Returns ("object", dict), ("text", str) or (None, None) when the body
    is an array, null, or something that looks like broken JSON.
    """
    try:
        parsed = json.loads(body)
    except ValueError:
        trimmed = body.strip()
        if not trimmed or trimmed.startswith('{') or trimmed.startswith('['):
            logger.debug(f"Response body appears to be invalid JSON: {body}")
            return None, None
        if len(trimmed) >= 2 and trimmed.startswith('"') and trimmed.endswith('"'):
            trimmed = trimmed[1:-1]
        return 'text', trimmed

    if isinstance(parsed, dict):
        return 'object', parsed
    if isinstance(parsed, str):
        return 'text', parsed
    if isinstance(parsed, (int, float)) and not isinstance(parsed, bool):
        return 'text', str(parsed)
    return None, None


def verify_response(
    body: Optional[str],
    expected_fields: Optional[Mapping[str, str]],
    required_fields: Optional[Sequence[str]]
) -> Optional[VerificationOutcome]:
    """
    Check a response body against expected and required fields.

    JSON objects must contain every required field, and every expected field
    must equal its expected value (case-insensitive). A plain-text body is
    compared against the first expected field. Returns None when the body
    cannot be verified at all.
    """
    if not body:
        return None

    kind, payload = _parse_body(body)
    expected_fields = expected_fields or {}

    if kind == 'text':
        if expected_fields:
            field_name, expected = next(iter(expected_fields.items()))
            fields = {field_name: payload, 'statusString': payload}
            if not values_match(payload, expected):
                logger.warning(f"Plain string mismatch: expected '{expected}', got '{payload}'")
                return VerificationOutcome(passed=False, fields=fields)
            return VerificationOutcome(passed=True, fields=fields)
        return VerificationOutcome(passed=True, fields={'status': payload, 'statusString': payload})

    if kind != 'object':
        return None

    fields = {key: text for key, text in ((k, stringify(v)) for k, v in payload.items()) if text is not None}
    if 'status' in fields:
        fields.setdefault('statusString', fields['status'])

    for name in required_fields or ():
        if name not in payload:
            logger.warning(f"Required field '{name}' not found in response")
            return VerificationOutcome(passed=False, fields=fields)

    for name, expected in expected_fields.items():
        if name not in payload:
            logger.warning(f"Expected field '{name}' not found in response")
            return VerificationOutcome(passed=False, fields=fields)
        if not values_match(payload[name], expected):
            logger.warning(f"Field '{name}' mismatch: expected '{expected}', got '{payload[name]}'")
            return VerificationOutcome(passed=False, fields=fields)

    return VerificationOutcome(passed=True, fields=fields)


def fill_template(template: Optional[str], *value_maps: Optional[Mapping[str, Any]]) -> Optional[str]:
    """Resolve placeholders from each map in turn; earlier maps win."""
    message = template
    for values in value_maps:
        message = resolve_placeholders(message, values)
    return message


def render_step_response(
    step: RunbookStep,
    body: Optional[str],
    entities: Optional[Mapping[str, str]] = None,
    context_values: Optional[Mapping[str, str]] = None
) -> Tuple[Optional[str], Optional[bool]]:
    """
    Build the step response message for a successful downstream call.

    Returns:
        Tuple of (message, verified). verified is None when the step has no
        verification configured or the body could not be verified.
    """
    if step.verification_expected_fields or step.verification_required_fields:
        outcome = verify_response(body, step.verification_expected_fields, step.verification_required_fields)
        if outcome is None:
            return None, None
        template = step.step_response_message if outcome.passed else step.step_response_error_message
        return fill_template(template, outcome.fields, entities, context_values), outcome.passed

    if step.step_response_message:
        return fill_template(step.step_response_message, entities, context_values), None

    return None, None


def extract_api_error_message(body: Optional[str]) -> Optional[str]:
    """The "message" field of a JSON error body, if there is one."""
    if not body:
        return None
    text = body.strip()
    if text.startswith('API Error:'):
        text = text[len('API Error:'):].strip()
    try:
        parsed = json.loads(text)
    except ValueError:
        logger.debug(f"Could not extract API error message from: {body}")
        return None
    if isinstance(parsed, dict) and isinstance(parsed.get('message'), str):
        return parsed['message']
    return None
