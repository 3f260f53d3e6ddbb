"""
Placeholder resolution for runbook steps.

Templates use single-brace placeholders such as {case_id}. Entity
placeholders are resolved when a runbook is adapted; caller-context
placeholders ({api_user}, {token}, ...) are resolved at execution time.
Replacement is a literal substring substitution with no escaping.
"""

import json
import logging
import re
import uuid
from typing import Any, Dict, Mapping, Optional

from .types import CallerContext

logger = logging.getLogger(__name__)

# A placeholder that looks like a variable name (JSON braces never match)
PLACEHOLDER_PATTERN = re.compile(r'\{([A-Za-z0-9_\-]+)\}')

IDEMPOTENCY_KEY = 'IDEMPOTENCY_KEY'


def resolve_placeholders(template: Any, values: Optional[Mapping[str, Any]]) -> Any:
    """
    Replace {name} placeholders in a template string.

    Non-string templates (including None) are returned unchanged, as are
    placeholders with no matching value.

    Examples:
        resolve_placeholders('Cancel {case_id}', {'case_id': 'X1'}) -> 'Cancel X1'
        resolve_placeholders('no tokens', {'case_id': 'X1'}) -> 'no tokens'
    """
    if not isinstance(template, str) or not values:
        return template

    resolved = template
    for name, value in values.items():
        if value is None:
            continue
        resolved = resolved.replace('{' + str(name) + '}', str(value))
    return resolved


def resolve_body(body: Optional[Mapping[str, Any]], values: Optional[Mapping[str, Any]]) -> Optional[Dict[str, Any]]:
    """Recursively resolve placeholders in the string values of a request body."""
    if body is None:
        return None

    resolved = {}
    for key, value in body.items():
        if isinstance(value, str):
            resolved[key] = resolve_placeholders(value, values)
        elif isinstance(value, Mapping):
            resolved[key] = resolve_body(value, values)
        else:
            resolved[key] = value
    return resolved


def find_unresolved(text: Optional[str]) -> Optional[str]:
    """Name of the first placeholder left in text, or None."""
    if not text:
        return None
    match = PLACEHOLDER_PATTERN.search(text)
    return match.group(1) if match else None


def format_request_body(body: Optional[Mapping[str, Any]]) -> Optional[str]:
    """Pretty-print a request body for display, falling back to str()."""
    if not body:
        return None
    try:
        return json.dumps(body, indent=2, ensure_ascii=False)
    except (TypeError, ValueError) as e:
        logger.error(f"Failed to serialize request body: {e}")
        return str(body)


def caller_values(caller: CallerContext) -> Dict[str, str]:
    """
    Values for caller-context placeholders.

    Supports {api_user}, {lab_id}, {discipline_name}, {time_zone},
    {role_name}, {token}, {user_id} and {IDEMPOTENCY_KEY}. A fresh
    idempotency key is generated on every call.
    """
    values = {}
    for name in ('api_user', 'lab_id', 'discipline_name', 'time_zone', 'role_name', 'user_id'):
        value = getattr(caller, name)
        if value is None:
            value = caller.header(name.replace('_', '-'))
        if value is not None:
            values[name] = value

    if caller.auth_token:
        token = caller.auth_token
        values['token'] = token[len('Bearer '):] if token.startswith('Bearer ') else token

    values[IDEMPOTENCY_KEY] = str(uuid.uuid4())
    return values
