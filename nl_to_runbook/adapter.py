"""
Adapts runbook definitions into grouped, placeholder-resolved steps.
"""

import logging
from typing import Iterable, Mapping, Optional

from .definitions import (
    EntityValidationAction,
    HeaderCheckAction,
    HttpAction,
    LocalMessageAction,
    StepDefinition,
    UseCaseDefinition,
)
from .templates import format_request_body, resolve_body, resolve_placeholders
from .types import (
    DEFAULT_DOWNSTREAM_SERVICE,
    OperationalResponse,
    RunbookStep,
    StepGroups,
)

logger = logging.getLogger(__name__)


def _common_fields(step: StepDefinition, entities: Optional[Mapping[str, str]]) -> dict:
    verification = step.verification
    expected_fields = None
    if verification:
        expected_fields = {
            name: resolve_placeholders(value, entities) for name, value in verification.expected_fields.items()
        }
    return dict(
        step_number=step.step_number,
        name=step.name,
        method=step.method,
        step_type=step.stage.value,
        optional=step.optional,
        on_failure=step.error_handling.on_failure.value if step.error_handling else None,
        verification_expected_fields=expected_fields,
        verification_required_fields=list(verification.required_fields) if verification else None,
        step_response_message=step.step_response_message,
        step_response_error_message=step.step_response_error_message,
    )


def convert_step(step: StepDefinition, entities: Optional[Mapping[str, str]]) -> RunbookStep:
    """
    Resolve entity placeholders in one step and shape it by method.

    Header values only get entity placeholders resolved here; caller-context
    placeholders such as {api_user} are left for execution time.
    """
    action = step.action
    description = resolve_placeholders(step.description, entities)

    if isinstance(action, LocalMessageAction):
        message = resolve_placeholders(action.message, entities)
        return RunbookStep(
            description=message,
            request_body=message,
            expected_response=message,
            auto_executable=True,
            **_common_fields(step, entities),
        )

    if isinstance(action, HeaderCheckAction):
        return RunbookStep(
            description=description if description is not None else f"Verify {action.header} header",
            path=action.header,
            expected_response=resolve_placeholders(action.expected_value, entities),
            auto_executable=True,
            **_common_fields(step, entities),
        )

    if isinstance(action, EntityValidationAction):
        return RunbookStep(
            description=description if description is not None else f"Validate {action.entity}",
            path=action.entity,
            auto_executable=step.auto_executable,
            **_common_fields(step, entities),
        )

    if isinstance(action, HttpAction):
        headers = None
        if action.headers:
            headers = {name: resolve_placeholders(value, entities) for name, value in action.headers.items()}
        return RunbookStep(
            description=description,
            path=resolve_placeholders(action.path, entities),
            request_body=format_request_body(resolve_body(action.body, entities)),
            expected_response=resolve_placeholders(action.expected_response, entities),
            headers=headers,
            auto_executable=step.auto_executable,
            **_common_fields(step, entities),
        )

    raise TypeError(f"Unsupported step action: {type(action).__name__}")


def group_steps(steps: Iterable[StepDefinition], entities: Optional[Mapping[str, str]]) -> StepGroups:
    """Bucket converted steps by stage, keeping declaration order within each group."""
    groups = StepGroups()
    for step in steps:
        groups.group(step.stage).append(convert_step(step, entities))
    return groups


def to_response(
    definition: UseCaseDefinition,
    entities: Optional[Mapping[str, str]],
    default_downstream_service: str = DEFAULT_DOWNSTREAM_SERVICE
) -> OperationalResponse:
    """Build the operational response for a runbook and its extracted entities."""
    entities = dict(entities or {})
    return OperationalResponse(
        task_id=definition.id,
        task_name=definition.name,
        downstream_service=definition.downstream_service or default_downstream_service,
        extracted_entities=entities,
        steps=group_steps(definition.steps, entities),
        warnings=list(definition.warnings),
    )


def find_step(
    definition: UseCaseDefinition,
    entities: Optional[Mapping[str, str]],
    step_number: int
) -> Optional[RunbookStep]:
    """The adapted step with this number, or None."""
    step = definition.step(step_number)
    if step is None:
        return None
    return convert_step(step, entities)
