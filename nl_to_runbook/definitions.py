"""
Declarative use-case (runbook) definitions and their parser.

A runbook document describes one operational task: how to recognise it in a
query, which entities to pull out of the query, and the ordered steps that
carry it out. Documents are plain mappings (usually loaded from YAML) and are
turned into immutable definitions by parse_use_case(), which reports problems
as a list of errors instead of raising.
"""

import logging
import re
from dataclasses import dataclass, field
from typing import Any, ClassVar, Dict, List, Mapping, Optional, Tuple, Union

from .types import OnFailure, StepMethod, StepStage, Transform

logger = logging.getLogger(__name__)


# ============================================================================
# Classification and extraction
# ============================================================================

@dataclass(frozen=True)
class ValidationConfig:
    regex: Optional[str] = None
    enum_values: Optional[Tuple[str, ...]] = None
    error_message: Optional[str] = None

    def failure_reason(self, value: Any, entity_name: str = "value") -> Optional[str]:
        """
        Check a value against the allowed values and the regex.

        Returns None when the value is valid, otherwise a message describing
        the failure. Non-string values are checked in their string form. The
        regex must match the whole value; a malformed regex fails validation.
        """
        value = str(value)
        if self.enum_values:
            if not any(allowed.lower() == value.lower() for allowed in self.enum_values):
                return self.error_message or (
                    f"Invalid {entity_name} provided: '{value}'. "
                    f"Allowed values: {', '.join(self.enum_values)}"
                )

        if self.regex is not None:
            try:
                matched = re.fullmatch(self.regex, value) is not None
            except re.error as e:
                logger.warning(f"Invalid validation regex '{self.regex}': {e}")
                matched = False
            if not matched:
                return self.error_message or f"Value '{value}' does not match required pattern"

        return None


@dataclass(frozen=True)
class EntityConfig:
    patterns: Tuple[str, ...] = ()
    required: bool = False
    transform: Transform = Transform.NONE
    validation: Optional[ValidationConfig] = None
    type: Optional[str] = None
    # Named normalizer applied after the transform, e.g. "status"
    normalize: Optional[str] = None


@dataclass(frozen=True)
class ClassificationConfig:
    keywords: Tuple[str, ...] = ()
    synonyms: Mapping[str, Tuple[str, ...]] = field(default_factory=dict)
    min_confidence: Optional[float] = None
    required_entities: Tuple[str, ...] = ()


# ============================================================================
# Steps
# ============================================================================

@dataclass(frozen=True)
class LocalMessageAction:
    """Return a fixed message without calling anything."""
    message: str
    method: ClassVar[StepMethod] = StepMethod.LOCAL_MESSAGE


@dataclass(frozen=True)
class HeaderCheckAction:
    """Compare a caller header against an expected value."""
    header: str
    expected_value: str
    case_sensitive: bool = True
    method: ClassVar[StepMethod] = StepMethod.HEADER_CHECK


@dataclass(frozen=True)
class EntityValidationAction:
    """Re-run an entity's validation rule against the supplied value."""
    entity: str
    method: ClassVar[StepMethod] = StepMethod.ENTITY_VALIDATION


@dataclass(frozen=True)
class HttpAction:
    """Call the downstream service."""
    http_method: StepMethod
    path: str
    body: Optional[Dict[str, Any]] = None
    headers: Mapping[str, str] = field(default_factory=dict)
    expected_response: Optional[str] = None

    @property
    def method(self) -> StepMethod:
        return self.http_method


StepAction = Union[LocalMessageAction, HeaderCheckAction, EntityValidationAction, HttpAction]


@dataclass(frozen=True)
class ErrorHandling:
    on_failure: OnFailure = OnFailure.ABORT
    message: Optional[str] = None


@dataclass(frozen=True)
class Verification:
    """Checks applied to a successful downstream response."""
    expected_fields: Mapping[str, str] = field(default_factory=dict)
    required_fields: Tuple[str, ...] = ()


@dataclass(frozen=True)
class StepDefinition:
    step_number: int
    action: StepAction
    name: Optional[str] = None
    description: Optional[str] = None
    stage: StepStage = StepStage.PROCEDURE
    auto_executable: bool = False
    optional: bool = False
    expected_status: Optional[int] = None
    error_handling: Optional[ErrorHandling] = None
    verification: Optional[Verification] = None
    step_response_message: Optional[str] = None
    step_response_error_message: Optional[str] = None

    @property
    def method(self) -> StepMethod:
        return self.action.method


# ============================================================================
# Use case
# ============================================================================

@dataclass(frozen=True)
class RetryPolicy:
    max_attempts: int = 1
    backoff_ms: int = 0


@dataclass(frozen=True)
class ExecutionConfig:
    timeout: Optional[int] = None
    retry_policy: Optional[RetryPolicy] = None


@dataclass(frozen=True)
class MetadataConfig:
    author: Optional[str] = None
    last_modified: Optional[str] = None
    tags: Tuple[str, ...] = ()


@dataclass(frozen=True)
class UseCaseDefinition:
    id: str
    name: str
    classification: ClassificationConfig
    steps: Tuple[StepDefinition, ...]
    description: Optional[str] = None
    category: Optional[str] = None
    version: Optional[str] = None
    downstream_service: Optional[str] = None
    example_query: Optional[str] = None
    entities: Mapping[str, EntityConfig] = field(default_factory=dict)
    execution: ExecutionConfig = field(default_factory=ExecutionConfig)
    rollback_enabled: bool = False
    warnings: Tuple[str, ...] = ()
    metadata: MetadataConfig = field(default_factory=MetadataConfig)

    def step(self, step_number: Any) -> Optional[StepDefinition]:
        """The step with this number, or None."""
        for step in self.steps:
            if step.step_number == step_number:
                return step
        return None


@dataclass
class ParseResult:
    definition: Optional[UseCaseDefinition]
    errors: List[str] = field(default_factory=list)

    @property
    def ok(self) -> bool:
        return self.definition is not None and not self.errors


# ============================================================================
# Parsing
# ============================================================================

def _as_str(value: Any) -> Optional[str]:
    if value is None:
        return None
    return str(value)


def _as_str_tuple(value: Any) -> Tuple[str, ...]:
    if value is None:
        return ()
    if isinstance(value, str):
        return (value,)
    if isinstance(value, (list, tuple)):
        return tuple(str(item) for item in value if item is not None)
    return ()


def _as_mapping(value: Any) -> Dict[str, Any]:
    return value if isinstance(value, dict) else {}


def _as_int(value: Any) -> Optional[int]:
    if isinstance(value, bool):
        return None
    if isinstance(value, int):
        return value
    if isinstance(value, str) and value.strip().isdigit():
        return int(value.strip())
    return None


_TRUE_STRINGS = ('true', 'yes', 'on', '1')
_FALSE_STRINGS = ('false', 'no', 'off', '0')


def _as_bool(value: Any, default: bool) -> bool:
    """Strict boolean: real bools and the usual true/false words, otherwise the default."""
    if isinstance(value, bool):
        return value
    if isinstance(value, str):
        lowered = value.strip().lower()
        if lowered in _TRUE_STRINGS:
            return True
        if lowered in _FALSE_STRINGS:
            return False
    return default


def _as_float(value: Any) -> Optional[float]:
    if isinstance(value, bool) or value is None:
        return None
    try:
        return float(value)
    except (TypeError, ValueError):
        return None


def _parse_validation(raw: Any) -> Optional[ValidationConfig]:
    if not isinstance(raw, dict):
        return None
    enum_values = _as_str_tuple(raw.get('enumValues')) or None
    return ValidationConfig(
        regex=_as_str(raw.get('regex')),
        enum_values=enum_values,
        error_message=_as_str(raw.get('errorMessage')),
    )


def _parse_entities(raw: Any) -> Dict[str, EntityConfig]:
    entities = {}
    for name, config in _as_mapping(_as_mapping(raw).get('entities')).items():
        config = _as_mapping(config)
        entities[str(name)] = EntityConfig(
            patterns=_as_str_tuple(config.get('patterns')),
            required=_as_bool(config.get('required'), False),
            transform=Transform.parse(config.get('transform')),
            validation=_parse_validation(config.get('validation')),
            type=_as_str(config.get('type')),
            normalize=_as_str(config.get('normalize')),
        )
    return entities


def _parse_classification(raw: Dict[str, Any]) -> ClassificationConfig:
    synonyms = {
        str(keyword): _as_str_tuple(alternates)
        for keyword, alternates in _as_mapping(raw.get('synonyms')).items()
    }
    return ClassificationConfig(
        keywords=_as_str_tuple(raw.get('keywords')),
        synonyms=synonyms,
        min_confidence=_as_float(raw.get('minConfidence')),
        required_entities=_as_str_tuple(raw.get('requiredEntities')),
    )


def _parse_action(raw: Dict[str, Any], label: str) -> Tuple[Optional[StepAction], List[str]]:
    """Build the method-specific action record for a step."""
    method = StepMethod.parse(raw.get('method'))
    if method is None:
        return None, [f"{label}: unknown or missing method '{raw.get('method')}'"]

    if method == StepMethod.LOCAL_MESSAGE:
        message = raw.get('localMessage')
        if message is None:
            message = raw.get('description')
        if message is None:
            return None, [f"{label}: LOCAL_MESSAGE step needs localMessage or description"]
        return LocalMessageAction(message=str(message)), []

    if method == StepMethod.HEADER_CHECK:
        errors = []
        if not raw.get('path'):
            errors.append(f"{label}: HEADER_CHECK step needs the header name in path")
        if raw.get('expectedResponse') is None:
            errors.append(f"{label}: HEADER_CHECK step needs expectedResponse")
        if errors:
            return None, errors
        return HeaderCheckAction(
            header=str(raw['path']),
            expected_value=str(raw['expectedResponse']),
            case_sensitive=_as_bool(raw.get('caseSensitive'), True),
        ), []

    if method == StepMethod.ENTITY_VALIDATION:
        entity = raw.get('entity') or raw.get('path')
        if not entity:
            return None, [f"{label}: ENTITY_VALIDATION step needs the entity name in path"]
        return EntityValidationAction(entity=str(entity)), []

    if not raw.get('path'):
        return None, [f"{label}: {method.value} step needs a path"]
    body = raw.get('body')
    if body is not None and not isinstance(body, dict):
        return None, [f"{label}: body must be a mapping"]
    headers = {str(k): str(v) for k, v in _as_mapping(raw.get('headers')).items() if v is not None}
    return HttpAction(
        http_method=method,
        path=str(raw['path']),
        body=body,
        headers=headers,
        expected_response=_as_str(raw.get('expectedResponse')),
    ), []


def _parse_step(raw: Any, index: int, stage: Optional[StepStage] = None) -> Tuple[Optional[StepDefinition], List[str]]:
    if not isinstance(raw, dict):
        return None, [f"step #{index + 1}: must be a mapping"]

    step_number = _as_int(raw.get('stepNumber'))
    label = f"step {step_number if step_number is not None else '#' + str(index + 1)}"
    if step_number is None or step_number < 1:
        return None, [f"{label}: stepNumber must be a positive integer"]

    action, errors = _parse_action(raw, label)
    if errors:
        return None, errors

    error_handling = None
    if isinstance(raw.get('errorHandling'), dict):
        error_handling = ErrorHandling(
            on_failure=OnFailure.parse(raw['errorHandling'].get('onFailure')),
            message=_as_str(raw['errorHandling'].get('message')),
        )

    verification = None
    if isinstance(raw.get('verification'), dict):
        verification = Verification(
            expected_fields={
                str(k): str(v) for k, v in _as_mapping(raw['verification'].get('expectedFields')).items()
            },
            required_fields=_as_str_tuple(raw['verification'].get('requiredFields')),
        )

    return StepDefinition(
        step_number=step_number,
        action=action,
        name=_as_str(raw.get('name')),
        description=_as_str(raw.get('description')),
        stage=stage or StepStage.parse(raw.get('stepType')),
        auto_executable=_as_bool(raw.get('autoExecutable'), False),
        optional=_as_bool(raw.get('optional'), False),
        expected_status=_as_int(raw.get('expectedStatus')),
        error_handling=error_handling,
        verification=verification,
        step_response_message=_as_str(raw.get('stepResponseMessage')),
        step_response_error_message=_as_str(raw.get('stepResponseErrorMessage')),
    ), []


def parse_use_case(data: Any, source: str = "<memory>") -> ParseResult:
    """
    Parse and validate a runbook document.

    A document is rejected when it has no useCase.id, no classification
    section, no execution steps, a malformed step, or two steps sharing a
    step number. Rollback steps are merged into the same step space under
    the rollback stage unless rollback.enabled is false.

    Args:
        data: Mapping loaded from a runbook document
        source: Name used in error messages (usually the file name)

    Returns:
        ParseResult with the definition, or None and the list of errors
    """
    if not isinstance(data, dict):
        return ParseResult(None, [f"{source}: runbook document must be a mapping"])

    errors: List[str] = []
    info = _as_mapping(data.get('useCase'))
    use_case_id = info.get('id')
    if not isinstance(use_case_id, str) or not use_case_id.strip():
        errors.append(f"{source}: runbook must have useCase.id")

    classification = data.get('classification')
    if not isinstance(classification, dict):
        errors.append(f"{source}: runbook must have classification section")

    execution = _as_mapping(data.get('execution'))
    raw_steps = execution.get('steps')
    if not isinstance(raw_steps, list) or not raw_steps:
        errors.append(f"{source}: runbook must have execution.steps")

    if errors:
        return ParseResult(None, errors)

    steps: List[StepDefinition] = []
    for index, raw_step in enumerate(raw_steps):
        step, step_errors = _parse_step(raw_step, index)
        errors.extend(f"{source}: {e}" for e in step_errors)
        if step:
            steps.append(step)

    rollback = _as_mapping(data.get('rollback'))
    rollback_enabled = _as_bool(rollback.get('enabled'), True) if rollback else False
    if rollback_enabled:
        for index, raw_step in enumerate(rollback.get('steps') or []):
            step, step_errors = _parse_step(raw_step, index, stage=StepStage.ROLLBACK)
            errors.extend(f"{source}: rollback {e}" for e in step_errors)
            if step:
                steps.append(step)

    seen = set()
    for step in steps:
        if step.step_number in seen:
            errors.append(f"{source}: duplicate stepNumber {step.step_number}")
        seen.add(step.step_number)

    if errors:
        return ParseResult(None, errors)

    retry_policy = None
    if isinstance(execution.get('retryPolicy'), dict):
        raw_policy = execution['retryPolicy']
        retry_policy = RetryPolicy(
            max_attempts=max(1, _as_int(raw_policy.get('maxAttempts')) or 1),
            backoff_ms=max(0, _as_int(raw_policy.get('backoffMs')) or 0),
        )

    metadata = _as_mapping(data.get('metadata'))
    use_case_id = use_case_id.strip()

    definition = UseCaseDefinition(
        id=use_case_id,
        name=_as_str(info.get('name')) or use_case_id,
        classification=_parse_classification(classification),
        steps=tuple(steps),
        description=_as_str(info.get('description')),
        category=_as_str(info.get('category')),
        version=_as_str(info.get('version')),
        downstream_service=_as_str(info.get('downstreamService')),
        example_query=_as_str(info.get('exampleQuery')),
        entities=_parse_entities(data.get('extraction')),
        execution=ExecutionConfig(timeout=_as_int(execution.get('timeout')), retry_policy=retry_policy),
        rollback_enabled=rollback_enabled,
        warnings=_as_str_tuple(data.get('warnings')),
        metadata=MetadataConfig(
            author=_as_str(metadata.get('author')),
            last_modified=_as_str(metadata.get('lastModified')),
            tags=_as_str_tuple(metadata.get('tags')),
        ),
    )
    return ParseResult(definition)
