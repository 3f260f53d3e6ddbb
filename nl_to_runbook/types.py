"""
Data types for runbook classification, adaptation and step execution.
"""

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, Iterator, List, Optional


# Task id returned when a request cannot be classified
UNKNOWN_TASK = "UNKNOWN"

# Downstream service used when neither the request nor the runbook names one
DEFAULT_DOWNSTREAM_SERVICE = "ap-services"


class StepMethod(str, Enum):
    """How a runbook step is carried out."""
    LOCAL_MESSAGE = "LOCAL_MESSAGE"
    HEADER_CHECK = "HEADER_CHECK"
    ENTITY_VALIDATION = "ENTITY_VALIDATION"
    GET = "GET"
    POST = "POST"
    PUT = "PUT"
    PATCH = "PATCH"
    DELETE = "DELETE"

    @classmethod
    def parse(cls, value: Any) -> Optional["StepMethod"]:
        """Case-insensitive lookup, None for unknown or missing values."""
        if not isinstance(value, str):
            return None
        try:
            return cls(value.strip().upper())
        except ValueError:
            return None


class StepStage(str, Enum):
    """Lifecycle group a step is presented in."""
    PRECHECKS = "prechecks"
    PROCEDURE = "procedure"
    POSTCHECKS = "postchecks"
    ROLLBACK = "rollback"

    @classmethod
    def parse(cls, value: Any) -> "StepStage":
        """
        Map a declared stepType onto a stage.

        Matching is case-insensitive and accepts the singular forms
        "precheck" and "postcheck". Anything else, including a missing
        value, is a procedure step.
        """
        if not isinstance(value, str):
            return cls.PROCEDURE
        return _STAGE_ALIASES.get(value.strip().lower(), cls.PROCEDURE)


_STAGE_ALIASES = {
    "prechecks": StepStage.PRECHECKS,
    "precheck": StepStage.PRECHECKS,
    "procedure": StepStage.PROCEDURE,
    "postchecks": StepStage.POSTCHECKS,
    "postcheck": StepStage.POSTCHECKS,
    "rollback": StepStage.ROLLBACK,
}


class Transform(str, Enum):
    """Transformation applied to an extracted entity value."""
    NONE = "none"
    LOWERCASE = "lowercase"
    UPPERCASE = "uppercase"
    TRIM = "trim"

    @classmethod
    def parse(cls, value: Any) -> "Transform":
        if not isinstance(value, str):
            return cls.NONE
        try:
            return cls(value.strip().lower())
        except ValueError:
            return cls.NONE

    def apply(self, value: str) -> str:
        if self is Transform.LOWERCASE:
            return value.lower()
        if self is Transform.UPPERCASE:
            return value.upper()
        if self is Transform.TRIM:
            return value.strip()
        return value


class OnFailure(str, Enum):
    """Declared reaction to a failed step (informational for callers)."""
    ABORT = "abort"
    ROLLBACK = "rollback"
    ALERT = "alert"
    CONTINUE = "continue"

    @classmethod
    def parse(cls, value: Any) -> "OnFailure":
        if not isinstance(value, str):
            return cls.ABORT
        try:
            return cls(value.strip().lower())
        except ValueError:
            return cls.ABORT


class ErrorCategory(str, Enum):
    """Categories assigned by the error translator and the executor."""
    CONNECTION_ERROR = "CONNECTION_ERROR"
    TIMEOUT_ERROR = "TIMEOUT_ERROR"
    AUTH_ERROR = "AUTH_ERROR"
    ACCESS_ERROR = "ACCESS_ERROR"
    API_ERROR = "API_ERROR"
    CONFIG_ERROR = "CONFIG_ERROR"
    VALIDATION_ERROR = "VALIDATION_ERROR"
    UNKNOWN_ERROR = "UNKNOWN_ERROR"


# ============================================================================
# Adapted runbook output
# ============================================================================

@dataclass
class RunbookStep:
    """A step with entity placeholders resolved, ready for display or execution."""
    step_number: int
    name: Optional[str]
    method: StepMethod
    step_type: str
    description: Optional[str] = None
    path: Optional[str] = None
    request_body: Optional[str] = None
    expected_response: Optional[str] = None
    headers: Optional[Dict[str, str]] = None
    auto_executable: bool = False
    optional: bool = False
    on_failure: Optional[str] = None
    verification_expected_fields: Optional[Dict[str, str]] = None
    verification_required_fields: Optional[List[str]] = None
    step_response_message: Optional[str] = None
    step_response_error_message: Optional[str] = None


@dataclass
class StepGroups:
    """Steps bucketed by stage, each list in declaration order."""
    prechecks: List[RunbookStep] = field(default_factory=list)
    procedure: List[RunbookStep] = field(default_factory=list)
    postchecks: List[RunbookStep] = field(default_factory=list)
    rollback: List[RunbookStep] = field(default_factory=list)

    def group(self, stage: StepStage) -> List[RunbookStep]:
        return getattr(self, stage.value)

    def __iter__(self) -> Iterator[RunbookStep]:
        for stage in StepStage:
            yield from self.group(stage)


@dataclass
class OperationalResponse:
    """Classification outcome plus the grouped steps for the task."""
    task_id: str
    task_name: str
    downstream_service: Optional[str]
    extracted_entities: Dict[str, str]
    steps: StepGroups
    warnings: List[str] = field(default_factory=list)


@dataclass
class ValidInput:
    name: str
    values: List[str]


@dataclass
class TaskInfo:
    """Summary of a registered task, for callers offering a manual choice."""
    task_id: str
    task_name: str
    description: str = ""
    example_query: Optional[str] = None
    valid_inputs: List[ValidInput] = field(default_factory=list)


@dataclass
class ClassificationResult:
    """Result of the heuristic classifier."""
    task_id: str
    entities: Dict[str, str] = field(default_factory=dict)


@dataclass
class ExtractionResult:
    """Entities found in a query and the required ones that were not."""
    entities: Dict[str, str] = field(default_factory=dict)
    missing_required: List[str] = field(default_factory=list)


# ============================================================================
# Execution
# ============================================================================

# Caller-context headers forwarded to downstream services, keyed by attribute
FORWARDED_HEADERS = {
    'role_name': 'Role-Name',
    'api_user': 'Api-User',
    'lab_id': 'Lab-Id',
    'discipline_name': 'Discipline-Name',
    'time_zone': 'Time-Zone',
    'accept': 'Accept',
}


@dataclass
class CallerContext:
    """Identity and headers of the caller, passed through opaquely."""
    user_id: Optional[str] = None
    auth_token: Optional[str] = None
    role_name: Optional[str] = None
    api_user: Optional[str] = None
    lab_id: Optional[str] = None
    discipline_name: Optional[str] = None
    time_zone: Optional[str] = None
    accept: Optional[str] = None
    custom_headers: Dict[str, str] = field(default_factory=dict)

    def header(self, name: str) -> Optional[str]:
        """Value the caller sent for a header, matched case-insensitively."""
        wanted = name.lower()
        for key, value in self.custom_headers.items():
            if key.lower() == wanted:
                return value
        for attr, header_name in FORWARDED_HEADERS.items():
            if header_name.lower() == wanted:
                return getattr(self, attr)
        return None

    def forwarded_headers(self) -> Dict[str, str]:
        headers = {}
        for attr, header_name in FORWARDED_HEADERS.items():
            value = getattr(self, attr)
            if value is not None:
                headers[header_name] = value
        return headers


@dataclass
class StepExecutionResult:
    """
    Result of executing a single step.

    error_message always holds the technical failure text verbatim;
    user_message is its translated, user-facing form.
    """
    success: bool
    step_number: Optional[int]
    duration_ms: int
    step_description: Optional[str] = None
    status_code: Optional[int] = None
    response_body: Optional[str] = None
    error_message: Optional[str] = None
    user_message: Optional[str] = None
    error_category: Optional[str] = None
    api_error_message: Optional[str] = None
    step_response: Optional[str] = None
    verified: Optional[bool] = None


@dataclass
class TranslationResult:
    """User-facing rendering of a technical error."""
    user_message: str
    technical_details: Optional[str]
    category: str
