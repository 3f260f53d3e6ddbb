"""
Step Executor

Executes a single runbook step on demand: local checks run in-process,
HTTP steps are dispatched to a downstream service through a DownstreamClient.
"""

import asyncio
import json
import logging
import time
from typing import Any, Dict, Mapping, Optional

from .adapter import convert_step
from .definitions import (
    EntityValidationAction,
    HeaderCheckAction,
    HttpAction,
    LocalMessageAction,
    StepDefinition,
    UseCaseDefinition,
)
from .errors import ErrorTranslator
from .interfaces import DownstreamClient, DownstreamRequest, DownstreamResponse, TransportError
from .registry import RunbookRegistry
from .templates import IDEMPOTENCY_KEY, caller_values, find_unresolved, resolve_body, resolve_placeholders
from .types import (
    DEFAULT_DOWNSTREAM_SERVICE,
    CallerContext,
    ErrorCategory,
    RunbookStep,
    StepExecutionResult,
)
from .verification import extract_api_error_message, fill_template, render_step_response

logger = logging.getLogger(__name__)

STEP_NOT_FOUND = "Step not found"
PLACEHOLDER_AUTH_TOKEN = "dummy-token"
SYSTEM_USER = "system"
BODY_METHODS = ('POST', 'PUT', 'PATCH')


def _elapsed_ms(start_time: float) -> int:
    return int((time.time() - start_time) * 1000)


def _has_header(headers: Mapping[str, str], name: str) -> bool:
    wanted = name.lower()
    return any(key.lower() == wanted for key in headers)


# ============================================================================
# Request building
# ============================================================================

def build_headers(
    step_headers: Optional[Mapping[str, str]],
    caller: CallerContext,
    values: Mapping[str, str],
    has_body: bool
) -> Dict[str, str]:
    """
    Assemble the outgoing headers for an HTTP step.

    Order of precedence, lowest first: standard headers (Authorization,
    X-User-ID, X-Idempotency-Key, Content-Type), forwarded caller headers,
    step headers with caller placeholders resolved, caller custom headers.
    """
    headers: Dict[str, str] = {}

    token = caller.auth_token or PLACEHOLDER_AUTH_TOKEN
    headers['Authorization'] = token if token.startswith('Bearer ') else f"Bearer {token}"
    headers['X-User-ID'] = caller.user_id or SYSTEM_USER
    headers['X-Idempotency-Key'] = values[IDEMPOTENCY_KEY]
    if has_body:
        headers['Content-Type'] = 'application/json'

    headers.update(caller.forwarded_headers())

    for name, value in (step_headers or {}).items():
        headers[name] = resolve_placeholders(value, values)

    headers.update(caller.custom_headers)
    return headers


def build_request(
    action: HttpAction,
    entities: Mapping[str, str],
    caller: CallerContext,
    step_headers: Optional[Mapping[str, str]] = None
) -> DownstreamRequest:
    """
    Resolve an HTTP action into a concrete request.

    Called once per attempt so every attempt gets a fresh idempotency key.
    """
    values = caller_values(caller)
    path = resolve_placeholders(resolve_placeholders(action.path, entities), values)

    body = resolve_body(resolve_body(action.body, entities), values)
    body_text = json.dumps(body) if body else None
    if body_text is None and action.http_method.value in BODY_METHODS:
        body_text = '{}'

    headers = build_headers(step_headers, caller, values, has_body=body_text is not None)
    return DownstreamRequest(method=action.http_method.value, path=path, body=body_text, headers=headers)


# ============================================================================
# Executor
# ============================================================================

class StepExecutor:
    """
    Executes one runbook step per call.

    Args:
        registry: Registry holding the runbook definitions
        client: Downstream client used for HTTP steps
        translator: Error translator for user-facing failure messages
        default_downstream_service: Service used when none is requested
            and the runbook does not name one
    """

    def __init__(
        self,
        registry: RunbookRegistry,
        client: DownstreamClient,
        translator: Optional[ErrorTranslator] = None,
        default_downstream_service: str = DEFAULT_DOWNSTREAM_SERVICE
    ):
        self.registry = registry
        self.client = client
        self.translator = translator or ErrorTranslator()
        self.default_downstream_service = default_downstream_service

    async def execute(
        self,
        task_id: Optional[str],
        step_number: Optional[int],
        entities: Optional[Mapping[str, str]] = None,
        caller: Optional[CallerContext] = None,
        downstream_service: Optional[str] = None
    ) -> StepExecutionResult:
        """
        Execute a single step of a runbook.

        Args:
            task_id: Runbook id (e.g., "CANCEL_CASE")
            step_number: 1-indexed step number within the runbook
            entities: Entity values for placeholder resolution
            caller: Caller identity and headers
            downstream_service: Service to route HTTP steps to

        Returns:
            StepExecutionResult; failures are reported, never raised
        """
        start_time = time.time()
        entities = {str(k): str(v) for k, v in (entities or {}).items() if v is not None}
        caller = caller or CallerContext()

        definition = self.registry.get(task_id) if task_id else None
        service = downstream_service or (definition.downstream_service if definition else None) \
            or self.default_downstream_service

        if not self.client.has_service(service):
            logger.warning(f"Downstream service not configured: {service}")
            return self._failure(
                step_number, None, start_time,
                f"Downstream service not configured: {service}. "
                f"Available services: {self.client.service_names()}",
            )

        step = definition.step(step_number) if definition else None
        if step is None:
            logger.warning(f"Step not found for taskId: {task_id}, stepNumber: {step_number}")
            return self._failure(step_number, None, start_time, STEP_NOT_FOUND)

        runbook_step = convert_step(step, entities)
        logger.info(
            f"Retrieved step {step.step_number}: method={step.method.value}, "
            f"stepType={step.stage.value}, description={runbook_step.description}"
        )

        action = step.action
        if isinstance(action, LocalMessageAction):
            return self._execute_local_message(runbook_step, entities, start_time)
        if isinstance(action, HeaderCheckAction):
            return self._execute_header_check(action, runbook_step, entities, caller, start_time)
        if isinstance(action, EntityValidationAction):
            return self._execute_entity_validation(definition, action, runbook_step, entities, start_time)
        return await self._execute_http(definition, step, runbook_step, entities, caller, service, start_time)

    # ------------------------------------------------------------------
    # Results
    # ------------------------------------------------------------------

    def _failure(
        self,
        step_number: Optional[int],
        runbook_step: Optional[RunbookStep],
        start_time: float,
        technical_error: str,
        status_code: Optional[int] = None,
        response_body: Optional[str] = None,
        api_error_message: Optional[str] = None,
        entities: Optional[Mapping[str, str]] = None
    ) -> StepExecutionResult:
        """Failure result with the technical error translated for users."""
        translation = self.translator.translate(technical_error)
        step_response = translation.user_message
        if runbook_step is not None and runbook_step.step_response_error_message:
            step_response = fill_template(runbook_step.step_response_error_message, entities)

        return StepExecutionResult(
            success=False,
            step_number=step_number,
            step_description=runbook_step.description if runbook_step else None,
            status_code=status_code,
            response_body=response_body,
            error_message=technical_error,
            user_message=translation.user_message,
            error_category=translation.category,
            api_error_message=api_error_message,
            step_response=step_response,
            duration_ms=_elapsed_ms(start_time),
        )

    def _check_failure(
        self,
        runbook_step: RunbookStep,
        start_time: float,
        message: str,
        status_code: int,
        category: ErrorCategory
    ) -> StepExecutionResult:
        """Failure of a local check; its message is already user-facing."""
        return StepExecutionResult(
            success=False,
            step_number=runbook_step.step_number,
            step_description=runbook_step.description,
            status_code=status_code,
            error_message=message,
            user_message=message,
            error_category=category.value,
            step_response=message,
            duration_ms=_elapsed_ms(start_time),
        )

    # ------------------------------------------------------------------
    # Local steps
    # ------------------------------------------------------------------

    def _execute_local_message(
        self,
        runbook_step: RunbookStep,
        entities: Mapping[str, str],
        start_time: float
    ) -> StepExecutionResult:
        message = runbook_step.request_body
        logger.info(f"Executing local message step: {message}")

        step_response = message
        if runbook_step.step_response_message:
            step_response = fill_template(runbook_step.step_response_message, entities)

        return StepExecutionResult(
            success=True,
            step_number=runbook_step.step_number,
            step_description=runbook_step.description,
            status_code=200,
            response_body=json.dumps({"message": message}),
            step_response=step_response,
            duration_ms=_elapsed_ms(start_time),
        )

    def _execute_header_check(
        self,
        action: HeaderCheckAction,
        runbook_step: RunbookStep,
        entities: Mapping[str, str],
        caller: CallerContext,
        start_time: float
    ) -> StepExecutionResult:
        expected = runbook_step.expected_response
        actual = caller.header(action.header)
        logger.info(f"Executing header check: header={action.header}, expected={expected}, actual={actual}")

        if actual is None:
            valid = False
        elif action.case_sensitive:
            valid = actual == expected
        else:
            valid = actual.lower() == expected.lower()

        if valid:
            message = fill_template(runbook_step.step_response_message, {'role': expected}, entities) \
                or f"User has required role: {expected}"
            return StepExecutionResult(
                success=True,
                step_number=runbook_step.step_number,
                step_description=runbook_step.description,
                status_code=200,
                response_body=json.dumps({"valid": True, "message": message}),
                step_response=message,
                duration_ms=_elapsed_ms(start_time),
            )

        message = fill_template(
            runbook_step.step_response_error_message,
            {'role': expected, 'actualRole': actual if actual is not None else 'null'},
            entities,
        ) or f"Access denied: User role '{actual}' does not match required role '{expected}'"
        logger.warning(message)
        return self._check_failure(runbook_step, start_time, message, 403, ErrorCategory.ACCESS_ERROR)

    def _execute_entity_validation(
        self,
        definition: UseCaseDefinition,
        action: EntityValidationAction,
        runbook_step: RunbookStep,
        entities: Mapping[str, str],
        start_time: float
    ) -> StepExecutionResult:
        name = action.entity
        logger.info(f"Executing entity validation: entity={name}")

        entity_config = definition.entities.get(name)
        validation = entity_config.validation if entity_config else None
        if validation is None:
            return self._check_failure(
                runbook_step, start_time,
                f"No validation configuration found for entity: {name}",
                500, ErrorCategory.CONFIG_ERROR,
            )

        allowed = ', '.join(validation.enum_values) if validation.enum_values else None
        value = entities.get(name)

        if value is None:
            if runbook_step.step_response_error_message:
                message = fill_template(
                    runbook_step.step_response_error_message, {name: f"{name} not provided"}, entities
                )
                if allowed and 'Allowed values' not in message and 'allowed list' not in message:
                    message += f" Allowed values: {allowed}"
            else:
                message = f"Required entity '{name}' not provided"
                if allowed:
                    message += f". Allowed values: {allowed}"
            return self._check_failure(runbook_step, start_time, message, 400, ErrorCategory.VALIDATION_ERROR)

        reason = validation.failure_reason(value, name)
        if reason is None:
            message = fill_template(runbook_step.step_response_message, {name: value}, entities) \
                or f"{name} '{value}' is valid"
            return StepExecutionResult(
                success=True,
                step_number=runbook_step.step_number,
                step_description=runbook_step.description,
                status_code=200,
                response_body=json.dumps({"valid": True, name: value}),
                step_response=message,
                duration_ms=_elapsed_ms(start_time),
            )

        message = fill_template(runbook_step.step_response_error_message, {name: value}, entities) or reason
        if allowed and 'Allowed values' not in message and 'allowed list' not in message:
            message += f" Allowed values: {allowed}"
        return self._check_failure(runbook_step, start_time, message, 400, ErrorCategory.VALIDATION_ERROR)

    # ------------------------------------------------------------------
    # HTTP steps
    # ------------------------------------------------------------------

    async def _send_once(self, service: str, request: DownstreamRequest, timeout: float) -> Any:
        """
        Send one request bounded by the service timeout.

        Returns:
            DownstreamResponse, or the technical error message on transport failure
        """
        try:
            return await asyncio.wait_for(self.client.send(service, request), timeout=timeout)
        except asyncio.TimeoutError:
            return f"Request timeout after {timeout}s"
        except TransportError as e:
            return str(e)
        except Exception as e:
            logger.exception(f"Downstream call failed: {request.method} {request.path}")
            return str(e) or type(e).__name__

    async def _execute_http(
        self,
        definition: UseCaseDefinition,
        step: StepDefinition,
        runbook_step: RunbookStep,
        entities: Mapping[str, str],
        caller: CallerContext,
        service: str,
        start_time: float
    ) -> StepExecutionResult:
        action: HttpAction = step.action
        timeout = self.client.timeout_for(service)

        policy = definition.execution.retry_policy
        max_attempts = policy.max_attempts if policy else 1

        result: Any = None
        for attempt in range(1, max_attempts + 1):
            request = build_request(action, entities, caller, runbook_step.headers)

            missing = find_unresolved(request.path) or find_unresolved(request.body)
            if missing:
                return self._failure(
                    step.step_number, runbook_step, start_time,
                    f"Not enough variable values available to expand '{missing}'",
                    entities=entities,
                )

            logger.info(
                f"Executing step {step.step_number} for service {service}: "
                f"{request.method} {request.path} (attempt {attempt}/{max_attempts})"
            )
            result = await self._send_once(service, request, timeout)
            if isinstance(result, DownstreamResponse):
                break

            logger.warning(f"Step {step.step_number} transport failure: {result}")
            if attempt < max_attempts and policy.backoff_ms:
                await asyncio.sleep(policy.backoff_ms / 1000)

        if not isinstance(result, DownstreamResponse):
            return self._failure(step.step_number, runbook_step, start_time, result, entities=entities)

        if not result.ok:
            technical_error = f"API Error: {result.status_code} {result.body}".strip()
            logger.error(f"Failed to execute step {step.step_number}: {technical_error}")
            return self._failure(
                step.step_number, runbook_step, start_time, technical_error,
                status_code=result.status_code,
                response_body=result.body,
                api_error_message=extract_api_error_message(result.body),
                entities=entities,
            )

        context = caller_values(caller)
        step_response, verified = render_step_response(runbook_step, result.body, entities, context)

        return StepExecutionResult(
            success=True,
            step_number=step.step_number,
            step_description=runbook_step.description,
            status_code=result.status_code,
            response_body=result.body,
            step_response=step_response,
            verified=verified,
            duration_ms=_elapsed_ms(start_time),
        )
