"""
Orchestrates classification, entity extraction and runbook adaptation.
"""

import logging
import re
from dataclasses import dataclass
from typing import List, Optional

from .adapter import to_response
from .classifier import RunbookClassifier
from .definitions import UseCaseDefinition
from .extractor import extract_entities
from .patterns import PatternClassifier
from .registry import RunbookRegistry
from .types import (
    DEFAULT_DOWNSTREAM_SERVICE,
    UNKNOWN_TASK,
    OperationalResponse,
    StepGroups,
    TaskInfo,
    ValidInput,
)

logger = logging.getLogger(__name__)

UNCLASSIFIED_WARNING = "Unable to classify the request. Please try rephrasing or select a task manually."


@dataclass
class OperationalRequest:
    query: str
    task_id: Optional[str] = None  # Skips classification when set
    downstream_service: Optional[str] = None


def format_entity_display_name(entity_name: str) -> str:
    """
    Display name for an entity's allowed values.

    Examples:
        format_entity_display_name('status') -> 'Valid Statuses'
        format_entity_display_name('sampleStatus') -> 'Valid Sample Statuses'
        format_entity_display_name('priority') -> 'Valid Priorities'
    """
    words = re.sub(r'([a-z])([A-Z])', r'\1 \2', entity_name).replace('_', ' ').split()
    if not words:
        return "Valid Values"
    formatted = ' '.join(w[:1].upper() + w[1:] for w in words)

    if formatted.endswith(('s', 'x', 'z', 'ch', 'sh')):
        return f"Valid {formatted}es"
    if formatted.endswith('y') and not re.search(r'[aeiou]y$', formatted):
        return f"Valid {formatted[:-1]}ies"
    return f"Valid {formatted}s"


class ProductionSupportOrchestrator:
    """
    Turns an operator request into the grouped steps of a runbook.

    The declarative classifier is tried first; when it finds nothing the
    heuristic classifier is consulted, and its answer is used if the
    registry holds a runbook with that id.
    """

    def __init__(
        self,
        registry: RunbookRegistry,
        classifier: Optional[RunbookClassifier] = None,
        fallback_classifier: Optional[PatternClassifier] = None,
        default_downstream_service: str = DEFAULT_DOWNSTREAM_SERVICE
    ):
        self.registry = registry
        self.classifier = classifier or RunbookClassifier(registry)
        self.fallback_classifier = fallback_classifier
        self.default_downstream_service = default_downstream_service

    def _resolve_use_case(self, request: OperationalRequest) -> Optional[UseCaseDefinition]:
        if request.task_id:
            use_case = self.registry.get(request.task_id)
            if use_case is None:
                logger.warning(f"No runbook found for explicit taskId: {request.task_id}")
            return use_case

        task_id = self.classifier.classify(request.query)
        if task_id == UNKNOWN_TASK and self.fallback_classifier is not None:
            task_id = self.fallback_classifier.classify(request.query).task_id
            if task_id != UNKNOWN_TASK:
                logger.info(f"Heuristic classifier matched {task_id}")

        if task_id == UNKNOWN_TASK:
            logger.warning(f"Could not classify request: {request.query}")
            return None

        use_case = self.registry.get(task_id)
        if use_case is None:
            logger.warning(f"Classifier returned {task_id}, but no runbook found")
        return use_case

    def process_request(self, request: OperationalRequest) -> OperationalResponse:
        """
        Classify a request and build its operational response.

        Missing required entities add warnings to the response but never
        fail the request.
        """
        logger.info(f"Processing request: {request.query} for downstream service: {request.downstream_service}")

        use_case = self._resolve_use_case(request)
        if use_case is None:
            return self.unknown_response(request)

        extraction = extract_entities(request.query, use_case.entities)
        response = to_response(use_case, extraction.entities, self.default_downstream_service)

        missing = list(extraction.missing_required)
        for name in use_case.classification.required_entities:
            if name not in extraction.entities and name not in missing:
                missing.append(name)
        if missing:
            logger.warning(f"Required entities not found for use case {use_case.id}: {missing}")
            response.warnings.extend(f"Required entity '{name}' not found in query" for name in missing)

        if request.downstream_service:
            response.downstream_service = request.downstream_service
        return response

    def unknown_response(self, request: OperationalRequest) -> OperationalResponse:
        return OperationalResponse(
            task_id=UNKNOWN_TASK,
            task_name="Unknown",
            downstream_service=request.downstream_service,
            extracted_entities={},
            steps=StepGroups(),
            warnings=[UNCLASSIFIED_WARNING],
        )

    def available_tasks(self) -> List[TaskInfo]:
        """Every registered task with the allowed values of its entities."""
        tasks = []
        for use_case in self.registry.all():
            valid_inputs = [
                ValidInput(name=format_entity_display_name(name), values=list(config.validation.enum_values))
                for name, config in use_case.entities.items()
                if config.validation is not None and config.validation.enum_values
            ]
            tasks.append(TaskInfo(
                task_id=use_case.id,
                task_name=use_case.name,
                description=use_case.description or "",
                example_query=use_case.example_query or None,
                valid_inputs=valid_inputs,
            ))
        return tasks
