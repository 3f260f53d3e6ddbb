"""
Wiring of the runbook components from Settings.
"""

import logging
from dataclasses import dataclass
from typing import Optional

from .classifier import RunbookClassifier
from .config import Settings
from .errors import ErrorTranslator
from .executor import StepExecutor
from .http_client import RequestsDownstreamClient
from .orchestrator import ProductionSupportOrchestrator
from .patterns import PatternClassifier
from .registry import RunbookRegistry

logger = logging.getLogger(__name__)


@dataclass
class RunbookComponents:
    settings: Settings
    registry: RunbookRegistry
    classifier: RunbookClassifier
    fallback_classifier: PatternClassifier
    orchestrator: ProductionSupportOrchestrator
    translator: ErrorTranslator
    client: RequestsDownstreamClient
    executor: StepExecutor

    def close(self) -> None:
        self.client.close()


def build_components(settings: Optional[Settings] = None) -> RunbookComponents:
    """
    Build and connect every component, loading the runbooks once.

    Args:
        settings: Settings to use; read from the environment when omitted

    Returns:
        RunbookComponents bundle
    """
    settings = settings or Settings()

    registry = RunbookRegistry(settings.location, enabled=settings.enabled)
    registry.load()

    classifier = RunbookClassifier(registry)
    fallback_classifier = PatternClassifier()
    orchestrator = ProductionSupportOrchestrator(
        registry,
        classifier=classifier,
        fallback_classifier=fallback_classifier,
        default_downstream_service=settings.default_downstream_service,
    )

    translator = ErrorTranslator.from_file(settings.error_messages_path)
    client = RequestsDownstreamClient(settings.downstream_services)
    executor = StepExecutor(
        registry,
        client,
        translator=translator,
        default_downstream_service=settings.default_downstream_service,
    )

    logger.info(
        f"Runbook components ready: {len(registry.all())} runbooks, "
        f"services: {client.service_names()}"
    )
    return RunbookComponents(
        settings=settings,
        registry=registry,
        classifier=classifier,
        fallback_classifier=fallback_classifier,
        orchestrator=orchestrator,
        translator=translator,
        client=client,
        executor=executor,
    )
