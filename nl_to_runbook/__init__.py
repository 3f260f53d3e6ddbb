"""
nl_to_runbook - Natural language to production support runbooks

Classifies operator requests against declarative YAML runbooks, extracts
the entities they mention, and executes the resulting steps one at a time
against downstream services.
"""

__version__ = "0.1.0"

# Core types
from .types import (
    UNKNOWN_TASK,
    CallerContext,
    ErrorCategory,
    OperationalResponse,
    RunbookStep,
    StepExecutionResult,
    StepGroups,
    StepMethod,
    StepStage,
    TaskInfo,
    TranslationResult,
)

# Definitions and registry
from .definitions import UseCaseDefinition, parse_use_case
from .registry import RunbookRegistry

# Classification and extraction
from .classifier import RunbookClassifier
from .patterns import PatternClassifier
from .extractor import extract_entities

# Orchestration and execution
from .adapter import to_response
from .orchestrator import OperationalRequest, ProductionSupportOrchestrator
from .errors import ErrorTranslator
from .executor import StepExecutor

# Interfaces for extension
from .interfaces import DownstreamClient, DownstreamRequest, DownstreamResponse, TransportError

# Configuration
from .config import Settings
from .components import RunbookComponents, build_components

__all__ = [
    "__version__",
    # Types
    "UNKNOWN_TASK",
    "CallerContext",
    "ErrorCategory",
    "OperationalResponse",
    "RunbookStep",
    "StepExecutionResult",
    "StepGroups",
    "StepMethod",
    "StepStage",
    "TaskInfo",
    "TranslationResult",
    # Definitions
    "UseCaseDefinition",
    "parse_use_case",
    "RunbookRegistry",
    # Classification
    "RunbookClassifier",
    "PatternClassifier",
    "extract_entities",
    # Orchestration
    "to_response",
    "OperationalRequest",
    "ProductionSupportOrchestrator",
    "ErrorTranslator",
    "StepExecutor",
    # Interfaces
    "DownstreamClient",
    "DownstreamRequest",
    "DownstreamResponse",
    "TransportError",
    # Configuration
    "Settings",
    "RunbookComponents",
    "build_components",
]
