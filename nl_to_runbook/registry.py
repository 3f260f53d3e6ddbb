"""
In-memory registry of runbook definitions loaded from YAML files.

The registry publishes an immutable snapshot. Loading builds a complete new
snapshot and swaps it in with a single assignment, so concurrent readers see
either the old set or the new one, never a partially populated store.
"""

import logging
import threading
from dataclasses import dataclass, field
from pathlib import Path
from types import MappingProxyType
from typing import Iterable, Iterator, List, Mapping, Optional, Tuple, Union

import yaml

from .definitions import UseCaseDefinition, parse_use_case

logger = logging.getLogger(__name__)

RUNBOOK_SUFFIXES = ('.yaml', '.yml')


@dataclass(frozen=True)
class RegistrySnapshot:
    """Read-only view of the loaded definitions, in load order."""
    definitions: Tuple[UseCaseDefinition, ...] = ()
    by_id: Mapping[str, UseCaseDefinition] = field(default_factory=lambda: MappingProxyType({}))

    @classmethod
    def build(cls, definitions: Iterable[UseCaseDefinition]) -> "RegistrySnapshot":
        by_id = {}
        for definition in definitions:
            if definition.id in by_id:
                logger.warning(f"Duplicate runbook id {definition.id}, keeping the last one loaded")
            by_id[definition.id] = definition
        return cls(definitions=tuple(by_id.values()), by_id=MappingProxyType(by_id))

    def __len__(self) -> int:
        return len(self.definitions)

    def __iter__(self) -> Iterator[UseCaseDefinition]:
        return iter(self.definitions)


def discover_runbook_files(location: Path) -> List[Path]:
    """YAML files directly inside location, sorted by name."""
    if not location.is_dir():
        logger.warning(f"Runbook location does not exist or is not a directory: {location}")
        return []
    return sorted(p for p in location.iterdir() if p.is_file() and p.suffix.lower() in RUNBOOK_SUFFIXES)


def load_runbook_file(path: Path) -> Optional[UseCaseDefinition]:
    """Parse one runbook file, logging and returning None on any problem."""
    try:
        with open(path, encoding='utf-8') as f:
            data = yaml.safe_load(f)
    except (OSError, yaml.YAMLError):
        logger.exception(f"Failed to load runbook: {path.name}")
        return None

    result = parse_use_case(data, source=path.name)
    if not result.ok:
        logger.error(f"Skipping invalid runbook {path.name}: {'; '.join(result.errors)}")
        return None

    logger.debug(f"Loaded runbook: {result.definition.id} from {path.name}")
    return result.definition


class RunbookRegistry:
    """
    Keyed store of use-case definitions.

    Args:
        location: Directory holding the runbook YAML files
        enabled: When False nothing is ever loaded and the registry stays empty
    """

    def __init__(self, location: Optional[Union[str, Path]] = None, enabled: bool = True):
        self.location = Path(location) if location is not None else None
        self.loading_enabled = enabled
        self._snapshot = RegistrySnapshot()
        self._reload_lock = threading.Lock()

    @classmethod
    def from_definitions(cls, definitions: Iterable[UseCaseDefinition], enabled: bool = True) -> "RunbookRegistry":
        """Registry over in-memory definitions, without a file location."""
        registry = cls(location=None, enabled=enabled)
        if enabled:
            registry._snapshot = RegistrySnapshot.build(definitions)
        return registry

    def load(self) -> int:
        """
        Load every runbook from the configured location.

        Invalid runbooks are logged and skipped; loading never raises.

        Returns:
            Number of definitions now registered
        """
        if not self.loading_enabled:
            logger.info("Dynamic runbooks are disabled")
            return 0

        with self._reload_lock:
            if self.location is None:
                logger.warning("No runbook location configured")
                return len(self._snapshot)

            logger.info(f"Loading runbooks from: {self.location}")
            files = discover_runbook_files(self.location)
            if not files:
                logger.warning(f"No YAML runbooks found at: {self.location}")

            definitions = [d for d in (load_runbook_file(p) for p in files) if d is not None]
            snapshot = RegistrySnapshot.build(definitions)
            self._snapshot = snapshot

        logger.info(f"Successfully loaded {len(snapshot)} runbooks: {list(snapshot.by_id)}")
        return len(snapshot)

    def reload(self) -> int:
        """Replace the whole set of definitions with a freshly loaded one."""
        return self.load()

    @property
    def snapshot(self) -> RegistrySnapshot:
        return self._snapshot

    @property
    def enabled(self) -> bool:
        """True only if loading is on and at least one runbook is registered."""
        return self.loading_enabled and len(self._snapshot) > 0

    def get(self, task_id: Optional[str]) -> Optional[UseCaseDefinition]:
        if task_id is None:
            return None
        return self._snapshot.by_id.get(task_id)

    def has(self, task_id: Optional[str]) -> bool:
        return self.get(task_id) is not None

    def all(self) -> Tuple[UseCaseDefinition, ...]:
        return self._snapshot.definitions
