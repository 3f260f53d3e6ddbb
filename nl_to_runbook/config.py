"""
Settings for runbook loading, error translation and downstream services.

Values come from environment variables prefixed RUNBOOK_ (or a .env file),
e.g. RUNBOOK_LOCATION=/etc/runbooks or
RUNBOOK_DOWNSTREAM_SERVICES='{"ap-services": {"base_url": "http://ap:8091", "timeout": 10}}'.
"""

from pathlib import Path
from typing import Dict

from pydantic import BaseModel, Field
from pydantic_settings import BaseSettings, SettingsConfigDict

from .types import DEFAULT_DOWNSTREAM_SERVICE

RESOURCES_DIR = Path(__file__).parent / "resources"

DEFAULT_SERVICE_TIMEOUT = 30.0


class ServiceConfig(BaseModel):
    base_url: str
    timeout: float = DEFAULT_SERVICE_TIMEOUT  # seconds


class Settings(BaseSettings):
    location: Path = RESOURCES_DIR / "runbooks"
    enabled: bool = True
    error_messages_path: Path = RESOURCES_DIR / "error-messages.yaml"
    default_downstream_service: str = DEFAULT_DOWNSTREAM_SERVICE
    downstream_services: Dict[str, ServiceConfig] = Field(default_factory=dict)

    model_config = SettingsConfigDict(env_prefix="RUNBOOK_", env_file=".env", extra="ignore")
