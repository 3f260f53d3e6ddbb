"""
Downstream client interface for step execution.
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Dict, List, Optional


class TransportError(Exception):
    """Connection-level failure talking to a downstream service (refused, DNS, reset)."""


@dataclass
class DownstreamRequest:
    """
    One HTTP call to a downstream service.
    """
    method: str  # GET, POST, PUT, PATCH, DELETE
    path: str  # Path relative to the service base URL
    body: Optional[str] = None  # Serialized JSON body
    headers: Dict[str, str] = field(default_factory=dict)


@dataclass
class DownstreamResponse:
    status_code: int
    body: str = ""

    @property
    def ok(self) -> bool:
        return 200 <= self.status_code < 300


class DownstreamClient(ABC):
    """
    Abstract interface for calling named downstream services.

    Implementations should provide:
    - Lookup of configured service names
    - A per-service timeout
    - Dispatch of one request, returning status and body
    """

    @abstractmethod
    def has_service(self, name: str) -> bool:
        """
        Check whether a service is configured.

        Args:
            name: Service name (e.g., "ap-services")

        Returns:
            True if requests can be sent to the service
        """
        pass

    @abstractmethod
    def service_names(self) -> List[str]:
        """
        List configured service names.

        Returns:
            Service names, used in configuration error messages
        """
        pass

    @abstractmethod
    def timeout_for(self, name: str) -> float:
        """
        Get the timeout for a service.

        Args:
            name: Service name

        Returns:
            Timeout in seconds
        """
        pass

    @abstractmethod
    async def send(self, service: str, request: DownstreamRequest) -> DownstreamResponse:
        """
        Send a request to a service.

        Non-2xx statuses are returned, not raised.

        Args:
            service: Service name
            request: Request to send

        Returns:
            Status code and body of the response

        Raises:
            TransportError: If the service could not be reached
        """
        pass
