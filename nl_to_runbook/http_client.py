"""
requests-based DownstreamClient.
"""

import asyncio
import logging
from typing import Dict, List, Mapping, Optional

import requests

from .config import DEFAULT_SERVICE_TIMEOUT, ServiceConfig
from .interfaces import DownstreamClient, DownstreamRequest, DownstreamResponse, TransportError

logger = logging.getLogger(__name__)


def join_url(base_url: str, path: str) -> str:
    if path.startswith('http://') or path.startswith('https://'):
        return path
    return base_url.rstrip('/') + '/' + path.lstrip('/')


class RequestsDownstreamClient(DownstreamClient):
    """
    Sends step requests with one requests.Session per configured service.

    The blocking call runs in a worker thread so the executor's event loop
    stays free; the service timeout is passed to requests as well.
    """

    def __init__(self, services: Mapping[str, ServiceConfig]):
        self._services: Dict[str, ServiceConfig] = dict(services)
        self._sessions: Dict[str, requests.Session] = {}
        for name, config in self._services.items():
            logger.info(f"Initializing HTTP session for service: {name} with base URL: {config.base_url}")
            self._sessions[name] = requests.Session()

    def has_service(self, name: str) -> bool:
        return name in self._services

    def service_names(self) -> List[str]:
        return sorted(self._services)

    def timeout_for(self, name: str) -> float:
        config = self._services.get(name)
        return config.timeout if config else DEFAULT_SERVICE_TIMEOUT

    def _session(self, name: str) -> Optional[requests.Session]:
        return self._sessions.get(name)

    async def send(self, service: str, request: DownstreamRequest) -> DownstreamResponse:
        config = self._services.get(service)
        session = self._session(service)
        if config is None or session is None:
            raise TransportError(f"Downstream service not configured: {service}")

        url = join_url(config.base_url, request.path)
        data = request.body.encode('utf-8') if request.body is not None else None
        logger.debug(f"{request.method} {url}")

        try:
            response = await asyncio.to_thread(
                session.request,
                request.method,
                url,
                data=data,
                headers=request.headers,
                timeout=config.timeout,
            )
        except requests.Timeout as e:
            raise TransportError(f"Request timeout after {config.timeout}s: {e}") from e
        except requests.RequestException as e:
            raise TransportError(str(e)) from e

        return DownstreamResponse(status_code=response.status_code, body=response.text)

    def close(self) -> None:
        for session in self._sessions.values():
            session.close()
