"""Tests for settings, the requests client and component wiring."""

import pytest
import requests

from nl_to_runbook.components import build_components
from nl_to_runbook.config import RESOURCES_DIR, ServiceConfig, Settings
from nl_to_runbook.http_client import RequestsDownstreamClient, join_url
from nl_to_runbook.interfaces import DownstreamRequest, TransportError
from nl_to_runbook.orchestrator import OperationalRequest
from nl_to_runbook.types import CallerContext


class TestSettings:
    """Tests for Settings."""

    def test_defaults(self):
        """Test settings defaults."""
        settings = Settings()
        assert settings.location == RESOURCES_DIR / 'runbooks'
        assert settings.enabled is True
        assert settings.default_downstream_service == 'ap-services'
        assert settings.downstream_services == {}

    def test_environment_overrides(self, monkeypatch, tmp_path):
        """Test RUNBOOK_ environment variables override settings."""
        monkeypatch.setenv('RUNBOOK_LOCATION', str(tmp_path))
        monkeypatch.setenv('RUNBOOK_ENABLED', 'false')
        monkeypatch.setenv(
            'RUNBOOK_DOWNSTREAM_SERVICES',
            '{"ap-services": {"base_url": "http://ap:8091", "timeout": 10}}',
        )
        settings = Settings()
        assert settings.location == tmp_path
        assert settings.enabled is False
        assert settings.downstream_services['ap-services'].base_url == 'http://ap:8091'
        assert settings.downstream_services['ap-services'].timeout == 10.0


class TestRequestsDownstreamClient:
    """Tests for the requests-based client."""

    @pytest.fixture
    def client(self):
        client = RequestsDownstreamClient({'ap-services': ServiceConfig(base_url='http://ap:8091/', timeout=5)})
        yield client
        client.close()

    def test_join_url(self):
        """Test joining base URLs and paths."""
        assert join_url('http://ap:8091/', '/api/cases') == 'http://ap:8091/api/cases'
        assert join_url('http://ap:8091', 'api/cases') == 'http://ap:8091/api/cases'
        assert join_url('http://ap:8091', 'https://other/x') == 'https://other/x'

    def test_service_lookup(self, client):
        """Test service lookup and per-service timeouts."""
        assert client.has_service('ap-services')
        assert not client.has_service('lab-services')
        assert client.service_names() == ['ap-services']
        assert client.timeout_for('ap-services') == 5.0
        assert client.timeout_for('lab-services') == 30.0

    @pytest.mark.asyncio
    async def test_send(self, client, monkeypatch):
        """Test sending a request through the service session."""
        calls = []

        def fake_request(self, method, url, **kwargs):
            calls.append((method, url, kwargs))
            response = requests.Response()
            response.status_code = 404
            response.encoding = 'utf-8'
            response._content = b'{"message": "not found"}'
            return response

        monkeypatch.setattr(requests.Session, 'request', fake_request)
        request = DownstreamRequest(method='PATCH', path='/api/cases/X1', body='{}', headers={'A': 'b'})

        response = await client.send('ap-services', request)

        assert response.status_code == 404
        assert response.body == '{"message": "not found"}'
        assert not response.ok
        method, url, kwargs = calls[0]
        assert (method, url) == ('PATCH', 'http://ap:8091/api/cases/X1')
        assert kwargs['data'] == b'{}'
        assert kwargs['headers'] == {'A': 'b'}
        assert kwargs['timeout'] == 5.0

    @pytest.mark.asyncio
    @pytest.mark.parametrize('error,expected', [
        (requests.ConnectionError('boom'), 'boom'),
        (
            requests.ConnectionError("Failed to resolve 'no-such-host.invalid' (Name or service not known)"),
            "Failed to resolve 'no-such-host.invalid' (Name or service not known)",
        ),
        (requests.Timeout('slow'), 'Request timeout after 5.0s: slow'),
        (requests.TooManyRedirects('loop'), 'loop'),
    ])
    async def test_transport_errors(self, client, monkeypatch, error, expected):
        """Test requests errors become TransportError with the original text."""
        def fake_request(self, method, url, **kwargs):
            raise error

        monkeypatch.setattr(requests.Session, 'request', fake_request)

        with pytest.raises(TransportError) as exc_info:
            await client.send('ap-services', DownstreamRequest(method='GET', path='/x'))
        assert str(exc_info.value) == expected

    @pytest.mark.asyncio
    async def test_unknown_service(self, client):
        """Test sending to an unconfigured service raises TransportError."""
        with pytest.raises(TransportError):
            await client.send('lab-services', DownstreamRequest(method='GET', path='/x'))


class TestBuildComponents:
    """Tests for build_components."""

    @pytest.fixture
    def components(self):
        settings = Settings(downstream_services={'ap-services': {'base_url': 'http://ap:8091'}})
        components = build_components(settings)
        yield components
        components.close()

    def test_loads_packaged_runbooks(self, components):
        """Test packaged runbooks and error table are loaded."""
        assert components.registry.has('CANCEL_CASE')
        assert components.registry.has('UPDATE_CASE_STATUS')
        assert len(components.translator) > 3

    def test_process_request(self, components):
        """Test the wired orchestrator classifies a request."""
        response = components.orchestrator.process_request(OperationalRequest(query='cancel case 2025123P6732'))
        assert response.task_id == 'CANCEL_CASE'
        assert response.extracted_entities == {'case_id': '2025123P6732'}

    @pytest.mark.asyncio
    async def test_execute_header_check(self, components):
        """Test the wired executor runs a local step."""
        caller = CallerContext(role_name='Production Support')
        result = await components.executor.execute('CANCEL_CASE', 1, {'case_id': '2025123P6732'}, caller)
        assert result.success is True
        assert result.step_response == 'User has required role: Production Support'

    def test_disabled(self):
        """Test disabled settings leave the registry empty."""
        components = build_components(Settings(enabled=False))
        assert components.registry.all() == ()
        assert components.registry.enabled is False
        components.close()
