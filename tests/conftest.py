"""
Shared fixtures for the Zen session client tests.

Provides an in-process Connect server (aiohttp web application) that records
every request and answers with scripted responses, plus ready-wired session
components on top of it.
"""

import asyncio
import logging
import logging.handlers
from dataclasses import dataclass
from typing import Any, Callable, Dict, List
from unittest.mock import Mock

import pytest
import pytest_asyncio
from aiohttp import web
from aiohttp.test_utils import TestServer

from zen_client.auth.token_storage import MemoryTokenStore
from zen_client.config import ClientConfiguration
from zen_client.manager import SessionManager


@dataclass
class RecordedCall:
    """A request received by the fake server."""
    path: str
    headers: Dict[str, str]
    body: Dict[str, Any]


Handler = Callable[[Dict[str, Any], Dict[str, str]], Any]


class FakeConnectServer:
    """
    Minimal Connect unary JSON server.

    Handlers receive ``(body, headers)`` and return either a
    ``(status, payload)`` tuple or an ``aiohttp.web.Response``; they may be
    coroutine functions.
    """

    def __init__(self):
        self.url = ""
        self.requests: List[RecordedCall] = []
        self._handlers: Dict[str, Handler] = {}

        self.app = web.Application()
        self.app.router.add_post('/{service}/{method}', self._handle)

    def on(self, service: str, method: str, handler: Handler) -> None:
        self._handlers[f"/{service}/{method}"] = handler

    def reply(self, service: str, method: str, payload: Dict[str, Any], status: int = 200) -> None:
        self.on(service, method, lambda body, headers: (status, payload))

    def calls(self, service: str, method: str) -> List[RecordedCall]:
        path = f"/{service}/{method}"
        return [call for call in self.requests if call.path == path]

    async def _handle(self, request: web.Request) -> web.StreamResponse:
        raw = await request.read()
        body = await request.json() if raw else {}
        headers = {key.lower(): value for key, value in request.headers.items()}
        self.requests.append(RecordedCall(request.path, headers, body))

        handler = self._handlers.get(request.path)
        if handler is None:
            return web.json_response(
                {'code': 'unimplemented', 'message': f"{request.path} is not implemented"},
                status=404
            )

        result = handler(body, headers)
        if asyncio.iscoroutine(result):
            result = await result
        if isinstance(result, web.StreamResponse):
            return result

        status, payload = result
        return web.json_response(payload, status=status)


@pytest_asyncio.fixture
async def connect_server():
    """Running fake Connect server; ``.url`` is its base URL."""
    fake = FakeConnectServer()
    server = TestServer(fake.app)
    await server.start_server()
    fake.url = str(server.make_url('')).rstrip('/')

    yield fake

    await server.close()


@pytest.fixture
def token_store():
    return MemoryTokenStore()


@pytest.fixture
def notification_sink():
    sink = Mock()
    sink.notify_error = Mock()
    return sink


@pytest.fixture
def clean_environment(monkeypatch):
    """Remove ZEN_* variables so tests only see their own configuration."""
    for env_var in ClientConfiguration.ENV_MAPPINGS:
        monkeypatch.delenv(env_var, raising=False)


@pytest.fixture
def config(tmp_path, clean_environment):
    return ClientConfiguration(str(tmp_path / 'client.conf'))


@pytest_asyncio.fixture
async def manager(config, connect_server, token_store, notification_sink):
    """Session manager pointed at the fake server, using an in-memory store."""
    config.set_override('server.url', connect_server.url)
    session_manager = SessionManager(config, store=token_store, sink=notification_sink)

    yield session_manager

    await session_manager.close()


@pytest.fixture
def restore_logging():
    """Undo global logging changes made by setup_logging."""
    root_logger = logging.getLogger()
    audit_logger = logging.getLogger('audit')
    root_level = root_logger.level
    audit_state = (audit_logger.level, audit_logger.propagate, audit_logger.disabled)

    yield

    # pytest's own capture handlers are StreamHandler subclasses; leave them
    for handler in root_logger.handlers[:]:
        if type(handler) is logging.StreamHandler or isinstance(handler, logging.handlers.RotatingFileHandler):
            root_logger.removeHandler(handler)
            handler.close()
    root_logger.setLevel(root_level)

    for handler in audit_logger.handlers[:]:
        audit_logger.removeHandler(handler)
        handler.close()
    audit_logger.setLevel(audit_state[0])
    audit_logger.propagate, audit_logger.disabled = audit_state[1:]
