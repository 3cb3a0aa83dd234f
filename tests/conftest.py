import asyncio
import dataclasses
import inspect
import json
import logging
import re
from collections.abc import Awaitable, Callable, Mapping
from typing import Any

import aiohttp.web
import pytest

from kubewire._cogs.clients.transport import Transport
from kubewire._cogs.configs.configuration import ClientSettings
from kubewire._cogs.helpers.loggers import TransportLogger
from kubewire._cogs.structs.credentials import ConnectionInfo

Handler = Callable[[aiohttp.web.Request], aiohttp.web.StreamResponse | Awaitable[aiohttp.web.StreamResponse]]


@dataclasses.dataclass(frozen=True)
class Received:
    method: str
    path: str
    query: Any  # a multi-dict
    headers: Mapping[str, str]
    body: bytes

    @property
    def data(self) -> Any:
        return json.loads(self.body) if self.body else None


def status_body(code: int, reason: str, message: str) -> dict[str, Any]:
    return {'apiVersion': 'v1', 'kind': 'Status', 'status': 'Failure',
            'code': code, 'reason': reason, 'message': message}


def json_response(data: Any, *, status: int = 200, delay: float = 0) -> Handler:
    async def handler(request: aiohttp.web.Request) -> aiohttp.web.StreamResponse:
        await asyncio.sleep(delay)
        return aiohttp.web.json_response(data, status=status)
    return handler


def status_response(code: int, reason: str = '', message: str = '') -> Handler:
    return json_response(status_body(code, reason, message), status=code)


def text_response(text: str, *, status: int = 200, content_type: str = 'text/plain') -> Handler:
    def handler(request: aiohttp.web.Request) -> aiohttp.web.StreamResponse:
        return aiohttp.web.Response(text=text, status=status, content_type=content_type)
    return handler


class FakeAPI:
    """
    A programmable API server, with the log of the received requests.

    Every route has a queue of handlers: they are used one per request,
    and the last one is repeated for all the following requests.
    Unknown routes respond with a "not found" ``Status``.
    """

    url: str

    # Shortcuts for the tests, so that they do not import the conftest module.
    json_response = staticmethod(json_response)
    status_response = staticmethod(status_response)
    text_response = staticmethod(text_response)

    def __init__(self) -> None:
        super().__init__()
        self.received: list[Received] = []
        self._routes: dict[tuple[str, str], list[Handler]] = {}

    def __len__(self) -> int:
        return len(self.received)

    def add(self, method: str, path: str, *handlers: Handler) -> None:
        self._routes.setdefault((method.upper(), path), []).extend(handlers)

    def requests_to(self, path: str) -> list[Received]:
        return [received for received in self.received if received.path == path]

    async def handle(self, request: aiohttp.web.Request) -> aiohttp.web.StreamResponse:
        body = await request.read()
        self.received.append(Received(
            method=request.method,
            path=request.path,
            query=request.query,
            headers=request.headers,
            body=body,
        ))
        handlers = self._routes.get((request.method, request.path))
        if not handlers:
            return aiohttp.web.json_response(status_body(404, 'NotFound', 'no such route'), status=404)
        handler = handlers.pop(0) if len(handlers) > 1 else handlers[0]
        response = handler(request)
        if inspect.isawaitable(response):
            response = await response
        return response


@pytest.fixture()
def settings():
    return ClientSettings()


@pytest.fixture()
async def fake_api(aiohttp_server):
    fake = FakeAPI()
    app = aiohttp.web.Application()
    app.router.add_route('*', '/{tail:.*}', fake.handle)
    server = await aiohttp_server(app)
    fake.url = f'http://{server.host}:{server.port}'
    return fake


@pytest.fixture()
def info(fake_api):
    return ConnectionInfo(server=fake_api.url, token='secret-token', default_namespace='ns1')


@pytest.fixture()
def logger(info):
    return TransportLogger(server=info.server)


@pytest.fixture()
async def transport(info, settings, logger):
    async with Transport(info, settings=settings, logger=logger) as transport:
        yield transport


@pytest.fixture()
def assert_logs(caplog):
    """
    A function to assert the logs are present (by pattern).

    The listed message patterns MUST be present, in the order specified.
    Some other log messages can also be present, but they are ignored.
    """
    def assert_logs_fn(patterns, prohibited=[]):
        __traceback_hide__ = True
        remaining_patterns = list(patterns)
        for message in caplog.messages:
            for pattern in prohibited:
                if re.search(pattern, message):
                    raise AssertionError(f"Prohibited log pattern found: {message!r} ~ {pattern!r}")
            if remaining_patterns and re.search(remaining_patterns[0], message):
                remaining_patterns.pop(0)
        if remaining_patterns:
            raise AssertionError(f"Few patterns were missed: {remaining_patterns!r}")

    caplog.set_level(logging.DEBUG)
    return assert_logs_fn
