import base64
import ssl

import aiohttp
import pytest

from kubewire._cogs.clients.auth import Connection, decode_to_pem, join_path, make_headers, \
                                       parse_server
from kubewire._cogs.structs.credentials import ConnectionInfo

PEM = '-----BEGIN CERTIFICATE-----\nfake\n-----END CERTIFICATE-----\n'


@pytest.mark.parametrize('server, expected', [
    ('https://host', ('https://host:443', '/')),
    ('http://host', ('http://host:80', '/')),
    ('host', ('https://host:443', '/')),
    ('host:6443', ('https://host:6443', '/')),
    ('https://host:6443/', ('https://host:6443', '/')),
    ('https://host/k8s', ('https://host:443', '/k8s/')),
    ('https://host/k8s/clusters/c-1/', ('https://host:443', '/k8s/clusters/c-1/')),
    ('https://[::1]:6443', ('https://[::1]:6443', '/')),
    ('https://[fd00::1]', ('https://[fd00::1]:443', '/')),
])
def test_server_parsing(server, expected):
    assert parse_server(server) == expected


@pytest.mark.parametrize('parts, expected', [
    (('/',), '/'),
    (('/api', 'v1'), '/api/v1'),
    (('/api/', '/v1/'), '/api/v1/'),
    (('/k8s/', '', '/api'), '/k8s/api'),
    (('//a//b',), '/a/b'),
])
def test_path_joining(parts, expected):
    assert join_path(*parts) == expected


def test_paths_are_prefixed_once():
    connection = Connection(ConnectionInfo(server='https://host/k8s/'))
    assert connection.path('/api/v1') == '/k8s/api/v1'
    assert connection.path('/k8s/api/v1') == '/k8s/api/v1'
    assert connection.path(connection.path('/api', 'v1')) == '/k8s/api/v1'


def test_paths_without_prefix():
    connection = Connection(ConnectionInfo(server='https://host'))
    assert connection.path('/api', 'v1', 'pods') == '/api/v1/pods'


def test_default_headers():
    headers = make_headers(ConnectionInfo(server='https://host'))
    assert headers['Accept'] == 'application/json'
    assert headers['User-Agent'].startswith('kubewire/')
    assert 'Authorization' not in headers


@pytest.mark.parametrize('kwargs, expected', [
    (dict(token='tkn'), 'Bearer tkn'),
    (dict(scheme='Digest', token='tkn'), 'Digest tkn'),
    (dict(scheme='Custom'), 'Custom'),
    (dict(username='user', password='pass'), 'Basic dXNlcjpwYXNz'),
    (dict(token='tkn', username='user', password='pass'), 'Bearer tkn'),
])
def test_authorization_headers(kwargs, expected):
    headers = make_headers(ConnectionInfo(server='https://host', **kwargs))
    assert headers['Authorization'] == expected


def test_username_without_password_is_ignored():
    headers = make_headers(ConnectionInfo(server='https://host', username='user'))
    assert 'Authorization' not in headers


async def test_session_is_lazy_and_reused():
    connection = Connection(ConnectionInfo(server='https://host'))
    assert connection._session is None
    session = connection.session
    assert isinstance(session, aiohttp.ClientSession)
    assert connection.session is session
    await connection.close()
    assert session.closed
    assert connection._session is None


async def test_session_is_recreated_after_closing():
    async with Connection(ConnectionInfo(server='https://host')) as connection:
        session1 = connection.session
        await session1.close()
        session2 = connection.session
        assert session2 is not session1
        assert not session2.closed
    assert session2.closed


async def test_closing_without_session():
    connection = Connection(ConnectionInfo(server='https://host'))
    await connection.close()
    assert connection._session is None


async def test_sessions_carry_the_headers():
    async with Connection(ConnectionInfo(server='https://host', token='tkn')) as connection:
        assert connection.session.headers['Authorization'] == 'Bearer tkn'


def test_insecure_ssl_context():
    connection = Connection(ConnectionInfo(server='https://host', insecure=True))
    context = connection.make_ssl_context()
    assert context.verify_mode == ssl.CERT_NONE
    assert not context.check_hostname


def test_secure_ssl_context():
    connection = Connection(ConnectionInfo(server='https://host'))
    context = connection.make_ssl_context()
    assert context.verify_mode == ssl.CERT_REQUIRED
    assert context.check_hostname


@pytest.mark.parametrize('data', [
    PEM,
    PEM.encode('ascii'),
    base64.b64encode(PEM.encode('ascii')).decode('ascii'),
    base64.b64encode(PEM.encode('ascii')),
])
def test_pem_decoding(data):
    assert decode_to_pem(data) == PEM
