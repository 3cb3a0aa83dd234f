import aiohttp
import pytest

from kubewire._cogs.clients.codecs import JSON_PATCH, Request
from kubewire._cogs.clients.errors import APIDecodeError, APIError, APINotFoundError, \
                                         APIServerError
from kubewire._cogs.clients.transport import Transport
from kubewire._cogs.structs.credentials import ConnectionInfo
from kubewire._cogs.structs.resources import Resource


@pytest.mark.parametrize('method', ['GET', 'POST', 'PUT', 'PATCH', 'DELETE'])
async def test_requests_are_sent_and_decoded(fake_api, transport, method):
    fake_api.add(method, '/url', fake_api.json_response({'fake': 'result'}))
    result = await transport.execute(Request(method=method, path='/url', payload={'fake': 'payload'}))
    assert result == {'fake': 'result'}
    assert len(fake_api) == 1
    assert fake_api.received[0].method == method
    assert fake_api.received[0].path == '/url'
    assert fake_api.received[0].data == {'fake': 'payload'}
    assert fake_api.received[0].headers['Content-Type'] == 'application/json'


@pytest.mark.parametrize('fn, method', [
    (Transport.get, 'GET'),
    (Transport.post, 'POST'),
    (Transport.put, 'PUT'),
    (Transport.patch, 'PATCH'),
    (Transport.delete, 'DELETE'),
])
async def test_shortcuts_join_the_paths(fake_api, transport, fn, method):
    fake_api.add(method, '/api/v1/namespaces/ns1/pods/pod1', fake_api.json_response({}))
    await fn(transport, '/api/v1', 'namespaces/ns1', 'pods', 'pod1')
    assert fake_api.received[0].method == method
    assert fake_api.received[0].path == '/api/v1/namespaces/ns1/pods/pod1'


async def test_headers_are_always_sent(fake_api, transport):
    fake_api.add('GET', '/url', fake_api.json_response({}))
    await transport.get('/url')
    headers = fake_api.received[0].headers
    assert headers['Accept'] == 'application/json'
    assert headers['Authorization'] == 'Bearer secret-token'
    assert headers['User-Agent'].startswith('kubewire/')


async def test_content_type_is_not_sent_without_payload(fake_api, transport):
    fake_api.add('GET', '/url', fake_api.json_response({}))
    await transport.get('/url')
    assert 'Content-Type' not in fake_api.received[0].headers
    assert fake_api.received[0].body == b''


async def test_payload_content_type_is_customizable(fake_api, transport):
    fake_api.add('PATCH', '/url', fake_api.json_response({}))
    patch = [{'op': 'replace', 'path': '/spec/x', 'value': 1}]
    await transport.patch('/url', payload=patch, content_type=JSON_PATCH)
    assert fake_api.received[0].headers['Content-Type'] == 'application/json-patch+json'
    assert fake_api.received[0].data == patch


async def test_resources_are_sent_as_json(fake_api, transport):
    fake_api.add('PUT', '/url', fake_api.json_response({}))
    await transport.put('/url', payload=Resource({'spec': {'x': 1}}))
    assert fake_api.received[0].data == {'spec': {'x': 1}}


async def test_query_is_encoded(fake_api, transport):
    fake_api.add('GET', '/url', fake_api.json_response({}))
    await transport.get('/url', query={
        'labelSelector': 'a=b',
        'watch': False,
        'pretty': True,
        'limit': 10,
        'command': ['ls', '-l'],
        'fieldManager': None,
    })
    query = fake_api.received[0].query
    assert query['labelSelector'] == 'a=b'
    assert query['watch'] == 'false'
    assert query['pretty'] == 'true'
    assert query['limit'] == '10'
    assert query.getall('command') == ['ls', '-l']
    assert 'fieldManager' not in query


async def test_response_type_is_applied(fake_api, transport):
    fake_api.add('GET', '/url', fake_api.json_response({'kind': 'Pod'}))
    result = await transport.get('/url', response_type=Resource)
    assert isinstance(result, Resource)
    assert result == {'kind': 'Pod'}


async def test_plain_text_is_returned_as_is(fake_api, transport):
    fake_api.add('GET', '/url', fake_api.text_response('hello\nworld\n'))
    result = await transport.get('/url', response_type=Resource)
    assert result == 'hello\nworld\n'


async def test_unexpected_content_type_fails(fake_api, transport):
    fake_api.add('GET', '/url', fake_api.text_response('<html/>', content_type='text/html'))
    with pytest.raises(APIDecodeError) as err:
        await transport.get('/url')
    assert 'Invalid response Content-Type' in str(err.value)
    assert err.value.status == 200


async def test_malformed_json_fails(fake_api, transport):
    fake_api.add('GET', '/url', fake_api.text_response('{BAD JSON!', content_type='application/json'))
    with pytest.raises(APIDecodeError) as err:
        await transport.get('/url')
    assert 'Invalid JSON response' in str(err.value)


async def test_non_object_json_fails(fake_api, transport):
    fake_api.add('GET', '/url', fake_api.json_response(['a', 'b']))
    with pytest.raises(APIDecodeError) as err:
        await transport.get('/url')
    assert "Invalid JSON response: ['a', 'b']" in str(err.value)


async def test_status_errors_escalate(fake_api, transport):
    fake_api.add('GET', '/url', fake_api.status_response(404, 'NotFound', 'pods "x" not found'))
    with pytest.raises(APINotFoundError) as err:
        await transport.get('/url')
    assert err.value.status == 404
    assert err.value.method == 'GET'
    assert err.value.path == '/url'
    assert err.value.message == 'pods "x" not found'
    assert err.value.status_reason == 'NotFound'
    assert str(err.value) == 'GET /url => HTTP 404 Not Found: pods "x" not found'


async def test_errors_are_classified_regardless_of_content_type(fake_api, transport):
    fake_api.add('GET', '/url', fake_api.text_response('<h1>Bad Gateway</h1>', status=502,
                                                       content_type='text/html'))
    with pytest.raises(APIServerError) as err:
        await transport.get('/url')
    assert err.value.status == 502
    assert err.value.payload is None
    assert '<h1>Bad Gateway</h1>' in str(err.value)


async def test_unknown_statuses_escalate_as_base_errors(fake_api, transport):
    fake_api.add('GET', '/url', fake_api.json_response({}, status=666))
    with pytest.raises(APIError) as err:
        await transport.get('/url')
    assert type(err.value) is APIError
    assert err.value.status == 666


async def test_connection_errors_escalate_as_is(settings):
    info = ConnectionInfo(server='http://127.0.0.1:1')  # nothing listens on port 1
    async with Transport(info, settings=settings) as transport:
        with pytest.raises(aiohttp.ClientConnectionError):
            await transport.get('/url')


async def test_path_prefix_is_applied(fake_api, settings):
    info = ConnectionInfo(server=f'{fake_api.url}/k8s/clusters/c-1')
    fake_api.add('GET', '/k8s/clusters/c-1/version', fake_api.json_response({'gitVersion': 'v1.20.0'}))
    async with Transport(info, settings=settings) as transport:
        result = await transport.get('/version')
        assert result == {'gitVersion': 'v1.20.0'}
        assert transport.path('/version') == '/k8s/clusters/c-1/version'
        assert transport.path(transport.path('/version')) == '/k8s/clusters/c-1/version'


async def test_version_is_fetched_once(fake_api, transport):
    fake_api.add('GET', '/version', fake_api.json_response({'gitVersion': 'v1.20.0'}))
    version1 = await transport.version()
    version2 = await transport.version()
    assert version1 == version2 == {'gitVersion': 'v1.20.0'}
    assert len(fake_api.requests_to('/version')) == 1


async def test_session_is_reused(fake_api, transport):
    fake_api.add('GET', '/url', fake_api.json_response({}))
    await transport.get('/url')
    session = transport.connection.session
    await transport.get('/url')
    assert transport.connection.session is session


async def test_session_is_closed_with_the_transport(fake_api, info, settings):
    fake_api.add('GET', '/url', fake_api.json_response({}))
    async with Transport(info, settings=settings) as transport:
        await transport.get('/url')
        session = transport.connection.session
    assert session.closed


async def test_successes_are_logged(fake_api, transport, assert_logs):
    fake_api.add('GET', '/url', fake_api.json_response({'fake': 'result'}))
    await transport.get('/url', query={'watch': False})
    assert_logs([
        r"^GET /url\?watch=false => HTTP 200: <dict> in \d+\.\d{3}s$",
        r"^Response: \{\"fake\": \"result\"\}$",
    ])


async def test_errors_are_logged_with_bodies(fake_api, transport, assert_logs):
    fake_api.add('POST', '/url', fake_api.status_response(409, 'AlreadyExists', 'it exists'))
    with pytest.raises(APIError):
        await transport.post('/url', payload={'fake': 'payload'})
    assert_logs([
        r"^POST /url <dict> => HTTP 409 Conflict in \d+\.\d{3}s$",
        r"^Request: \{\"fake\": \"payload\"\}$",
        r"^Response: .*it exists",
    ])


@pytest.mark.parametrize('method', ['HEAD', 'OPTIONS', 'get', ''])
def test_unsupported_methods_are_rejected(method):
    with pytest.raises(ValueError):
        Request(method=method, path='/url')


def test_paths_are_required():
    with pytest.raises(ValueError):
        Request(method='GET', path='')
