import pytest
import yaml

from kubewire._cogs.clients.auth import Connection
from kubewire._cogs.clients.login import SERVICE_ACCOUNT_DIR
from kubewire._cogs.clients.transport import Transport
from kubewire._cogs.configs.configuration import ClientSettings
from kubewire._cogs.helpers.loggers import TransportLogger
from kubewire._cogs.structs.credentials import ConnectionInfo


async def test_from_connection_info():
    settings = ClientSettings()
    info = ConnectionInfo(server='https://host/k8s', default_namespace='ns1')
    async with Transport(info, settings=settings) as transport:
        assert transport.server == 'https://host:443'
        assert transport.path_prefix == '/k8s/'
        assert transport.default_namespace == 'ns1'
        assert transport.settings is settings
        assert transport.connection.settings is settings
        assert transport.path('/api', 'v1') == '/k8s/api/v1'
        assert repr(transport) == '<Transport https://host:443/k8s/>'
        assert isinstance(transport.logger, TransportLogger)
        assert transport.logger.extra == {'k8s_server': 'https://host:443'}


async def test_from_connection():
    connection = Connection(ConnectionInfo(server='https://host'))
    async with Transport(connection) as transport:
        assert transport.connection is connection
        assert transport.settings is connection.settings


def test_from_unsupported_types():
    with pytest.raises(TypeError):
        Transport('https://host')


async def test_from_kubeconfig(tmp_path):
    path = tmp_path / 'config'
    path.write_text(yaml.safe_dump({
        'current-context': 'ctx',
        'contexts': [{'name': 'ctx', 'context': {'cluster': 'c', 'user': 'u'}}],
        'clusters': [{'name': 'c', 'cluster': {'server': 'https://c1:6443'}}],
        'users': [{'name': 'u', 'user': {'token': 'tkn'}}],
    }))
    async with Transport.from_kubeconfig(str(path)) as transport:
        assert transport.server == 'https://c1:6443'
        assert transport.connection.headers['Authorization'] == 'Bearer tkn'


async def test_in_cluster(tmp_path, monkeypatch):
    monkeypatch.setenv('TELEPRESENCE_ROOT', str(tmp_path))
    monkeypatch.setenv('KUBERNETES_SERVICE_HOST', '10.0.0.1')
    monkeypatch.setenv('KUBERNETES_SERVICE_PORT_HTTPS', '6443')
    (tmp_path / SERVICE_ACCOUNT_DIR).mkdir(parents=True)
    (tmp_path / SERVICE_ACCOUNT_DIR / 'token').write_text('sa-token')
    async with Transport.in_cluster() as transport:
        assert transport.server == 'https://10.0.0.1:6443'
        assert transport.connection.headers['Authorization'] == 'Bearer sa-token'
