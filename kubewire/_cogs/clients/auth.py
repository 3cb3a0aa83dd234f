"""
Connections to a single API server with specific credentials.

A connection interprets the connection info into the things usable by
the HTTP client: the server's root URL and path prefix, the SSL context,
the authorization headers, and the pooled session built from all of them.

Some SSL data are not accepted by :mod:`ssl` directly, only as files.
For those, temporary files are created and deleted within a scoped block.
"""
import base64
import contextlib
import os
import re
import ssl
import tempfile
import urllib.parse
from collections.abc import Iterator
from typing import Any

import aiohttp

from kubewire._cogs.configs import configuration
from kubewire._cogs.helpers import versions
from kubewire._cogs.structs import credentials

DEFAULT_PORTS = {'https': 443, 'http': 80}

PathLike = str | bytes | os.PathLike[str] | os.PathLike[bytes]


class Connection:
    """
    An endpoint, its credentials, and a lazily created pooled session to it.

    The session is created on the first use, i.e. inside of a running loop.
    """

    info: credentials.ConnectionInfo
    settings: configuration.ClientSettings
    server: str  # e.g. "https://localhost:443", without the path
    path_prefix: str  # e.g. "/" or "/k8s/clusters/c-1/"

    def __init__(
            self,
            info: credentials.ConnectionInfo,
            *,
            settings: configuration.ClientSettings | None = None,
    ) -> None:
        super().__init__()
        self.info = info
        self.settings = settings if settings is not None else configuration.ClientSettings()
        self.server, self.path_prefix = parse_server(info.server)
        self.headers = make_headers(info)
        self._session: aiohttp.ClientSession | None = None

    def __repr__(self) -> str:
        return f'<{self.__class__.__name__} {self.server}{self.path_prefix}>'

    async def __aenter__(self) -> "Connection":
        return self

    async def __aexit__(self, *_: Any) -> None:
        await self.close()

    @property
    def session(self) -> aiohttp.ClientSession:
        if self._session is None or self._session.closed:
            self._session = self.make_session()
        return self._session

    def path(self, *parts: str) -> str:
        """
        Build an absolute path on the server, prefixed with the server's path.

        Already prefixed paths are not prefixed again, so that the paths
        can be passed through this method as many times as needed.
        """
        joined = join_path(*parts)
        return joined if joined.startswith(self.path_prefix) else join_path(self.path_prefix, joined)

    def make_ssl_context(self) -> ssl.SSLContext:
        with client_certificate_files(self.info) as (cert_path, pkey_path):
            return make_ssl_context(self.info, cert_path=cert_path, pkey_path=pkey_path)

    def make_session(self, *, persistent: bool = True) -> aiohttp.ClientSession:
        """
        Make a new session: the pooled one, or a private one for the streams.

        The non-persistent sessions do not keep the connections after the
        requests, so that every streamed response gets its own connection.
        """
        return aiohttp.ClientSession(
            connector=aiohttp.TCPConnector(
                limit=0,
                ssl=self.make_ssl_context(),
                force_close=not persistent,
            ),
            headers=self.headers,
            timeout=aiohttp.ClientTimeout(
                total=self.settings.networking.request_timeout,
                sock_connect=self.settings.networking.connect_timeout,
            ),
        )

    async def close(self) -> None:
        if self._session is not None:
            await self._session.close()
            self._session = None


def parse_server(server: str) -> tuple[str, str]:
    """
    Split the server URL into the root URL and the path prefix.

    The port is always explicit: e.g., ``https://host/k8s`` becomes
    ``("https://host:443", "/k8s/")``. IPv6 hosts are bracketed.
    """
    parsed = urllib.parse.urlsplit(server if '://' in server else f'https://{server}')
    scheme = parsed.scheme or 'https'
    host = parsed.hostname or 'localhost'
    host = f'[{host}]' if ':' in host else host
    port = parsed.port or DEFAULT_PORTS.get(scheme, 443)
    prefix = join_path('/', parsed.path, '/')
    return f'{scheme}://{host}:{port}', prefix


def join_path(*parts: str) -> str:
    """ Join the parts with single slashes, as the filesystem paths are joined. """
    joined = '/'.join(str(part) for part in parts if part)
    return re.sub(r'/{2,}', '/', joined)


def make_headers(info: credentials.ConnectionInfo) -> dict[str, str]:
    headers: dict[str, str] = {
        'Accept': 'application/json',
        'User-Agent': f'kubewire/{versions.version or "unknown"}',
    }

    # The token auth part.
    if info.scheme and info.token:
        headers['Authorization'] = f'{info.scheme} {info.token}'
    elif info.scheme:
        headers['Authorization'] = f'{info.scheme}'
    elif info.token:
        headers['Authorization'] = f'Bearer {info.token}'

    # The basic auth part. The header is explicit, so that the websockets get it too.
    elif info.username and info.password:
        headers['Authorization'] = aiohttp.BasicAuth(info.username, info.password).encode()

    return headers


@contextlib.contextmanager
def client_certificate_files(
        info: credentials.ConnectionInfo,
) -> Iterator[tuple[PathLike | None, PathLike | None]]:
    """
    Provide the client certificate & key as files, for the duration of the block.

    If the info has the paths, they are used as is. If it has the data,
    they are written to temporary files, which are deleted on exit.
    No temporary files are created if not needed (it can be a read-only FS).
    """
    with contextlib.ExitStack() as stack:

        cert_path: PathLike | None
        if info.certificate_path:
            cert_path = info.certificate_path
        elif info.certificate_data:
            cert_file = stack.enter_context(tempfile.NamedTemporaryFile(buffering=0))
            cert_file.write(decode_to_pem(info.certificate_data).encode('ascii'))
            cert_path = cert_file.name
        else:
            cert_path = None

        pkey_path: PathLike | None
        if info.private_key_path:
            pkey_path = info.private_key_path
        elif info.private_key_data:
            pkey_file = stack.enter_context(tempfile.NamedTemporaryFile(buffering=0))
            pkey_file.write(decode_to_pem(info.private_key_data).encode('ascii'))
            pkey_path = pkey_file.name
        else:
            pkey_path = None

        yield cert_path, pkey_path


def make_ssl_context(
        info: credentials.ConnectionInfo,
        *,
        cert_path: PathLike | None = None,
        pkey_path: PathLike | None = None,
) -> ssl.SSLContext:
    # The SSL part (both client certificate auth and CA verification).
    context = ssl.create_default_context(
        purpose=ssl.Purpose.SERVER_AUTH,
        cafile=info.ca_path,
        cadata=decode_to_pem(info.ca_data) if info.ca_data is not None else None,
    )
    if cert_path and pkey_path:
        context.load_cert_chain(certfile=cert_path, keyfile=pkey_path)

    if info.insecure:
        context.check_hostname = False
        context.verify_mode = ssl.CERT_NONE

    return context


def decode_to_pem(data: str | bytes) -> str:
    match data:
        case str() if data.startswith('-----BEGIN '):
            return data
        case bytes() if data.startswith(b'-----BEGIN '):
            return data.decode('ascii')
        case _:
            return base64.b64decode(data).decode('ascii')
