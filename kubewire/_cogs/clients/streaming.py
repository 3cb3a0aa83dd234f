"""
Long-living exchanges: the exec/attach websockets and the pod logs.

Both use private sessions, never the transport's pooled one: a stream can
occupy its connection for hours, and should not block the regular requests.
"""
import contextlib
import time
import urllib.parse
from collections.abc import AsyncIterator, Mapping, Sequence
from typing import TYPE_CHECKING, Any

import aiohttp

from kubewire._cogs.clients import auth, codecs
from kubewire._cogs.helpers import loggers, typedefs

if TYPE_CHECKING:
    from kubewire._cogs.clients.transport import Transport

WEBSOCKET_SCHEMES = {'http': 'ws', 'https': 'wss'}


def websocket_url(server: str, path: str, query: Mapping[str, Any] | None = None) -> str:
    scheme, sep, rest = server.partition('://')
    url = f'{WEBSOCKET_SCHEMES.get(scheme, scheme)}{sep}{rest.rstrip("/")}{path}'
    params = codecs.encode_query(query)
    return f'{url}?{urllib.parse.urlencode(params)}' if params else url


@contextlib.asynccontextmanager
async def exec_channel(
        connection: auth.Connection,
        path: str,
        *,
        query: Mapping[str, Any] | None = None,
        protocols: Sequence[str] = (),
        logger: typedefs.Logger | None = None,
) -> AsyncIterator[aiohttp.ClientWebSocketResponse]:
    """
    Open a bidirectional channel (e.g. exec or attach) as a websocket.

    The client certificates in memory are put to temporary files
    only for the duration of the handshake, and deleted right after it.
    The websocket and its session are closed when the block exits.
    """
    logger = logger if logger is not None else loggers.TransportLogger(server=connection.server)
    url = websocket_url(connection.server, connection.path(path), query)
    async with aiohttp.ClientSession(headers=connection.headers) as session:
        started = time.monotonic()
        with auth.client_certificate_files(connection.info) as (cert_path, pkey_path):
            context = auth.make_ssl_context(connection.info, cert_path=cert_path, pkey_path=pkey_path)
            websocket = await session.ws_connect(url, protocols=tuple(protocols), ssl=context)
        duration = time.monotonic() - started
        logger.info(f"WS {connection.path(path)} => connected "
                    f"({websocket.protocol or 'no protocol'}) in {duration:.3f}s")
        async with websocket:
            yield websocket


async def read_logs(
        transport: "Transport",
        namespace: str,
        name: str,
        *,
        on_chunk: typedefs.ChunkCallback,
        container: str | None = None,
        follow: bool = False,
        tail_lines: int | None = None,
        read_timeout: float | None = None,
) -> None:
    """
    Stream the pod's logs to the callback, chunk by chunk.

    Without ``follow``, the stream ends when the existing logs are sent.
    With ``follow``, it ends only when the read timeout is reached between
    the chunks, or when the server closes the connection (e.g. the pod exits).
    """
    query: dict[str, Any] = {
        'container': container,
        'follow': True if follow else None,
        'tailLines': tail_lines,
    }
    await transport.execute(codecs.Request(
        method='GET',
        path=transport.path('/api/v1/namespaces', namespace, 'pods', name, 'log'),
        query=query,
        on_chunk=on_chunk,
        read_timeout=read_timeout,
    ))
