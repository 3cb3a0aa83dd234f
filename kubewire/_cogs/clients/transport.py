"""
The transport: logical requests in, decoded results or typed errors out.

Single requests are executed over the transport's pooled session.
Batches of requests are put in flight all at once, and their responses are
interpreted in the order of the requests, with some errors skipped or retried
according to the batch's policy. Streaming requests use private sessions
with a dedicated connection per request, and deliver the body by chunks.

Every request is logged with its outcome and duration. The bodies are logged
only at the debug level, as they can be huge and contain sensitive data.
"""
import asyncio
import dataclasses
import inspect
import time
from collections.abc import AsyncIterator, Callable, Collection, Mapping, Sequence
from contextlib import AbstractAsyncContextManager
from typing import Any

import aiohttp

from kubewire._cogs.clients import auth, codecs, errors, login, streaming
from kubewire._cogs.configs import configuration
from kubewire._cogs.helpers import loggers, typedefs, versions
from kubewire._cogs.structs import credentials


class Transport:
    """
    A client of one API server with specific credentials and settings.

    The transport owns its connection (and so, the pooled session),
    and must be closed when not needed anymore::

        async with Transport.from_kubeconfig() as transport:
            info = await transport.version()
    """

    connection: auth.Connection
    settings: configuration.ClientSettings
    logger: typedefs.Logger

    def __init__(
            self,
            connection: auth.Connection | credentials.ConnectionInfo,
            *,
            settings: configuration.ClientSettings | None = None,
            logger: typedefs.Logger | None = None,
    ) -> None:
        super().__init__()
        match connection:
            case auth.Connection():
                self.connection = connection
            case credentials.ConnectionInfo():
                self.connection = auth.Connection(connection, settings=settings)
            case _:
                raise TypeError(f"Unsupported connection type: {connection!r}")
        self.settings = settings if settings is not None else self.connection.settings
        self.logger = logger if logger is not None else loggers.TransportLogger(server=self.server)
        self._version: Mapping[str, Any] | None = None
        self._version_lock = asyncio.Lock()
        self._need_delete_body: bool | None = None

    @classmethod
    def from_kubeconfig(
            cls,
            paths: str | Sequence[str] | None = None,
            *,
            context: str | None = None,
            server: str | None = None,
            settings: configuration.ClientSettings | None = None,
            logger: typedefs.Logger | None = None,
    ) -> "Transport":
        info = login.login_with_kubeconfig(paths, context=context, server=server)
        return cls(info, settings=settings, logger=logger)

    @classmethod
    def in_cluster(
            cls,
            *,
            settings: configuration.ClientSettings | None = None,
            logger: typedefs.Logger | None = None,
    ) -> "Transport":
        info = login.login_with_service_account()
        return cls(info, settings=settings, logger=logger)

    def __repr__(self) -> str:
        return f'<{self.__class__.__name__} {self.server}{self.path_prefix}>'

    async def __aenter__(self) -> "Transport":
        return self

    async def __aexit__(self, *_: Any) -> None:
        await self.close()

    async def close(self) -> None:
        await self.connection.close()

    @property
    def server(self) -> str:
        return self.connection.server

    @property
    def path_prefix(self) -> str:
        return self.connection.path_prefix

    @property
    def default_namespace(self) -> str | None:
        return self.connection.info.default_namespace

    def path(self, *parts: str) -> str:
        return self.connection.path(*parts)

    async def version(self) -> Mapping[str, Any]:
        """ The server's version document, fetched once and cached. """
        async with self._version_lock:
            if self._version is None:
                self._version = await self.get('/version')
        return self._version

    async def need_delete_body(self) -> bool:
        """ Whether the server expects the delete options in the body, not in the query. """
        if self._need_delete_body is None:
            info = await self.version()
            server_version = versions.parse_version(str(info.get('gitVersion') or ''))
            threshold = versions.parse_version(self.settings.compatibility.delete_body_before)
            self._need_delete_body = server_version < threshold
        return self._need_delete_body

    async def execute(self, request: codecs.Request) -> Any:
        """
        Execute a single request and interpret its response.

        For the streaming requests (with a chunk callback), the result is ``None``.
        """
        request = await self._prepare(request)
        if request.streaming:
            return await self._stream(request)

        raw: codecs.RawResponse | None = None
        started = time.monotonic()
        try:
            raw = await self._exchange(request)
            result = codecs.decode_response(raw, request)
        except errors.APIError as e:
            duration = time.monotonic() - started
            self.logger.warning(f"{codecs.format_request(request)} => HTTP {e.status} {e.reason} "
                                f"in {duration:.3f}s")
            self._log_bodies(request, raw)
            raise
        else:
            duration = time.monotonic() - started
            self.logger.info(f"{codecs.format_request(request)} => HTTP {raw.status}: "
                             f"<{type(result).__name__}> in {duration:.3f}s")
            self._log_bodies(request, raw)
            return result

    async def execute_batch(
            self,
            requests: Collection[codecs.Request],
            *,
            response_type: Callable[[Any], Any] | None = None,
            skip_missing: bool = False,
            skip_forbidden: bool = False,
            retry_errors: bool = True,
    ) -> list[Any]:
        """
        Execute several requests at once, and return their outcomes in the same order.

        All requests are put in flight before any response is awaited.
        The responses are interpreted one by one, in the order of the requests:

        * "Not found" errors become ``None`` if ``skip_missing`` is set.
        * "Forbidden" errors become ``None`` if ``skip_forbidden`` is set.
        * "Service unavailable" errors are retried once with a standalone
          request if ``retry_errors`` is set; its outcome is final.
        * All other errors abort the batch.

        The common ``response_type`` applies only to the requests without their own.
        """
        if not requests:
            return []
        if any(request.streaming for request in requests):
            raise ValueError("Streaming requests cannot be executed in batches.")

        prepared: list[codecs.Request] = []
        for request in requests:
            if request.response_type is None and response_type is not None:
                request = dataclasses.replace(request, response_type=response_type)
            prepared.append(await self._prepare(request))

        titles = ', '.join(codecs.format_request(request) for request in prepared)
        started = time.monotonic()
        raws = await self._exchange_all(prepared)
        duration = time.monotonic() - started

        try:
            outcomes = []
            for raw, request in zip(raws, prepared):
                outcome = await self._interpret(
                    raw, request,
                    duration=duration,
                    skip_missing=skip_missing,
                    skip_forbidden=skip_forbidden,
                    retry_errors=retry_errors,
                )
                outcomes.append(outcome)
        except errors.APIError as e:
            self.logger.warning(f"[{titles}] => HTTP {e.status} {e.reason} in {duration:.3f}s")
            raise
        else:
            statuses = ', '.join(str(raw.status) for raw in raws)
            self.logger.info(f"[{titles}] => HTTP [{statuses}] in {duration:.3f}s")
            return outcomes

    async def request(
            self,
            method: str,
            *path: str,
            query: Mapping[str, Any] | None = None,
            payload: Any | None = None,
            content_type: str = codecs.JSON,
            response_type: Callable[[Any], Any] | None = None,
            on_chunk: typedefs.ChunkCallback | None = None,
            read_timeout: float | None = None,
    ) -> Any:
        return await self.execute(codecs.Request(
            method=method,
            path=self.path(*path),
            query=query,
            payload=payload,
            content_type=content_type,
            response_type=response_type,
            on_chunk=on_chunk,
            read_timeout=read_timeout,
        ))

    async def get(self, *path: str, **options: Any) -> Any:
        return await self.request('GET', *path, **options)

    async def post(self, *path: str, **options: Any) -> Any:
        return await self.request('POST', *path, **options)

    async def put(self, *path: str, **options: Any) -> Any:
        return await self.request('PUT', *path, **options)

    async def patch(self, *path: str, **options: Any) -> Any:
        return await self.request('PATCH', *path, **options)

    async def delete(self, *path: str, **options: Any) -> Any:
        return await self.request('DELETE', *path, **options)

    async def get_many(
            self,
            *paths: str,
            query: Mapping[str, Any] | None = None,
            **options: Any,
    ) -> list[Any]:
        requests = [codecs.Request(method='GET', path=self.path(path), query=query) for path in paths]
        return await self.execute_batch(requests, **options)

    def exec_channel(
            self,
            *path: str,
            query: Mapping[str, Any] | None = None,
            protocols: Sequence[str] = (),
    ) -> AbstractAsyncContextManager[aiohttp.ClientWebSocketResponse]:
        return streaming.exec_channel(
            self.connection, self.path(*path),
            query=query, protocols=protocols, logger=self.logger)

    async def read_logs(
            self,
            namespace: str,
            name: str,
            *,
            on_chunk: typedefs.ChunkCallback,
            container: str | None = None,
            follow: bool = False,
            tail_lines: int | None = None,
            read_timeout: float | None = None,
    ) -> None:
        await streaming.read_logs(
            self, namespace, name,
            on_chunk=on_chunk, container=container, follow=follow,
            tail_lines=tail_lines, read_timeout=read_timeout)

    async def _prepare(self, request: codecs.Request) -> codecs.Request:
        # Older servers ignore the delete options in the query; they want them in the body.
        if request.method == 'DELETE' and request.query and request.payload is None:
            if await self.need_delete_body():
                request = dataclasses.replace(request, query=None, payload=dict(request.query))
        return request

    async def _exchange(self, request: codecs.Request) -> codecs.RawResponse:
        kwargs = codecs.encode_request(request, server=self.server)
        async with self.connection.session.request(**kwargs) as response:
            return await codecs.read_response(response)

    async def _exchange_all(self, requests: Sequence[codecs.Request]) -> list[codecs.RawResponse]:
        tasks = [asyncio.create_task(self._exchange(request)) for request in requests]
        try:
            return await asyncio.gather(*tasks)
        finally:
            # If one exchange fails, the others are not needed anymore. Do not leave them orphaned.
            for task in tasks:
                if not task.done():
                    task.cancel()
            await asyncio.gather(*tasks, return_exceptions=True)

    async def _interpret(
            self,
            raw: codecs.RawResponse,
            request: codecs.Request,
            *,
            duration: float,
            skip_missing: bool,
            skip_forbidden: bool,
            retry_errors: bool,
    ) -> Any:
        error = codecs.detect_error(raw, request)
        match error:
            case None:
                return codecs.decode_body(raw, request)
            case errors.APINotFoundError() if skip_missing:
                return None
            case errors.APIForbiddenError() if skip_forbidden:
                return None
            case errors.APIServiceUnavailableError() if retry_errors:
                self.logger.warning(f"Retry {codecs.format_request(request)} => "
                                    f"HTTP {error.status} {error.reason} in {duration:.3f}s")
                return await self.execute(request)
            case _:
                self._log_bodies(request, raw)
                raise error

    async def _stream(self, request: codecs.Request) -> None:
        networking = self.settings.networking
        read_timeout = request.read_timeout
        read_timeout = read_timeout if read_timeout is not None else networking.stream_read_timeout
        timeout = aiohttp.ClientTimeout(
            total=None,
            sock_connect=networking.connect_timeout,
            sock_read=read_timeout,
        )

        size = 0
        started = time.monotonic()
        async with self.connection.make_session(persistent=False) as session:
            kwargs = codecs.encode_request(request, server=self.server)
            async with session.request(**kwargs, timeout=timeout, allow_redirects=False) as response:
                if not 200 <= response.status <= 299:
                    raw = await codecs.read_response(response)
                    error = codecs.detect_error(raw, request) or errors.APIError(
                        None, status=raw.status, method=request.method, path=request.path)
                    duration = time.monotonic() - started
                    self.logger.warning(f"{codecs.format_request(request)} => "
                                        f"HTTP {error.status} {error.reason} in {duration:.3f}s")
                    self._log_bodies(request, raw)
                    raise error

                async for chunk in _iter_chunks(response, networking.stream_chunk_size):
                    size += len(chunk)
                    result = request.on_chunk(chunk) if request.on_chunk is not None else None
                    if inspect.isawaitable(result):
                        await result

                status = response.status

        duration = time.monotonic() - started
        self.logger.info(f"{codecs.format_request(request)} => HTTP {status}: "
                         f"<stream of {size} bytes> in {duration:.3f}s")

    def _log_bodies(self, request: codecs.Request, raw: codecs.RawResponse | None) -> None:
        payload = codecs.format_payload(request)
        if payload is not None:
            self.logger.debug(f"Request: {payload}")
        if raw is not None and raw.body:
            self.logger.debug(f"Response: {raw.text}")


async def _iter_chunks(response: aiohttp.ClientResponse, chunk_size: int) -> AsyncIterator[bytes]:
    async for chunk in response.content.iter_chunked(chunk_size):
        if chunk:
            yield chunk
